import logging

from fastapi import APIRouter, Body, HTTPException

from src.cards.errors import CatalogUnavailable
from src.cards.labels import Aspect, NumericFeatures, WeightedLabel

from ..schemas import CardOut, CatalogResponse, DailyCardRequest, DailyCardResponse
from ..services.daily_card import BirthData, get_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/cards", tags=["cards"])

TOP_SCORES = 5


@router.post("/daily", response_model=DailyCardResponse)
def daily_card(
    req: DailyCardRequest = Body(
        ...,
        example={
            "profile_id": "profile-123",
            "date": "2025-03-14",
            "personality_key": "fire",
            "labels": [
                {"name": "bold", "category": "expression", "weight": 3.0, "planet_source": "Mars"},
                {"name": "structured", "category": "structure", "weight": 2.0, "sign_source": "Capricorn"},
                {"name": "flowing", "category": "texture", "weight": 1.5, "origin": "transit"},
            ],
        },
    )
):
    labels = [WeightedLabel.from_mapping(label.model_dump()) for label in req.labels]
    features = None
    if req.features:
        features = NumericFeatures(**req.features.model_dump())
    elif req.aspects:
        features = NumericFeatures.from_aspects(
            [Aspect(**a.model_dump()) for a in req.aspects.natal],
            [Aspect(**a.model_dump()) for a in req.aspects.transit],
            [Aspect(**a.model_dump()) for a in req.aspects.progressed],
            lunar_phase=req.aspects.lunar_phase,
        )
    birth = (
        BirthData(moment=req.birth.moment, latitude=req.birth.lat, longitude=req.birth.lon)
        if req.birth
        else None
    )
    service = get_service()
    try:
        result = service.run(
            labels,
            req.profile_id,
            on=req.date,
            personality_key=req.personality_key,
            features=features,
            birth=birth,
        )
    except CatalogUnavailable as exc:
        logger.error("daily_card_catalog_unavailable", extra={"error": str(exc)})
        raise HTTPException(status_code=503, detail="Card catalog unavailable") from exc

    outcome = result.outcome
    return DailyCardResponse(
        date=result.on,
        seed=result.seed,
        profile_id=result.profile_id,
        card=CardOut(**outcome.winner.to_dict()),
        axes=result.axes.as_dict(),
        axis_share=round(result.axis_share, 4),
        energy=result.energy.as_dict(),
        dominant_energy=result.energy.dominant.value,
        scores=[entry.as_dict() for entry in outcome.ranking[:TOP_SCORES]],
        flags={
            "filter_exhausted": outcome.filter_exhausted,
            "cooldown_exhausted": outcome.cooldown_exhausted,
            "scoring_failed": outcome.scoring_failed,
            "seeded_tie_break": outcome.seeded_tie_break,
            "tie_group": outcome.tie_group,
        },
    )


@router.get("/catalog", response_model=CatalogResponse)
def catalog():
    try:
        cards = get_service().catalog.load()
    except CatalogUnavailable as exc:
        raise HTTPException(status_code=503, detail="Card catalog unavailable") from exc
    return CatalogResponse(count=len(cards), cards=[CardOut(**card.to_dict()) for card in cards])
