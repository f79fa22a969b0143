from __future__ import annotations

from datetime import date as Date
from datetime import datetime as DateTime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class LabelIn(BaseModel):
    name: str
    category: str = "mood"
    weight: float = Field(1.0, ge=0)
    origin: Literal["natal", "progressed", "transit", "phase", "weather", "axis", "current_event"] = "natal"
    planet_source: Optional[str] = None
    sign_source: Optional[str] = None
    house_source: Optional[int] = None
    aspect_source: Optional[str] = None


class FeaturesIn(BaseModel):
    angular_momentum: float = 0.0
    transit_aspect_count: int = Field(0, ge=0)
    progressed_aspect_count: int = Field(0, ge=0)
    lunar_phase: float = Field(0.5, ge=0.0, le=1.0)
    structural_tension: float = Field(0.5, ge=0.0, le=1.0)
    visibility_index: float = Field(0.0, ge=0.0, le=1.0)


class AspectIn(BaseModel):
    body1: str
    body2: str
    kind: str
    orb: float
    applying: bool = False


class AspectsIn(BaseModel):
    natal: List[AspectIn] = []
    transit: List[AspectIn] = []
    progressed: List[AspectIn] = []
    lunar_phase: float = Field(0.5, ge=0.0, le=1.0)


class BirthIn(BaseModel):
    moment: DateTime
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class DailyCardRequest(BaseModel):
    profile_id: Optional[str] = Field(None, min_length=1)
    date: Optional[Date] = None
    personality_key: Optional[str] = None
    labels: List[LabelIn] = []
    features: Optional[FeaturesIn] = None
    aspects: Optional[AspectsIn] = None
    birth: Optional[BirthIn] = None

    @model_validator(mode="after")
    def _needs_identity(self) -> "DailyCardRequest":
        if not self.profile_id and self.birth is None:
            raise ValueError("either profile_id or birth is required")
        return self


class CardOut(BaseModel):
    id: str
    name: str
    arcana: str
    suit: Optional[str] = None
    rank: str = ""
    axes: Dict[str, float]
    energy_affinity: Dict[str, float]
    keywords: List[str] = []
    description: str = ""


class ScoreOut(BaseModel):
    id: str
    name: str
    axis_similarity: float
    energy_alignment: float
    axis_score: float
    vibe_score: float
    boost_score: float
    penalty: float
    total: float


class SelectionFlags(BaseModel):
    filter_exhausted: bool = False
    cooldown_exhausted: bool = False
    scoring_failed: bool = False
    seeded_tie_break: bool = False
    tie_group: int = 1


class DailyCardResponse(BaseModel):
    date: Date
    seed: int
    profile_id: Optional[str] = None
    card: CardOut
    axes: Dict[str, float]
    axis_share: float
    energy: Dict[str, int]
    dominant_energy: str
    scores: List[ScoreOut]
    flags: SelectionFlags


class CatalogResponse(BaseModel):
    count: int
    cards: List[CardOut]
