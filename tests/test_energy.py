from __future__ import annotations

import pytest

from src.cards.energy import (
    MAXIMA,
    Energy,
    EnergyDistribution,
    allocate,
    raw_scores,
)
from src.cards.labels import OriginTag, WeightedLabel


def _assert_valid(distribution: EnergyDistribution) -> None:
    assert distribution.total == 21
    for energy in Energy:
        assert 0 <= distribution[energy] <= MAXIMA[energy]
    assert distribution.is_valid


def test_empty_pool_returns_balanced_default():
    distribution = allocate([], "fire")
    assert distribution.as_dict() == {
        "classic": 6,
        "playful": 3,
        "romantic": 4,
        "utility": 4,
        "drama": 2,
        "edge": 2,
    }
    assert allocate(None).as_dict() == distribution.as_dict()


def test_labels_outside_every_vocabulary_fall_back_to_default():
    distribution = allocate([WeightedLabel("zzz", "mood", 8.0)])
    assert distribution == EnergyDistribution.balanced()


@pytest.mark.parametrize("personality", [None, "fire", "earth", "air", "water", "balanced", "unknown"])
def test_allocation_always_sums_to_total(personality):
    pools = [
        [WeightedLabel("timeless", "structure", 9.0, planet_source="Saturn")],
        [
            WeightedLabel("bold", "expression", 4.0, planet_source="Mars", sign_source="Leo"),
            WeightedLabel("flowing", "texture", 1.0, planet_source="Venus"),
            WeightedLabel("innovative", "mood", 3.0, origin=OriginTag.TRANSIT, planet_source="Uranus"),
        ],
        [WeightedLabel(name, "mood", 0.5) for name in ("fun", "soft", "durable", "edgy", "deep", "navy")],
        [WeightedLabel("electric", "color_quality", 100.0)],
    ]
    for labels in pools:
        _assert_valid(allocate(labels, personality))


def test_outlier_cap_leaves_room_for_other_energies():
    labels = [
        WeightedLabel("timeless", "mood", 10.0),
        WeightedLabel("fun", "mood", 0.1),
    ]
    distribution = allocate(labels)
    _assert_valid(distribution)
    assert distribution.classic == 10
    assert distribution.playful > 0


def test_personality_multiplier_shifts_weight():
    labels = [
        WeightedLabel("bold", "mood", 2.0),
        WeightedLabel("elegant", "mood", 2.0),
        WeightedLabel("soft", "mood", 2.0),
        WeightedLabel("fun", "mood", 2.0),
    ]
    neutral = allocate(labels)
    fiery = allocate(labels, "fire")
    assert fiery.drama > neutral.drama
    assert fiery.classic < neutral.classic
    assert allocate(labels, "not-a-key") == neutral
    assert allocate(labels, " Balanced ") == neutral


def test_category_bonuses_follow_label_metadata():
    weather = WeightedLabel("practical", "weather", 1.0, origin=OriginTag.WEATHER)
    assert raw_scores([weather])[Energy.UTILITY] == pytest.approx(4.0)

    venus = WeightedLabel("soft", "texture", 1.0, planet_source="Venus", sign_source="Pisces")
    assert raw_scores([venus])[Energy.ROMANTIC] == pytest.approx(2.0 + 1.0 + 2.0 + 1.0)

    shared = raw_scores([WeightedLabel("structured", "mood", 1.0)])
    assert shared[Energy.CLASSIC] == pytest.approx(2.0)
    assert shared[Energy.UTILITY] == pytest.approx(2.0)


def test_repair_restores_invariants():
    skewed = EnergyDistribution(classic=21)
    assert not skewed.is_valid
    repaired = skewed.repaired()
    _assert_valid(repaired)
    assert repaired.classic == 10
    assert repaired.romantic == 8
    assert repaired.utility == 3

    over = EnergyDistribution(classic=10, playful=8, romantic=8, utility=1).repaired()
    _assert_valid(over)
    assert over.playful == 2
    assert over.utility == 1
    assert over.romantic == 8


def test_ranked_and_dominant_helpers():
    distribution = EnergyDistribution.balanced()
    assert distribution.dominant is Energy.CLASSIC
    ranked = distribution.ranked()
    assert [energy for energy, _ in ranked[:3]] == [Energy.CLASSIC, Energy.ROMANTIC, Energy.UTILITY]
    assert distribution.share(Energy.CLASSIC) == pytest.approx(6 / 21)
    assert distribution["drama"] == 2
