from __future__ import annotations

import pytest

from src.cards.labels import Aspect, NumericFeatures, OriginTag, WeightedLabel


def test_aspect_strength_fades_with_orb():
    assert Aspect("Sun", "Moon", "trine", 0.0).strength == 1.0
    assert Aspect("Sun", "Moon", "trine", -5.0).strength == pytest.approx(0.5)
    assert Aspect("Sun", "Moon", "trine", 12.0).strength == 0.0
    assert Aspect("Mars", "Saturn", "Square", 1.0).is_hard
    assert Aspect("Venus", "Jupiter", "sextile", 1.0).is_soft


def test_features_from_aspects():
    natal = [Aspect("Sun", "Moon", "trine", 2.0)]
    transit = [Aspect("Mars", "MC", "square", 0.0)]
    progressed = [Aspect("Venus", "Ascendant", "opposition", 5.0)]
    features = NumericFeatures.from_aspects(natal, transit, progressed, lunar_phase=1.4)

    assert features.angular_momentum == pytest.approx((0.8 * 0.3 + 1.0 + 0.5 * 0.5) / 3.0)
    assert features.structural_tension == pytest.approx(2 / 3)
    assert features.visibility_index == pytest.approx((1 * 0.4 + 2 * 0.6) / 10.0)
    assert features.transit_aspect_count == 1
    assert features.progressed_aspect_count == 1
    assert features.lunar_phase == 1.0


def test_features_from_no_aspects_are_neutral():
    features = NumericFeatures.from_aspects([], [], [], lunar_phase=0.25)
    assert features.angular_momentum == 0.0
    assert features.structural_tension == 0.5
    assert features.visibility_index == 0.0
    assert features.lunar_phase == 0.25


def test_label_from_mapping_normalises_fields():
    label = WeightedLabel.from_mapping(
        {"name": " Bold ", "category": "mood", "weight": "2.5", "origin": "Current-Event", "house_source": 10.0}
    )
    assert label.normalized_name == "bold"
    assert label.weight == 2.5
    assert label.origin is OriginTag.CURRENT_EVENT
    assert label.house_source == 10
