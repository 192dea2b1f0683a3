# tests/test_matching.py
from __future__ import annotations

import pytest
from hypothesis import given, strategies as st

from jyotish_engine.core.divisions import Division, discretize
from jyotish_engine.core.matching import (
    KOOTAS,
    MAX_TOTAL,
    CompatibilityScore,
    gana_of,
    nadi_of,
    score,
    tier_of,
    yoni_of,
)
from jyotish_engine.core.validators import ValidationError

profiles = st.tuples(
    st.integers(min_value=1, max_value=12),
    st.integers(min_value=1, max_value=27),
    st.integers(min_value=1, max_value=4),
)


def test_identical_profiles():
    res = score((1, 1, 1), (1, 1, 1))
    pts = {k.name: k.score for k in res.kootas}
    assert pts == {
        "varna": 1, "vashya": 2, "tara": 0, "yoni": 4,
        "graha_maitri": 5, "gana": 6, "bhakoot": 7, "nadi": 0,
    }
    assert res.total == 25
    assert res.tier == "Good"


def test_same_mansion_different_quarter_lifts_tara_and_nadi():
    res = score((1, 1, 1), (1, 1, 2))
    assert res.koota("tara").score == 3
    assert res.koota("nadi").score == 8
    assert "cancelled" in res.koota("nadi").description
    assert res.total == MAX_TOTAL
    assert res.tier == "Excellent"


def test_max_points_add_up_to_36():
    res = score((3, 5, 2), (9, 20, 1))
    assert [k.name for k in res.kootas] == [fn.__name__ for fn in KOOTAS]
    assert sum(k.max_score for k in res.kootas) == 36


@pytest.mark.parametrize("sign_b, pts", [(1, 7), (2, 7), (3, 7), (4, 7), (5, 7), (6, 0), (7, 7), (8, 0), (9, 0), (10, 7), (11, 7), (12, 0)])
def test_bhakoot_distances(sign_b, pts):
    assert score((1, 1, 1), (sign_b, 1, 1)).koota("bhakoot").score == pts


def test_tara_is_directional():
    assert score((1, 1, 1), (1, 3, 1)).koota("tara").score == 0
    assert score((1, 3, 1), (1, 1, 1)).koota("tara").score == 1


def test_yoni_and_gana_classes():
    assert yoni_of(1) == yoni_of(24)
    assert score((1, 1, 1), (1, 24, 1)).koota("yoni").score == 4
    assert score((1, 1, 1), (1, 3, 1)).koota("yoni").score == 0
    assert gana_of(1) == 1 and gana_of(10) == 2 and gana_of(19) == 3
    assert score((1, 1, 1), (1, 19, 1)).koota("gana").score == 0
    assert score((1, 1, 1), (1, 10, 1)).koota("gana").score == 3
    assert {nadi_of(m) for m in range(1, 28)} == {1, 2, 3}


@pytest.mark.parametrize(
    "total, tier",
    [(36, "Excellent"), (33, "Excellent"), (32, "Good"), (25, "Good"), (24, "Average"),
     (18, "Average"), (17, "Below Average"), (12, "Below Average"), (11, "Poor"), (0, "Poor")],
)
def test_tier_thresholds(total, tier):
    assert tier_of(total)[0] == tier


def test_recommendations_name_weak_kootas():
    res = score((1, 1, 1), (1, 1, 1))
    assert res.recommendations[0] == tier_of(25)[1]
    assert any("tara" in r for r in res.recommendations[1:])
    assert any("nadi" in r for r in res.recommendations[1:])
    assert len(res.recommendations) == 3


def test_accepts_divisions_and_dicts():
    a = discretize(45.0)
    b = {"sign": 7, "mansion": 15, "quarter": 3}
    assert score(a, b) == score(a.triple, Division.coerce(b))


def test_invalid_profiles():
    for bad in ((13, 1, 1), (1, 0, 1), (1, 1, 5), (1, 1), None):
        with pytest.raises(ValidationError):
            score(bad, (1, 1, 1))


@given(a=profiles, b=profiles)
def test_scores_stay_within_bounds(a, b):
    res = score(a, b)
    assert all(0 <= k.score <= k.max_score for k in res.kootas)
    assert res.total == sum(k.score for k in res.kootas)
    assert 0 <= res.total <= MAX_TOTAL
    assert res.tier == tier_of(res.total)[0]


def test_score_round_trip():
    res = score((5, 12, 3), (10, 23, 4))
    out = res.to_dict()
    assert out["percentage"] == round(100.0 * res.total / 36, 2)
    assert CompatibilityScore.from_dict(out) == res
