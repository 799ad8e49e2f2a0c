import pytest

from app.services import scoring_policy
from app.services.scoring_policy import score, score_breakdown

from tests.helpers import VALID_ANSWERS

MIXED_ANSWERS = {
    "role": "creator",
    "share_channels": ["golfwrx"],
    "learn_channels": ["fitter forum", "brand sites"],
    "uses": ["discover new gear"],
    "buy_frequency": "few_per_year",
    "share_frequency": "never",
    "spend_bracket": "3000_5000",
    "city_region": "Tempe",
}


def test_versions_are_addressable():
    assert scoring_policy.available_versions() == ["v1", "v2"]
    with pytest.raises(ValueError):
        scoring_policy.get_table("v0")


def test_breakdown_per_version():
    v1 = score_breakdown(MIXED_ANSWERS, "v1")
    v2 = score_breakdown(MIXED_ANSWERS, "v2")

    assert v1.breakdown["role"] == 2
    assert v1.breakdown["learn_channels"] == 2
    assert v1.breakdown["spend_bracket"] == 0
    assert v1.total == 8
    assert v2.breakdown["spend_bracket"] == 2
    assert v2.total == 10


def test_total_is_capped_at_ten():
    result = score_breakdown(dict(VALID_ANSWERS, invite_code="BETA-ABC123"), "v2")
    assert result.total > 10
    assert result.capped_total == 10
    assert score(VALID_ANSWERS) == 10


def test_missing_and_unknown_keys_score_zero():
    assert score({}) == 0
    assert score({"role": "astronaut", "buy_frequency": 42, "favourite_club": "driver"}) == 0
    assert score(None) == 0


def test_wider_metro_only_in_v2():
    answers = {"city_region": "Glendale, AZ"}
    assert score(answers, "v1") == 0
    assert score(answers, "v2") == 1


def test_social_channels_share_one_point():
    answers = {"share_channels": ["Instagram", "TikTok", "youtube"]}
    assert score_breakdown(answers).breakdown["share_channels"] == 1


def test_scoring_is_deterministic():
    assert score_breakdown(VALID_ANSWERS) == score_breakdown(dict(VALID_ANSWERS))


def test_each_version_owns_its_matching_rules(monkeypatch):
    answers = {"share_channels": ["facebook"], "uses": ["compare shafts"]}
    before = score_breakdown(answers, "v1")

    v2 = scoring_policy.get_table("v2")
    monkeypatch.setitem(
        v2["share_channels"]["rules"], "social_media", {"points": 1, "equals": ("instagram", "tiktok", "facebook")}
    )
    monkeypatch.setitem(v2["uses"]["rules"], "compare", {"points": 1, "contains": ("compare",)})

    assert score_breakdown(answers, "v2").breakdown == dict(
        before.breakdown, share_channels=1, uses=1
    )
    assert score_breakdown(answers, "v1") == before


def test_fragment_rules_match_inside_free_text():
    answers = {"learn_channels": ["Local Fitter", "brand newsletters"], "uses": ["Research before buying"]}
    breakdown = score_breakdown(answers, "v1").breakdown
    assert breakdown["learn_channels"] == 2
    assert breakdown["uses"] == 1
