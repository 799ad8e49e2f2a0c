"""
Declarative, versioned scoring of waitlist answers.

Scores only ever influence waitlist rank. Old table versions stay addressable
so a stored application can be re-scored exactly as it was originally scored.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping

LATEST_SCORING_VERSION = "v2"


def _equals(points: int, *values: str) -> Dict[str, Any]:
    return {"points": points, "equals": values}


def _contains(points: int, *fragments: str) -> Dict[str, Any]:
    return {"points": points, "contains": fragments}


# Multi-select answers are scored by rules: a rule pays its points once when
# any selected value equals one of its values or contains one of its fragments.
SCORING_TABLES: Dict[str, Dict[str, Any]] = {
    "v1": {
        "role": {
            "fitter_builder": 3,
            "creator": 2,
            "league_captain": 1,
            "golfer": 0,
            "retailer_other": 0,
        },
        "share_channels": {
            "rules": {
                "reddit": _equals(1, "reddit"),
                "golfwrx": _equals(1, "golfwrx"),
                "social_media": _equals(1, "instagram", "tiktok", "youtube"),
            },
            "cap": 2,
        },
        "learn_channels": {
            "rules": {
                "youtube": _equals(1, "youtube"),
                "reddit": _equals(1, "reddit"),
                "fitter_builder": _contains(1, "fitter", "builder"),
                "manufacturer_sites": _contains(1, "manufacturer", "brand"),
            },
            "cap": 3,
        },
        "uses": {
            "rules": {
                "discover_deep_dive": _contains(1, "discover", "deep-dive", "research"),
                "follow_friends": _contains(1, "follow", "friend"),
                "track_builds": _contains(1, "track", "build"),
            },
            "cap": 2,
        },
        "buy_frequency": {"never": 0, "yearly_1_2": 0, "few_per_year": 1, "monthly": 2, "weekly_plus": 2},
        "share_frequency": {"never": 0, "yearly_1_2": 0, "few_per_year": 1, "monthly": 2, "weekly_plus": 2},
        "spend_bracket": {},
        "location": {"metro": 1, "pattern": r"phoenix|scottsdale|tempe|mesa|chandler|gilbert"},
        "invite_code": {"present": 2},
        "total_cap": 10,
    },
    "v2": {
        "role": {
            "fitter_builder": 3,
            "creator": 2,
            "league_captain": 1,
            "golfer": 0,
            "retailer_other": 0,
        },
        "share_channels": {
            "rules": {
                "reddit": _equals(1, "reddit"),
                "golfwrx": _equals(1, "golfwrx"),
                "social_media": _equals(1, "instagram", "tiktok", "youtube"),
            },
            "cap": 2,
        },
        "learn_channels": {
            "rules": {
                "youtube": _equals(1, "youtube"),
                "reddit": _equals(1, "reddit"),
                "fitter_builder": _contains(1, "fitter", "builder"),
                "manufacturer_sites": _contains(1, "manufacturer", "brand"),
            },
            "cap": 3,
        },
        "uses": {
            "rules": {
                "discover_deep_dive": _contains(1, "discover", "deep-dive", "research"),
                "follow_friends": _contains(1, "follow", "friend"),
                "track_builds": _contains(1, "track", "build"),
            },
            "cap": 2,
        },
        "buy_frequency": {"never": 0, "yearly_1_2": 0, "few_per_year": 1, "monthly": 2, "weekly_plus": 2},
        "share_frequency": {"never": 0, "yearly_1_2": 0, "few_per_year": 1, "monthly": 2, "weekly_plus": 2},
        "spend_bracket": {
            "<300": 0,
            "300_750": 0,
            "750_1500": 1,
            "1500_3000": 1,
            "3000_5000": 2,
            "5000_plus": 2,
        },
        "location": {
            "metro": 1,
            "pattern": r"phoenix|scottsdale|tempe|mesa|chandler|gilbert|glendale|peoria|surprise|avondale|goodyear|buckeye",
        },
        "invite_code": {"present": 2},
        "total_cap": 10,
    },
}


@dataclass(frozen=True)
class ScoreResult:
    version: str
    total: int
    capped_total: int
    breakdown: Dict[str, int] = field(default_factory=dict)


def available_versions() -> List[str]:
    return sorted(SCORING_TABLES)


def get_table(version: str) -> Dict[str, Any]:
    try:
        return SCORING_TABLES[version]
    except KeyError:
        raise ValueError(f"Unknown scoring version: {version}")


def _lowered(values: Any) -> List[str]:
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, Iterable):
        return []
    return [str(v).strip().lower() for v in values if v is not None]


def _lookup(weights: Mapping[str, int], key: Any) -> int:
    if not isinstance(key, str):
        return 0
    return int(weights.get(key, 0))


def _matches(value: str, rule: Mapping[str, Any]) -> bool:
    return value in rule.get("equals", ()) or any(f in value for f in rule.get("contains", ()))


def _score_selections(values: List[str], section: Mapping[str, Any]) -> int:
    """Sum the points of every rule hit by at least one value, up to the section cap."""
    points = sum(
        rule["points"] for rule in section["rules"].values() if any(_matches(v, rule) for v in values)
    )
    return min(points, section["cap"])


def score_breakdown(answers: Mapping[str, Any], version: str = LATEST_SCORING_VERSION) -> ScoreResult:
    """Score ``answers`` against the table of ``version``.

    Missing keys and unknown values contribute zero points, so answers stored
    under an older form still score without errors.
    """
    table = get_table(version)
    answers = answers or {}

    city = answers.get("city_region")
    metro = re.compile(table["location"]["pattern"], re.IGNORECASE)
    invite_code = answers.get("invite_code")

    breakdown = {
        "role": _lookup(table["role"], answers.get("role")),
        "share_channels": _score_selections(_lowered(answers.get("share_channels", [])), table["share_channels"]),
        "learn_channels": _score_selections(_lowered(answers.get("learn_channels", [])), table["learn_channels"]),
        "uses": _score_selections(_lowered(answers.get("uses", [])), table["uses"]),
        "buy_frequency": _lookup(table["buy_frequency"], answers.get("buy_frequency")),
        "share_frequency": _lookup(table["share_frequency"], answers.get("share_frequency")),
        "spend_bracket": _lookup(table["spend_bracket"], answers.get("spend_bracket")),
        "location": table["location"]["metro"] if isinstance(city, str) and metro.search(city) else 0,
        "invite_code": table["invite_code"]["present"] if isinstance(invite_code, str) and invite_code.strip() else 0,
    }
    total = sum(breakdown.values())
    return ScoreResult(
        version=version,
        total=total,
        capped_total=min(total, table["total_cap"]),
        breakdown=breakdown,
    )


def score(answers: Mapping[str, Any], version: str = LATEST_SCORING_VERSION) -> int:
    return score_breakdown(answers, version).capped_total
