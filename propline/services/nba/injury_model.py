"""
Injury context for the numeric forecast model.

Turns caller-supplied injury reports into structured numbers:
- player status (active/out/questionable/probable/limited) and the
  percentage of minutes the player is expected to lose
- a multiplier for teammate absences (usage boost)
- a multiplier and structured flags for opponent absences

No sentence templating happens here; callers get statuses, scores and
flags and decide how to phrase them.
"""
import re
from typing import Dict, List, Optional, Sequence

from propline.models import InjuryReport
from propline.services.nba.prop_values import components
from propline.services.sync.utils.name_normalizer import player_name_matches

ACTIVE = "active"
OUT = "out"
QUESTIONABLE = "questionable"
PROBABLE = "probable"
LIMITED = "limited"

# Reference minutes for a full workload when converting a stated restriction
FULL_MINUTES = 35.0

# Teammate absences only count from this impact score up (starters, key players)
KEY_PLAYER_IMPACT = 80.0
STAR_IMPACT = 100.0
STARTER_IMPACT = 90.0
MAX_TEAMMATE_ADJUSTMENT = 1.30
SELF_LISTED_ADJUSTMENT = 0.3

# (total impact threshold, multiplier), checked highest first
TEAMMATE_IMPACT_TIERS = ((180.0, 1.25), (120.0, 1.15), (80.0, 1.08))

OPPONENT_KEY_IMPACT = 70.0
OPPONENT_BOOST_PER_PLAYER = 0.03
OPPONENT_MAX_BOOST = 0.10

_RESTRICTION = re.compile(r"(\d+)\s*min", re.IGNORECASE)
_PLAYING_HINTS = ("expected to play", "probable", "likely to play")


def normalize_status(status: Optional[str], description: str = "") -> str:
    """
    Map free-text injury status to one of the model's statuses.

    Doubtful counts as out. Minute restrictions mentioned only in the
    description count as limited.
    """
    status_lower = (status or "").lower()
    description_lower = (description or "").lower()

    if "out" in status_lower or "doubtful" in status_lower:
        return OUT
    if "questionable" in status_lower:
        return QUESTIONABLE
    if "probable" in status_lower:
        return PROBABLE
    if (
        "limited" in status_lower
        or "minute restriction" in description_lower
        or "limited minutes" in description_lower
    ):
        return LIMITED
    return ACTIVE


def minutes_reduction(status: str, description: str = "") -> float:
    """Percentage (0-100) of normal minutes the player is expected to lose."""
    description_lower = (description or "").lower()
    if status == OUT:
        return 100.0
    if status == QUESTIONABLE:
        return 5.0 if any(hint in description_lower for hint in _PLAYING_HINTS) else 10.0
    if status == LIMITED:
        match = _RESTRICTION.search(description_lower)
        if match:
            restricted = int(match.group(1))
            return max(10.0, min(20.0, 100.0 - (restricted / FULL_MINUTES) * 100.0))
        return 15.0
    return 0.0


def player_injury_status(injuries: Sequence[InjuryReport], player_name: str) -> Dict[str, object]:
    """
    Status of ``player_name`` in a team injury list.

    Returns:
        {"status": ..., "description": ..., "minutes_reduction": ...}
        with status "active" when the player is not listed.
    """
    for injury in injuries or []:
        if player_name_matches(player_name, injury.player_name):
            status = normalize_status(injury.status, injury.description)
            return {
                "status": status,
                "description": injury.description,
                "minutes_reduction": minutes_reduction(status, injury.description),
            }
    return {"status": ACTIVE, "description": "", "minutes_reduction": 0.0}


def teammate_injury_adjustment(player_name: str, injuries: Sequence[InjuryReport]) -> float:
    """
    Usage multiplier from teammate absences.

    1.0 means no change. Only key players (impact >= 80) count. If the
    player is on the list themself the forecast is cut to 30%.
    """
    if not injuries:
        return 1.0

    if any(player_name_matches(player_name, i.player_name) for i in injuries):
        return SELF_LISTED_ADJUSTMENT

    key_injuries = sorted(
        (i for i in injuries if i.impact_score >= KEY_PLAYER_IMPACT),
        key=lambda i: i.impact_score,
        reverse=True,
    )
    if not key_injuries:
        return 1.0

    total_impact = sum(i.impact_score for i in key_injuries)
    adjustment = next(
        (multiplier for threshold, multiplier in TEAMMATE_IMPACT_TIERS if total_impact >= threshold),
        1.0,
    )

    top = key_injuries[0].impact_score
    if top >= STAR_IMPACT:
        adjustment += 0.10
    elif top >= STARTER_IMPACT:
        adjustment += 0.05

    return min(adjustment, MAX_TEAMMATE_ADJUSTMENT)


def _key_opponents(injuries: Sequence[InjuryReport]) -> List[InjuryReport]:
    return [
        i for i in injuries or []
        if i.impact_score >= OPPONENT_KEY_IMPACT and normalize_status(i.status, i.description) == OUT
    ]


def opponent_injury_adjustment(injuries: Sequence[InjuryReport]) -> float:
    """Small boost for each key opponent ruled out, capped at +10%."""
    boost = min(len(_key_opponents(injuries)) * OPPONENT_BOOST_PER_PLAYER, OPPONENT_MAX_BOOST)
    return 1.0 + boost


def opponent_absence_flags(injuries: Sequence[InjuryReport], prop_type: str) -> List[str]:
    """
    Structured flags describing which opponent absences matter for a prop.

    Flags: missing_rim_protector, missing_starting_pg,
    missing_perimeter_defender, missing_two_starters, blowout_risk.
    """
    if not injuries:
        return []
    parts = set(components(prop_type))
    key = [i for i in injuries if i.impact_score >= OPPONENT_KEY_IMPACT]
    flags = []

    def position(i: InjuryReport) -> str:
        return (i.position or "").upper()

    if "rebounds" in parts and any(
        position(i) in ("C", "PF") or "CENTER" in position(i) for i in key
    ):
        flags.append("missing_rim_protector")
    if "assists" in parts and any(position(i) == "PG" for i in key):
        flags.append("missing_starting_pg")
    if parts & {"points", "threes"} and any(
        (position(i) in ("SG", "SF") or "GUARD" in position(i) or "FORWARD" in position(i))
        and i.impact_score >= KEY_PLAYER_IMPACT
        for i in key
    ):
        flags.append("missing_perimeter_defender")
    if len(key) >= 2:
        flags.append("missing_two_starters")
    if len(key) >= 3:
        flags.append("blowout_risk")
    return flags
