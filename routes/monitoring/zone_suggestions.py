from typing import Any, Iterable, List, Tuple

from configurations.config import settings
from routes.floor_plan.floor_plan_model import Zone, ZoneStatus, ZoneType


EXACT_FIT_SCORE = 100
SNUG_FIT_SCORE = 80
LOOSE_FIT_SCORE = 50
SNUG_FIT_MARGIN = 2

VIP_GROUP_BONUS = 20
SEA_HUT_COUPLE_BONUS = 15
CABIN_MEDIUM_GROUP_BONUS = 10


def score_zone(zone: Zone, guest_count: int) -> int:
    """Additive fit score of a zone for a party; undersized zones score 0"""
    if zone.capacity < guest_count:
        return 0

    if zone.capacity == guest_count:
        score = EXACT_FIT_SCORE
    elif zone.capacity <= guest_count + SNUG_FIT_MARGIN:
        score = SNUG_FIT_SCORE
    else:
        score = LOOSE_FIT_SCORE

    if guest_count >= 6 and zone.type == ZoneType.VIP_CABIN:
        score += VIP_GROUP_BONUS
    if guest_count <= 2 and zone.type == ZoneType.SEA_HUT:
        score += SEA_HUT_COUPLE_BONUS
    if 4 <= guest_count <= 6 and zone.type == ZoneType.STANDARD_CABIN:
        score += CABIN_MEDIUM_GROUP_BONUS

    return score


def rank_zones(guest_count: int, free_zones: Iterable[Any], limit: int = settings.SUGGESTION_LIMIT) -> List[Tuple[Zone, int]]:
    zones = [zone if isinstance(zone, Zone) else Zone(**zone) for zone in free_zones]
    viable = [
        (zone, score_zone(zone, guest_count))
        for zone in zones
        if zone.status == ZoneStatus.FREE and zone.capacity >= guest_count
    ]
    # sorted() is stable, ties keep the floor-plan order
    viable = sorted(viable, key=lambda pair: pair[1], reverse=True)
    return viable[:limit]


def suggest_zones(guest_count: int, free_zones: Iterable[Any], limit: int = settings.SUGGESTION_LIMIT) -> List[Zone]:
    """
    Shortlist of free zones for a party, best fit first.

    Args:
        guest_count: Party size, at least 1
        free_zones: Candidate zones; anything not free is ignored
        limit: Maximum number of suggestions

    Returns:
        Zones ordered by descending score, never one smaller than the party
    """
    return [zone for zone, _ in rank_zones(guest_count, free_zones, limit)]
