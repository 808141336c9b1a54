"""
Time-derived alert rules for the live views.

Every function here is pure: the current instant is always passed in as
``now`` and nothing is cached between calls. Records may be pydantic models
or raw documents from the database; missing or malformed timestamps make the
corresponding flag False instead of raising.
"""
from datetime import datetime, time, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo
import logging

from pydantic import BaseModel

from configurations.config import settings

logger = logging.getLogger(__name__)


class AlertPolicy(BaseModel):
    order_new_delay_minutes: int = settings.ORDER_NEW_DELAY_MINUTES
    order_preparing_delay_minutes: int = settings.ORDER_PREPARING_DELAY_MINUTES
    order_urgent_minutes: int = settings.ORDER_URGENT_MINUTES
    reservation_imminent_minutes: int = settings.RESERVATION_IMMINENT_MINUTES
    long_occupation_minutes: int = settings.LONG_OCCUPATION_MINUTES

DEFAULT_POLICY = AlertPolicy()


class DerivedAlertState(BaseModel):
    urgent: bool = False
    delayed: bool = False
    imminent: bool = False
    late: bool = False
    long_occupation: bool = False


def club_now() -> datetime:
    """Wall-clock time at the club; reservation times are local HH:MM"""
    return datetime.now(ZoneInfo(settings.CLUB_TIMEZONE))


def _field(record: Any, name: str) -> Any:
    if record is None:
        return None
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def _status(record: Any) -> Optional[str]:
    status = _field(record, "status")
    # str enums compare equal to their value, plain strings pass through
    return getattr(status, "value", status)


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Ignoring malformed timestamp {value!r}")
    return None


def _align(moment: datetime, now: datetime) -> datetime:
    """Naive datetimes coming from Mongo are UTC"""
    if moment.tzinfo is None and now.tzinfo is not None:
        return moment.replace(tzinfo=timezone.utc)
    if moment.tzinfo is not None and now.tzinfo is None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def elapsed_minutes(since: Any, now: datetime) -> int:
    """Whole minutes between ``since`` and ``now``, clamped at 0 for clock skew."""
    moment = _as_datetime(since)
    if moment is None:
        return 0
    seconds = (now - _align(moment, now)).total_seconds()
    return max(0, int(seconds // 60))


def format_duration(minutes: int) -> str:
    if minutes >= 60:
        hours, rest = divmod(minutes, 60)
        return f"{hours}h{rest}" if rest > 0 else f"{hours}h"
    return f"{minutes}m"


def is_order_delayed(order: Any, now: datetime, policy: AlertPolicy = DEFAULT_POLICY) -> bool:
    created_at = _as_datetime(_field(order, "created_at"))
    if created_at is None:
        return False
    minutes = elapsed_minutes(created_at, now)
    status = _status(order)
    if status == "new":
        return minutes >= policy.order_new_delay_minutes
    if status == "preparing":
        return minutes >= policy.order_preparing_delay_minutes
    return False


def is_order_urgent(order: Any, now: datetime, policy: AlertPolicy = DEFAULT_POLICY) -> bool:
    created_at = _as_datetime(_field(order, "created_at"))
    if created_at is None:
        return False
    return (
        elapsed_minutes(created_at, now) >= policy.order_urgent_minutes
        and _status(order) in ("new", "preparing")
    )


def order_time_level(minutes: int, status: Any, policy: AlertPolicy = DEFAULT_POLICY) -> str:
    """Colour bucket of the elapsed-time badge on the order board"""
    status = getattr(status, "value", status)
    if status in ("served", "paid", "cancelled"):
        return "inactive"
    if minutes >= policy.order_preparing_delay_minutes:
        return "critical"
    if minutes >= policy.order_new_delay_minutes:
        return "warning"
    return "ok"


def _parse_clock(value: Any) -> Optional[time]:
    if not isinstance(value, str):
        return None
    try:
        hours, minutes = (int(part) for part in value.split(":")[:2])
        return time(hours, minutes)
    except ValueError:
        logger.warning(f"Ignoring malformed reservation time {value!r}")
        return None


def reservation_instant(reservation: Any, now: datetime) -> Optional[datetime]:
    """
    Combine the reservation's HH:MM with its calendar day.

    Reservations without a day of their own are read as today's, so the
    late/imminent flags for those are only meaningful on today's view.
    """
    clock = _parse_clock(_field(reservation, "time"))
    if clock is None:
        return None
    day = _field(reservation, "reservation_date")
    if isinstance(day, datetime):
        day = day.date()
    if day is None:
        day = now.date()
    return datetime.combine(day, clock, tzinfo=now.tzinfo)


def is_reservation_imminent(reservation: Any, now: datetime, policy: AlertPolicy = DEFAULT_POLICY) -> bool:
    instant = reservation_instant(reservation, now)
    if instant is None:
        return False
    diff_minutes = (instant - now).total_seconds() / 60
    return 0 < diff_minutes <= policy.reservation_imminent_minutes


def is_reservation_late(reservation: Any, now: datetime) -> bool:
    instant = reservation_instant(reservation, now)
    if instant is None:
        return False
    return now > instant


def is_long_occupation(zone: Any, now: datetime, policy: AlertPolicy = DEFAULT_POLICY) -> bool:
    occupied_since = _as_datetime(_field(zone, "occupied_since"))
    if occupied_since is None:
        return False
    return elapsed_minutes(occupied_since, now) >= policy.long_occupation_minutes


def derive_order_alerts(order: Any, now: datetime, policy: AlertPolicy = DEFAULT_POLICY) -> DerivedAlertState:
    return DerivedAlertState(
        urgent=is_order_urgent(order, now, policy),
        delayed=is_order_delayed(order, now, policy),
    )


def derive_zone_alerts(zone: Any, now: datetime, policy: AlertPolicy = DEFAULT_POLICY) -> DerivedAlertState:
    """Flags shown on a floor-plan zone: its order, its reservation and its occupation"""
    order = _field(zone, "order")
    reservation = _field(zone, "reservation")
    return DerivedAlertState(
        urgent=is_order_urgent(order, now, policy),
        delayed=is_order_delayed(order, now, policy),
        imminent=is_reservation_imminent(reservation, now, policy),
        late=is_reservation_late(reservation, now),
        long_occupation=is_long_occupation(zone, now, policy),
    )


def service_period(now: datetime) -> str:
    hour = now.hour
    if hour < 9:
        return "before_opening"
    if hour < 12:
        return "morning"
    if hour < 15:
        return "lunch"
    if hour < 19:
        return "afternoon"
    return "closed"


def is_lunch_rush(now: datetime) -> bool:
    """12:30 to 14:30, both ends included"""
    clock = now.hour * 60 + now.minute
    return 12 * 60 + 30 <= clock <= 14 * 60 + 30
