from datetime import date, datetime, timedelta, timezone

import pytest

from routes.floor_plan.floor_plan_model import Zone, ZoneReservation
from routes.monitoring.alert_rules import (
    AlertPolicy, derive_zone_alerts, elapsed_minutes, format_duration,
    is_long_occupation, is_lunch_rush, is_order_delayed, is_order_urgent,
    is_reservation_imminent, is_reservation_late, order_time_level,
    service_period,
)
from routes.ordersystem.order_model import Order


NOW = datetime(2026, 7, 14, 13, 0, tzinfo=timezone.utc)


def order(status, minutes_old):
    return Order(id="o1", status=status, created_at=NOW - timedelta(minutes=minutes_old))


class TestElapsedMinutes:
    def test_floors_partial_minutes(self):
        assert elapsed_minutes(NOW - timedelta(minutes=9, seconds=59), NOW) == 9

    def test_clock_skew_reads_as_zero(self):
        assert elapsed_minutes(NOW + timedelta(minutes=3), NOW) == 0

    def test_missing_timestamp_reads_as_zero(self):
        assert elapsed_minutes(None, NOW) == 0

    def test_naive_mongo_timestamp_is_utc(self):
        naive = (NOW - timedelta(minutes=42)).replace(tzinfo=None)
        assert elapsed_minutes(naive, NOW) == 42

    def test_iso_string(self):
        assert elapsed_minutes("2026-07-14T12:30:00Z", NOW) == 30


@pytest.mark.parametrize("minutes,expected", [
    (0, "0m"),
    (45, "45m"),
    (59, "59m"),
    (60, "1h"),
    (90, "1h30"),
    (95, "1h35"),
    (125, "2h5"),
    (180, "3h"),
])
def test_format_duration(minutes, expected):
    assert format_duration(minutes) == expected


class TestOrderDelay:
    def test_new_order_boundary_is_ten_minutes(self):
        assert is_order_delayed(order("new", 9), NOW) is False
        assert is_order_delayed(order("new", 10), NOW) is True

    def test_preparing_order_boundary_is_twenty_minutes(self):
        assert is_order_delayed(order("preparing", 19), NOW) is False
        assert is_order_delayed(order("preparing", 20), NOW) is True

    @pytest.mark.parametrize("status", ["ready", "served", "paid", "cancelled"])
    def test_other_statuses_are_never_delayed(self, status):
        assert is_order_delayed(order(status, 300), NOW) is False

    def test_order_without_creation_time(self):
        assert is_order_delayed(Order(id="o1", status="new"), NOW) is False
        assert is_order_delayed({"status": "new"}, NOW) is False

    def test_raw_document(self):
        assert is_order_delayed({"status": "new", "created_at": NOW - timedelta(minutes=11)}, NOW) is True

    def test_new_then_preparing_scenario(self):
        created_at = NOW - timedelta(minutes=12)
        new_order = Order(id="o1", status="new", created_at=created_at)
        assert is_order_delayed(new_order, NOW) is True

        preparing = new_order.model_copy(update={"status": "preparing"})
        assert is_order_delayed(preparing, created_at + timedelta(minutes=18)) is False

    def test_thresholds_come_from_policy(self):
        strict = AlertPolicy(order_new_delay_minutes=5)
        assert is_order_delayed(order("new", 6), NOW, strict) is True


class TestOrderUrgency:
    def test_boundary_is_fifteen_minutes(self):
        assert is_order_urgent(order("new", 14), NOW) is False
        assert is_order_urgent(order("new", 15), NOW) is True
        assert is_order_urgent(order("preparing", 15), NOW) is True

    def test_ready_orders_are_not_urgent(self):
        assert is_order_urgent(order("ready", 40), NOW) is False


@pytest.mark.parametrize("minutes,status,level", [
    (3, "new", "ok"),
    (10, "new", "warning"),
    (20, "preparing", "critical"),
    (45, "served", "inactive"),
    (45, "cancelled", "inactive"),
])
def test_order_time_level(minutes, status, level):
    assert order_time_level(minutes, status) == level


class TestReservationTiming:
    def test_reservation_at_now_is_neither_imminent_nor_late(self):
        reservation = ZoneReservation(name="Martin", time="13:00", guest_count=4)
        assert is_reservation_imminent(reservation, NOW) is False
        assert is_reservation_late(reservation, NOW) is False

    def test_imminent_window(self):
        assert is_reservation_imminent(ZoneReservation(name="a", time="13:20", guest_count=2), NOW) is True
        assert is_reservation_imminent(ZoneReservation(name="a", time="13:30", guest_count=2), NOW) is True
        assert is_reservation_imminent(ZoneReservation(name="a", time="13:31", guest_count=2), NOW) is False

    def test_past_time_is_late(self):
        reservation = ZoneReservation(name="Family", time="12:55", guest_count=4)
        assert is_reservation_late(reservation, NOW) is True
        assert is_reservation_imminent(reservation, NOW) is False

    def test_reservation_day_is_respected(self):
        tomorrow = ZoneReservation(name="a", time="09:00", guest_count=2, reservation_date=date(2026, 7, 15))
        assert is_reservation_late(tomorrow, NOW) is False

        yesterday = ZoneReservation(name="a", time="18:00", guest_count=2, reservation_date=date(2026, 7, 13))
        assert is_reservation_late(yesterday, NOW) is True

    @pytest.mark.parametrize("value", ["", "noon", "25:00", "13"])
    def test_malformed_time_never_flags(self, value):
        reservation = {"name": "a", "time": value, "guest_count": 2}
        assert is_reservation_late(reservation, NOW) is False
        assert is_reservation_imminent(reservation, NOW) is False


class TestLongOccupation:
    def test_ninety_minutes_is_long(self):
        zone = Zone(id="C1", type="standard-cabin", capacity=6, status="occupied", occupied_since=NOW - timedelta(minutes=95))
        assert is_long_occupation(zone, NOW) is True

    def test_below_threshold(self):
        zone = Zone(id="C9", type="standard-cabin", capacity=6, status="occupied", occupied_since=NOW - timedelta(minutes=89))
        assert is_long_occupation(zone, NOW) is False

    def test_occupied_without_timestamp(self):
        zone = Zone(id="C5", type="standard-cabin", capacity=6, status="occupied")
        assert is_long_occupation(zone, NOW) is False


def test_zone_alerts_combine_order_reservation_and_occupation():
    zone = Zone(
        id="C7", type="standard-cabin", capacity=6, status="ordering",
        occupied_since=NOW - timedelta(minutes=120),
        order={"items": 3, "total": 95, "status": "new", "created_at": NOW - timedelta(minutes=18)},
    )
    state = derive_zone_alerts(zone, NOW)
    assert state.delayed is True
    assert state.urgent is True
    assert state.long_occupation is True
    assert state.imminent is False
    assert state.late is False


def test_derivation_is_pure():
    zone = Zone(id="VIP1", type="vip-cabin", capacity=10, status="waiting",
                reservation={"name": "VIP Event", "time": "13:10", "guest_count": 8})
    assert derive_zone_alerts(zone, NOW) == derive_zone_alerts(zone, NOW)


@pytest.mark.parametrize("hour,minute,period", [
    (8, 59, "before_opening"),
    (9, 0, "morning"),
    (12, 0, "lunch"),
    (15, 0, "afternoon"),
    (19, 0, "closed"),
])
def test_service_period(hour, minute, period):
    assert service_period(NOW.replace(hour=hour, minute=minute)) == period


def test_lunch_rush_bounds_are_inclusive():
    assert is_lunch_rush(NOW.replace(hour=12, minute=29)) is False
    assert is_lunch_rush(NOW.replace(hour=12, minute=30)) is True
    assert is_lunch_rush(NOW.replace(hour=14, minute=30)) is True
    assert is_lunch_rush(NOW.replace(hour=14, minute=31)) is False


def test_time_level_thresholds_come_from_policy():
    relaxed = AlertPolicy(order_new_delay_minutes=15, order_preparing_delay_minutes=30)
    assert order_time_level(12, "new", relaxed) == "ok"
    assert order_time_level(15, "new", relaxed) == "warning"
    assert order_time_level(25, "preparing", relaxed) == "warning"
    assert order_time_level(30, "preparing", relaxed) == "critical"
