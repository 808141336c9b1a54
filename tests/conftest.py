"""
Shared fixtures: a fixed instant and fake collaborators for the live views
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from routes.realtime.mutation_gateway import MutationResult


NOW = datetime(2026, 7, 14, 13, 0, tzinfo=timezone.utc)


def minutes_ago(minutes: int) -> datetime:
    return NOW - timedelta(minutes=minutes)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def gateway():
    """Mutation gateway that accepts every write"""
    fake = MagicMock()
    fake.update.return_value = MutationResult(success=True)
    fake.create.return_value = MutationResult(success=True)
    fake.delete.return_value = MutationResult(success=True)
    return fake


@pytest.fixture
def sample_orders():
    return [
        {"id": "order-new-12", "table_number": "C7", "status": "new", "items": [{"name": "Mojito", "qty": 2}], "created_at": minutes_ago(12), "total_amount": 24.0},
        {"id": "order-prep-18", "table_number": "C1", "status": "preparing", "items": [{"name": "Grilled fish", "qty": 1}], "created_at": minutes_ago(18), "total_amount": 32.0},
        {"id": "order-ready-5", "table_number": "VIP3", "status": "ready", "items": [], "created_at": minutes_ago(5), "total_amount": 80.0},
        {"id": "order-ready-7", "table_number": "M2", "status": "ready", "items": [], "created_at": minutes_ago(7), "total_amount": 12.0},
        {"id": "order-cancelled", "table_number": "P1", "status": "cancelled", "items": [], "created_at": minutes_ago(30), "total_amount": 0.0},
    ]


@pytest.fixture
def sample_zones():
    return [
        {"id": "C1", "type": "standard-cabin", "label": "Cabin 1", "capacity": 6, "status": "occupied", "occupied_since": minutes_ago(95)},
        {"id": "C2", "type": "standard-cabin", "label": "Cabin 2", "capacity": 6, "status": "free"},
        {"id": "C7", "type": "standard-cabin", "label": "Cabin 7", "capacity": 6, "status": "ordering", "occupied_since": minutes_ago(30),
         "order": {"items": 3, "total": 95, "status": "new", "created_at": minutes_ago(18)}},
        {"id": "VIP1", "type": "vip-cabin", "label": "VIP 1", "capacity": 10, "status": "waiting",
         "reservation": {"name": "VIP Event", "time": "13:10", "guest_count": 8}},
        {"id": "VIP2", "type": "vip-cabin", "label": "VIP 2", "capacity": 10, "status": "free"},
        {"id": "P2", "type": "sunshade", "label": "Sunshade 2", "capacity": 4, "status": "free"},
        {"id": "P4", "type": "sunshade", "label": "Sunshade 4", "capacity": 4, "status": "waiting",
         "reservation": {"name": "Family", "time": "12:55", "guest_count": 4}},
        {"id": "M2", "type": "sea-hut", "label": "Sea hut 2", "capacity": 2, "status": "free"},
    ]
