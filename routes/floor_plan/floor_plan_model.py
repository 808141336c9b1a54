from pydantic import BaseModel, Field, PositiveInt
from typing import List, Optional, Dict
from enum import Enum
from datetime import datetime, date


class ZoneType(str, Enum):
    VIP_CABIN = "vip-cabin"
    STANDARD_CABIN = "standard-cabin"
    SUNSHADE = "sunshade"
    SEA_HUT = "sea-hut"

class ZoneStatus(str, Enum):
    FREE = "free"
    WAITING = "waiting"      # reservation expected, boat not arrived yet
    OCCUPIED = "occupied"
    ORDERING = "ordering"

OCCUPIED_STATUSES = (ZoneStatus.OCCUPIED, ZoneStatus.ORDERING)


class ZoneReservation(BaseModel):
    name: str
    time: str  # "HH:MM"
    guest_count: PositiveInt
    reservation_date: Optional[date] = None

class ZoneOrder(BaseModel):
    items: int = 0
    total: float = 0
    status: str = "new"
    created_at: Optional[datetime] = None

class Zone(BaseModel):
    id: str
    type: ZoneType
    label: Optional[str] = None
    capacity: PositiveInt
    status: ZoneStatus = ZoneStatus.FREE
    occupied_since: Optional[datetime] = None
    reservation: Optional[ZoneReservation] = None
    order: Optional[ZoneOrder] = None
    version: Optional[int] = None

class ZoneStatusUpdate(BaseModel):
    status: ZoneStatus

class ZoneAlerts(BaseModel):
    delayed: bool = False
    imminent: bool = False
    late: bool = False
    long_occupation: bool = False

class ZoneView(Zone):
    occupation_minutes: int = 0
    occupation_label: Optional[str] = None
    alerts: ZoneAlerts = Field(default_factory=ZoneAlerts)

class FloorPlanKPIs(BaseModel):
    occupied: int = 0
    free: int = 0
    reserved: int = 0
    orders_delayed: int = 0
    arriving_imminently: int = 0
    late_reservations: int = 0

class FloorPlanResponse(BaseModel):
    zones: List[ZoneView] = []
    kpis: FloorPlanKPIs = Field(default_factory=FloorPlanKPIs)
    counts_by_type: Dict[str, int] = {}
    connected: bool = False
    last_update: Optional[datetime] = None

class ZoneSuggestion(BaseModel):
    zone: Zone
    score: int
