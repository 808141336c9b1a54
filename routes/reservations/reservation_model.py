from pydantic import BaseModel, PositiveInt
from typing import List, Optional, Dict
from enum import Enum
from datetime import datetime, date


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

class ArrivalStatus(str, Enum):
    WAITING = "waiting"
    ARRIVED = "arrived"
    DEPARTED = "departed"

ARRIVAL_ORDER = {
    ArrivalStatus.WAITING: 0,
    ArrivalStatus.ARRIVED: 1,
    ArrivalStatus.DEPARTED: 2,
}

class Reservation(BaseModel):
    id: str
    guest_name: str
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    zone_type: Optional[str] = None
    reservation_date: date
    time: Optional[str] = None  # "HH:MM"
    guest_count: PositiveInt
    status: ReservationStatus = ReservationStatus.PENDING
    arrival_status: ArrivalStatus = ArrivalStatus.WAITING
    arrival_time: Optional[str] = None
    special_requests: Optional[str] = None
    created_at: Optional[datetime] = None

class ReservationDaySummary(BaseModel):
    reservation_date: date
    total: int = 0
    waiting: int = 0
    arrived: int = 0
    pending: int = 0
    guests: int = 0
    cabins: int = 0
    sea_huts: int = 0
    sunshades: int = 0

class ReservationConflict(BaseModel):
    type: str  # capacity | duplicate
    message: str
    reservation_date: Optional[date] = None
    details: Optional[str] = None

class TomorrowReservations(BaseModel):
    reservation_date: date
    reservations: List[Reservation] = []
