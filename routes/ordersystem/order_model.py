from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from enum import Enum
from datetime import datetime


class OrderStatus(str, Enum):
    NEW = "new"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    PAID = "paid"
    CANCELLED = "cancelled"

class OrderType(str, Enum):
    EXTRAS = "extras"
    LUNCH = "lunch"
    FRUITS = "fruits"
    DRINKS = "drinks"

# Happy path; cancellation is handled separately
NEXT_STATUS = {
    OrderStatus.NEW: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.SERVED,
}

OPEN_STATUSES = (OrderStatus.NEW, OrderStatus.PREPARING, OrderStatus.READY)

FILTER_TABS = ["all", "new", "preparing", "ready", "served"]


class OrderItem(BaseModel):
    name: str
    qty: int = 1
    price: Optional[float] = None

class Order(BaseModel):
    id: str
    table_number: Optional[str] = None  # zone id (C1, VIP2, M3...)
    status: OrderStatus = OrderStatus.NEW
    items: List[OrderItem] = []
    created_at: Optional[datetime] = None
    total_amount: Optional[float] = None
    notes: Optional[str] = None
    order_type: Optional[OrderType] = None
    guest_name: Optional[str] = None
    version: Optional[int] = None

class OrderAlerts(BaseModel):
    urgent: bool = False
    delayed: bool = False

class OrderView(Order):
    elapsed_minutes: int = 0
    elapsed_label: str = "0m"
    time_level: str = "ok"
    alerts: OrderAlerts = Field(default_factory=OrderAlerts)
    mutation_state: Optional[str] = None

class OrderKPIs(BaseModel):
    total: int = 0
    new: int = 0
    preparing: int = 0
    ready: int = 0
    urgent: int = 0

class OrderBoardResponse(BaseModel):
    status_filter: str = "all"
    urgent_orders: List[OrderView] = []
    normal_orders: List[OrderView] = []
    kpis: OrderKPIs = Field(default_factory=OrderKPIs)
    connected: bool = False
    last_update: Optional[datetime] = None
    service_period: str
    lunch_rush: bool = False
    incidents: List[Dict[str, Any]] = []

class ServeReadyResponse(BaseModel):
    served: int
    failures: int
