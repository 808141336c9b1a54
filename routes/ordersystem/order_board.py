import asyncio
from datetime import datetime
from typing import Callable, Dict, List, Optional
import logging

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from pymongo.database import Database

from configurations.config import settings
from routes.monitoring.alert_rules import (
    AlertPolicy, DEFAULT_POLICY, club_now, elapsed_minutes, format_duration,
    derive_order_alerts, order_time_level, service_period, is_lunch_rush,
)
from routes.ordersystem.order_model import (
    Order, OrderStatus, OrderView, OrderAlerts, OrderKPIs, OrderBoardResponse,
    ServeReadyResponse, NEXT_STATUS, OPEN_STATUSES, FILTER_TABS,
)
from routes.realtime.incident_log import IncidentLog, IncidentLevel
from routes.realtime.live_collection import LiveCollection
from routes.realtime.mutation_gateway import MutationGateway, MutationResult

logger = logging.getLogger(__name__)


class OrderBoardService:
    """Live order board: the latest orders mirrored in memory plus the staff actions on them"""

    def __init__(
        self,
        db: Database,
        gateway: Optional[MutationGateway] = None,
        incidents: Optional[IncidentLog] = None,
        policy: AlertPolicy = DEFAULT_POLICY,
        clock: Callable[[], datetime] = club_now,
    ):
        self.db = db
        self.gateway = gateway or MutationGateway(db)
        self.incidents = incidents if incidents is not None else IncidentLog()
        self.policy = policy
        self.clock = clock
        self.orders = LiveCollection(
            "orders", self.fetch_orders, self.incidents, clock, max_records=settings.ORDER_FETCH_LIMIT
        )

    def fetch_orders(self) -> List[Dict]:
        cursor = self.db.orders.find({}, {"_id": 0}).sort("created_at", -1).limit(settings.ORDER_FETCH_LIMIT)
        return list(cursor)

    async def refresh(self) -> bool:
        return await self.orders.fetch_all()

    def _get_order(self, order_id: str) -> Dict:
        order = self.orders.get(order_id)
        if order is None:
            raise ValueError(f"Order with ID {order_id} not found")
        return order

    async def _update_status(self, order_id: str, status: OrderStatus, failure_message: str) -> MutationResult:
        return await self.orders.apply_optimistic(
            order_id,
            {"status": status.value},
            lambda: run_in_threadpool(self.gateway.update, "orders", order_id, {"status": status.value}),
            failure_message=failure_message,
        )

    async def advance_status(self, order_id: str) -> MutationResult:
        """Move an order one step along new -> preparing -> ready -> served"""
        order = self._get_order(order_id)
        current = OrderStatus(order.get("status"))
        next_status = NEXT_STATUS.get(current)
        if next_status is None:
            raise ValueError(f"Order {order_id} cannot advance from {current.value}")

        return await self._update_status(order_id, next_status, f"Failed to update order #{order_id[:8]}")

    async def cancel_order(self, order_id: str) -> MutationResult:
        order = self._get_order(order_id)
        current = OrderStatus(order.get("status"))
        if current not in OPEN_STATUSES:
            raise ValueError(f"Order {order_id} is already {current.value}")

        return await self._update_status(order_id, OrderStatus.CANCELLED, f"Failed to cancel order #{order_id[:8]}")

    async def serve_all_ready(self) -> ServeReadyResponse:
        ready_ids = [order["id"] for order in self.orders.records if order.get("status") == OrderStatus.READY.value]
        if not ready_ids:
            return ServeReadyResponse(served=0, failures=0)

        self.orders.patch_local(ready_ids, {"status": OrderStatus.SERVED.value})

        outcomes = await asyncio.gather(
            *(
                run_in_threadpool(self.gateway.update, "orders", order_id, {"status": OrderStatus.SERVED.value})
                for order_id in ready_ids
            ),
            return_exceptions=True,
        )
        results = [
            outcome if isinstance(outcome, MutationResult) else MutationResult(success=False, error=str(outcome))
            for outcome in outcomes
        ]

        failed = await self.orders.settle(ready_ids, results)
        if failed:
            self.incidents.add(f"{len(failed)} order(s) could not be served", IncidentLevel.WARNING)
        else:
            self.incidents.add(f"{len(ready_ids)} order(s) served", IncidentLevel.INFO)
        return ServeReadyResponse(served=len(ready_ids) - len(failed), failures=len(failed))

    def _parse(self, document: Dict) -> Optional[Order]:
        try:
            return Order(**document)
        except ValidationError as e:
            logger.warning(f"Skipping malformed order {document.get('id')}: {str(e)}")
            return None

    def order_view(self, order: Order, now: datetime) -> OrderView:
        minutes = elapsed_minutes(order.created_at, now)
        alerts = derive_order_alerts(order, now, self.policy)
        return OrderView(
            **order.model_dump(),
            elapsed_minutes=minutes,
            elapsed_label=format_duration(minutes),
            time_level=order_time_level(minutes, order.status, self.policy),
            alerts=OrderAlerts(urgent=alerts.urgent, delayed=alerts.delayed),
            mutation_state=getattr(self.orders.mutation_state(order.id), "value", None),
        )

    def kpis(self, orders: List[Order], now: datetime) -> OrderKPIs:
        return OrderKPIs(
            total=sum(1 for order in orders if order.status in OPEN_STATUSES),
            new=sum(1 for order in orders if order.status == OrderStatus.NEW),
            preparing=sum(1 for order in orders if order.status == OrderStatus.PREPARING),
            ready=sum(1 for order in orders if order.status == OrderStatus.READY),
            urgent=sum(1 for order in orders if derive_order_alerts(order, now, self.policy).urgent),
        )

    def board_snapshot(self, now: Optional[datetime] = None, status_filter: str = "all") -> OrderBoardResponse:
        if status_filter not in FILTER_TABS:
            raise ValueError(f"Unknown order filter {status_filter}")
        now = now or self.clock()

        orders = [order for order in (self._parse(doc) for doc in self.orders.records) if order is not None]
        if status_filter == "all":
            visible = [order for order in orders if order.status != OrderStatus.CANCELLED]
        else:
            visible = [order for order in orders if order.status.value == status_filter]

        views = [self.order_view(order, now) for order in visible]
        return OrderBoardResponse(
            status_filter=status_filter,
            urgent_orders=[view for view in views if view.alerts.urgent],
            normal_orders=[view for view in views if not view.alerts.urgent],
            kpis=self.kpis(orders, now),
            connected=self.orders.connected,
            last_update=self.orders.last_update,
            service_period=service_period(now),
            lunch_rush=is_lunch_rush(now),
            incidents=[incident.model_dump() for incident in self.incidents.entries()],
        )
