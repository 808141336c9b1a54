from datetime import datetime
from typing import Callable, Dict, List, Optional
import logging

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from pymongo.database import Database

from routes.floor_plan.floor_plan_model import (
    Zone, ZoneType, ZoneStatus, ZoneView, ZoneAlerts, FloorPlanKPIs,
    FloorPlanResponse, ZoneSuggestion, OCCUPIED_STATUSES,
)
from routes.monitoring.alert_rules import (
    AlertPolicy, DEFAULT_POLICY, club_now, derive_zone_alerts,
    elapsed_minutes, format_duration,
)
from routes.monitoring.zone_suggestions import rank_zones
from routes.realtime.incident_log import IncidentLog
from routes.realtime.live_collection import LiveCollection
from routes.realtime.mutation_gateway import MutationGateway, MutationResult

logger = logging.getLogger(__name__)


class FloorPlanService:
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
        self.zones = LiveCollection("zones", self.fetch_zones, self.incidents, clock)

    def fetch_zones(self) -> List[Dict]:
        """Zones in floor-plan order"""
        return list(self.db.zones.find({}, {"_id": 0}).sort("position", 1))

    async def refresh(self) -> bool:
        return await self.zones.fetch_all()

    def current_zones(self) -> List[Zone]:
        zones = []
        for document in self.zones.records:
            try:
                zones.append(Zone(**document))
            except ValidationError as e:
                logger.warning(f"Skipping malformed zone {document.get('id')}: {str(e)}")
        return zones

    async def update_zone_status(self, zone_id: str, status: ZoneStatus, now: Optional[datetime] = None) -> MutationResult:
        """
        Change a zone's status.

        The zone's reservation and order are cleared. occupied_since is
        stamped when a free or waiting zone becomes occupied or ordering,
        kept while it moves between those two, and cleared otherwise.
        """
        zone = self.zones.get(zone_id)
        if zone is None:
            raise ValueError(f"Zone with ID {zone_id} not found")

        now = now or self.clock()
        if status not in OCCUPIED_STATUSES:
            occupied_since = None
        elif zone.get("status") in [s.value for s in OCCUPIED_STATUSES] and zone.get("occupied_since") is not None:
            # occupied <-> ordering keeps the party's arrival time
            occupied_since = zone["occupied_since"]
        else:
            occupied_since = now
        changes = {
            "status": status.value,
            "reservation": None,
            "order": None,
            "occupied_since": occupied_since,
        }
        return await self.zones.apply_optimistic(
            zone_id,
            changes,
            lambda: run_in_threadpool(self.gateway.update, "zones", zone_id, changes),
            failure_message=f"Failed to update zone {zone_id}",
        )

    def zone_view(self, zone: Zone, now: datetime) -> ZoneView:
        alerts = derive_zone_alerts(zone, now, self.policy)
        occupied = zone.status in OCCUPIED_STATUSES and zone.occupied_since is not None
        minutes = elapsed_minutes(zone.occupied_since, now) if occupied else 0
        return ZoneView(
            **zone.model_dump(),
            occupation_minutes=minutes,
            occupation_label=format_duration(minutes) if occupied else None,
            alerts=ZoneAlerts(
                delayed=alerts.delayed,
                imminent=alerts.imminent,
                late=alerts.late,
                long_occupation=alerts.long_occupation,
            ),
        )

    def kpis(self, zones: List[Zone], now: datetime) -> FloorPlanKPIs:
        alerts = [derive_zone_alerts(zone, now, self.policy) for zone in zones]
        return FloorPlanKPIs(
            occupied=sum(1 for zone in zones if zone.status in OCCUPIED_STATUSES),
            free=sum(1 for zone in zones if zone.status == ZoneStatus.FREE),
            reserved=sum(1 for zone in zones if zone.status == ZoneStatus.WAITING),
            orders_delayed=sum(1 for state in alerts if state.delayed),
            arriving_imminently=sum(1 for state in alerts if state.imminent),
            late_reservations=sum(1 for state in alerts if state.late),
        )

    def counts_by_type(self, zones: List[Zone]) -> Dict[str, int]:
        counts = {zone_type.value: 0 for zone_type in ZoneType}
        for zone in zones:
            counts[zone.type.value] += 1
        return counts

    def suggestions(self, guest_count: int) -> List[ZoneSuggestion]:
        if guest_count < 1:
            raise ValueError("Guest count must be positive")
        free_zones = [zone for zone in self.current_zones() if zone.status == ZoneStatus.FREE]
        return [ZoneSuggestion(zone=zone, score=score) for zone, score in rank_zones(guest_count, free_zones)]

    def floor_snapshot(self, now: Optional[datetime] = None) -> FloorPlanResponse:
        now = now or self.clock()
        zones = self.current_zones()
        return FloorPlanResponse(
            zones=[self.zone_view(zone, now) for zone in zones],
            kpis=self.kpis(zones, now),
            counts_by_type=self.counts_by_type(zones),
            connected=self.zones.connected,
            last_update=self.zones.last_update,
        )
