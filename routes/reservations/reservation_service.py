from pymongo.database import Database
from pydantic import ValidationError
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional
from collections import defaultdict
import logging

from configurations.config import settings
from routes.monitoring.alert_rules import club_now
from routes.reservations.reservation_model import (
    Reservation, ReservationStatus, ArrivalStatus, ARRIVAL_ORDER,
    ReservationDaySummary, ReservationConflict, TomorrowReservations,
)
from routes.reservations.summary_cache import CacheManager, summary_key

logger = logging.getLogger(__name__)

CABIN_TYPES = ("standard-cabin", "vip-cabin")


def find_conflicts(reservations: Iterable[Reservation], capacity: int = settings.DAILY_GUEST_CAPACITY) -> List[ReservationConflict]:
    """Per day: total guests above capacity, and the same email booked twice"""
    by_date: Dict[date, List[Reservation]] = defaultdict(list)
    for reservation in reservations:
        by_date[reservation.reservation_date].append(reservation)

    conflicts = []
    for day in sorted(by_date):
        day_reservations = by_date[day]
        total_guests = sum(r.guest_count for r in day_reservations)
        if total_guests > capacity:
            conflicts.append(ReservationConflict(
                type="capacity",
                message="Capacity exceeded",
                reservation_date=day,
                details=f"{total_guests}/{capacity} guests",
            ))

        seen = set()
        duplicates = []
        for r in day_reservations:
            if not r.guest_email:
                continue
            email = r.guest_email.lower()
            if email in seen and email not in duplicates:
                duplicates.append(email)
            seen.add(email)
        if duplicates:
            conflicts.append(ReservationConflict(
                type="duplicate",
                message="Double booking detected",
                reservation_date=day,
                details=f"Email: {duplicates[0]}",
            ))
    return conflicts


class ReservationService:
    def __init__(self, db: Database, cache: Optional[CacheManager] = None):
        """Initialize the reservation service with database connection"""
        self.db = db
        self.cache = cache if cache is not None else CacheManager()

    def _parse_all(self, documents) -> List[Reservation]:
        reservations = []
        for document in documents:
            document.pop("_id", None)
            try:
                reservations.append(Reservation(**document))
            except ValidationError as e:
                logger.warning(f"Skipping malformed reservation {document.get('id')}: {str(e)}")
        return reservations

    def get_reservation(self, reservation_id: str) -> Reservation:
        document = self.db.reservations.find_one({"id": reservation_id}, {"_id": 0})
        if not document:
            raise ValueError(f"Reservation with ID {reservation_id} not found")
        return Reservation(**document)

    def list_for_date(self, day: date, status: str = "all", search: Optional[str] = None) -> List[Reservation]:
        """Reservations of a day, waiting guests first, then arrived, then departed"""
        query = {"reservation_date": day.isoformat()}
        if status != "all":
            query["status"] = ReservationStatus(status).value

        reservations = self._parse_all(self.db.reservations.find(query))

        if search:
            needle = search.lower()
            reservations = [
                r for r in reservations
                if needle in r.guest_name.lower()
                or needle in (r.guest_email or "").lower()
                or needle in (r.guest_phone or "")
            ]

        return sorted(reservations, key=lambda r: (ARRIVAL_ORDER[r.arrival_status], r.time or ""))

    def mark_arrived(self, reservation_id: str, now: Optional[datetime] = None) -> Reservation:
        """Guest's boat has landed: waiting -> arrived, only on the reservation day"""
        now = now or club_now()
        reservation = self.get_reservation(reservation_id)

        if reservation.status != ReservationStatus.CONFIRMED:
            raise ValueError(f"Reservation {reservation_id} is {reservation.status.value}, only confirmed guests can arrive")
        if reservation.arrival_status != ArrivalStatus.WAITING:
            raise ValueError(f"Reservation {reservation_id} is already {reservation.arrival_status.value}")
        if reservation.reservation_date != now.date():
            raise ValueError(f"Reservation {reservation_id} is not for today")

        arrival_time = now.strftime("%H:%M")
        result = self.db.reservations.update_one(
            {
                "id": reservation_id,
                "status": ReservationStatus.CONFIRMED.value,
                "arrival_status": ArrivalStatus.WAITING.value,
            },
            {"$set": {
                "arrival_status": ArrivalStatus.ARRIVED.value,
                "arrival_time": arrival_time,
                "updated_at": now,
            }}
        )
        if result.matched_count == 0:
            raise ValueError(f"Reservation {reservation_id} changed while marking arrival, reload and retry")
        self.cache.delete(summary_key(reservation.reservation_date))
        return reservation.model_copy(update={"arrival_status": ArrivalStatus.ARRIVED, "arrival_time": arrival_time})

    def mark_departed(self, reservation_id: str, now: Optional[datetime] = None) -> Reservation:
        """arrived -> departed, which also completes the reservation"""
        now = now or club_now()
        reservation = self.get_reservation(reservation_id)

        if reservation.arrival_status != ArrivalStatus.ARRIVED:
            raise ValueError(f"Reservation {reservation_id} has not arrived (currently {reservation.arrival_status.value})")

        result = self.db.reservations.update_one(
            {"id": reservation_id, "arrival_status": ArrivalStatus.ARRIVED.value},
            {"$set": {
                "arrival_status": ArrivalStatus.DEPARTED.value,
                "status": ReservationStatus.COMPLETED.value,
                "updated_at": now,
            }}
        )
        if result.matched_count == 0:
            raise ValueError(f"Reservation {reservation_id} changed while marking departure, reload and retry")
        self.cache.delete(summary_key(reservation.reservation_date))
        return reservation.model_copy(update={
            "arrival_status": ArrivalStatus.DEPARTED,
            "status": ReservationStatus.COMPLETED,
        })

    def day_summary(self, day: date) -> ReservationDaySummary:
        cached = self.cache.get(summary_key(day))
        if cached is not None:
            return ReservationDaySummary(**cached)

        reservations = [
            r for r in self._parse_all(self.db.reservations.find({"reservation_date": day.isoformat()}))
            if r.status != ReservationStatus.CANCELLED
        ]
        summary = ReservationDaySummary(
            reservation_date=day,
            total=len(reservations),
            waiting=sum(1 for r in reservations if r.arrival_status == ArrivalStatus.WAITING and r.status == ReservationStatus.CONFIRMED),
            arrived=sum(1 for r in reservations if r.arrival_status == ArrivalStatus.ARRIVED),
            pending=sum(1 for r in reservations if r.status == ReservationStatus.PENDING),
            guests=sum(r.guest_count for r in reservations),
            cabins=sum(1 for r in reservations if r.zone_type in CABIN_TYPES),
            sea_huts=sum(1 for r in reservations if r.zone_type == "sea-hut"),
            sunshades=sum(1 for r in reservations if r.zone_type == "sunshade"),
        )
        self.cache.set(summary_key(day), summary.model_dump(mode="json"))
        return summary

    def detect_conflicts(self, today: Optional[date] = None) -> List[ReservationConflict]:
        today = today or club_now().date()
        end_date = today + timedelta(days=settings.CONFLICT_WINDOW_DAYS)
        documents = self.db.reservations.find({
            "reservation_date": {"$gte": today.isoformat(), "$lte": end_date.isoformat()},
            "status": {"$in": [ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value]},
        })
        return find_conflicts(self._parse_all(documents))

    def tomorrow_reservations(self, today: Optional[date] = None) -> TomorrowReservations:
        today = today or club_now().date()
        tomorrow = today + timedelta(days=1)
        documents = self.db.reservations.find({
            "reservation_date": tomorrow.isoformat(),
            "status": ReservationStatus.CONFIRMED.value,
        })
        return TomorrowReservations(reservation_date=tomorrow, reservations=self._parse_all(documents))
