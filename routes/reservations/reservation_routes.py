from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database
from datetime import date
from typing import List, Optional
import logging

from configurations.config import get_db
from routes.reservations.reservation_model import (
    Reservation, ReservationDaySummary, ReservationConflict, TomorrowReservations,
)
from routes.reservations.reservation_service import ReservationService

router = APIRouter()


def get_reservation_service(db: Database = Depends(get_db)) -> ReservationService:
    return ReservationService(db)


@router.get("/", response_model=List[Reservation])
async def list_reservations(
    day: date = Query(..., alias="date", description="Reservation day (YYYY-MM-DD)"),
    status: str = Query("all"),
    search: Optional[str] = None,
    service: ReservationService = Depends(get_reservation_service)
):
    """Reservations of a day, waiting guests first"""
    try:
        return service.list_for_date(day, status=status, search=search)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logging.error(f"Error listing reservations: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.get("/summary", response_model=ReservationDaySummary)
async def get_day_summary(
    day: date = Query(..., alias="date"),
    service: ReservationService = Depends(get_reservation_service)
):
    try:
        return service.day_summary(day)
    except Exception as e:
        logging.error(f"Error building reservation summary: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.get("/conflicts", response_model=List[ReservationConflict])
async def get_conflicts(service: ReservationService = Depends(get_reservation_service)):
    """Overbooked days and double bookings over the coming weeks"""
    try:
        return service.detect_conflicts()
    except Exception as e:
        logging.error(f"Error detecting conflicts: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.get("/tomorrow", response_model=TomorrowReservations)
async def get_tomorrow(service: ReservationService = Depends(get_reservation_service)):
    try:
        return service.tomorrow_reservations()
    except Exception as e:
        logging.error(f"Error getting tomorrow's reservations: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.post("/{reservation_id}/arrive", response_model=Reservation)
async def mark_arrived(
    reservation_id: str,
    service: ReservationService = Depends(get_reservation_service)
):
    try:
        return service.mark_arrived(reservation_id)
    except ValueError as e:
        status_code = 404 if "not found" in str(e) else 400
        raise HTTPException(status_code=status_code, detail=str(e))
    except Exception as e:
        logging.error(f"Error marking arrival: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.post("/{reservation_id}/depart", response_model=Reservation)
async def mark_departed(
    reservation_id: str,
    service: ReservationService = Depends(get_reservation_service)
):
    try:
        return service.mark_departed(reservation_id)
    except ValueError as e:
        status_code = 404 if "not found" in str(e) else 400
        raise HTTPException(status_code=status_code, detail=str(e))
    except Exception as e:
        logging.error(f"Error marking departure: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")
