from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from datetime import datetime
from typing import List, Optional
import asyncio
import json
import logging

from configurations.config import db
from routes.floor_plan.floor_plan_model import (
    FloorPlanKPIs, FloorPlanResponse, ZoneStatusUpdate, ZoneSuggestion,
)
from routes.floor_plan.floor_plan_service import FloorPlanService
from routes.realtime.change_feed import MongoChangeFeed
from routes.realtime.connection_manager import ConnectionManager
from routes.realtime.mutation_gateway import MutationResult
from routes.realtime.ticker import RecomputeTicker

router = APIRouter()

# WebSocket manager for real-time zone updates
manager = ConnectionManager()

_floor_plan: Optional[FloorPlanService] = None
_ticker: Optional[RecomputeTicker] = None
_feed: Optional[MongoChangeFeed] = None
_pending_broadcasts = set()


def get_floor_plan() -> FloorPlanService:
    global _floor_plan
    if _floor_plan is None:
        _floor_plan = FloorPlanService(db)
        _floor_plan.zones.add_listener(_on_zones_changed)
    return _floor_plan


async def broadcast_floor_plan(now: Optional[datetime] = None):
    if manager.connection_count == 0:
        return
    snapshot = get_floor_plan().floor_snapshot(now)
    await manager.broadcast({"type": "floor_plan", "data": snapshot.model_dump()})


def _on_zones_changed(_collection):
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    task = loop.create_task(broadcast_floor_plan())
    _pending_broadcasts.add(task)
    task.add_done_callback(_pending_broadcasts.discard)


async def start_live_updates(async_db):
    global _ticker, _feed
    floor_plan = get_floor_plan()
    await floor_plan.refresh()
    _feed = MongoChangeFeed(async_db.zones, floor_plan.zones)
    _feed.start()
    _ticker = RecomputeTicker(broadcast_floor_plan)
    _ticker.start()


async def stop_live_updates():
    global _ticker, _feed
    if _ticker is not None:
        await _ticker.stop()
        _ticker = None
    if _feed is not None:
        await _feed.stop()
        _feed = None


async def _ensure_loaded(floor_plan: FloorPlanService):
    if not floor_plan.zones.loaded:
        await floor_plan.refresh()


@router.get("/zones", response_model=FloorPlanResponse)
async def get_zones(floor_plan: FloorPlanService = Depends(get_floor_plan)):
    """All zones with their derived alert flags"""
    try:
        await _ensure_loaded(floor_plan)
        return floor_plan.floor_snapshot()
    except Exception as e:
        logging.error(f"Error getting zones: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.get("/kpis", response_model=FloorPlanKPIs)
async def get_kpis(floor_plan: FloorPlanService = Depends(get_floor_plan)):
    try:
        await _ensure_loaded(floor_plan)
        return floor_plan.kpis(floor_plan.current_zones(), floor_plan.clock())
    except Exception as e:
        logging.error(f"Error getting floor plan KPIs: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.get("/suggestions", response_model=List[ZoneSuggestion])
async def get_suggestions(
    guest_count: int = Query(..., description="Number of guests to seat"),
    floor_plan: FloorPlanService = Depends(get_floor_plan)
):
    """Best free zones for a party, at most five"""
    try:
        await _ensure_loaded(floor_plan)
        return floor_plan.suggestions(guest_count)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logging.error(f"Error suggesting zones: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.put("/zones/{zone_id}/status", response_model=MutationResult)
async def update_zone_status(
    zone_id: str,
    status_update: ZoneStatusUpdate,
    floor_plan: FloorPlanService = Depends(get_floor_plan)
):
    try:
        await _ensure_loaded(floor_plan)
        result = await floor_plan.update_zone_status(zone_id, status_update.status)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logging.error(f"Error updating zone {zone_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

    if not result.success:
        raise HTTPException(status_code=502, detail=result.error or "Zone update failed")
    return result


async def websocket_endpoint(websocket: WebSocket, client_id: str):
    await manager.connect(websocket, client_id)
    floor_plan = get_floor_plan()

    try:
        await manager.send_personal_message(
            {"type": "initial_data", "data": floor_plan.floor_snapshot().model_dump()},
            websocket
        )

        while True:
            data = await websocket.receive_text()
            message = json.loads(data)

            if message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})

            elif message.get("type") == "request_refresh":
                await floor_plan.refresh()
                await manager.send_personal_message(
                    {"type": "refresh_data", "data": floor_plan.floor_snapshot().model_dump()},
                    websocket
                )

            elif message.get("type") == "suggest":
                try:
                    suggestions = floor_plan.suggestions(int(message.get("guest_count", 1)))
                except (TypeError, ValueError) as e:
                    await websocket.send_json({"type": "error", "message": f"Invalid guest count: {str(e)}"})
                    continue
                await manager.send_personal_message(
                    {"type": "suggestions", "data": [suggestion.model_dump() for suggestion in suggestions]},
                    websocket
                )

    except WebSocketDisconnect:
        manager.disconnect(websocket, client_id)
    except Exception as e:
        logging.error(f"WebSocket error: {str(e)}")
        manager.disconnect(websocket, client_id)
