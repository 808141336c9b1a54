from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from datetime import datetime
from typing import Dict, List, Optional
import asyncio
import json
import logging

from configurations.config import db
from routes.ordersystem.order_board import OrderBoardService
from routes.ordersystem.order_model import OrderBoardResponse, ServeReadyResponse
from routes.realtime.change_feed import MongoChangeFeed
from routes.realtime.connection_manager import ConnectionManager
from routes.realtime.mutation_gateway import MutationResult
from routes.realtime.ticker import RecomputeTicker

router = APIRouter()

manager = ConnectionManager()

_board: Optional[OrderBoardService] = None
_ticker: Optional[RecomputeTicker] = None
_feed: Optional[MongoChangeFeed] = None
_pending_broadcasts = set()


def get_order_board() -> OrderBoardService:
    global _board
    if _board is None:
        _board = OrderBoardService(db)
        _board.orders.add_listener(_on_orders_changed)
    return _board


async def broadcast_board(now: Optional[datetime] = None):
    if manager.connection_count == 0:
        return
    snapshot = get_order_board().board_snapshot(now)
    await manager.broadcast({"type": "board", "data": snapshot.model_dump()})


def _on_orders_changed(_collection):
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    task = loop.create_task(broadcast_board())
    _pending_broadcasts.add(task)
    task.add_done_callback(_pending_broadcasts.discard)


async def start_live_updates(async_db):
    """Initial load, change stream and recompute ticker for the order board"""
    global _ticker, _feed
    board = get_order_board()
    await board.refresh()
    _feed = MongoChangeFeed(async_db.orders, board.orders)
    _feed.start()
    _ticker = RecomputeTicker(broadcast_board)
    _ticker.start()


async def stop_live_updates():
    global _ticker, _feed
    if _ticker is not None:
        await _ticker.stop()
        _ticker = None
    if _feed is not None:
        await _feed.stop()
        _feed = None


@router.get("/board", response_model=OrderBoardResponse)
async def get_board(
    status: str = Query("all", description="all, new, preparing, ready or served"),
    board: OrderBoardService = Depends(get_order_board)
):
    """Current order board with urgency split and KPIs"""
    try:
        if not board.orders.loaded:
            await board.refresh()
        return board.board_snapshot(status_filter=status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logging.error(f"Error building order board: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.post("/refresh", response_model=OrderBoardResponse)
async def refresh_board(board: OrderBoardService = Depends(get_order_board)):
    """Manual refresh, discards local state and reloads from the database"""
    if not await board.refresh():
        raise HTTPException(status_code=503, detail="Could not reload orders")
    return board.board_snapshot()

@router.post("/{order_id}/advance", response_model=MutationResult)
async def advance_order(
    order_id: str,
    board: OrderBoardService = Depends(get_order_board)
):
    """Move the order to its next status"""
    try:
        result = await board.advance_status(order_id)
    except ValueError as e:
        status_code = 404 if "not found" in str(e) else 400
        raise HTTPException(status_code=status_code, detail=str(e))
    except Exception as e:
        logging.error(f"Error advancing order {order_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

    if not result.success:
        raise HTTPException(status_code=502, detail=result.error or "Order update failed")
    return result

@router.post("/{order_id}/cancel", response_model=MutationResult)
async def cancel_order(
    order_id: str,
    board: OrderBoardService = Depends(get_order_board)
):
    try:
        result = await board.cancel_order(order_id)
    except ValueError as e:
        status_code = 404 if "not found" in str(e) else 400
        raise HTTPException(status_code=status_code, detail=str(e))
    except Exception as e:
        logging.error(f"Error cancelling order {order_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

    if not result.success:
        raise HTTPException(status_code=502, detail=result.error or "Order cancellation failed")
    return result

@router.post("/serve-ready", response_model=ServeReadyResponse)
async def serve_ready_orders(board: OrderBoardService = Depends(get_order_board)):
    """Mark every ready order as served"""
    try:
        return await board.serve_all_ready()
    except Exception as e:
        logging.error(f"Error serving ready orders: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.get("/incidents", response_model=List[Dict])
async def get_incidents(board: OrderBoardService = Depends(get_order_board)):
    return [incident.model_dump() for incident in board.incidents.entries()]

@router.delete("/incidents")
async def clear_incidents(board: OrderBoardService = Depends(get_order_board)):
    board.incidents.clear()
    return {"message": "Incident log cleared"}


async def websocket_endpoint(websocket: WebSocket, client_id: str):
    await manager.connect(websocket, client_id)
    board = get_order_board()

    try:
        await manager.send_personal_message(
            {"type": "initial_data", "data": board.board_snapshot().model_dump()},
            websocket
        )

        while True:
            data = await websocket.receive_text()
            message = json.loads(data)

            if message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})

            elif message.get("type") == "request_refresh":
                await board.refresh()
                await manager.send_personal_message(
                    {"type": "refresh_data", "data": board.board_snapshot(status_filter=message.get("status", "all")).model_dump()},
                    websocket
                )

    except WebSocketDisconnect:
        manager.disconnect(websocket, client_id)
    except Exception as e:
        logging.error(f"WebSocket error: {str(e)}")
        manager.disconnect(websocket, client_id)
