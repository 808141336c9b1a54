from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
import logging
from configurations.config import settings, get_async_db
from routes.ordersystem import order_routes
from routes.floor_plan import floor_plan
from routes.reservations import reservation_routes


logging.basicConfig(level=settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async_db = get_async_db()
    try:
        await order_routes.start_live_updates(async_db)
        await floor_plan.start_live_updates(async_db)
        logging.info("Live order board and floor plan started")
    except Exception as e:
        logging.error(f"Error starting live updates: {str(e)}")
    yield
    await order_routes.stop_live_updates()
    await floor_plan.stop_live_updates()


app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(order_routes.router, prefix="/orders", tags=["ORDER_BOARD"])
app.include_router(floor_plan.router, prefix="/floor_plan", tags=["FLOOR_PLAN"])
app.include_router(reservation_routes.router, prefix="/reservations", tags=["RESERVATIONS"])


app.websocket("/ws/orders/{client_id}")(order_routes.websocket_endpoint)
app.websocket("/ws/floor_plan/{client_id}")(floor_plan.websocket_endpoint)


# for tablet
if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
