import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import pymongo.errors

from .database import connect_db, close_db
from .redis_manager import redis_manager

from .routers import cart, geo, orders, websocket

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    connect_db()
    try:
        await redis_manager.connect()
    except Exception as e:
        logger.error("Redis connection failed: %s", e)
    yield
    # Shutdown
    close_db()
    await redis_manager.close()


app = FastAPI(title="Storefront", lifespan=lifespan)


# ============ Exception Handlers ============

@app.exception_handler(pymongo.errors.ServerSelectionTimeoutError)
async def mongodb_timeout_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=503, content={"detail": "Database unavailable"})


# ============ Include Routers ============

app.include_router(cart.router)
app.include_router(geo.router)
app.include_router(orders.router)
app.include_router(websocket.router)


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run("storefront.main:app", host="0.0.0.0", port=8000, reload=True)
