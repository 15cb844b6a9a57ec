from fastapi import APIRouter

from meteo.api.routes import history, ingest, live

api_router = APIRouter(prefix="/api")
api_router.include_router(history.router, tags=["history"])
api_router.include_router(live.router, tags=["live"])
api_router.include_router(ingest.router, tags=["ingest"])

ws_router = APIRouter()
ws_router.include_router(live.ws_router)
