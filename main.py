# main.py
import asyncio
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from coap_server import coap_main
from iotdash.config import get_settings
from iotdash.database import db
from iotdash.dependencies import data_service
from iotdash.errors import ServiceError
from iotdash.logging_config import setup_logging
from iotdash.mqtt_bridge import MqttBridge
from iotdash.routes import auth, channels, data

settings = get_settings()
setup_logging(settings.log_level, settings.log_file)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.version,
)

app.include_router(auth.router, prefix="/api/auth")
app.include_router(channels.router, prefix="/api/channels")
app.include_router(data.router, prefix="/api/data", tags=["Data"])

mqtt_bridge: Optional[MqttBridge] = None
coap_task: Optional[asyncio.Task] = None


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


@app.on_event("startup")
async def startup_event():
    logger.info("Application startup")
    await db.connect(settings)

    global mqtt_bridge, coap_task
    if settings.coap_enabled:
        coap_task = asyncio.create_task(coap_main())

    if settings.mqtt_enabled:
        mqtt_bridge = MqttBridge(settings, data_service)
        mqtt_bridge.start(asyncio.get_running_loop())


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown")
    if mqtt_bridge:
        mqtt_bridge.stop()
    if coap_task:
        coap_task.cancel()
    await db.close()


@app.get("/")
def read_root():
    return {"name": settings.app_name, "version": settings.version, "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
