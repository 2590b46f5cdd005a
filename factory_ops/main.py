# factory_ops/main.py

import logging

from fastapi import FastAPI

from .config import settings
from .database import create_db_and_tables

from .api import orders as orders_api
from .api import rules as rules_api


logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Factory Ops - Scheduling & Automation")

# Include API routers
app.include_router(orders_api.router)
app.include_router(rules_api.router)


@app.on_event("startup")
async def startup_event():
    create_db_and_tables()

    if settings.seed_demo_data:
        from .seed_data import seed_demo_data
        seed_demo_data()

    if settings.automation_autostart:
        from .services.rule_runner import start_runner
        logger.info("Automation runner autostart: %s", start_runner())


@app.on_event("shutdown")
async def shutdown_event():
    from .services.rule_runner import stop_runner
    stop_runner()


@app.get("/")
def root():
    return {"service": "factory-ops", "docs": "/docs"}
