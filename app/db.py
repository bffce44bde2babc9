import os
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from tortoise import Tortoise, connections

from .config import TORTOISE_ORM_CONFIG, settings

log = logging.getLogger("uvicorn")

@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("--- Starting application lifespan ---")
    os.makedirs(settings.upload_dir, exist_ok=True)
    log.info(f"Image directory ready: {settings.upload_dir}")

    try:
        await Tortoise.init(config=TORTOISE_ORM_CONFIG)
        default_conn = connections.get("default")
        await default_conn.execute_query("SELECT 1")
        log.info("--- Tortoise ORM initialization successful ---")
    except Exception as e:
        log.error(f"!!! CRITICAL: Failed during Tortoise ORM initialization or test query: {e}", exc_info=True)
        raise RuntimeError("Database initialization failed") from e

    yield

    log.info("--- Starting application shutdown ---")
    try:
        await connections.close_all()
        log.info("Tortoise connections closed successfully.")
    except Exception as e:
        log.error(f"Error closing Tortoise connections: {e}", exc_info=True)
    log.info("--- Application lifespan ended ---")
