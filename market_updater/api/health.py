# market_updater/api/health.py
from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

logger = logging.getLogger("market_updater.health")

router = APIRouter(tags=["health"])


@router.get("/", response_class=PlainTextResponse)
async def health() -> str:
    # liveness only: no checks, always OK
    logger.debug("response returned")
    return "OK"
