# web/webhook_routes.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from services.sync_log import get_logger
from web.deps import get_services


router = APIRouter()
logger = get_logger("webhook")


@router.post("/api/webhooks/microsoft")
async def microsoft_webhook(request: Request, validationToken: Optional[str] = None):
    receiver = get_services(request).webhook
    if validationToken is not None:
        return PlainTextResponse(receiver.validation_response(validationToken))

    # Graph retries aggressively on anything but 2xx, so failures are only logged.
    try:
        payload = await request.json()
        applied = await run_in_threadpool(receiver.handle_notifications, payload)
    except Exception as exc:
        logger.exception("Webhook processing failed: %s", exc)
        return JSONResponse({"success": False, "error": str(exc)})
    return {"success": True, "applied": applied}
