from __future__ import annotations

import time
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from calendar_bot.config.settings import ADMIN_AUTH_TOKEN, DISPATCH_SHARED_SECRET
from calendar_bot.core.webhook import handle_webhook
from calendar_bot.datamodel import ReminderStatus
from calendar_bot.errors import (
    DispatchError,
    ExtractionError,
    InvalidSignatureError,
    MalformedRequestError,
    ScheduleError,
)
from calendar_bot.logger import logger
from calendar_bot.metrics import runtime_metrics
from calendar_bot.runtime import Collaborators
from calendar_bot.utils import utc_to_local_min

from .auth import require_admin_auth, require_dispatch_auth
from .schemas import ReminderEventIn, RuntimeControl

__all__ = ["create_app"]


def _record_to_dict(record) -> dict[str, Any]:
    return {
        "reminder_id": record.reminder_id,
        "subject_id": record.subject_id,
        "scheduled_at_utc": record.scheduled_at_utc.isoformat(),
        "scheduled_at_local": utc_to_local_min(record.scheduled_at_utc),
        "task": record.task_text,
        "status": record.status.value,
        "created_at_utc": record.created_at.isoformat(),
        "dispatch_handle_id": record.dispatch_handle_id,
    }


def create_app(
    collaborators: Collaborators,
    control: RuntimeControl,
    admin_token: str = ADMIN_AUTH_TOKEN,
    dispatch_secret: str = DISPATCH_SHARED_SECRET,
) -> FastAPI:
    app = FastAPI(title="Calendar Bot", version="1.0.0")
    app.state.collaborators = collaborators
    app.state.admin_token = admin_token
    app.state.dispatch_secret = dispatch_secret

    if not admin_token:
        logger.warning("未配置 ADMIN_AUTH_TOKEN，管理 API 将不可访问")

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "db_connected": collaborators.conn is not None,
            "shutdown_requested": control.shutdown_event.is_set(),
        }

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return health_payload()

    @app.post("/webhooks/line")
    async def line_webhook(request: Request):
        request_id = request.headers.get("X-Line-Request-Id") or request.headers.get("X-Request-Id") or "-"
        body = await request.body()
        with logger.contextualize(request_id=request_id):
            logger.info(f"Processing webhook request {request_id}")
            try:
                outcomes = await handle_webhook(
                    collaborators.messaging,
                    collaborators.intake(),
                    body,
                    request.headers.get("X-Line-Signature"),
                )
            except InvalidSignatureError:
                logger.warning("Webhook 签名校验失败")
                return PlainTextResponse("Invalid signature", status_code=400)
            except MalformedRequestError as e:
                logger.error(f"Failed to parse request: {e}")
                return PlainTextResponse(str(e), status_code=500)
            except (ExtractionError, ScheduleError) as e:
                logger.error(f"Failed to handle text message: {e}")
                return PlainTextResponse(str(e), status_code=500)

        return JSONResponse({
            "ok": True,
            "processed": len(outcomes),
            "states": [o.state.value for o in outcomes],
        })

    @app.post("/api/v1/reminders/dispatch")
    async def dispatch_reminder(payload: ReminderEventIn, request: Request) -> dict[str, Any]:
        await require_dispatch_auth(request)
        event = payload.to_event()
        try:
            await collaborators.dispatch().handle(event)
        except DispatchError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return {"ok": True, "userId": event.subject_id}

    @app.get("/api/v1/reminders")
    async def get_reminders(
        request: Request,
        subject_id: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        await require_admin_auth(request)
        limit = max(1, min(limit, 500))
        offset = max(0, offset)

        status_filter = None
        if status:
            try:
                status_filter = ReminderStatus(status)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"非法 status: {status}")

        store = collaborators.store
        total = await store.count(subject_id=subject_id, status=status_filter)
        items = await store.list_reminders(subject_id=subject_id, status=status_filter, limit=limit, offset=offset)
        return {
            "items": [_record_to_dict(r) for r in items],
            "limit": limit,
            "offset": offset,
            "subject_id": subject_id,
            "status": status,
            "total": total,
        }

    @app.get("/api/v1/metrics")
    async def get_metrics(request: Request) -> dict[str, Any]:
        await require_admin_auth(request)

        scheduler_status: dict[str, Any] = {"backend": type(collaborators.dispatcher).__name__}
        get_status = getattr(collaborators.dispatcher, "get_status", None)
        if get_status is not None:
            scheduler_status.update(get_status())

        return {
            "runtime": runtime_metrics.snapshot(),
            "components": {
                "db": {"connected": collaborators.conn is not None},
                "scheduler": scheduler_status,
            },
        }

    return app
