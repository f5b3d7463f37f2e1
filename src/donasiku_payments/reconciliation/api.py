"""API endpoints for the reconciliation entry points."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import CHECK_RATE_LIMIT, limiter, verify_api_key
from ..config import AppConfig
from ..database import get_db
from ..dependencies import get_config, get_gateway, get_notifier
from ..exceptions import (
    CallbackValidationError,
    GatewayError,
    GatewayTransientError,
    NotFoundError,
    SignatureError,
)
from ..gateway import CallbackPayload, GatewayBase
from ..notifications import Notifier
from .service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reconciliation"])


class CheckTransactionBody(BaseModel):
    """Request body for a user-triggered status check."""
    merchantOrderId: Optional[str] = Field(default=None, description="Order id to check")


@router.post("/transactions/check")
@limiter.limit(CHECK_RATE_LIMIT)
async def check_transaction(
    request: Request,
    body: Optional[CheckTransactionBody] = Body(default=None),
    db: AsyncSession = Depends(get_db),
    gateway: GatewayBase = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Ask the gateway for the status of one transaction and apply it.

    Used by the payment-status page when the donor presses "check status".
    """
    if body is None or not body.merchantOrderId:
        raise HTTPException(status_code=400, detail="merchantOrderId is required")

    service = ReconciliationService(db, gateway, notifier=notifier)
    try:
        result = await service.check_transaction(body.merchantOrderId)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Transaction not found")
    except GatewayTransientError as e:
        logger.error(f"Status check for {body.merchantOrderId} failed: {e}")
        raise HTTPException(status_code=502, detail="Payment gateway unreachable")
    except GatewayError as e:
        logger.error(f"Status check for {body.merchantOrderId} rejected: {e}")
        raise HTTPException(status_code=502, detail="Payment gateway error")
    return result.to_response()


async def _read_callback_fields(request: Request) -> Dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    form = await request.form()
    return dict(form)


@router.post("/callbacks/duitku", response_class=PlainTextResponse)
async def duitku_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    gateway: GatewayBase = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Receive Duitku's server-to-server payment notification.

    Answers in plain text, as Duitku expects. Notifications are sent after
    the response so the gateway is not kept waiting.
    """
    payload = CallbackPayload.from_mapping(await _read_callback_fields(request))
    logger.info(f"Callback received for {payload.merchantOrderId or '<missing>'} resultCode={payload.resultCode}")

    service = ReconciliationService(db, gateway, notifier=notifier, dispatch=background_tasks.add_task)
    try:
        outcome = await service.handle_callback(payload)
    except (CallbackValidationError, SignatureError) as e:
        return PlainTextResponse(str(e), status_code=400)
    except NotFoundError:
        return PlainTextResponse("Transaction Not Found", status_code=404)
    except Exception:
        logger.exception(f"Callback processing failed for {payload.merchantOrderId}")
        return PlainTextResponse("Internal Server Error", status_code=500)

    if outcome.reason == "already_processed":
        return PlainTextResponse("OK - Already Processed")
    return PlainTextResponse("OK")


@router.post("/cron/check-transactions")
async def cron_check_transactions(
    limit: Optional[int] = Query(default=None, ge=1, le=500, description="Batch size override"),
    db: AsyncSession = Depends(get_db),
    gateway: GatewayBase = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
    config: AppConfig = Depends(get_config),
    api_key: str = Depends(verify_api_key),
):
    """
    Sweep pending transactions against the gateway.

    Meant to be called by a scheduler every few minutes.
    """
    service = ReconciliationService(db, gateway, notifier=notifier, batch_size=config.sweep_batch_size)
    sweep = await service.sweep_pending(limit=limit)
    return sweep.to_dict()
