"""FastAPI application for payment confirmation."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession

from . import __version__
from .auth import limiter, verify_api_key
from .database import close_db, get_db, init_db
from .dependencies import get_gateway, get_whatsapp_client
from .exceptions import GatewayError, NotificationError
from .gateway import GatewayBase, PaymentMethodSyncService
from .notifications import FonnteClient
from .reconciliation.api import router as reconciliation_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="Donasiku Payments", version=__version__, lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# The gateway and the browser both call in from other origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reconciliation_router)


class ValidateWhatsAppBody(BaseModel):
    phone: Optional[str] = None


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


@app.post("/payment-methods/sync")
async def sync_payment_methods(
    db: AsyncSession = Depends(get_db),
    gateway: GatewayBase = Depends(get_gateway),
    api_key: str = Depends(verify_api_key),
):
    """Refresh the local payment-method catalogue from Duitku."""
    service = PaymentMethodSyncService(db, gateway)
    try:
        return await service.sync()
    except GatewayError as e:
        logger.error(f"Payment method sync failed: {e}")
        raise HTTPException(status_code=502, detail=f"Payment gateway error: {e}")


@app.post("/whatsapp/validate")
async def validate_whatsapp(
    body: ValidateWhatsAppBody,
    whatsapp: FonnteClient = Depends(get_whatsapp_client),
):
    """Check that a donor's phone number is reachable on WhatsApp."""
    if not body.phone:
        raise HTTPException(status_code=400, detail="Phone number is required")
    if not whatsapp.is_configured:
        logger.error("FONNTE_TOKEN is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    try:
        valid = await whatsapp.validate(body.phone)
    except NotificationError as e:
        logger.error(f"WhatsApp validation failed: {e}")
        raise HTTPException(status_code=502, detail="WhatsApp gateway error")
    if not valid:
        return {"valid": False, "message": "Nomor WhatsApp tidak terdaftar atau tidak aktif."}
    return {"valid": True, "message": "Nomor valid."}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("donasiku_payments.api:app", host="0.0.0.0", port=8000)
