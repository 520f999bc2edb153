"""
Payment provider webhook.

The provider retries any delivery that does not get a 2xx,
so every failure that may succeed later answers 503, and
duplicate deliveries are harmless because grant() is idempotent.
"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from unlock_service.api.deps import get_gateway
from unlock_service.exceptions import InvalidWebhook, PaymentNotConfirmed
from unlock_service.models.base import get_db
from unlock_service.schemas.unlock import WebhookResponse
from unlock_service.services.payment_gateway import PaymentGateway
from unlock_service.services.unlock_engine import UnlockEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _process_event(db: Session, gateway: PaymentGateway, event):
    engine = UnlockEngine(db, gateway)
    entry = engine.handle_webhook(event)
    db.commit()
    return entry


@router.post("/stripe", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(default="", alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    payload = await request.body()
    try:
        event = gateway.parse_webhook(payload, stripe_signature)
    except InvalidWebhook as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("webhook_received", extra={"event_type": event.event_type})

    try:
        entry = await run_in_threadpool(_process_event, db, gateway, event)
    except PaymentNotConfirmed as e:
        db.rollback()
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    return WebhookResponse(received=True, entry_id=entry.id if entry else None)
