"""
Unlock API endpoints: intents, confirmations and refunds.

The API layer is thin. It handles HTTP concerns and the commit
boundary, and delegates everything else to the UnlockEngine.
Collaborator outages (StoreUnavailable, gateway and onboarding
failures) are mapped to 5xx by the handlers in main.py.
"""

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from unlock_service.api.deps import get_gateway, get_onboarding_gate
from unlock_service.exceptions import (
    AlreadyUnlocked,
    EntryNotFound,
    OnboardingIncomplete,
    PaymentMismatch,
    PaymentNotConfirmed,
)
from unlock_service.models.base import get_db
from unlock_service.models.enums import EntryKind, IntentStatus
from unlock_service.schemas.unlock import (
    ConfirmResponse,
    GrantRequest,
    IntentCreate,
    IntentResponse,
    LedgerEntryResponse,
    RefundRequest,
)
from unlock_service.services.onboarding import OnboardingGate
from unlock_service.services.payment_gateway import PaymentGateway
from unlock_service.services.unlock_engine import UnlockEngine

router = APIRouter(prefix="/unlocks", tags=["Unlocks"])


@router.post("/intents", response_model=IntentResponse, status_code=201)
def create_unlock_intent(
    request: IntentCreate,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    onboarding: OnboardingGate = Depends(get_onboarding_gate),
):
    """
    Create a payment intent for an unlock.

    The returned client_secret is handed to the provider's
    hosted payment element. The amount is decided here.
    """
    engine = UnlockEngine(db, gateway, onboarding)
    try:
        return engine.request_intent(
            request.subject_id,
            request.kind,
            request.target_id,
            request.target_type,
            tag=request.tag,
            score=request.score,
        )
    except OnboardingIncomplete as e:
        raise HTTPException(status_code=403, detail=str(e))
    except AlreadyUnlocked as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/confirm", response_model=ConfirmResponse)
def confirm_unlock(
    request: GrantRequest,
    response: Response,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    """
    Record the grant for a completed payment.

    Returns 200 with the ledger entry once the payment is
    confirmed, 202 while it is still settling (retry later),
    and 402 if the provider reports it failed. Repeating a
    confirmed call returns the same entry.
    """
    engine = UnlockEngine(db, gateway)
    try:
        entry = engine.grant(
            request.subject_id,
            request.target_id,
            request.target_type,
            request.payment_reference,
        )
        db.commit()
    except PaymentNotConfirmed as e:
        db.rollback()
        if e.status == IntentStatus.FAILED.value:
            raise HTTPException(
                status_code=402,
                detail="Payment did not complete",
            )
        response.status_code = 202
        response.headers["Retry-After"] = "5"
        return ConfirmResponse(
            status="pending",
            payment_reference=request.payment_reference,
        )
    except PaymentMismatch as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    status = "granted" if entry.kind == EntryKind.UNLOCK else "already_granted"
    return ConfirmResponse(
        status=status,
        payment_reference=request.payment_reference,
        entry=LedgerEntryResponse.model_validate(entry),
    )


@router.post("/refunds", response_model=LedgerEntryResponse, status_code=201)
def refund_unlock(
    request: RefundRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    """
    Refund a payment by appending a compensating entry.

    The grant itself stays in place.
    """
    engine = UnlockEngine(db, gateway)
    try:
        entry = engine.refund(request.payment_reference)
        db.commit()
        return entry
    except EntryNotFound as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
