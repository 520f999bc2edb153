"""
Pydantic schemas for intents, grants and refunds.

These define the API contract. Note what is absent from
IntentCreate: the amount. Prices are computed server-side.
Likewise GrantRequest carries no tag or score: those are fixed
when the intent is created.
"""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from unlock_service.models.enums import EntryKind, IntentKind, TargetType


# --- Request Schemas ---

class IntentCreate(BaseModel):
    """Request to start paying for an unlock."""
    subject_id: str = Field(min_length=1, max_length=100)
    kind: IntentKind
    target_id: str | None = Field(default=None, min_length=1, max_length=100)
    target_type: TargetType | None = None
    tag: str | None = Field(default=None, max_length=100)
    score: int | None = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def target_given_together(self):
        if (self.target_id is None) != (self.target_type is None):
            raise ValueError("target_id and target_type must be given together")
        return self


class GrantRequest(BaseModel):
    """
    Confirmation that a payment went through.

    Retrying with the same payment_reference is always safe.
    """
    subject_id: str = Field(min_length=1, max_length=100)
    target_id: str = Field(min_length=1, max_length=100)
    target_type: TargetType
    payment_reference: str = Field(min_length=1, max_length=255)


class RefundRequest(BaseModel):
    payment_reference: str = Field(min_length=1, max_length=255)


# --- Response Schemas ---

class IntentResponse(BaseModel):
    intent_id: str
    client_secret: str
    amount: int
    currency: str

    model_config = {"from_attributes": True}


class LedgerEntryResponse(BaseModel):
    id: int
    kind: EntryKind
    subject_id: str
    target_id: str
    target_type: TargetType
    payment_reference: str
    amount: int
    currency: str
    tag: str | None
    score: int | None
    reverses_entry_id: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ConfirmResponse(BaseModel):
    """status is "granted" with the entry, or "pending" without one."""
    status: str
    payment_reference: str
    entry: LedgerEntryResponse | None = None


class WebhookResponse(BaseModel):
    received: bool
    entry_id: int | None = None
