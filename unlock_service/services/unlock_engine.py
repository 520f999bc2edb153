"""
Unlock engine. Turns confirmed payments into grants.

This is the only writer to the ledger. It guarantees:
1. One payment reference maps to exactly one ledger entry,
   however many times the confirmation is delivered
2. One (subject, target) pair holds at most one grant; a second
   distinct payment for it is recorded, not granted
3. Nothing is written until the provider confirms the payment

The caller owns the transaction boundary and commits after
a successful return.
"""

import logging

from sqlalchemy.orm import Session

from unlock_service.config import get_settings
from unlock_service.exceptions import (
    AlreadyUnlocked,
    EntryNotFound,
    LedgerConflict,
    OnboardingIncomplete,
    PaymentGatewayUnavailable,
    PaymentMismatch,
    PaymentNotConfirmed,
    StoreUnavailable,
)
from unlock_service.models.enums import (
    EntryKind,
    IntentKind,
    IntentStatus,
    OnboardingStage,
    TargetType,
)
from unlock_service.models.ledger_entry import LedgerEntry
from unlock_service.services.ledger_store import LedgerStore
from unlock_service.services.onboarding import OnboardingGate, OpenOnboardingGate
from unlock_service.services.payment_gateway import (
    PaymentGateway,
    PaymentIntent,
    TargetRef,
    WebhookEvent,
    resolve_target,
)

logger = logging.getLogger(__name__)

SUCCEEDED_EVENT = "payment_intent.succeeded"


class UnlockEngine:

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        onboarding: OnboardingGate | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.onboarding = onboarding or OpenOnboardingGate()
        self.store = LedgerStore(db)
        self.currency = get_settings().CURRENCY

    # --- Intents ---

    def request_intent(
        self,
        subject_id: str,
        kind: IntentKind,
        target_id: str | None = None,
        target_type: TargetType | None = None,
        tag: str | None = None,
        score: int | None = None,
    ) -> PaymentIntent:
        """
        Start an unlock: check the subject may pay, then create an intent.

        The amount comes from the gateway's price book; the caller
        only says what they want to unlock. tag and score are fixed here
        and travel with the intent to whichever path confirms it.
        """
        stage = self.onboarding.stage(subject_id)
        if stage != OnboardingStage.ACTIVE:
            raise OnboardingIncomplete(subject_id, stage.value)

        target = None
        if target_id is not None and target_type is not None:
            target = TargetRef(target_id, target_type)
        elif target_id is not None or target_type is not None:
            raise ValueError("target_id and target_type must be given together")
        target = resolve_target(kind, subject_id, target)

        if self.store.get_grant(subject_id, target.target_id, target.target_type):
            raise AlreadyUnlocked(
                f"{target.target_type.value}:{target.target_id} "
                f"is already unlocked for {subject_id}"
            )

        return self.gateway.create_intent(
            kind, subject_id, target, tag=tag, score=score
        )

    # --- Grants ---

    def grant(
        self,
        subject_id: str,
        target_id: str,
        target_type: TargetType,
        payment_reference: str,
    ) -> LedgerEntry:
        """
        Record the grant for a confirmed payment.

        Safe to call any number of times, concurrently or not, with
        the same payment_reference: every call returns the same entry.
        Raises PaymentNotConfirmed while the payment is pending or
        after it failed; the caller retries later. tag and score are
        read from the verified intent, never from the caller.
        """
        existing = self.store.get_by_reference(payment_reference)
        if existing:
            return self._check_same_grant(
                existing, subject_id, target_id, target_type
            )

        try:
            verified = self.gateway.verify_intent(payment_reference)
        except PaymentGatewayUnavailable:
            # A slow confirmation is not a failed one.
            raise PaymentNotConfirmed(payment_reference, IntentStatus.PENDING.value)

        if verified.status != IntentStatus.SUCCEEDED:
            logger.info(
                "grant_payment_not_confirmed",
                extra={
                    "payment_reference": payment_reference,
                    "status": verified.status.value,
                },
            )
            raise PaymentNotConfirmed(payment_reference, verified.status.value)

        if not verified.names(subject_id, target_id, target_type):
            raise PaymentMismatch(
                f"Payment {payment_reference} was not made for "
                f"{subject_id} -> {target_type.value}:{target_id}"
            )

        try:
            entry = self._append(
                EntryKind.UNLOCK, subject_id, target_id, target_type,
                payment_reference, verified.amount, verified.tag, verified.score,
            )
        except LedgerConflict as conflict:
            if conflict.constraint == "payment_reference":
                # Duplicate delivery raced us to the insert.
                existing = self.store.get_by_reference(payment_reference)
                return self._check_same_grant(
                    existing, subject_id, target_id, target_type
                )
            # The pair is already granted through another payment.
            return self._record_duplicate_payment(
                subject_id, target_id, target_type,
                payment_reference, verified.amount, verified.tag, verified.score,
            )

        logger.info(
            "grant_recorded",
            extra={
                "entry_id": entry.id,
                "subject_id": subject_id,
                "target_id": target_id,
                "target_type": target_type.value,
                "payment_reference": payment_reference,
                "amount": entry.amount,
            },
        )
        return entry

    def _append(
        self,
        kind: EntryKind,
        subject_id: str,
        target_id: str,
        target_type: TargetType,
        payment_reference: str,
        amount: int,
        tag: str | None = None,
        score: int | None = None,
        reverses_entry_id: int | None = None,
    ) -> LedgerEntry:
        try:
            return self.store.append(
                kind=kind,
                subject_id=subject_id,
                target_id=target_id,
                target_type=target_type,
                payment_reference=payment_reference,
                amount=amount,
                currency=self.currency,
                tag=tag,
                score=score,
                reverses_entry_id=reverses_entry_id,
            )
        except StoreUnavailable:
            # The provider has the money; the caller must retry this reference.
            logger.critical(
                "ledger_write_failed_after_payment",
                extra={
                    "payment_reference": payment_reference,
                    "subject_id": subject_id,
                    "kind": kind.value,
                },
            )
            raise

    def _record_duplicate_payment(
        self,
        subject_id: str,
        target_id: str,
        target_type: TargetType,
        payment_reference: str,
        amount: int,
        tag: str | None,
        score: int | None,
    ) -> LedgerEntry:
        try:
            entry = self._append(
                EntryKind.DUPLICATE_PAYMENT, subject_id, target_id, target_type,
                payment_reference, amount, tag, score,
            )
        except LedgerConflict:
            existing = self.store.get_by_reference(payment_reference)
            return self._check_same_grant(
                existing, subject_id, target_id, target_type
            )

        logger.warning(
            "duplicate_payment_recorded",
            extra={
                "entry_id": entry.id,
                "subject_id": subject_id,
                "target_id": target_id,
                "target_type": target_type.value,
                "payment_reference": payment_reference,
                "amount": amount,
            },
        )
        return entry

    @staticmethod
    def _check_same_grant(
        entry: LedgerEntry,
        subject_id: str,
        target_id: str,
        target_type: TargetType,
    ) -> LedgerEntry:
        if not entry.names(subject_id, target_id, target_type):
            raise PaymentMismatch(
                f"Payment {entry.payment_reference} is already recorded "
                f"for a different subject or target"
            )
        return entry

    # --- Refunds ---

    def refund(self, payment_reference: str) -> LedgerEntry:
        """
        Refund a recorded payment with a compensating REFUND entry.

        The original entry is untouched and the grant stays in
        place: revealed contact details cannot be taken back.
        Repeated calls return the same REFUND entry.
        """
        original = self.store.get_by_reference(payment_reference)
        if not original:
            raise EntryNotFound(f"No ledger entry for payment {payment_reference}")
        if original.kind == EntryKind.REFUND:
            raise ValueError(f"{payment_reference} is itself a refund")

        existing = self.store.get_refund_for(original.id)
        if existing:
            return existing

        refund = self.gateway.refund(payment_reference)

        try:
            entry = self._append(
                EntryKind.REFUND,
                original.subject_id,
                original.target_id,
                original.target_type,
                refund.refund_id,
                refund.amount,
                reverses_entry_id=original.id,
            )
        except LedgerConflict:
            return self.store.get_refund_for(original.id)

        logger.info(
            "refund_recorded",
            extra={
                "entry_id": entry.id,
                "payment_reference": payment_reference,
                "refund_id": refund.refund_id,
                "amount": refund.amount,
            },
        )
        return entry

    # --- Webhooks ---

    def handle_webhook(self, event: WebhookEvent) -> LedgerEntry | None:
        """
        Grant from a provider notification.

        Only payment_intent.succeeded events that carry our
        metadata lead to a grant; everything else is acknowledged
        and ignored.
        """
        metadata = event.metadata
        if (
            event.event_type != SUCCEEDED_EVENT
            or not event.intent_id
            or not metadata.get("subject_id")
            or not metadata.get("target_id")
            or not metadata.get("target_type")
        ):
            logger.info(
                "webhook_ignored",
                extra={"event_type": event.event_type},
            )
            return None

        try:
            target_type = TargetType(metadata["target_type"])
        except ValueError:
            logger.warning(
                "webhook_unknown_target_type",
                extra={"event_type": event.event_type, "target_type": metadata["target_type"]},
            )
            return None

        return self.grant(
            subject_id=metadata["subject_id"],
            target_id=metadata["target_id"],
            target_type=target_type,
            payment_reference=event.intent_id,
        )
