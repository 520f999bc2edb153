"""
Payment gateway adapter.

Wraps the payment provider's intent creation and verification.
Prices are computed here from the intent kind and target, never
taken from the caller. No local state is mutated: every method
is either a provider write protected by an idempotency key or a
pure provider read.
"""

import abc
import logging
from dataclasses import dataclass, field
from datetime import date

import stripe

from unlock_service.config import Settings
from unlock_service.exceptions import (
    ConfigurationError,
    InvalidWebhook,
    PaymentGatewayError,
    PaymentGatewayUnavailable,
)
from unlock_service.models.base import utcnow
from unlock_service.models.enums import IntentKind, IntentStatus, TargetType

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100

# Provider-side failures that say nothing about the payment itself.
TRANSIENT_STRIPE_ERRORS = (
    stripe.APIConnectionError,
    stripe.APIError,
    stripe.RateLimitError,
)


@dataclass(frozen=True)
class TargetRef:
    target_id: str
    target_type: TargetType


@dataclass(frozen=True)
class PaymentIntent:
    intent_id: str
    client_secret: str
    amount: int
    currency: str


@dataclass(frozen=True)
class VerifiedIntent:
    intent_id: str
    status: IntentStatus
    amount: int
    metadata: dict[str, str] = field(default_factory=dict)

    def names(
        self, subject_id: str, target_id: str, target_type: TargetType
    ) -> bool:
        """True if the intent was created for this subject and target."""
        return (
            self.metadata.get("subject_id") == subject_id
            and self.metadata.get("target_id") == target_id
            and self.metadata.get("target_type") == target_type.value
        )

    @property
    def tag(self) -> str | None:
        return self.metadata.get("tag") or None

    @property
    def score(self) -> int | None:
        """The score fixed at intent creation; malformed values read as unscored."""
        try:
            score = int(self.metadata["score"])
        except (KeyError, ValueError):
            return None
        if not MIN_SCORE <= score <= MAX_SCORE:
            return None
        return score


@dataclass(frozen=True)
class Refund:
    refund_id: str
    amount: int
    status: str


@dataclass(frozen=True)
class WebhookEvent:
    event_id: str
    event_type: str
    intent_id: str | None
    metadata: dict[str, str] = field(default_factory=dict)


def resolve_target(
    kind: IntentKind, subject_id: str, target: TargetRef | None
) -> TargetRef:
    """
    Check that the target fits the intent kind.

    A project-visibility intent targets the subject's own project
    unless a project id is given.
    """
    if kind == IntentKind.PROJECT_VISIBILITY:
        if target is None:
            return TargetRef(subject_id, TargetType.PROJECT_VISIBILITY)
        if target.target_type != TargetType.PROJECT_VISIBILITY:
            raise ValueError(
                f"Project visibility cannot target {target.target_type.value}"
            )
        return target

    if target is None:
        raise ValueError("Investor unlocks require a target")
    if not target.target_type.is_investor:
        raise ValueError(
            f"Investor unlocks cannot target {target.target_type.value}"
        )
    return target


def idempotency_key(
    kind: IntentKind,
    subject_id: str,
    target: TargetRef,
    day: date,
    tag: str | None = None,
    score: int | None = None,
) -> str:
    """
    Deterministic key for one unlock attempt.

    Repeated clicks on the same day reuse the same provider intent.
    The ranking metadata is part of the key, since the provider
    rejects a reused key whose parameters differ.
    """
    key = (
        f"intent:{kind.value}:{subject_id}:"
        f"{target.target_type.value}:{target.target_id}:{day.isoformat()}"
    )
    if tag is not None or score is not None:
        key += f":{tag or ''}:{'' if score is None else score}"
    return key


class PriceBook:
    """Server-side prices in minor currency units."""

    def __init__(
        self,
        project_visibility_price: int,
        platform_investor_price: int,
        directory_investor_price: int,
        overrides: dict[str, int] | None = None,
    ):
        self.project_visibility_price = project_visibility_price
        self.defaults = {
            TargetType.PLATFORM_INVESTOR: platform_investor_price,
            TargetType.DIRECTORY_INVESTOR: directory_investor_price,
        }
        self.overrides = overrides or {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "PriceBook":
        return cls(
            project_visibility_price=settings.PROJECT_VISIBILITY_PRICE,
            platform_investor_price=settings.PLATFORM_INVESTOR_PRICE,
            directory_investor_price=settings.DIRECTORY_INVESTOR_PRICE,
            overrides=settings.INVESTOR_PRICE_OVERRIDES,
        )

    def amount_for(self, kind: IntentKind, target: TargetRef) -> int:
        if kind == IntentKind.PROJECT_VISIBILITY:
            return self.project_visibility_price
        key = f"{target.target_type.value}:{target.target_id}"
        return self.overrides.get(key, self.defaults[target.target_type])


class PaymentGateway(abc.ABC):
    """
    Provider-independent half of the adapter.

    Subclasses implement the provider calls; pricing, target
    validation and idempotency keys live here.
    """

    def __init__(self, price_book: PriceBook, currency: str = "usd"):
        self.price_book = price_book
        self.currency = currency

    def create_intent(
        self,
        kind: IntentKind,
        subject_id: str,
        target: TargetRef | None = None,
        tag: str | None = None,
        score: int | None = None,
    ) -> PaymentIntent:
        """
        Create a provider intent for an unlock.

        tag and score travel in the intent metadata, so every
        confirmation path records the same ranking inputs.
        """
        target = resolve_target(kind, subject_id, target)
        if score is not None and not MIN_SCORE <= score <= MAX_SCORE:
            raise ValueError(f"score must be between {MIN_SCORE} and {MAX_SCORE}")
        amount = self.price_book.amount_for(kind, target)
        metadata = {
            "kind": kind.value,
            "subject_id": subject_id,
            "target_id": target.target_id,
            "target_type": target.target_type.value,
        }
        if tag:
            metadata["tag"] = tag
        if score is not None:
            metadata["score"] = str(score)
        key = idempotency_key(
            kind, subject_id, target, utcnow().date(), tag, score
        )

        intent = self._create_provider_intent(amount, metadata, key)
        logger.info(
            "intent_created",
            extra={
                "subject_id": subject_id,
                "target_id": target.target_id,
                "target_type": target.target_type.value,
                "kind": kind.value,
                "amount": amount,
                "payment_reference": intent.intent_id,
            },
        )
        return intent

    @abc.abstractmethod
    def _create_provider_intent(
        self, amount: int, metadata: dict[str, str], idempotency_key: str
    ) -> PaymentIntent:
        ...

    @abc.abstractmethod
    def verify_intent(self, intent_id: str) -> VerifiedIntent:
        """Read the intent's status. Safe to call any number of times."""

    @abc.abstractmethod
    def refund(self, intent_id: str) -> Refund:
        ...

    @abc.abstractmethod
    def parse_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        ...


def _plain_dict(obj) -> dict[str, str]:
    if not obj:
        return {}
    return {str(key): str(obj[key]) for key in obj.keys()}


def map_stripe_status(intent) -> IntentStatus:
    """
    Collapse Stripe's intent lifecycle to succeeded/failed/pending.

    requires_payment_method is both the initial state and the state
    after a declined card; only the latter carries last_payment_error.
    """
    status = intent.status
    if status == "succeeded":
        return IntentStatus.SUCCEEDED
    if status == "canceled":
        return IntentStatus.FAILED
    if status == "requires_payment_method" and getattr(
        intent, "last_payment_error", None
    ):
        return IntentStatus.FAILED
    return IntentStatus.PENDING


class StripeGateway(PaymentGateway):
    """Payment gateway backed by Stripe PaymentIntents."""

    def __init__(
        self,
        secret_key: str,
        price_book: PriceBook,
        currency: str = "usd",
        webhook_secret: str = "",
        stripe_client=stripe,
    ):
        if not secret_key or not secret_key.startswith(("sk_", "rk_")):
            raise ConfigurationError(
                "STRIPE_SECRET_KEY is missing or is not a secret key"
            )
        super().__init__(price_book, currency)
        self._stripe = stripe_client
        self._api_key = secret_key
        self._webhook_secret = webhook_secret

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        # Bounded timeout on every provider call, process-wide.
        stripe.default_http_client = stripe.RequestsClient(
            timeout=settings.STRIPE_TIMEOUT_SECONDS
        )
        stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES
        return cls(
            secret_key=settings.STRIPE_SECRET_KEY,
            price_book=PriceBook.from_settings(settings),
            currency=settings.CURRENCY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        )

    def _create_provider_intent(
        self, amount: int, metadata: dict[str, str], idempotency_key: str
    ) -> PaymentIntent:
        try:
            intent = self._stripe.PaymentIntent.create(
                amount=amount,
                currency=self.currency,
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
                api_key=self._api_key,
            )
        except TRANSIENT_STRIPE_ERRORS as e:
            logger.warning("intent_create_unavailable", extra={"error": str(e)})
            raise PaymentGatewayUnavailable(str(e)) from e
        except stripe.StripeError as e:
            logger.error("intent_create_failed", extra={"error": str(e)})
            raise PaymentGatewayError(str(e)) from e

        return PaymentIntent(
            intent_id=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            currency=intent.currency,
        )

    def verify_intent(self, intent_id: str) -> VerifiedIntent:
        try:
            intent = self._stripe.PaymentIntent.retrieve(
                intent_id, api_key=self._api_key
            )
        except TRANSIENT_STRIPE_ERRORS as e:
            logger.warning(
                "intent_verify_unavailable",
                extra={"payment_reference": intent_id, "error": str(e)},
            )
            raise PaymentGatewayUnavailable(str(e)) from e
        except stripe.InvalidRequestError as e:
            # Unknown or malformed intent id: nothing was paid.
            logger.warning(
                "intent_verify_rejected",
                extra={"payment_reference": intent_id, "error": str(e)},
            )
            return VerifiedIntent(intent_id, IntentStatus.FAILED, 0)
        except stripe.StripeError as e:
            raise PaymentGatewayError(str(e)) from e

        return VerifiedIntent(
            intent_id=intent.id,
            status=map_stripe_status(intent),
            amount=intent.amount,
            metadata=_plain_dict(intent.metadata),
        )

    def refund(self, intent_id: str) -> Refund:
        try:
            refund = self._stripe.Refund.create(
                payment_intent=intent_id,
                idempotency_key=f"refund:{intent_id}",
                api_key=self._api_key,
            )
        except TRANSIENT_STRIPE_ERRORS as e:
            raise PaymentGatewayUnavailable(str(e)) from e
        except stripe.StripeError as e:
            logger.error(
                "refund_failed",
                extra={"payment_reference": intent_id, "error": str(e)},
            )
            raise PaymentGatewayError(str(e)) from e

        return Refund(refund_id=refund.id, amount=refund.amount, status=refund.status)

    def parse_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        if not self._webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")

        try:
            event = self._stripe.Webhook.construct_event(
                payload, signature, self._webhook_secret
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("webhook_signature_invalid", extra={"error": str(e)})
            raise InvalidWebhook("Invalid webhook signature") from e
        except ValueError as e:
            raise InvalidWebhook("Malformed webhook payload") from e

        obj = event["data"]["object"]
        return WebhookEvent(
            event_id=event["id"],
            event_type=event["type"],
            intent_id=obj.get("id"),
            metadata=_plain_dict(obj.get("metadata")),
        )
