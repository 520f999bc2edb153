"""
Error taxonomy for the unlock subsystem.

Errors that describe a bad request subclass ValueError so the
routers can keep mapping ValueError to a 4xx response. Errors
that describe an unavailable collaborator do not: the caller
must retry, not fix the request.
"""


class ConfigurationError(RuntimeError):
    """The payment gateway is missing or has invalid credentials."""


class PaymentNotConfirmed(Exception):
    """
    The provider has not (yet) confirmed the payment.

    status is "pending" when the payment may still settle and
    "failed" when the provider reports a terminal failure.
    """

    def __init__(self, payment_reference: str, status: str):
        self.payment_reference = payment_reference
        self.status = status
        super().__init__(
            f"Payment {payment_reference} is not confirmed (status: {status})"
        )


class LedgerConflict(Exception):
    """An insert collided with a unique ledger key."""

    def __init__(self, payment_reference: str, constraint: str):
        self.payment_reference = payment_reference
        self.constraint = constraint
        super().__init__(
            f"Ledger conflict on {constraint} for payment {payment_reference}"
        )


class StoreUnavailable(Exception):
    """The ledger database could not be reached."""


class PaymentGatewayError(Exception):
    """The payment provider rejected a call."""


class PaymentGatewayUnavailable(PaymentGatewayError):
    """The payment provider timed out or could not be reached."""


class OnboardingUnavailable(Exception):
    """The onboarding service could not be reached."""


class PaymentMismatch(ValueError):
    """A payment reference belongs to a different subject or target."""


class AlreadyUnlocked(ValueError):
    """The subject already holds a grant for the target."""


class OnboardingIncomplete(ValueError):
    """The subject has not finished onboarding."""

    def __init__(self, subject_id: str, stage: str):
        self.subject_id = subject_id
        self.stage = stage
        super().__init__(
            f"Subject {subject_id} has not finished onboarding (stage: {stage})"
        )


class EntryNotFound(ValueError):
    """No ledger entry exists for the given reference."""


class InvalidWebhook(ValueError):
    """A webhook payload failed signature verification or parsing."""
