"""
Shared FastAPI dependencies for external collaborators.

Both are built once per process. Tests replace them through
app.dependency_overrides.
"""

from functools import lru_cache

from unlock_service.config import get_settings
from unlock_service.services.onboarding import (
    HttpOnboardingGate,
    OnboardingGate,
    OpenOnboardingGate,
)
from unlock_service.services.payment_gateway import PaymentGateway, StripeGateway


@lru_cache()
def get_gateway() -> PaymentGateway:
    """
    Return the process-wide payment gateway.

    Raises ConfigurationError when provider credentials are
    missing; main.py calls this at startup so a misconfigured
    deployment fails before serving traffic.
    """
    return StripeGateway.from_settings(get_settings())


@lru_cache()
def get_onboarding_gate() -> OnboardingGate:
    settings = get_settings()
    if not settings.ONBOARDING_SERVICE_URL:
        return OpenOnboardingGate()
    return HttpOnboardingGate(
        settings.ONBOARDING_SERVICE_URL,
        timeout=settings.ONBOARDING_TIMEOUT_SECONDS,
    )
