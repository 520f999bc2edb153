"""
Onboarding gate client.

Onboarding (profile completion, password setup) is owned by
another service. This module only reads a subject's current
stage; an unlock may be initiated only at the "active" stage.
"""

import abc
import logging

import httpx

from unlock_service.exceptions import OnboardingUnavailable
from unlock_service.models.enums import OnboardingStage

logger = logging.getLogger(__name__)


class OnboardingGate(abc.ABC):
    @abc.abstractmethod
    def stage(self, subject_id: str) -> OnboardingStage:
        ...


class OpenOnboardingGate(OnboardingGate):
    """Used when no onboarding service is configured."""

    def stage(self, subject_id: str) -> OnboardingStage:
        return OnboardingStage.ACTIVE


class HttpOnboardingGate(OnboardingGate):
    """
    Reads GET {base_url}/subjects/{subject_id}/onboarding-stage,
    which answers {"stage": "needs-profile" | "needs-password" | "active"}.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ):
        self.client = client or httpx.Client(
            base_url=base_url.rstrip("/"), timeout=timeout
        )

    def stage(self, subject_id: str) -> OnboardingStage:
        try:
            response = self.client.get(f"/subjects/{subject_id}/onboarding-stage")
            response.raise_for_status()
            return OnboardingStage(response.json()["stage"])
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning(
                "onboarding_stage_unavailable",
                extra={"subject_id": subject_id, "error": str(e)},
            )
            raise OnboardingUnavailable(
                f"Could not read onboarding stage for {subject_id}"
            ) from e
