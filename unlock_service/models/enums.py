"""
Shared enumerations.

target_type is a tagged union carried end-to-end: the two
investor sources may reuse the same numeric ids, so a target
is only ever identified by (target_id, target_type).
"""

import enum


class TargetType(str, enum.Enum):
    """What a grant unlocks."""
    PLATFORM_INVESTOR = "investor:platform"
    DIRECTORY_INVESTOR = "investor:external-directory"
    PROJECT_VISIBILITY = "project-visibility"

    @property
    def is_investor(self) -> bool:
        return self in (TargetType.PLATFORM_INVESTOR, TargetType.DIRECTORY_INVESTOR)


class EntryKind(str, enum.Enum):
    """Kind of ledger entry. Only UNLOCK entries are grants."""
    UNLOCK = "UNLOCK"
    DUPLICATE_PAYMENT = "DUPLICATE_PAYMENT"
    REFUND = "REFUND"


class IntentKind(str, enum.Enum):
    """What a payment intent is for; decides the price."""
    INVESTOR_UNLOCK = "investor_unlock"
    PROJECT_VISIBILITY = "project_visibility"


class IntentStatus(str, enum.Enum):
    """Provider payment status, collapsed to what the engine needs."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"


class OnboardingStage(str, enum.Enum):
    NEEDS_PROFILE = "needs-profile"
    NEEDS_PASSWORD = "needs-password"
    ACTIVE = "active"
