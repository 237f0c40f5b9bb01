"""Map free-text SHiFT responses to outcome kinds."""

from typing import Optional

from .models import OutcomeKind

EXPIRED_MARKERS = ("expired", "no longer valid")
ALREADY_REDEEMED_MARKERS = ("already been redeemed", "already redeemed")
SERVER_ERROR_MARKERS = ("server error",)


def classify(reason: Optional[str]) -> OutcomeKind:
    """Classify a failure reason; checks are ordered and case-insensitive"""
    text = (reason or "").lower()

    if any(marker in text for marker in EXPIRED_MARKERS):
        return OutcomeKind.EXPIRED
    if any(marker in text for marker in ALREADY_REDEEMED_MARKERS):
        return OutcomeKind.ALREADY_REDEEMED
    if any(marker in text for marker in SERVER_ERROR_MARKERS):
        return OutcomeKind.SERVER_ERROR
    # "not available", "does not exist", "invalid code", etc.
    return OutcomeKind.FAILED


def status_label(kind: OutcomeKind) -> str:
    """Label shown to users; expired codes are filed under redeemed"""
    return {
        OutcomeKind.EXPIRED: "redeemed (expired)",
        OutcomeKind.ALREADY_REDEEMED: "redeemed (already on account)",
        OutcomeKind.SERVER_ERROR: "failed (server error, retry later)",
        OutcomeKind.FAILED: "failed",
    }[kind]
