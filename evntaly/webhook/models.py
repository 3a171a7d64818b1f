"""Data models for inbound webhook deliveries."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class WebhookPayload(BaseModel):
    """
    Body of a webhook delivery.

    Only ``event`` is required; every other field is passed through to
    handlers untouched.
    """

    model_config = ConfigDict(extra="allow")

    event: StrictStr = Field(..., description="Event type used to route the delivery")


class VerificationStatus(str, Enum):
    """Outcome of a signature check."""

    VALID = "valid"
    MISSING_SIGNATURE = "missing_signature"
    MALFORMED_SIGNATURE = "malformed_signature"
    EXPIRED = "expired"
    SIGNATURE_MISMATCH = "signature_mismatch"


@dataclass(frozen=True)
class VerificationResult:
    """Result of verifying a signed delivery."""

    status: VerificationStatus
    timestamp: Optional[int] = None

    @property
    def valid(self) -> bool:
        return self.status == VerificationStatus.VALID

    def __bool__(self) -> bool:
        return self.valid
