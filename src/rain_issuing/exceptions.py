"""Exception hierarchy for the Rain issuing integration.

All errors raised by this package inherit from RainIssuingError, enabling:
- Consistent handling at the HTTP route / job boundary
- Structured error responses with machine-readable codes
- Telling tolerated idempotency failures apart from real ones

Usage:
    from rain_issuing.exceptions import IssuerRejected, CardNotActivatable

    try:
        secrets = await workflow.reveal_secrets(card_id)
    except CardNotActivatable as e:
        return {"error": e.error_code, "message": e.user_message}

All exceptions have:
- error_code: Machine-readable error code (e.g., "ISSUER_REJECTED")
- message: Human-readable error message
- details: Optional additional context dictionary
- to_dict(): Convert to API response format
"""
from __future__ import annotations

from typing import Any, Optional


class RainIssuingError(Exception):
    """Base exception for all issuing integration errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "ISSUING_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Configuration
# =============================================================================

class ConfigurationError(RainIssuingError):
    """A required credential or setting is missing."""

    error_code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, setting: Optional[str] = None) -> None:
        details = {"setting": setting} if setting else None
        super().__init__(message, details=details)


# =============================================================================
# Issuer transport
# =============================================================================

class IssuerUnavailable(RainIssuingError):
    """The issuing service could not be reached."""

    error_code = "ISSUER_UNAVAILABLE"

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        details = {"url": url} if url else None
        super().__init__(message, details=details)


class IssuerRejected(RainIssuingError):
    """The issuing service answered with a non-success status."""

    error_code = "ISSUER_REJECTED"

    _DUPLICATE_MARKERS = ("already exists", "already exist", "duplicate")

    def __init__(self, status: int, body: str, url: Optional[str] = None) -> None:
        self.status = status
        self.body = body
        details: dict[str, Any] = {"status": status}
        if url:
            details["url"] = url
        super().__init__(f"Rain API error: {status} - {body}", details=details)

    @property
    def is_duplicate(self) -> bool:
        """True when the issuer refused to create a resource that already exists."""
        if self.status == 409:
            return True
        lowered = (self.body or "").lower()
        return any(marker in lowered for marker in self._DUPLICATE_MARKERS)


# =============================================================================
# Polling
# =============================================================================

class NotFoundAfterRetries(RainIssuingError):
    """Polling exhausted without the awaited resource appearing."""

    error_code = "NOT_FOUND_AFTER_RETRIES"

    def __init__(self, resource: str, attempts: int) -> None:
        self.resource = resource
        self.attempts = attempts
        super().__init__(
            f"{resource} not found after {attempts} attempts",
            details={"resource": resource, "attempts": attempts},
        )


class RetryCancelled(RainIssuingError):
    """A retry loop was abandoned because its cancel signal fired."""

    error_code = "RETRY_CANCELLED"

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            f"Retry cancelled after {attempts} attempts",
            details={"attempts": attempts},
        )


# =============================================================================
# Crypto
# =============================================================================

class InvalidInput(RainIssuingError):
    """Malformed argument passed to the crypto engine."""

    error_code = "INVALID_INPUT"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        details = {"field": field} if field else None
        super().__init__(message, details=details)


class InvalidKeyFormat(InvalidInput):
    """A preset session key is not valid hexadecimal."""

    error_code = "INVALID_KEY_FORMAT"


class DecryptionFailed(RainIssuingError):
    """Authenticated decryption of an issuer block failed."""

    error_code = "DECRYPTION_FAILED"


# =============================================================================
# Card lifecycle
# =============================================================================

class CardNotActivatable(RainIssuingError):
    """Secrets were requested for a card that could not be activated."""

    error_code = "CARD_NOT_ACTIVATABLE"

    RETRY_SHORTLY = "retry_shortly"
    NEEDS_ACTIVATION = "needs_activation"

    _USER_MESSAGES = {
        RETRY_SHORTLY: "Card is not active yet. Please wait a moment and try again.",
        NEEDS_ACTIVATION: (
            "Card details cannot be revealed yet. "
            "The card may need to be funded first or activated."
        ),
    }

    def __init__(self, current_status: str, hint: str = NEEDS_ACTIVATION) -> None:
        self.current_status = current_status
        self.hint = hint
        super().__init__(
            f"Card is not active and cannot be activated: {current_status}",
            details={"current_status": current_status, "hint": hint},
        )

    @property
    def user_message(self) -> str:
        return self._USER_MESSAGES.get(self.hint, self._USER_MESSAGES[self.NEEDS_ACTIVATION])


__all__ = [
    "RainIssuingError",
    "ConfigurationError",
    "IssuerUnavailable",
    "IssuerRejected",
    "NotFoundAfterRetries",
    "RetryCancelled",
    "InvalidInput",
    "InvalidKeyFormat",
    "DecryptionFailed",
    "CardNotActivatable",
]
