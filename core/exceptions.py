"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the marketplace engine.

- Provides clear exception hierarchy
- Every rejection carries a specific ErrorKind
- Supports error categorization for logging
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
MarketplaceException (base)
├── ConfigurationError
├── SystemPausedError
├── UnauthorizedError
├── NotFoundError
├── InvalidAmountError
├── InvalidCategoryError
├── InvalidDataError
├── AlreadyExistsError
├── ConsentRequiredError
│   └── DataExpiredError
├── QualityTooLowError
├── InsufficientBalanceError
├── InvalidStateError
├── TransferFailedError
└── DatabaseError

============================================================
PROPAGATION
============================================================
Every failure aborts the whole operation. Nothing inside the
engine retries; callers decide whether to resubmit with
corrected inputs.

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for logging."""

    LOW = "low"
    """Caller error, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact operations."""

    CRITICAL = "critical"
    """Critical issue, requires immediate action."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Caller can resubmit with corrected inputs."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


class ErrorKind(str, Enum):
    """Stable, client-facing error kinds."""

    SYSTEM_PAUSED = "SystemPaused"
    UNAUTHORIZED = "Unauthorized"
    NOT_FOUND = "NotFound"
    INVALID_AMOUNT = "InvalidAmount"
    INVALID_CATEGORY = "InvalidCategory"
    INVALID_DATA = "InvalidData"
    ALREADY_EXISTS = "AlreadyExists"
    CONSENT_REQUIRED = "ConsentRequired"
    DATA_EXPIRED = "DataExpired"
    QUALITY_TOO_LOW = "QualityTooLow"
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    INVALID_STATE = "InvalidState"
    TRANSFER_FAILED = "TransferFailed"
    CONFIGURATION = "Configuration"
    DATABASE = "Database"


# ============================================================
# BASE EXCEPTION
# ============================================================

class MarketplaceException(Exception):
    """
    Base exception for all marketplace engine errors.

    All exceptions carry:
    - kind: stable error kind for client messaging
    - severity: for logging
    - context: for debugging
    - classification: for retry decisions
    - timestamp: when the error occurred
    """

    kind: ErrorKind = ErrorKind.INVALID_STATE
    default_severity: Severity = Severity.LOW
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_recoverable(self) -> bool:
        """Check if error is recoverable."""
        return self.classification in (
            ErrorClassification.RECOVERABLE,
            ErrorClassification.TRANSIENT,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        line = f"[{self.kind.value}] {type(self).__name__}: {self.message}"
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            line = f"{line} | {ctx_str}"
        return line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(MarketplaceException):
    """Error in configuration."""

    kind = ErrorKind.CONFIGURATION
    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


# ============================================================
# GOVERNANCE / ACCESS ERRORS
# ============================================================

class SystemPausedError(MarketplaceException):
    """Marketplace is paused; only unpause is accepted."""

    kind = ErrorKind.SYSTEM_PAUSED
    default_severity = Severity.MEDIUM
    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, operation: str, **kwargs):
        context = kwargs.pop("context", {})
        context["operation"] = operation
        super().__init__(f"Marketplace is paused, '{operation}' rejected", context=context, **kwargs)


class UnauthorizedError(MarketplaceException):
    """Caller identity or role does not permit the operation."""

    kind = ErrorKind.UNAUTHORIZED
    default_severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        caller: Optional[str] = None,
        required: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if caller:
            context["caller"] = caller
        if required:
            context["required"] = required

        super().__init__(message, context=context, **kwargs)


class NotFoundError(MarketplaceException):
    """Referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, key: Any, **kwargs):
        context = kwargs.pop("context", {})
        context["entity"] = entity
        context["key"] = str(key)
        super().__init__(f"{entity} {key} not found", context=context, **kwargs)
        self.entity = entity
        self.key = key


# ============================================================
# INPUT ERRORS
# ============================================================

class InvalidAmountError(MarketplaceException):
    """Price or budget below the floor or above the cap."""

    kind = ErrorKind.INVALID_AMOUNT

    def __init__(
        self,
        message: str,
        amount: Optional[int] = None,
        minimum: Optional[int] = None,
        maximum: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if amount is not None:
            context["amount"] = amount
        if minimum is not None:
            context["minimum"] = minimum
        if maximum is not None:
            context["maximum"] = maximum

        super().__init__(message, context=context, **kwargs)


class InvalidCategoryError(MarketplaceException):
    """Category is not a member of the fixed enum."""

    kind = ErrorKind.INVALID_CATEGORY

    def __init__(self, category: Any, **kwargs):
        context = kwargs.pop("context", {})
        context["category"] = str(category)[:64]
        super().__init__(f"Unknown data category: {category!r}", context=context, **kwargs)


class InvalidDataError(MarketplaceException):
    """Structural violation of caller-supplied data."""

    kind = ErrorKind.INVALID_DATA

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        super().__init__(message, context=context, **kwargs)
        self.field = field


class AlreadyExistsError(MarketplaceException):
    """Duplicate where uniqueness is required."""

    kind = ErrorKind.ALREADY_EXISTS

    def __init__(self, entity: str, key: Any, **kwargs):
        context = kwargs.pop("context", {})
        context["entity"] = entity
        context["key"] = str(key)
        super().__init__(f"{entity} {key} already exists", context=context, **kwargs)


# ============================================================
# CONSENT ERRORS
# ============================================================

class ConsentRequiredError(MarketplaceException):
    """No live consent grant for (owner, category)."""

    kind = ErrorKind.CONSENT_REQUIRED

    def __init__(
        self,
        owner: str,
        category: str,
        message: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        context["owner"] = owner
        context["category"] = category
        super().__init__(
            message or f"No live consent from {owner} for {category}",
            context=context,
            **kwargs,
        )
        self.owner = owner
        self.category = category


class DataExpiredError(ConsentRequiredError):
    """Consent existed but its validity window has lapsed."""

    kind = ErrorKind.DATA_EXPIRED

    def __init__(self, owner: str, category: str, expired_at: int, **kwargs):
        context = kwargs.pop("context", {})
        context["expired_at"] = expired_at
        super().__init__(
            owner,
            category,
            message=f"Consent from {owner} for {category} expired at height {expired_at}",
            context=context,
            **kwargs,
        )
        self.expired_at = expired_at


# ============================================================
# SETTLEMENT ERRORS
# ============================================================

class QualityTooLowError(MarketplaceException):
    """A quality score is below a required floor."""

    kind = ErrorKind.QUALITY_TOO_LOW

    def __init__(self, message: str, score: int, required: int, **kwargs):
        context = kwargs.pop("context", {})
        context["score"] = score
        context["required"] = required
        super().__init__(message, context=context, **kwargs)


class InsufficientBalanceError(MarketplaceException):
    """Capacity or budget exhausted."""

    kind = ErrorKind.INSUFFICIENT_BALANCE

    def __init__(
        self,
        message: str,
        required: Optional[int] = None,
        available: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if required is not None:
            context["required"] = required
        if available is not None:
            context["available"] = available

        super().__init__(message, context=context, **kwargs)


class InvalidStateError(MarketplaceException):
    """Status, availability or rate-limit violation."""

    kind = ErrorKind.INVALID_STATE

    def __init__(self, message: str, reason: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if reason:
            context["reason"] = reason
        super().__init__(message, context=context, **kwargs)
        self.reason = reason


class TransferFailedError(MarketplaceException):
    """Ledger adapter reported a failed transfer."""

    kind = ErrorKind.TRANSFER_FAILED
    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, amount: int, sender: str, recipient: str, **kwargs):
        context = kwargs.pop("context", {})
        context["amount"] = amount
        context["sender"] = sender
        context["recipient"] = recipient
        super().__init__(
            f"Transfer of {amount} from {sender} to {recipient} failed",
            context=context,
            **kwargs,
        )


# ============================================================
# PERSISTENCE ERRORS
# ============================================================

class DatabaseError(MarketplaceException):
    """Database operation failed."""

    kind = ErrorKind.DATABASE
    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if operation:
            context["operation"] = operation
        if table:
            context["table"] = table

        super().__init__(message, context=context, **kwargs)


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "Severity",
    "ErrorClassification",
    "ErrorKind",
    "MarketplaceException",
    "ConfigurationError",
    "SystemPausedError",
    "UnauthorizedError",
    "NotFoundError",
    "InvalidAmountError",
    "InvalidCategoryError",
    "InvalidDataError",
    "AlreadyExistsError",
    "ConsentRequiredError",
    "DataExpiredError",
    "QualityTooLowError",
    "InsufficientBalanceError",
    "InvalidStateError",
    "TransferFailedError",
    "DatabaseError",
]
