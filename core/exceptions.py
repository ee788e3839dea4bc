"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the integrity system.

- Provides clear exception hierarchy
- Separates caller mistakes from missing entities
- Includes context for debugging and API error bodies

============================================================
EXCEPTION HIERARCHY
============================================================
IntegrityException (base)
├── ConfigurationError
│   └── InvalidConfigError
├── ValidationError
│   ├── RequestValidationError
│   └── AuditValidationError
├── NotFoundError
│   ├── RequestNotFoundError
│   ├── VoterRecordNotFoundError
│   └── FlagNotFoundError
└── InvalidStatusTransitionError

There are no transient errors: the engine is pure computation
over in-memory state, so nothing here is retryable.

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for logging."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Caller error, request refused."""

    HIGH = "high"
    """Serious issue, service cannot operate as configured."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class IntegrityException(Exception):
    """
    Base exception for all integrity system errors.

    All exceptions carry:
    - severity: for logging
    - context: for debugging
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/API bodies."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        line = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        return f"{line} | {ctx_str}" if ctx_str else line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(IntegrityException):
    """Error in configuration."""

    default_severity = Severity.HIGH


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            context={"config_key": key, "actual_value": str(value)[:100], "reason": reason},
        )
        self.key = key


# ============================================================
# VALIDATION ERRORS
# ============================================================

class ValidationError(IntegrityException):
    """Input failed validation; nothing was scored or stored."""

    def __init__(
        self,
        message: str,
        fields: Optional[List[str]] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if fields:
            context["fields"] = list(fields)
        super().__init__(message, context=context, **kwargs)
        self.fields = list(fields or [])


class RequestValidationError(ValidationError):
    """A citizen request is missing required data or has an unknown type."""


class AuditValidationError(ValidationError):
    """A Form 17A entry or Form 17C summary is malformed."""

    def __init__(
        self,
        message: str,
        fields: Optional[List[str]] = None,
        entry_index: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if entry_index is not None:
            context["entry_index"] = entry_index
        super().__init__(message, fields=fields, context=context, **kwargs)
        self.entry_index = entry_index


# ============================================================
# NOT FOUND ERRORS
# ============================================================

class NotFoundError(IntegrityException):
    """Entity lookup failed. Nothing is created implicitly."""

    entity_name: str = "entity"

    def __init__(self, entity_id: str):
        super().__init__(
            message=f"{self.entity_name} not found: {entity_id}",
            severity=Severity.LOW,
            context={"entity_id": entity_id},
        )
        self.entity_id = entity_id


class RequestNotFoundError(NotFoundError):
    entity_name = "Voter request"


class VoterRecordNotFoundError(NotFoundError):
    entity_name = "Voter record"


class FlagNotFoundError(NotFoundError):
    entity_name = "Flag"


# ============================================================
# STATE ERRORS
# ============================================================

class InvalidStatusTransitionError(IntegrityException):
    """Request status change not permitted from its current status."""

    def __init__(self, request_id: str, current: str, requested: str):
        super().__init__(
            message=f"Cannot move request {request_id} from {current} to {requested}",
            context={"request_id": request_id, "current": current, "requested": requested},
        )
