"""
Risk Engine - Configuration.

============================================================
PURPOSE
============================================================
Defines all configuration dataclasses and threshold values
for the request scorer, the audit scorer, the certificate
aggregator and event publishing.

============================================================
THRESHOLD PHILOSOPHY
============================================================
Each signal maps a count onto a band ladder. Bands are
evaluated top-down; the first band whose threshold is met
wins. Every band carries a tier and a fixed 0-100
contribution.

Below the lowest band = no flag, contribution 0.

============================================================
ENVIRONMENT OVERRIDES
============================================================
load_config_from_env() reads INTEGRITY_* variables
(optionally from a .env file) on top of the defaults.

============================================================
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Mapping, Optional

from dotenv import load_dotenv

from core.exceptions import InvalidConfigError
from .types import RequestType

logger = logging.getLogger(__name__)


# ============================================================
# REQUEST RISK CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class RequestRiskConfig:
    """
    Configuration for citizen request scoring.

    ============================================================
    WHAT WE MEASURE
    ============================================================
    - Identity: document number already held by another record
    - Identity: applicant below statutory voting age
    - Address: registrations sharing one normalized address
    - Velocity: submissions from one origin in a sliding window

    ============================================================
    THRESHOLD RATIONALE
    ============================================================
    Address density (records incl. current submission):
    - >= 4: medium density, worth a look
    - >= 7: high density
    - >= 10: mass registration, forces CRITICAL

    Velocity (submissions per origin in 10 minutes):
    - >= 5: suspicious
    - >= 15: bot-like

    ============================================================
    """

    # Statutory voting age
    minimum_voting_age: int = 18

    # Address density bands (count incl. current submission)
    address_critical_count: int = 10
    address_high_count: int = 7
    address_medium_count: int = 4

    # Address density contributions (0-100)
    address_critical_contribution: int = 100
    address_high_contribution: int = 75
    address_medium_contribution: int = 50

    # Velocity window and bands
    velocity_window_seconds: float = 600.0    # 10 minutes
    velocity_high_count: int = 15
    velocity_medium_count: int = 5
    velocity_high_contribution: int = 100
    velocity_medium_contribution: int = 50

    # Document reuse
    document_reuse_contribution: int = 100
    document_reuse_score_floor: int = 70      # keeps reuse at HIGH_RISK or above

    # Aggregation weights (must sum to 1.0)
    identity_weight: float = 0.4
    address_weight: float = 0.3
    velocity_weight: float = 0.3

    # Final score to tier ladder
    critical_score: int = 90
    high_risk_score: int = 70
    needs_review_score: int = 40

    def validate(self) -> None:
        """Raise InvalidConfigError on an inconsistent configuration."""
        total = round(self.identity_weight + self.address_weight + self.velocity_weight, 10)
        if total != 1.0:
            raise InvalidConfigError("request.weights", total, "weights must sum to 1.0")
        if not (self.address_critical_count > self.address_high_count > self.address_medium_count > 0):
            raise InvalidConfigError(
                "request.address_bands",
                (self.address_critical_count, self.address_high_count, self.address_medium_count),
                "address bands must be strictly descending and positive",
            )
        if not (self.velocity_high_count > self.velocity_medium_count > 0):
            raise InvalidConfigError(
                "request.velocity_bands",
                (self.velocity_high_count, self.velocity_medium_count),
                "velocity bands must be strictly descending and positive",
            )
        if not (100 >= self.critical_score > self.high_risk_score > self.needs_review_score > 0):
            raise InvalidConfigError(
                "request.tier_ladder",
                (self.critical_score, self.high_risk_score, self.needs_review_score),
                "tier ladder must be strictly descending within 0-100",
            )
        if self.velocity_window_seconds <= 0:
            raise InvalidConfigError(
                "request.velocity_window_seconds",
                self.velocity_window_seconds,
                "window must be positive",
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minimum_voting_age": self.minimum_voting_age,
            "address_critical_count": self.address_critical_count,
            "address_high_count": self.address_high_count,
            "address_medium_count": self.address_medium_count,
            "address_critical_contribution": self.address_critical_contribution,
            "address_high_contribution": self.address_high_contribution,
            "address_medium_contribution": self.address_medium_contribution,
            "velocity_window_seconds": self.velocity_window_seconds,
            "velocity_high_count": self.velocity_high_count,
            "velocity_medium_count": self.velocity_medium_count,
            "velocity_high_contribution": self.velocity_high_contribution,
            "velocity_medium_contribution": self.velocity_medium_contribution,
            "document_reuse_contribution": self.document_reuse_contribution,
            "document_reuse_score_floor": self.document_reuse_score_floor,
            "identity_weight": self.identity_weight,
            "address_weight": self.address_weight,
            "velocity_weight": self.velocity_weight,
            "critical_score": self.critical_score,
            "high_risk_score": self.high_risk_score,
            "needs_review_score": self.needs_review_score,
        }


# Fields a submission must carry, per request type
DEFAULT_REQUIRED_FIELDS: Mapping[RequestType, FrozenSet[str]] = {
    RequestType.REGISTRATION: frozenset({"name", "address"}),
    RequestType.CORRECTION: frozenset(),
    RequestType.TRANSFER: frozenset({"address"}),
    RequestType.DELETION: frozenset(),
    RequestType.LOST_CARD: frozenset(),
}

# Request types that must reference an existing document number
DOCUMENT_REQUIRED_TYPES: FrozenSet[RequestType] = frozenset({
    RequestType.CORRECTION,
    RequestType.TRANSFER,
    RequestType.DELETION,
    RequestType.LOST_CARD,
})


# ============================================================
# AUDIT RISK CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class AuditRiskConfig:
    """
    Configuration for post-election audit checks.

    ============================================================
    COUNT MISMATCH LADDER
    ============================================================
    |Form 17A entries - Form 17C votes polled|:
    - <= 5: clerical tolerance, no flag
    - 6..10: NEEDS_REVIEW
    - > 10: CRITICAL

    ============================================================
    """

    mismatch_tolerance: int = 5
    mismatch_critical_above: int = 10
    mismatch_review_contribution: int = 50
    mismatch_critical_contribution: int = 100

    duplicate_contribution: int = 100

    def validate(self) -> None:
        if not (self.mismatch_critical_above > self.mismatch_tolerance >= 0):
            raise InvalidConfigError(
                "audit.mismatch_ladder",
                (self.mismatch_critical_above, self.mismatch_tolerance),
                "critical threshold must exceed tolerance",
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mismatch_tolerance": self.mismatch_tolerance,
            "mismatch_critical_above": self.mismatch_critical_above,
            "mismatch_review_contribution": self.mismatch_review_contribution,
            "mismatch_critical_contribution": self.mismatch_critical_contribution,
            "duplicate_contribution": self.duplicate_contribution,
        }


# ============================================================
# CERTIFICATE CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class CertificateConfig:
    """
    Configuration for the integrity certificate aggregator.

    ============================================================
    STATUS BANDS
    ============================================================
    - index > 90: VERIFIED
    - index < 50: FLAGGED
    - otherwise: PROVISIONAL
    ============================================================
    """

    # Sub-score weights (must sum to 1.0)
    roll_weight: float = 0.4
    polling_weight: float = 0.3
    turnout_weight: float = 0.3

    # Roll risk
    roll_penalty_per_flag: int = 2
    roll_high_above: int = 10
    roll_medium_above: int = 5

    # Polling consistency
    polling_tolerance: int = 5

    # Turnout
    historical_turnout_baseline: float = 65.0
    turnout_spike_threshold: float = 5.0
    turnout_spike_score: int = 50

    # Status bands
    verified_above: int = 90
    flagged_below: int = 50

    def validate(self) -> None:
        total = round(self.roll_weight + self.polling_weight + self.turnout_weight, 10)
        if total != 1.0:
            raise InvalidConfigError("certificate.weights", total, "weights must sum to 1.0")
        if not (0 <= self.flagged_below <= self.verified_above <= 100):
            raise InvalidConfigError(
                "certificate.status_bands",
                (self.flagged_below, self.verified_above),
                "bands must satisfy 0 <= flagged_below <= verified_above <= 100",
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roll_weight": self.roll_weight,
            "polling_weight": self.polling_weight,
            "turnout_weight": self.turnout_weight,
            "roll_penalty_per_flag": self.roll_penalty_per_flag,
            "roll_high_above": self.roll_high_above,
            "roll_medium_above": self.roll_medium_above,
            "polling_tolerance": self.polling_tolerance,
            "historical_turnout_baseline": self.historical_turnout_baseline,
            "turnout_spike_threshold": self.turnout_spike_threshold,
            "turnout_spike_score": self.turnout_spike_score,
            "verified_above": self.verified_above,
            "flagged_below": self.flagged_below,
        }


# ============================================================
# EVENT CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class EventConfig:
    """
    Configuration for integrity event publishing.

    Rate limiting applies per event type and entity; CRITICAL
    events are never suppressed.
    """

    min_seconds_between_events: float = 0.0

    telegram_enabled: bool = False
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    telegram_min_severity: str = "High Risk"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_seconds_between_events": self.min_seconds_between_events,
            "telegram_enabled": self.telegram_enabled,
            "telegram_min_severity": self.telegram_min_severity,
        }


# ============================================================
# MASTER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class RiskEngineConfig:
    """
    Master configuration for the integrity risk engine.

    Aggregates all component configs and engine settings.
    """

    request: RequestRiskConfig = field(default_factory=RequestRiskConfig)
    audit: AuditRiskConfig = field(default_factory=AuditRiskConfig)
    certificate: CertificateConfig = field(default_factory=CertificateConfig)
    events: EventConfig = field(default_factory=EventConfig)

    engine_version: str = "1.0.0"

    def validate(self) -> "RiskEngineConfig":
        self.request.validate()
        self.audit.validate()
        self.certificate.validate()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request": self.request.to_dict(),
            "audit": self.audit.to_dict(),
            "certificate": self.certificate.to_dict(),
            "events": self.events.to_dict(),
            "engine_version": self.engine_version,
        }


# ============================================================
# PRESETS
# ============================================================


def get_default_config() -> RiskEngineConfig:
    """Return the default risk engine configuration."""
    return RiskEngineConfig()


def get_strict_config() -> RiskEngineConfig:
    """
    Return a stricter configuration.

    Lower thresholds = earlier flags = more reviewer load.
    """
    return RiskEngineConfig(
        request=RequestRiskConfig(
            address_critical_count=8,
            address_high_count=5,
            address_medium_count=3,
            velocity_high_count=10,
            velocity_medium_count=3,
        ),
        audit=AuditRiskConfig(
            mismatch_tolerance=2,
            mismatch_critical_above=5,
        ),
        certificate=CertificateConfig(
            polling_tolerance=2,
            turnout_spike_threshold=3.0,
        ),
    )


# ============================================================
# ENVIRONMENT LOADING
# ============================================================


def _env_number(env: Mapping[str, str], key: str, cast, default):
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise InvalidConfigError(key, raw, f"expected {cast.__name__}")


def load_config_from_env(
    env: Optional[Mapping[str, str]] = None,
    base: Optional[RiskEngineConfig] = None,
) -> RiskEngineConfig:
    """
    Build a configuration from INTEGRITY_* environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ after .env load)
        base: Configuration to override (defaults to get_default_config())

    Returns:
        Validated RiskEngineConfig
    """
    if env is None:
        load_dotenv()
        env = os.environ
    base = base or get_default_config()

    request = replace(
        base.request,
        velocity_window_seconds=_env_number(
            env, "INTEGRITY_VELOCITY_WINDOW_SECONDS", float, base.request.velocity_window_seconds
        ),
        velocity_high_count=_env_number(
            env, "INTEGRITY_VELOCITY_HIGH_COUNT", int, base.request.velocity_high_count
        ),
        velocity_medium_count=_env_number(
            env, "INTEGRITY_VELOCITY_MEDIUM_COUNT", int, base.request.velocity_medium_count
        ),
        minimum_voting_age=_env_number(
            env, "INTEGRITY_MINIMUM_VOTING_AGE", int, base.request.minimum_voting_age
        ),
    )
    audit = replace(
        base.audit,
        mismatch_tolerance=_env_number(
            env, "INTEGRITY_MISMATCH_TOLERANCE", int, base.audit.mismatch_tolerance
        ),
        mismatch_critical_above=_env_number(
            env, "INTEGRITY_MISMATCH_CRITICAL_ABOVE", int, base.audit.mismatch_critical_above
        ),
    )
    certificate = replace(
        base.certificate,
        historical_turnout_baseline=_env_number(
            env,
            "INTEGRITY_TURNOUT_BASELINE",
            float,
            base.certificate.historical_turnout_baseline,
        ),
        turnout_spike_threshold=_env_number(
            env,
            "INTEGRITY_TURNOUT_SPIKE_THRESHOLD",
            float,
            base.certificate.turnout_spike_threshold,
        ),
    )

    bot_token = env.get("TELEGRAM_BOT_TOKEN") or base.events.telegram_bot_token
    chat_id = env.get("TELEGRAM_CHAT_ID") or base.events.telegram_chat_id
    events = replace(
        base.events,
        telegram_bot_token=bot_token,
        telegram_chat_id=chat_id,
        telegram_enabled=bool(bot_token and chat_id),
        min_seconds_between_events=_env_number(
            env,
            "INTEGRITY_EVENT_MIN_INTERVAL_SECONDS",
            float,
            base.events.min_seconds_between_events,
        ),
    )

    config = replace(base, request=request, audit=audit, certificate=certificate, events=events)
    logger.debug(f"Loaded risk engine config: {config.to_dict()}")
    return config.validate()
