"""
Election Integrity Risk Engine - Package.

============================================================
PURPOSE
============================================================
Advisory scoring for electoral roll changes and post-election
paper-record audits.

============================================================
WHAT IT IS
============================================================
- Deterministic, threshold-based scoring (no ML)
- One four-tier vocabulary: Normal, Needs Review, High Risk, Critical
- Explainable: every non-trivial score carries its flags
- Purely advisory: a human reviewer decides

============================================================
WHAT IT IS NOT
============================================================
- NOT an approval or rejection engine
- NOT a tally: certificates never alter or gate results
- NOT a re-scorer: request scores are fixed at submission

============================================================
COMPONENTS
============================================================
1. REQUEST SCORER: document reuse, underage, address density, velocity
2. AUDIT SCORER: batch duplicates, cross-booth duplicates, count mismatch
3. FLAG STORE: append, filter, one-way resolution
4. CERTIFICATE: roll risk, polling consistency, turnout

============================================================
USAGE
============================================================
    from risk_engine import RequestRiskScorer, RequestType, VoterRequest

    scorer = RequestRiskScorer()
    assessment = scorer.score(VoterRequest(
        voter_record_id="V-NEW",
        request_type=RequestType.REGISTRATION,
        submitted_data={"name": "A. Kumar", "address": "12 MG Road", "age": 17},
    ))

    print(f"Tier: {assessment.tier.value}")
    print(f"Score: {assessment.score}/100")
    print(f"Why: {assessment.explanation}")

============================================================
"""

# Types
from .types import (
    # Enums
    RiskTier,
    RequestType,
    RequestStatus,
    RecordStatus,
    EntityType,
    RuleId,
    SignalKind,
    CertificateStatus,
    PollingStatus,
    RollRiskLevel,
    DUPLICATE_IDENTITY_RULES,

    # Records
    Flag,
    VoterRecord,
    VoterRequest,
    Form17AEntry,
    Form17ARecord,
    Form17CSummary,

    # Outputs
    SignalAssessment,
    RequestRiskAssessment,
    AuditBatchResult,
    BoothRiskSummary,
    RollRiskScore,
    PollingConsistency,
    TurnoutAnalytics,
    ScoreBreakdown,
    IntegrityCertificate,
)

# Configuration
from .config import (
    RequestRiskConfig,
    AuditRiskConfig,
    CertificateConfig,
    EventConfig,
    RiskEngineConfig,
    get_default_config,
    get_strict_config,
    load_config_from_env,
)

# Indexes
from .indexes import (
    IdentityIndex,
    AddressIndex,
    VelocityIndex,
    BoothDocumentIndex,
    normalize_address,
)

# Assessors
from .assessors import (
    BaseSignalAssessor,
    DocumentReuseAssessor,
    UnderageAssessor,
    AddressDensityAssessor,
    VelocityAssessor,
)

# Scorers
from .engine import (
    RequestRiskScorer,
    validate_request,
    format_risk_summary,
    round_half_up,
)
from .audit import (
    AuditRiskScorer,
    validate_entries,
)

# Flags and certificate
from .flag_store import (
    FlagStore,
    InMemoryFlagStore,
)
from .certificate import (
    IntegrityCertificateAggregator,
)

# Events
from .alerting import (
    IntegrityEventType,
    IntegrityEvent,
    EventSink,
    LoggingEventSink,
    MemoryEventSink,
    TelegramEventSink,
    EventRateLimiter,
    EventPublisher,
    create_logging_publisher,
    create_telegram_publisher,
    create_publisher_from_config,
)


__all__ = [
    # Enums
    "RiskTier",
    "RequestType",
    "RequestStatus",
    "RecordStatus",
    "EntityType",
    "RuleId",
    "SignalKind",
    "CertificateStatus",
    "PollingStatus",
    "RollRiskLevel",
    "DUPLICATE_IDENTITY_RULES",

    # Records
    "Flag",
    "VoterRecord",
    "VoterRequest",
    "Form17AEntry",
    "Form17ARecord",
    "Form17CSummary",

    # Outputs
    "SignalAssessment",
    "RequestRiskAssessment",
    "AuditBatchResult",
    "BoothRiskSummary",
    "RollRiskScore",
    "PollingConsistency",
    "TurnoutAnalytics",
    "ScoreBreakdown",
    "IntegrityCertificate",

    # Configuration
    "RequestRiskConfig",
    "AuditRiskConfig",
    "CertificateConfig",
    "EventConfig",
    "RiskEngineConfig",
    "get_default_config",
    "get_strict_config",
    "load_config_from_env",

    # Indexes
    "IdentityIndex",
    "AddressIndex",
    "VelocityIndex",
    "BoothDocumentIndex",
    "normalize_address",

    # Assessors
    "BaseSignalAssessor",
    "DocumentReuseAssessor",
    "UnderageAssessor",
    "AddressDensityAssessor",
    "VelocityAssessor",

    # Scorers
    "RequestRiskScorer",
    "validate_request",
    "format_risk_summary",
    "round_half_up",
    "AuditRiskScorer",
    "validate_entries",

    # Flags and certificate
    "FlagStore",
    "InMemoryFlagStore",
    "IntegrityCertificateAggregator",

    # Events
    "IntegrityEventType",
    "IntegrityEvent",
    "EventSink",
    "LoggingEventSink",
    "MemoryEventSink",
    "TelegramEventSink",
    "EventRateLimiter",
    "EventPublisher",
    "create_logging_publisher",
    "create_telegram_publisher",
    "create_publisher_from_config",
]


__version__ = "1.0.0"
