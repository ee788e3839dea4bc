"""
Service wiring.

One shared set of indexes, flag store, clock and publisher is
built here and injected into both domain services, so request
flags and audit flags land in the same store.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from core.clock import ClockProtocol, get_clock
from risk_engine.alerting import EventPublisher, MemoryEventSink, create_publisher_from_config
from risk_engine.audit import AuditRiskScorer
from risk_engine.certificate import IntegrityCertificateAggregator
from risk_engine.config import RiskEngineConfig, get_default_config
from risk_engine.engine import RequestRiskScorer
from risk_engine.flag_store import InMemoryFlagStore
from risk_engine.indexes import AddressIndex, BoothDocumentIndex, IdentityIndex, VelocityIndex
from risk_engine.types import VoterRecord

from .election_audit import ElectionAuditService
from .voter_registry import VoterRegistryService

logger = logging.getLogger(__name__)


@dataclass
class IntegrityServices:
    """Everything one process needs, sharing state."""

    config: RiskEngineConfig
    clock: ClockProtocol
    flag_store: InMemoryFlagStore
    publisher: EventPublisher
    events: MemoryEventSink
    registry: VoterRegistryService
    audit: ElectionAuditService

    def stats(self) -> Dict[str, Any]:
        """Authority dashboard counters."""
        pending = self.registry.pending_counts()
        open_flags = self.flag_store.list_flags(resolved=False)
        return {
            "pending_requests": pending["total"],
            "high_risk_requests": pending["high_risk"],
            "total_flags": len(open_flags),
            "high_risk_flags": sum(1 for f in open_flags if f.is_high_severity),
            "voters_registered": self.registry.total_voters(),
        }


def create_services(
    config: Optional[RiskEngineConfig] = None,
    clock: Optional[ClockProtocol] = None,
    publisher: Optional[EventPublisher] = None,
    seed_records: Optional[Iterable[VoterRecord]] = None,
) -> IntegrityServices:
    """
    Build registry and audit services over shared state.

    Args:
        config: Engine configuration (defaults to get_default_config())
        clock: Time source (MockClock in tests)
        publisher: Event publisher (built from config.events if omitted)
        seed_records: Existing voter records to load and index

    Returns:
        IntegrityServices
    """
    config = (config or get_default_config()).validate()
    clock = clock or get_clock()
    publisher = publisher or create_publisher_from_config(config.events)
    events = MemoryEventSink()
    publisher.add_sink(events)

    booth_index = BoothDocumentIndex()
    flag_store = InMemoryFlagStore(booth_index=booth_index, clock=clock)

    scorer = RequestRiskScorer(
        config=config.request,
        identity_index=IdentityIndex(),
        address_index=AddressIndex(),
        velocity_index=VelocityIndex(config.request.velocity_window_seconds),
        clock=clock,
    )
    registry = VoterRegistryService(
        scorer=scorer,
        flag_store=flag_store,
        publisher=publisher,
        clock=clock,
    )
    audit = ElectionAuditService(
        audit_scorer=AuditRiskScorer(config.audit, clock),
        aggregator=IntegrityCertificateAggregator(config.certificate, clock),
        flag_store=flag_store,
        booth_index=booth_index,
        publisher=publisher,
        voter_count=registry.total_voters,
        clock=clock,
    )

    if seed_records:
        registry.seed_records(seed_records)

    logger.info(f"Integrity services ready: engine_version={config.engine_version}")
    return IntegrityServices(
        config=config,
        clock=clock,
        flag_store=flag_store,
        publisher=publisher,
        events=events,
        registry=registry,
        audit=audit,
    )
