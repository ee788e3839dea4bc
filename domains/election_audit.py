"""
Election Audit Service (post-election).

This service handles:
- Form 17A poll-book ingestion with duplicate checks
- Form 17C booth summaries with count-mismatch checks
- Booth risk summaries and flag resolution
- Integrity certificates per constituency

No vote choice and no link between a voter and a ballot is held.
"""

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union
from uuid import uuid4

from core.clock import ClockProtocol, get_clock
from core.exceptions import AuditValidationError, ValidationError
from risk_engine.alerting import EventPublisher, IntegrityEventType, create_logging_publisher
from risk_engine.audit import AuditRiskScorer, validate_entries
from risk_engine.certificate import IntegrityCertificateAggregator
from risk_engine.flag_store import FlagStore, InMemoryFlagStore
from risk_engine.indexes import BoothDocumentIndex
from risk_engine.types import (
    AuditBatchResult,
    BoothRiskSummary,
    CertificateStatus,
    EntityType,
    Flag,
    Form17AEntry,
    Form17ARecord,
    Form17CSummary,
    IntegrityCertificate,
    RiskTier,
)

logger = logging.getLogger(__name__)


_CERTIFICATE_SEVERITY = {
    CertificateStatus.VERIFIED: RiskTier.NORMAL,
    CertificateStatus.PROVISIONAL: RiskTier.NEEDS_REVIEW,
    CertificateStatus.FLAGGED: RiskTier.HIGH_RISK,
}

_SUMMARY_COUNT_FIELDS = ("total_electors", "total_votes_polled", "valid_votes", "rejected_votes")


def _coerce(enum_cls, value, field_name: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: {value}", fields=[field_name])


def _to_entry(entry: Union[Form17AEntry, Mapping[str, Any]]) -> Form17AEntry:
    if isinstance(entry, Form17AEntry):
        return entry
    return Form17AEntry(
        epic_id=str(entry.get("epic_id") or ""),
        serial_number=str(entry.get("serial_number") or ""),
        voter_name=str(entry.get("voter_name") or ""),
        thumb_impression_hash=entry.get("thumb_impression_hash"),
        signature_hash=entry.get("signature_hash"),
    )


def _to_summary(summary: Union[Form17CSummary, Mapping[str, Any]]) -> Form17CSummary:
    """Validate and normalize an uploaded Form 17C summary."""
    if isinstance(summary, Form17CSummary):
        data = {
            "booth_id": summary.booth_id,
            "constituency": summary.constituency,
            **{name: getattr(summary, name) for name in _SUMMARY_COUNT_FIELDS},
        }
    else:
        data = dict(summary)

    missing = [name for name in ("booth_id", "constituency") if not str(data.get(name) or "").strip()]
    if data.get("total_votes_polled") is None:
        missing.append("total_votes_polled")
    if missing:
        raise AuditValidationError(f"Form 17C summary missing {', '.join(missing)}", fields=missing)

    counts = {}
    for name in _SUMMARY_COUNT_FIELDS:
        raw = data.get(name) or 0
        try:
            value = int(raw)
        except (TypeError, ValueError):
            raise AuditValidationError(f"Form 17C {name} must be an integer: {raw}", fields=[name])
        if value < 0:
            raise AuditValidationError(f"Form 17C {name} must not be negative: {value}", fields=[name])
        counts[name] = value

    if isinstance(summary, Form17CSummary):
        return summary
    return Form17CSummary(
        booth_id=str(data["booth_id"]).strip(),
        constituency=str(data["constituency"]).strip(),
        **counts,
    )


# =============================================================
# ELECTION AUDIT SERVICE
# =============================================================

class ElectionAuditService:
    """Owns Form 17A / 17C state and the booth view over shared flags."""

    def __init__(
        self,
        audit_scorer: Optional[AuditRiskScorer] = None,
        aggregator: Optional[IntegrityCertificateAggregator] = None,
        flag_store: Optional[FlagStore] = None,
        booth_index: Optional[BoothDocumentIndex] = None,
        publisher: Optional[EventPublisher] = None,
        voter_count: Optional[Callable[[], int]] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        """
        Args:
            audit_scorer: Duplicate and mismatch checks
            aggregator: Certificate computation
            flag_store: Shared flag store (must share booth_index)
            booth_index: Booth -> document numbers seen
            publisher: Event publisher
            voter_count: Registered voter count for roll risk
            clock: Time source
        """
        self._clock = clock or get_clock()
        self.booth_index = booth_index if booth_index is not None else BoothDocumentIndex()
        self.audit_scorer = audit_scorer if audit_scorer is not None else AuditRiskScorer(clock=self._clock)
        self.aggregator = (
            aggregator if aggregator is not None else IntegrityCertificateAggregator(clock=self._clock)
        )
        self.flag_store = (
            flag_store if flag_store is not None else InMemoryFlagStore(self.booth_index, self._clock)
        )
        self.publisher = publisher if publisher is not None else create_logging_publisher()
        self._voter_count = voter_count or (lambda: 0)

        self._records_by_booth: Dict[str, List[Form17ARecord]] = {}
        self._summaries: Dict[str, Form17CSummary] = {}
        self._booth_tiers: Dict[str, RiskTier] = {}
        self._lock = threading.Lock()

    # ---------------------------------------------------------
    # FORM 17A INGESTION
    # ---------------------------------------------------------

    def ingest_audit_batch(
        self,
        booth_id: str,
        entries: Iterable[Union[Form17AEntry, Mapping[str, Any]]],
    ) -> AuditBatchResult:
        """
        Ingest one Form 17A upload for a booth.

        Runs the within-batch duplicate check, then the cross-booth
        check for document numbers new to this booth.

        Raises:
            AuditValidationError: blank booth id or malformed entry
                (nothing is stored)
        """
        if not booth_id or not str(booth_id).strip():
            raise AuditValidationError("booth_id required", fields=["booth_id"])
        booth_id = str(booth_id).strip()

        batch = [_to_entry(e) for e in entries]
        validate_entries(batch)

        upload_id = str(uuid4())
        now = self._clock.now()
        records = [
            Form17ARecord(
                booth_id=booth_id,
                epic_id=e.epic_id.strip(),
                serial_number=e.serial_number.strip(),
                voter_name=e.voter_name,
                upload_id=upload_id,
                thumb_impression_hash=e.thumb_impression_hash,
                signature_hash=e.signature_hash,
                uploaded_at=now,
            )
            for e in batch
        ]

        with self._lock:
            self._records_by_booth.setdefault(booth_id, []).extend(records)
            new_epics = self.booth_index.add_documents(booth_id, [r.epic_id for r in records])
            flags = self.audit_scorer.score_batch(records)
            flags += self.audit_scorer.check_cross_booth(
                self.booth_index.snapshot(), only_epics=new_epics
            )

        self._raise_flags(flags)

        logger.info(
            f"Form 17A batch ingested: upload={upload_id} booth={booth_id} "
            f"records={len(records)} flags={len(flags)}"
        )

        touched = {booth_id}
        for flag in flags:
            touched.update(flag.booth_ids)
        for booth in sorted(touched):
            self.get_booth_risk_summary(booth)

        return AuditBatchResult(
            batch_id=upload_id,
            booth_id=booth_id,
            record_count=len(records),
            flags=flags,
        )

    def get_form17a_records_by_booth(self, booth_id: str) -> List[Form17ARecord]:
        with self._lock:
            return list(self._records_by_booth.get(booth_id, ()))

    def form17a_counts(self) -> Dict[str, int]:
        with self._lock:
            return {booth: len(records) for booth, records in self._records_by_booth.items()}

    # ---------------------------------------------------------
    # FORM 17C INGESTION
    # ---------------------------------------------------------

    def ingest_booth_summary(
        self,
        summary: Union[Form17CSummary, Mapping[str, Any]],
    ) -> Form17CSummary:
        """
        Store a booth's Form 17C summary (replacing any earlier one)
        and compare it with the ingested Form 17A entry count.

        Raises:
            AuditValidationError: missing or invalid fields
        """
        summary = _to_summary(summary)

        with self._lock:
            self._summaries[summary.booth_id] = summary
            form17a_count = len(self._records_by_booth.get(summary.booth_id, ()))

        logger.info(
            f"Form 17C summary ingested: booth={summary.booth_id} "
            f"constituency={summary.constituency} polled={summary.total_votes_polled}"
        )

        flag = self.audit_scorer.check_count_mismatch(
            form17a_count, summary.total_votes_polled, summary.booth_id
        )
        if flag is not None:
            self._raise_flags([flag])
        self.get_booth_risk_summary(summary.booth_id)
        return summary

    def get_booth_summary(self, booth_id: str) -> Optional[Form17CSummary]:
        with self._lock:
            return self._summaries.get(booth_id)

    def list_summaries(self, constituency: Optional[str] = None) -> List[Form17CSummary]:
        with self._lock:
            summaries = list(self._summaries.values())
        if constituency:
            summaries = [s for s in summaries if s.constituency == constituency]
        return summaries

    # ---------------------------------------------------------
    # FLAGS
    # ---------------------------------------------------------

    def list_flags(
        self,
        risk_tier=None,
        entity_type=None,
        resolved: Optional[bool] = None,
        booth_id: Optional[str] = None,
    ) -> List[Flag]:
        return self.flag_store.list_flags(
            risk_tier=_coerce(RiskTier, risk_tier, "risk_level"),
            entity_type=_coerce(EntityType, entity_type, "entity_type"),
            resolved=resolved,
            booth_id=booth_id,
        )

    def resolve_flag(self, flag_id: str, resolved_by: str) -> Flag:
        """
        Resolve a flag. Re-resolving returns it unchanged.

        Raises:
            FlagNotFoundError: unknown flag id
            ValidationError: blank resolver
        """
        flag, newly_resolved = self.flag_store.resolve(flag_id, resolved_by)
        if newly_resolved:
            self.publisher.emit(
                IntegrityEventType.FLAG_RESOLVED,
                flag.flag_id,
                payload=flag.to_dict(),
                timestamp=flag.resolved_at,
            )
            for booth in self._booths_of(flag):
                self.get_booth_risk_summary(booth)
        return flag

    def _raise_flags(self, flags: List[Flag]) -> None:
        for flag in self.flag_store.add_many(flags):
            self.publisher.emit(
                IntegrityEventType.FLAG_RAISED,
                flag.flag_id,
                payload=flag.to_dict(),
                severity=flag.risk_tier,
                timestamp=flag.created_at,
            )

    def _booths_of(self, flag: Flag) -> List[str]:
        booths = set(flag.booth_ids)
        if flag.entity_type == EntityType.BOOTH:
            booths.add(flag.entity_id)
        elif flag.entity_type == EntityType.FORM17A:
            booths.update(
                b for b in self.booth_index.booths() if self.booth_index.contains(b, flag.entity_id)
            )
        return sorted(booths)

    # ---------------------------------------------------------
    # BOOTH RISK
    # ---------------------------------------------------------

    def get_booth_risk_summary(self, booth_id: str) -> BoothRiskSummary:
        """
        Booth tier from its unresolved flags.

        CRITICAL if any open CRITICAL flag, HIGH_RISK if any open
        high-severity flag, NEEDS_REVIEW if any open flag, else NORMAL.
        Publishes booth_risk_changed when the tier moves.
        """
        open_flags = self.flag_store.list_flags(resolved=False, booth_id=booth_id)
        high = [f for f in open_flags if f.is_high_severity]

        if any(f.risk_tier == RiskTier.CRITICAL for f in open_flags):
            tier = RiskTier.CRITICAL
        elif high:
            tier = RiskTier.HIGH_RISK
        elif open_flags:
            tier = RiskTier.NEEDS_REVIEW
        else:
            tier = RiskTier.NORMAL

        summary = BoothRiskSummary(
            booth_id=booth_id,
            risk_tier=tier,
            flag_count=len(open_flags),
            high_risk_flags=len(high),
        )

        with self._lock:
            previous = self._booth_tiers.get(booth_id, RiskTier.NORMAL)
            self._booth_tiers[booth_id] = tier

        if tier != previous:
            logger.info(f"Booth risk changed: booth={booth_id} {previous.value}->{tier.value}")
            self.publisher.emit(
                IntegrityEventType.BOOTH_RISK_CHANGED,
                booth_id,
                payload=summary.to_dict(),
                severity=tier,
                timestamp=self._clock.now(),
            )
        return summary

    # ---------------------------------------------------------
    # CERTIFICATE
    # ---------------------------------------------------------

    def get_certificate(self, constituency_id: str) -> IntegrityCertificate:
        """Compute a fresh certificate; nothing is stored or changed."""
        certificate = self.aggregator.generate(
            constituency_id,
            flags=self.flag_store.list_flags(),
            summaries=self.list_summaries(),
            form17a_counts=self.form17a_counts(),
            total_voters=self._voter_count(),
        )
        self.publisher.emit(
            IntegrityEventType.CERTIFICATE_GENERATED,
            constituency_id,
            payload=certificate.to_dict(),
            severity=_CERTIFICATE_SEVERITY[certificate.status],
            timestamp=certificate.generated_at,
        )
        return certificate
