"""
Risk Engine - Integrity Events.

============================================================
PURPOSE
============================================================
Logical notifications for integrity state changes.

Provides:
- IntegrityEvent: one structured notification
- Sinks: log, in-memory collector, Telegram
- Rate limiting per event type and entity
- EventPublisher fanning events out to every sink

============================================================
EVENT PHILOSOPHY
============================================================
- Events describe what happened; they never drive decisions
- CRITICAL events are never rate limited
- A failing sink never blocks the others or the caller

============================================================
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx

from .config import EventConfig
from .types import RiskTier

logger = logging.getLogger(__name__)


# ============================================================
# EVENT TYPES
# ============================================================


class IntegrityEventType(str, Enum):
    NEW_REQUEST_SCORED = "new_request_scored"
    FLAG_RAISED = "flag_raised"
    FLAG_RESOLVED = "flag_resolved"
    BOOTH_RISK_CHANGED = "booth_risk_changed"
    CERTIFICATE_GENERATED = "certificate_generated"


@dataclass(frozen=True)
class IntegrityEvent:
    """
    Structured notification for an integrity state change.

    ============================================================
    FIELDS
    ============================================================
    - event_type: What happened
    - entity_id: Request, flag, booth or constituency concerned
    - severity: Tier of the underlying outcome
    - payload: Serialized entity (to_dict output)
    - timestamp: When the event was created
    ============================================================
    """

    event_type: IntegrityEventType
    entity_id: str
    severity: RiskTier = RiskTier.NORMAL
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_telegram_message(self) -> str:
        """Format the event for Telegram markdown."""
        emoji = {
            RiskTier.CRITICAL: "🔴",
            RiskTier.HIGH_RISK: "🟠",
            RiskTier.NEEDS_REVIEW: "🟡",
        }.get(self.severity, "🟢")

        lines = [
            f"{emoji} *INTEGRITY EVENT*",
            "",
            f"*Type:* {self.event_type.value}",
            f"*Entity:* {self.entity_id}",
            f"*Severity:* {self.severity.value}",
            f"*Time:* {self.timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        ]
        reason = self.payload.get("explanation") or self.payload.get("risk_explanation")
        if reason:
            lines.append("")
            lines.append(f"*Reason:* {reason}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "entity_id": self.entity_id,
            "severity": self.severity.value,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================
# EVENT SINK PROTOCOL
# ============================================================


class EventSink(Protocol):
    """
    Destination for integrity events.

    send() returns True when the event was delivered.
    """

    def send(self, event: IntegrityEvent) -> bool:
        ...


# ============================================================
# SINKS
# ============================================================


class LoggingEventSink:
    """Write events to the application log."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def send(self, event: IntegrityEvent) -> bool:
        level = logging.WARNING if event.severity.is_high_severity else logging.INFO
        self._log.log(
            level,
            f"Integrity event: type={event.event_type.value} entity={event.entity_id} "
            f"severity={event.severity.value}",
        )
        return True


class MemoryEventSink:
    """Collect events in memory (tests and API inspection)."""

    def __init__(self, max_events: int = 1000):
        self._max_events = max_events
        self._events: List[IntegrityEvent] = []
        self._lock = threading.Lock()

    def send(self, event: IntegrityEvent) -> bool:
        with self._lock:
            self._events.append(event)
            if len(self._events) > self._max_events:
                del self._events[: len(self._events) - self._max_events]
        return True

    @property
    def events(self) -> List[IntegrityEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: IntegrityEventType) -> List[IntegrityEvent]:
        return [e for e in self.events if e.event_type == event_type]


class TelegramEventSink:
    """
    Send integrity events via Telegram.

    ============================================================
    USAGE
    ============================================================
    Requires a Telegram bot token and chat ID.
    The bot must be added to the chat. Events below
    min_severity are not sent.
    ============================================================
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        min_severity: RiskTier = RiskTier.HIGH_RISK,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            bot_token: Telegram bot token
            chat_id: Target chat/channel ID
            min_severity: Lowest event severity forwarded
            timeout: HTTP timeout in seconds
            client: Preconfigured httpx client (created per send if omitted)
        """
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._min_severity = min_severity
        self._timeout = timeout
        self._client = client

    def send(self, event: IntegrityEvent) -> bool:
        if event.severity.severity_order < self._min_severity.severity_order:
            return False

        url = f"https://api.telegram.org/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": self._chat_id,
            "text": event.to_telegram_message(),
            "parse_mode": "Markdown",
        }

        try:
            if self._client is not None:
                response = self._client.post(url, json=payload, timeout=self._timeout)
            else:
                with httpx.Client() as client:
                    response = client.post(url, json=payload, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.warning(f"Telegram send failed: type={event.event_type.value} error={e}")
            return False

        if response.status_code != 200:
            logger.warning(
                f"Telegram send rejected: type={event.event_type.value} "
                f"status={response.status_code}"
            )
            return False
        return True


# ============================================================
# RATE LIMITER
# ============================================================


class EventRateLimiter:
    """
    Rate limits events to prevent notification spam.

    ============================================================
    LOGIC
    ============================================================
    - Track last event time per (event type, entity)
    - Enforce a minimum interval between events
    - Always allow CRITICAL events
    ============================================================
    """

    def __init__(self, min_interval_seconds: float = 0.0):
        self._min_interval = timedelta(seconds=min_interval_seconds)
        self._last_sent: Dict[Tuple[str, str], datetime] = {}
        self._lock = threading.Lock()

    def should_send(self, event: IntegrityEvent) -> bool:
        if event.severity == RiskTier.CRITICAL:
            return True

        with self._lock:
            last = self._last_sent.get((event.event_type.value, event.entity_id))
        if last is None:
            return True
        return (event.timestamp - last) >= self._min_interval

    def record_sent(self, event: IntegrityEvent) -> None:
        with self._lock:
            self._last_sent[(event.event_type.value, event.entity_id)] = event.timestamp


# ============================================================
# EVENT PUBLISHER
# ============================================================


class EventPublisher:
    """
    Fan integrity events out to the configured sinks.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    1. Rate limit events
    2. Deliver to every sink
    3. Isolate sink failures (logged, never raised)
    ============================================================
    """

    def __init__(
        self,
        config: Optional[EventConfig] = None,
        sinks: Optional[List[EventSink]] = None,
    ):
        self._config = config or EventConfig()
        self._sinks: List[EventSink] = list(sinks or [])
        self._rate_limiter = EventRateLimiter(
            min_interval_seconds=self._config.min_seconds_between_events
        )

    def add_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    @property
    def sinks(self) -> List[EventSink]:
        return list(self._sinks)

    def publish(self, event: IntegrityEvent) -> bool:
        """
        Publish one event.

        Returns:
            True if at least one sink accepted it
        """
        if not self._rate_limiter.should_send(event):
            logger.debug(
                f"Event rate limited: type={event.event_type.value} entity={event.entity_id}"
            )
            return False

        delivered = False
        for sink in self._sinks:
            try:
                if sink.send(event):
                    delivered = True
            except Exception:
                logger.exception(
                    f"Event sink failed: sink={type(sink).__name__} "
                    f"type={event.event_type.value}"
                )

        if delivered:
            self._rate_limiter.record_sent(event)
        return delivered

    def emit(
        self,
        event_type: IntegrityEventType,
        entity_id: str,
        payload: Optional[Dict[str, Any]] = None,
        severity: RiskTier = RiskTier.NORMAL,
        timestamp: Optional[datetime] = None,
    ) -> IntegrityEvent:
        """Build and publish an event; returns the event either way."""
        event = IntegrityEvent(
            event_type=event_type,
            entity_id=entity_id,
            severity=severity,
            payload=payload or {},
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        self.publish(event)
        return event


# ============================================================
# FACTORY FUNCTIONS
# ============================================================


def create_logging_publisher(config: Optional[EventConfig] = None) -> EventPublisher:
    """Publisher that writes every event to the log."""
    return EventPublisher(config=config, sinks=[LoggingEventSink()])


def create_telegram_publisher(
    bot_token: str,
    chat_id: str,
    config: Optional[EventConfig] = None,
) -> EventPublisher:
    """
    Publisher that logs every event and forwards severe ones to Telegram.

    Args:
        bot_token: Telegram bot token
        chat_id: Target chat ID
        config: Optional event configuration

    Returns:
        Configured EventPublisher
    """
    config = config or EventConfig()
    publisher = create_logging_publisher(config)
    publisher.add_sink(TelegramEventSink(
        bot_token=bot_token,
        chat_id=chat_id,
        min_severity=RiskTier(config.telegram_min_severity),
    ))
    return publisher


def create_publisher_from_config(config: Optional[EventConfig] = None) -> EventPublisher:
    """Telegram-enabled publisher when credentials are configured, else logging only."""
    config = config or EventConfig()
    if config.telegram_enabled and config.telegram_bot_token and config.telegram_chat_id:
        return create_telegram_publisher(config.telegram_bot_token, config.telegram_chat_id, config)
    return create_logging_publisher(config)
