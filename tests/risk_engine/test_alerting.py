"""
Tests for integrity event publishing.

Tests cover:
- Event formatting
- Rate limiting (CRITICAL always passes)
- Sink failure isolation
- Telegram sink with a stubbed HTTP client
"""

from datetime import timedelta
from unittest.mock import MagicMock

import httpx

from risk_engine.alerting import (
    EventPublisher,
    EventRateLimiter,
    IntegrityEvent,
    IntegrityEventType,
    LoggingEventSink,
    MemoryEventSink,
    TelegramEventSink,
    create_publisher_from_config,
    create_telegram_publisher,
)
from risk_engine.config import EventConfig
from risk_engine.types import RiskTier


def event(clock, severity=RiskTier.HIGH_RISK, entity_id="F-1", offset=0):
    return IntegrityEvent(
        event_type=IntegrityEventType.FLAG_RAISED,
        entity_id=entity_id,
        severity=severity,
        payload={"explanation": "EPIC X appears in 2 different booths: A, B"},
        timestamp=clock.now() + timedelta(seconds=offset),
    )


# =============================================================
# TEST: Formatting
# =============================================================

class TestIntegrityEvent:

    def test_to_dict(self, clock):
        data = event(clock).to_dict()
        assert data["event_type"] == "flag_raised"
        assert data["severity"] == "High Risk"
        assert data["timestamp"] == clock.now().isoformat()

    def test_telegram_message_carries_reason(self, clock):
        text = event(clock).to_telegram_message()
        assert "flag_raised" in text
        assert "2 different booths" in text


# =============================================================
# TEST: Rate limiting
# =============================================================

class TestRateLimiter:

    def test_repeat_within_interval_suppressed(self, clock):
        limiter = EventRateLimiter(min_interval_seconds=60)
        first = event(clock)
        limiter.record_sent(first)

        assert not limiter.should_send(event(clock, offset=30))
        assert limiter.should_send(event(clock, offset=60))

    def test_other_entities_not_suppressed(self, clock):
        limiter = EventRateLimiter(min_interval_seconds=60)
        limiter.record_sent(event(clock))
        assert limiter.should_send(event(clock, entity_id="F-2"))

    def test_critical_always_passes(self, clock):
        limiter = EventRateLimiter(min_interval_seconds=60)
        limiter.record_sent(event(clock, RiskTier.CRITICAL))
        assert limiter.should_send(event(clock, RiskTier.CRITICAL))


# =============================================================
# TEST: Publisher
# =============================================================

class TestPublisher:

    def test_failing_sink_does_not_block_others(self, clock):
        broken = MagicMock()
        broken.send.side_effect = RuntimeError("sink down")
        memory = MemoryEventSink()
        publisher = EventPublisher(sinks=[broken, memory])

        assert publisher.publish(event(clock))
        assert len(memory.events) == 1

    def test_emit_builds_event(self, clock):
        memory = MemoryEventSink()
        publisher = EventPublisher(sinks=[memory, LoggingEventSink()])

        published = publisher.emit(IntegrityEventType.BOOTH_RISK_CHANGED, "B-1", {"booth_id": "B-1"})

        assert memory.of_type(IntegrityEventType.BOOTH_RISK_CHANGED) == [published]

    def test_rate_limited_events_are_dropped(self, clock):
        memory = MemoryEventSink()
        publisher = EventPublisher(EventConfig(min_seconds_between_events=300), [memory])

        publisher.publish(event(clock))
        publisher.publish(event(clock, offset=10))

        assert len(memory.events) == 1

    def test_memory_sink_is_bounded(self, clock):
        memory = MemoryEventSink(max_events=3)
        for n in range(5):
            memory.send(event(clock, entity_id=f"F-{n}"))
        assert [e.entity_id for e in memory.events] == ["F-2", "F-3", "F-4"]

    def test_logging_only_without_credentials(self):
        publisher = create_publisher_from_config(EventConfig())
        assert [type(s) for s in publisher.sinks] == [LoggingEventSink]


# =============================================================
# TEST: Telegram sink
# =============================================================

class TestTelegramSink:

    def test_sends_severe_events(self, clock):
        client = MagicMock()
        client.post.return_value = MagicMock(status_code=200)
        sink = TelegramEventSink("token", "chat", client=client)

        assert sink.send(event(clock))
        url = client.post.call_args[0][0]
        assert url == "https://api.telegram.org/bottoken/sendMessage"
        assert client.post.call_args[1]["json"]["chat_id"] == "chat"

    def test_skips_low_severity(self, clock):
        client = MagicMock()
        sink = TelegramEventSink("token", "chat", client=client)

        assert not sink.send(event(clock, RiskTier.NEEDS_REVIEW))
        client.post.assert_not_called()

    def test_http_error_returns_false(self, clock):
        client = MagicMock()
        client.post.side_effect = httpx.ConnectError("unreachable")
        sink = TelegramEventSink("token", "chat", client=client)

        assert not sink.send(event(clock))

    def test_non_200_returns_false(self, clock):
        client = MagicMock()
        client.post.return_value = MagicMock(status_code=403)
        assert not TelegramEventSink("token", "chat", client=client).send(event(clock))

    def test_factory_adds_telegram_sink(self):
        publisher = create_telegram_publisher("token", "chat")
        assert any(isinstance(s, TelegramEventSink) for s in publisher.sinks)
