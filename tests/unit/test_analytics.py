"""
Name: Chat Analytics Unit Tests

Responsibilities:
  - Best-effort event emission (a failing sink never breaks the flow)
  - Metadata coercion to JSON-friendly values
  - Per-subject summary (sessions, ratings, messages, throttles, rejections)
"""

import pytest

from portal_chat.application.analytics import ChatAnalyticsService, emit_chat_event
from portal_chat.application.rate_limiting import RateLimitConfig
from portal_chat.application.usecases import SendMessageInput
from portal_chat.crosscutting.exceptions import InputRejectedError, RateLimitedError
from portal_chat.domain.analytics import ChatEventType
from portal_chat.infrastructure.repositories.in_memory import InMemoryAnalyticsSink

pytestmark = pytest.mark.unit


class _BrokenSink:
    def emit(self, event):
        raise RuntimeError("disk full")


def test_emit_without_sink_is_a_no_op():
    emit_chat_event(None, ChatEventType.MESSAGE_SENT, subject_id="ada")


def test_failing_sink_does_not_raise():
    emit_chat_event(_BrokenSink(), ChatEventType.MESSAGE_SENT, subject_id="ada")


def test_metadata_is_coerced():
    sink = InMemoryAnalyticsSink()

    emit_chat_event(
        sink,
        ChatEventType.MESSAGE_REJECTED,
        subject_id="ada",
        metadata={"patterns": ("a", "b"), "reason": object, "nested": {1: 2.5}},
    )

    event = sink.list_events("ada")[0]
    assert event.metadata["patterns"] == ["a", "b"]
    assert isinstance(event.metadata["reason"], str)
    assert event.metadata["nested"] == {"1": 2.5}
    assert event.created_at is not None


def test_sink_keeps_latest_events_per_subject():
    sink = InMemoryAnalyticsSink(max_events_per_subject=2)
    for event_type in (
        ChatEventType.SESSION_CREATED,
        ChatEventType.MESSAGE_SENT,
        ChatEventType.SESSION_ENDED,
    ):
        emit_chat_event(sink, event_type, subject_id="ada")
    emit_chat_event(sink, ChatEventType.SESSION_CREATED, subject_id="bob")

    assert [e.event_type for e in sink.list_events("ada")] == [
        ChatEventType.MESSAGE_SENT,
        ChatEventType.SESSION_ENDED,
    ]
    assert len(sink.list_events("ada", limit=1)) == 1
    assert len(sink.list_events("bob")) == 1


def test_summary_aggregates_subject_activity(make_stack, scenario_cv, subject_id):
    stack = make_stack(rate_limits=RateLimitConfig(messages_per_minute=2))
    stack.indexer.build_index(subject_id, scenario_cv)
    service = ChatAnalyticsService(sessions=stack.sessions_repo, events=stack.analytics)

    rated = stack.sessions.create_session(subject_id)
    for question in ("What programming languages do you know?", "What is your education?"):
        stack.generator.send_message(
            SendMessageInput(subject_id=subject_id, message=question, session_id=rated.session_id)
        )
    with pytest.raises(RateLimitedError):
        stack.generator.send_message(
            SendMessageInput(subject_id=subject_id, message="More?", session_id=rated.session_id)
        )
    stack.sessions.end_session(rated.session_id, rating=4)

    other = stack.sessions.create_session(subject_id, personality="friendly")
    with pytest.raises(InputRejectedError):
        stack.generator.send_message(
            SendMessageInput(subject_id=subject_id, message="", session_id=other.session_id)
        )
    stack.sessions.create_session("someone-else")

    summary = service.summary(subject_id)

    assert summary.total_sessions == 2
    assert summary.completed_sessions == 1
    assert summary.average_rating == 4.0
    assert summary.total_messages == 4
    assert summary.average_messages_per_session == 2.0
    assert summary.total_queries == 2
    assert summary.average_response_ms is not None
    assert summary.throttled_count == 1
    assert summary.rejected_count == 1
    assert {s.session_id for s in summary.recent_sessions} == {
        rated.session_id,
        other.session_id,
    }


def test_summary_of_unknown_subject_is_empty(stack):
    service = ChatAnalyticsService(sessions=stack.sessions_repo, events=stack.analytics)

    summary = service.summary("nobody")

    assert summary.total_sessions == 0
    assert summary.average_rating is None
    assert summary.average_messages_per_session == 0.0
    assert summary.recent_sessions == []
