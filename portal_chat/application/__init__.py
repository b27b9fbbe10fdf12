"""
Application layer: chat services and policies.

Modules:
  - content_indexer: CV content -> vector index (atomic swap)
  - retrieval_engine / context_builder: query -> bounded, attributed context
  - safety / prompt_injection_detector / rate_limiting: inbound gatekeeping
  - chat_session_manager: session lifecycle state machine
  - prompt_builder / suggested_questions: prompt and UX helpers
  - analytics: best-effort chat events + per-subject summary
  - usecases: request-level orchestration (ResponseGenerator, ...)
"""
