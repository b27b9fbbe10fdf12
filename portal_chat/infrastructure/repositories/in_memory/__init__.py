"""
In-Memory Repository Implementations.

Process-local stores for the chat core. Data is lost on process restart.
"""

from .analytics_sink import InMemoryAnalyticsSink
from .cv_content_store import InMemoryCVContentStore
from .session_repository import InMemoryChatSessionRepository
from .vector_store import InMemoryVectorStore

__all__ = [
    "InMemoryAnalyticsSink",
    "InMemoryCVContentStore",
    "InMemoryChatSessionRepository",
    "InMemoryVectorStore",
]
