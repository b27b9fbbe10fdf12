"""
Portal Chat: retrieval-augmented chat about a person's CV.

Layers:
  - domain: entities, ports, value objects (no IO)
  - application: indexing, retrieval, safety, sessions, use cases
  - infrastructure: provider adapters, in-memory stores, resilience
  - interfaces / api: FastAPI routers, schemas, exception handlers
"""

__version__ = "0.1.0"
