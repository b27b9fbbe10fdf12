"""
===============================================================================
CRC CARD: schemas/__init__.py
===============================================================================

Module:
    HTTP schemas package (Pydantic DTOs)

Rules:
    - Schemas do NOT import infrastructure.
    - Schemas do NOT run use cases.
    - Types and input/output validation only.
===============================================================================
"""

__all__ = []
