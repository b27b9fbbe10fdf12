"""FastAPI application and exception handlers."""
