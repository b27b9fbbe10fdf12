"""Infrastructure layer: provider adapters, stores, text processing."""
