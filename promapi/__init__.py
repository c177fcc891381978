"""Client for the Prometheus HTTP API v1: queries, status and admin endpoints."""

__version__ = "0.1.0"

__all__ = ["api", "client", "model", "types"]