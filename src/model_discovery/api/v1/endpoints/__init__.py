"""API v1 endpoints package."""

from model_discovery.api.v1.endpoints import health, models

__all__ = ["health", "models"]
