"""CLI package for the Model Discovery Service.

Example usage:
    model-discovery start --reload
    model-discovery search mistral --quant Q4_K_M
    model-discovery cache-stats
"""

from model_discovery.cli.main import app

__all__ = ["app"]
