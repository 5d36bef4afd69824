"""Room and signalling relay metrics rendered in the Prometheus text format."""

from . import metrics, registry
from .registry import MetricsRegistry

__all__ = ["MetricsRegistry", "metrics", "registry"]
