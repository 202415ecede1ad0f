"""
Core data model and shared state.

Only leaf modules are imported here. The listener depends on
nfsen_exporter.protocol, which itself depends on these models.
"""

from .models import MetricRecord, ProtocolCounters
from .store import MetricStore

__all__ = ["MetricRecord", "ProtocolCounters", "MetricStore"]
