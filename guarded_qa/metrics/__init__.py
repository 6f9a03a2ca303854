"""
Authoritative Metrics Module.

The only sanctioned path to scorecard data.
"""

from guarded_qa.metrics.gateway import MetricsGateway, is_trusted
from guarded_qa.metrics.provider import HttpMetricsProvider, MetricsProvider

__all__ = [
    "MetricsGateway",
    "is_trusted",
    "HttpMetricsProvider",
    "MetricsProvider",
]
