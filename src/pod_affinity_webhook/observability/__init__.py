"""
Observability utilities for the pod affinity webhook.

This module provides metrics, leader election, tracing and structured
logging capabilities for production monitoring and troubleshooting.
"""

from .leader_election import (
    LeaderElectionMonitor,
    LeadershipOracle,
    StandaloneLeadership,
)
from .logging import OperatorLogger, setup_structured_logging
from .metrics import MetricsServer, get_metrics_registry

__all__ = [
    "LeaderElectionMonitor",
    "LeadershipOracle",
    "MetricsServer",
    "OperatorLogger",
    "StandaloneLeadership",
    "get_metrics_registry",
    "setup_structured_logging",
]
