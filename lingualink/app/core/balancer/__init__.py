############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# __init__.py: Backend balancer package exports
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Multi-backend resilience layer for LinguaLink.

Registry, health prober, load balancer and smart keep-alive scheduler.
"""

from lingualink.app.core.balancer.models import (
    Backend,
    HealthRecord,
    LoadBalancingStrategy,
    ProbeResult,
    RequestStats,
    ResourceLevel,
)
from lingualink.app.core.balancer.registry import BackendRegistry
from lingualink.app.core.balancer.prober import HealthProber
from lingualink.app.core.balancer.load_balancer import LoadBalancer
from lingualink.app.core.balancer.keepalive import KeepAliveScheduler

__all__ = [
    "Backend",
    "HealthRecord",
    "LoadBalancingStrategy",
    "ProbeResult",
    "RequestStats",
    "ResourceLevel",
    "BackendRegistry",
    "HealthProber",
    "LoadBalancer",
    "KeepAliveScheduler",
]
