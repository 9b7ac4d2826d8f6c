############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# metrics.py: Prometheus metric definitions
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Prometheus metrics shared by the balancer, executor and translation client."""

from prometheus_client import Counter, Gauge

OUTBOUND_REQUESTS = Counter(
    "lingualink_outbound_requests_total",
    "Outbound backend request attempts",
    ["outcome"],  # success, timeout, network, status
)
BACKEND_SWITCHES = Counter(
    "lingualink_backend_switches_total",
    "Number of times the selected backend changed",
)
PROBES = Counter(
    "lingualink_probes_total",
    "Liveness probes issued",
    ["endpoint", "outcome"],
)
TRANSLATIONS = Counter(
    "lingualink_translations_total",
    "Translation requests",
    ["outcome"],  # success, failure, rejected
)
HEALTHY_BACKENDS = Gauge(
    "lingualink_healthy_backends",
    "Number of backends currently eligible for selection",
)
KEEPALIVE_ACTIVE = Gauge(
    "lingualink_keepalive_active_backends",
    "Size of the keep-alive active set",
)
