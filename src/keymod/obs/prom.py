"""Prometheus instrumentation for the key module.

Metrics live in a private registry; a host that exposes metrics can merge
``render_metrics()`` into its own endpoint. Labels stay low-cardinality (no
paths, no signatures).
"""
from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, generate_latest

REGISTRY = CollectorRegistry()

KEY_OPS = Counter(
    "keymod_key_operations_total",
    "Key operations (signature, encrypt, decrypt) by result.",
    ["op", "result"],
    registry=REGISTRY,
)
TRAVERSALS = Counter(
    "keymod_traversals_total",
    "Parameter graph traversals by flow and result.",
    ["flow", "result"],
    registry=REGISTRY,
)
KEYS_GENERATED = Counter(
    "keymod_keys_generated_total",
    "RSA key pairs generated and written to disk.",
    registry=REGISTRY,
)


def render_metrics() -> bytes:
    return generate_latest(REGISTRY)
