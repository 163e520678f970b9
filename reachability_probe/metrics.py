"""Prometheus collectors for reachability probing."""

from prometheus_client import Counter, Gauge, Histogram

CHECKS_TOTAL = Counter(
    "reachability_checks_total",
    "Settled reachability checks by final status",
    ["status"],
)

PROBE_RUNS_TOTAL = Counter(
    "reachability_probe_runs_total",
    "Completed probe invocations",
)

PROBE_DURATION_SECONDS = Histogram(
    "reachability_probe_duration_seconds",
    "Wall-clock duration of probe invocations",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

CHECKS_IN_FLIGHT = Gauge(
    "reachability_checks_in_flight",
    "Checks issued and not yet released",
)
