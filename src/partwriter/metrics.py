"""Prometheus metrics definitions for partwriter.

All custom metrics use the ``partwriter_`` prefix for namespace isolation.
The writer updates them only after ``init_metrics()`` has been called;
until then the module-level references stay ``None`` and nothing is
registered in the global ``prometheus_client`` registry.
"""

from __future__ import annotations

from prometheus_client import REGISTRY, Counter, write_to_textfile

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Part counters
# ---------------------------------------------------------------------------
parts_uploaded_total: Counter | None = None
bytes_uploaded_total: Counter | None = None

# ---------------------------------------------------------------------------
# Upload outcome counter  (labels: outcome)
# ---------------------------------------------------------------------------
uploads_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Idempotent: repeated calls keep the collectors created by the first one.
    """
    global _initialized
    global parts_uploaded_total, bytes_uploaded_total, uploads_total

    if _initialized:
        return

    parts_uploaded_total = Counter(
        "partwriter_parts_uploaded_total",
        "Total multipart upload parts acknowledged by storage",
    )

    bytes_uploaded_total = Counter(
        "partwriter_bytes_uploaded_total",
        "Total bytes acknowledged by storage in uploaded parts",
    )

    uploads_total = Counter(
        "partwriter_uploads_total",
        "Total multipart uploads by outcome",
        ["outcome"],
    )

    _initialized = True


def record_part(size: int) -> None:
    """Count one acknowledged part of ``size`` bytes."""
    if parts_uploaded_total is not None:
        parts_uploaded_total.inc()
    if bytes_uploaded_total is not None:
        bytes_uploaded_total.inc(size)


def record_upload(outcome: str) -> None:
    """Count one finished upload ("completed" or "aborted")."""
    if uploads_total is not None:
        uploads_total.labels(outcome=outcome).inc()


def write_metrics_file(path: str) -> None:
    """Write the default registry to ``path`` in the text exposition format.

    The file is written atomically, so a node_exporter textfile collector
    never reads a partial export.
    """
    write_to_textfile(path, REGISTRY)
