"""Prometheus metrics for the prospect and deal pipelines."""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("cardscout", "Cardscout application info")
app_info.info({"version": "0.1.0", "name": "cardscout"})

# Connector metrics
connector_fetches_total = Counter(
    "connector_fetches_total",
    "Total number of provider/marketplace fetch attempts",
    ["provider", "status"],
)

connector_skipped_records_total = Counter(
    "connector_skipped_records_total",
    "Malformed records skipped while normalizing provider payloads",
    ["provider"],
)

connector_fetch_duration_seconds = Histogram(
    "connector_fetch_duration_seconds",
    "Time spent fetching from a provider",
    ["provider"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

# Scoring metrics
subjects_scored_total = Counter(
    "subjects_scored_total",
    "Subjects that received a composite score",
)

subjects_unscorable_total = Counter(
    "subjects_unscorable_total",
    "Subjects excluded because no ranking input was available",
)

watch_entries_written_total = Counter(
    "watch_entries_written_total",
    "Watch entries written by the prospect analyzer",
    ["operation"],
)

# Deal metrics
deals_found_total = Counter(
    "deals_found_total",
    "Listings that cleared the profit thresholds",
    ["platform"],
)

deals_recorded_total = Counter(
    "deals_recorded_total",
    "Outcome of recording candidate deals",
    ["platform", "outcome"],
)

# Pipeline metrics
pipeline_runs_total = Counter(
    "pipeline_runs_total",
    "Total number of pipeline cycles",
    ["pipeline", "status"],
)

pipeline_last_run_timestamp = Gauge(
    "pipeline_last_run_timestamp",
    "Timestamp of last pipeline cycle",
    ["pipeline"],
)

pipeline_duration_seconds = Histogram(
    "pipeline_duration_seconds",
    "Wall time of a full pipeline cycle",
    ["pipeline"],
    buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0],
)


def record_fetch_success(provider: str, duration: float, skipped: int = 0):
    """Record a successful provider fetch."""
    connector_fetches_total.labels(provider=provider, status="success").inc()
    connector_fetch_duration_seconds.labels(provider=provider).observe(duration)
    if skipped:
        connector_skipped_records_total.labels(provider=provider).inc(skipped)


def record_fetch_error(provider: str, duration: float):
    """Record a failed provider fetch."""
    connector_fetches_total.labels(provider=provider, status="error").inc()
    connector_fetch_duration_seconds.labels(provider=provider).observe(duration)


def record_deal_outcome(platform: str, outcome: str):
    """Record the outcome of recording a deal (inserted/duplicate/conflict/failed)."""
    deals_recorded_total.labels(platform=platform, outcome=outcome).inc()


def record_pipeline_run(pipeline: str, status: str, duration: float):
    """Record a finished pipeline cycle."""
    pipeline_runs_total.labels(pipeline=pipeline, status=status).inc()
    pipeline_duration_seconds.labels(pipeline=pipeline).observe(duration)
    pipeline_last_run_timestamp.labels(pipeline=pipeline).set(time.time())
