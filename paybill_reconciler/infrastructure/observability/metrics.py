"""Prometheus metrics for reconciliation outcomes, unapplied money and SMS delivery"""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconciliation_counter = Counter(
    "paybill_reconciliation_total",
    "Payment notifications processed",
    ["outcome"],  # done | notify_failed | parse_error | unmatched | already_processed | system_error
)

applied_amount_counter = Counter(
    "paybill_applied_cents_total",
    "Amount applied to debts, in cents",
)

excess_amount_counter = Counter(
    "paybill_excess_cents_total",
    "Amount received but left unapplied after settling every debt, in cents",
)

debt_commit_conflicts_counter = Counter(
    "debt_commit_conflicts_total",
    "Debt writes rejected because the debt changed after it was read",
)

# SMS gateway metrics
sms_latency_histogram = Histogram(
    "sms_send_latency_seconds",
    "SMS gateway response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

sms_failure_counter = Counter(
    "sms_send_failures_total",
    "Failed confirmation SMS sends",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_reconciliation(outcome: str, applied_cents: int = 0, excess_cents: int = 0) -> None:
    """Record outcome and money-flow metrics for one notification"""
    reconciliation_counter.labels(outcome=outcome).inc()

    if applied_cents > 0:
        applied_amount_counter.inc(applied_cents)
    if excess_cents > 0:
        excess_amount_counter.inc(excess_cents)
