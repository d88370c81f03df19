"""Prometheus metrics for attribution volume, balance integrity, payouts and webhook performance"""

from prometheus_client import Counter, Histogram, Gauge

# Ledger metrics
transactions_attributed_counter = Counter(
    "ledger_transactions_attributed_total",
    "Transactions attributed to a balance period",
    ["kind"],
)

balance_index_fallback_counter = Counter(
    "balance_index_fallback_total",
    "Unpaid balance reads that fell back from the index to direct summation",
)

integrity_discrepancy_counter = Counter(
    "ledger_integrity_discrepancies_total",
    "Balance reads or reconciliations whose two sums disagreed",
    ["source"],  # index | reconcile
)

# Payout metrics
payouts_scheduled_counter = Counter(
    "payouts_scheduled_total",
    "next_payout_date decisions",
    ["track", "outcome"],  # instant | standard, due | not_due
)

payouts_recorded_counter = Counter(
    "payouts_recorded_total",
    "Payout records created",
    ["track"],
)

payout_amount_bucket_counter = Counter(
    "payout_amount_bucket",
    "Recorded payouts by amount bucket",
    ["bucket"],  # <$100, $100-$1k, $1k-$10k, $10k+
)

unpaid_periods_gauge = Gauge(
    "ledger_unpaid_periods_last_read",
    "Unpaid balance periods seen by the most recent balance read",
)

# Forfeiture metrics
forfeitures_counter = Counter(
    "balance_forfeitures_total",
    "Balance forfeitures",
    ["reason"],
)

forfeited_cents_counter = Counter(
    "balance_forfeited_cents_total",
    "Cents written off by forfeiture",
    ["reason"],
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook deliveries",
)

# Eligibility API metrics
eligibility_failures_counter = Counter(
    "eligibility_fetch_failures_total",
    "Failed instant-payout eligibility calls",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payout(amount_cents: int, instant: bool) -> None:
    """Record payout metrics for volume and size distribution"""
    payouts_recorded_counter.labels(track="instant" if instant else "standard").inc()

    if amount_cents < 10_000:
        bucket = "<$100"
    elif amount_cents < 100_000:
        bucket = "$100-$1k"
    elif amount_cents < 1_000_000:
        bucket = "$1k-$10k"
    else:
        bucket = "$10k+"

    payout_amount_bucket_counter.labels(bucket=bucket).inc()


def record_forfeiture(reason: str, amount_cents: int) -> None:
    forfeitures_counter.labels(reason=reason).inc()
    forfeited_cents_counter.labels(reason=reason).inc(amount_cents)
