"""Prometheus metrics for ledger throughput, commission fan-out and signature outcomes"""

from prometheus_client import Counter, Histogram

# Ledger metrics
ledger_operation_counter = Counter(
    "telemed_ledger_operations_total",
    "Ledger operations by outcome",
    ["operation", "outcome"],  # outcome: success | insufficient_balance | not_found | error
)

ledger_credits_counter = Counter(
    "telemed_ledger_credits_moved_total",
    "TMC credits moved through the ledger",
    ["direction"],  # in | out
)

ledger_operation_latency_histogram = Histogram(
    "telemed_ledger_operation_seconds",
    "Ledger unit-of-work duration",
    ["operation"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

commission_posting_counter = Counter(
    "telemed_commission_postings_total",
    "Hierarchical commission postings by level",
    ["level"],
)

# Signature metrics
signature_counter = Counter(
    "telemed_signatures_total",
    "Prescription signing attempts",
    ["outcome"],  # signed | failed
)

signature_verification_counter = Counter(
    "telemed_signature_verifications_total",
    "Signature verification outcomes",
    ["kind", "outcome"],  # kind: cryptographic | electronic; outcome: valid | invalid
)

revocation_failure_counter = Counter(
    "telemed_revocation_check_failures_total",
    "Failed certificate revocation lookups",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_ledger_operation(operation: str, outcome: str, amount: int = 0) -> None:
    """Record a ledger operation outcome and the volume of credits it moved"""
    ledger_operation_counter.labels(operation=operation, outcome=outcome).inc()

    if outcome != "success" or amount == 0:
        return
    if amount > 0:
        ledger_credits_counter.labels(direction="in").inc(amount)
    else:
        ledger_credits_counter.labels(direction="out").inc(-amount)


def record_verification(kind: str, valid: bool) -> None:
    signature_verification_counter.labels(kind=kind, outcome="valid" if valid else "invalid").inc()
