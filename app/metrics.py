from prometheus_client import Counter, Gauge, Histogram
# Prometheus metrics definitions

# AI Gateway metrics, labelled by request kind:
# classify, price, listing, moving_plan
ai_requests_total = Counter(
    "ai_requests_total", "Total AI gateway requests", ["kind"]
)

_ai_latency_buckets = (
    0.5,
    1.0,
    2.0,
    4.0,
    8.0,
    16.0,
    32.0,
)

ai_latency_seconds = Histogram(
    "ai_latency_seconds",
    "AI gateway latency",
    ["kind"],
    buckets=_ai_latency_buckets,
)

# Timeouts, malformed replies and SDK errors
ai_failures_total = Counter(
    "ai_failures_total", "Failed AI gateway requests", ["kind"]
)

gpt_timeout_total = Counter(
    "gpt_timeout_total", "Number of GPT timeouts"
)

# Requests refused because the free AI quota is used up
quota_reject_total = Counter(
    "quota_reject_total", "Number of quota rejected requests"
)

sessions_created_total = Counter(
    "sessions_created_total", "Let Go Buddy sessions created", ["scenario"]
)

listings_created_total = Counter(
    "listings_created_total", "Listing rows persisted"
)

# Items whose classification is in flight
items_analyzing = Gauge(
    "items_analyzing", "Number of items awaiting AI classification"
)

__all__ = [
    "ai_requests_total",
    "ai_latency_seconds",
    "ai_failures_total",
    "gpt_timeout_total",
    "quota_reject_total",
    "sessions_created_total",
    "listings_created_total",
    "items_analyzing",
]
