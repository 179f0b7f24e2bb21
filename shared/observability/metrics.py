from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_checkout_total = Counter(
    "ecomm_checkout_total",
    "Total checkouts processed",
    ["status"],  # Labels: 'success', 'failed'
)

ecomm_checkout_duration_seconds = Histogram(
    "ecomm_checkout_duration_seconds",
    "Checkout duration in seconds",
)

ecomm_stock_conflicts_total = Counter(
    "ecomm_stock_conflicts_total",
    "Conditional stock decrements that found insufficient stock",
)

ecomm_payment_outcomes_total = Counter(
    "ecomm_payment_outcomes_total",
    "Payment gateway outcomes",
    ["outcome"],  # Labels: 'succeeded', 'pending', 'declined', 'gateway_error'
)

ecomm_notifications_total = Counter(
    "ecomm_notifications_total",
    "Order confirmation deliveries",
    ["stage", "outcome"],  # stage: 'dispatch' | 'consume'; outcome: 'delivered' | 'retried' | 'dead_lettered'
)

ecomm_carts_created_total = Counter(
    "ecomm_carts_created_total",
    "Carts created lazily on first access",
)
