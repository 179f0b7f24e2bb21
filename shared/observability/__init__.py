from .setup import setup_observability
from .metrics import (
    ecomm_checkout_total,
    ecomm_checkout_duration_seconds,
    ecomm_stock_conflicts_total,
    ecomm_payment_outcomes_total,
    ecomm_notifications_total,
    ecomm_carts_created_total,
)
