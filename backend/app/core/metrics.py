"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY


def _counter(name, documentation, labelnames=()):
    # Re-importing the module (e.g. under test reloads) must not register twice
    try:
        return Counter(name, documentation, labelnames)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


# Webhook metrics
webhook_events_counter = _counter(
    'taekup_webhook_events_total',
    'Total number of Stripe webhook events received',
    ['event_type', 'outcome']
)

# Notification metrics
notifications_counter = _counter(
    'taekup_notifications_total',
    'Total number of transactional emails attempted',
    ['kind', 'status']
)

# Payment metrics
payments_recorded_counter = _counter(
    'taekup_payments_recorded_total',
    'Total number of payment records written',
    ['status']
)

# Auth metrics
login_attempts_counter = _counter(
    'taekup_login_attempts_total',
    'Total number of login attempts',
    ['status', 'method']
)

# AI metrics
class_plans_counter = _counter(
    'taekup_class_plans_total',
    'Total number of class plans generated',
    ['source']
)
