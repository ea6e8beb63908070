import logging
import stripe
from typing import Dict, Optional, Any
from datetime import datetime, timezone

from app.core.config import settings, ANNUAL_PERIOD_THRESHOLD_SECONDS
from app.core.exceptions import LookupNotFound

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY

BILLING_INTERVALS = {
    "day": "daily",
    "week": "weekly",
    "month": "monthly",
    "year": "annual",
}

CURRENCY_SYMBOLS = {"usd": "$", "eur": "€", "gbp": "£", "cad": "CA$", "aud": "A$"}

# ============================================================================
# STRIPE OBJECT ACCESS HELPERS
# ============================================================================

def _get_stripe_value(obj: Any, key: str, default=None):
    """Safely extract value from Stripe object (supports both dict and attribute access)."""
    if obj is None:
        return default
    # Item access first: attribute lookup would hit mapping methods such as .items
    if isinstance(obj, dict):
        value = obj.get(key)
    elif hasattr(obj, "__getitem__") and not isinstance(obj, (str, bytes)):
        try:
            value = obj[key]
        except (KeyError, IndexError, TypeError):
            value = getattr(obj, key, None)
    else:
        value = getattr(obj, key, None)
    return default if value is None else value


def _get_nested(obj: Any, *keys: str, default=None):
    """Walk a chain of keys through Stripe objects/dicts, returning default on any gap."""
    for key in keys:
        obj = _get_stripe_value(obj, key)
        if obj is None:
            return default
    return obj


def _first_line(obj: Any) -> Any:
    """First entry of a Stripe list attribute such as invoice.lines or session.line_items"""
    for key in ("lines", "line_items"):
        data = _get_nested(obj, key, "data")
        if data:
            return data[0]
    return None


def from_timestamp(ts: Optional[int]) -> Optional[datetime]:
    """Convert a Stripe unix timestamp to an aware datetime"""
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def format_amount(amount_cents: int, currency: str = "usd") -> str:
    """Format minor units for display in emails and activity descriptions"""
    currency = (currency or "usd").lower()
    amount = (amount_cents or 0) / 100.0
    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol:
        return f"{symbol}{amount:.2f}"
    return f"{amount:.2f} {currency.upper()}"

# ============================================================================
# CUSTOMER LOOKUPS
# ============================================================================

def retrieve_customer_email(customer_id: Optional[str]) -> str:
    """Resolve a Stripe customer id to its email address.

    Raises:
        LookupNotFound: customer missing, deleted, without email, or not retrievable
    """
    if not customer_id:
        raise LookupNotFound("Event has no customer")
    if not isinstance(customer_id, str):
        # Expanded customer object
        customer_id = _get_stripe_value(customer_id, "id")

    try:
        customer = stripe.Customer.retrieve(customer_id)
    except stripe.StripeError as e:
        logger.warning(f"Could not retrieve Stripe customer {customer_id}: {e}")
        raise LookupNotFound(f"Customer {customer_id} not retrievable", object_id=customer_id)

    if not customer or _get_stripe_value(customer, "deleted", False):
        raise LookupNotFound(f"Customer {customer_id} not found or deleted", object_id=customer_id)

    email = _get_stripe_value(customer, "email")
    if not email:
        raise LookupNotFound(f"Customer {customer_id} has no email", object_id=customer_id)
    return email

# ============================================================================
# PLAN DETAILS
# ============================================================================

def _billing_period_from_interval(interval: Optional[str]) -> str:
    return BILLING_INTERVALS.get(interval or "", settings.DEFAULT_BILLING_PERIOD)


def _plan_details_from_subscription(subscription_id: str) -> Dict[str, Any]:
    """Look up subscription -> price -> product for a checkout without line items"""
    subscription = stripe.Subscription.retrieve(subscription_id)
    items = _get_nested(subscription, "items", "data")
    if not items:
        raise LookupNotFound(f"Subscription {subscription_id} has no items", object_id=subscription_id)

    price = _get_stripe_value(items[0], "price")
    product = _get_stripe_value(price, "product")
    if isinstance(product, str):
        product = stripe.Product.retrieve(product)

    return {
        "plan_name": _get_stripe_value(product, "name") or settings.DEFAULT_PLAN_NAME,
        "amount": _get_stripe_value(price, "unit_amount"),
        "billing_period": _billing_period_from_interval(_get_nested(price, "recurring", "interval")),
    }


def get_checkout_plan_details(session: Any) -> Dict[str, Any]:
    """Plan name, amount and billing period for a completed checkout session.

    Prefers line items carried on the session and falls back to looking up the
    subscription. Never raises: any lookup failure yields the default plan.
    """
    details = {
        "plan_name": settings.DEFAULT_PLAN_NAME,
        "amount": _get_stripe_value(session, "amount_total", 0),
        "currency": _get_stripe_value(session, "currency", "usd"),
        "billing_period": settings.DEFAULT_BILLING_PERIOD,
    }

    line = _first_line(session)
    if line is not None:
        price = _get_stripe_value(line, "price")
        details["plan_name"] = (
            _get_stripe_value(line, "description")
            or _get_nested(price, "product", "name")
            or settings.DEFAULT_PLAN_NAME
        )
        details["amount"] = _get_stripe_value(line, "amount_total", details["amount"])
        details["billing_period"] = _billing_period_from_interval(_get_nested(price, "recurring", "interval"))
        return details

    subscription_id = _get_stripe_value(session, "subscription")
    if not subscription_id:
        return details

    try:
        looked_up = _plan_details_from_subscription(subscription_id)
    except Exception as e:
        logger.warning(f"Falling back to default plan details for subscription {subscription_id}: {e}")
        return details

    details["plan_name"] = looked_up["plan_name"]
    details["billing_period"] = looked_up["billing_period"]
    if not details["amount"] and looked_up["amount"]:
        details["amount"] = looked_up["amount"]
    return details


def get_invoice_plan_details(invoice: Any) -> Dict[str, str]:
    """Plan name and billing period from the first invoice line.

    Lines covering more than 35 days are reported as annual.
    """
    line = _first_line(invoice)
    plan_name = _get_stripe_value(line, "description") or settings.DEFAULT_PLAN_NAME

    billing_period = "Monthly"
    start = _get_nested(line, "period", "start")
    end = _get_nested(line, "period", "end")
    if start and end and end - start > ANNUAL_PERIOD_THRESHOLD_SECONDS:
        billing_period = "Annual"

    return {"plan_name": plan_name, "billing_period": billing_period}
