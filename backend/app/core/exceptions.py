"""Exceptions raised while processing Stripe webhook events"""


class WebhookError(Exception):
    """Base class for webhook processing errors"""

    status_code = 500

    def __init__(self, message: str, event_id: str = None):
        self.message = message
        self.event_id = event_id
        super().__init__(self.message)

    def __str__(self):
        if self.event_id:
            return f"[{self.event_id}] {self.message}"
        return self.message


class SignatureInvalid(WebhookError):
    """Signature header missing or does not match the payload"""

    status_code = 400

    def __init__(self, message: str = "Invalid signature", event_id: str = None):
        super().__init__(message, event_id)


class MalformedPayload(WebhookError):
    """Payload is not a well-formed Stripe event"""

    status_code = 400

    def __init__(self, message: str = "Invalid payload", event_id: str = None):
        super().__init__(message, event_id)


class WebhookNotConfigured(WebhookError):
    """No webhook secret configured and unsigned mode not enabled"""

    def __init__(self, message: str = "Webhook secret not configured", event_id: str = None):
        super().__init__(message, event_id)


class LookupNotFound(WebhookError):
    """A customer, club or Stripe object referenced by the event could not be found"""

    status_code = 404

    def __init__(self, message: str, event_id: str = None, object_id: str = None):
        self.object_id = object_id
        super().__init__(message, event_id)


class NotificationDeliveryFailed(WebhookError):
    """Email provider rejected or failed to deliver a notification"""

    def __init__(self, message: str, recipient: str = None):
        self.recipient = recipient
        super().__init__(message)


class PersistenceFailure(WebhookError):
    """A database write failed; the event should be retried by Stripe"""

    def __init__(self, message: str, event_id: str = None):
        super().__init__(message, event_id)
