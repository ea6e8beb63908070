"""Application-level tests: health, metrics and rate limiting"""
import pytest
from unittest.mock import patch

from app.core.config import settings
from factories import make_event, sign_payload


@pytest.mark.high
class TestMonitoring:
    """Health and metrics endpoints"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy", "database": "ok", "stripe_webhook_signing": "enabled", "email": "configured"
        }

    def test_health_reports_unsigned_mode(self, client):
        with patch.object(settings, "STRIPE_WEBHOOK_SECRET", ""), \
                patch.object(settings, "STRIPE_WEBHOOK_ALLOW_UNSIGNED", True):
            response = client.get("/health")
        assert response.json()["stripe_webhook_signing"] == "disabled"

    def test_health_reports_missing_email_key(self, client):
        with patch.object(settings, "RESEND_API_KEY", ""):
            response = client.get("/health")
        assert response.json()["email"] == "not_configured"

    def test_metrics_exposes_webhook_counter(self, client):
        payload = make_event("invoice.payment_failed", {"id": "in_metrics", "amount_due": 100})
        client.post("/api/stripe/webhook", content=payload, headers={"stripe-signature": sign_payload(payload)})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "taekup_webhook_events_total" in response.text


@pytest.mark.medium
class TestRateLimiting:
    """Fixed window rate limits per client"""

    def test_state_changing_requests_are_limited(self, client):
        with patch.object(settings, "RATE_LIMIT_STRICT_REQUESTS", 2):
            codes = [client.post("/api/auth/logout").status_code for _ in range(3)]
        assert codes == [200, 200, 429]

    def test_webhook_is_exempt(self, client):
        payload = make_event("charge.refunded", {"id": "ch_1"})
        headers = {"stripe-signature": sign_payload(payload)}
        with patch.object(settings, "RATE_LIMIT_STRICT_REQUESTS", 1):
            codes = [client.post("/api/stripe/webhook", content=payload, headers=headers).status_code for _ in range(3)]
        assert codes == [200, 200, 200]
