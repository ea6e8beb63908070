"""Service logic tests"""
import json
import logging
import pytest
from unittest.mock import Mock, patch

import stripe
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from app.core.config import Settings, settings
from app.core.logging import setup_logging
from app.core.otel import initialize_tracing
from app.core.exceptions import (
    SignatureInvalid, MalformedPayload, WebhookNotConfigured, LookupNotFound,
    NotificationDeliveryFailed, PersistenceFailure
)
from app.db.session import engine_options
from app.models.activity_log import ActivityLog
from app.models.email_log import EmailLog
from app.services.activity_service import log_activity
from app.services.email_service import send_payment_confirmation_email
from app.services.notification_service import (
    claim_notification, deliver_notification, SENT, FAILED, DUPLICATE
)
from app.services.stripe_service import (
    _get_stripe_value, format_amount, retrieve_customer_email,
    get_checkout_plan_details, get_invoice_plan_details
)
from app.services.webhook_service import verify_webhook_event, EventType
from factories import sign_payload, make_event, RESEND_TEST_DELIVERED


@pytest.mark.critical
class TestVerifyWebhookEvent:
    """Signature verification and event parsing"""

    def test_valid_signature_yields_typed_event(self):
        payload = make_event("invoice.payment_failed", {"id": "in_1"}, event_id="evt_42")
        event = verify_webhook_event(payload.encode(), sign_payload(payload))

        assert event.id == "evt_42"
        assert event.type is EventType.PAYMENT_FAILED
        assert event.raw_type == "invoice.payment_failed"
        assert event.data == {"id": "in_1"}

    def test_unknown_type_maps_to_other(self):
        payload = make_event("charge.refunded", {"id": "ch_1"})
        event = verify_webhook_event(payload.encode(), sign_payload(payload))
        assert event.type is EventType.OTHER

    def test_missing_header_raises(self):
        payload = make_event("invoice.payment_failed", {"id": "in_1"})
        with pytest.raises(SignatureInvalid):
            verify_webhook_event(payload.encode(), None)

    def test_wrong_secret_raises(self):
        payload = make_event("invoice.payment_failed", {"id": "in_1"})
        with pytest.raises(SignatureInvalid):
            verify_webhook_event(payload.encode(), sign_payload(payload, secret="whsec_other"))

    def test_non_object_payload_raises(self):
        payload = json.dumps(["not", "an", "event"])
        with pytest.raises(MalformedPayload):
            verify_webhook_event(payload.encode(), sign_payload(payload))

    def test_invalid_utf8_raises(self):
        with pytest.raises(MalformedPayload):
            verify_webhook_event(b"\xff\xfe", "t=1,v1=abc")

    def test_no_secret_and_no_unsigned_mode_raises(self):
        payload = make_event("invoice.payment_failed", {"id": "in_1"})
        with patch.object(settings, "STRIPE_WEBHOOK_SECRET", ""):
            with pytest.raises(WebhookNotConfigured) as exc_info:
                verify_webhook_event(payload.encode(), None)
        assert exc_info.value.status_code == 500

    def test_unsigned_mode_still_validates_shape(self):
        with patch.object(settings, "STRIPE_WEBHOOK_SECRET", ""), \
                patch.object(settings, "STRIPE_WEBHOOK_ALLOW_UNSIGNED", True):
            with pytest.raises(MalformedPayload):
                verify_webhook_event(b'{"id": "evt_1"}', None)


@pytest.mark.high
class TestStripeHelpers:
    """Stripe object access and plan detail extraction"""

    def test_get_stripe_value_prefers_item_access(self):
        obj = {"items": {"data": [1]}, "id": "sub_1"}
        assert _get_stripe_value(obj, "items")["data"] == [1]
        assert _get_stripe_value(obj, "missing", "fallback") == "fallback"

    def test_get_stripe_value_on_plain_objects(self):
        assert _get_stripe_value(Mock(email="a@b.c"), "email") == "a@b.c"
        assert _get_stripe_value(None, "email", "x") == "x"

    def test_format_amount(self):
        assert format_amount(4900, "usd") == "$49.00"
        assert format_amount(1999, "eur") == "€19.99"
        assert format_amount(500, "jpy") == "5.00 JPY"
        assert format_amount(None) == "$0.00"

    def test_retrieve_customer_email(self, mock_stripe_api):
        assert retrieve_customer_email("cus_test123") == RESEND_TEST_DELIVERED

    def test_retrieve_customer_without_email_raises(self, mock_stripe_api):
        mock_stripe_api.Customer.retrieve.return_value = {"id": "cus_test123", "email": None}
        with pytest.raises(LookupNotFound):
            retrieve_customer_email("cus_test123")

    def test_retrieve_customer_api_error_raises(self, mock_stripe_api):
        mock_stripe_api.Customer.retrieve.side_effect = stripe.APIConnectionError("network down")
        with pytest.raises(LookupNotFound):
            retrieve_customer_email("cus_test123")

    def test_checkout_plan_details_from_line_items(self, mock_stripe_api):
        session = {
            "amount_total": 9900,
            "currency": "usd",
            "line_items": {"data": [{
                "description": "TaekUp Annual",
                "amount_total": 49900,
                "price": {"recurring": {"interval": "year"}},
            }]},
        }
        details = get_checkout_plan_details(session)

        assert details["plan_name"] == "TaekUp Annual"
        assert details["amount"] == 49900
        assert details["billing_period"] == "annual"
        mock_stripe_api.Subscription.retrieve.assert_not_called()

    def test_checkout_plan_details_from_subscription(self, mock_stripe_api):
        details = get_checkout_plan_details({"subscription": "sub_test123", "amount_total": 0, "currency": "usd"})

        assert details["plan_name"] == "TaekUp Pro"
        assert details["amount"] == 4900
        assert details["billing_period"] == "monthly"

    def test_checkout_plan_details_fall_back_on_lookup_error(self, mock_stripe_api):
        mock_stripe_api.Subscription.retrieve.side_effect = stripe.InvalidRequestError("No such subscription", "id")
        details = get_checkout_plan_details({"subscription": "sub_gone", "amount_total": 2500})

        assert details["plan_name"] == settings.DEFAULT_PLAN_NAME
        assert details["amount"] == 2500
        assert details["billing_period"] == settings.DEFAULT_BILLING_PERIOD

    def test_invoice_plan_details_without_lines(self):
        details = get_invoice_plan_details({"id": "in_1"})
        assert details == {"plan_name": settings.DEFAULT_PLAN_NAME, "billing_period": "Monthly"}


@pytest.mark.critical
class TestNotificationFence:
    """At-most-once delivery via the email log"""

    def test_second_claim_is_refused(self, db_session, test_club):
        first = claim_notification(db_session, test_club.id, "payment_confirmation", RESEND_TEST_DELIVERED)
        second = claim_notification(db_session, test_club.id, "payment_confirmation", RESEND_TEST_DELIVERED)

        assert first is not None
        assert first.status == "pending"
        assert second is None
        assert db_session.query(EmailLog).count() == 1

    def test_different_reference_is_a_separate_slot(self, db_session, test_club):
        assert claim_notification(db_session, test_club.id, "payment_confirmation", "a@b.c", reference="invoice:1")
        assert claim_notification(db_session, test_club.id, "payment_confirmation", "a@b.c", reference="invoice:2")

    def test_any_reference_claim_sees_other_references(self, db_session, test_club):
        assert claim_notification(db_session, test_club.id, "payment_confirmation", "a@b.c", reference="invoice:1")

        blocked = claim_notification(db_session, test_club.id, "payment_confirmation", "a@b.c", any_reference=True)
        other_kind = claim_notification(db_session, test_club.id, "password_reset", "a@b.c", any_reference=True)

        assert blocked is None
        assert other_kind is not None

    def test_any_reference_claim_ignores_failed_rows(self, db_session, test_club):
        failing = Mock(side_effect=NotificationDeliveryFailed("rejected", recipient="a@b.c"))
        deliver_notification(db_session, test_club.id, "payment_confirmation", "a@b.c", failing, reference="invoice:1")

        send = Mock(return_value="msg_3")
        outcome = deliver_notification(
            db_session, test_club.id, "payment_confirmation", "a@b.c", send, any_reference=True
        )
        assert outcome == SENT

    def test_deliver_sends_once(self, db_session, test_club):
        send = Mock(return_value="msg_1")

        assert deliver_notification(db_session, test_club.id, "payment_confirmation", "a@b.c", send) == SENT
        assert deliver_notification(db_session, test_club.id, "payment_confirmation", "a@b.c", send) == DUPLICATE
        send.assert_called_once()

        log = db_session.query(EmailLog).one()
        assert log.status == "sent"
        assert log.message_id == "msg_1"
        assert log.sent_at is not None

    def test_failed_delivery_releases_slot(self, db_session, test_club):
        failing = Mock(side_effect=NotificationDeliveryFailed("rejected", recipient="a@b.c"))
        assert deliver_notification(db_session, test_club.id, "payment_confirmation", "a@b.c", failing) == FAILED

        send = Mock(return_value="msg_2")
        assert deliver_notification(db_session, test_club.id, "payment_confirmation", "a@b.c", send) == SENT
        statuses = sorted(log.status for log in db_session.query(EmailLog).all())
        assert statuses == ["failed", "sent"]

    def test_unexpected_error_releases_slot_and_propagates(self, db_session, test_club):
        with pytest.raises(RuntimeError):
            deliver_notification(
                db_session, test_club.id, "payment_confirmation", "a@b.c", Mock(side_effect=RuntimeError("boom"))
            )
        assert db_session.query(EmailLog).one().status == "failed"

    def test_missing_api_key_is_a_delivery_failure(self, db_session, test_club):
        with patch.object(settings, "RESEND_API_KEY", ""):
            outcome = deliver_notification(
                db_session, test_club.id, "payment_confirmation", "a@b.c",
                lambda: send_payment_confirmation_email("a@b.c", {"club_name": "Tiger"})
            )
        assert outcome == FAILED
        assert "RESEND_API_KEY" in db_session.query(EmailLog).one().error


@pytest.mark.high
class TestEmailContent:
    """Transactional email rendering"""

    def test_confirmation_escapes_html(self, mock_email_service):
        send_payment_confirmation_email(RESEND_TEST_DELIVERED, {
            "owner_name": "<script>alert(1)</script>",
            "club_name": "Tiger & Dragon",
            "plan_name": "TaekUp Pro",
            "amount": "$49.00",
            "billing_period": "monthly",
        })
        html = mock_email_service.Emails.send.call_args[0][0]["html"]
        assert "<script>" not in html
        assert "Tiger &amp; Dragon" in html

    def test_provider_without_id_is_a_failure(self, mock_email_service):
        mock_email_service.Emails.send.return_value = {}
        with pytest.raises(NotificationDeliveryFailed):
            send_payment_confirmation_email(RESEND_TEST_DELIVERED, {})


@pytest.mark.high
class TestActivityLog:
    """Audit log writes"""

    def test_log_activity_persists_entry(self, db_session, test_club):
        log_activity(db_session, "checkout_completed", "Checkout Completed", "desc", club_id=test_club.id, metadata={"k": "v"})

        entry = db_session.query(ActivityLog).one()
        assert entry.event_type == "checkout_completed"
        assert entry.event_metadata == {"k": "v"}
        assert entry.actor_type == "system"

    def test_log_activity_wraps_database_errors(self, db_session):
        with patch.object(db_session, "commit", side_effect=OperationalError("INSERT", {}, Exception("locked"))):
            with pytest.raises(PersistenceFailure):
                log_activity(db_session, "payment_failed", "Payment Failed")


@pytest.mark.high
class TestSettings:
    """Configuration validation"""

    def test_unsigned_webhooks_rejected_in_production_any_case(self):
        for environment in ("production", "Production", " PRODUCTION "):
            with pytest.raises(ValidationError):
                Settings(ENVIRONMENT=environment, STRIPE_WEBHOOK_ALLOW_UNSIGNED=True, STRIPE_WEBHOOK_SECRET="")

    def test_environment_is_normalized(self):
        assert Settings(ENVIRONMENT=" Development ").ENVIRONMENT == "development"


@pytest.mark.medium
class TestInfrastructure:
    """Database engine, logging and tracing setup"""

    def test_engine_options_by_backend(self):
        assert engine_options("sqlite:///:memory:") == {"connect_args": {"check_same_thread": False}}
        assert engine_options("postgresql://u:p@db/taekup") == {"pool_pre_ping": True, "pool_recycle": 3600}

    def test_setup_logging_quiets_client_libraries(self):
        with patch("app.core.logging.logging.basicConfig") as basic_config:
            setup_logging("debug")

        assert basic_config.call_args.kwargs["level"] == logging.DEBUG
        assert logging.getLogger("openai").level == logging.WARNING
        assert logging.getLogger("stripe").level == logging.WARNING

    def test_tracing_disabled_without_endpoint(self):
        with patch.object(settings, "OTEL_EXPORTER_OTLP_ENDPOINT", ""), \
                patch("app.core.otel.trace.set_tracer_provider") as set_provider:
            assert initialize_tracing() is False
        set_provider.assert_not_called()

    def test_tracing_exports_to_configured_endpoint(self):
        with patch.object(settings, "OTEL_EXPORTER_OTLP_ENDPOINT", "collector:4317"), \
                patch("app.core.otel.OTLPSpanExporter") as exporter, \
                patch("app.core.otel.trace.set_tracer_provider") as set_provider:
            assert initialize_tracing() is True

        exporter.assert_called_once_with(endpoint="collector:4317", insecure=True)
        set_provider.assert_called_once()
