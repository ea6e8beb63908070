"""Email service - transactional email via Resend"""
import logging
from typing import Optional, Dict, Any
from html import escape
from urllib.parse import quote
import resend
from app.core.config import settings
from app.core.exceptions import NotificationDeliveryFailed

logger = logging.getLogger(__name__)

PAYMENT_CONFIRMATION_SUBJECT = "Payment Confirmed - Thank you for choosing TaekUp!"
PASSWORD_RESET_SUBJECT = "Reset Your TaekUp Password"


def validate_email_config() -> tuple[bool, str]:
    """
    Validate email service configuration.

    Returns:
        tuple: (is_valid, error_message)
    """
    if not settings.RESEND_API_KEY:
        return False, "RESEND_API_KEY is not set in environment variables"

    if not settings.APP_URL:
        return False, "APP_URL is not set in environment variables"

    return True, ""


def _send_email(to: str, subject: str, html: str) -> str:
    """
    Internal helper function to send email via Resend API.

    Args:
        to: Recipient email address
        subject: Email subject
        html: HTML email content

    Returns:
        str: Resend message id

    Raises:
        NotificationDeliveryFailed: Resend not configured, rejected the message, or errored
    """
    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY is not set; skipping email")
        raise NotificationDeliveryFailed("RESEND_API_KEY not configured", recipient=to)

    try:
        resend.api_key = settings.RESEND_API_KEY

        response = resend.Emails.send(
            {
                "from": settings.RESEND_FROM_EMAIL,
                "to": to,
                "subject": subject,
                "html": html,
            }
        )
    except Exception as exc:
        logger.error(f"Failed to send email to {to}: {exc}", exc_info=True)
        raise NotificationDeliveryFailed(str(exc), recipient=to) from exc

    # Resend returns a dict with an 'id' field on success
    email_id = None
    if isinstance(response, dict):
        email_id = response.get('id')
    elif hasattr(response, 'id'):
        email_id = response.id

    if not email_id:
        logger.error(f"Email send returned invalid response: {response} (type: {type(response)})")
        raise NotificationDeliveryFailed("Email provider returned no message id", recipient=to)

    logger.info(f"Email sent successfully to {to} (id: {email_id})")
    return email_id


def _layout(body: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      {body}
      <p>Best,<br>The TaekUp Team</p>
      <p style="color: #999; font-size: 12px; margin-top: 20px;">
        <a href="{settings.APP_URL}/help">Help</a> &middot;
        <a href="{settings.APP_URL}/privacy">Privacy</a> &middot;
        <a href="{settings.APP_URL}/email-preferences">Email preferences</a>
      </p>
    </div>
    """


def send_payment_confirmation_email(to: str, data: Dict[str, Any]) -> str:
    """
    Send a payment confirmation to a club owner.

    Args:
        to: Recipient email address
        data: owner_name, club_name, plan_name, amount (formatted), billing_period

    Returns:
        str: Resend message id
    """
    owner_name = escape(data.get("owner_name") or "Club Owner")
    club_name = escape(data.get("club_name") or "your club")
    plan_name = escape(data.get("plan_name") or settings.DEFAULT_PLAN_NAME)
    amount = escape(data.get("amount") or "")
    billing_period = escape(str(data.get("billing_period") or settings.DEFAULT_BILLING_PERIOD))

    html = _layout(f"""
      <h2>Payment confirmed</h2>
      <p>Hi {owner_name},</p>
      <p>Thank you! We received your payment for <strong>{club_name}</strong>.</p>
      <table style="margin: 20px 0;">
        <tr><td style="padding-right: 16px;">Plan</td><td><strong>{plan_name}</strong></td></tr>
        <tr><td style="padding-right: 16px;">Amount</td><td><strong>{amount}</strong></td></tr>
        <tr><td style="padding-right: 16px;">Billing</td><td>{billing_period}</td></tr>
      </table>
      <p style="margin: 30px 0;">
        <a href="{settings.APP_URL}/dashboard" target="_blank" rel="noopener noreferrer"
           style="background-color: #0ea5e9; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px; display: inline-block;">
          Go to your dashboard
        </a>
      </p>
    """)

    return _send_email(to, PAYMENT_CONFIRMATION_SUBJECT, html)


def send_password_reset_email(to: str, token: str, name: Optional[str] = None) -> str:
    """
    Send a password reset link.

    Args:
        to: Recipient email address
        token: Password reset token
        name: Recipient display name

    Returns:
        str: Resend message id
    """
    reset_link = f"{settings.APP_URL}/reset-password?token={quote(token)}"
    minutes = settings.PASSWORD_RESET_TTL // 60

    html = _layout(f"""
      <h2>Password Reset Request</h2>
      <p>Hi {escape(name or 'there')},</p>
      <p>We received a request to reset your password. Click the button below to set a new password:</p>
      <p style="text-align: center; margin: 30px 0;">
        <a href="{reset_link}" target="_blank" rel="noopener noreferrer"
           style="background-color: #0ea5e9; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px; display: inline-block;">
          Reset Password
        </a>
      </p>
      <p>This link will expire in {minutes} minutes.</p>
      <p>If you didn't request this, you can safely ignore this email.</p>
    """)

    return _send_email(to, PASSWORD_RESET_SUBJECT, html)
