"""Outbound email and SMS delivery."""

import logging

from prometheus_client import Counter
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from twilio.rest import Client as TwilioClient

from .config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

DELIVERY_FAILURE_COUNTER = Counter(
    "notification_delivery_failures_total",
    "Total failed notification deliveries",
    ["channel"],
)


def mask(recipient: str) -> str:
    """Hide all but the last two characters of an address or phone number."""
    return "***" + recipient[-2:]


class Notifier:
    """Send messages through SendGrid (email) and Twilio (SMS).

    Both methods report success as a boolean and never raise for transport
    errors; retrying is left to the caller.
    """

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or default_settings

    def send_email(self, to: str | None, subject: str, body: str) -> bool:
        if not to:
            logger.warning("email not sent: no recipient")
            return self._failed("email")
        if not self.config.sendgrid_api_key or not self.config.mail_from_email:
            logger.warning("email not sent to %s: SendGrid is not configured", mask(to))
            return self._failed("email")
        message = Mail(
            from_email=self.config.mail_from_email,
            to_emails=to,
            subject=subject,
            plain_text_content=body,
        )
        try:
            response = SendGridAPIClient(self.config.sendgrid_api_key).send(message)
        except Exception:
            logger.exception("SendGrid delivery to %s failed", mask(to))
            return self._failed("email")
        if response.status_code >= 300:
            logger.warning("SendGrid rejected email to %s status=%s", mask(to), response.status_code)
            return self._failed("email")
        logger.info("email sent to %s", mask(to))
        return True

    def send_sms(self, to: str | None, body: str) -> bool:
        if not to:
            logger.warning("sms not sent: no recipient")
            return self._failed("sms")
        config = self.config
        if not all(
            [config.twilio_account_sid, config.twilio_auth_token, config.twilio_phone_number]
        ):
            logger.warning("sms not sent to %s: Twilio is not configured", mask(to))
            return self._failed("sms")
        try:
            client = TwilioClient(config.twilio_account_sid, config.twilio_auth_token)
            client.messages.create(to=to, from_=config.twilio_phone_number, body=body)
        except Exception:
            logger.exception("Twilio delivery to %s failed", mask(to))
            return self._failed("sms")
        logger.info("sms sent to %s", mask(to))
        return True

    @staticmethod
    def _failed(channel: str) -> bool:
        DELIVERY_FAILURE_COUNTER.labels(channel=channel).inc()
        return False
