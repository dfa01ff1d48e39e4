import logging
from typing import Protocol

import httpx

from researcher_hut.core.config import settings

logger = logging.getLogger(__name__)

OTP_SUBJECT = "🔐 Your OTP Code - Researcher.Hut"


class OtpNotifier(Protocol):
    async def send_otp_email(self, to: str, otp: str, expires_minutes: int) -> bool:
        ...


def otp_email_html(otp: str, expires_minutes: int) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 500px; margin: 0 auto; padding: 20px;">
      <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 28px;">🔬 Researcher.Hut</h1>
      </div>
      <div style="background: #f9fafb; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
        <h2 style="color: #1f2937; margin-top: 0;">Your Verification Code</h2>
        <p style="color: #6b7280; font-size: 16px;">Use the following OTP to complete your verification:</p>
        <div style="background: #eef2ff; padding: 20px; border-radius: 10px; text-align: center; margin: 20px 0;">
          <span style="font-size: 36px; font-weight: bold; color: #667eea; letter-spacing: 8px;">{otp}</span>
        </div>
        <p style="color: #6b7280; font-size: 14px;">⏱️ This code expires in <strong>{expires_minutes} minutes</strong>.</p>
        <p style="color: #9ca3af; font-size: 12px;">If you did not request this code, you can ignore this email.</p>
      </div>
    </div>
    """


def otp_email_text(otp: str, expires_minutes: int) -> str:
    return (f"Your Researcher.Hut verification code is {otp}. "
            f"It expires in {expires_minutes} minutes. Do not share this code.")


class BrevoEmailNotifier:
    """
    Sends OTP emails through the Brevo transactional API.
    Never raises: any failure is logged and reported as False.
    """

    def __init__(
        self,
        api_key: str,
        sender_email: str,
        sender_name: str,
        api_url: str = "https://api.brevo.com/v3/smtp/email",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.api_url = api_url
        self.timeout = timeout
        self._transport = transport

    async def send_otp_email(self, to: str, otp: str, expires_minutes: int) -> bool:
        if not self.api_key:
            logger.warning("BREVO_API_KEY is not set; OTP email to %s not sent", to)
            return False

        payload = {
            "sender": {"name": self.sender_name, "email": self.sender_email},
            "to": [{"email": to}],
            "subject": OTP_SUBJECT,
            "htmlContent": otp_email_html(otp, expires_minutes),
            "textContent": otp_email_text(otp, expires_minutes),
        }
        headers = {
            "accept": "application/json",
            "api-key": self.api_key,
            "content-type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as cx:
                r = await cx.post(self.api_url, json=payload, headers=headers)
        except httpx.TimeoutException:
            logger.error("Brevo timed out after %ss sending OTP email to %s", self.timeout, to)
            return False
        except httpx.HTTPError as exc:
            logger.error("Brevo request failed sending OTP email to %s: %s", to, exc)
            return False

        if r.is_success:
            logger.info("OTP email sent to %s", to)
            return True
        logger.error("Brevo rejected OTP email to %s: %s %s", to, r.status_code, r.text[:200])
        return False


def build_notifier() -> BrevoEmailNotifier:
    return BrevoEmailNotifier(
        api_key=settings.BREVO_API_KEY,
        sender_email=settings.MAIL_SENDER_EMAIL,
        sender_name=settings.MAIL_SENDER_NAME,
        api_url=settings.BREVO_API_URL,
        timeout=settings.EMAIL_TIMEOUT_SECONDS,
    )
