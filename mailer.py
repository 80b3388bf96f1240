"""Outbound email over SMTP."""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import settings
from errors import Unavailable

logger = logging.getLogger(__name__)

OTP_SUBJECTS = {
    "registration": "Verify Your Email - Little Treasures",
    "login": "Your Login OTP - Little Treasures",
    "password_reset": "Password Reset OTP - Little Treasures",
}


def build_otp_html(code: str, purpose: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: linear-gradient(135deg, #ff9a9e 0%, #fecfef 100%); padding: 20px; text-align: center;">
        <h1 style="color: white; margin: 0;">Little Treasures</h1>
        <p style="color: white; margin: 5px 0;">Kids Stationery &amp; More</p>
      </div>
      <div style="padding: 30px; background: white;">
        <h2>Your OTP Code</h2>
        <p>Your One-Time Password (OTP) for {purpose.replace('_', ' ')} is:</p>
        <div style="background: #f8f9fa; padding: 20px; text-align: center; border-radius: 10px; margin: 20px 0;">
          <h1 style="color: #ff6b6b; font-size: 36px; margin: 0; letter-spacing: 5px;">{code}</h1>
        </div>
        <p>This OTP will expire in {settings.OTP_TTL_MINUTES} minutes.</p>
        <p>If you didn't request this, please ignore this email.</p>
      </div>
    </div>
    """


def send_email(to_email: str, subject: str, html: str):
    if not settings.EMAIL_USER or not settings.EMAIL_PASSWORD:
        logger.warning("Email credentials not configured; cannot send to %s", to_email)
        raise Unavailable("Email service not configured.")

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.EMAIL_USER
    msg["To"] = to_email
    msg.attach(MIMEText(html, "html"))

    try:
        with smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, timeout=15) as s:
            s.login(settings.EMAIL_USER, settings.EMAIL_PASSWORD)
            s.send_message(msg)
    except smtplib.SMTPAuthenticationError:
        logger.error("Email authentication failed for %s", settings.EMAIL_USER)
        raise Unavailable("Failed to send email.")
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Email send to %s failed: %s", to_email, e)
        raise Unavailable("Failed to send email.")
    logger.info("Email '%s' sent to %s", subject, to_email)


def send_otp_email(email: str, code: str, purpose: str):
    send_email(email, OTP_SUBJECTS[purpose], build_otp_html(code, purpose))
