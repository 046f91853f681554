"""
Email Templates
===============
HTML bodies for OTP and welcome emails.
"""

import html
from datetime import datetime, timezone
from typing import Optional

OTP_SUBJECT = "Your {brand} Login OTP"
WELCOME_SUBJECT = "Welcome to {brand}"

_OTP_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0"/>
  <title>Your Login OTP</title>
</head>
<body style="margin:0; padding:0; background-color:#f4f4f4; font-family: Arial, Helvetica, sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color:#f4f4f4; padding:20px;">
    <tr>
      <td align="center">
        <table width="100%" cellpadding="0" cellspacing="0"
          style="max-width:520px; background:#ffffff; border-radius:8px; overflow:hidden;">
          <tr>
            <td style="padding:28px 24px; color:#1f1f1f;">
              <p style="margin:0 0 12px 0; font-size:14px;">Hello,</p>
              <p style="margin:0 0 24px 0; font-size:14px; line-height:1.6;">
                Use the following One-Time Password (OTP) to log in to your {brand} account.
              </p>
              <div style="text-align:center; margin:24px 0;">
                <div style="display:inline-block; padding:14px 28px; border:2px dashed #E46D1E;
                  border-radius:6px; font-size:24px; letter-spacing:6px; font-weight:600;
                  color:#E46D1E; background:#FFF7F2;">{code}</div>
              </div>
              <p style="margin:0 0 16px 0; font-size:13px; color:#333;">
                This OTP is valid for <strong>{expiry_minutes} minutes</strong>.
              </p>
              <p style="margin:0; font-size:13px; color:#555; line-height:1.5;">
                For your security, do not share this code with anyone.
                If you did not request this OTP, you can safely ignore this email.
              </p>
            </td>
          </tr>
          <tr>
            <td style="background:#f9f9f9; padding:18px; text-align:center;">
              <p style="margin:0 0 6px 0; font-size:12px; color:#777;">&copy; {year} {brand}</p>
              <p style="margin:0; font-size:11px; color:#999;">
                This is an automated message. Please do not reply.
              </p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""

_WELCOME_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Welcome to {brand}</title>
</head>
<body style="font-family: Arial, Helvetica, sans-serif; line-height: 1.6; color: #1F1F1F; max-width: 600px; margin: 0 auto;">
  <div style="background-color: #ffffff; margin: 20px; border-radius: 8px;">
    <div style="background: #1F1F1F; padding: 40px 30px; text-align: center;">
      <h3 style="color: white; margin: 0; font-size: 28px;">Welcome Aboard!</h3>
    </div>
    <div style="padding: 40px 30px;">
      <h2 style="color: #E46D1E; font-size: 22px; margin: 0 0 20px 0;">Hello {name},</h2>
      <p style="font-size: 14px; margin-bottom: 20px;">
        We are thrilled to have you join {brand}. Your account is verified and ready to use.
      </p>
      <p style="font-size: 14px; color: #666; text-align: center;">
        If you have any questions, our support team is here to help.
      </p>
    </div>
  </div>
</body>
</html>
"""


def expiry_minutes(expires_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole minutes until ``expires_at``, rounded up, at least 1."""
    now = now or datetime.now(timezone.utc)
    seconds = (expires_at - now).total_seconds()
    return max(1, -(-int(seconds) // 60))


def render_otp_email(code: str, minutes: int, brand: str) -> str:
    return _OTP_TEMPLATE.format(
        brand=html.escape(brand),
        code=html.escape(str(code)),
        expiry_minutes=minutes,
        year=datetime.now(timezone.utc).year,
    )


def render_welcome_email(name: Optional[str], brand: str) -> str:
    return _WELCOME_TEMPLATE.format(
        brand=html.escape(brand),
        name=html.escape(name or "there"),
    )
