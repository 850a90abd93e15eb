#!/usr/bin/env python3
"""
TeachDash - Email Service
=========================
Notify the principal via Resend when a lesson plan is published.

Setup:
1. Add RESEND_API_KEY to .env (or save resend_api_key in Settings)
2. Verify your sending domain at https://resend.com/domains
3. Set RESEND_FROM_EMAIL to an address on that domain
"""
import html
import logging
from datetime import datetime

import resend

from ..config import RESEND_API_KEY, RESEND_FROM_EMAIL

logger = logging.getLogger(__name__)


def format_week_of(week_of: str) -> str:
    """'2026-02-23' -> 'Feb 23'."""
    try:
        d = datetime.strptime(week_of, '%Y-%m-%d')
    except (TypeError, ValueError):
        return week_of or ''
    return f"{d.strftime('%b')} {d.day}"


class PlanEmailer:
    """Send lesson-plan notifications via Resend API."""

    def __init__(self, settings: dict = None):
        settings = settings or {}
        self.api_key = RESEND_API_KEY or settings.get('resend_api_key') or ''
        self.from_email = RESEND_FROM_EMAIL
        self.reply_to = settings.get('teacher_email') or None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send_email(self, to_email: str, subject: str, html_body: str) -> dict:
        """
        Send a single email via Resend.

        Returns:
            {"success": bool, "message": str, "id": str or None}
        """
        if not self.configured:
            return {
                "success": False,
                "message": "Email not sent: No Resend API key configured. "
                           "Set RESEND_API_KEY env var or resend_api_key in settings.",
                "id": None,
            }

        resend.api_key = self.api_key
        params = {
            "from": self.from_email,
            "to": [to_email],
            "subject": subject,
            "html": html_body,
        }
        if self.reply_to:
            params["reply_to"] = self.reply_to

        try:
            response = resend.Emails.send(params)
        except Exception as e:
            logger.error("Failed to send email to %s: %s", to_email, e)
            return {"success": False, "message": f"Email failed: {e}", "id": None}

        email_id = response.get('id') if isinstance(response, dict) else getattr(response, 'id', None)
        if not email_id:
            return {"success": False, "message": "Email failed: No response ID", "id": None}
        logger.info("Sent email to %s (%s)", to_email, email_id)
        return {"success": True, "message": f"Email sent to {to_email}", "id": email_id}

    def send_plan_published(self, to_email: str, publish_url: str, week_of: str, teacher_name: str) -> dict:
        week_display = format_week_of(week_of)
        subject = f"Lesson Plan Published - Week of {week_display}"
        return self.send_email(to_email, subject, build_publish_email_html(
            publish_url, week_of, teacher_name or 'Your teacher', week_display))


def build_publish_email_html(publish_url: str, week_of: str, teacher_name: str, week_display: str) -> str:
    esc = html.escape
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="margin:0;padding:0;background:#f4f4f5;font-family:-apple-system,'Segoe UI',Roboto,sans-serif;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="max-width:600px;margin:40px auto;background:#ffffff;border-radius:12px;">
    <tr><td style="background:#1a1a2e;padding:28px 32px;">
      <h1 style="margin:0;color:#4ECDC4;font-size:20px;">Lesson Plan Published</h1>
    </td></tr>
    <tr><td style="padding:32px;">
      <p style="margin:0 0 16px;color:#333;font-size:16px;">
        <strong>{esc(teacher_name)}</strong> has published their lesson plan for the
        <strong>week of {esc(week_display)}</strong>.
      </p>
      <p style="margin:0 0 24px;color:#555;font-size:14px;">
        You can review the plan, view activities for each day, and leave comments using the link below.
      </p>
      <a href="{esc(publish_url)}" style="display:inline-block;background:#4ECDC4;color:#1a1a2e;padding:12px 28px;border-radius:8px;text-decoration:none;font-weight:600;">
        View Lesson Plan
      </a>
      <p style="margin:24px 0 0;color:#999;font-size:12px;">
        Week: {esc(week_of)}<br>This link does not require a login.
      </p>
    </td></tr>
  </table>
</body>
</html>"""
