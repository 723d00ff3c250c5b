# EquipTrack - Equipment Inventory and Calibration Tracking
# Copyright (C) 2025 EquipTrack contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.


"""Email service using Resend API or SMTP."""

import html as html_lib
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional

from app.config import get_settings

logger = logging.getLogger(__name__)

SEVERITY_COLOURS = {
    "critical": "#C0392B",
    "warning": "#E67E22",
    "info": "#2980B9",
}


def _wrap_html(body: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
</head>
<body>
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      {body}
      <p style="color: #666; font-size: 12px; margin-top: 40px;">
        This is an automated message from EquipTrack.
      </p>
    </div>
</body>
</html>
"""


class EmailService:
    """Email service for sending login links and alert digests."""

    def __init__(self):
        self.settings = get_settings()
        self._resend_client = None

    @property
    def provider(self) -> str:
        """Get the configured email provider."""
        return self.settings.email.provider.lower()

    @property
    def enabled(self) -> bool:
        return self.settings.email.enabled

    @property
    def resend_client(self):
        """Lazy-load Resend client."""
        if self._resend_client is None and self.provider == "resend":
            import resend

            resend.api_key = self.settings.email.api_key
            self._resend_client = resend
        return self._resend_client

    async def _send_via_smtp(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send email via SMTP."""
        import aiosmtplib

        email_config = self.settings.email

        msg = MIMEMultipart("alternative")
        msg["From"] = f"{email_config.from_name} <{email_config.from_address}>"
        msg["To"] = to
        msg["Subject"] = subject

        if text:
            msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))

        try:
            await aiosmtplib.send(
                msg,
                hostname=email_config.smtp_host,
                port=email_config.smtp_port,
                username=email_config.smtp_username or None,
                password=email_config.smtp_password or None,
                start_tls=email_config.smtp_use_tls,
                use_tls=email_config.smtp_use_ssl,
            )
            return {"success": True, "provider": "smtp"}
        except aiosmtplib.SMTPException:
            logger.exception("SMTP delivery to %s failed", to)
            raise

    async def _send_via_resend(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send email via Resend API."""
        params = {
            "from": f"{self.settings.email.from_name} <{self.settings.email.from_address}>",
            "to": [to],
            "subject": subject,
            "html": html,
        }

        if text:
            params["text"] = text

        result = self.resend_client.Emails.send(params)
        return {"id": result.get("id"), "success": True, "provider": "resend"}

    async def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send an email via configured provider.

        Returns ``{"success": False, "disabled": True}`` without sending when
        email delivery is switched off in configuration.
        """
        if not self.enabled:
            logger.info("Email disabled, not sending '%s' to %s", subject, to)
            return {"success": False, "disabled": True}

        if self.provider == "smtp":
            return await self._send_via_smtp(to, subject, html, text)
        return await self._send_via_resend(to, subject, html, text)

    async def send_magic_link(self, email: str, token: str, name: str) -> Dict[str, Any]:
        """Send magic link email for authentication."""
        verify_url = f"{self.settings.app.base_url}/api/auth/verify?token={token}"
        org_name = self.settings.organization.name
        minutes = self.settings.security.magic_link_minutes

        body = f"""
      <h2>{html_lib.escape(org_name)} EquipTrack</h2>
      <p>Hi {html_lib.escape(name)},</p>
      <p>Click the link below to log in:</p>
      <p style="margin: 30px 0;">
        <a href="{verify_url}" style="background-color: #1F6FB2; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px; display: inline-block;">
          Log In
        </a>
      </p>
      <p>This link will expire in {minutes} minutes.</p>
      <p>If you didn't request this login link, you can safely ignore this email.</p>
"""

        text = (
            f"Hi {name},\n\n"
            f"Use this link to log in to EquipTrack:\n\n{verify_url}\n\n"
            f"This link will expire in {minutes} minutes.\n"
        )

        return await self.send_email(
            to=email,
            subject=f"Your EquipTrack login link - {org_name}",
            html=_wrap_html(body),
            text=text,
        )

    async def send_alert_digest(
        self,
        email: str,
        name: str,
        alerts: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Send a digest of newly generated equipment alerts."""
        rows = []
        for alert in alerts:
            colour = SEVERITY_COLOURS.get(alert.get("severity"), SEVERITY_COLOURS["info"])
            rows.append(
                f'<li><strong style="color: {colour};">{html_lib.escape(alert["title"])}</strong>'
                f" - {html_lib.escape(alert['message'])}</li>"
            )

        body = f"""
      <h2>Equipment Alerts</h2>
      <p>Hi {html_lib.escape(name)},</p>
      <p>The following items need attention:</p>
      <ul>
        {''.join(rows)}
      </ul>
      <p><a href="{self.settings.app.frontend_url}/notifications">View all notifications</a></p>
"""

        text = "\n".join(f"- {a['title']}: {a['message']}" for a in alerts)

        return await self.send_email(
            to=email,
            subject=f"EquipTrack: {len(alerts)} equipment alert(s)",
            html=_wrap_html(body),
            text=text,
        )


# Global service instance
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get the global email service instance."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
