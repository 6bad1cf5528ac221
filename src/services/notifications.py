"""HTTP client for the notification service that delivers email."""

from urllib.parse import quote

import httpx
import structlog

log = structlog.get_logger()


class NotificationClient:
    """Async client for the notification service ``/api/email/send`` endpoint."""

    def __init__(self, base_url: str, frontend_url: str, timeout: float = 5.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.frontend_url = frontend_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout)

    async def send_email(self, to: str, subject: str, html: str) -> None:
        """Send one email. Raises httpx errors when delivery is refused."""
        r = await self._client.post(
            f"{self.base_url}/api/email/send",
            json={"to": to, "subject": subject, "html": html},
        )
        r.raise_for_status()
        log.debug("email_sent", to=to, subject=subject)

    async def send_invite_email(self, email: str, token: str, inviter_name: str, role: str) -> None:
        invite_link = f"{self.frontend_url}/accept-invite?token={quote(token)}"
        html = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2>You've been invited!</h2>
      <p>Hello,</p>
      <p><strong>{inviter_name}</strong> has invited you to join as a <strong>{role}</strong>.</p>
      <p>Click the link below to accept your invitation:</p>
      <p><a href="{invite_link}">Accept Invitation</a></p>
      <p>This invitation will expire in 7 days.</p>
      <p>If you didn't expect this invitation, you can safely ignore this email.</p>
    </div>
    """
        await self.send_email(email, "You have been invited", html)

    async def send_otp_email(self, email: str, otp: str, expires_minutes: int = 10) -> None:
        html = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2>Your Verification Code</h2>
      <p>Use the following code to complete your login:</p>
      <div style="font-size: 32px; font-weight: bold; letter-spacing: 8px;">{otp}</div>
      <p>This code will expire in {expires_minutes} minutes.</p>
      <p>If you didn't request this code, please ignore this email.</p>
    </div>
    """
        await self.send_email(email, "Your verification code", html)

    async def close(self) -> None:
        await self._client.aclose()
