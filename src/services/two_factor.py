"""One-time codes for the second login factor.

OTP: a random 6-digit code emailed to the user, stored only as a bcrypt hash.
TOTP: RFC 6238 codes from a shared base32 secret, checked with a ±1 step
tolerance for clock drift.

Verification never raises on malformed input; a bad code is simply invalid.
"""

import base64
import io
import secrets
from datetime import UTC, datetime, timedelta

import bcrypt
import pyotp
import qrcode

from src.config.constants import CODE_LENGTH, OTP_MAX, OTP_MIN
from src.config.settings import Settings, get_settings


def _is_code(code: object) -> bool:
    return isinstance(code, str) and len(code) == CODE_LENGTH and code.isdigit()


class TwoFactorManager:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def generate_otp(self) -> str:
        """Return a uniformly random code in [100000, 999999]."""
        return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))

    def hash_otp(self, code: str) -> str:
        salt = bcrypt.gensalt(rounds=self.settings.otp_bcrypt_rounds)
        return bcrypt.hashpw(code.encode(), salt).decode()

    def verify_otp(self, code: str, otp_hash: str) -> bool:
        if not _is_code(code) or not otp_hash:
            return False
        try:
            return bcrypt.checkpw(code.encode(), otp_hash.encode())
        except ValueError:
            # Corrupt stored hash
            return False

    def otp_expiry(self, minutes: int | None = None) -> datetime:
        minutes = self.settings.otp_expire_minutes if minutes is None else minutes
        return datetime.now(UTC) + timedelta(minutes=minutes)

    def generate_totp_secret(self, identity: str) -> tuple[str, str]:
        """Create a shared secret and its ``otpauth://totp/...`` provisioning URI.

        Returns:
            (secret, provisioning_uri)
        """
        secret = pyotp.random_base32()
        return secret, self.provisioning_uri(secret, identity)

    def provisioning_uri(self, secret: str, identity: str) -> str:
        return pyotp.TOTP(secret).provisioning_uri(name=identity, issuer_name=self.settings.totp_issuer)

    def render_qr_code(self, uri: str) -> str:
        """Render ``uri`` as a PNG data URL suitable for an <img> tag."""
        qr = qrcode.QRCode(version=1, box_size=10, border=5)
        qr.add_data(uri)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode()
        return f"data:image/png;base64,{encoded}"

    def verify_totp_token(self, code: str, secret: str, for_time: datetime | None = None) -> bool:
        if not _is_code(code) or not secret:
            return False
        try:
            return pyotp.TOTP(secret).verify(
                code,
                for_time=for_time or datetime.now(UTC),
                valid_window=self.settings.totp_valid_window,
            )
        except (ValueError, TypeError):
            # Secret that is not valid base32
            return False
