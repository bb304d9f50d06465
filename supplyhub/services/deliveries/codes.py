"""
Delivery verification codes.

At assignment a payload binding the delivery, order and client is
encrypted (JWE, direct key agreement with AES-256-GCM) and stored on the
delivery. The agent shows the token as a QR code, or reads out a 6-digit
short code derived from the delivery and order ids. The short code is a
convenience: it is low assurance and two deliveries can share one.
"""

import hashlib
import hmac
import json
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from jose import jwe
from jose.exceptions import JOSEError

from supplyhub.core.config import Settings, get_settings
from supplyhub.core.errors import InvalidCodeError
from supplyhub.core.logging import get_logger

logger = get_logger(__name__)

JWE_ALGORITHM = "dir"
JWE_ENCRYPTION = "A256GCM"


@dataclass(frozen=True)
class DeliveryCode:
    token: str
    short_code: str
    generated_at: datetime
    expires_at: datetime


def derive_short_code(delivery_id: uuid.UUID, order_id: uuid.UUID) -> str:
    """
    Six digits: three from the delivery id, three from the order id.

    Each half is the last three characters of the id read as base 36,
    modulo 1000.
    """
    delivery_part = int(str(delivery_id)[-3:], 36) % 1000
    order_part = int(str(order_id)[-3:], 36) % 1000
    return f"{(delivery_part * 1000 + order_part) % 1000000:06d}"


class DeliveryCodeService:
    """
    Generate and verify encrypted delivery codes.

    Args:
        settings: Provides the key material and the validity window
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self._key = hashlib.sha256(settings.delivery_code_key.encode("utf-8")).digest()
        self.ttl = timedelta(hours=settings.delivery_code_ttl_hours)

    def generate(
        self,
        delivery_id: uuid.UUID,
        order_id: uuid.UUID,
        client_id: uuid.UUID,
        generated_at: datetime,
    ) -> DeliveryCode:
        payload = {
            "delivery_id": str(delivery_id),
            "order_id": str(order_id),
            "client_id": str(client_id),
            "timestamp": generated_at.isoformat(),
            "nonce": secrets.token_hex(8),
        }
        token = jwe.encrypt(
            json.dumps(payload).encode("utf-8"),
            self._key,
            algorithm=JWE_ALGORITHM,
            encryption=JWE_ENCRYPTION,
        )
        if isinstance(token, bytes):
            token = token.decode("ascii")

        logger.debug("Delivery code generated", delivery_id=str(delivery_id))
        return DeliveryCode(
            token=token,
            short_code=derive_short_code(delivery_id, order_id),
            generated_at=generated_at,
            expires_at=generated_at + self.ttl,
        )

    def decrypt(self, token: str) -> dict[str, Any]:
        """
        Decrypt a stored token.

        Raises:
            InvalidCodeError: If the token was tampered with, was encrypted
                with another key, or does not hold a JSON object
        """
        try:
            plaintext = jwe.decrypt(token, self._key)
            payload = json.loads(plaintext)
        except (JOSEError, ValueError) as e:
            logger.warning(
                "Delivery code could not be decrypted",
                error_type=type(e).__name__,
            )
            raise InvalidCodeError("Invalid delivery code") from e

        if not isinstance(payload, dict):
            raise InvalidCodeError("Invalid delivery code")
        return payload

    def verify(
        self,
        submitted_code: str,
        stored_token: str,
        delivery_id: uuid.UUID,
        order_id: uuid.UUID,
        client_id: uuid.UUID,
        generated_at: datetime,
        now: datetime,
    ) -> dict[str, Any]:
        """
        Check a code presented by the client against the stored token.

        The submitted code must be the stored token itself (QR scan) or the
        delivery's short code. The stored token must then decrypt to a
        payload naming this delivery, order and client, and the code must
        still be inside its validity window.

        Raises:
            InvalidCodeError: On any mismatch, tampering or expiry
        """
        submitted_code = (submitted_code or "").strip()
        short_code = derive_short_code(delivery_id, order_id)
        matches = hmac.compare_digest(
            submitted_code.encode("utf-8"), stored_token.encode("utf-8")
        ) or hmac.compare_digest(submitted_code.encode("utf-8"), short_code.encode("utf-8"))
        if not submitted_code or not matches:
            raise InvalidCodeError("Invalid delivery code", delivery_id=delivery_id)

        payload = self.decrypt(stored_token)
        expected = {
            "delivery_id": str(delivery_id),
            "order_id": str(order_id),
            "client_id": str(client_id),
        }
        if any(payload.get(key) != value for key, value in expected.items()):
            logger.warning(
                "Delivery code payload mismatch",
                delivery_id=str(delivery_id),
                order_id=str(order_id),
            )
            raise InvalidCodeError("Invalid delivery code", delivery_id=delivery_id)

        if now > generated_at + self.ttl:
            raise InvalidCodeError(
                "Delivery code has expired",
                delivery_id=delivery_id,
                expired_at=generated_at + self.ttl,
            )
        return payload

    @staticmethod
    def qr_payload(delivery_id: uuid.UUID, token: str, expires_at: datetime) -> dict[str, Any]:
        """Data the agent app renders as a QR code."""
        return {
            "type": "DELIVERY_VERIFICATION",
            "delivery_id": str(delivery_id),
            "code": token,
            "expires_at": expires_at.isoformat(),
        }
