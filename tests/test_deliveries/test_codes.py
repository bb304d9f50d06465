"""
Tests for delivery code generation and verification.
"""

import re
from datetime import datetime, timedelta
from uuid import UUID, uuid4

import pytest

from supplyhub.core.config import Settings
from supplyhub.core.errors import InvalidCodeError
from supplyhub.services.deliveries.codes import DeliveryCodeService, derive_short_code

GENERATED_AT = datetime(2026, 3, 2, 12, 0, 0)


@pytest.fixture
def codes(settings) -> DeliveryCodeService:
    return DeliveryCodeService(settings)


@pytest.fixture
def ids() -> dict[str, UUID]:
    return {"delivery_id": uuid4(), "order_id": uuid4(), "client_id": uuid4()}


@pytest.fixture
def issued(codes, ids):
    return codes.generate(generated_at=GENERATED_AT, **ids)


def _verify(codes, issued, ids, submitted, now=GENERATED_AT + timedelta(hours=1), **overrides):
    arguments = {**ids, **overrides}
    return codes.verify(
        submitted_code=submitted,
        stored_token=issued.token,
        generated_at=issued.generated_at,
        now=now,
        **arguments,
    )


# ============================================================================
# Short Code Tests
# ============================================================================


class TestShortCode:
    def test_short_code_is_six_digits(self) -> None:
        for _ in range(20):
            assert re.fullmatch(r"\d{6}", derive_short_code(uuid4(), uuid4()))

    def test_short_code_is_deterministic(self, ids) -> None:
        first = derive_short_code(ids["delivery_id"], ids["order_id"])
        second = derive_short_code(ids["delivery_id"], ids["order_id"])

        assert first == second

    def test_short_code_halves_come_from_each_id(self) -> None:
        delivery_id = UUID("00000000-0000-0000-0000-000000000001")
        order_id = UUID("00000000-0000-0000-0000-00000000000a")

        assert derive_short_code(delivery_id, order_id) == "001010"


# ============================================================================
# Generation Tests
# ============================================================================


class TestGenerate:
    def test_generate_returns_token_and_window(self, codes, issued, ids) -> None:
        assert issued.token.count(".") == 4
        assert issued.short_code == derive_short_code(ids["delivery_id"], ids["order_id"])
        assert issued.expires_at == GENERATED_AT + codes.ttl

    def test_payload_binds_delivery_order_and_client(self, codes, issued, ids) -> None:
        payload = codes.decrypt(issued.token)

        assert payload["delivery_id"] == str(ids["delivery_id"])
        assert payload["order_id"] == str(ids["order_id"])
        assert payload["client_id"] == str(ids["client_id"])
        assert payload["timestamp"] == GENERATED_AT.isoformat()
        assert len(payload["nonce"]) == 16

    def test_tokens_differ_between_generations(self, codes, ids) -> None:
        first = codes.generate(generated_at=GENERATED_AT, **ids)
        second = codes.generate(generated_at=GENERATED_AT, **ids)

        assert first.token != second.token
        assert first.short_code == second.short_code


# ============================================================================
# Verification Tests
# ============================================================================


class TestVerify:
    def test_scanned_token_verifies(self, codes, issued, ids) -> None:
        payload = _verify(codes, issued, ids, issued.token)

        assert payload["delivery_id"] == str(ids["delivery_id"])

    def test_short_code_verifies(self, codes, issued, ids) -> None:
        payload = _verify(codes, issued, ids, f"  {issued.short_code} ")

        assert payload["client_id"] == str(ids["client_id"])

    @pytest.mark.parametrize("submitted", ["", "123", "not-a-code"])
    def test_wrong_code_is_rejected(self, codes, issued, ids, submitted) -> None:
        with pytest.raises(InvalidCodeError):
            _verify(codes, issued, ids, submitted)

    def test_other_client_is_rejected(self, codes, issued, ids) -> None:
        with pytest.raises(InvalidCodeError):
            _verify(codes, issued, ids, issued.token, client_id=uuid4())

    def test_expired_code_is_rejected(self, codes, issued, ids) -> None:
        with pytest.raises(InvalidCodeError) as exc_info:
            _verify(
                codes,
                issued,
                ids,
                issued.token,
                now=GENERATED_AT + codes.ttl + timedelta(seconds=1),
            )

        assert exc_info.value.message == "Delivery code has expired"

    def test_code_valid_at_end_of_window(self, codes, issued, ids) -> None:
        _verify(codes, issued, ids, issued.token, now=GENERATED_AT + codes.ttl)

    def test_tampered_token_is_rejected(self, codes, issued, ids) -> None:
        header, key, iv, ciphertext, tag = issued.token.split(".")
        middle = len(ciphertext) // 2
        flipped = "A" if ciphertext[middle] != "A" else "B"
        ciphertext = ciphertext[:middle] + flipped + ciphertext[middle + 1:]
        tampered = issued.__class__(
            token=".".join([header, key, iv, ciphertext, tag]),
            short_code=issued.short_code,
            generated_at=issued.generated_at,
            expires_at=issued.expires_at,
        )

        with pytest.raises(InvalidCodeError):
            _verify(codes, tampered, ids, tampered.short_code)

    def test_token_from_another_key_is_rejected(self, issued, ids) -> None:
        other = DeliveryCodeService(
            Settings(delivery_code_key="a-completely-different-key-material")
        )

        with pytest.raises(InvalidCodeError):
            _verify(other, issued, ids, issued.token)
