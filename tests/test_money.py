"""
Tests for currency handling and payment targets.
"""
import uuid
from decimal import Decimal

import pytest

from community_payments.core.errors import ValidationError
from community_payments.core.money import (
    currency_exponent,
    from_minor_units,
    normalize_currency,
    parse_amount,
    to_minor_units,
)
from community_payments.core.targets import (
    BillTarget,
    BookingTarget,
    EventTarget,
    build_target,
    target_columns,
    validate_target_for_type,
)

SUPPORTED = ["NGN", "GHS", "ZAR", "KES", "USD"]


class TestCurrency:
    """Test suite for currency codes and minor units."""

    @pytest.mark.unit
    def test_normalizes_case(self) -> None:
        assert normalize_currency(" ngn ", SUPPORTED) == "NGN"

    @pytest.mark.unit
    @pytest.mark.parametrize("code", ["", "NG", "NGNN", "N1N"])
    def test_rejects_malformed_codes(self, code: str) -> None:
        with pytest.raises(ValidationError):
            normalize_currency(code, SUPPORTED)

    @pytest.mark.unit
    def test_rejects_unsupported_currency(self) -> None:
        with pytest.raises(ValidationError, match="not supported"):
            normalize_currency("EUR", SUPPORTED)

    @pytest.mark.unit
    def test_exponents(self) -> None:
        assert currency_exponent("NGN") == 2
        assert currency_exponent("JPY") == 0
        assert currency_exponent("KWD") == 3

    @pytest.mark.unit
    def test_naira_to_kobo(self) -> None:
        assert to_minor_units(Decimal("5000"), "NGN") == 500000
        assert to_minor_units(Decimal("12.34"), "NGN") == 1234

    @pytest.mark.unit
    def test_minor_units_back_to_major(self) -> None:
        assert from_minor_units(500000, "NGN") == Decimal("5000")
        assert from_minor_units(1500, "KWD") == Decimal("1.5")


class TestParseAmount:
    """Test suite for amount validation."""

    @pytest.mark.unit
    @pytest.mark.parametrize("amount", [0, -1, "-0.01", "0"])
    def test_rejects_non_positive(self, amount) -> None:
        with pytest.raises(ValidationError, match="positive"):
            parse_amount(amount, "NGN")

    @pytest.mark.unit
    @pytest.mark.parametrize("amount", ["abc", None, "NaN", "Infinity"])
    def test_rejects_non_numbers(self, amount) -> None:
        with pytest.raises(ValidationError):
            parse_amount(amount, "NGN")

    @pytest.mark.unit
    def test_rejects_excess_precision(self) -> None:
        with pytest.raises(ValidationError, match="decimal places"):
            parse_amount("10.001", "NGN")
        with pytest.raises(ValidationError):
            parse_amount("1.5", "JPY")

    @pytest.mark.unit
    def test_accepts_float_without_binary_noise(self) -> None:
        assert parse_amount(50.1, "NGN") == Decimal("50.1")


class TestTargets:
    """Test suite for the payment target union."""

    @pytest.mark.unit
    def test_build_target_picks_the_given_kind(self) -> None:
        booking_id, event_id = uuid.uuid4(), uuid.uuid4()

        assert build_target(booking_id=booking_id) == BookingTarget(booking_id)
        assert build_target(event_id=event_id) == EventTarget(event_id)
        assert build_target() is None

    @pytest.mark.unit
    def test_build_target_rejects_two_kinds(self) -> None:
        with pytest.raises(ValidationError):
            build_target(booking_id=uuid.uuid4(), bill_id=uuid.uuid4())

    @pytest.mark.unit
    def test_type_requires_matching_target(self) -> None:
        with pytest.raises(ValidationError):
            validate_target_for_type("service-booking", None)
        with pytest.raises(ValidationError):
            validate_target_for_type("event-ticket", BookingTarget(uuid.uuid4()))

        validate_target_for_type("bill-payment", BillTarget(uuid.uuid4()))

    @pytest.mark.unit
    def test_untargeted_types_take_no_target(self) -> None:
        validate_target_for_type("subscription", None)
        with pytest.raises(ValidationError):
            validate_target_for_type("other", EventTarget(uuid.uuid4()))

    @pytest.mark.unit
    def test_unknown_type(self) -> None:
        with pytest.raises(ValidationError, match="Unknown payment type"):
            validate_target_for_type("donation", None)

    @pytest.mark.unit
    def test_target_columns(self) -> None:
        bill_id = uuid.uuid4()

        assert target_columns(BillTarget(bill_id)) == {
            "booking_id": None,
            "bill_id": bill_id,
            "event_id": None,
        }
