import pytest

from tradie_assist.adapters.phone_numbers import PhoneNormalizer


class TestPhoneNormalizer:
    """Unit tests for PhoneNormalizer"""

    @pytest.fixture
    def normalizer(self):
        return PhoneNormalizer(country_code="61", subscriber_digits=9)

    @pytest.mark.parametrize("raw", [
        "0412345678",
        "0412 345 678",
        "412345678",
        "61412345678",
        "+61412345678",
        "+61 412 345 678",
        "(04) 1234-5678",
    ])
    def test_same_digits_normalize_identically(self, normalizer, raw):
        assert normalizer.normalize(raw) == "+61412345678"

    def test_empty_input(self, normalizer):
        assert normalizer.normalize("") == ""
        assert normalizer.normalize(None) == ""
        assert normalizer.normalize("   ") == ""
        assert normalizer.normalize("abc") == ""

    def test_foreign_number_keeps_its_country_code(self, normalizer):
        assert normalizer.normalize("+1 (555) 010-0199") == "+15550100199"

    def test_normalize_is_idempotent(self, normalizer):
        once = normalizer.normalize("0412 345 678")
        assert normalizer.normalize(once) == once

    def test_valid_subscriber_number(self, normalizer):
        assert normalizer.is_valid_subscriber_number("+61412345678")

    @pytest.mark.parametrize("phone", [
        "",
        None,
        "+6141234567",      # too short
        "+614123456789",    # too long
        "+15550100199",     # wrong prefix
        "61412345678",      # missing +
        "+61 412345678",    # formatting left in
    ])
    def test_invalid_subscriber_numbers(self, normalizer, phone):
        assert not normalizer.is_valid_subscriber_number(phone)

    def test_other_country_configuration(self):
        nz = PhoneNormalizer(country_code="64", subscriber_digits=8)
        assert nz.normalize("021234567") == "+6421234567"
        assert nz.is_valid_subscriber_number("+6421234567")
        assert not nz.is_valid_subscriber_number("+642123456")
