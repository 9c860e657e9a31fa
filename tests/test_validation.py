import pydantic
import pytest

from storefront.exceptions import ValidationError
from storefront.models import CustomerDetails
from storefront.validation import normalize_phone, normalize_pincode, require_address_line


@pytest.mark.parametrize("raw", ["+919876543210", "919876543210", "9876543210", "+91 98765-43210"])
def test_phone_normalizes_to_ten_digits(raw):
    assert normalize_phone(raw) == "9876543210"


@pytest.mark.parametrize("raw", ["98765", "12345678901", "449876543210", "phone-number", ""])
def test_phone_not_reducible_to_ten_digits_is_rejected(raw):
    with pytest.raises(ValidationError) as exc_info:
        normalize_phone(raw)
    assert exc_info.value.field == "customer.phone"


def test_phone_country_code_is_configurable():
    assert normalize_phone("+14155550123", country_code="1") == "4155550123"


def test_pincode_accepts_six_digits():
    assert normalize_pincode("123456") == "123456"
    assert normalize_pincode(" 560 001 ") == "560001"


@pytest.mark.parametrize("raw", ["12345", "abcdef", "1234567"])
def test_pincode_rejects_bad_values(raw):
    with pytest.raises(ValidationError) as exc_info:
        normalize_pincode(raw)
    assert "6 digits" in exc_info.value.message


def test_blank_address_line_is_rejected():
    with pytest.raises(ValidationError):
        require_address_line("   ")
    assert require_address_line(" 12 MG Road ") == "12 MG Road"


@pytest.mark.parametrize("name", ["", "   ", "\t\n"])
def test_blank_customer_name_is_rejected(name):
    with pytest.raises(pydantic.ValidationError) as exc_info:
        CustomerDetails(name=name, phone="9876543210")
    assert exc_info.value.errors()[0]["loc"] == ("name",)


def test_customer_name_is_trimmed():
    assert CustomerDetails(name="  Asha Rao ", phone="9876543210").name == "Asha Rao"
