import pytest

from src.integrations.contracts.interfaces import VerificationStatus
from src.integrations.policy.response_wrappers import (
    IntegrationResponseError,
    extract_error_message,
    normalize_initialize_response,
    normalize_verify_response,
    unwrap_envelope,
)


def test_unwrap_envelope_peels_nested_data():
    raw = {"success": True, "data": {"data": {"authorization_url": "https://x", "reference": "R"}}}

    assert unwrap_envelope(raw, "authorization_url") == {"authorization_url": "https://x", "reference": "R"}


def test_unwrap_envelope_returns_innermost_dict_when_key_missing():
    assert unwrap_envelope({"data": {"foo": 1}}, "status") == {"foo": 1}
    assert unwrap_envelope({"data": "not a dict"}, "status") == {"data": "not a dict"}


def test_initialize_accepts_camel_case_keys():
    result = normalize_initialize_response(
        {"data": {"authorizationUrl": "https://checkout.paystack.com/ac", "accessCode": "ac"}},
        fallback_reference="errand_1_2",
    )

    assert result.authorization_url == "https://checkout.paystack.com/ac"
    assert result.access_code == "ac"
    assert result.reference == "errand_1_2"


def test_initialize_blank_url_is_an_error():
    with pytest.raises(IntegrationResponseError):
        normalize_initialize_response({"authorization_url": "   ", "reference": "R"})


@pytest.mark.parametrize(
    "raw_status,expected",
    [
        ("success", VerificationStatus.SUCCESS),
        ("Successful", VerificationStatus.SUCCESS),
        ("completed", VerificationStatus.SUCCESS),
        ("pending", VerificationStatus.PENDING),
        ("processing", VerificationStatus.PENDING),
        ("failed", VerificationStatus.FAILED),
        ("reversed", VerificationStatus.FAILED),
        ("abandoned", VerificationStatus.ABANDONED),
    ],
)
def test_verify_status_aliases(raw_status, expected):
    result = normalize_verify_response({"status": raw_status, "reference": "R"}, fallback_reference="R")

    assert result.status == expected


def test_verify_payment_status_key_is_accepted():
    result = normalize_verify_response({"data": {"payment_status": "pending"}}, fallback_reference="R9")

    assert result.status == VerificationStatus.PENDING
    assert result.reference == "R9"


def test_verify_unknown_status_is_an_error():
    with pytest.raises(IntegrationResponseError):
        normalize_verify_response({"status": "mystery"}, fallback_reference="R")


def test_verify_missing_status_is_an_error():
    with pytest.raises(IntegrationResponseError):
        normalize_verify_response({"data": {"reference": "R"}}, fallback_reference="R")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ({"error": {"message": "Invalid upload preset"}}, "Invalid upload preset"),
        ({"error": "Invalid key"}, "Invalid key"),
        ({"message": "Bad amount"}, "Bad amount"),
        ({"detail": "Not found"}, "Not found"),
        ({"error": {}}, "fallback"),
        ({}, "fallback"),
        ("plain text", "fallback"),
    ],
)
def test_extract_error_message(raw, expected):
    assert extract_error_message(raw, "fallback") == expected
