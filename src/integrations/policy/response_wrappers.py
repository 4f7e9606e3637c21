from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from src.integrations.contracts.errors import PaymentError
from src.integrations.contracts.interfaces import VerificationStatus


class IntegrationResponseError(PaymentError, ValueError):
    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, payload=payload)


class InitializeResponseModel(BaseModel):
    authorization_url: str = Field(min_length=1)
    reference: str = Field(min_length=1)
    access_code: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class VerifyResponseModel(BaseModel):
    reference: str
    status: VerificationStatus
    message: str = ""
    gateway_response: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


def unwrap_envelope(raw: Dict[str, Any], *expected_keys: str) -> Dict[str, Any]:
    """
    Peel ``{"success": ..., "data": {"data": {...}}}`` style wrappers until a
    dict holding one of ``expected_keys`` is found.
    """
    current: Any = raw
    for _ in range(4):
        if not isinstance(current, dict):
            break
        if any(key in current for key in expected_keys):
            return current
        nested = current.get("data")
        if not isinstance(nested, dict):
            break
        current = nested
    return current if isinstance(current, dict) else {}


def normalize_initialize_response(
    raw: Dict[str, Any],
    *,
    fallback_reference: Optional[str] = None,
) -> InitializeResponseModel:
    body = unwrap_envelope(raw, "authorization_url", "authorizationUrl")
    authorization_url = _first_non_empty(body, "authorization_url", "authorizationUrl", payload=raw)
    reference = _first_non_empty(body, "reference", "trxref", default=fallback_reference, payload=raw)
    access_code = body.get("access_code") or body.get("accessCode")

    return _build_model(
        InitializeResponseModel,
        {
            "authorization_url": str(authorization_url),
            "reference": str(reference),
            "access_code": access_code,
            "raw": raw,
        },
        raw,
    )


def normalize_verify_response(raw: Dict[str, Any], *, fallback_reference: str) -> VerifyResponseModel:
    body = unwrap_envelope(raw, "status")
    # Paystack's own envelope uses a boolean "status"; the transaction sits under "data".
    if isinstance(body.get("status"), bool) and isinstance(body.get("data"), dict):
        body = body["data"]

    status = _map_verification_status(_first_non_empty(body, "status", "payment_status", payload=raw))
    reference = str(_first_non_empty(body, "reference", default=fallback_reference, payload=raw))
    message = str(body.get("message") or raw.get("message") or "")
    gateway_response = body.get("gateway_response")

    return _build_model(
        VerifyResponseModel,
        {
            "reference": reference,
            "status": status,
            "message": message,
            "gateway_response": gateway_response,
            "raw": raw,
        },
        raw,
    )


def extract_error_message(raw: Any, default: str) -> str:
    """Pull the most specific human-readable message out of an error body."""
    if not isinstance(raw, dict):
        return default
    error = raw.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error.strip():
        return error
    for key in ("message", "detail"):
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return default


def _first_non_empty(
    data: Dict[str, Any],
    *keys: str,
    default: Any = None,
    payload: Optional[Dict[str, Any]] = None,
) -> Any:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    if default is not None:
        return default
    raise IntegrationResponseError(
        f"Missing required field. Checked keys: {', '.join(keys)}",
        payload=payload if payload is not None else data,
    )


def _map_verification_status(raw_status: Any) -> VerificationStatus:
    value = str(raw_status or "").strip().lower()
    mapping = {
        "success": VerificationStatus.SUCCESS,
        "successful": VerificationStatus.SUCCESS,
        "completed": VerificationStatus.SUCCESS,
        "pending": VerificationStatus.PENDING,
        "ongoing": VerificationStatus.PENDING,
        "processing": VerificationStatus.PENDING,
        "queued": VerificationStatus.PENDING,
        "failed": VerificationStatus.FAILED,
        "reversed": VerificationStatus.FAILED,
        "abandoned": VerificationStatus.ABANDONED,
    }
    if value not in mapping:
        raise IntegrationResponseError(f"Unsupported verification status '{value}'.")
    return mapping[value]


def _build_model(model_type, payload: Dict[str, Any], raw: Dict[str, Any]):
    try:
        return model_type(**payload)
    except ValidationError as exc:
        raise IntegrationResponseError(f"Response validation failed: {exc}", payload=raw) from exc
