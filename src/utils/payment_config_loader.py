"""
Payment configuration loader (gateway, hosted checkout surface, verification policy).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class GatewayConfig(BaseModel):
    mode: Literal["auto", "mock", "real"] = "auto"
    base_url: str = "https://api.paystack.co"
    initialize_path: str = "/payment/initialize"
    verify_path: str = "/payment/verify/{reference}"
    timeout_seconds: float = Field(default=20.0, gt=0)
    production: bool = False
    test_secret_key_env: str = "PAYSTACK_TEST_SECRET_KEY"
    live_secret_key_env: str = "PAYSTACK_LIVE_SECRET_KEY"

    def secret_key(self) -> str:
        env_name = self.live_secret_key_env if self.production else self.test_secret_key_env
        return os.getenv(env_name, "")


class CheckoutConfig(BaseModel):
    platform: Literal["mobile", "web"] = "mobile"
    callback_url: str = "http://127.0.0.1:9090/paystack/callback"
    callback_markers: List[str] = Field(default_factory=lambda: ["payment/callback"])
    close_patterns: List[str] = Field(default_factory=lambda: ["paystack.co/close", "checkout.paystack.com/close"])
    gateway_domains: List[str] = Field(default_factory=lambda: ["paystack.co", "paystack.com"])
    fallback_timeout_seconds: float = Field(default=300.0, gt=0)
    popup_features: str = "width=500,height=600,scrollbars=yes,resizable=yes"


class VerificationConfig(BaseModel):
    max_attempts: int = Field(default=3, ge=1, le=20)
    retry_delay_seconds: float = Field(default=3.0, ge=0.0)
    # When off, a verification that stays pending ends in failure instead of presumed success.
    presume_success_on_exhaustion: bool = True


class PaymentConfig(BaseModel):
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    checkout: CheckoutConfig = Field(default_factory=CheckoutConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    supported_currencies: List[str] = Field(default_factory=lambda: ["NGN", "USD", "GHS", "ZAR", "KES"])
    supported_channels: List[str] = Field(default_factory=lambda: ["card", "bank_transfer", "ussd", "bank"])
    reference_prefix: str = "errand"


def _apply_env_overrides(cfg: PaymentConfig) -> PaymentConfig:
    mode = os.getenv("PAYMENTS_MODE", "").strip().lower()
    if mode in {"mock", "real", "auto"}:
        cfg.gateway.mode = mode
    base_url = os.getenv("PAYSTACK_BASE_URL", "").strip()
    if base_url:
        cfg.gateway.base_url = base_url
    if os.getenv("PAYMENTS_ENV", "").strip().lower() == "production":
        cfg.gateway.production = True
    return cfg


def load_payment_config(config_path: Optional[Path] = None) -> PaymentConfig:
    if config_path is None:
        config_path = Path(__file__).parent.parent.parent / "config" / "payment_config.yml"

    if not config_path.exists():
        raise FileNotFoundError(f"Payment config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    try:
        cfg = PaymentConfig(**data)
        logger.info("Successfully loaded payment config from %s", config_path)
    except ValidationError as e:
        logger.error("Payment config validation failed: %s", e)
        raise
    return _apply_env_overrides(cfg)
