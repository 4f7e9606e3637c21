import pytest
from pydantic import ValidationError

from src.integrations.clients import select_gateway_client
from src.integrations.clients.mocks.payments import MockPaystackClient
from src.integrations.clients.real_http.payments import PaystackHttpClient
from src.utils.payment_config_loader import GatewayConfig, load_payment_config


def test_repo_config_matches_defaults():
    cfg = load_payment_config()

    assert cfg.gateway.mode == "auto"
    assert cfg.checkout.callback_url == "http://127.0.0.1:9090/paystack/callback"
    assert cfg.checkout.fallback_timeout_seconds == 300
    assert cfg.verification.max_attempts == 3
    assert cfg.verification.retry_delay_seconds == 3
    assert cfg.verification.presume_success_on_exhaustion is True
    assert "paystack.co/close" in cfg.checkout.close_patterns
    assert cfg.reference_prefix == "errand"


def test_yaml_overrides_and_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "payment_config.yml"
    path.write_text(
        "gateway:\n"
        "  base_url: https://staging.example.test\n"
        "checkout:\n"
        "  platform: web\n"
        "verification:\n"
        "  max_attempts: 5\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("PAYMENTS_MODE", "MOCK")
    monkeypatch.setenv("PAYMENTS_ENV", "production")

    cfg = load_payment_config(path)

    assert cfg.gateway.base_url == "https://staging.example.test"
    assert cfg.gateway.mode == "mock"
    assert cfg.gateway.production is True
    assert cfg.checkout.platform == "web"
    assert cfg.verification.max_attempts == 5
    assert cfg.verification.retry_delay_seconds == 3.0


def test_base_url_env_override(tmp_path, monkeypatch):
    path = tmp_path / "payment_config.yml"
    path.write_text("", encoding="utf-8")
    monkeypatch.setenv("PAYSTACK_BASE_URL", "http://localhost:8000")

    assert load_payment_config(path).gateway.base_url == "http://localhost:8000"


def test_missing_config_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_payment_config(tmp_path / "nope.yml")


def test_invalid_values_raise_validation_error(tmp_path):
    path = tmp_path / "payment_config.yml"
    path.write_text("verification:\n  max_attempts: 0\n", encoding="utf-8")

    with pytest.raises(ValidationError):
        load_payment_config(path)


def test_secret_key_follows_environment(monkeypatch):
    monkeypatch.setenv("PAYSTACK_TEST_SECRET_KEY", "sk_test_1")
    monkeypatch.setenv("PAYSTACK_LIVE_SECRET_KEY", "sk_live_1")

    assert GatewayConfig().secret_key() == "sk_test_1"
    assert GatewayConfig(production=True).secret_key() == "sk_live_1"


def test_select_gateway_client(monkeypatch):
    assert isinstance(select_gateway_client(GatewayConfig(mode="mock")), MockPaystackClient)
    assert isinstance(select_gateway_client(GatewayConfig(mode="auto")), MockPaystackClient)
    assert isinstance(select_gateway_client(GatewayConfig(mode="real")), PaystackHttpClient)

    monkeypatch.setenv("PAYSTACK_TEST_SECRET_KEY", "sk_test_1")
    assert isinstance(select_gateway_client(GatewayConfig(mode="auto")), PaystackHttpClient)
