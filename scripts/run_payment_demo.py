#!/usr/bin/env python3
"""
Run hosted-checkout payment sessions against the mock gateway and print each
stage to the terminal: initialization, surface signals, verification and the
final outcome callback.

Usage (from repo root):
  python scripts/run_payment_demo.py
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.checkout.controller import PaymentSessionController
from src.checkout.session import SessionState
from src.integrations.clients.mocks.payments import MockPaystackClient
from src.integrations.contracts.interfaces import Channel, Customer, OrderSummary
from src.utils.payment_config_loader import load_payment_config


def setup_logging():
    """Log to terminal at INFO so every stage is visible."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )


def print_stage(title: str, data: dict | list | str):
    """Print a stage header and data to the terminal."""
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)
    if isinstance(data, (dict, list)):
        print(json.dumps(data, indent=2, default=str))
    else:
        print(data)
    print()


def build_controller(gateway: MockPaystackClient, config) -> PaymentSessionController:
    return PaymentSessionController(
        gateway,
        config,
        on_success=lambda reference: print_stage("CALLBACK: on_success", {"reference": reference}),
        on_cancel=lambda: print_stage("CALLBACK: on_cancel", "customer cancelled"),
        on_error=lambda message: print_stage("CALLBACK: on_error", {"message": message}),
        supports_embedded_surface=True,
    )


async def run_close_page(config, order: OrderSummary):
    gateway = MockPaystackClient(reference="errand_123_999")
    controller = build_controller(gateway, config)

    await controller.open(order, Channel.CARD)
    await controller.wait_for_state(SessionState.AWAITING_COMPLETION, SessionState.FAILURE, timeout=5)
    print_stage("SURFACE MOUNTED", controller.snapshot())

    controller.adapter.handle_navigation("https://paystack.co/close")
    await controller.wait_for_state(SessionState.SUCCESS, SessionState.FAILURE, timeout=10)
    print_stage("FINAL STATE (close page)", controller.snapshot())
    await controller.aclose()


async def run_cancel(config, order: OrderSummary):
    gateway = MockPaystackClient()
    controller = build_controller(gateway, config)

    await controller.open(order, Channel.CARD)
    await controller.wait_for_state(SessionState.AWAITING_COMPLETION, SessionState.FAILURE, timeout=5)
    controller.adapter.handle_message({"event": "cancelled"})
    await controller.drain()
    print_stage("FINAL STATE (bridge cancel)", {**controller.snapshot(), "verify_calls": gateway.verify_calls})
    await controller.aclose()


async def run_pending(config, order: OrderSummary):
    gateway = MockPaystackClient(verify_script=["pending"])
    controller = build_controller(gateway, config)

    await controller.open(order, Channel.BANK_TRANSFER)
    await controller.wait_for_state(SessionState.AWAITING_COMPLETION, SessionState.FAILURE, timeout=5)
    controller.adapter.handle_navigation(f"{config.checkout.callback_url}?trxref={controller.session.reference}")
    await controller.wait_for_state(SessionState.SUCCESS, SessionState.FAILURE, timeout=30)
    print_stage("FINAL STATE (still pending after retries)", {**controller.snapshot(), "verify_calls": gateway.verify_calls})
    await controller.aclose()


async def main():
    setup_logging()
    config = load_payment_config()
    config.verification.retry_delay_seconds = 0.5

    order = OrderSummary(
        order_id="123",
        amount_minor_units=250_000,
        currency="NGN",
        customer=Customer(email="jane@example.com", phone="+2348000000000", first_name="Jane", last_name="Demo"),
    )
    print_stage("ORDER", {"order_id": order.order_id, "amount": order.amount_minor_units, "currency": order.currency})

    await run_close_page(config, order)
    await run_cancel(config, order)
    await run_pending(config, order)


if __name__ == "__main__":
    asyncio.run(main())
