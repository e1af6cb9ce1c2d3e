"""
Offline console demo: runs a full booking session without any API keys.

Drives the real quote engine, booking workflow and two-phase signup
service against the in-memory sandbox payment processor and CRM. No
network calls. Designed for live demo walkthroughs.

Usage:
    python console_demo.py
    python console_demo.py --scenario pack
    python console_demo.py --scenario crm-down
"""

import argparse
import asyncio
from dataclasses import replace
from typing import Any, Optional

from scooops.config import PRICE_ENV_VARS, AppConfig
from scooops.errors import ValidationFailed
from scooops.integrations.sandbox import (
    DECLINED_CARD,
    SandboxCrm,
    SandboxPayments,
    SandboxTokenizer,
)
from scooops.schemas.customer_schema import PaymentCard
from scooops.services.signup import SignupService
from scooops.workflow import BookingWorkflow, LocalSignupGateway
from scooops.workflow.booking_workflow import FailedStep, SucceededStep

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

GOOD_CARD = "4242 4242 4242 4242"

CONTACT = {
    "name": "Diana Prince",
    "email": "diana@themyscira.example",
    "phone": "(949) 555-0199",
    "street": "12 Paradise Ln",
    "city": "Irvine",
    "state": "CA",
    "zip": "92618",
}

# Pre-scripted scenarios for --scenario flag
SCENARIOS: dict[str, dict[str, Any]] = {
    "weekly": {"plan": "sidekick", "dogs": 1, "days": ["tuesday"]},
    "pack": {
        "frequency": "2x-weekly",
        "dogs": 4,
        "deodorizer": "2x-weekly-deodorizer",
        "days": ["monday", "monday", "thursday"],
    },
    "lead": {"frequency": "monthly", "dogs": 2, "lead": "Do you service gated communities?"},
    "declined": {"plan": "hero", "dogs": 2, "days": ["monday", "friday"], "card": DECLINED_CARD},
    "crm-down": {"frequency": "weekly", "dogs": 3, "days": ["wednesday"], "crm_down": True},
}


class ConsoleSession:
    """Plays one scripted booking session in the terminal."""

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        config = config or AppConfig()
        self.config = replace(
            config, business=replace(config.business, success_redirect_delay_sec=0.5)
        )
        self.payments = SandboxPayments(
            price_ids={catalog_id: f"price_{catalog_id}" for catalog_id in PRICE_ENV_VARS}
        )
        self.crm = SandboxCrm()
        self.tokenizer = SandboxTokenizer()
        signup = SignupService(self.config, self.payments, self.crm)
        self.workflow = BookingWorkflow(self.config, self.tokenizer, LocalSignupGateway(signup))

    def widget_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[Widget]{RESET} {GREEN}{text}{RESET}")

    def user_do(self, text: str) -> None:
        print(f"\n{BLUE}[Customer] {RESET}{text}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _show_quote(self) -> None:
        q = self.workflow.quote()
        promo = " (first cleanup free!)" if q.first_cleanup_free else ""
        self.widget_say(
            f"{q.frequency_label}, {q.request.dogs} dog(s): ${q.price_per_cleanup:.2f} per cleanup, "
            f"${q.period_total:.2f} per {q.period_label}{promo}"
        )

    async def run_scenario(self, name: str) -> None:
        script = SCENARIOS.get(name)
        if script is None:
            print(f"{RED}Unknown scenario: {name}{RESET}")
            return

        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  BOOKING WIDGET - Scenario: {name}{RESET}")
        print(f"{BOLD}  Business: {self.config.business.name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

        wf = self.workflow
        if "plan" in script:
            self.user_do(f"Picks the '{script['plan']}' plan card")
            wf.select_plan(script["plan"])
        else:
            self.user_do(f"Chooses {script['frequency']} service")
            wf.set_frequency(script["frequency"])
        self.user_do(f"Sets {script['dogs']} dog(s)")
        wf.set_dogs(script["dogs"])
        if script.get("deodorizer"):
            self.user_do(f"Adds {script['deodorizer']}")
            wf.set_deodorizer(script["deodorizer"])
        self._show_quote()

        self.user_do(f"Enters ZIP {CONTACT['zip']} and phone {CONTACT['phone']}")
        wf.set_field("zip", CONTACT["zip"])
        wf.set_field("phone", CONTACT["phone"])
        wf.request_quote()
        self.system_log(f"State: {wf.state.value}")

        for field_name in ("name", "email", "street", "city", "state"):
            wf.set_field(field_name, CONTACT[field_name])

        if script.get("lead"):
            self.user_do(f"Asks: {script['lead']}")
            sent = await wf.submit_lead(script["lead"])
            self.widget_say("Thanks! We'll be in touch shortly." if sent else "Could not send that.")
            self._finish(name)
            return

        await self._fill_days_and_continue(script["days"])

        if script.get("crm_down"):
            self.crm.fail("create_client_with_package", "Service area not configured", 422)
        card_number = script.get("card", GOOD_CARD)
        self.user_do(f"Enters card ending {card_number[-4:]} and clicks Activate")
        card = PaymentCard(number=card_number, exp_month=12, exp_year=2030, cvc="123", name=CONTACT["name"])
        outcome = await wf.activate(card)
        self.system_log(f"Outcome: {outcome.value}")

        step = wf.step
        if isinstance(step, SucceededStep):
            self.widget_say(f"Mission accepted! CRM client {step.client_id}.")
            url = await wf.hand_off()
            self.system_log(f"Redirecting to {url}")
        elif isinstance(step, FailedStep):
            color = YELLOW if step.retryable else RED
            print(f"{color}{BOLD}[Widget]{RESET} {color}{step.message}{RESET}")
        self._finish(name)

    async def _fill_days_and_continue(self, days: list[str]) -> None:
        wf = self.workflow
        needed = wf.form.required_days
        for index in range(needed):
            wf.set_service_day(index, days[index] if index < len(days) else None)
        self.user_do(f"Picks service day(s): {', '.join(d for d in wf.form.service_days if d)}")
        try:
            wf.continue_to_payment()
        except ValidationFailed as exc:
            self.widget_say(exc.message)
            # retry with the first N distinct days
            distinct = list(dict.fromkeys(days))[:needed]
            for index, day in enumerate(distinct):
                wf.set_service_day(index, day)
            self.user_do(f"Fixes service days: {', '.join(distinct)}")
            wf.continue_to_payment()
        self.system_log(f"State: {wf.state.value}")

    def _finish(self, name: str) -> None:
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  Scenario '{name}' complete.{RESET}")
        print(f"{DIM}  State trace: {' -> '.join(self.workflow.state_trace())}{RESET}")
        print(f"{DIM}  Payment calls: {self.payments.calls}{RESET}")
        print(f"{DIM}  CRM calls: {self.crm.calls}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Offline booking widget demo")
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="weekly")
    args = parser.parse_args(argv)
    asyncio.run(ConsoleSession().run_scenario(args.scenario))


if __name__ == "__main__":
    main()
