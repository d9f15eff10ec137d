"""
Offline console demo: runs booking conversations without any API keys.

Uses the real assistant (rule-based classifier, engine, availability
service, session store) over the seeded demo calendar. No LLM and no
network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario booking
    python console_demo.py --scenario conflict
    python console_demo.py --scenario info
"""

import argparse
import asyncio
import sys
from dataclasses import replace
from typing import Optional

from autobooker.assistant import BookingAssistant, build_assistant
from autobooker.config import settings
from autobooker.errors import MessageValidationError
from autobooker.schemas.chat_schema import ChatResponse

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


class ConsoleSession:
    """Drives one chat session through the assistant in the terminal."""

    # Pre-scripted scenarios for --scenario flag
    SCENARIOS: dict[str, list[str]] = {
        "booking": [
            "Bonjour",
            "Je voudrais prendre un rendez-vous de suivi",
            "après-demain",
            "10h30",
            "Je m'appelle Marie Dupont, mon email est marie.dupont@example.fr",
            "oui",
        ],
        "booking_en": [
            "Hello, I'd like to book an appointment tomorrow at 2pm",
            "yes",
        ],
        "conflict": [
            "Je voudrais un RDV après-demain à 10h",
            "oui",
            "Je voudrais un autre RDV après-demain à 10h",
            "1",
            "oui",
        ],
        "info": [
            "Quels sont vos horaires ?",
            "Et vos services ?",
        ],
        "cancel": [
            "Je voudrais un RDV après-demain à 11h",
            "oui",
            "Finalement je veux annuler mon rendez-vous",
        ],
    }

    def __init__(self, assistant: Optional[BookingAssistant] = None) -> None:
        self.assistant = assistant or build_assistant(
            replace(settings, calendar=replace(settings.calendar, providers=("demo",)))
        )
        self.session_id: Optional[str] = None

    def agent_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[{settings.assistant_name}]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    async def send(self, text: str) -> Optional[ChatResponse]:
        try:
            response = await self.assistant.process_message(text, session_id=self.session_id)
        except MessageValidationError as exc:
            print(f"{RED}Message rejected ({exc.reason}): {exc}{RESET}")
            return None
        self.session_id = response.session_id
        self.agent_say(response.reply)
        for action in response.actions:
            self.system_log(f"Action {action.type}: {action.status} {action.data}")
        self.system_log(f"Stage: {response.context['conversation_stage']}")
        return response

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  AUTOBOOKER - {title}{RESET}")
        print(f"{BOLD}  Business: {settings.business.name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    def _summary(self, response: Optional[ChatResponse]) -> None:
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        if response is not None:
            trace = " -> ".join(response.context["stage_trace"])
            print(f"{DIM}  Stage trace: {trace}{RESET}")
            print(f"{DIM}  Slots: {response.context['extracted_slots']}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        self._banner(f"Scenario: {scenario}")
        response = None
        async with self.assistant:
            for step in steps:
                print(f"\n{BLUE}[Client] {RESET}{step}")
                response = await self.send(step) or response
        self._summary(response)

    async def run(self) -> None:
        self._banner("Console Demo")
        print(f"{YELLOW}  Type 'quit' to exit{RESET}")
        response = None
        loop = asyncio.get_running_loop()
        async with self.assistant:
            while True:
                user_input = (await loop.run_in_executor(None, input, f"\n{BLUE}[Client] {RESET}")).strip()
                if user_input.lower() in ("quit", "exit", "q"):
                    print(f"\n{DIM}Session ended.{RESET}")
                    break
                if not user_input:
                    continue
                response = await self.send(user_input) or response
        self._summary(response)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="AutoBooker offline console demo")
    parser.add_argument("--scenario", choices=sorted(ConsoleSession.SCENARIOS), default=None)
    args = parser.parse_args(argv)

    session = ConsoleSession()
    if args.scenario:
        asyncio.run(session.run_scenario(args.scenario))
    else:
        asyncio.run(session.run())


if __name__ == "__main__":
    main(sys.argv[1:])
