"""
AutoBooker entry point.

Runs the offline console chat, or prints the free slots for a date.

Usage:
    Console chat:  python main.py console
    Scenario:      python main.py console --scenario booking
    Free slots:    python main.py slots 2026-10-20 [--duration 90]
"""

import argparse
import asyncio
import logging
import sys

from autobooker.config import settings

logger = logging.getLogger(__name__)


def _run_console_mode(argv: list[str]) -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import main as console_main

    console_main(argv)


async def _print_slots(day: str, duration: int) -> None:
    from autobooker.assistant import build_assistant

    async with build_assistant(settings) as assistant:
        slots = await assistant.get_available_slots(day, duration)
    if not slots:
        print(f"No free slot on {day}.")
        return
    for slot in slots:
        print(f"{slot.start:%H:%M} - {slot.end:%H:%M}")


def _run_slots_mode(argv: list[str]) -> None:
    parser = argparse.ArgumentParser(prog="main.py slots")
    parser.add_argument("date", help="YYYY-MM-DD")
    parser.add_argument("--duration", type=int, default=settings.calendar.default_duration_minutes)
    args = parser.parse_args(argv)
    asyncio.run(_print_slots(args.date, args.duration))


if __name__ == "__main__":
    mode = sys.argv[1] if len(sys.argv) > 1 else "console"
    if mode == "slots":
        _run_slots_mode(sys.argv[2:])
    else:
        _run_console_mode(sys.argv[2:] if mode == "console" else sys.argv[1:])
