from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from truckbot.service import TruckChatService


async def run_chat(
    session_id: str,
    country: str | None,
    service: TruckChatService | None = None,
) -> None:
    service = service or TruckChatService()

    print(f"Truck parts chat started. session_id={session_id}")
    print("Type '/exit' to quit.")

    while True:
        user_text = (await asyncio.to_thread(input, "\nYou: ")).strip()
        if not user_text:
            continue
        if user_text.lower() in {"/exit", "exit", "quit"}:
            print("Session closed.")
            break

        result = await service.handle_turn(session_id, user_text, country_hint=country)
        print(f"\nAssistant:\n{result['reply']}")


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser(
        description="Run the pickup truck parts assistant in the terminal."
    )
    parser.add_argument(
        "--session-id",
        default=f"chat-{uuid.uuid4().hex[:8]}",
        help="Conversation ID kept for the lifetime of the process.",
    )
    parser.add_argument(
        "--country",
        default=None,
        help="Two-letter country hint used to pick the Amazon marketplace (e.g. US, UK, CA).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level for pipeline stage events (default: WARNING).",
    )

    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))
    asyncio.run(run_chat(session_id=args.session_id, country=args.country))


if __name__ == "__main__":
    main()
