"""CLI entry point for the AI receptionist.

Replays webhook payloads through the same handler the server uses, which
is handy for reproducing a call from a saved request body.  For production,
use the FastAPI server (receptionist/server.py).

Usage:
    uv run python -m receptionist.main payload.json            # replay a saved payload
    uv run python -m receptionist.main payload.json --debug    # show API calls
    uv run python -m receptionist.main                         # interactive booking prompt
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import uuid

from receptionist.handler import WebhookHandler, create_webhook_handler
from receptionist.services.metrics import metrics

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("receptionist").setLevel(logging.DEBUG if debug else logging.INFO)


def _print_result(handler: WebhookHandler, payload: dict) -> int:
    result = handler.handle(payload)
    print(json.dumps(result.body, indent=2))
    return 0 if result.status_code == 200 else 1


def _interactive(handler: WebhookHandler) -> None:
    print("\n" + "=" * 60)
    print("  AI Receptionist - booking console")
    print("=" * 60)
    print("  Enter the caller's details; leave the name empty to quit.")
    print("=" * 60 + "\n")

    while True:
        try:
            name = input("Name: ").strip()
            if not name:
                break
            when = input("Date and Time: ").strip()
            phone = input("Phone Number (optional): ").strip()
        except (KeyboardInterrupt, EOFError):
            print()
            break

        arguments = {"Name": name, "Date and Time": when}
        if phone:
            arguments["Phone Number"] = phone
        payload = {
            "message": {
                "toolCalls": [
                    {
                        "id": f"cli_{uuid.uuid4().hex[:12]}",
                        "function": {"name": "bookAppointment", "arguments": arguments},
                    }
                ]
            }
        }
        result = handler.handle(payload)
        reply = result.body.get("results", [{}])[0].get("result") or json.dumps(result.body)
        print(f"\nReceptionist: {reply}\n")


def main() -> int:
    parser = argparse.ArgumentParser(description="AI receptionist webhook CLI")
    parser.add_argument(
        "payload", nargs="?",
        help="Path to a webhook JSON body to replay ('-' reads stdin)",
    )
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    _configure_logging(debug=args.debug)
    handler = create_webhook_handler()

    try:
        if args.payload is None:
            _interactive(handler)
            return 0
        if args.payload == "-":
            payload = json.load(sys.stdin)
        else:
            with open(args.payload, encoding="utf-8") as fh:
                payload = json.load(fh)
        return _print_result(handler, payload)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not read payload: %s", exc)
        return 2
    finally:
        metrics.flush()


if __name__ == "__main__":
    sys.exit(main())
