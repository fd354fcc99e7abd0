"""Resolve a message through the intent cascade and print the result.

Usage:
    python scripts/parse_message.py "remind me to call mom tomorrow at 7pm"
    python scripts/parse_message.py --timezone Asia/Kolkata --heuristic "take meds every day at 9pm"
"""

import sys
sys.path.insert(0, '.')

import argparse
import asyncio
import json

from domains.reminders import IntentResult, build_default_resolver, parse_message


def _as_dict(result: IntentResult) -> dict:
    return {
        "intent": result.intent.value,
        "task": result.task,
        "scheduled_at": result.scheduled_at.isoformat() if result.scheduled_at else None,
        "recurrence": result.recurrence.value,
        "query": result.query,
        "timezone": result.timezone,
    }


async def main():
    parser = argparse.ArgumentParser(description="Resolve a reminder message into an intent")
    parser.add_argument("message", help="Message text to resolve")
    parser.add_argument(
        "--timezone",
        default="UTC",
        help="User's IANA timezone (default: UTC)"
    )
    parser.add_argument(
        "--heuristic",
        action="store_true",
        help="Skip the providers and run only the rule-based parser"
    )
    args = parser.parse_args()

    if args.heuristic:
        result = parse_message(args.message, args.timezone)
    else:
        result = await build_default_resolver().resolve(args.message, args.timezone)

    print(json.dumps(_as_dict(result), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    asyncio.run(main())
