"""CLI entry point for chatting with a seeded agent.

A terminal chat loop for testing and development.  For production, use
the FastAPI server (``agent_runtime/server.py``).

Usage:
    python -m agent_runtime.main --agent <id> --caller <id>
    python -m agent_runtime.main --agent <id> --caller <id> --debug
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from agent_runtime.agent import ChatError, create_chat_service

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("agent_runtime").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Agent chat runtime CLI")
    parser.add_argument("--agent", required=True, help="Agent id from AGENTS_FILE")
    parser.add_argument("--caller", required=True, help="Caller identity")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    service = create_chat_service()
    agent = service.store.get_agent(args.agent)
    if agent is None:
        parser.error(f"unknown agent {args.agent!r}")
    label = f"{agent.avatar_emoji or ''} {agent.name}".strip()

    print("\n" + "=" * 60)
    print(f"  Chatting with {label}")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'clear' to forget this conversation.")
    print("=" * 60 + "\n")

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break

        if user_input.lower() == "clear":
            removed = service.clear_history(args.agent, args.caller)
            print(f"\n>> Cleared {removed} messages.\n")
            continue

        try:
            reply = service.chat(args.agent, args.caller, user_input)
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except ChatError as e:
            print(f"\n[{e.status_code}] {e.message}\n")
            continue

        print(f"\n{agent.name}: {reply.message}\n")
        if reply.scheduling and reply.scheduling.slots:
            print(f"   ({len(reply.scheduling.slots)} bookable slots available)\n")


if __name__ == "__main__":
    main()
