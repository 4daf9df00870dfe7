"""Main entry point for the tracker agent

Usage:
    tracker-agent "I had a cappuccino"     handle one utterance and exit
    tracker-agent                          interactive prompt (Ctrl+D to quit)
"""
import asyncio
import logging
import sys
from typing import List, Optional

from tracker_agent.agent.completion import create_completion_client
from tracker_agent.config import COMPLETION_MODEL, DATA_PATH, LOG_LEVEL, validate_config
from tracker_agent.db.tracker_store import TrackerStore
from tracker_agent.exceptions import ConfigurationError
from tracker_agent.services.track_handler import TrackRequestHandler

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO)
)

logger = logging.getLogger(__name__)

NOT_HANDLED = "(not a tracking request)"


def build_handler() -> TrackRequestHandler:
    """Wire the store, completion client and services together"""
    client, model = create_completion_client(COMPLETION_MODEL)
    store = TrackerStore(DATA_PATH)
    logger.info(f"Tracker data in {DATA_PATH}")
    return TrackRequestHandler(store, client, model)


async def run_interactive(handler: TrackRequestHandler) -> None:
    logger.info("Ready. Type a message, Ctrl+D to quit.")
    while True:
        try:
            text = await asyncio.to_thread(input, "> ")
        except EOFError:
            break
        if text.strip().lower() in ("exit", "quit"):
            break
        reply = await handler.handle(text)
        print(reply if reply is not None else NOT_HANDLED)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point"""
    argv = sys.argv[1:] if argv is None else argv
    try:
        logger.info("Validating configuration...")
        validate_config()
    except ConfigurationError as e:
        print(e.user_message, file=sys.stderr)
        return 2

    handler = build_handler()

    try:
        if argv:
            reply = await handler.handle(" ".join(argv))
            print(reply if reply is not None else NOT_HANDLED)
        else:
            await run_interactive(handler)
    except KeyboardInterrupt:
        logger.info("Shutting down...")

    return 0


def run() -> None:
    """Console script entry point"""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
