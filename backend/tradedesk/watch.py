#!/usr/bin/env python3
"""
Console push-update client
Connects an UpdateDispatcher to the hub and logs what arrives on each channel
"""

import argparse
import asyncio
from typing import List, Optional
from tradedesk.core.config import settings
from tradedesk.core.logging import get_logger, setup_logging
from tradedesk.realtime.dispatcher import ConnectionState, build_dispatcher
from tradedesk.realtime.messages import Channel, quote_channel

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch push updates from the TradeDesk hub")
    parser.add_argument("--url", default=settings.PUSH_URL, help="push endpoint (ws:// or wss://)")
    parser.add_argument("--user-id", type=int, default=settings.DEFAULT_USER_ID, help="user to authenticate as")
    parser.add_argument("--quote", action="append", default=[], metavar="SYMBOL", help="watch quotes for SYMBOL")
    parser.add_argument(
        "--channel",
        action="append",
        default=[],
        choices=[c.value for c in Channel],
        help="watch a fixed channel"
    )
    return parser.parse_args(argv)


def _printer(channel: str):
    def handle(data):
        logger.info(f"[{channel}] {data}")
    return handle


async def watch(args: argparse.Namespace) -> None:
    dispatcher = build_dispatcher(url=args.url)
    dispatcher.add_state_listener(
        lambda old, new: logger.info(f"Connection {old.value} -> {new.value}")
    )

    channels = [quote_channel(symbol) for symbol in args.quote] + list(args.channel)
    for channel in channels:
        dispatcher.on_message(channel, _printer(channel))
        await dispatcher.subscribe(channel)

    # auth is re-sent on every open
    dispatcher.user_id = args.user_id
    await dispatcher.connect()

    try:
        await dispatcher.wait_for_state(ConnectionState.OFFLINE)
        logger.error("Push endpoint unreachable; giving up")
    finally:
        await dispatcher.disconnect()


def main(argv: Optional[List[str]] = None) -> None:
    setup_logging()
    args = parse_args(argv)
    try:
        asyncio.run(watch(args))
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == "__main__":
    main()
