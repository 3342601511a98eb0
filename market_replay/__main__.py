"""
Replay command line.

Writes one JSON object per typed line to stdout:

    python -m market_replay --exchange bitmex:orderBookL2,trade \\
        --start 2020-01-01T00:00:00Z --end 2020-01-01T00:05:00Z --stream
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from market_replay.client import ReplayClient
from market_replay.config import ClientConfig
from market_replay.exceptions import ReplayError
from market_replay.request import ReplayRequest


logger = logging.getLogger("market_replay")


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def parse_exchange(value: str) -> tuple[str, list[str]]:
    """Parse 'exchange:channel,channel'."""
    exchange, sep, channels = value.partition(":")
    names = [c for c in channels.split(",") if c]
    if not exchange or not sep or not names:
        raise argparse.ArgumentTypeError(f"expected EXCHANGE:CHANNEL[,CHANNEL...], got {value!r}")
    return exchange, names


def parse_instant(value: str) -> datetime:
    """Parse an ISO 8601 instant; naive values are UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def run(request: ReplayRequest, stream: bool, concurrency: int, buffer_size: int) -> int:
    """Replay and print lines, returning the number written."""
    count = 0
    if stream:
        async with await request.stream_with_buffer_size(buffer_size) as lines:
            async for line in lines:
                print(json.dumps(line.to_dict()))
                count += 1
    else:
        for line in await request.download_with_concurrency(concurrency):
            print(json.dumps(line.to_dict()))
            count += 1
    return count


async def main_async(args: argparse.Namespace) -> int:
    config = ClientConfig.from_yaml(args.config) if args.config else ClientConfig.from_env()
    async with ReplayClient(config) as client:
        request = client.replay(dict(args.exchange), args.start, args.end)
        count = await run(
            request,
            args.stream,
            args.concurrency or config.download_concurrency,
            args.buffer_size or config.buffer_size,
        )
    logger.info(f"Wrote {count} lines")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="market_replay",
        description="Replay historical market data as JSON lines",
    )

    parser.add_argument("--exchange", type=parse_exchange, action="append", required=True,
                        help="EXCHANGE:CHANNEL[,CHANNEL...] (repeatable)")
    parser.add_argument("--start", type=parse_instant, required=True, help="Start instant (ISO 8601)")
    parser.add_argument("--end", type=parse_instant, required=True, help="End instant (ISO 8601)")
    parser.add_argument("--stream", action="store_true", help="Stream instead of downloading")
    parser.add_argument("--concurrency", type=int, help="Download concurrency")
    parser.add_argument("--buffer-size", type=int, help="Stream buffer size in shards")
    parser.add_argument("--config", type=Path, help="YAML config file")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    try:
        return asyncio.run(main_async(args))
    except ReplayError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
