"""
Inspect and exercise a shared token bucket from the command line.

Useful when debugging a deployment: ``status`` shows how many tokens are
left, ``acquire`` and ``release`` move a single token exactly like a worker
process would.
"""

import argparse
import json
import sys
from typing import List, Optional

from pydantic import ValidationError as SettingsValidationError

from shared.config import get_config
from shared.errors import LimiterException
from shared.logging import configure_logging, set_bucket_context
from .ratelimit.token_bucket import TokenBucketLimiter
from .store.base import CounterStore
from .store.redis_store import RedisCounterStore

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_DENIED = 2


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bucketgate", description="Inspect or exercise a shared token bucket.")
    parser.add_argument("--redis-url", default=None, help="Redis connection URL (default: LIMITER_REDIS_URL)")
    parser.add_argument("--bucket-key", default=None, help="Bucket key (default: LIMITER_BUCKET_KEY or derived)")
    parser.add_argument("--max-tokens", type=int, default=None, help="Bucket capacity used if the bucket is created")
    parser.add_argument("--ttl", type=int, default=None, help="Bucket expiration in seconds")
    parser.add_argument("--log-level", default=None, help="Log level")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("status", help="Print the current token count")
    acquire = subparsers.add_parser("acquire", help="Take one token")
    acquire.add_argument("--no-delay", action="store_true", help="Skip the throttling delay")
    subparsers.add_parser("release", help="Return one token")
    return parser.parse_args(argv)


def run(args: argparse.Namespace, store: Optional[CounterStore] = None) -> dict:
    """Execute the requested command and return the summary."""
    overrides = {
        name: value
        for name, value in (
            ("redis_url", args.redis_url),
            ("bucket_key", args.bucket_key),
            ("max_tokens", args.max_tokens),
            ("ttl_seconds", args.ttl),
            ("log_level", args.log_level),
        )
        if value is not None
    }
    if getattr(args, "no_delay", False):
        overrides["use_delay"] = False
    config = get_config(**overrides)
    configure_logging("limiter", config.log_level)

    owns_store = store is None
    if owns_store:
        store = RedisCounterStore(config.redis_url, socket_timeout=config.socket_timeout).connect()

    try:
        limiter = TokenBucketLimiter.from_config(config, store=store)
        set_bucket_context(limiter.bucket_key)

        summary = {"command": args.command, "bucket_key": limiter.bucket_key, "max_tokens": limiter.max_tokens}
        if args.command == "acquire":
            summary["granted"] = limiter.acquire()
        elif args.command == "release":
            limiter.release()
        summary["free_tokens"] = limiter.debug_free_tokens()
    finally:
        if owns_store:
            store.close()
    return summary


def main(argv: Optional[List[str]] = None, store: Optional[CounterStore] = None) -> int:
    args = _parse_args(argv)
    try:
        summary = run(args, store=store)
    except KeyboardInterrupt:
        return 130
    except SettingsValidationError as exc:
        print(f"[bucketgate] invalid configuration: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except LimiterException as exc:
        print(exc.to_response().model_dump_json(), file=sys.stderr)
        return EXIT_ERROR

    print(json.dumps(summary, indent=2))
    if summary.get("granted") is False:
        return EXIT_DENIED
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
