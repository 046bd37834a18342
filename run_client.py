#!/usr/bin/env python3
"""
CoreSend client runner – phrase and identity tooling from the shell.

Usage:
    python run_client.py generate --words 24
    python run_client.py validate "abandon abandon ... about"
    python run_client.py derive "abandon ... about" --index 0 --count 3
    python run_client.py sign "abandon ... about" --method POST \\
                              --path /api/register --body '{"address":"..."}'
    python run_client.py health --config coresend.toml

Environment variables (alternative to flags):
    CORESEND_API_URL, CORESEND_LOG_LEVEL, CORESEND_LOG_FMT
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

# ---------------------------------------------------------------------------
# Ensure the project root is in sys.path so imports work before pip install
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from coresend_core.config import CoreSendConfig, load_config  # noqa: E402
from coresend_core.errors import CoreSendError  # noqa: E402
from coresend_core.identity import derive_identity  # noqa: E402
from coresend_core.logging_config import setup_logging  # noqa: E402
from coresend_core.mnemonic import generate, validate  # noqa: E402
from coresend_core.session import SessionStore  # noqa: E402
from coresend_core.signer import RequestSigner  # noqa: E402
from coresend_core.transport import AuthenticatedTransport, CoreSendClient  # noqa: E402

logger = logging.getLogger("coresend_cli")


# ===================================================================
#  Commands
# ===================================================================

def cmd_generate(args, cfg: CoreSendConfig) -> int:
    bits = {12: 128, 24: 256}.get(args.words, cfg.session.entropy_bits)
    print(" ".join(generate(bits)))
    return 0


def cmd_validate(args, cfg: CoreSendConfig) -> int:
    result = validate(args.phrase)
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.valid else 1


def cmd_derive(args, cfg: CoreSendConfig) -> int:
    rows = [
        derive_identity(args.phrase, i).to_public_dict()
        for i in range(args.index, args.index + args.count)
    ]
    print(json.dumps(rows, indent=2))
    return 0


def cmd_sign(args, cfg: CoreSendConfig) -> int:
    identity = derive_identity(args.phrase, args.index)
    headers = RequestSigner(identity).headers(args.method, args.path, args.body)
    print(json.dumps(headers, indent=2))
    return 0


async def _health(cfg: CoreSendConfig) -> object:
    # health is unsigned, so an empty session is enough
    async with AuthenticatedTransport.from_config(SessionStore(), cfg.api) as transport:
        return await CoreSendClient.from_config(transport, cfg.api).health()


def cmd_health(args, cfg: CoreSendConfig) -> int:
    print(json.dumps(asyncio.run(_health(cfg)), indent=2, default=str))
    return 0


COMMANDS = {
    "generate": cmd_generate,
    "validate": cmd_validate,
    "derive": cmd_derive,
    "sign": cmd_sign,
    "health": cmd_health,
}


# ===================================================================
#  Main entry point
# ===================================================================

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="CoreSend identity client")
    p.add_argument("--config", default=None, help="Path to coresend.toml config file")
    p.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    p.add_argument("--log-format", default=None, choices=["human", "json"])
    sub = p.add_subparsers(dest="command", required=True)

    g = sub.add_parser("generate", help="Generate a new seed phrase")
    g.add_argument("--words", type=int, choices=[12, 24], default=None)

    v = sub.add_parser("validate", help="Validate a seed phrase")
    v.add_argument("phrase")

    d = sub.add_parser("derive", help="Show inbox addresses for a phrase")
    d.add_argument("phrase")
    d.add_argument("--index", type=int, default=0)
    d.add_argument("--count", type=int, default=1)

    s = sub.add_parser("sign", help="Print signed headers for one request")
    s.add_argument("phrase")
    s.add_argument("--method", default="GET")
    s.add_argument("--path", required=True)
    s.add_argument("--body", default=None)
    s.add_argument("--index", type=int, default=0)

    sub.add_parser("health", help="Query the server health endpoint")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    # Load config (TOML + env overrides), CLI flags win
    try:
        cfg = load_config(args.config)
    except CoreSendError as e:
        print(f"  Config error: {e}", file=sys.stderr)
        return 2
    if args.log_level:
        cfg.logging.level = args.log_level.upper()
    if args.log_format:
        cfg.logging.format = args.log_format
    setup_logging(cfg.logging.level, cfg.logging.format, cfg.logging.file)

    try:
        return COMMANDS[args.command](args, cfg)
    except CoreSendError as e:
        logger.error("%s", e)
        print(f"  Error: {e}", file=sys.stderr)
        return 1


def main_sync():
    """Synchronous entry point for console_scripts."""
    sys.exit(main())


if __name__ == "__main__":
    main_sync()
