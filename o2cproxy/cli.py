"""Command-line entry point for the o2c proxy.

Usage:
    o2c-proxy --model gpt-5.2-codex:claude-sonnet-4 -m gpt-5-mini
"""

from __future__ import annotations

import argparse
import sys

import uvicorn

from .config_loader import build_config
from .main import create_app
from .core.exceptions import ConfigurationError


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Messages API proxy for Responses API backends")
    parser.add_argument(
        "-m",
        "--model",
        action="append",
        metavar="UPSTREAM[:DOWNSTREAM]",
        help="Model mapping; repeatable. The first mapping is the default. "
        "Use '\\' to escape ':' inside a name.",
    )
    parser.add_argument("--config", help="Optional YAML configuration file")
    parser.add_argument(
        "--skip-startup-checks",
        action="store_true",
        help="Do not probe the upstream model list and tool-choice support on startup",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    args = _parse_args(argv)

    try:
        # Model mappings are read from the raw arguments to keep the -m=X form
        config = build_config(argv=argv, config_path=args.config)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc.message}", file=sys.stderr)
        return 2

    if args.skip_startup_checks:
        config.skip_startup_checks = True

    app = create_app(config)
    print(f"o2c-proxy listening on http://{config.bind_address}:{config.port}")
    uvicorn.run(app, host=config.bind_address, port=config.port, log_level="info")
    return 0


if __name__ == "__main__":
    sys.exit(main())
