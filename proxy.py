#!/usr/bin/env python3
"""Run the o2c proxy server.

Usage:
    python proxy.py --model gpt-5.2-codex:claude-sonnet-4 -m gpt-5-mini
"""

import sys

from o2cproxy.cli import main

if __name__ == "__main__":
    sys.exit(main())
