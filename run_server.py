#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
run_server.py

Serve the Echo YTMusic proxy: catalog lookups, resilient audio stream
resolution and image proxying for browser clients.

Usage:
    python run_server.py
    python run_server.py --port 8080 --max-attempts 3
    python run_server.py --proxy socks5://127.0.0.1:1080
"""

import sys

from echo_proxy.server import build_app, main

# Hosted runtimes (e.g. Vercel) import this module and serve ``app`` themselves
app = build_app()


if __name__ == "__main__":
    sys.exit(main())
