#!/usr/bin/env python3
"""
Check Fare Sources

Quick check that Chromium launches under Playwright and, when
credentials are configured, that Amadeus answers.

Usage:
    python scripts/check_browser.py
    python scripts/check_browser.py --install  # Install Chromium if missing
    python scripts/check_browser.py --amadeus  # Also probe the Amadeus API
"""

import argparse
import asyncio
import subprocess
import sys

from flightscan import AmadeusClient, Settings
from flightscan.pool import check_browser


def install_chromium() -> bool:
    print("📦 Installing Chromium browser...")
    result = subprocess.run(
        [sys.executable, "-m", "playwright", "install", "chromium"],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        print(f"❌ Failed to install chromium: {result.stderr}")
        return False
    print("✅ Chromium installed!")
    return True


async def check_amadeus(settings: Settings) -> bool:
    if not settings.amadeus_configured:
        print("⚠️ Amadeus not configured (AMADEUS_CLIENT_ID / AMADEUS_CLIENT_SECRET)")
        return False
    client = AmadeusClient(
        settings.amadeus_client_id,
        settings.amadeus_client_secret,
        production=settings.amadeus_production,
        timeout=settings.amadeus_timeout,
    )
    try:
        status = await client.test_connection()
    finally:
        await client.aclose()
    if status["success"]:
        print(f"✅ Amadeus reachable ({status['offers']} test offer(s))")
        return True
    print(f"❌ Amadeus check failed: {status['error']}")
    return False


def main():
    parser = argparse.ArgumentParser(description="Check browser and fare API availability")
    parser.add_argument("--install", action="store_true", help="Install Chromium if missing")
    parser.add_argument("--amadeus", action="store_true", help="Also check the Amadeus API")
    parser.add_argument("--quiet", "-q", action="store_true", help="Quiet mode (exit code only)")
    args = parser.parse_args()

    settings = Settings()
    status = asyncio.run(check_browser(headless=True))
    if not status["success"]:
        if not args.quiet:
            print(f"❌ Chromium did not launch: {status['error']}")
        if not (args.install and install_chromium()):
            if not args.quiet:
                print("\n  Run: playwright install chromium")
            sys.exit(1)
        status = asyncio.run(check_browser(headless=True))
        if not status["success"]:
            sys.exit(1)

    if not args.quiet:
        print(f"✅ Chromium {status['version']} ready (pool size {settings.browser_max_pages})")

    if args.amadeus and not asyncio.run(check_amadeus(settings)):
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
