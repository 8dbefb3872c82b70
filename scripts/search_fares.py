#!/usr/bin/env python3
"""
Airline Fare Search

Search cash (and, with member credentials, award) fares on the airline
websites plus Amadeus, and print or save the merged result.

Usage:
    python scripts/search_fares.py --origin TPE --dest NRT --date 2026-03-15
    python scripts/search_fares.py --origin TPE --dest BKK --date 2026-03-15 --return-date 2026-03-20 --airlines CI,BR,JX
    python scripts/search_fares.py --origin TPE --dest NRT --date 2026-03-15 --airlines CI --valuate -o data/ci-tpe-nrt.json

Options:
    --origin       Departure airport code (default: TPE)
    --dest         Arrival airport code (required)
    --date         Departure date YYYY-MM-DD (required)
    --return-date  Return date YYYY-MM-DD (omit for one-way)
    --adults       Number of adult passengers (default: 1)
    --cabin        ECONOMY, PREMIUM_ECONOMY, BUSINESS or FIRST (default: ECONOMY)
    --airlines     Comma-separated airline codes (default: all)
    --valuate      Compare the cheapest cash and award fare per airline
    --links        Also print booking links
    --headed       Show the browser window
    -o, --output   Output JSON file path

Configuration (environment or .env):
    BROWSER_MAX_PAGES, TASK_TIMEOUT, SEARCH_DEADLINE, MILES_VALUE_RATE,
    AMADEUS_CLIENT_ID / AMADEUS_CLIENT_SECRET, CI_MEMBER_ID / CI_MEMBER_PASSWORD, ...
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from flightscan import (
    Direction,
    InvalidSearchRequest,
    SearchRequest,
    Settings,
    booking_links,
    build_adapters,
    configure_logging,
    run_search,
    valuate,
)


def format_record(record) -> str:
    if record.is_miles:
        cost = f"{record.miles:,} 哩 + NT${record.taxes:,}"
    else:
        cost = f"NT${record.price:,}"
    arrive = record.arrive_time + (f"+{record.arrive_day_offset}" if record.arrive_day_offset else "")
    stops = "直飛" if record.stops == 0 else f"{record.stops} 轉"
    duration = ""
    if record.duration_minutes:
        duration = f" {record.duration_minutes // 60}h{record.duration_minutes % 60:02d}m"
    source = " [API]" if record.source.value == "external_api" else ""
    return (
        f"  {record.airline_name} {record.flight_number:<16} {record.depart_time or '--:--'}→{arrive or '--:--'}"
        f"{duration} {stops:<4} {record.cabin.value:<15} {cost}{source}"
    )


def print_valuations(result, rate: float):
    print(f"\n💰 Miles valuation (baseline NT${rate}/mile):")
    shown = False
    for airline in sorted({r.airline for r in result.outbound}):
        cash = [r for r in result.cash_fares(Direction.OUTBOUND) if r.airline == airline]
        award = [r for r in result.miles_fares(Direction.OUTBOUND) if r.airline == airline]
        if not cash or not award:
            continue
        verdict = valuate(cash[0], award[0], rate)
        shown = True
        mark = "✅ worth it" if verdict.worth_it else "❌ pay cash"
        print(
            f"  {airline}: NT${cash[0].price:,} vs {award[0].miles:,} 哩 + NT${award[0].taxes:,} → "
            f"NT${verdict.value_per_mile}/mile, saves NT${verdict.savings:,} ({mark})"
        )
    if not shown:
        print("  No airline returned both a cash and an award fare")


def main():
    parser = argparse.ArgumentParser(description="Search airline fares")
    parser.add_argument("--origin", default="TPE", help="Departure airport code")
    parser.add_argument("--dest", required=True, help="Arrival airport code")
    parser.add_argument("--date", required=True, help="Departure date YYYY-MM-DD")
    parser.add_argument("--return-date", help="Return date YYYY-MM-DD")
    parser.add_argument("--adults", type=int, default=1, help="Adult passengers")
    parser.add_argument("--cabin", default="ECONOMY", help="Cabin class")
    parser.add_argument("--airlines", default="", help="Comma-separated airline codes")
    parser.add_argument("--valuate", action="store_true", help="Print cash vs miles verdicts")
    parser.add_argument("--links", action="store_true", help="Print booking links")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("-o", "--output", help="Output JSON file path")
    args = parser.parse_args()

    settings = Settings()
    if args.headed:
        settings.browser_headless = False
    configure_logging(settings.log_level)

    try:
        request = SearchRequest.from_strings(
            args.origin, args.dest, args.date, args.return_date,
            adults=args.adults, cabin=args.cabin, airlines=args.airlines,
        )
        request.validate()
    except InvalidSearchRequest as e:
        print(f"❌ {e}")
        sys.exit(2)

    trip = f"{request.depart_date}" + (f" ⇄ {request.return_date}" if request.return_date else "")
    print(f"🔍 {request.origin} → {request.destination} {trip} ({', '.join(request.target_airlines)})")

    result = asyncio.run(run_search(request, settings))

    for direction, records in (("Outbound", result.outbound), ("Inbound", result.inbound)):
        if not records and direction == "Inbound":
            continue
        print(f"\n✈️  {direction}: {len(records)} fares")
        for record in records:
            print(format_record(record))

    if result.failures:
        print(f"\n⚠️ {len(result.failures)} task(s) failed:")
        for failure in result.failures:
            print(f"  {failure.airline or 'external'} {failure.task.value}: {failure.kind.value} - {failure.reason}")
    for warning in result.warnings:
        print(f"  ⚠️ {warning}")

    if args.valuate:
        print_valuations(result, settings.miles_value_rate)

    data = result.to_dict()
    if args.links or args.output:
        data["booking_links"] = booking_links(request, build_adapters(request.target_airlines))
    if args.links:
        print("\n🔗 Booking links:")
        for link in data["booking_links"]:
            print(f"  {link['airline']}: {link['url']}")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        print(f"\n💾 Saved to: {output_path}")

    print(f"\n⏱️ Done in {result.elapsed_seconds:.1f}s")
    sys.exit(0 if not result.is_empty else 1)


if __name__ == "__main__":
    main()
