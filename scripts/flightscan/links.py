"""
Booking links

Where to book a searched trip: each airline's own booking page plus
Google Flights and Skyscanner for comparison.
"""

from __future__ import annotations

from typing import Mapping

from .base import AirlineAdapter
from .schema import SearchRequest


def google_flights_url(request: SearchRequest) -> str:
    return (
        "https://www.google.com/travel/flights?q=flights+from+"
        f"{request.origin}+to+{request.destination}+on+{request.depart_date.isoformat()}"
    )


def skyscanner_url(request: SearchRequest) -> str:
    return (
        "https://www.skyscanner.com.tw/transport/flights/"
        f"{request.origin.lower()}/{request.destination.lower()}/{request.depart_date:%Y%m%d}/"
    )


def booking_links(request: SearchRequest, adapters: Mapping[str, AirlineAdapter]) -> list[dict]:
    """[{"airline": name, "code": code, "url": url}, ...], airlines first."""
    links = [
        {"airline": adapter.full_name or adapter.name, "code": code, "url": adapter.booking_link(request)}
        for code, adapter in adapters.items()
    ]
    links.append({"airline": "Google Flights", "code": "", "url": google_flights_url(request)})
    links.append({"airline": "Skyscanner", "code": "", "url": skyscanner_url(request)})
    return links
