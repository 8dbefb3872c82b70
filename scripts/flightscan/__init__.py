"""
Flight Scan Package

Live fare search across airline websites and the Amadeus API, with a
bounded browser pool, normalized results and a cash-vs-miles verdict.
Each airline has its own adapter module in flightscan/airlines/.
"""

from .schema import (
    Cabin,
    Direction,
    FailureKind,
    FareRecord,
    FareSource,
    MileageAccount,
    RawFareOffer,
    SearchRequest,
    SearchResult,
    TaskFailure,
    ValuationVerdict,
)
from .errors import FlightScanError, InvalidSearchRequest
from .config import Settings, configure_logging
from .pool import BrowserPool, PlaywrightPageFactory
from .amadeus import AmadeusClient
from .engine import ScraperEngine, run_search
from .normalizer import normalize_offer, sort_records
from .valuation import calculate_miles_value, valuate
from .registry import build_adapters, get_adapter
from .links import booking_links

__all__ = [
    "Cabin",
    "Direction",
    "FailureKind",
    "FareRecord",
    "FareSource",
    "MileageAccount",
    "RawFareOffer",
    "SearchRequest",
    "SearchResult",
    "TaskFailure",
    "ValuationVerdict",
    "FlightScanError",
    "InvalidSearchRequest",
    "Settings",
    "configure_logging",
    "BrowserPool",
    "PlaywrightPageFactory",
    "AmadeusClient",
    "ScraperEngine",
    "run_search",
    "normalize_offer",
    "sort_records",
    "calculate_miles_value",
    "valuate",
    "build_adapters",
    "get_adapter",
    "booking_links",
]
