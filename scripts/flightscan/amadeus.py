"""
Amadeus Flight Offers client

Structured cash fares from the Amadeus Self-Service API, used alongside
the browser adapters. Authentication is OAuth2 client credentials; the
access token is cached on the client instance until it expires.
"""

from __future__ import annotations

import logging
import time
from datetime import date, timedelta
from typing import Optional

import httpx

from .errors import RateLimited, SourceUnavailable
from .schema import Direction, FareSource, RawFareOffer, SearchRequest

logger = logging.getLogger(__name__)

TEST_HOST = "https://test.api.amadeus.com"
PRODUCTION_HOST = "https://api.amadeus.com"
TOKEN_PATH = "/v1/security/oauth2/token"
OFFERS_PATH = "/v2/shopping/flight-offers"

MAX_OFFERS = 20
SERVICE_NAME = "Amadeus"


def build_query(request: SearchRequest, currency: str = "TWD") -> dict[str, str]:
    """Query parameters for a Flight Offers Search GET."""
    params = {
        "originLocationCode": request.origin,
        "destinationLocationCode": request.destination,
        "departureDate": request.depart_date.isoformat(),
        "adults": str(request.adults),
        "currencyCode": currency,
        "max": str(MAX_OFFERS),
        "travelClass": request.cabin.value,
    }
    if request.return_date:
        params["returnDate"] = request.return_date.isoformat()
    if request.airlines:
        params["includedAirlineCodes"] = ",".join(request.airlines)
    return params


def parse_offers(payload: dict) -> list[RawFareOffer]:
    """
    Flatten a Flight Offers response into one RawFareOffer per itinerary.

    The offer's grand total covers every itinerary of a round trip, so
    round-trip records are marked fare_scope="round_trip" rather than
    splitting the price between directions.
    """
    offers = []
    for offer in payload.get("data") or []:
        price = offer.get("price") or {}
        total = price.get("grandTotal") or price.get("total")
        if total is None:
            continue
        currency = price.get("currency", "TWD")

        itineraries = offer.get("itineraries") or []
        scope = "round_trip" if len(itineraries) > 1 else "one_way"

        traveler_pricings = offer.get("travelerPricings") or [{}]
        segment_fares = traveler_pricings[0].get("fareDetailsBySegment") or [{}]
        cabin = segment_fares[0].get("cabin") or "ECONOMY"
        fare_basis = segment_fares[0].get("fareBasis", "")

        for index, itinerary in enumerate(itineraries):
            segments = itinerary.get("segments") or []
            if not segments:
                continue
            first, last = segments[0], segments[-1]
            departure_at = (first.get("departure") or {}).get("at", "")
            offers.append(RawFareOffer(
                airline=first.get("carrierCode", ""),
                flight_number=" / ".join(f"{s.get('carrierCode', '')}{s.get('number', '')}" for s in segments),
                depart_time=departure_at,
                arrive_time=(last.get("arrival") or {}).get("at", ""),
                duration_text=itinerary.get("duration", ""),
                price_text=str(total),
                currency=currency,
                cabin_label=cabin,
                stops=len(segments) - 1,
                fare_basis=fare_basis,
                direction=Direction.OUTBOUND if index == 0 else Direction.INBOUND,
                depart_date=_date_part(departure_at),
                source=FareSource.EXTERNAL_API,
                fare_scope=scope,
                extras={
                    "offer_id": offer.get("id", ""),
                    "bookable_seats": offer.get("numberOfBookableSeats"),
                    "aircraft": [s.get("aircraft", {}).get("code") for s in segments if s.get("aircraft")],
                },
            ))
    return offers


def _date_part(timestamp: str) -> Optional[date]:
    try:
        return date.fromisoformat(timestamp[:10])
    except (TypeError, ValueError):
        return None


def _json_body(resp: httpx.Response, context: str) -> dict:
    try:
        data = resp.json()
    except ValueError as e:
        raise SourceUnavailable(f"{context}: body is not JSON", status_code=resp.status_code) from e
    if not isinstance(data, dict):
        raise SourceUnavailable(f"{context}: unexpected JSON body", status_code=resp.status_code)
    return data


class AmadeusClient:
    """
    External fare source backed by Amadeus Flight Offers Search.

    A passed-in httpx client stays owned by the caller. Missing credentials
    are not an error at construction time; search() reports SourceUnavailable.
    """

    name = SERVICE_NAME

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        production: bool = False,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
        currency: str = "TWD",
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._host = PRODUCTION_HOST if production else TEST_HOST
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout
        self._currency = currency
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    @property
    def configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    async def search(self, request: SearchRequest) -> list[RawFareOffer]:
        if not self.configured:
            raise SourceUnavailable("Amadeus credentials are not configured (AMADEUS_CLIENT_ID / AMADEUS_CLIENT_SECRET)")

        params = build_query(request, self._currency)
        logger.info(
            "[Amadeus] searching %s→%s %s cabin=%s airlines=[%s]",
            request.origin, request.destination, request.depart_date,
            request.cabin.value, ",".join(request.airlines),
        )
        payload = await self._get(OFFERS_PATH, params)
        offers = parse_offers(payload)
        logger.info("[Amadeus] received %d offers", len(payload.get("data") or []))
        return offers

    async def test_connection(self) -> dict:
        """Tiny one-result query a week out, for diagnostics."""
        if not self.configured:
            return {"success": False, "error": "credentials not configured"}
        probe = SearchRequest(
            origin="TPE",
            destination="NRT",
            depart_date=date.today() + timedelta(days=7),
        )
        try:
            payload = await self._get(OFFERS_PATH, {**build_query(probe, self._currency), "max": "1"})
        except (SourceUnavailable, RateLimited) as e:
            return {"success": False, "error": str(e)}
        return {"success": True, "offers": len(payload.get("data") or [])}

    async def _get(self, path: str, params: dict) -> dict:
        token = await self._access_token()
        try:
            resp = await self._http().get(
                f"{self._host}{path}",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise SourceUnavailable(f"Amadeus request failed: {e}") from e

        if resp.status_code == 429:
            raise RateLimited(SERVICE_NAME)
        if resp.status_code == 401:
            # Token revoked early; the next call fetches a new one
            self._token = None
            raise SourceUnavailable("Amadeus rejected the access token", status_code=401)
        if resp.status_code >= 400:
            raise SourceUnavailable(f"Amadeus API error: {resp.text[:200]}", status_code=resp.status_code)
        return _json_body(resp, "Amadeus returned an unreadable response")

    async def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        try:
            resp = await self._http().post(
                f"{self._host}{TOKEN_PATH}",
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                },
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise SourceUnavailable(f"Amadeus authentication failed: {e}") from e

        if resp.status_code == 429:
            raise RateLimited(SERVICE_NAME)
        if resp.status_code >= 400:
            raise SourceUnavailable(
                f"Amadeus authentication failed: {resp.text[:200]}", status_code=resp.status_code
            )

        data = _json_body(resp, "Amadeus authentication failed")
        if not data.get("access_token"):
            raise SourceUnavailable("Amadeus authentication failed: no access token in response", status_code=resp.status_code)
        self._token = data["access_token"]
        # Refresh a little early so a token never expires mid-request
        self._token_expires_at = time.monotonic() + max(int(data.get("expires_in", 1799)) - 30, 0)
        logger.debug("[Amadeus] obtained access token (%s)", "production" if self._host == PRODUCTION_HOST else "test")
        return self._token

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
