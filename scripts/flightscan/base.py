"""
Base Airline Adapter

Shared browser helpers and the abstract adapter contract every airline
implements. The engine only ever talks to AirlineAdapter; concrete
airlines live in flightscan/airlines/.
"""

from __future__ import annotations

import logging
import random
import re
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date
from typing import Any, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .errors import AuthenticationFailed, LayoutChanged, NavigationTimeout, SourceUnavailable
from .schema import Cabin, MileageAccount, RawFareOffer, SearchRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Browser helpers
# ---------------------------------------------------------------------------

# Sets an input's value through the native setter so Vue/React/flatpickr see it
SET_INPUT_VALUE_JS = """
({ selector, value }) => {
  const input = document.querySelector(selector);
  if (!input) return false;
  if (input._flatpickr) { input._flatpickr.setDate(value); return true; }
  const setter = Object.getOwnPropertyDescriptor(window.HTMLInputElement.prototype, 'value').set;
  setter.call(input, value);
  input.dispatchEvent(new Event('input', { bubbles: true }));
  input.dispatchEvent(new Event('change', { bubbles: true }));
  return true;
}
"""

# Returns the text of every element matched by the first selector that matches anything
CARD_TEXTS_JS = """
(selectors) => {
  for (const sel of selectors) {
    const found = document.querySelectorAll(sel);
    if (found.length > 0) {
      return Array.from(found).map((el) => el.innerText || el.textContent || '');
    }
  }
  return [];
}
"""

COMMON_POPUP_SELECTORS = (
    "button:has-text('接受')",
    "button:has-text('我同意')",
    "button:has-text('同意')",
    "button:has-text('Accept')",
    "button[aria-label='Close']",
    "button[aria-label='關閉']",
    ".modal-close",
    ".popup-close",
)


async def human_delay(page, min_ms: int = 500, max_ms: int = 1500) -> None:
    """Pause for a random interval so form input does not look scripted."""
    await page.wait_for_timeout(random.randint(min_ms, max_ms))


async def navigate(page, url: str, timeout: int = 45000, airline: str = "") -> None:
    """
    Load a URL, waiting for DOMContentLoaded.

    Raises NavigationTimeout when the site does not answer in time or the
    connection fails; both are worth one more try.
    """
    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
    except PlaywrightTimeoutError as e:
        raise NavigationTimeout(f"{url} did not load within {timeout / 1000:.0f}s", airline) from e
    except PlaywrightError as e:
        raise NavigationTimeout(f"Failed to navigate to {url}: {e}", airline) from e


async def scroll_page(page, steps: int = 3, step_delay_ms: int = 300, final_delay_ms: int = 1000):
    """Scroll page in steps to trigger lazy loading."""
    for i in range(steps):
        await page.evaluate(f"window.scrollTo(0, {(i + 1) * 1000})")
        await page.wait_for_timeout(step_delay_ms)
    await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
    await page.wait_for_timeout(final_delay_ms)


async def safe_extract_text(page) -> str:
    """Extract visible text from page with error handling."""
    try:
        return await page.evaluate("() => document.body.innerText")
    except PlaywrightError as e:
        logger.debug("Could not extract page text: %s", e)
        return ""


async def click_first(page, selectors: Sequence[str], timeout: int = 3000) -> Optional[str]:
    """Click the first visible element among the selectors. Returns the selector used."""
    for selector in selectors:
        try:
            el = await page.wait_for_selector(selector, state="visible", timeout=timeout)
        except PlaywrightError:
            continue
        if el is None:
            continue
        try:
            await el.click()
            return selector
        except PlaywrightError:
            continue
    return None


async def dismiss_popups(page, selectors: Sequence[str] = COMMON_POPUP_SELECTORS) -> None:
    """Close cookie banners and promo modals that block the booking form."""
    for selector in selectors:
        try:
            el = await page.query_selector(selector)
            if el and await el.is_visible():
                await el.click()
                await page.wait_for_timeout(300)
        except PlaywrightError:
            continue


async def fill_airport(
    page,
    input_selectors: Sequence[str],
    option_templates: Sequence[str],
    code: str,
    airline: str = "",
) -> None:
    """Type an IATA code into the first airport field found and pick it from the dropdown."""
    field = None
    for selector in input_selectors:
        try:
            field = await page.query_selector(selector)
        except PlaywrightError:
            field = None
        if field is not None:
            break
    if field is None:
        raise LayoutChanged(f"airport field not found (tried {len(input_selectors)} selectors)", airline)

    await field.click()
    await field.fill("")
    await field.type(code, delay=100)
    await human_delay(page, 1000, 2000)

    option = await click_first(page, [t.format(code=code) for t in option_templates], timeout=5000)
    if option is None:
        await page.keyboard.press("Enter")
    await human_delay(page, 300, 600)


async def set_input_value(page, selectors: Sequence[str], value: str, airline: str = "") -> None:
    """Set a (date) input directly; calendars are too fragile to click through."""
    for selector in selectors:
        try:
            if await page.evaluate(SET_INPUT_VALUE_JS, {"selector": selector, "value": value}):
                return
        except PlaywrightError:
            continue
    raise LayoutChanged(f"input for {value!r} not found", airline)


async def wait_for_results(
    page,
    result_selectors: Sequence[str],
    empty_selectors: Sequence[str] = (),
    timeout: int = 45000,
    airline: str = "",
) -> bool:
    """
    Wait until either results or a "no flights" notice render.

    Returns True for results, False for a valid empty answer. If neither
    shows up, a blank page means the site stalled (NavigationTimeout) and a
    page with content means its markup changed (LayoutChanged).
    """
    combined = ", ".join(list(result_selectors) + list(empty_selectors))
    try:
        await page.wait_for_selector(combined, timeout=timeout)
    except PlaywrightTimeoutError:
        text = await safe_extract_text(page)
        if text.strip():
            raise LayoutChanged("results page rendered without any known result markers", airline)
        raise NavigationTimeout(f"results page stayed blank for {timeout / 1000:.0f}s", airline)

    for selector in result_selectors:
        if await page.query_selector(selector):
            return True
    return False


@contextmanager
def page_errors(airline: str = ""):
    """
    Translate raw Playwright failures raised inside the block.

    A step that stalls past Playwright's own timeout becomes
    NavigationTimeout; any other browser error (element detached, not
    editable, script failed) means the page is not what we expect and
    becomes LayoutChanged. Task errors pass through untouched.
    """
    try:
        yield
    except PlaywrightTimeoutError as e:
        raise NavigationTimeout(f"page did not respond: {e.message}", airline) from e
    except PlaywrightError as e:
        raise LayoutChanged(f"page interaction failed: {e.message}", airline) from e


async def extract_card_texts(page, selectors: Sequence[str]) -> list[str]:
    """Inner text of each result card, using the first selector that matches."""
    try:
        return await page.evaluate(CARD_TEXTS_JS, list(selectors))
    except PlaywrightError as e:
        logger.debug("Card extraction failed: %s", e)
        return []


# ---------------------------------------------------------------------------
# Text helpers shared by parsers
# ---------------------------------------------------------------------------

def parse_stops(text: str) -> int:
    """0 for direct flights, otherwise the number of stops mentioned (default 1)."""
    if re.search(r"直飛|direct|non-?stop", text, re.IGNORECASE):
        return 0
    m = re.search(r"(\d+)\s*(?:stops?|次轉機|轉機|經停)", text, re.IGNORECASE)
    if m:
        return int(m.group(1))
    m = re.search(r"轉機\s*(\d+)", text)
    if m:
        return int(m.group(1))
    if re.search(r"轉機|stop|經停", text, re.IGNORECASE):
        return 1
    return 0


# ---------------------------------------------------------------------------
# Abstract adapters
# ---------------------------------------------------------------------------

class AirlineAdapter(ABC):
    """
    One airline's website.

    Subclasses must implement search_cash(); airlines whose site exposes
    redemption search set supports_miles and implement search_miles().
    Both search a single one-way leg and return RawFareOffers; an empty
    list means the site answered with no flights.
    """

    code: str = ""
    name: str = ""
    full_name: str = ""
    booking_url: str = ""
    supports_miles: bool = False
    result_limit: int = 10

    @abstractmethod
    async def search_cash(
        self,
        page,
        origin: str,
        destination: str,
        depart_date: date,
        cabin: Cabin,
        adults: int = 1,
    ) -> list[RawFareOffer]:
        ...

    async def search_miles(
        self,
        page,
        origin: str,
        destination: str,
        depart_date: date,
        cabin: Cabin,
        account: MileageAccount,
        adults: int = 1,
    ) -> list[RawFareOffer]:
        raise SourceUnavailable(f"{self.name or self.code} redemption search is not available", self.code)

    def booking_link(self, request: SearchRequest) -> str:
        return self.booking_url

    def select_cabin(self, offers: list[RawFareOffer], cabin: Cabin) -> list[RawFareOffer]:
        """Keep the requested cabin; sites list every cabin per flight."""
        return [o for o in offers if Cabin.from_label(o.cabin_label) is cabin][: self.result_limit]


class FormSearchAdapter(AirlineAdapter):
    """
    Airline whose search starts from a booking form.

    The flow is the same for every site: open the form, fill it, submit,
    wait for the results page, pull the cards out, parse them. Subclasses
    provide selectors and the two parse hooks.
    """

    award_url: str = ""
    login_url: str = ""

    one_way_selectors: Sequence[str] = ()
    origin_selectors: Sequence[str] = ()
    destination_selectors: Sequence[str] = ()
    airport_option_templates: Sequence[str] = (
        "[role='option']:has-text('{code}')",
        "li:has-text('{code}')",
    )
    date_selectors: Sequence[str] = ()
    date_format: str = "%Y/%m/%d"
    adults_selectors: Sequence[str] = ()
    submit_selectors: Sequence[str] = ("button:has-text('搜尋')", "button[type='submit']")
    results_url_pattern: str = ""
    result_selectors: Sequence[str] = ()
    no_result_selectors: Sequence[str] = (".no-result", "[class*='noFlight']", "[class*='no-flight']")

    member_id_selectors: Sequence[str] = ("#memberId", "input[name='memberId']")
    password_selectors: Sequence[str] = ("#password", "input[type='password']")
    login_submit_selectors: Sequence[str] = ("button:has-text('登入')", "button[type='submit']")
    login_error_selectors: Sequence[str] = (".error-message", "[class*='login-error']", "[role='alert']")

    async def search_cash(self, page, origin, destination, depart_date, cabin, adults=1):
        logger.info("[%s] cash search %s→%s %s", self.code, origin, destination, depart_date)
        with page_errors(self.code):
            await navigate(page, self.booking_url, airline=self.code)
            await human_delay(page, 1500, 2500)
            await dismiss_popups(page)
            raw = await self._run_search(page, origin, destination, depart_date, adults)
        if raw is None:
            return []
        offers = self.parse_cash_results(raw)
        logger.info("[%s] parsed %d cash fares", self.code, len(offers))
        return self.select_cabin(offers, cabin)

    async def search_miles(self, page, origin, destination, depart_date, cabin, account, adults=1):
        if not self.supports_miles:
            return await super().search_miles(page, origin, destination, depart_date, cabin, account, adults)
        logger.info("[%s] award search %s→%s %s", self.code, origin, destination, depart_date)
        with page_errors(self.code):
            await self.login(page, account)
            await navigate(page, self.award_url, airline=self.code)
            await human_delay(page, 1000, 2000)
            await dismiss_popups(page)
            raw = await self._run_search(page, origin, destination, depart_date, adults)
        if raw is None:
            return []
        offers = self.parse_award_results(raw)
        logger.info("[%s] parsed %d award fares", self.code, len(offers))
        return self.select_cabin(offers, cabin)

    async def _run_search(self, page, origin, destination, depart_date, adults) -> Any:
        await self.fill_search_form(page, origin, destination, depart_date, adults)
        if await click_first(page, self.submit_selectors) is None:
            raise LayoutChanged("search button not found", self.code)

        if self.results_url_pattern:
            try:
                await page.wait_for_url(re.compile(self.results_url_pattern), timeout=30000)
            except PlaywrightTimeoutError:
                logger.debug("[%s] results URL did not change, checking current page", self.code)
        if not await wait_for_results(page, self.result_selectors, self.no_result_selectors, airline=self.code):
            logger.info("[%s] no flights for %s→%s %s", self.code, origin, destination, depart_date)
            return None
        await human_delay(page, 1000, 2000)
        return await self.extract_results(page)

    async def fill_search_form(self, page, origin, destination, depart_date, adults) -> None:
        await click_first(page, self.one_way_selectors)
        await fill_airport(page, self.origin_selectors, self.airport_option_templates, origin, self.code)
        await fill_airport(page, self.destination_selectors, self.airport_option_templates, destination, self.code)
        await set_input_value(page, self.date_selectors, depart_date.strftime(self.date_format), self.code)
        await page.keyboard.press("Escape")
        if adults > 1 and self.adults_selectors:
            for selector in self.adults_selectors:
                el = await page.query_selector(selector)
                if el is not None:
                    await el.fill(str(adults))
                    break
            else:
                logger.debug("[%s] passenger field not found, keeping default", self.code)
        await human_delay(page, 300, 800)

    async def login(self, page, account: MileageAccount) -> None:
        """Sign in to the member area; raises AuthenticationFailed if the site refuses."""
        if not account.is_configured:
            raise AuthenticationFailed("mileage account has no credentials", self.code)
        await navigate(page, self.login_url, airline=self.code)
        await human_delay(page)
        await dismiss_popups(page)
        try:
            await page.fill(", ".join(self.member_id_selectors), account.member_id)
            await page.fill(", ".join(self.password_selectors), account.password)
        except PlaywrightError as e:
            raise LayoutChanged(f"login form not found: {e}", self.code) from e
        if await click_first(page, self.login_submit_selectors) is None:
            raise LayoutChanged("login button not found", self.code)
        await page.wait_for_timeout(3000)

        for selector in self.login_error_selectors:
            if await page.query_selector(selector):
                raise AuthenticationFailed("member login rejected", self.code)
        if await page.query_selector(", ".join(self.password_selectors)):
            raise AuthenticationFailed("still on the login form after submitting", self.code)

    async def extract_results(self, page) -> Any:
        """Pull raw data off the results page. Default: one text blob per card."""
        return await extract_card_texts(page, self.result_selectors)

    @abstractmethod
    def parse_cash_results(self, raw: Any) -> list[RawFareOffer]:
        """Pure parsing of extracted results into cash offers (no browser needed)."""
        ...

    def parse_award_results(self, raw: Any) -> list[RawFareOffer]:
        return []
