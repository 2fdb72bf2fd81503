#!/usr/bin/env python3
"""
Headless Browser Session (for JavaScript-rendered / anti-bot pages)

Uses Selenium with undetected-chromedriver. One browser per SessionContext,
launched lazily on first use and shared by every browser-mode request made
through that context. Navigation is serialized on a lock because the
browser has a single active page.

State machine:
    UNINITIALIZED -> LAUNCHING -> READY <-> NAVIGATING -> CLOSED
    LAUNCHING --(no executable / launch failure)--> DISABLED

DISABLED is sticky: browser-mode requests fail fast with
BrowserUnavailableError until reset() is called.

Background network responses are read from Chrome's performance log and
the DevTools protocol, so JSON the page loads over XHR can be offered to
the extractor next to the rendered markup.
"""
import os
import json
import time
import base64
import hashlib
import random
import shutil
import threading
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.common.by import By

from cardpop.errors import BrowserUnavailableError, NavigationTimeout, NetworkError
from cardpop.models import CapturedResponse, FetchResult
from cardpop.utils.logger import get_logger

logger = get_logger("browser")

# =============================================================================
# CONFIGURATION
# =============================================================================

BROWSER_HEADLESS = os.environ.get("BROWSER_HEADLESS", "true").lower() in ("true", "1", "yes", "on")
BROWSER_NAV_TIMEOUT = int(os.environ.get("BROWSER_NAV_TIMEOUT", "30"))
BROWSER_WAIT_ATTEMPTS = int(os.environ.get("BROWSER_WAIT_ATTEMPTS", "10"))
BROWSER_WAIT_INTERVAL = float(os.environ.get("BROWSER_WAIT_INTERVAL", "1.0"))

CHROME_EXECUTABLE_PATH = os.environ.get("CHROME_EXECUTABLE_PATH", "")
BUNDLED_CHROME_PATH = os.environ.get("BUNDLED_CHROME_PATH", "/opt/chromium/chrome")

# Host installs, checked in order before the bundled binary
WELL_KNOWN_CHROME_PATHS = [
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/snap/bin/chromium",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    r"C:\Program Files\Google\Chrome\Application\chrome.exe",
    r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
]
CHROME_BINARY_NAMES = ["google-chrome", "google-chrome-stable", "chromium", "chromium-browser", "chrome"]

# Background responses worth buffering
STRUCTURED_URL_HINTS = ("/api/", "graphql", ".json", "checklist", "cards", "population", "search")
TELEMETRY_HOSTS = (
    "google-analytics.com", "googletagmanager.com", "doubleclick.net", "facebook.com",
    "segment.io", "hotjar.com", "sentry.io", "newrelic.com", "clarity.ms",
)
MAX_CAPTURED_BODY = 2_000_000

HIDE_WEBDRIVER_SCRIPT = '''
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined
    });
'''

POST_JSON_SCRIPT = '''
    const [url, payload, headers, done] = arguments;
    fetch(url, {
        method: 'POST',
        credentials: 'include',
        headers: Object.assign({'Content-Type': 'application/json'}, headers),
        body: JSON.stringify(payload),
    })
        .then(r => r.text().then(t => done({status: r.status, text: t,
                                              type: r.headers.get('content-type') || ''})))
        .catch(e => done({status: 0, text: String(e), type: ''}));
'''


class BrowserState(Enum):
    UNINITIALIZED = "uninitialized"
    LAUNCHING = "launching"
    READY = "ready"
    NAVIGATING = "navigating"
    CLOSED = "closed"
    DISABLED = "disabled"


# =============================================================================
# EXECUTABLE PROBE
# =============================================================================

def probe_browser_executable(
    explicit_path: Optional[str] = None,
    candidates: Sequence[str] = None,
    bundled_path: Optional[str] = None,
    exists: Callable[[str], bool] = os.path.isfile,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> Optional[str]:
    """
    Find a Chrome/Chromium executable.

    Order: explicit path, well-known install locations, PATH lookup, then the
    bundled serverless binary. Returns None when nothing is usable.
    """
    explicit_path = explicit_path if explicit_path is not None else CHROME_EXECUTABLE_PATH
    if explicit_path and exists(explicit_path):
        return explicit_path

    for path in candidates if candidates is not None else WELL_KNOWN_CHROME_PATHS:
        if exists(path):
            return path

    for name in CHROME_BINARY_NAMES:
        found = which(name)
        if found:
            return found

    bundled_path = bundled_path if bundled_path is not None else BUNDLED_CHROME_PATH
    if bundled_path and exists(bundled_path):
        logger.info(f"Using bundled browser binary at {bundled_path}")
        return bundled_path

    return None


def _default_driver_factory(executable_path: str, headless: bool, nav_timeout: int):
    """Launch an automation-resistant Chrome with performance logging on."""
    import undetected_chromedriver as uc

    options = uc.ChromeOptions()
    if headless:
        options.add_argument('--headless=new')

    options.add_argument('--no-sandbox')
    options.add_argument('--disable-dev-shm-usage')
    options.add_argument('--disable-blink-features=AutomationControlled')

    width = random.randint(1920, 2560)
    height = random.randint(1080, 1440)
    options.add_argument(f'--window-size={width},{height}')

    options.set_capability("goog:loggingPrefs", {"performance": "ALL"})

    driver = uc.Chrome(options=options, browser_executable_path=executable_path, version_main=None)
    driver.set_page_load_timeout(nav_timeout)
    driver.execute_cdp_cmd('Page.addScriptToEvaluateOnNewDocument', {'source': HIDE_WEBDRIVER_SCRIPT})
    return driver


# =============================================================================
# WAIT CONDITIONS
# =============================================================================

class WaitCondition:
    """A DOM condition polled after navigation ("some table exceeds N rows")."""

    def __init__(self, script: str, threshold: int, description: str):
        self.script = script
        self.threshold = threshold
        self.description = description

    @classmethod
    def table_rows(cls, min_rows: int) -> "WaitCondition":
        script = (
            "return Math.max(0, ...Array.from(document.querySelectorAll('table'))"
            ".map(t => t.rows.length));"
        )
        return cls(script, min_rows, f"a table with more than {min_rows} rows")

    @classmethod
    def selector(cls, css: str, min_count: int = 0) -> "WaitCondition":
        script = f"return document.querySelectorAll({json.dumps(css)}).length;"
        return cls(script, min_count, f"more than {min_count} x {css}")

    def met(self, driver) -> bool:
        try:
            value = driver.execute_script(self.script)
        except WebDriverException:
            return False
        try:
            return int(value or 0) > self.threshold
        except (TypeError, ValueError):
            return False


# =============================================================================
# BROWSER SESSION
# =============================================================================

def looks_structured(url: str, content_type: str) -> bool:
    """Whether a background response probably carries structured data."""
    host = urlsplit(url).netloc.lower()
    if any(t in host for t in TELEMETRY_HOSTS):
        return False
    if "json" in (content_type or "").lower():
        return True
    lowered = url.lower()
    return any(hint in lowered for hint in STRUCTURED_URL_HINTS) and "javascript" not in (content_type or "")


class BrowserSession:
    """Lazily launched, shared headless browser with a small state machine."""

    def __init__(
        self,
        driver_factory: Callable = None,
        executable_path: Optional[str] = None,
        headless: bool = BROWSER_HEADLESS,
        nav_timeout: int = BROWSER_NAV_TIMEOUT,
        wait_attempts: int = BROWSER_WAIT_ATTEMPTS,
        wait_interval: float = BROWSER_WAIT_INTERVAL,
        probe: Callable[[], Optional[str]] = probe_browser_executable,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.driver_factory = driver_factory or _default_driver_factory
        self.executable_path = executable_path
        self.headless = headless
        self.nav_timeout = nav_timeout
        self.wait_attempts = wait_attempts
        self.wait_interval = wait_interval
        self._probe = probe
        self._sleep = sleep

        self.state = BrowserState.UNINITIALIZED
        self.unavailable_reason: Optional[str] = None
        self._driver = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    @property
    def is_available(self) -> bool:
        return self.state != BrowserState.DISABLED

    @property
    def driver(self):
        return self._driver

    def _disable(self, reason: str):
        self.state = BrowserState.DISABLED
        self.unavailable_reason = reason
        logger.warning(f"Browser mode disabled: {reason}")

    def _ensure_driver(self):
        if self.state == BrowserState.DISABLED:
            raise BrowserUnavailableError(self.unavailable_reason or "Browser unavailable", strategy="browser")

        if self._driver is not None and self.state in (BrowserState.READY, BrowserState.NAVIGATING):
            return self._driver

        self.state = BrowserState.LAUNCHING
        path = self.executable_path or self._probe()
        if not path:
            self._disable("No Chrome/Chromium executable found")
            raise BrowserUnavailableError(self.unavailable_reason, strategy="browser")

        try:
            logger.info(f"Launching headless browser ({path})")
            self._driver = self.driver_factory(path, self.headless, self.nav_timeout)
        except Exception as e:
            self._driver = None
            self._disable(f"Browser launch failed: {e}")
            raise BrowserUnavailableError(self.unavailable_reason, strategy="browser") from e

        try:
            self._driver.execute_cdp_cmd("Network.enable", {})
        except WebDriverException as e:
            logger.debug(f"Network capture unavailable: {e}")

        self.state = BrowserState.READY
        return self._driver

    def reset(self):
        """Close the browser and clear a DISABLED state so launch is retried."""
        with self._lock:
            self.close()
            self.state = BrowserState.UNINITIALIZED
            self.unavailable_reason = None

    def close(self):
        """Quit the browser. A later browser-mode request relaunches it."""
        with self._lock:
            if self._driver is not None:
                try:
                    self._driver.quit()
                except WebDriverException as e:
                    logger.debug(f"Browser quit error: {e}")
                except OSError as e:
                    logger.debug(f"Browser process already gone: {e}")
            self._driver = None
            if self.state != BrowserState.DISABLED:
                self.state = BrowserState.CLOSED

    # ------------------------------------------------------------------
    # navigation
    # ------------------------------------------------------------------

    def navigate(self, url: str, wait_for: Optional[WaitCondition] = None, referer: Optional[str] = None) -> FetchResult:
        """
        Navigate to url and return the rendered page plus captured responses.

        A navigation timeout raises NavigationTimeout and leaves the browser
        open for reuse; any other driver failure closes it.
        """
        with self._lock:
            driver = self._ensure_driver()
            self.state = BrowserState.NAVIGATING
            try:
                if referer:
                    self._set_referer(driver, referer)
                try:
                    driver.get(url)
                except TimeoutException as e:
                    raise NavigationTimeout(f"Navigation timed out after {self.nav_timeout}s", url=url, strategy="browser") from e

                timed_out = False
                if wait_for is not None and not self.wait_until(wait_for):
                    timed_out = True
                    logger.warning(f"Timed out waiting for {wait_for.description}", extra={"url": url})

                return self.snapshot(requested_url=url, timed_out=timed_out)

            except WebDriverException as e:
                self.close()
                raise NetworkError(f"Browser navigation failed: {e.msg or e}", url=url, strategy="browser") from e
            finally:
                if self.state == BrowserState.NAVIGATING:
                    self.state = BrowserState.READY

    def snapshot(self, requested_url: Optional[str] = None, timed_out: bool = False) -> FetchResult:
        """Current page markup plus any responses captured since the last snapshot."""
        with self._lock:
            driver = self._ensure_driver()
            current_url = driver.current_url or requested_url or ""
            captured, status = self._drain_network(current_url)
            return FetchResult(
                url=current_url,
                status=status,
                text=driver.page_source or "",
                mode="browser",
                content_type="text/html",
                captured=captured,
                timed_out=timed_out,
            )

    def wait_until(self, condition: WaitCondition, attempts: Optional[int] = None) -> bool:
        """Poll condition a bounded number of times. Never waits unboundedly."""
        driver = self._driver
        if driver is None:
            return False
        for attempt in range(attempts or self.wait_attempts):
            if condition.met(driver):
                return True
            self._sleep(self.wait_interval)
        return condition.met(driver)

    def page_signature(self) -> Optional[str]:
        """Hash of the current URL and page source; None without a live page."""
        driver = self._driver
        if driver is None:
            return None
        try:
            current = f"{driver.current_url or ''}\n{driver.page_source or ''}"
        except WebDriverException:
            return None
        return hashlib.sha1(current.encode("utf-8", "replace")).hexdigest()

    def wait_for_change(self, previous: Optional[str], attempts: Optional[int] = None) -> bool:
        """Poll until the page no longer matches `previous`, for a bounded number of attempts."""
        total = attempts or self.wait_attempts
        for attempt in range(total + 1):
            current = self.page_signature()
            if current is not None and current != previous:
                return True
            if attempt < total:
                self._sleep(self.wait_interval)
        return False

    def post_json(self, url: str, payload: dict, headers: Optional[dict] = None) -> FetchResult:
        """POST from inside the page so the request carries browser cookies."""
        with self._lock:
            driver = self._ensure_driver()
            origin = "{0.scheme}://{0.netloc}".format(urlsplit(url))
            try:
                if not (driver.current_url or "").startswith(origin):
                    driver.get(origin + "/")
                driver.set_script_timeout(self.nav_timeout)
                response = driver.execute_async_script(POST_JSON_SCRIPT, url, payload, headers or {})
            except TimeoutException as e:
                raise NavigationTimeout("In-page POST timed out", url=url, strategy="browser") from e
            except WebDriverException as e:
                self.close()
                raise NetworkError(f"In-page POST failed: {e.msg or e}", url=url, strategy="browser") from e

            response = response or {}
            status = int(response.get("status") or 0)
            if status == 0:
                raise NetworkError(f"In-page POST failed: {response.get('text')}", url=url, strategy="browser")
            return FetchResult(
                url=url,
                status=status,
                text=response.get("text") or "",
                mode="browser",
                content_type=response.get("type") or "",
            )

    # ------------------------------------------------------------------
    # page interaction
    # ------------------------------------------------------------------

    def find_control(self, locators: Iterable[Tuple[str, str]]) -> List:
        """Visible, enabled elements matched by the locators, in locator order."""
        with self._lock:
            driver = self._ensure_driver()
            found = []
            for by, value in locators:
                try:
                    elements = driver.find_elements(by, value)
                except WebDriverException:
                    continue
                found.extend(e for e in elements if _is_clickable(e))
            return found

    def has_control(self, locators: Iterable[Tuple[str, str]]) -> bool:
        return bool(self.find_control(locators))

    def click_first(self, locators: Iterable[Tuple[str, str]]) -> bool:
        """
        Click the first visible, enabled element matched by any locator.

        Returns False when no such control exists.
        """
        with self._lock:
            driver = self._ensure_driver()
            for element in self.find_control(locators):
                try:
                    element.click()
                except WebDriverException:
                    try:
                        driver.execute_script("arguments[0].click();", element)
                    except WebDriverException:
                        continue
                return True
            return False

    def cookies(self) -> List[dict]:
        """Cookies of the current page, for copying into the HTTP session."""
        with self._lock:
            if self._driver is None:
                return []
            try:
                return self._driver.get_cookies() or []
            except WebDriverException:
                return []

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _set_referer(self, driver, referer: str):
        try:
            driver.execute_cdp_cmd("Network.setExtraHTTPHeaders", {"headers": {"Referer": referer}})
        except WebDriverException as e:
            logger.debug(f"Could not set referer: {e}")

    def _drain_network(self, document_url: str) -> Tuple[List[CapturedResponse], int]:
        """Read performance log entries; return structured responses and the document status."""
        driver = self._driver
        captured: List[CapturedResponse] = []
        status = 200

        try:
            entries = driver.get_log("performance")
        except (WebDriverException, ValueError) as e:
            logger.debug(f"Performance log unavailable: {e}")
            return captured, status

        for entry in entries:
            try:
                message = json.loads(entry["message"])["message"]
            except (KeyError, TypeError, ValueError):
                continue
            if message.get("method") != "Network.responseReceived":
                continue

            params = message.get("params", {})
            response = params.get("response", {})
            url = response.get("url", "")
            mime = response.get("mimeType", "")

            if params.get("type") == "Document" and url.rstrip("/") == document_url.rstrip("/"):
                status = int(response.get("status") or status)
                continue

            if not looks_structured(url, mime):
                continue

            try:
                body = driver.execute_cdp_cmd("Network.getResponseBody", {"requestId": params.get("requestId")})
            except WebDriverException:
                continue

            text = body.get("body", "")
            if body.get("base64Encoded"):
                try:
                    text = base64.b64decode(text).decode("utf-8", errors="replace")
                except ValueError:
                    continue
            if not text or len(text) > MAX_CAPTURED_BODY:
                continue

            captured.append(CapturedResponse(
                url=url,
                content_type=mime,
                body=text,
                status=int(response.get("status") or 200),
            ))

        if captured:
            logger.debug(f"Captured {len(captured)} background responses", extra={"url": document_url})
        return captured, status


def _is_clickable(element) -> bool:
    try:
        if not element.is_displayed() or not element.is_enabled():
            return False
        classes = (element.get_attribute("class") or "").lower()
        if "disabled" in classes:
            return False
        if (element.get_attribute("aria-disabled") or "").lower() == "true":
            return False
        return True
    except WebDriverException:
        return False


# Locators used by the checklist paginator
_UPPER = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_LOWER = "abcdefghijklmnopqrstuvwxyz"

SHOW_MORE_LOCATORS = [
    (By.CSS_SELECTOR, "button.load-more, a.load-more, .show-more button, button.show-more, [data-action='load-more']"),
    (By.XPATH, "//button[contains(translate(normalize-space(.), '" + _UPPER + "', '" + _LOWER + "'), 'show more')]"),
    (By.XPATH, "//button[contains(translate(normalize-space(.), '" + _UPPER + "', '" + _LOWER + "'), 'load more')]"),
    (By.XPATH, "//a[contains(translate(normalize-space(.), '" + _UPPER + "', '" + _LOWER + "'), 'show more')]"),
]

NEXT_PAGE_LOCATORS = [
    (By.CSS_SELECTOR, "a[rel='next'], .pagination a[aria-label='Next'], .pagination .next a, .pagination .page-item.next a"),
    (By.CSS_SELECTOR, "button[aria-label='Next page'], button.next-page, .dataTables_paginate .next"),
    (By.XPATH, "//a[normalize-space(.)='Next' or normalize-space(.)='Next »' or normalize-space(.)='›']"),
    (By.XPATH, "//button[normalize-space(.)='Next' or normalize-space(.)='Next »' or normalize-space(.)='›']"),
]
