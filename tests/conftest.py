# conftest.py
# Keeps log output off disk and provides fake HTTP/browser fixtures so no
# test touches the network or launches Chrome.

import os
import sys
from pathlib import Path

os.environ["LOG_TO_FILE"] = "false"
os.environ["LOG_TO_CONSOLE"] = "false"

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from cardpop.scanners.browser import BrowserSession  # noqa: E402
from cardpop.session import SessionContext  # noqa: E402

from fakes import DriverFactory, FakeDriver, FakeHttp  # noqa: E402

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"


def no_sleep(seconds):
    pass


@pytest.fixture
def fake_http():
    return FakeHttp()


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def driver_factory(fake_driver):
    return DriverFactory(fake_driver)


@pytest.fixture
def browser(driver_factory):
    return BrowserSession(
        driver_factory=driver_factory,
        executable_path="/usr/bin/google-chrome",
        wait_attempts=2,
        wait_interval=0,
        sleep=no_sleep,
    )


@pytest.fixture
def unavailable_browser():
    return BrowserSession(driver_factory=DriverFactory(), probe=lambda: None, sleep=no_sleep)


@pytest.fixture
def ctx(fake_http, browser):
    context = SessionContext(http=fake_http, browser=browser, user_agent=USER_AGENT)
    context.open()
    yield context
    context.close()


@pytest.fixture
def ctx_no_browser(fake_http, unavailable_browser):
    context = SessionContext(http=fake_http, browser=unavailable_browser, user_agent=USER_AGENT)
    context.open()
    yield context
    context.close()
