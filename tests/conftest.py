"""Shared fixtures: an in-memory browser driver serving a fake site."""

import os
import re
import sys
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import pytest

# Insert project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from chromesec.config import ScannerConfig
from chromesec.probes import DISCOVER_INPUTS_JS, SCRIPT_MATCHES_JS

SCRIPT_TAG_RE = re.compile(r"<script[^>]*>(.*?)</script>", re.I | re.S)


def query_value(url: str, name: str = "q") -> str:
    return parse_qs(urlparse(url).query).get(name, [""])[0]


class FakeSite:
    """Renders pages for FakePage; tests swap in their own render function."""

    def __init__(
        self,
        render: Optional[Callable[[str], Tuple[int, str]]] = None,
        elements: Optional[Dict[str, str]] = None,
        inputs: Optional[List[str]] = None,
    ):
        self.render = render or (lambda url: (200, "<html><body>ok</body></html>"))
        self.elements = elements if elements is not None else {}
        self.inputs = inputs if inputs is not None else []


class FakePage:
    def __init__(self, site: FakeSite):
        self.site = site
        self.url = "about:blank"
        self.visits: List[str] = []
        self.closed = False
        self.close_error: Optional[Exception] = None
        self._html = ""

    async def goto(self, url: str) -> Optional[int]:
        self.url = url
        self.visits.append(url)
        status, self._html = self.site.render(url)
        return status

    async def content(self) -> str:
        return self._html

    async def evaluate(self, expression: str, arg=None):
        if expression == DISCOVER_INPUTS_JS:
            return list(self.site.inputs)
        if expression == SCRIPT_MATCHES_JS:
            return any(text.strip() == arg for text in SCRIPT_TAG_RE.findall(self._html))
        return False

    async def evaluate_selector(self, selector: str) -> Optional[str]:
        return self.site.elements.get(selector)

    async def close(self) -> None:
        self.closed = True
        if self.close_error:
            raise self.close_error


class FakeBrowser:
    def __init__(self, site: FakeSite):
        self.site = site
        self.pages: List[FakePage] = []
        self.closed = False
        self.close_error: Optional[Exception] = None

    async def new_page(self) -> FakePage:
        page = FakePage(self.site)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True
        if self.close_error:
            raise self.close_error


class FakeDriver:
    """Records launches; raises ``fail_with`` instead of launching when set."""

    def __init__(self, site: Optional[FakeSite] = None):
        self.site = site or FakeSite()
        self.launches: List[tuple] = []
        self.browsers: List[FakeBrowser] = []
        self.fail_with: Optional[Exception] = None

    async def launch(self, executable_path, args, options) -> FakeBrowser:
        self.launches.append((executable_path, list(args), options))
        if self.fail_with is not None:
            raise self.fail_with
        browser = FakeBrowser(self.site)
        self.browsers.append(browser)
        return browser

    @property
    def last_args(self) -> List[str]:
        return self.launches[-1][1]


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def driver(site) -> FakeDriver:
    return FakeDriver(site)


@pytest.fixture
def config(tmp_path) -> ScannerConfig:
    cfg = ScannerConfig(profiles_dir=tmp_path / "profiles", reports_dir=tmp_path / "reports")
    cfg.launch.executable_path = "/opt/chrome/chrome"
    return cfg
