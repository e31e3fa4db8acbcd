"""
ChromeSec - Browser Session
Owns one Chromium process bound to an isolated, disposable profile directory.
The engine itself is reached through a small driver interface; the default
driver is backed by Playwright.
"""

import shutil
import sys
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Protocol, Set, Tuple

from playwright.async_api import async_playwright

from chromesec.config import LaunchOptions, ScannerConfig, resolve_executable_path
from chromesec.console import log
from chromesec.errors import LaunchError, SessionNotReadyError, UnsupportedPlatformError
from chromesec.identity import IdentityProvider
from chromesec.proxy import ProxyEndpoint, ProxyRotator


# ── Browser control surface ─────────────────────────────────────

class PageHandle(Protocol):
    url: str

    async def goto(self, url: str) -> Optional[int]: ...

    async def content(self) -> str: ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    async def evaluate_selector(self, selector: str) -> Optional[str]: ...

    async def close(self) -> None: ...


class BrowserHandle(Protocol):
    async def new_page(self) -> PageHandle: ...

    async def close(self) -> None: ...


class BrowserDriver(Protocol):
    async def launch(self, executable_path: str, args: List[str], options: LaunchOptions) -> BrowserHandle: ...


# Value of the first matching element: form value, then meta content, then text.
_ELEMENT_VALUE_JS = "e => e.value ?? e.getAttribute('content') ?? e.textContent"


class PlaywrightPage:
    """PageHandle over a Playwright page."""

    def __init__(self, page):
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url

    async def goto(self, url: str) -> Optional[int]:
        response = await self._page.goto(url)
        return response.status if response else None

    async def content(self) -> str:
        return await self._page.content()

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        return await self._page.evaluate(expression, arg)

    async def evaluate_selector(self, selector: str) -> Optional[str]:
        element = await self._page.query_selector(selector)
        if element is None:
            return None
        value = await element.evaluate(_ELEMENT_VALUE_JS)
        return None if value is None else str(value)

    async def close(self) -> None:
        await self._page.close()


class PlaywrightBrowser:
    """BrowserHandle over a persistent Playwright context."""

    def __init__(self, playwright, context, navigation_timeout_ms: Optional[float] = None):
        self._playwright = playwright
        self._context = context
        self._navigation_timeout_ms = navigation_timeout_ms

    async def new_page(self) -> PlaywrightPage:
        page = await self._context.new_page()
        if self._navigation_timeout_ms is not None:
            page.set_default_navigation_timeout(self._navigation_timeout_ms)
        return PlaywrightPage(page)

    async def close(self) -> None:
        try:
            await self._context.close()
        finally:
            await self._playwright.stop()


def split_launch_args(args: List[str]) -> Tuple[str, Optional[Dict[str, str]], List[str]]:
    """Separate the profile and proxy arguments Playwright takes as options.

    Returns ``(user_data_dir, proxy, remaining_flags)``.
    """
    user_data_dir = ""
    server = ""
    username = password = ""
    flags: List[str] = []
    for arg in args:
        if arg.startswith("--user-data-dir="):
            user_data_dir = arg.split("=", 1)[1]
        elif arg.startswith("--proxy-server="):
            server = arg.split("=", 1)[1]
        elif arg.startswith("--proxy-auth="):
            username, _, password = arg.split("=", 1)[1].partition(":")
        else:
            flags.append(arg)

    proxy = None
    if server:
        proxy = {"server": server}
        if username and password:
            proxy["username"] = username
            proxy["password"] = password
    return user_data_dir, proxy, flags


class PlaywrightDriver:
    """Launches Chromium through Playwright with a persistent profile."""

    async def launch(self, executable_path: str, args: List[str], options: LaunchOptions) -> PlaywrightBrowser:
        user_data_dir, proxy, flags = split_launch_args(args)
        playwright = await async_playwright().start()
        try:
            context = await playwright.chromium.launch_persistent_context(
                user_data_dir,
                executable_path=executable_path,
                args=flags,
                headless=options.headless,
                proxy=proxy,
                ignore_https_errors=True,
            )
        except BaseException:
            await playwright.stop()
            raise
        return PlaywrightBrowser(playwright, context, options.navigation_timeout_ms)


# ── Session ─────────────────────────────────────────────────────

def build_launch_args(
    profile_dir: Path,
    user_agent: str,
    proxy: Optional[ProxyEndpoint],
    options: LaunchOptions,
) -> List[str]:
    """Build the Chromium command-line arguments for one launch."""
    args = [f"--user-data-dir={profile_dir}"]
    if options.no_sandbox:
        args.append("--no-sandbox")
    if options.disable_web_security:
        args.append("--disable-web-security")
    args.append(f"--user-agent={user_agent}")

    if proxy is not None:
        args.append(f"--proxy-server={proxy.address}")
        if proxy.has_credentials:
            args.append(f"--proxy-auth={proxy.username}:{proxy.password}")

    args.extend(options.extra_flags)
    return args


class SessionStatus(str, Enum):
    UNLAUNCHED = "unlaunched"
    LAUNCHED = "launched"
    CLOSED = "closed"


@dataclass
class SessionState:
    profile_dir: Path
    executable_path: Optional[str] = None
    process: Optional[BrowserHandle] = None
    user_agent: str = ""
    proxy: Optional[ProxyEndpoint] = None


class BrowserSession:
    """Lifecycle wrapper around one browser process: unlaunched, launched, closed."""

    # Profile directories owned by sessions alive in this process.
    _live_profiles: ClassVar[Set[Path]] = set()

    def __init__(
        self,
        config: Optional[ScannerConfig] = None,
        driver: Optional[BrowserDriver] = None,
        identity: Optional[IdentityProvider] = None,
        rotator: Optional[ProxyRotator] = None,
        platform_tag: str = sys.platform,
    ):
        self.config = config or ScannerConfig()
        self.driver = driver or PlaywrightDriver()
        self.identity = identity or IdentityProvider()
        self.rotator = rotator if rotator is not None else ProxyRotator(self.config.proxies)
        self._platform_tag = platform_tag
        self._status = SessionStatus.UNLAUNCHED

        profiles_root = Path(self.config.profiles_dir)
        profile_dir = (profiles_root / uuid.uuid4().hex).resolve()
        self._state = SessionState(profile_dir=profile_dir)
        BrowserSession._live_profiles.add(profile_dir)
        self._purge_stale_profiles(profiles_root)

    # ── state ──────────────────────────────────────────────

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def state(self) -> SessionState:
        """Snapshot of the session state."""
        return replace(self._state)

    @property
    def profile_dir(self) -> Path:
        return self._state.profile_dir

    @property
    def is_launched(self) -> bool:
        return self._status is SessionStatus.LAUNCHED

    def require_launched(self):
        if self._status is not SessionStatus.LAUNCHED:
            raise SessionNotReadyError(f"Browser session is {self._status.value}, not launched")

    # ── lifecycle ──────────────────────────────────────────

    async def launch(self, options: Optional[LaunchOptions] = None):
        """Start the browser process. Valid only once, from the unlaunched state."""
        if self._status is not SessionStatus.UNLAUNCHED:
            raise SessionNotReadyError(f"Cannot launch a browser session that is {self._status.value}")

        options = options or self.config.launch
        try:
            executable_path = options.executable_path or resolve_executable_path(self._platform_tag)
        except UnsupportedPlatformError:
            BrowserSession._live_profiles.discard(self._state.profile_dir)
            raise
        user_agent = self.identity.next()
        proxy = self.rotator.next()
        args = build_launch_args(self._state.profile_dir, user_agent, proxy, options)

        BrowserSession._live_profiles.add(self._state.profile_dir)
        try:
            self._state.profile_dir.mkdir(parents=True, exist_ok=True)
            process = await self.driver.launch(executable_path, args, options)
        except Exception as exc:
            self._remove_profile_dir()
            BrowserSession._live_profiles.discard(self._state.profile_dir)
            raise LaunchError(exc) from exc

        self._state.executable_path = executable_path
        self._state.process = process
        self._state.user_agent = user_agent
        self._state.proxy = proxy
        self._status = SessionStatus.LAUNCHED

        via = f" via proxy {proxy.address}" if proxy else ""
        log("Browser", f"Launched {executable_path}{via} (profile: {self._state.profile_dir})", "green")

    async def acquire_page(self) -> PageHandle:
        """Open a fresh page; the caller owns it and must close it."""
        self.require_launched()
        return await self._state.process.new_page()

    async def close(self):
        """Terminate the browser and drop the profile. Safe to call repeatedly."""
        if self._status is SessionStatus.UNLAUNCHED:
            BrowserSession._live_profiles.discard(self._state.profile_dir)
            return
        if self._status is not SessionStatus.LAUNCHED:
            return

        process = self._state.process
        self._state.process = None
        self._status = SessionStatus.CLOSED
        try:
            await process.close()
        except Exception as e:
            log("Browser", f"Error closing browser: {e}", "yellow")
        self._remove_profile_dir()
        BrowserSession._live_profiles.discard(self._state.profile_dir)
        log("Browser", "Session closed")

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # ── profile directories ────────────────────────────────

    def _remove_profile_dir(self):
        shutil.rmtree(self._state.profile_dir, ignore_errors=True)

    @classmethod
    def _purge_stale_profiles(cls, profiles_root: Path):
        """Remove profile directories left behind by earlier runs."""
        if not profiles_root.is_dir():
            return
        for child in profiles_root.iterdir():
            if child.is_dir() and child.resolve() not in cls._live_profiles:
                shutil.rmtree(child, ignore_errors=True)
                log("Browser", f"Purged stale profile {child.name}", "dim")
