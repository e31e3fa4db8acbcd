"""
ChromeSec - Vulnerability Probes
Browser-side payload tests for reflected XSS, SQL injection and missing
anti-CSRF tokens. Each probe runs against a live page and returns one
finding per payload it tried.
"""

import hashlib
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from chromesec.browser import PageHandle


class VulnType(str, Enum):
    XSS = "XSS"
    SQLI = "SQLI"
    CSRF = "CSRF"


@dataclass(frozen=True)
class ScanFinding:
    """A single probe observation."""

    test_type: VulnType
    payload: str
    is_vulnerable: bool

    def to_dict(self) -> dict:
        return {
            "testType": self.test_type.value,
            "payload": self.payload,
            "isVulnerable": self.is_vulnerable,
        }


# -- Payloads -----------------------------------------------------------------

EXEC_ATTRIBUTE = "data-chromesec-exec"

XSS_PAYLOAD_TEMPLATES = [
    '"/><svg/onload=alert("{m}")>',
    "'><img src=x onerror=alert('{m}')>",
    "<script>confirm('{m}')</script>",
    "<details open ontoggle=alert('{m}')>",
    "//--></script><svg/onload=alert('{m}')>",
    "<img src=x:x onerror=alert('{m}')>",
    # DOM mutation variants, confirmable without a dialog
    "<script>document.documentElement.setAttribute('" + EXEC_ATTRIBUTE + "','{m}')</script>",
    "\"/><img src=x onerror=document.documentElement.setAttribute('" + EXEC_ATTRIBUTE + "','{m}')>",
]

XSS_HANDLER_ATTRIBUTES = ("onerror", "onload", "ontoggle", "onpageshow", "onfocus")

SQLI_ERROR_PAYLOADS = [
    "'",
    "\")",
    "' OR '1'='1' -- ",
    "1' OR 1=1--",
    "' UNION SELECT NULL--",
    "' OR 1=CAST((SELECT @@version) AS INT)--",
]

SQLI_ERROR_PATTERNS = [
    r"SQL syntax.*MySQL",
    r"Warning.*mysql_",
    r"You have an error in your SQL syntax",
    r"Unknown column.*in.*field list",
    r"PostgreSQL.*ERROR",
    r"syntax error at or near",
    r"ORA-\d{5}",
    r"Microsoft.*ODBC.*SQL Server",
    r"Unclosed quotation mark",
    r"Incorrect syntax near",
    r"quoted string not properly terminated",
    r"SQLite3::SQLException",
    r"SQLite.*error",
    r"no such table",
    r"SQLSTATE\[",
    r"PDOException",
    r"Dynamic SQL Error",
]

CSRF_TOKEN_SELECTORS = [
    'input[name="csrf_token"]',
    'input[name="csrfmiddlewaretoken"]',
    'input[name="_csrf"]',
    'input[name="_token"]',
    'input[name="authenticity_token"]',
    'input[name="__RequestVerificationToken"]',
    'meta[name="csrf-token"]',
]

# Names of visible text-like inputs, in document order.
DISCOVER_INPUTS_JS = """() => Array.from(document.querySelectorAll('input[name], textarea[name]'))
    .filter(e => !['hidden', 'submit', 'button', 'password', 'file', 'checkbox', 'radio'].includes((e.type || '').toLowerCase()))
    .map(e => e.name)"""

# True when some <script> element holds exactly the given source.
SCRIPT_MATCHES_JS = "body => Array.from(document.scripts).some(s => (s.textContent || '').trim() === body)"

_INLINE_SCRIPT_RE = re.compile(r"<script>(.*?)</script>", re.I | re.S)

DEFAULT_PARAMETER = "q"


# -- Helpers ------------------------------------------------------------------

async def ensure_navigated(page: PageHandle, url: str):
    """Navigate to *url* unless the page is already there."""
    if page.url != url:
        await page.goto(url)


def inject_url(url: str, parameters: Sequence[str], payload: str) -> str:
    """Return *url* with every named parameter set to *payload*."""
    parsed = urlparse(url)
    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    for name in parameters:
        query[name] = payload
    return urlunparse(parsed._replace(query=urlencode(query)))


async def discover_parameters(page: PageHandle, url: str) -> List[str]:
    """Query parameters of *url* plus named inputs on the page."""
    names = [name for name, _ in parse_qsl(urlparse(url).query, keep_blank_values=True)]
    found = await page.evaluate(DISCOVER_INPUTS_JS)
    for name in found or []:
        if name and name not in names:
            names.append(name)
    return names or [DEFAULT_PARAMETER]


def payload_marker(url: str, index: int) -> str:
    return hashlib.md5(f"{url}:{index}".encode()).hexdigest()[:8]


def injected_script(payload: str) -> Optional[str]:
    """Source of the inline script *payload* would create, if it carries one."""
    match = _INLINE_SCRIPT_RE.search(payload)
    return match.group(1).strip() if match else None


# -- Probes -------------------------------------------------------------------

class VulnerabilityProbe(ABC):
    """One class of vulnerability test against a page."""

    test_type: VulnType

    @abstractmethod
    async def run(self, page: PageHandle, url: str) -> List[ScanFinding]:
        ...

    def finding(self, payload: str, is_vulnerable: bool) -> ScanFinding:
        return ScanFinding(test_type=self.test_type, payload=payload, is_vulnerable=is_vulnerable)


class XSSProbe(VulnerabilityProbe):
    """Reflected XSS: inject marked payloads and look for live markup or script."""

    test_type = VulnType.XSS

    def __init__(self, templates: Sequence[str] = XSS_PAYLOAD_TEMPLATES):
        self.templates = list(templates)

    async def run(self, page: PageHandle, url: str) -> List[ScanFinding]:
        await ensure_navigated(page, url)
        parameters = await discover_parameters(page, url)

        findings = []
        for index, template in enumerate(self.templates):
            marker = payload_marker(url, index)
            payload = template.replace("{m}", marker)
            await page.goto(inject_url(url, parameters, payload))
            findings.append(self.finding(payload, await self._is_reflected(page, payload, marker)))
        return findings

    @staticmethod
    async def _is_reflected(page: PageHandle, payload: str, marker: str) -> bool:
        if await page.evaluate_selector(f'[{EXEC_ATTRIBUTE}="{marker}"]') is not None:
            return True
        handlers = ", ".join(f'[{attr}*="{marker}"]' for attr in XSS_HANDLER_ATTRIBUTES)
        if await page.evaluate_selector(handlers) is not None:
            return True
        script = injected_script(payload)
        if script and await page.evaluate(SCRIPT_MATCHES_JS, script):
            return True
        return payload in await page.content()


class SQLiProbe(VulnerabilityProbe):
    """Error-based SQL injection: database error signatures or a 5xx the baseline lacks."""

    test_type = VulnType.SQLI

    def __init__(self, payloads: Sequence[str] = SQLI_ERROR_PAYLOADS):
        self.payloads = list(payloads)
        self._patterns = [re.compile(p, re.I | re.S) for p in SQLI_ERROR_PATTERNS]

    def _has_error_signature(self, body: str) -> bool:
        return any(rx.search(body) for rx in self._patterns)

    async def run(self, page: PageHandle, url: str) -> List[ScanFinding]:
        baseline_status = await page.goto(url)
        baseline_error = self._has_error_signature(await page.content())
        parameters = await discover_parameters(page, url)

        findings = []
        for payload in self.payloads:
            status = await page.goto(inject_url(url, parameters, payload))
            body = await page.content()
            vulnerable = self._has_error_signature(body) and not baseline_error
            if status is not None and status >= 500 and (baseline_status or 0) < 500:
                vulnerable = True
            findings.append(self.finding(payload, vulnerable))
        return findings


class CSRFProbe(VulnerabilityProbe):
    """Anti-CSRF token presence check."""

    test_type = VulnType.CSRF
    payload = "Token Check"

    def __init__(self, selectors: Sequence[str] = CSRF_TOKEN_SELECTORS):
        self.selectors = list(selectors)

    async def run(self, page: PageHandle, url: str) -> List[ScanFinding]:
        await ensure_navigated(page, url)
        has_token = False
        for selector in self.selectors:
            value = await page.evaluate_selector(selector)
            if value and value.strip():
                has_token = True
                break
        return [self.finding(self.payload, not has_token)]


def default_probes() -> List[VulnerabilityProbe]:
    return [XSSProbe(), SQLiProbe(), CSRFProbe()]
