"""
ChromeSec - Scan Orchestrator
Runs the XSS, SQLi and CSRF probes in order against one page of a launched
browser session, collects the findings into a report and persists it.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from chromesec.browser import BrowserSession
from chromesec.console import log
from chromesec.probes import ScanFinding, VulnerabilityProbe, default_probes
from chromesec.reports import ReportSink


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class ScanReport:
    """Findings for one scan, in probe execution order."""

    target_url: str
    timestamp: str = field(default_factory=utc_timestamp)
    findings: Sequence[ScanFinding] = field(default_factory=list)
    frozen: bool = field(default=False, repr=False)

    def add(self, findings: Sequence[ScanFinding]):
        if self.frozen:
            raise RuntimeError("Scan report is frozen")
        self.findings.extend(findings)

    def freeze(self):
        self.findings = tuple(self.findings)
        self.frozen = True

    @property
    def vulnerable_count(self) -> int:
        return sum(1 for f in self.findings if f.is_vulnerable)

    def to_dict(self) -> dict:
        return {
            "url": self.target_url,
            "timestamp": self.timestamp,
            "results": [f.to_dict() for f in self.findings],
        }


@dataclass
class ScanResult:
    """A report plus the probe error that cut the scan short, if any."""

    report: ScanReport
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "error": str(self.error) if self.error else None,
            "report": self.report.to_dict(),
        }


class ScanOrchestrator:
    """Sequences probes against a single page and hands the report to the sink."""

    def __init__(
        self,
        session: BrowserSession,
        sink: Optional[ReportSink] = None,
        probes: Optional[Sequence[VulnerabilityProbe]] = None,
        probe_timeout_s: Optional[float] = None,
    ):
        self.session = session
        self.sink = sink or ReportSink(session.config.reports_dir)
        self.probes = list(probes) if probes is not None else default_probes()
        if probe_timeout_s is None:
            probe_timeout_s = session.config.probe_timeout_s
        self.probe_timeout_s = probe_timeout_s

    async def _run_probe(self, probe: VulnerabilityProbe, page, url: str) -> List[ScanFinding]:
        if self.probe_timeout_s:
            return await asyncio.wait_for(probe.run(page, url), timeout=self.probe_timeout_s)
        return await probe.run(page, url)

    async def run_scan(self, url: str) -> ScanResult:
        """Scan *url*. Probe failures end the scan early but are returned, not raised."""
        self.session.require_launched()
        page = await self.session.acquire_page()
        report = ScanReport(target_url=url)
        error: Optional[BaseException] = None
        log("Scanner", f"Scanning {url}", "cyan")

        try:
            for probe in self.probes:
                report.add(await self._run_probe(probe, page, url))
        except Exception as e:
            error = e
            log("Scanner", f"Scan failed for {url}: {type(e).__name__}: {e}", "red")
        finally:
            try:
                await page.close()
            except Exception as e:
                log("Scanner", f"Error closing page: {e}", "yellow")

        report.freeze()
        paths = self.sink.write(report)
        log("Scanner", f"Report written: {paths.json_path} / {paths.csv_path.name}")
        return ScanResult(report=report, error=error)
