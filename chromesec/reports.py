"""
ChromeSec - Report Sink
Writes each scan report as a pretty-printed JSON document and a flat CSV
table sharing one ``report_<epoch-millis>`` key.
"""

import csv
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List

from chromesec.config import REPORTS_DIR

CSV_HEADER = ["Test Type", "Payload", "Is Vulnerable"]


@dataclass
class ReportPaths:
    json_path: Path
    csv_path: Path

    @property
    def key(self) -> str:
        return self.json_path.stem


class ReportSink:
    """Persists reports under one output directory. Never overwrites a file."""

    def __init__(self, output_dir: Path = REPORTS_DIR):
        self.output_dir = Path(output_dir)

    def _reserve_paths(self) -> ReportPaths:
        # Both files share one timestamp; a numeric suffix resolves collisions.
        base = f"report_{int(time.time() * 1000)}"
        key = base
        n = 0
        while True:
            paths = ReportPaths(self.output_dir / f"{key}.json", self.output_dir / f"{key}.csv")
            if not paths.json_path.exists() and not paths.csv_path.exists():
                return paths
            n += 1
            key = f"{base}_{n}"

    def write(self, report) -> ReportPaths:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        paths = self._reserve_paths()
        data = report.to_dict()

        with paths.json_path.open("x", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

        with paths.csv_path.open("x", encoding="utf-8", newline="") as f:
            writer = csv.writer(f, lineterminator="\n")
            writer.writerow(CSV_HEADER)
            for row in data["results"]:
                writer.writerow([
                    row["testType"],
                    row["payload"],
                    "true" if row["isVulnerable"] else "false",
                ])
        return paths

    def list_reports(self) -> List[str]:
        """Report keys in the output directory, newest first."""
        if not self.output_dir.is_dir():
            return []
        keys = {p.stem for p in self.output_dir.glob("report_*.json")}
        keys.update(p.stem for p in self.output_dir.glob("report_*.csv"))
        return sorted(keys, key=_sort_key, reverse=True)


def _sort_key(key: str):
    stamp, _, suffix = key[len("report_"):].partition("_")
    try:
        return int(stamp), int(suffix or 0)
    except ValueError:
        return 0, 0
