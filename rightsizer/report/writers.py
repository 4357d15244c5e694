"""
Report writers -- CSV (one row per resource) and JSON (rows + run summary).
"""

import csv
import json
from pathlib import Path
from typing import Union

from ..api.adapters.report_adapter import COLUMNS, adapt_run_report, rows_as_dicts
from ..core.errors import ConfigurationError
from ..core.interfaces import ReportWriter
from ..core.logging import get_logger
from ..core.models import RunReport

logger = get_logger(__name__)


class CsvReportWriter(ReportWriter):

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def write(self, report: RunReport) -> str:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=COLUMNS)
            writer.writeheader()
            writer.writerows(rows_as_dicts(report))
        logger.info(f"Wrote {len(report.rows)} rows to {self.path}")
        return str(self.path)


class JsonReportWriter(ReportWriter):

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def write(self, report: RunReport) -> str:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(adapt_run_report(report), indent=2, default=str), encoding="utf-8")
        logger.info(f"Wrote report for {len(report.rows)} resources to {self.path}")
        return str(self.path)


def get_writer(fmt: str, path: Union[str, Path]) -> ReportWriter:
    writers = {"csv": CsvReportWriter, "json": JsonReportWriter}
    if fmt not in writers:
        raise ConfigurationError(f"Unknown report format: {fmt}")
    return writers[fmt](path)
