from .report_adapter import COLUMNS, adapt_row, adapt_run_report, rows_as_dicts

__all__ = ["COLUMNS", "adapt_row", "adapt_run_report", "rows_as_dicts"]
