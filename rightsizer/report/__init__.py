"""
Rightsizer Report -- serializers for RunReport.
"""

from .writers import CsvReportWriter, JsonReportWriter, get_writer

__all__ = ["CsvReportWriter", "JsonReportWriter", "get_writer"]
