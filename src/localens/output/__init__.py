"""Report generation."""

from localens.output.html_report import HTMLReportGenerator, generate_report, generate_report_string

__all__ = ["HTMLReportGenerator", "generate_report", "generate_report_string"]
