"""HTML report output for the SPList analysis.

The analysis writes detail markup straight into the report body while it walks
the threads and files its aggregate findings as warnings afterwards. Rendering
places the warnings in a summary table ahead of the detail section, the way
hang analysis reports are usually read.
"""
from __future__ import annotations

import html
import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List


def escape(text: str) -> str:
    """Escape text for embedding in the HTML report."""
    return html.escape(text or "", quote=True)


@dataclass
class ReportWarning:
    message: str  # HTML
    category: str = ""


class ReportWriter:
    """Append-only sink the analysis writes to."""

    def write(self, text: str) -> None:
        raise NotImplementedError

    def write_line(self, text: str) -> None:
        self.write(text + "\n")

    def report_warning(self, message: str, category: str = "") -> None:
        raise NotImplementedError


class HtmlReportWriter(ReportWriter):
    """Collects report body and warnings in memory, renders one HTML page."""

    def __init__(self, title: str = "SPList Query Analysis"):
        self.title = title
        self._parts: List[str] = []
        self.warnings: List[ReportWarning] = []

    def write(self, text: str) -> None:
        self._parts.append(text)

    def report_warning(self, message: str, category: str = "") -> None:
        self.warnings.append(ReportWarning(message=message, category=category))

    @property
    def body(self) -> str:
        return "".join(self._parts)

    def render(self) -> str:
        lines = [
            "<!DOCTYPE html>",
            "<html>",
            "<head>",
            "<meta charset='utf-8'/>",
            f"<title>{escape(self.title)}</title>",
            "</head>",
            "<body>",
            "<h2>Analysis Summary</h2>",
        ]
        if self.warnings:
            lines.append("<table border='1'><tr><th>Type</th><th>Description</th></tr>")
            for warning in self.warnings:
                label = "Warning"
                if warning.category:
                    label += f" ({escape(warning.category)})"
                lines.append(f"<tr><td>{label}</td><td>{warning.message}</td></tr>")
            lines.append("</table>")
        else:
            lines.append("<p>No SPList query issues detected.</p>")
        lines.append("<h2>Analysis Details</h2>")
        lines.append(self.body)
        lines.append(
            f"<p><small>Generated {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}</small></p>"
        )
        lines.append("</body>")
        lines.append("</html>")
        return "\n".join(lines)

    def save(self, path: str) -> str:
        """Write the rendered report; OSError propagates to the caller."""
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.render())
        return path

    def text_summary(self) -> str:
        """Warnings as plain text for console output."""
        lines = []
        for warning in self.warnings:
            text = re.sub(r"<br\s*/?>|</li>", "\n", warning.message)
            text = html.unescape(re.sub(r"<[^>]+>", "", text))
            lines.append("[!] " + text.strip().replace("\n", "\n    "))
        return "\n".join(lines)
