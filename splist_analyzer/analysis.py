"""SPList query analysis for SharePoint hang dumps.

Finds threads blocked in ``SPListItemCollection.EnsureListItemsData`` and
checks the SPQuery each one is executing for three cost signals:

- more than ``MAX_VIEWFIELDS`` view fields requested
- no ``<ViewFields>`` at all, so every field of the list is loaded
- no ``<RowLimit>``, so the result set is unbounded

Threads are processed in snapshot order. Detail for each matching thread is
written as it is analyzed; the grouped findings are reported once all threads
have been seen, linking back to the per-thread anchors.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import (
    MAX_VIEWFIELDS,
    SPLIST_COLLECTION_TYPE,
    SPLIST_FILL_FRAME,
    safe_print,
)
from .progress import AnalysisProgress
from .report import ReportWriter, escape
from .snapshot import QueryObject, Snapshot, Thread
from .view_query import ViewQuery, ViewXmlError, extract_view_query


@dataclass
class FindingSet:
    """Findings of a single analysis run."""
    large_queries: Dict[int, int] = field(default_factory=dict)  # thread id -> field count
    star_queries: List[int] = field(default_factory=list)
    no_row_limit: List[int] = field(default_factory=list)
    malformed_queries: Dict[int, str] = field(default_factory=dict)  # thread id -> parser error
    analyzed_threads: List[int] = field(default_factory=list)

    @property
    def has_findings(self) -> bool:
        return bool(self.large_queries or self.star_queries
                    or self.no_row_limit or self.malformed_queries)


def contains_frame(thread: Thread, name: str) -> bool:
    """True if any frame of the thread's stack contains ``name``."""
    for frame in thread.frames:
        if name in frame.function_name:
            return True
    return False


def find_query_object(thread: Thread, shape: str = SPLIST_COLLECTION_TYPE) -> Optional[QueryObject]:
    return thread.find_first_stack_object(shape)


def thread_anchor(thread_id: int) -> str:
    return f"thread{thread_id}"


def thread_link(thread_id: int) -> str:
    return f"<a href='#{thread_anchor(thread_id)}'>{thread_id}</a>"


def format_frame_line(address: int, function_name: str) -> str:
    return f"{address:016x}  {escape(function_name)}"


class SPListAnalysis:
    """Hang dump rule analyzing SPList queries in SharePoint."""

    CATEGORY = "Performance Analyzers"
    DESCRIPTION = "Analyzes SPList queries in SharePoint"

    def __init__(self, writer: ReportWriter, progress: Optional[AnalysisProgress] = None,
                 signature: str = SPLIST_FILL_FRAME,
                 target_type: str = SPLIST_COLLECTION_TYPE,
                 max_view_fields: int = MAX_VIEWFIELDS):
        self.writer = writer
        self.progress = progress or AnalysisProgress()
        self.signature = signature
        self.target_type = target_type
        self.max_view_fields = max_view_fields

    def run(self, snapshot: Snapshot, note: str = "") -> FindingSet:
        """Analyze every thread of ``snapshot`` and report the findings.

        ``note`` is written under the heading, e.g. the dump summary.
        """
        findings = FindingSet()

        self.progress.set_overall_range(0, 2)
        self.writer.write_line(f"<h1>{escape(snapshot.dump_name)}</h1>")
        if note:
            self.writer.write_line(f"<p>{escape(note)}</p>")

        self.progress.set_overall(1, "Analyzing threads")
        self.progress.set_current_range(0, len(snapshot))
        for position, thread in enumerate(snapshot, 1):
            self.progress.set_current(position, f"Analyzing Thread {thread.thread_id}")
            self.analyze_thread(thread, findings)

        self.progress.set_overall(2, "Generating Report")
        self.report_large_queries(findings)
        self.report_star_queries(findings)
        self.report_no_row_limit(findings)
        self.report_malformed_queries(findings)

        safe_print(
            f"[SPLIST] {len(findings.analyzed_threads)} of {len(snapshot)} threads in "
            f"{self.signature.rsplit('.', 1)[-1]}: "
            f"{len(findings.large_queries)} large, {len(findings.star_queries)} all-fields, "
            f"{len(findings.no_row_limit)} without RowLimit"
        )
        return findings

    def analyze_thread(self, thread: Thread, findings: FindingSet) -> None:
        if not contains_frame(thread, self.signature):
            return

        thread_id = thread.thread_id
        findings.analyzed_threads.append(thread_id)
        self.writer.write_line(
            f"<a id='{thread_anchor(thread_id)}'><h3>Thread {thread_id}</h3></a>"
        )

        obj = find_query_object(thread, self.target_type)
        try:
            view = extract_view_query(obj)
        except ViewXmlError as e:
            # Leave the thread out of the heuristics but keep its stack in the report
            findings.malformed_queries[thread_id] = str(e)
            safe_print(f"[SPLIST] Thread {thread_id}: {e}")
            self.writer.write_line(f"<p><b>Could not parse SPQuery:</b> {escape(str(e))}</p>")
            view = None

        if view is not None:
            self.analyze_view_query(thread_id, view, findings)
            self.writer.write_line("SPQuery: <pre>" + escape(view.xml) + "</pre>")

        self.print_thread_stack(thread)

    def analyze_view_query(self, thread_id: int, view: ViewQuery, findings: FindingSet) -> None:
        if view.field_refs is not None:
            if view.field_count > self.max_view_fields:
                findings.large_queries[thread_id] = view.field_count
            self.writer.write("<table border='1'><tr><td>Fields</td><td>")
            for name in view.field_refs:
                self.writer.write_line(escape(name))
            self.writer.write_line("</td></tr></table>")
        else:
            findings.star_queries.append(thread_id)

        if not view.has_row_limit:
            findings.no_row_limit.append(thread_id)

    def print_thread_stack(self, thread: Thread) -> None:
        self.writer.write_line("<pre>")
        for frame in thread.frames:
            line = format_frame_line(frame.instruction_address, frame.function_name)
            if self.signature in line:
                self.writer.write_line("<font color='red'>" + line + "</font>")
            else:
                self.writer.write_line(line)
        self.writer.write_line("</pre>")

    def report_large_queries(self, findings: FindingSet) -> None:
        if not findings.large_queries:
            return
        parts = [
            "The following threads appear to be executing SPList queries requesting many fields.",
            "<br/><ul>",
        ]
        for thread_id, count in findings.large_queries.items():
            parts.append(f"<li>{thread_link(thread_id)} ({count} fields)</li>")
        parts.append("</ul>")
        self.writer.report_warning("".join(parts), "")

    def report_star_queries(self, findings: FindingSet) -> None:
        if not findings.star_queries:
            return
        self.writer.report_warning(
            "The following threads appear to be executing SPList queries requesting ALL fields."
            "<br/>" + ", ".join(thread_link(t) for t in findings.star_queries),
            "",
        )

    def report_no_row_limit(self, findings: FindingSet) -> None:
        if not findings.no_row_limit:
            return
        self.writer.report_warning(
            "The following threads appear to be executing SPList queries with no RowFilter specified."
            "<br/>" + ", ".join(thread_link(t) for t in findings.no_row_limit),
            "",
        )

    def report_malformed_queries(self, findings: FindingSet) -> None:
        if not findings.malformed_queries:
            return
        parts = ["The following threads have SPList queries that could not be parsed.", "<br/><ul>"]
        for thread_id, error in findings.malformed_queries.items():
            parts.append(f"<li>{thread_link(thread_id)}: {escape(error)}</li>")
        parts.append("</ul>")
        self.writer.report_warning("".join(parts), "SPQuery")


def analyze_snapshot(snapshot: Snapshot, writer: ReportWriter,
                     progress: Optional[AnalysisProgress] = None) -> FindingSet:
    """Convenience function running the SPList analysis over a snapshot."""
    return SPListAnalysis(writer, progress).run(snapshot)
