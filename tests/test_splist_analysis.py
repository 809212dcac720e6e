"""Tests for the SPList query analysis."""
from splist_analyzer.analysis import (
    FindingSet,
    SPListAnalysis,
    analyze_snapshot,
    contains_frame,
    find_query_object,
)
from splist_analyzer.config import SPLIST_FILL_FRAME
from splist_analyzer.progress import AnalysisProgress
from splist_analyzer.report import HtmlReportWriter
from splist_analyzer.snapshot import Frame, QueryObject, Thread

from helpers import idle_thread, make_snapshot, splist_thread, view_xml

ELEVEN = ["A", "B", "C", "D", "E", "F", "G", "H", "I", "J", "K"]


def run(*threads):
    writer = HtmlReportWriter()
    findings = SPListAnalysis(writer).run(make_snapshot(*threads))
    return findings, writer


def test_contains_frame_substring():
    """Namespaced and decorated frame names still match."""
    thread = splist_thread(1, view=view_xml())
    assert contains_frame(thread, SPLIST_FILL_FRAME)
    assert contains_frame(thread, "EnsureListItemsData")
    assert not contains_frame(idle_thread(2), SPLIST_FILL_FRAME)


def test_contains_frame_case_sensitive():
    thread = splist_thread(1, view=view_xml())
    assert not contains_frame(thread, SPLIST_FILL_FRAME.lower())


def test_find_query_object_returns_first_match():
    thread = splist_thread(1, view=view_xml(fields=["Title"]))
    thread.objects.add("Microsoft.SharePoint.SPListItemCollection", QueryObject(query="<Where/>", address=0x9999))
    obj = find_query_object(thread)
    assert obj is not None
    assert obj.address == 0x2001
    assert find_query_object(idle_thread(3)) is None


def test_thread_without_signature_is_ignored():
    findings, writer = run(idle_thread(5))
    assert findings.analyzed_threads == []
    assert not findings.has_findings
    assert "thread5" not in writer.body
    assert writer.warnings == []


def test_large_field_count_with_row_limit():
    findings, writer = run(splist_thread(7, view=view_xml(fields=ELEVEN, row_limit=100)))
    assert findings.large_queries == {7: 11}
    assert findings.star_queries == []
    assert findings.no_row_limit == []
    assert len(writer.warnings) == 1
    assert "(11 fields)" in writer.warnings[0].message
    assert "requesting many fields" in writer.warnings[0].message


def test_ten_fields_is_not_large():
    findings, _ = run(splist_thread(7, view=view_xml(fields=ELEVEN[:10], row_limit=100)))
    assert findings.large_queries == {}


def test_small_field_list_without_limit():
    findings, writer = run(splist_thread(3, view=view_xml(fields=["Title", "Author", "Modified"])))
    assert findings.large_queries == {}
    assert findings.star_queries == []
    assert findings.no_row_limit == [3]
    table = writer.body.split("<td>Fields</td><td>", 1)[1].split("</td></tr></table>", 1)[0]
    assert table.split() == ["Title", "Author", "Modified"]


def test_wildcard_query():
    findings, writer = run(splist_thread(4, view=view_xml(row_limit=50)))
    assert findings.star_queries == [4]
    assert 4 not in findings.large_queries
    assert findings.no_row_limit == []
    assert "<td>Fields</td>" not in writer.body


def test_large_and_unbounded_are_independent():
    findings, _ = run(splist_thread(9, view=view_xml(fields=ELEVEN + ["L"])))
    assert findings.large_queries == {9: 12}
    assert findings.no_row_limit == [9]
    assert findings.star_queries == []


def test_fallback_query_is_wildcard_and_unbounded():
    findings, writer = run(splist_thread(2, query="Foo"))
    assert findings.star_queries == [2]
    assert findings.no_row_limit == [2]
    assert findings.large_queries == {}
    assert "&lt;Query&gt;Foo&lt;/Query&gt;" in writer.body


def test_missing_query_object_still_prints_stack():
    findings, writer = run(splist_thread(6, with_object=False))
    assert findings.analyzed_threads == [6]
    assert not findings.has_findings
    assert "<a id='thread6'><h3>Thread 6</h3></a>" in writer.body
    assert "SPQuery:" not in writer.body
    assert "Page_Load" in writer.body


def test_empty_query_strings_are_not_classified():
    findings, writer = run(splist_thread(6, view="", query=""))
    assert not findings.has_findings
    assert "SPQuery:" not in writer.body


def test_malformed_query_is_reported_and_run_continues():
    findings, writer = run(
        splist_thread(1, view="<View><ViewFields>"),
        splist_thread(2, view=view_xml(fields=["Title"], row_limit=10)),
        splist_thread(3, query="Foo"),
    )
    assert list(findings.malformed_queries) == [1]
    assert 1 not in findings.star_queries
    assert 1 not in findings.no_row_limit
    assert findings.analyzed_threads == [1, 2, 3]
    assert findings.star_queries == [3]
    assert "Could not parse SPQuery" in writer.body
    assert writer.warnings[-1].category == "SPQuery"
    # stack still printed for the malformed thread
    thread1 = writer.body.split("Thread 1</h3>", 1)[1].split("Thread 2</h3>", 1)[0]
    assert "Page_Load" in thread1


def test_signature_frame_is_highlighted():
    _, writer = run(splist_thread(1, query="Foo"))
    highlighted = [line for line in writer.body.splitlines() if line.startswith("<font color='red'>")]
    assert len(highlighted) == 1
    assert "00007ff8a0002000  " + SPLIST_FILL_FRAME in highlighted[0]


def test_stack_lines_are_escaped():
    thread = Thread(thread_id=1, frames=[
        Frame(SPLIST_FILL_FRAME + "()", 0x10),
        Frame("System.Collections.Generic.List`1<System.String>.Add(System.String)", 0x20),
    ])
    _, writer = run(thread)
    assert "List`1&lt;System.String&gt;.Add" in writer.body
    assert "0000000000000020  " in writer.body


def test_aggregate_sections_order_and_links():
    findings, writer = run(
        splist_thread(12, view=view_xml(fields=ELEVEN, row_limit=5)),
        idle_thread(13),
        splist_thread(14, view=view_xml()),
        splist_thread(15, query="Foo"),
        splist_thread(11, view=view_xml(fields=ELEVEN + ["L", "M"], row_limit=5)),
    )
    assert list(findings.large_queries.items()) == [(12, 11), (11, 13)]
    assert findings.star_queries == [14, 15]
    assert findings.no_row_limit == [14, 15]

    messages = [w.message for w in writer.warnings]
    assert len(messages) == 3
    assert "many fields" in messages[0]
    assert messages[0].index("#thread12") < messages[0].index("#thread11")
    assert "ALL fields" in messages[1]
    assert messages[1].endswith("<a href='#thread14'>14</a>, <a href='#thread15'>15</a>")
    assert "no RowFilter" in messages[2]

    for thread_id in (11, 12, 14, 15):
        assert f"<a id='thread{thread_id}'>" in writer.body


def test_empty_categories_emit_nothing():
    _, writer = run(splist_thread(1, view=view_xml(fields=["Title"], row_limit=10)))
    assert writer.warnings == []


def test_run_is_repeatable():
    snapshot = make_snapshot(
        splist_thread(1, view=view_xml(fields=ELEVEN)),
        splist_thread(2, query="Foo"),
        idle_thread(3),
    )
    first_writer, second_writer = HtmlReportWriter(), HtmlReportWriter()
    first = SPListAnalysis(first_writer).run(snapshot)
    second = SPListAnalysis(second_writer).run(snapshot)
    assert first == second
    assert first_writer.body == second_writer.body
    assert [w.message for w in first_writer.warnings] == [w.message for w in second_writer.warnings]


def test_heading_uses_dump_name():
    writer = HtmlReportWriter()
    analyze_snapshot(make_snapshot(idle_thread(1), name="w3wp<1>.dmp"), writer)
    assert writer.body.startswith("<h1>w3wp&lt;1&gt;.dmp</h1>")


def test_progress_reports_phases_and_threads():
    events = []
    progress = AnalysisProgress(lambda *args: events.append(args))
    SPListAnalysis(HtmlReportWriter(), progress).run(make_snapshot(idle_thread(1), idle_thread(2)))
    assert events[0] == ("overall", "Analyzing threads", 1, 2)
    assert ("current", "Analyzing Thread 2", 2, 2) in events
    assert events[-1] == ("overall", "Generating Report", 2, 2)


def test_custom_threshold():
    writer = HtmlReportWriter()
    findings = SPListAnalysis(writer, max_view_fields=2).run(
        make_snapshot(splist_thread(1, view=view_xml(fields=["A", "B", "C"], row_limit=1)))
    )
    assert findings.large_queries == {1: 3}


def test_finding_set_defaults():
    findings = FindingSet()
    assert not findings.has_findings
    findings.no_row_limit.append(1)
    assert findings.has_findings
