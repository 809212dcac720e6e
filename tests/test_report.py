"""Tests for the HTML report writer."""
import pytest

from splist_analyzer.report import HtmlReportWriter, ReportWriter, escape


def test_escape():
    assert escape("<View a='1'>&") == "&lt;View a=&#x27;1&#x27;&gt;&amp;"
    assert escape(None) == ""


def test_write_and_write_line():
    writer = HtmlReportWriter()
    writer.write("<table>")
    writer.write_line("A")
    writer.write_line("</table>")
    assert writer.body == "<table>A\n</table>\n"


def test_render_places_warnings_before_details():
    writer = HtmlReportWriter(title="Report <1>")
    writer.write_line("<h3>Thread 1</h3>")
    writer.report_warning("Threads <a href='#thread1'>1</a>", "SPQuery")
    page = writer.render()
    assert "<title>Report &lt;1&gt;</title>" in page
    assert page.index("Warning (SPQuery)") < page.index("<h3>Thread 1</h3>")
    assert "<a href='#thread1'>1</a>" in page


def test_render_without_warnings():
    page = HtmlReportWriter().render()
    assert "No SPList query issues detected." in page


def test_save(tmp_path):
    writer = HtmlReportWriter()
    writer.write_line("<p>body</p>")
    path = writer.save(str(tmp_path / "out" / "report.html"))
    assert "<p>body</p>" in open(path, encoding="utf-8").read()


def test_save_failure_propagates(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(OSError):
        HtmlReportWriter().save(str(blocker / "report.html"))


def test_text_summary():
    writer = HtmlReportWriter()
    writer.report_warning(
        "Many fields.<br/><ul><li><a href='#thread7'>7</a> (11 fields)</li></ul>", ""
    )
    writer.report_warning("All fields.<br/><a href='#thread2'>2</a>, <a href='#thread3'>3</a>", "")
    summary = writer.text_summary().splitlines()
    assert summary[0] == "[!] Many fields."
    assert summary[1] == "    7 (11 fields)"
    assert summary[2] == "[!] All fields."
    assert summary[3] == "    2, 3"


def test_base_writer_is_abstract():
    with pytest.raises(NotImplementedError):
        ReportWriter().write("x")
