"""SPList Query Analyzer package.

Hang dump analysis for SharePoint worker processes:
- Finds threads blocked in SPListItemCollection.EnsureListItemsData
- Extracts the SPQuery (CAML view) each thread is executing
- Flags queries requesting many fields, all fields, or no RowLimit
- Reads threads, managed stacks and stack objects from dumps through CDB/SOS
- Renders findings as an HTML report
"""
from .analysis import (
    SPListAnalysis,
    FindingSet,
    analyze_snapshot,
    contains_frame,
    find_query_object,
)
from .config import (
    SPLIST_FILL_FRAME,
    SPLIST_COLLECTION_TYPE,
    MAX_VIEWFIELDS,
)
from .snapshot import (
    Snapshot,
    Thread,
    Frame,
    QueryObject,
    QueryObjectSource,
    StackObjects,
    SnapshotError,
    load_snapshot,
)
from .view_query import (
    ViewQuery,
    ViewXmlError,
    extract_view_xml,
    parse_view_xml,
)
from .report import ReportWriter, HtmlReportWriter
from .progress import AnalysisProgress
from .cdb_snapshot import CdbSnapshotReader, read_snapshot
from .dump_info import DumpInfo, read_dump_info

__all__ = [
    # Analysis
    "SPListAnalysis",
    "FindingSet",
    "analyze_snapshot",
    "contains_frame",
    "find_query_object",
    # Rule constants
    "SPLIST_FILL_FRAME",
    "SPLIST_COLLECTION_TYPE",
    "MAX_VIEWFIELDS",
    # Snapshot model
    "Snapshot",
    "Thread",
    "Frame",
    "QueryObject",
    "QueryObjectSource",
    "StackObjects",
    "SnapshotError",
    "load_snapshot",
    # Query parsing
    "ViewQuery",
    "ViewXmlError",
    "extract_view_xml",
    "parse_view_xml",
    # Output
    "ReportWriter",
    "HtmlReportWriter",
    "AnalysisProgress",
    # Dump access
    "CdbSnapshotReader",
    "read_snapshot",
    "DumpInfo",
    "read_dump_info",
]

__version__ = "1.0.0"
