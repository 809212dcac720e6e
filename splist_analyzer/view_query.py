"""SPQuery extraction and CAML view parsing.

An SPListItemCollection keeps the query it is filling in ``m_Query``. When the
query was built from a full view definition ``m_strViewXml`` holds CAML like::

    <View>
      <Query><Where>...</Where></Query>
      <ViewFields><FieldRef Name="Title"/>...</ViewFields>
      <RowLimit Paged="TRUE">100</RowLimit>
    </View>

When only ``SPQuery.Query`` was set, ``m_strViewXml`` is empty and the bare
``<Where>``/``<OrderBy>`` text sits in ``m_strQuery``. That case is wrapped in
a minimal ``<View><Query>...</Query></View>``, which by construction has no
field list and no row limit.
"""
from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List, Optional

from .snapshot import QueryObject


class ViewXmlError(ValueError):
    """The query text is not well-formed XML."""


@dataclass
class ViewQuery:
    """Parsed view definition of an SPQuery."""
    xml: str
    field_refs: Optional[List[str]] = None  # None: no <ViewFields>, all fields
    field_count: int = 0
    has_row_limit: bool = False
    row_limit: Optional[int] = None
    paged: bool = False

    @property
    def is_wildcard(self) -> bool:
        return self.field_refs is None


def wrap_query(query: str) -> str:
    return "<View><Query>" + query + "</Query></View>"


def extract_view_xml(obj: Optional[QueryObject]) -> Optional[str]:
    """Return the CAML view text for a query object, or None if there is none."""
    if obj is None:
        return None
    if obj.view_xml:
        return obj.view_xml
    if obj.query:
        return wrap_query(obj.query)
    return None


def _format_xml(root: ET.Element) -> str:
    ET.indent(root, space="  ")
    return ET.tostring(root, encoding="unicode")


def parse_view_xml(text: str) -> ViewQuery:
    """Parse CAML view text.

    Raises:
        ViewXmlError: if the text is not well-formed.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise ViewXmlError(f"Malformed SPQuery XML: {e}") from e

    view = ViewQuery(xml="")

    view_fields = root.find("ViewFields")
    if view_fields is not None:
        # The count covers every child element, the listing only named FieldRefs
        view.field_count = len(list(view_fields))
        view.field_refs = [
            ref.get("Name")
            for ref in view_fields.findall("FieldRef")
            if ref.get("Name") is not None
        ]

    row_limit = root.find("RowLimit")
    if row_limit is not None:
        view.has_row_limit = True
        view.paged = (row_limit.get("Paged") or "").upper() == "TRUE"
        try:
            view.row_limit = int((row_limit.text or "").strip())
        except ValueError:
            view.row_limit = None

    view.xml = _format_xml(root)
    return view


def extract_view_query(obj: Optional[QueryObject]) -> Optional[ViewQuery]:
    """Extract and parse the query of ``obj``; None when it carries no query text."""
    text = extract_view_xml(obj)
    if not text:
        return None
    return parse_view_xml(text)
