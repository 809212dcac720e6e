"""Snapshot builders shared by the test modules."""
from splist_analyzer.config import SPLIST_COLLECTION_TYPE, SPLIST_FILL_FRAME
from splist_analyzer.snapshot import Frame, QueryObject, Snapshot, StackObjects, Thread


def view_xml(fields=None, row_limit=None, where="<Where><IsNotNull><FieldRef Name='ID'/></IsNotNull></Where>"):
    parts = ["<View>", f"<Query>{where}</Query>"]
    if fields is not None:
        parts.append("<ViewFields>")
        parts.extend(f"<FieldRef Name='{name}'/>" for name in fields)
        parts.append("</ViewFields>")
    if row_limit is not None:
        parts.append(f"<RowLimit Paged='TRUE'>{row_limit}</RowLimit>")
    parts.append("</View>")
    return "".join(parts)


def splist_thread(thread_id, view=None, query=None, with_object=True):
    """A thread blocked in EnsureListItemsData."""
    objects = StackObjects()
    objects.add("System.String", QueryObject(address=0x1000))
    if with_object:
        objects.add(SPLIST_COLLECTION_TYPE, QueryObject(view_xml=view, query=query, address=0x2000 + thread_id))
    frames = [
        Frame("System.Data.SqlClient.SqlDataReader.Read()", 0x7ff8a0001000),
        Frame(SPLIST_FILL_FRAME + "(Boolean, Boolean)", 0x7ff8a0002000),
        Frame("Microsoft.SharePoint.SPListItemCollection.GetEnumerator()", 0x7ff8a0003000),
        Frame("ASP.default_aspx.Page_Load(System.Object, System.EventArgs)", 0x7ff8a0004000),
    ]
    return Thread(thread_id=thread_id, frames=frames, objects=objects)


def idle_thread(thread_id):
    return Thread(thread_id=thread_id, frames=[
        Frame("System.Threading.WaitHandle.WaitOne()", 0x7ff8b0001000),
        Frame("System.Threading.ThreadHelper.ThreadStart()", 0x7ff8b0002000),
    ])


def make_snapshot(*threads, name="w3wp.dmp"):
    return Snapshot(threads=list(threads), dump_name=name)
