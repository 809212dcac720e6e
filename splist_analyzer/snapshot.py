"""Read-only snapshot model handed to the SPList analysis.

A snapshot is a list of threads. Each thread carries its managed stack frames
and a way to look up the objects referenced from its stack by type name. The
analysis only depends on these classes; the debugger integration that fills
them lives in ``cdb_snapshot``.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple


class SnapshotError(Exception):
    """Raised when a snapshot cannot be produced or loaded."""


@dataclass(frozen=True)
class Frame:
    """A single managed stack frame."""
    function_name: str
    instruction_address: int = 0


@dataclass(frozen=True)
class QueryObject:
    """The SPQuery carried by an SPListItemCollection found on a stack."""
    view_xml: Optional[str] = None  # m_Query.m_strViewXml
    query: Optional[str] = None  # m_Query.m_strQuery
    address: int = 0


class QueryObjectSource(Protocol):
    """Capability for locating stack objects by runtime type name."""

    def find_first_of_shape(self, shape: str) -> Optional[QueryObject]:
        ...


@dataclass
class StackObjects:
    """In-memory QueryObjectSource: (type name, object) pairs in stack order."""
    entries: List[Tuple[str, QueryObject]] = field(default_factory=list)

    def add(self, type_name: str, obj: QueryObject) -> None:
        self.entries.append((type_name, obj))

    def find_first_of_shape(self, shape: str) -> Optional[QueryObject]:
        for type_name, obj in self.entries:
            if type_name == shape:
                return obj
        return None


@dataclass
class Thread:
    """A debugger thread with its managed stack."""
    thread_id: int
    frames: List[Frame] = field(default_factory=list)
    objects: QueryObjectSource = field(default_factory=StackObjects)
    os_thread_id: int = 0

    def find_first_stack_object(self, shape: str) -> Optional[QueryObject]:
        return self.objects.find_first_of_shape(shape)


@dataclass
class Snapshot:
    """All threads of a captured process, in debugger order."""
    threads: List[Thread] = field(default_factory=list)
    dump_name: str = ""

    def __iter__(self) -> Iterator[Thread]:
        return iter(self.threads)

    def __len__(self) -> int:
        return len(self.threads)


def _parse_int(value: Any) -> int:
    """Accept ints and hex/decimal strings (debugger exports use both)."""
    if value is None or value == "":
        return 0
    if isinstance(value, int):
        return value
    text = str(value).replace('`', '').strip()
    if text.lower().startswith('0x'):
        return int(text, 16)
    return int(text)


def _thread_from_dict(data: Dict[str, Any]) -> Thread:
    frames = [
        Frame(
            function_name=str(f.get('function', '')),
            instruction_address=_parse_int(f.get('address')),
        )
        for f in data.get('frames', [])
    ]
    objects = StackObjects()
    for obj in data.get('stack_objects', []):
        objects.add(
            str(obj.get('type', '')),
            QueryObject(
                view_xml=obj.get('view_xml'),
                query=obj.get('query'),
                address=_parse_int(obj.get('address')),
            ),
        )
    return Thread(
        thread_id=_parse_int(data.get('id')),
        frames=frames,
        objects=objects,
        os_thread_id=_parse_int(data.get('os_id')),
    )


def snapshot_from_dict(data: Dict[str, Any]) -> Snapshot:
    """Build a Snapshot from the JSON export structure.

    Expected layout::

        {"dump": "w3wp.dmp",
         "threads": [{"id": 12, "os_id": "0x1a2c",
                      "frames": [{"address": "0x7ff8...", "function": "..."}],
                      "stack_objects": [{"type": "...", "address": "0x...",
                                         "view_xml": "...", "query": "..."}]}]}
    """
    if not isinstance(data, dict) or not isinstance(data.get('threads'), list):
        raise SnapshotError("Snapshot export must be an object with a 'threads' list")
    try:
        threads = [_thread_from_dict(t) for t in data['threads']]
    except (AttributeError, TypeError, ValueError) as e:
        raise SnapshotError(f"Invalid thread entry in snapshot export: {e}") from e
    return Snapshot(threads=threads, dump_name=str(data.get('dump', '')))


def load_snapshot(path: str) -> Snapshot:
    """Load a snapshot previously exported as JSON."""
    if not os.path.exists(path):
        raise SnapshotError(f"Snapshot file not found: {path}")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise SnapshotError(f"Could not read snapshot {path}: {e}") from e
    snapshot = snapshot_from_dict(data)
    if not snapshot.dump_name:
        snapshot.dump_name = os.path.basename(path)
    return snapshot


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, Any]:
    """Serialize a snapshot built from StackObjects sources."""
    threads = []
    for thread in snapshot:
        stack_objects = []
        entries = getattr(thread.objects, 'entries', [])
        for type_name, obj in entries:
            stack_objects.append({
                'type': type_name,
                'address': hex(obj.address),
                'view_xml': obj.view_xml,
                'query': obj.query,
            })
        threads.append({
            'id': thread.thread_id,
            'os_id': hex(thread.os_thread_id),
            'frames': [
                {'address': hex(f.instruction_address), 'function': f.function_name}
                for f in thread.frames
            ],
            'stack_objects': stack_objects,
        })
    return {'dump': snapshot.dump_name, 'threads': threads}
