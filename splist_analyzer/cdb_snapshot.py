"""
CDB/SOS snapshot reader - builds a Snapshot from a hang dump with CDB
Part of SPList Query Analyzer

Handles:
- CDB/WinDbgX detection and location
- Debugger script generation
- Managed stacks (!clrstack) and stack objects (!dso) for every thread
- Reading SPQuery strings from SPListItemCollection objects (!do)
"""

import os
import re
import subprocess
import tempfile
from typing import Dict, List, Optional, Tuple

from .config import (
    SPLIST_COLLECTION_TYPE,
    get_cdb_path,
    get_cdb_timeout,
    get_sos_command,
    get_symbol_path,
    safe_print,
)
from .snapshot import Frame, QueryObject, Snapshot, SnapshotError, Thread

SECTION_MARKER = "==== SPLIST {} ===="

# "OS Thread Id: 0x1a2c (12)"
THREAD_HEADER_RE = re.compile(r'OS Thread Id:\s*0x([0-9a-f]+)\s*\((\d+)\)', re.IGNORECASE)

# "000000a1b2c3d4e0 00007ff8a1b2c3d4 Microsoft.SharePoint.SPListItemCollection.EnsureListItemsData()"
CLRSTACK_FRAME_RE = re.compile(r'^([0-9a-f`]{8,17})\s+([0-9a-f`]{8,17})\s+(.+)$', re.IGNORECASE)

# "000000a1b2c3d4e0 000001f2a3b4c5d6 Microsoft.SharePoint.SPListItemCollection"
# "rbx              000001f2a3b4c5d6 System.String    some text"
DSO_ENTRY_RE = re.compile(r'^(\S+)\s+([0-9a-f`]{8,17})\s+(\S+)', re.IGNORECASE)

STRING_VALUE_RE = re.compile(r'^String:[ \t]*(.*?)\n(?:Fields:|\Z)', re.MULTILINE | re.DOTALL)

NULL_ADDRESS = 0

CDB_PATHS = [
    r"C:\Program Files (x86)\Windows Kits\10\Debuggers\x64\cdb.exe",
    r"C:\Program Files (x86)\Windows Kits\10\Debuggers\x86\cdb.exe",
    r"C:\Program Files (x86)\Windows Kits\11\Debuggers\x64\cdb.exe",
    r"C:\Program Files\Windows Kits\10\Debuggers\x64\cdb.exe",
    r"C:\Program Files\Windows Kits\11\Debuggers\x64\cdb.exe",
]

WINDBGX_PATHS = [
    os.path.expandvars(r"%LOCALAPPDATA%\Microsoft\WindowsApps\WinDbgX.exe"),
    os.path.expandvars(r"%LOCALAPPDATA%\Microsoft\WinDbg\WinDbgX.exe"),
]


def _hex(text: str) -> int:
    return int(text.replace('`', ''), 16)


def _field_address(fields: Dict[str, str], name: str) -> int:
    """Object address held by a reference field, 0 when null or missing."""
    try:
        return _hex(fields.get(name, "0"))
    except ValueError:
        return NULL_ADDRESS


def _no_window() -> int:
    return subprocess.CREATE_NO_WINDOW if hasattr(subprocess, 'CREATE_NO_WINDOW') else 0


def split_sections(output: str) -> Dict[str, str]:
    """Split debugger output on the .echo markers written by the scripts."""
    sections: Dict[str, str] = {}
    pattern = re.compile(r'^==== SPLIST (.+?) ====\s*$', re.MULTILINE)
    matches = list(pattern.finditer(output))
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(output)
        sections[match.group(1)] = output[match.end():end]
    return sections


def split_threads(section: str) -> List[Tuple[int, int, str]]:
    """Split ``~*e`` output into (debugger id, OS id, text) per thread."""
    threads = []
    matches = list(THREAD_HEADER_RE.finditer(section))
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(section)
        threads.append((int(match.group(2)), int(match.group(1), 16), section[match.end():end]))
    return threads


def parse_clrstack(text: str) -> List[Frame]:
    frames = []
    for line in text.splitlines():
        match = CLRSTACK_FRAME_RE.match(line.strip())
        if match:
            frames.append(Frame(function_name=match.group(3).strip(),
                                instruction_address=_hex(match.group(2))))
    return frames


def parse_dso(text: str) -> List[Tuple[str, int]]:
    """Return (type name, object address) pairs in stack order."""
    entries = []
    for line in text.splitlines():
        match = DSO_ENTRY_RE.match(line.strip())
        if match:
            entries.append((match.group(3), _hex(match.group(2))))
    return entries


def parse_object_fields(text: str) -> Dict[str, str]:
    """Map field name to value column of a ``!do`` field table."""
    fields: Dict[str, str] = {}
    in_fields = False
    for line in text.splitlines():
        if line.startswith("Fields:"):
            in_fields = True
            continue
        if not in_fields:
            continue
        parts = line.split()
        if len(parts) >= 8:
            fields[parts[-1]] = parts[-2]
    return fields


def parse_string_value(text: str) -> Optional[str]:
    match = STRING_VALUE_RE.search(text)
    if not match:
        return None
    return match.group(1).rstrip('\r\n')


class CdbSnapshotReader:
    """Reads threads, managed stacks and SPQuery objects from a dump using CDB."""

    def __init__(self, dump_path: str, cdb_path: Optional[str] = None,
                 target_type: str = SPLIST_COLLECTION_TYPE):
        self.dump_path = dump_path
        self.target_type = target_type
        self.is_windbgx = False
        self.cdb_path = cdb_path or get_cdb_path() or self._find_cdb()
        self.available = bool(self.cdb_path)

    def _find_cdb(self) -> Optional[str]:
        """Find CDB (console debugger) or WinDbgX executable"""
        for path in CDB_PATHS:
            if os.path.exists(path):
                return path

        try:
            result = subprocess.run(['where', 'cdb.exe'], capture_output=True,
                                    text=True, creationflags=_no_window())
            if result.returncode == 0:
                return result.stdout.strip().split('\n')[0]
        except OSError:
            # 'where' missing (non-Windows host)
            pass

        for path in WINDBGX_PATHS:
            if os.path.exists(path):
                self.is_windbgx = True
                return path
        return None

    def _timeout(self) -> int:
        # minimum from config, +60s per GB of dump
        try:
            dump_size_gb = os.path.getsize(self.dump_path) / (1024 ** 3)
        except OSError:
            dump_size_gb = 0
        return max(get_cdb_timeout(), int(get_cdb_timeout() + dump_size_gb * 60))

    def run_commands(self, commands: List[str]) -> str:
        """Run debugger commands against the dump and return the full output."""
        if not self.available:
            raise SnapshotError(
                "CDB not found. Install 'Debugging Tools for Windows' or set SPLIST_CDB_PATH"
            )
        if not os.path.exists(self.dump_path):
            raise SnapshotError(f"Dump file not found: {self.dump_path}")

        script = "\n".join([get_sos_command()] + commands + ["q"])
        with tempfile.NamedTemporaryFile(mode='w', suffix='.txt', delete=False) as f:
            f.write(script)
            script_path = f.name
        log_file = tempfile.NamedTemporaryFile(mode='w', suffix='_cdb_output.txt', delete=False)
        log_path = log_file.name
        log_file.close()

        timeout = self._timeout()
        cmd = [
            self.cdb_path,
            "-logo", log_path,
            "-y", get_symbol_path(),
            "-z", self.dump_path,
            "-c", f"$$>< {script_path}",
        ]
        safe_print(f"[CDB] Running {len(commands)} command(s) on {os.path.basename(self.dump_path)} "
                   f"(timeout {timeout}s)")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True,
                                    timeout=timeout, creationflags=_no_window())
            output = ""
            if os.path.exists(log_path):
                with open(log_path, 'r', encoding='utf-8', errors='ignore') as f:
                    output = f.read()
            if not output:
                output = result.stdout + result.stderr
            return output
        except subprocess.TimeoutExpired as e:
            raise SnapshotError(f"CDB timed out after {timeout} seconds") from e
        except OSError as e:
            raise SnapshotError(f"CDB execution error: {e}") from e
        finally:
            for path in (script_path, log_path):
                try:
                    os.unlink(path)
                except OSError:
                    pass

    def dump_objects(self, addresses: List[int]) -> Dict[int, str]:
        """Run ``!do`` for each address in one debugger session."""
        wanted = sorted({a for a in addresses if a != NULL_ADDRESS})
        if not wanted:
            return {}
        commands = []
        for address in wanted:
            commands.append(".echo " + SECTION_MARKER.format(f"{address:x}"))
            commands.append(f"!do {address:x}")
        commands.append(".echo " + SECTION_MARKER.format("END"))
        sections = split_sections(self.run_commands(commands))
        return {a: sections.get(f"{a:x}", "") for a in wanted}

    def read_threads(self) -> List[Thread]:
        output = self.run_commands([
            ".echo " + SECTION_MARKER.format("CLRSTACK"),
            "~*e !clrstack",
            ".echo " + SECTION_MARKER.format("DSO"),
            "~*e !dso",
            ".echo " + SECTION_MARKER.format("END"),
        ])
        sections = split_sections(output)
        if "CLRSTACK" not in sections:
            raise SnapshotError("Unexpected CDB output: managed stack section missing")

        threads: Dict[int, Thread] = {}
        for thread_id, os_id, text in split_threads(sections["CLRSTACK"]):
            threads[thread_id] = Thread(thread_id=thread_id, frames=parse_clrstack(text),
                                        os_thread_id=os_id)
        for thread_id, os_id, text in split_threads(sections.get("DSO", "")):
            thread = threads.setdefault(thread_id, Thread(thread_id=thread_id, os_thread_id=os_id))
            for type_name, address in parse_dso(text):
                thread.objects.add(type_name, QueryObject(address=address))
        return list(threads.values())

    def resolve_queries(self, threads: List[Thread]) -> None:
        """Replace the first target object on each thread with its SPQuery text."""
        targets: Dict[int, int] = {}
        for thread in threads:
            obj = thread.find_first_stack_object(self.target_type)
            if obj is not None:
                targets[thread.thread_id] = obj.address
        if not targets:
            return

        safe_print(f"[CDB] Reading SPQuery from {len(targets)} {self.target_type} object(s)")
        collections = self.dump_objects(list(targets.values()))
        query_of = {a: _field_address(parse_object_fields(t), "m_Query")
                    for a, t in collections.items()}

        queries = self.dump_objects(list(query_of.values()))
        string_fields = {}
        for address, text in queries.items():
            fields = parse_object_fields(text)
            string_fields[address] = (_field_address(fields, "m_strViewXml"),
                                      _field_address(fields, "m_strQuery"))

        string_addresses = [s for pair in string_fields.values() for s in pair]
        strings = {a: parse_string_value(t) for a, t in self.dump_objects(string_addresses).items()}

        for thread in threads:
            address = targets.get(thread.thread_id)
            if address is None:
                continue
            view_addr, query_addr = string_fields.get(query_of.get(address, 0), (0, 0))
            resolved = QueryObject(view_xml=strings.get(view_addr),
                                   query=strings.get(query_addr),
                                   address=address)
            entries = thread.objects.entries
            for i, (type_name, obj) in enumerate(entries):
                if type_name == self.target_type and obj.address == address:
                    entries[i] = (type_name, resolved)
                    break

    def read(self) -> Snapshot:
        threads = self.read_threads()
        safe_print(f"[CDB] {len(threads)} threads read")
        self.resolve_queries(threads)
        return Snapshot(threads=threads, dump_name=os.path.basename(self.dump_path))


def read_snapshot(dump_path: str, cdb_path: Optional[str] = None) -> Snapshot:
    """Convenience function to read a dump into a Snapshot through CDB."""
    return CdbSnapshotReader(dump_path, cdb_path).read()
