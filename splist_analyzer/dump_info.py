"""Basic minidump facts shown in the report heading."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

# Optional dependency
try:
    from minidump.minidumpfile import MinidumpFile
    HAS_MINIDUMP = True
except ImportError:
    MinidumpFile = None
    HAS_MINIDUMP = False


@dataclass
class DumpInfo:
    """Summary of a minidump file."""
    file_name: str
    file_size: int = 0
    capture_time: Optional[int] = None  # header TimeDateStamp
    thread_count: int = 0
    processor_count: int = 0
    os_build: Optional[int] = None
    errors: List[str] = field(default_factory=list)

    @property
    def capture_time_text(self) -> str:
        if not self.capture_time:
            return "unknown"
        return datetime.fromtimestamp(self.capture_time, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')

    def summary(self) -> str:
        parts = [f"{self.file_size / (1024 * 1024):.1f} MB",
                 f"captured {self.capture_time_text}"]
        if self.thread_count:
            parts.append(f"{self.thread_count} threads")
        if self.os_build:
            parts.append(f"Windows build {self.os_build}")
        return ", ".join(parts)


def read_dump_info_from(md, info: DumpInfo) -> DumpInfo:
    """Fill ``info`` from a parsed MinidumpFile."""
    header = getattr(md, 'header', None)
    if header is not None:
        info.capture_time = getattr(header, 'TimeDateStamp', None)
    threads = getattr(md, 'threads', None)
    if threads is not None:
        info.thread_count = len(getattr(threads, 'threads', []) or [])
    sysinfo = getattr(md, 'sysinfo', None)
    if sysinfo is not None:
        info.processor_count = getattr(sysinfo, 'NumberOfProcessors', 0) or 0
        info.os_build = getattr(sysinfo, 'BuildNumber', None)
    return info


def read_dump_info(dump_path: str) -> DumpInfo:
    """Read header facts of a minidump; problems end up in ``errors``."""
    info = DumpInfo(file_name=os.path.basename(dump_path))
    try:
        info.file_size = os.path.getsize(dump_path)
        with open(dump_path, 'rb') as f:
            signature = f.read(4)
    except OSError as e:
        info.errors.append(f"Cannot read dump: {e}")
        return info

    if signature != b'MDMP':
        info.errors.append("Not a valid minidump file (missing MDMP header)")
        return info

    if not HAS_MINIDUMP:
        info.errors.append("minidump package not installed; header details unavailable")
        return info

    try:
        md = MinidumpFile.parse(dump_path)
    except Exception as e:
        info.errors.append(f"Minidump parsing error: {e}")
        return info
    return read_dump_info_from(md, info)
