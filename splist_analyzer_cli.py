#!/usr/bin/env python3
"""
SPList Query Analyzer - Main Entry Point

Command-line front end for the SharePoint hang dump analysis.
"""

import sys
import json
import argparse

# Load .env before any splist_analyzer imports (so SPLIST_CDB_PATH etc. are set)
from dotenv import load_dotenv

load_dotenv()


def _run_analysis(snapshot, args, dump_info=None):
    from splist_analyzer.analysis import SPListAnalysis
    from splist_analyzer.progress import AnalysisProgress, console_progress
    from splist_analyzer.report import HtmlReportWriter

    writer = HtmlReportWriter(title=f"SPList Query Analysis - {snapshot.dump_name}")
    note = dump_info.summary() if dump_info is not None and not dump_info.errors else ""
    findings = SPListAnalysis(writer, AnalysisProgress(console_progress)).run(snapshot, note)

    print("\n" + "=" * 80)
    print("SPLIST QUERY ANALYSIS")
    print("=" * 80)
    print(f"Threads analyzed: {len(snapshot)}")
    print(f"Threads in EnsureListItemsData: {len(findings.analyzed_threads)}")
    if findings.has_findings:
        print()
        print(writer.text_summary())
    else:
        print("\nNo SPList query issues detected.")

    if args.output:
        writer.save(args.output)
        print(f"\n✓ Report saved to: {args.output}")
    return findings


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='SPList Query Analyzer - SharePoint hang dump triage',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyze a hang dump (requires CDB from Debugging Tools for Windows)
  %(prog)s analyze w3wp.dmp -o report.html

  # Analyze a snapshot exported earlier
  %(prog)s analyze-export w3wp.json -o report.html

  # Export threads, stacks and SPQuery objects of a dump as JSON
  %(prog)s export w3wp.dmp -o w3wp.json

  # Show dump header information
  %(prog)s inspect w3wp.dmp
        """
    )

    parser.add_argument(
        'command',
        choices=['analyze', 'analyze-export', 'export', 'inspect'],
        help='Command to execute'
    )

    parser.add_argument(
        'input_file',
        help='Path to hang dump (.dmp) or snapshot export (.json)'
    )

    parser.add_argument(
        '--output',
        '-o',
        help='Output file (HTML report, or JSON for export)'
    )

    parser.add_argument(
        '--cdb',
        help='Path to cdb.exe (default: SPLIST_CDB_PATH or auto-detect)'
    )

    parser.add_argument(
        '--quiet',
        '-q',
        action='store_true',
        help='Suppress progress output'
    )

    args = parser.parse_args(argv)

    from splist_analyzer import config
    from splist_analyzer.snapshot import SnapshotError

    if args.quiet:
        config.VERBOSE = False

    try:
        if args.command == 'inspect':
            from splist_analyzer.dump_info import read_dump_info

            info = read_dump_info(args.input_file)
            print(f"Dump: {info.file_name}")
            print(f"  Size: {info.file_size:,} bytes")
            print(f"  Captured: {info.capture_time_text}")
            print(f"  Threads: {info.thread_count}")
            print(f"  Processors: {info.processor_count}")
            if info.os_build:
                print(f"  OS build: {info.os_build}")
            for err in info.errors:
                print(f"  ! {err}")
            return 1 if info.errors else 0

        if args.command == 'analyze-export':
            from splist_analyzer.snapshot import load_snapshot

            print(f"Analyzing snapshot export: {args.input_file}")
            _run_analysis(load_snapshot(args.input_file), args)
            return 0

        from splist_analyzer.cdb_snapshot import CdbSnapshotReader
        from splist_analyzer.dump_info import read_dump_info

        info = read_dump_info(args.input_file)
        for err in info.errors:
            print(f"[!] {err}")

        print(f"Reading dump: {args.input_file}")
        snapshot = CdbSnapshotReader(args.input_file, args.cdb).read()

        if args.command == 'export':
            from splist_analyzer.snapshot import snapshot_to_dict

            data = snapshot_to_dict(snapshot)
            if args.output:
                with open(args.output, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2)
                print(f"\n✓ Snapshot saved to: {args.output}")
            else:
                print(json.dumps(data, indent=2))
            return 0

        _run_analysis(snapshot, args, info)
        return 0

    except SnapshotError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
