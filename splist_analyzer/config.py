"""Rule constants and environment configuration for the SPList analyzer."""
import os
import sys

# Managed frame that fills an SPListItemCollection from the content database
SPLIST_FILL_FRAME = "Microsoft.SharePoint.SPListItemCollection.EnsureListItemsData"

# Stack object holding the SPQuery being executed
SPLIST_COLLECTION_TYPE = "Microsoft.SharePoint.SPListItemCollection"

# Queries asking for more view fields than this are reported
MAX_VIEWFIELDS = 10

# Toggled by the CLI (--quiet)
VERBOSE = True


def safe_print(msg: str):
    """Print message safely, handling unicode encoding issues on Windows."""
    if not VERBOSE:
        return
    try:
        print(msg)
    except UnicodeEncodeError:
        encoding = sys.stdout.encoding or 'utf-8'
        print(msg.encode(encoding, errors='replace').decode(encoding, errors='replace'))


def get_cdb_path() -> str:
    """Explicit CDB location, empty when CDB should be searched for."""
    return os.environ.get("SPLIST_CDB_PATH", "")


def get_symbol_path() -> str:
    return os.environ.get(
        "SPLIST_SYMBOL_PATH",
        "srv*https://msdl.microsoft.com/download/symbols",
    )


def get_cdb_timeout() -> int:
    """Minimum debugger timeout in seconds."""
    try:
        return int(os.environ.get("SPLIST_CDB_TIMEOUT", "300"))
    except ValueError:
        return 300


def get_sos_command() -> str:
    # .NET Framework worker processes; use ".loadby sos coreclr" for .NET Core
    return os.environ.get("SPLIST_SOS_COMMAND", ".loadby sos clr")
