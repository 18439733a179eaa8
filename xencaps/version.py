"""Package version, read from the VERSION file shipped next to this module."""

from importlib import metadata
from pathlib import Path

_VERSION_FILE = Path(__file__).parent / "VERSION"


def get_version() -> str:
    """Get the xencaps version.

    Falls back to the installed distribution metadata when the VERSION
    file is missing or empty.
    """
    try:
        version = _VERSION_FILE.read_text().strip()
    except OSError:
        version = ""
    if version:
        return version

    try:
        return metadata.version("xencaps")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__version__ = get_version()
