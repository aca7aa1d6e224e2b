"""
Shared helpers for the vql package.

All JSON writes use atomic temp-file-then-os.replace() so that an interrupted
save never leaves a torn registry document behind.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone

from vql.config import TIMESTAMP_FORMAT

logger = logging.getLogger(__name__)


def now_timestamp() -> str:
    """Return the current UTC time in the registry timestamp format."""
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def expand_home(path: str) -> str:
    """Expand a leading ``~`` using ``$HOME``.

    When ``HOME`` is not set the string is returned unchanged (the literal
    ``~`` is passed through).
    """
    if not path.startswith("~"):
        return path
    home = os.environ.get("HOME")
    if not home:
        return path
    return home + path[1:]


def strip_quotes(text: str) -> str:
    """Trim whitespace and any surrounding double quotes from *text*."""
    return text.strip().strip('"')


# ---------------------------------------------------------------------------
# JSON I/O (atomic writes)
# ---------------------------------------------------------------------------

def read_json(path):
    """Read and parse a JSON file.

    Unlike a "safe" read, errors propagate: callers decide whether a missing
    or corrupt file is fatal.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    json.JSONDecodeError
        If the file is not valid JSON.
    """
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def safe_write_json(path, data, *, indent=2):
    """Atomically write *data* as JSON to *path*.

    Uses a temporary file in the same directory followed by
    ``os.replace()`` so that readers never see a partially-written file.
    Parent directories are created if they do not exist.

    Parameters
    ----------
    path : str or pathlib.Path
        Absolute path to the target JSON file.
    data
        JSON-serialisable object to write.
    indent : int, optional
        JSON indentation level (default 2).
    """
    path = str(path)
    parent = os.path.dirname(path)
    os.makedirs(parent, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=indent, ensure_ascii=False)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    logger.debug("Wrote %s", path)
