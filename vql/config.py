"""
vql/config.py -- Names, defaults, and environment overrides.

Environment variables are read at call time so that tests (and callers that
change the environment mid-process) always see the current value.

    VQL_DIR         Use this registry directory instead of searching upward
                    from the working directory.
    VQL_LOG_LEVEL   Logging level for the CLI (default ``WARNING``).
    HOME            Used to expand a leading ``~`` in path arguments.
"""

import os

VERSION = "1.0.0"

REGISTRY_DIR_NAME = "VQL"
REGISTRY_FILE_NAME = "vql_storage.json"

ENV_REGISTRY_DIR = "VQL_DIR"
ENV_LOG_LEVEL = "VQL_LOG_LEVEL"

DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

# All record timestamps share this format so older documents stay comparable.
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

VALID_RATINGS = ("H", "M", "L")
RATING_LABELS = {"H": "High", "M": "Medium", "L": "Low"}

MISSING_GUIDANCE = "No guidance"

BUILTIN_COMMANDS = {
    "ar": "Asset Register - Manages asset references",
    "at": "Asset Type - Manages asset types",
    "er": "Entity Register - Manages entity definitions",
    "pr": "Principle - Manages principles for reviewing assets",
    "setup": "Creates VQL directory in current location",
    "st": "Store - Stores a review for an asset",
    "se": "Set Exemplar - Sets exemplar status for an asset",
    "sc": "Set Compliance - Sets compliance rating for an asset",
    "rv": "Review - AI-assisted review of assets (LLM only)",
    "rf": "Refactor - AI-assisted refactoring of assets (LLM only)",
}

DEFAULT_PRINCIPLES = {
    "a": ("Architecture", "Architecture evaluation guidelines"),
    "s": ("Security", "Security evaluation guidelines"),
    "p": ("Performance", "Performance evaluation guidelines"),
    "u": ("UI/UX", "UI/UX evaluation guidelines"),
}


def registry_dir_override() -> str | None:
    """Return the ``VQL_DIR`` override, or ``None`` when unset or empty."""
    value = os.environ.get(ENV_REGISTRY_DIR, "").strip()
    return value or None


def log_level_name() -> str:
    """Return the configured log level name (upper-cased)."""
    return os.environ.get(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).strip().upper() or DEFAULT_LOG_LEVEL
