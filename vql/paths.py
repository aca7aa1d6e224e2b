"""
vql/paths.py -- Registry directory discovery, setup, and the asset path gate.

The registry lives in a ``VQL`` directory holding ``vql_storage.json``.
Commands find it by walking up from the working directory, unless
``VQL_DIR`` names the registry directory explicitly.
"""

from __future__ import annotations

import logging
import os

from vql.config import REGISTRY_DIR_NAME, REGISTRY_FILE_NAME, registry_dir_override
from vql.errors import InvalidArgumentError, RegistryIOError
from vql.utils import expand_home

logger = logging.getLogger(__name__)


def find_registry_dir(start_dir: str | None = None) -> str:
    """Return the registry directory for *start_dir* (default: cwd).

    ``VQL_DIR`` wins when set.  Otherwise the nearest ancestor (including
    *start_dir* itself) whose ``VQL`` subdirectory holds a registry document
    is used.

    Raises
    ------
    RegistryIOError
        If no registry directory can be found.
    """
    override = registry_dir_override()
    if override is not None:
        override = os.path.abspath(expand_home(override))
        if not os.path.isdir(override):
            raise RegistryIOError("locate registry directory", override, "VQL_DIR is not a directory")
        logger.debug("Using registry directory from VQL_DIR: %s", override)
        return override

    search_dir = os.path.abspath(start_dir or os.getcwd())
    while True:
        candidate = os.path.join(search_dir, REGISTRY_DIR_NAME)
        if os.path.isfile(os.path.join(candidate, REGISTRY_FILE_NAME)):
            logger.debug("Found registry directory %s", candidate)
            return candidate
        parent = os.path.dirname(search_dir)
        if parent == search_dir:
            break
        search_dir = parent

    raise RegistryIOError(
        "locate registry directory",
        os.path.abspath(start_dir or os.getcwd()),
        "no VQL directory in this directory or its ancestors; run 'vql -su <path>' first",
    )


def registry_dir_for(project_dir: str) -> str:
    """Return the registry directory that setup creates inside *project_dir*."""
    return os.path.join(project_dir, REGISTRY_DIR_NAME)


def prepare_setup_dir(path: str | None, start_dir: str | None = None) -> str:
    """Return the absolute project directory for setup, creating it if missing.

    ``~`` is expanded; a relative *path* is taken relative to *start_dir*
    (default: cwd).  An existing non-directory is rejected.
    """
    base = os.path.abspath(start_dir or os.getcwd())
    if not path:
        return base

    expanded = expand_home(path)
    target = expanded if os.path.isabs(expanded) else os.path.join(base, expanded)
    target = os.path.abspath(target)
    if os.path.exists(target) and not os.path.isdir(target):
        raise InvalidArgumentError(f"Invalid directory path: {expanded}")
    try:
        os.makedirs(target, exist_ok=True)
    except OSError as exc:
        raise RegistryIOError("create directory", target, str(exc)) from exc
    return target


def resolve_asset_path(registry_dir: str, path: str) -> str:
    """Check that an asset path names an existing regular file.

    Relative paths are resolved against the parent of *registry_dir* after
    ``~`` expansion.  Returns the resolved absolute path; the caller stores
    the path as the user gave it.

    Raises
    ------
    InvalidArgumentError
        If the path does not exist or is not a regular file.
    """
    expanded = expand_home(path)
    if os.path.isabs(expanded):
        resolved = expanded
    else:
        project_root = os.path.dirname(os.path.abspath(registry_dir))
        resolved = os.path.join(project_root, expanded)

    if not os.path.exists(resolved):
        raise InvalidArgumentError(
            f"File not found: {path}. The file must exist to be added as an asset "
            "reference. Relative paths are resolved against the VQL directory's parent."
        )
    if not os.path.isfile(resolved):
        raise InvalidArgumentError(
            f"Path is not a file: {path}. Only files can be added as asset references."
        )
    return resolved
