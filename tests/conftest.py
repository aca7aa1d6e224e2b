"""
Shared pytest fixtures for the vql test suite.

Provides:
    - project: a temporary project directory with a set-up registry; the
      working directory is moved there and VQL_DIR is cleared
    - registry_dir: the project's VQL directory
    - source_file: a real source file inside the project (relative path)
    - dispatcher: a CommandDispatcher rooted at the project
    - empty_store: an in-memory store with no principles or commands
    - store: an in-memory store with the default principles plus one
      entity, asset type, and asset with a stored review
"""

import json
import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Ensure vql/ is importable regardless of where pytest is invoked
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from vql.dispatcher import CommandDispatcher  # noqa: E402
from vql.models import Registry  # noqa: E402
from vql.registry_store import RegistryStore  # noqa: E402


# ---------------------------------------------------------------------------
# On-disk project
# ---------------------------------------------------------------------------

@pytest.fixture
def project(tmp_path, monkeypatch):
    """Return a temporary project directory containing ``VQL/vql_storage.json``."""
    project_dir = tmp_path / "project"
    project_dir.mkdir()
    RegistryStore().save(project_dir / "VQL")

    monkeypatch.delenv("VQL_DIR", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(project_dir)
    return project_dir


@pytest.fixture
def registry_dir(project):
    return project / "VQL"


@pytest.fixture
def source_file(project):
    """Create ``src/user_controller.js`` in the project; return its relative path."""
    src = project / "src"
    src.mkdir()
    (src / "user_controller.js").write_text("export class UserController {}\n", encoding="utf-8")
    (src / "user_controller_v2.js").write_text("export class UserControllerV2 {}\n", encoding="utf-8")
    return "src/user_controller.js"


@pytest.fixture
def dispatcher(project):
    return CommandDispatcher(str(project))


@pytest.fixture
def read_document(registry_dir):
    """Return a function that reads the raw registry document."""
    def _read():
        with open(registry_dir / "vql_storage.json", "r", encoding="utf-8") as fh:
            return json.load(fh)
    return _read


# ---------------------------------------------------------------------------
# In-memory stores
# ---------------------------------------------------------------------------

@pytest.fixture
def empty_store():
    """Return a store over a registry with no defaults at all."""
    return RegistryStore(Registry())


@pytest.fixture
def store():
    """Return a default store with entity usr, asset type c, and asset uc.

    ``uc`` has an Architecture review rated H.
    """
    s = RegistryStore()
    s.add_entity("usr", "User")
    s.add_asset_type("c", "Controller")
    s.add_asset_reference("uc", "usr", "c", "src/user_controller.js")
    s.store_asset_review("uc", "a", "H", "Clean layering. High compliance")
    return s
