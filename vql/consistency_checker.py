"""
vql/consistency_checker.py -- Two-Layer Registry Integrity Check

Validates the registry document as it sits on disk:

    Layer 1 (Schema):   JSON Schema validation of the raw document.
    Layer 2 (Rules):    Cross-reference and namespace checks that a schema
                        cannot express.

The store keeps these invariants on every write, so a failing check means
the document was edited by hand, written by another tool, or damaged.  The
checker only reports; it never repairs or saves.

Usage:
    from vql.consistency_checker import ConsistencyChecker

    cc = ConsistencyChecker("/work/project/VQL")
    result = cc.check()
    # result["passed"]         -> True/False
    # result["human_message"]  -> Friendly summary
"""

import json
import logging
import os

import jsonschema

from vql.config import REGISTRY_FILE_NAME
from vql.errors import RegistryIOError
from vql.utils import read_json

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry document schema
# ---------------------------------------------------------------------------

_NULLABLE_STRING = {"type": ["string", "null"]}

_COMMAND_SCHEMA = {
    "type": "object",
    "required": ["name"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "last_modified": {"type": "string"},
        "original_name": _NULLABLE_STRING,
        "built_in": {"type": "boolean"},
    },
}

_PRINCIPLE_SCHEMA = {
    "type": "object",
    "required": ["short_name", "long_name"],
    "properties": {
        "short_name": {"type": "string", "minLength": 1},
        "long_name": {"type": "string"},
        "guidance": _NULLABLE_STRING,
        "last_modified": {"type": "string"},
    },
}

_NAMED_SCHEMA = {
    "type": "object",
    "required": ["short_name"],
    "properties": {
        "short_name": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "last_modified": {"type": "string"},
    },
}

_REVIEW_SCHEMA = {
    "type": "object",
    "properties": {
        "rating": {"enum": ["H", "M", "L", None]},
        "analysis": _NULLABLE_STRING,
        "last_modified": {"type": "string"},
    },
}

_ASSET_SCHEMA = {
    "type": "object",
    "required": ["short_name", "entity", "asset_type", "path"],
    "properties": {
        "short_name": {"type": "string", "minLength": 1},
        "entity": {"type": "string"},
        "asset_type": {"type": "string"},
        "path": {"type": "string"},
        "exemplar": {"type": "boolean"},
        "last_modified": {"type": "string"},
        "principle_reviews": {"type": "object", "additionalProperties": _REVIEW_SCHEMA},
    },
}

REGISTRY_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "VQL registry document",
    "type": "object",
    "required": ["version"],
    "properties": {
        "version": {"type": "string"},
        "created": {"type": "string"},
        "last_modified": {"type": "string"},
        "commands": {"type": "object", "additionalProperties": _COMMAND_SCHEMA},
        "asset_types": {"type": "object", "additionalProperties": _NAMED_SCHEMA},
        "entities": {"type": "object", "additionalProperties": _NAMED_SCHEMA},
        "principles": {"type": "object", "additionalProperties": _PRINCIPLE_SCHEMA},
        "asset_references": {"type": "object", "additionalProperties": _ASSET_SCHEMA},
    },
}

# Collections that share the short-name namespace, with their display labels.
_NAMESPACES = (
    ("principles", "principle"),
    ("entities", "entity"),
    ("asset_types", "asset type"),
    ("asset_references", "asset"),
)


def _humanize_error(error) -> str:
    """Convert a ``jsonschema.ValidationError`` into plain English."""
    path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "(root)"
    msg = error.message
    if error.validator == "required":
        return f"Missing required field at {path}: {msg}"
    if error.validator == "type":
        return f"Wrong data type at '{path}': {msg}"
    if error.validator == "enum":
        return f"Invalid value at '{path}': {msg}"
    return f"Issue at '{path}': {msg}"


# ---------------------------------------------------------------------------
# ConsistencyChecker
# ---------------------------------------------------------------------------

class ConsistencyChecker:
    """Schema and rule checks for one registry directory.

    Parameters
    ----------
    registry_dir : str
        The ``VQL`` directory holding the registry document.
    """

    def __init__(self, registry_dir: str):
        self.registry_dir = os.path.abspath(registry_dir)
        self.document_path = os.path.join(self.registry_dir, REGISTRY_FILE_NAME)

    def load_document(self) -> dict:
        """Read the raw registry document without model validation."""
        try:
            return read_json(self.document_path)
        except json.JSONDecodeError as exc:
            raise RegistryIOError("parse registry document", self.document_path, str(exc)) from exc
        except OSError as exc:
            raise RegistryIOError("read registry document", self.document_path, str(exc)) from exc

    # ------------------------------------------------------------------
    # Layer 1: Schema
    # ------------------------------------------------------------------

    def check_schema(self, document) -> dict:
        """Layer 1: Validate the document shape.

        Returns
        -------
        dict
            ``{"passed": bool, "errors": [human-readable strings]}``
        """
        validator = jsonschema.Draft202012Validator(REGISTRY_SCHEMA)
        errors = sorted(validator.iter_errors(document), key=lambda e: list(map(str, e.absolute_path)))
        messages = [_humanize_error(e) for e in errors]
        return {"passed": not messages, "errors": messages}

    # ------------------------------------------------------------------
    # Layer 2: Rules
    # ------------------------------------------------------------------

    def check_rules(self, document: dict) -> dict:
        """Layer 2: Cross-reference and namespace checks.

        Assumes the document passed Layer 1.  Checks that:
        - Map keys agree with each record's ``short_name`` (or ``name``)
        - Principle and asset type short names are one character
        - No short name is used by two kinds at once
        - Asset references point at existing entities and asset types
        - Reviews are filed under defined principles

        A registered asset whose file is gone is reported as a warning.

        Returns
        -------
        dict
            ``{"passed": bool, "errors": [...], "warnings": [...]}``
        """
        errors: list[str] = []
        warnings: list[str] = []

        principles = document.get("principles", {})
        entities = document.get("entities", {})
        asset_types = document.get("asset_types", {})
        assets = document.get("asset_references", {})

        # ---- Check 1: keys agree with records ----
        for collection, label in _NAMESPACES:
            for key, record in document.get(collection, {}).items():
                if record["short_name"] != key:
                    errors.append(
                        f"The {label} stored under '{key}' calls itself '{record['short_name']}'."
                    )
        for key, command in document.get("commands", {}).items():
            if command["name"] != key:
                errors.append(f"The command stored under '{key}' calls itself '{command['name']}'.")

        # ---- Check 2: one-character short names ----
        for collection, label in (("principles", "principle"), ("asset_types", "asset type")):
            for key in document.get(collection, {}):
                if len(key) != 1:
                    errors.append(f"The {label} short name '{key}' must be a single character.")

        # ---- Check 3: one namespace ----
        owners: dict[str, list[str]] = {}
        for collection, label in _NAMESPACES:
            for key in document.get(collection, {}):
                owners.setdefault(key, []).append(label)
        for name, labels in sorted(owners.items()):
            if len(labels) > 1:
                errors.append(f"The short name '{name}' is used by more than one kind: {', '.join(labels)}.")

        # ---- Check 4: references ----
        project_root = os.path.dirname(self.registry_dir)
        for key, asset in sorted(assets.items()):
            if asset["entity"] not in entities:
                errors.append(f"Asset '{key}' references entity '{asset['entity']}', which does not exist.")
            if asset["asset_type"] not in asset_types:
                errors.append(
                    f"Asset '{key}' references asset type '{asset['asset_type']}', which does not exist."
                )
            for principle in sorted(asset.get("principle_reviews", {})):
                if principle not in principles:
                    errors.append(f"Asset '{key}' has a review under unknown principle '{principle}'.")

            path = asset["path"]
            full_path = path if os.path.isabs(path) else os.path.join(project_root, path)
            if not os.path.isfile(full_path):
                warnings.append(f"Asset '{key}' points at '{path}', which is no longer a file.")

        return {"passed": not errors, "errors": errors, "warnings": warnings}

    # ------------------------------------------------------------------
    # Combined
    # ------------------------------------------------------------------

    def check(self, document=None) -> dict:
        """Run both layers; Layer 2 only runs when Layer 1 passes.

        Parameters
        ----------
        document : dict, optional
            The raw document.  Loaded from disk when omitted.
        """
        if document is None:
            document = self.load_document()

        layer1 = self.check_schema(document)
        if layer1["passed"]:
            layer2 = self.check_rules(document)
        else:
            layer2 = {"passed": None, "errors": ["Skipped (schema check did not pass)"], "warnings": []}

        passed = layer1["passed"] and layer2["passed"] is True
        result = {
            "passed": passed,
            "errors": layer1["errors"] + (layer2["errors"] if layer1["passed"] else []),
            "warnings": layer2["warnings"],
            "layer1_schema": layer1,
            "layer2_rules": layer2,
            "human_message": "",
        }
        result["human_message"] = self.format_human_message(result)
        logger.info(
            "Consistency check of %s: %s (%d error(s), %d warning(s))",
            self.document_path,
            "passed" if passed else "failed",
            len(result["errors"]),
            len(result["warnings"]),
        )
        return result

    def format_human_message(self, check_result: dict) -> str:
        """Convert check results into a short report."""
        if check_result.get("passed", False):
            lines = ["Registry passed all consistency checks."]
        else:
            errors = check_result.get("errors", [])
            lines = ["The registry has consistency problems.", ""]
            if len(errors) == 1:
                lines.append(f"ISSUE: {errors[0]}")
            else:
                lines.append("ISSUES FOUND:")
                for i, err in enumerate(errors, 1):
                    lines.append(f"  {i}. {err}")
            lines.append("")
            lines.append("Nothing was changed. Fix the document or re-run the affected commands.")

        warnings = check_result.get("warnings", [])
        if warnings:
            lines.append("")
            lines.append("NOTES (not blocking):")
            for i, warning in enumerate(warnings, 1):
                lines.append(f"  {i}. {warning}")
        return "\n".join(lines)
