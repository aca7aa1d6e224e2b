"""
vql/dispatcher.py -- Command dispatch: parsed command to store operation.

Every command is one transaction against the registry document:

    load -> validate and mutate through the store -> save -> report

A failed store call raises before anything is saved, and the store never
half-applies a mutation, so a failing command leaves the document exactly
as it was.  Read-only commands (listings, review queries, rv/rf
instruction scripts, the consistency check) never save.

The dispatcher builds output lines; it does not print.  ``render_error``
is the one place that turns an exception into user-facing text.

Usage:
    from vql.dispatcher import CommandDispatcher

    dispatcher = CommandDispatcher()
    result = dispatcher.process_command(':uc.st(a, "Clean layering. High compliance")')
    print("\\n".join(result.lines))
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from vql.config import RATING_LABELS, REGISTRY_FILE_NAME
from vql.consistency_checker import ConsistencyChecker
from vql.errors import ParseError, VQLError
from vql.grammar import CommandKind, ParsedCommand, parse_command
from vql.instructions import (
    build_global_refactor_instructions,
    build_global_review_instructions,
    build_refactor_instructions,
    build_review_instructions,
)
from vql.models.validators import extract_rating_from_text, parse_exemplar_flag
from vql.paths import find_registry_dir, prepare_setup_dir, registry_dir_for, resolve_asset_path
from vql.principle_import import read_principle_file
from vql.registry_store import ItemKind, RegistryStore

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one processed command.

    ``affected`` lists the asset references touched by a cascade (renames,
    principle deletes).  ``changed`` is true when the document was saved.
    ``ok`` is false only for a consistency check that found problems.
    """

    command: ParsedCommand
    lines: list[str] = field(default_factory=list)
    affected: list[str] = field(default_factory=list)
    changed: bool = False
    ok: bool = True


_MUTATING = frozenset({
    CommandKind.ADD_PRINCIPLE,
    CommandKind.ADD_ENTITY,
    CommandKind.ADD_ASSET_TYPE,
    CommandKind.ADD_ASSET,
    CommandKind.ADD_COMMAND,
    CommandKind.IMPORT_PRINCIPLES,
    CommandKind.RENAME_ITEM,
    CommandKind.RENAME_PRINCIPLE,
    CommandKind.RENAME_ENTITY,
    CommandKind.RENAME_ASSET_TYPE,
    CommandKind.RENAME_ASSET,
    CommandKind.RENAME_COMMAND,
    CommandKind.DELETE_ITEM,
    CommandKind.DELETE_PRINCIPLE,
    CommandKind.DELETE_ENTITY,
    CommandKind.DELETE_ASSET_TYPE,
    CommandKind.DELETE_ASSET,
    CommandKind.STORE_REVIEW,
    CommandKind.SET_EXEMPLAR,
    CommandKind.SET_COMPLIANCE,
})


def render_error(exc: Exception) -> str:
    """Return the user-facing message for *exc*."""
    if isinstance(exc, ParseError):
        return f"{exc}\nRun 'vql' without arguments to see the command syntax."
    if isinstance(exc, VQLError):
        return str(exc)
    return f"Unexpected error: {exc}"


# ---------------------------------------------------------------------------
# Plain-text rendering
# ---------------------------------------------------------------------------

def _affected_line(verb: str, affected: list[str]) -> list[str]:
    if not affected:
        return []
    return [f"{verb} {len(affected)} asset reference(s): {', '.join(affected)}"]


def _review_lines(review, indent: str) -> list[str]:
    return [
        f"{indent}Rating: {RATING_LABELS.get(review.rating, 'Not rated')}",
        f"{indent}Analysis: {review.analysis or 'No analysis provided'}",
        f"{indent}Last modified: {review.last_modified}",
    ]


def render_principles(registry) -> list[str]:
    if not registry.principles:
        return ["No principles defined"]
    lines = ["Principles:"]
    for name in sorted(registry.principles):
        principle = registry.principles[name]
        lines.append(f"  {name} ({principle.long_name}): {principle.guidance or 'No guidance provided'}")
    return lines


def render_entities(registry) -> list[str]:
    if not registry.entities:
        return ["No entities defined"]
    return ["Entities:"] + [
        f"  {name}: {registry.entities[name].description}" for name in sorted(registry.entities)
    ]


def render_asset_types(registry) -> list[str]:
    if not registry.asset_types:
        return ["No asset types defined"]
    return ["Asset Types:"] + [
        f"  {name}: {registry.asset_types[name].description}" for name in sorted(registry.asset_types)
    ]


def render_assets(registry) -> list[str]:
    if not registry.asset_references:
        return ["No asset references defined"]
    assets = [registry.asset_references[name] for name in sorted(registry.asset_references)]
    names = [a.short_name + (" (Exemplar)" if a.exemplar else "") for a in assets]
    name_width = max(len("Asset"), *(len(n) for n in names))
    entity_width = max(len("Entity"), *(len(a.entity) for a in assets))
    type_width = max(len("Type"), *(len(a.asset_type) for a in assets))

    lines = [
        "Asset References:",
        f"  {'Asset':<{name_width}}  {'Entity':<{entity_width}}  {'Type':<{type_width}}  Path",
        "  " + "-" * (name_width + entity_width + type_width + 20),
    ]
    for name, asset in zip(names, assets):
        lines.append(
            f"  {name:<{name_width}}  {asset.entity:<{entity_width}}  {asset.asset_type:<{type_width}}  {asset.path}"
        )
    return lines


def render_commands(registry) -> list[str]:
    lines = ["Commands:"]
    for name in sorted(registry.commands):
        command = registry.commands[name]
        line = f"  {name}: {command.description}"
        if command.original_name:
            line += f" (originally '{command.original_name}')"
        lines.append(line)
    return lines


# ---------------------------------------------------------------------------
# CommandDispatcher
# ---------------------------------------------------------------------------

class CommandDispatcher:
    """Runs one command at a time against the registry found from *start_dir*.

    Parameters
    ----------
    start_dir : str, optional
        Directory the registry search starts from (and that ``-su`` without
        a path sets up).  Defaults to the working directory at call time.
    """

    def __init__(self, start_dir: str | None = None):
        self.start_dir = start_dir
        self._handlers = {
            CommandKind.LIST_ALL: self._list_all,
            CommandKind.LIST_PRINCIPLES: lambda store, _dir, _args: render_principles(store.registry),
            CommandKind.LIST_ENTITIES: lambda store, _dir, _args: render_entities(store.registry),
            CommandKind.LIST_ASSET_TYPES: lambda store, _dir, _args: render_asset_types(store.registry),
            CommandKind.LIST_ASSETS: lambda store, _dir, _args: render_assets(store.registry),
            CommandKind.LIST_COMMANDS: lambda store, _dir, _args: render_commands(store.registry),
            CommandKind.ADD_PRINCIPLE: self._add_principle,
            CommandKind.ADD_ENTITY: self._add_entity,
            CommandKind.ADD_ASSET_TYPE: self._add_asset_type,
            CommandKind.ADD_ASSET: self._add_asset,
            CommandKind.ADD_COMMAND: self._add_command,
            CommandKind.IMPORT_PRINCIPLES: self._import_principles,
            CommandKind.RENAME_ITEM: self._rename_item,
            CommandKind.RENAME_PRINCIPLE: self._rename(ItemKind.PRINCIPLE),
            CommandKind.RENAME_ENTITY: self._rename(ItemKind.ENTITY),
            CommandKind.RENAME_ASSET_TYPE: self._rename(ItemKind.ASSET_TYPE),
            CommandKind.RENAME_ASSET: self._rename(ItemKind.ASSET_REFERENCE),
            CommandKind.RENAME_COMMAND: self._rename_command,
            CommandKind.DELETE_ITEM: self._delete_item,
            CommandKind.DELETE_PRINCIPLE: self._delete(ItemKind.PRINCIPLE),
            CommandKind.DELETE_ENTITY: self._delete(ItemKind.ENTITY),
            CommandKind.DELETE_ASSET_TYPE: self._delete(ItemKind.ASSET_TYPE),
            CommandKind.DELETE_ASSET: self._delete(ItemKind.ASSET_REFERENCE),
            CommandKind.SHOW_REVIEWS: self._show_reviews,
            CommandKind.STORE_REVIEW: self._store_review,
            CommandKind.SET_EXEMPLAR: self._set_exemplar,
            CommandKind.SET_COMPLIANCE: self._set_compliance,
            CommandKind.REVIEW: lambda store, _dir, args: build_review_instructions(store, args[0], args[1:]),
            CommandKind.REFACTOR: lambda store, _dir, args: build_refactor_instructions(store, args[0], args[1:]),
            CommandKind.GLOBAL_REVIEW: lambda store, _dir, args: build_global_review_instructions(store, args),
            CommandKind.GLOBAL_REFACTOR: lambda store, _dir, args: build_global_refactor_instructions(store, args),
        }
        # Set by handlers that report a cascade; reset per command.
        self._affected: list[str] = []

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def process_command(self, raw: str) -> CommandResult:
        """Parse and run one command line.

        Raises
        ------
        VQLError
            Any parse, validation, or I/O failure.  Nothing is saved.
        """
        parsed = parse_command(raw)
        logger.debug("Parsed %r as %s %s", raw, parsed.kind.value, parsed.args)
        return self.dispatch(parsed)

    def dispatch(self, parsed: ParsedCommand) -> CommandResult:
        if parsed.kind is CommandKind.SETUP:
            return self._setup(parsed)
        if parsed.kind is CommandKind.CHECK:
            return self._check(parsed)

        registry_dir = find_registry_dir(self.start_dir)
        store = RegistryStore.load(registry_dir)

        self._affected = []
        lines = self._handlers[parsed.kind](store, registry_dir, parsed.args)
        result = CommandResult(command=parsed, lines=lines, affected=list(self._affected))

        if parsed.kind in _MUTATING:
            store.save(registry_dir)
            result.changed = True
            logger.info("%s succeeded; registry saved", parsed.kind.value)
        return result

    # ------------------------------------------------------------------
    # Setup and check (no prior registry needed / never saved)
    # ------------------------------------------------------------------

    def _setup(self, parsed: ParsedCommand) -> CommandResult:
        project_dir = prepare_setup_dir(parsed.args[0] if parsed.args else None, self.start_dir)
        registry_dir = registry_dir_for(project_dir)
        document = os.path.join(registry_dir, REGISTRY_FILE_NAME)

        if os.path.isfile(document):
            lines = [f"VQL directory already exists at {registry_dir}"]
            changed = False
        else:
            existed = os.path.isdir(registry_dir)
            RegistryStore().save(registry_dir)
            changed = True
            if existed:
                lines = [f"VQL directory already exists at {registry_dir}", "Created new VQL storage file"]
            else:
                lines = [f"VQL initialized successfully in: {registry_dir}"]
            logger.info("Set up registry in %s", registry_dir)
        return CommandResult(command=parsed, lines=lines, changed=changed)

    def _check(self, parsed: ParsedCommand) -> CommandResult:
        registry_dir = find_registry_dir(self.start_dir)
        result = ConsistencyChecker(registry_dir).check()
        return CommandResult(command=parsed, lines=result["human_message"].splitlines(), ok=result["passed"])

    # ------------------------------------------------------------------
    # Listings and queries
    # ------------------------------------------------------------------

    def _list_all(self, store, _registry_dir, _args):
        registry = store.registry
        lines = ["VQL Summary:"]
        for renderer in (render_principles, render_entities, render_asset_types, render_assets):
            lines.append("")
            lines.extend(renderer(registry))
        return lines

    def _show_reviews(self, store, _registry_dir, args):
        asset_name, principles = args[0], args[1:]
        asset = store.get_asset(asset_name)

        if len(principles) == 1:
            review = store.get_asset_review(asset_name, principles[0])
            if review is None:
                return [f"No review found for asset {asset_name} from {principles[0]} principle"]
            return [f"Review for asset {asset_name} from {principles[0]} principle:"] + _review_lines(review, "  ")

        lines = [
            f"Asset Information: {asset_name}",
            f"  Entity: {asset.entity}",
            f"  Type: {asset.asset_type}",
            f"  Path: {asset.path}",
            f"  Exemplar: {'Yes' if asset.exemplar else 'No'}",
            f"  Last modified: {asset.last_modified}",
            "",
        ]
        reviews = store.get_asset_reviews(asset_name)
        if principles:
            lines.append("  Reviews for selected principles:")
            selected = principles
        else:
            lines.append("  Reviews:")
            selected = sorted(reviews)
            if not selected:
                lines.append("    No reviews available")
        for principle in selected:
            review = reviews.get(principle)
            if review is None:
                lines.append(f"    {principle} Principle: No review")
                continue
            lines.append(f"    {principle} Principle:")
            lines.extend(_review_lines(review, "      "))
        return lines

    # ------------------------------------------------------------------
    # Adds
    # ------------------------------------------------------------------

    def _add_principle(self, store, _registry_dir, args):
        short_name, long_name = args[0], args[1]
        guidance = args[2] if len(args) > 2 else None
        store.add_principle(short_name, long_name, guidance)
        return [f"Added principle: {short_name} ({long_name})"]

    def _add_entity(self, store, _registry_dir, args):
        store.add_entity(args[0], args[1])
        return [f"Added entity: {args[0]} ({args[1]})"]

    def _add_asset_type(self, store, _registry_dir, args):
        store.add_asset_type(args[0], args[1])
        return [f"Added asset type: {args[0]} ({args[1]})"]

    def _add_asset(self, store, registry_dir, args):
        short_name, entity, asset_type, path = args
        resolve_asset_path(registry_dir, path)
        store.add_asset_reference(short_name, entity, asset_type, path)
        return [f"Added asset reference: {short_name} (Entity: {entity}, Type: {asset_type}, Path: {path})"]

    def _add_command(self, store, _registry_dir, args):
        command = store.add_command(args[0], args[1])
        return [f"Added command: {command.name}"]

    def _import_principles(self, store, _registry_dir, args):
        items = read_principle_file(args[0])
        names = store.import_principles(items)
        lines = [f"Loaded {len(names)} principles from {args[0]}"]
        if names:
            lines.append(f"  {', '.join(names)}")
        return lines

    # ------------------------------------------------------------------
    # Renames and deletes
    # ------------------------------------------------------------------

    def _rename(self, kind: ItemKind):
        renamers = {
            ItemKind.PRINCIPLE: "rename_principle",
            ItemKind.ENTITY: "rename_entity",
            ItemKind.ASSET_TYPE: "rename_asset_type",
            ItemKind.ASSET_REFERENCE: "rename_asset_reference",
        }

        def handler(store, _registry_dir, args):
            old, new = args
            affected = getattr(store, renamers[kind])(old, new)
            self._affected = affected
            return [f"Renamed {kind.label} '{old}' to '{new}'"] + _affected_line("Updated", affected)

        return handler

    def _rename_item(self, store, _registry_dir, args):
        old, new = args
        kind, affected = store.rename_item(old, new)
        self._affected = affected
        return [f"Renamed {kind.label} '{old}' to '{new}'"] + _affected_line("Updated", affected)

    def _rename_command(self, store, _registry_dir, args):
        command = store.rename_command(args[0], args[1])
        line = f"Renamed command '{args[0].lstrip(':')}' to '{command.name}'"
        if command.original_name:
            line += f" (originally '{command.original_name}')"
        return [line]

    def _delete_lines(self, kind: ItemKind, name: str, outcome) -> list[str]:
        if kind is ItemKind.ASSET_REFERENCE:
            return [f"Deleted asset reference '{name}' ({outcome} review(s) removed)"]
        self._affected = outcome
        return [f"Deleted {kind.label} '{name}'"] + _affected_line("Removed reviews from", outcome)

    def _delete(self, kind: ItemKind):
        deleters = {
            ItemKind.PRINCIPLE: "delete_principle",
            ItemKind.ENTITY: "delete_entity",
            ItemKind.ASSET_TYPE: "delete_asset_type",
            ItemKind.ASSET_REFERENCE: "delete_asset_reference",
        }

        def handler(store, _registry_dir, args):
            outcome = getattr(store, deleters[kind])(args[0])
            return self._delete_lines(kind, args[0], outcome)

        return handler

    def _delete_item(self, store, _registry_dir, args):
        kind, outcome = store.delete_item(args[0])
        return self._delete_lines(kind, args[0], outcome)

    # ------------------------------------------------------------------
    # Reviews and asset state
    # ------------------------------------------------------------------

    def _store_review(self, store, _registry_dir, args):
        asset_name, principle, text = args
        rating = extract_rating_from_text(text)
        store.store_asset_review(asset_name, principle, rating, text)
        line = f"Stored review for asset {asset_name} from {principle} principle"
        if rating:
            line += f" with {rating} compliance rating"
        return [line]

    def _set_exemplar(self, store, _registry_dir, args):
        asset_name, flag = args
        exemplar = parse_exemplar_flag(flag)
        store.set_asset_exemplar(asset_name, exemplar)
        return [f"Set asset {asset_name} exemplar status to {'true' if exemplar else 'false'}"]

    def _set_compliance(self, store, _registry_dir, args):
        asset_name, principle, rating = args
        review = store.set_asset_compliance(asset_name, principle, rating)
        return [f"Set {principle} principle compliance rating for asset {asset_name} to {review.rating}"]
