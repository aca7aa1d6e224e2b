"""
vql/grammar.py -- Command grammar: one input line to a typed command.

Two equivalent surface syntaxes are accepted:

    Functional (colon prefix)   :uc.st(a, "Clear layering. High compliance")
    Flag (dash prefix)          -st uc a "Clear layering. High compliance"

plus a bare asset query (``uc?``, ``uc ? (a, s)``) that needs no prefix.

The parser only classifies and splits; it never looks at the registry.
Checking that names exist is the store's job.

Functional rules are tried in a fixed order; the first match wins:

     1. rn(old, new), dl(name)           generic rename / delete
     2. ls, ls()                         list everything
     3. pr, er, at, ar, cmd [()]         list one collection
     4. pr|er|at|ar|cmd.add(...), cmd.rn(old, new)
     5. name ? (p, ...), name ?          review queries
     6. -pr.get("file"), -ar.add(...)
     7. name.st|rv|rf|se|sc(...)         asset methods
     8. -rv(...), -rf(...), -su(...), -ck()
     9. -pr, -er, -at, -ar, -cmd         dash listing short forms
    10. anything else starting with '-' goes to the flag parser, anything
        else to the bare query parser

Argument lists are matched greedily up to the final ``)`` so free text may
itself contain parentheses.

Usage:
    from vql.grammar import CommandKind, parse_command

    parsed = parse_command(':uc.sc(a, h)')
    assert parsed.kind is CommandKind.SET_COMPLIANCE
    assert parsed.args == ["uc", "a", "h"]
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from vql.errors import InvalidArgumentError, UnknownCommandError, UnrecognizedFormatError
from vql.utils import strip_quotes


class CommandKind(str, Enum):
    LIST_ALL = "list_all"
    LIST_PRINCIPLES = "list_principles"
    LIST_ENTITIES = "list_entities"
    LIST_ASSET_TYPES = "list_asset_types"
    LIST_ASSETS = "list_assets"
    LIST_COMMANDS = "list_commands"

    ADD_PRINCIPLE = "add_principle"
    ADD_ENTITY = "add_entity"
    ADD_ASSET_TYPE = "add_asset_type"
    ADD_ASSET = "add_asset"
    ADD_COMMAND = "add_command"
    IMPORT_PRINCIPLES = "import_principles"

    RENAME_ITEM = "rename_item"
    RENAME_PRINCIPLE = "rename_principle"
    RENAME_ENTITY = "rename_entity"
    RENAME_ASSET_TYPE = "rename_asset_type"
    RENAME_ASSET = "rename_asset"
    RENAME_COMMAND = "rename_command"

    DELETE_ITEM = "delete_item"
    DELETE_PRINCIPLE = "delete_principle"
    DELETE_ENTITY = "delete_entity"
    DELETE_ASSET_TYPE = "delete_asset_type"
    DELETE_ASSET = "delete_asset"

    SHOW_REVIEWS = "show_reviews"
    STORE_REVIEW = "store_review"
    SET_EXEMPLAR = "set_exemplar"
    SET_COMPLIANCE = "set_compliance"

    REVIEW = "review"
    REFACTOR = "refactor"
    GLOBAL_REVIEW = "global_review"
    GLOBAL_REFACTOR = "global_refactor"

    SETUP = "setup"
    CHECK = "check"


@dataclass
class ParsedCommand:
    """A classified command.

    ``args`` are positional and already trimmed; free-text arguments have
    their surrounding double quotes removed.  For ``SHOW_REVIEWS`` the first
    argument is the asset and any further ones are principle names.
    """

    kind: CommandKind
    args: list[str] = field(default_factory=list)
    raw: str = ""


# ---------------------------------------------------------------------------
# Shared tables
# ---------------------------------------------------------------------------

_LIST_KINDS = {
    "pr": CommandKind.LIST_PRINCIPLES,
    "er": CommandKind.LIST_ENTITIES,
    "at": CommandKind.LIST_ASSET_TYPES,
    "ar": CommandKind.LIST_ASSETS,
    "cmd": CommandKind.LIST_COMMANDS,
}

_SCOPE_LABELS = {
    "pr": "principle",
    "er": "entity",
    "at": "asset type",
    "ar": "asset reference",
    "cmd": "command",
}

_SCOPED_RENAMES = {
    "pr": CommandKind.RENAME_PRINCIPLE,
    "er": CommandKind.RENAME_ENTITY,
    "at": CommandKind.RENAME_ASSET_TYPE,
    "ar": CommandKind.RENAME_ASSET,
    "cmd": CommandKind.RENAME_COMMAND,
}

_SCOPED_DELETES = {
    "pr": CommandKind.DELETE_PRINCIPLE,
    "er": CommandKind.DELETE_ENTITY,
    "at": CommandKind.DELETE_ASSET_TYPE,
    "ar": CommandKind.DELETE_ASSET,
}

_ASSET_NAME = r"[A-Za-z0-9_]+"

_RN_RE = re.compile(r"^rn\((.*)\)$", re.DOTALL)
_DL_RE = re.compile(r"^dl\((.*)\)$", re.DOTALL)
_LIST_RE = re.compile(r"^(pr|er|at|ar|cmd)(?:\(\))?$")
_SCOPED_ADD_RE = re.compile(r"^(pr|er|at|ar|cmd)\.add\((.*)\)$", re.DOTALL)
_CMD_RN_RE = re.compile(r"^cmd\.rn\((.*)\)$", re.DOTALL)
_QUESTION_LIST_RE = re.compile(rf"^({_ASSET_NAME})\s*\?\s*\((.*)\)$", re.DOTALL)
_QUESTION_RE = re.compile(rf"^({_ASSET_NAME})\s*\?$")
_PR_GET_RE = re.compile(r"^-pr\.get\((.*)\)$", re.DOTALL)
_AR_ADD_RE = re.compile(r"^-ar\.add\((.*)\)$", re.DOTALL)
_ASSET_METHOD_RE = re.compile(rf"^({_ASSET_NAME})\.(st|rv|rf|se|sc)\((.*)\)$", re.DOTALL)
_GLOBAL_RE = re.compile(r"^-(rv|rf|su|ck)\((.*)\)$", re.DOTALL)
_DASH_LIST_RE = re.compile(r"^-(pr|er|at|ar|cmd)$")

_LIST_SEPARATORS = re.compile(r"[,\s]+")


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------

def _split_args(text: str, count: int, usage: str, *, optional: int = 0) -> list[str]:
    """Split a comma-separated argument list into *count* parts.

    The last part absorbs any further commas, so only use this where the
    trailing argument is free text.  Up to *optional* trailing parts may be
    missing.
    """
    parts = [part.strip() for part in text.split(",", count - 1)]
    if parts == [""]:
        parts = []
    if not count - optional <= len(parts) <= count or any(not part for part in parts):
        raise InvalidArgumentError(f"Wrong number of arguments. Usage: {usage}")
    return parts


def _exact_args(text: str, count: int, usage: str) -> list[str]:
    """Split a comma-separated list of names that must have exactly *count* parts."""
    parts = [part.strip() for part in text.split(",")]
    if parts == [""]:
        parts = []
    if len(parts) != count or any(not part for part in parts):
        raise InvalidArgumentError(f"Wrong number of arguments. Usage: {usage}")
    return parts


def split_name_list(text: str) -> list[str]:
    """Split a principle or asset list on commas and/or whitespace."""
    return [strip_quotes(item) for item in _LIST_SEPARATORS.split(text.strip()) if strip_quotes(item)]


def _require_text(text: str, usage: str) -> str:
    if not text:
        raise InvalidArgumentError(f"Review text must not be empty. Usage: {usage}")
    return text


def _store_args(asset: str, text: str) -> list[str]:
    usage = f':{asset}.st(principle, "review text")'
    parts = [part.strip() for part in text.split(",")]
    if len(parts) < 2 or not parts[0]:
        raise InvalidArgumentError(f"Wrong number of arguments. Usage: {usage}")
    return [asset, parts[0], _require_text(strip_quotes(", ".join(parts[1:])), usage)]


def _require_tokens(tokens: list[str], count: int, usage: str, *, exact: bool = False) -> None:
    if len(tokens) < count:
        raise InvalidArgumentError(f"Not enough arguments. Usage: {usage}")
    if exact and len(tokens) > count:
        raise InvalidArgumentError(f"Too many arguments. Usage: {usage}")


def _rest(tokens: list[str], start: int) -> str:
    return strip_quotes(" ".join(tokens[start:]))


# ---------------------------------------------------------------------------
# Functional syntax
# ---------------------------------------------------------------------------

def _parse_functional(body: str, raw: str) -> ParsedCommand:
    match = _RN_RE.match(body)
    if match:
        old, new = _exact_args(match.group(1), 2, ":rn(old, new)")
        return ParsedCommand(CommandKind.RENAME_ITEM, [old, new], raw)

    match = _DL_RE.match(body)
    if match:
        (name,) = _exact_args(match.group(1), 1, ":dl(name)")
        return ParsedCommand(CommandKind.DELETE_ITEM, [name], raw)

    if body in ("ls", "ls()"):
        return ParsedCommand(CommandKind.LIST_ALL, [], raw)

    match = _LIST_RE.match(body)
    if match:
        return ParsedCommand(_LIST_KINDS[match.group(1)], [], raw)

    match = _SCOPED_ADD_RE.match(body)
    if match:
        return _parse_scoped_add(match.group(1), match.group(2), raw)

    match = _CMD_RN_RE.match(body)
    if match:
        old, new = _exact_args(match.group(1), 2, ":cmd.rn(old, new)")
        return ParsedCommand(CommandKind.RENAME_COMMAND, [old, new], raw)

    parsed = _parse_question(body, raw)
    if parsed is not None:
        return parsed

    match = _PR_GET_RE.match(body)
    if match:
        path = strip_quotes(match.group(1))
        if not path:
            raise InvalidArgumentError('Missing file path. Usage: :-pr.get("path/to/principles.md")')
        return ParsedCommand(CommandKind.IMPORT_PRINCIPLES, [path], raw)

    match = _AR_ADD_RE.match(body)
    if match:
        args = _split_args(match.group(1), 4, ':-ar.add(short, entity, type, "path")')
        args[3] = strip_quotes(args[3])
        return ParsedCommand(CommandKind.ADD_ASSET, args, raw)

    match = _ASSET_METHOD_RE.match(body)
    if match:
        return _parse_asset_method(match.group(1), match.group(2), match.group(3), raw)

    match = _GLOBAL_RE.match(body)
    if match:
        return _parse_global(match.group(1), match.group(2), raw)

    match = _DASH_LIST_RE.match(body)
    if match:
        return ParsedCommand(_LIST_KINDS[match.group(1)], [], raw)

    if body.startswith("-"):
        return _parse_flags(body, raw)
    parsed = _parse_question(body, raw)
    if parsed is not None:
        return parsed
    raise UnknownCommandError(raw)


def _parse_scoped_add(scope: str, text: str, raw: str) -> ParsedCommand:
    if scope == "pr":
        args = _split_args(text, 3, ':pr.add(short, long[, "guidance"])', optional=1)
        if len(args) == 3:
            args[2] = strip_quotes(args[2])
        return ParsedCommand(CommandKind.ADD_PRINCIPLE, args, raw)
    if scope == "er":
        args = _split_args(text, 2, ":er.add(short, description)")
        return ParsedCommand(CommandKind.ADD_ENTITY, [args[0], strip_quotes(args[1])], raw)
    if scope == "at":
        args = _split_args(text, 2, ":at.add(short, description)")
        return ParsedCommand(CommandKind.ADD_ASSET_TYPE, [args[0], strip_quotes(args[1])], raw)
    if scope == "ar":
        args = _split_args(text, 4, ':ar.add(short, entity, type, "path")')
        args[3] = strip_quotes(args[3])
        return ParsedCommand(CommandKind.ADD_ASSET, args, raw)
    args = _split_args(text, 2, ":cmd.add(name, description)")
    return ParsedCommand(CommandKind.ADD_COMMAND, [args[0], strip_quotes(args[1])], raw)


def _parse_question(body: str, raw: str) -> ParsedCommand | None:
    match = _QUESTION_LIST_RE.match(body)
    if match:
        principles = [p.strip() for p in match.group(2).split(",") if p.strip()]
        return ParsedCommand(CommandKind.SHOW_REVIEWS, [match.group(1), *principles], raw)
    match = _QUESTION_RE.match(body)
    if match:
        return ParsedCommand(CommandKind.SHOW_REVIEWS, [match.group(1)], raw)
    return None


def _parse_asset_method(asset: str, method: str, text: str, raw: str) -> ParsedCommand:
    if method == "st":
        return ParsedCommand(CommandKind.STORE_REVIEW, _store_args(asset, text), raw)
    if method == "se":
        (flag,) = _exact_args(text, 1, f":{asset}.se(t|f)")
        return ParsedCommand(CommandKind.SET_EXEMPLAR, [asset, flag], raw)
    if method == "sc":
        principle, rating = _exact_args(text, 2, f":{asset}.sc(principle, H|M|L)")
        return ParsedCommand(CommandKind.SET_COMPLIANCE, [asset, principle, rating], raw)
    kind = CommandKind.REVIEW if method == "rv" else CommandKind.REFACTOR
    return ParsedCommand(kind, [asset, *split_name_list(text)], raw)


def _parse_global(method: str, text: str, raw: str) -> ParsedCommand:
    if method == "rv":
        return ParsedCommand(CommandKind.GLOBAL_REVIEW, split_name_list(text), raw)
    if method == "rf":
        return ParsedCommand(CommandKind.GLOBAL_REFACTOR, split_name_list(text), raw)
    if method == "su":
        path = strip_quotes(text)
        return ParsedCommand(CommandKind.SETUP, [path] if path else [], raw)
    if text.strip():
        raise InvalidArgumentError("The check command takes no arguments. Usage: :-ck()")
    return ParsedCommand(CommandKind.CHECK, [], raw)


# ---------------------------------------------------------------------------
# Flag syntax
# ---------------------------------------------------------------------------

def _parse_flags(text: str, raw: str) -> ParsedCommand:
    tokens = text.split()
    if not tokens:
        raise UnrecognizedFormatError(raw)
    verb = tokens[0].lstrip("-")

    if verb == "rn":
        _require_tokens(tokens, 3, "-rn old_name new_name", exact=True)
        return ParsedCommand(CommandKind.RENAME_ITEM, [tokens[1], tokens[2]], raw)
    if verb == "dl":
        _require_tokens(tokens, 2, "-dl name", exact=True)
        return ParsedCommand(CommandKind.DELETE_ITEM, [tokens[1]], raw)
    if verb in _LIST_KINDS:
        return _parse_scoped_flags(verb, tokens, raw)
    if verb == "st":
        usage = '-st asset principle "review text"'
        _require_tokens(tokens, 4, usage)
        text = _require_text(_rest(tokens, 3), usage)
        return ParsedCommand(CommandKind.STORE_REVIEW, [tokens[1], tokens[2], text], raw)
    if verb == "se":
        _require_tokens(tokens, 3, "-se asset t|f", exact=True)
        return ParsedCommand(CommandKind.SET_EXEMPLAR, [tokens[1], tokens[2]], raw)
    if verb == "sc":
        _require_tokens(tokens, 4, "-sc asset principle H|M|L", exact=True)
        return ParsedCommand(CommandKind.SET_COMPLIANCE, tokens[1:4], raw)
    if verb == "su":
        path = _rest(tokens, 1)
        return ParsedCommand(CommandKind.SETUP, [path] if path else [], raw)
    if verb == "ck":
        return ParsedCommand(CommandKind.CHECK, [], raw)
    raise UnknownCommandError(raw)


def _parse_scoped_flags(scope: str, tokens: list[str], raw: str) -> ParsedCommand:
    if len(tokens) == 1:
        return ParsedCommand(_LIST_KINDS[scope], [], raw)
    if not tokens[1].startswith("-"):
        raise InvalidArgumentError(
            "Invalid subcommand format. Subcommands must start with - (e.g., -add)"
        )
    sub = tokens[1].lstrip("-")
    label = _SCOPE_LABELS[scope]

    if sub == "add":
        return _parse_flag_add(scope, tokens, raw)
    if sub == "rn":
        _require_tokens(tokens, 4, f"-{scope} -rn old_name new_name", exact=True)
        return ParsedCommand(_SCOPED_RENAMES[scope], [tokens[2], tokens[3]], raw)
    if sub == "dl" and scope in _SCOPED_DELETES:
        _require_tokens(tokens, 3, f"-{scope} -dl name", exact=True)
        return ParsedCommand(_SCOPED_DELETES[scope], [tokens[2]], raw)
    if sub == "get" and scope == "pr":
        _require_tokens(tokens, 3, '-pr -get "path/to/principles.md"')
        return ParsedCommand(CommandKind.IMPORT_PRINCIPLES, [_rest(tokens, 2)], raw)
    raise InvalidArgumentError(f"Unknown {label} subcommand: {tokens[1]}")


def _parse_flag_add(scope: str, tokens: list[str], raw: str) -> ParsedCommand:
    if scope == "pr":
        _require_tokens(tokens, 4, '-pr -add short long_name ["guidance"]')
        args = [tokens[2], tokens[3]]
        if len(tokens) > 4:
            args.append(_rest(tokens, 4))
        return ParsedCommand(CommandKind.ADD_PRINCIPLE, args, raw)
    if scope == "er":
        _require_tokens(tokens, 3, "-er -add short [description]")
        description = _rest(tokens, 3) if len(tokens) > 3 else tokens[2]
        return ParsedCommand(CommandKind.ADD_ENTITY, [tokens[2], description], raw)
    if scope == "at":
        _require_tokens(tokens, 4, "-at -add short description")
        return ParsedCommand(CommandKind.ADD_ASSET_TYPE, [tokens[2], _rest(tokens, 3)], raw)
    if scope == "ar":
        _require_tokens(tokens, 6, "-ar -add short entity type path")
        return ParsedCommand(CommandKind.ADD_ASSET, [*tokens[2:5], _rest(tokens, 5)], raw)
    _require_tokens(tokens, 3, "-cmd -add name [description]")
    return ParsedCommand(CommandKind.ADD_COMMAND, [tokens[2], _rest(tokens, 3)], raw)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def parse_command(raw: str) -> ParsedCommand:
    """Classify one input line.

    Raises
    ------
    UnrecognizedFormatError
        If an unprefixed input is not an asset query.
    UnknownCommandError
        If a prefixed input matches no rule.
    InvalidArgumentError
        If a recognised command has the wrong number of arguments or a
        malformed subcommand.
    """
    text = raw.strip()
    if text.startswith(":"):
        return _parse_functional(text.lstrip(":").strip(), raw)
    if text.startswith("-"):
        return _parse_flags(text, raw)
    parsed = _parse_question(text, raw)
    if parsed is not None:
        return parsed
    raise UnrecognizedFormatError(raw)
