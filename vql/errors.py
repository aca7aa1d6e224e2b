"""
vql/errors.py -- Error taxonomy shared by the store, parser, and dispatcher.

Every class carries the context needed to render a self-correcting message
(the valid alternatives, the blocking assets, the raw input).  Only the
dispatcher turns these into user-facing text; see
``vql.dispatcher.render_error``.
"""

from __future__ import annotations


class VQLError(Exception):
    """Base class for every failure raised by the vql package."""


class NotFoundError(VQLError, LookupError):
    """A principle, entity, asset type, asset reference or command does not exist."""

    def __init__(self, kind: str, name: str, available: list[str] | None = None):
        self.kind = kind
        self.name = name
        self.available = sorted(available or [])
        message = f"{kind} '{name}' not found"
        if available is not None:
            listing = ", ".join(self.available) if self.available else "(none defined)"
            message += f". Available: {listing}"
        super().__init__(message)


class NameCollisionError(VQLError, ValueError):
    """A short name is already taken in the shared namespace."""

    def __init__(self, name: str, existing_kind: str):
        self.name = name
        self.existing_kind = existing_kind
        super().__init__(f"Short name '{name}' is already used by {existing_kind} '{name}'")


class InUseError(VQLError, ValueError):
    """A delete was refused because asset references still point at the item."""

    def __init__(self, kind: str, name: str, blocking_assets: list[str]):
        self.kind = kind
        self.name = name
        self.blocking_assets = sorted(blocking_assets)
        super().__init__(
            f"Cannot delete {kind} '{name}': referenced by "
            f"{len(self.blocking_assets)} asset(s): {', '.join(self.blocking_assets)}"
        )


class InvalidArgumentError(VQLError, ValueError):
    """Malformed rating, exemplar flag, argument count, or short name."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ParseError(VQLError, ValueError):
    """The grammar could not classify the input."""

    def __init__(self, raw: str, message: str):
        self.raw = raw
        super().__init__(message)


class UnrecognizedFormatError(ParseError):
    def __init__(self, raw: str):
        super().__init__(
            raw,
            f"Unknown command format: {raw}. "
            "Commands must start with - (CLI) or : (LLM), or be an asset query like 'uc?'.",
        )


class UnknownCommandError(ParseError):
    def __init__(self, raw: str):
        super().__init__(raw, f"Unknown command: {raw}")


class RegistryIOError(VQLError, OSError):
    """Filesystem read, write, or create failure."""

    def __init__(self, operation: str, path: str, detail: str = ""):
        self.operation = operation
        self.path = str(path)
        self.detail = detail
        message = f"Failed to {operation}: {self.path}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)
