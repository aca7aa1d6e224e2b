"""
vql/models/base.py -- Pydantic v2 records for the registry document.

The whole registry is one ``Registry`` document.  Every collection is a
mapping from short name to record; the map key and the record's
``short_name`` are kept in step by the store.

Documents written by earlier releases carried per-aspect legacy fields on
asset references (``arch_rating``, ``sec_analysis``, ...).  Unknown keys are
ignored on load, so those documents parse and the legacy fields disappear on
the next save.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from vql.config import BUILTIN_COMMANDS, DEFAULT_PRINCIPLES, VERSION
from vql.utils import now_timestamp

Rating = Literal["H", "M", "L"]


class _Record(BaseModel):
    """Common config for every persisted record."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)


class CommandConfig(_Record):
    """Metadata about a command verb."""

    name: str
    description: str = ""
    last_modified: str = Field(default_factory=now_timestamp)
    original_name: Optional[str] = None
    built_in: bool = False


class Principle(_Record):
    short_name: str
    long_name: str
    guidance: Optional[str] = None
    last_modified: str = Field(default_factory=now_timestamp)


class Entity(_Record):
    short_name: str
    description: str = ""
    last_modified: str = Field(default_factory=now_timestamp)


class AssetType(_Record):
    short_name: str
    description: str = ""
    last_modified: str = Field(default_factory=now_timestamp)


class Review(_Record):
    """One principle's review of one asset."""

    rating: Optional[Rating] = None
    analysis: Optional[str] = None
    last_modified: str = Field(default_factory=now_timestamp)


class AssetReference(_Record):
    """A tracked source file plus its metadata and reviews."""

    short_name: str
    entity: str
    asset_type: str
    path: str
    exemplar: bool = False
    last_modified: str = Field(default_factory=now_timestamp)
    principle_reviews: dict[str, Review] = Field(default_factory=dict)


class Registry(_Record):
    """The persisted registry document."""

    version: str = VERSION
    created: str = Field(default_factory=now_timestamp)
    last_modified: str = Field(default_factory=now_timestamp)
    commands: dict[str, CommandConfig] = Field(default_factory=dict)
    asset_types: dict[str, AssetType] = Field(default_factory=dict)
    entities: dict[str, Entity] = Field(default_factory=dict)
    principles: dict[str, Principle] = Field(default_factory=dict)
    asset_references: dict[str, AssetReference] = Field(default_factory=dict)

    @classmethod
    def with_defaults(cls) -> Registry:
        """Return a fresh registry with the built-in commands and principles."""
        now = now_timestamp()
        commands = {
            name: CommandConfig(name=name, description=desc, last_modified=now, built_in=True)
            for name, desc in BUILTIN_COMMANDS.items()
        }
        principles = {
            short: Principle(short_name=short, long_name=long_name, guidance=guidance, last_modified=now)
            for short, (long_name, guidance) in DEFAULT_PRINCIPLES.items()
        }
        return cls(created=now, last_modified=now, commands=commands, principles=principles)

    def to_document(self) -> dict:
        """Return the JSON-ready document for this registry."""
        return self.model_dump(mode="json")
