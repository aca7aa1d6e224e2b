"""
vql/registry_store.py -- Registry mutations, cascades, and persistence.

The RegistryStore is the sole owner of the in-memory registry.  Every other
part of the program (the dispatcher, the instruction builders, the bulk
principle importer) goes through it rather than editing the document.

All short names for principles, entities, asset types, and asset references
share one namespace.  Renames cascade into asset references; deleting a
principle removes its reviews; deleting an entity or asset type that is
still referenced is refused.

Mutations never touch the disk.  Persistence is the explicit ``save()``
call, which the dispatcher makes after a successful mutation.  Every
mutation validates first and only then changes state, so a raised error
always leaves the registry exactly as it was.

Usage:
    from vql.registry_store import RegistryStore

    store = RegistryStore.load("/work/project/VQL")
    store.add_entity("usr", "User")
    store.add_asset_type("c", "Controller")
    store.add_asset_reference("uc", "usr", "c", "src/user_controller.js")
    affected = store.rename_entity("usr", "user")
    store.save("/work/project/VQL")
"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum

from pydantic import ValidationError

from vql.config import REGISTRY_FILE_NAME
from vql.errors import (
    InUseError,
    NameCollisionError,
    NotFoundError,
    RegistryIOError,
)
from vql.models.base import (
    AssetReference,
    AssetType,
    CommandConfig,
    Entity,
    Principle,
    Registry,
    Review,
)
from vql.models.validators import (
    normalize_rating,
    require_non_empty,
    require_single_char,
)
from vql.utils import now_timestamp, read_json, safe_write_json

logger = logging.getLogger(__name__)


class ItemKind(str, Enum):
    """The four kinds that share the short-name namespace.

    Declaration order is the lookup priority used by ``find_item_type``.
    """

    PRINCIPLE = "principle"
    ENTITY = "entity"
    ASSET_TYPE = "asset_type"
    ASSET_REFERENCE = "asset_reference"

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]


_KIND_LABELS = {
    ItemKind.PRINCIPLE: "principle",
    ItemKind.ENTITY: "entity",
    ItemKind.ASSET_TYPE: "asset type",
    ItemKind.ASSET_REFERENCE: "asset",
}

_COLLECTION_FIELDS = {
    ItemKind.PRINCIPLE: "principles",
    ItemKind.ENTITY: "entities",
    ItemKind.ASSET_TYPE: "asset_types",
    ItemKind.ASSET_REFERENCE: "asset_references",
}


def document_path(registry_dir) -> str:
    """Return the path of the registry document inside *registry_dir*."""
    return os.path.join(str(registry_dir), REGISTRY_FILE_NAME)


class RegistryStore:
    """Owns one ``Registry`` and implements every operation on it.

    Parameters
    ----------
    registry : Registry, optional
        The document to operate on.  A fresh default registry (built-in
        commands and principles) is used when omitted.
    """

    def __init__(self, registry: Registry | None = None):
        self.registry = registry if registry is not None else Registry.with_defaults()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, registry_dir) -> RegistryStore:
        """Load the registry document from *registry_dir*.

        A missing document yields a fresh default registry (nothing is
        written).  A document that exists but cannot be read or parsed
        raises ``RegistryIOError``; it is never silently replaced.
        """
        path = document_path(registry_dir)
        if not os.path.exists(path):
            logger.info("No registry document at %s; starting from defaults", path)
            return cls()

        try:
            data = read_json(path)
        except json.JSONDecodeError as exc:
            raise RegistryIOError("parse registry document", path, str(exc)) from exc
        except OSError as exc:
            raise RegistryIOError("read registry document", path, str(exc)) from exc

        try:
            registry = Registry.model_validate(data)
        except ValidationError as exc:
            raise RegistryIOError(
                "parse registry document", path, f"{exc.error_count()} invalid field(s)"
            ) from exc

        logger.debug(
            "Loaded registry from %s (%d principles, %d entities, %d asset types, %d assets)",
            path,
            len(registry.principles),
            len(registry.entities),
            len(registry.asset_types),
            len(registry.asset_references),
        )
        return cls(registry)

    def save(self, registry_dir) -> str:
        """Atomically write the registry document into *registry_dir*.

        Returns the document path.
        """
        path = document_path(registry_dir)
        try:
            safe_write_json(path, self.registry.to_document())
        except OSError as exc:
            raise RegistryIOError("write registry document", path, str(exc)) from exc
        logger.info("Saved registry to %s", path)
        return path

    # ------------------------------------------------------------------
    # Namespace helpers
    # ------------------------------------------------------------------

    def collection(self, kind: ItemKind) -> dict:
        """Return the live mapping that holds records of *kind*."""
        return getattr(self.registry, _COLLECTION_FIELDS[kind])

    def find_item_type(self, name: str) -> ItemKind | None:
        """Return which namespace *name* belongs to, or ``None``.

        Checked in fixed priority order: principle, entity, asset type,
        asset reference.
        """
        for kind in ItemKind:
            if name in self.collection(kind):
                return kind
        return None

    def all_names(self) -> list[str]:
        """Return every short name in the shared namespace, sorted."""
        names = set()
        for kind in ItemKind:
            names.update(self.collection(kind))
        return sorted(names)

    def _require(self, kind: ItemKind, name: str):
        records = self.collection(kind)
        if name not in records:
            raise NotFoundError(kind.label, name, list(records))
        return records[name]

    def _require_free_for(self, name: str, kind: ItemKind) -> None:
        """Raise if *name* is used by any kind other than *kind*.

        Same-kind re-use is allowed: adds are add-or-update.
        """
        existing = self.find_item_type(name)
        if existing is not None and existing is not kind:
            raise NameCollisionError(name, existing.label)

    def _require_unused(self, name: str) -> None:
        existing = self.find_item_type(name)
        if existing is not None:
            raise NameCollisionError(name, existing.label)

    def _touch(self, *records) -> str:
        now = now_timestamp()
        for record in records:
            record.last_modified = now
        self.registry.last_modified = now
        return now

    def affected_by(self, kind: ItemKind, name: str) -> list[str]:
        """Return the short names of assets that reference *name* as *kind*."""
        assets = self.registry.asset_references.values()
        if kind is ItemKind.PRINCIPLE:
            hits = [a.short_name for a in assets if name in a.principle_reviews]
        elif kind is ItemKind.ENTITY:
            hits = [a.short_name for a in assets if a.entity == name]
        elif kind is ItemKind.ASSET_TYPE:
            hits = [a.short_name for a in assets if a.asset_type == name]
        else:
            hits = []
        return sorted(hits)

    def get_asset(self, name: str) -> AssetReference:
        return self._require(ItemKind.ASSET_REFERENCE, name)

    # ------------------------------------------------------------------
    # Add (add-or-update within a kind)
    # ------------------------------------------------------------------

    def add_principle(self, short_name: str, long_name: str, guidance: str | None = None) -> Principle:
        require_single_char(short_name, "Principle")
        self._require_free_for(short_name, ItemKind.PRINCIPLE)

        principle = Principle(short_name=short_name, long_name=long_name, guidance=guidance)
        self.registry.principles[short_name] = principle
        self._touch()
        logger.info("Added principle %s (%s)", short_name, long_name)
        return principle

    def add_entity(self, short_name: str, description: str) -> Entity:
        require_non_empty(short_name, "Entity short name")
        self._require_free_for(short_name, ItemKind.ENTITY)

        entity = Entity(short_name=short_name, description=description)
        self.registry.entities[short_name] = entity
        self._touch()
        logger.info("Added entity %s (%s)", short_name, description)
        return entity

    def add_asset_type(self, short_name: str, description: str) -> AssetType:
        require_single_char(short_name, "Asset type")
        self._require_free_for(short_name, ItemKind.ASSET_TYPE)

        asset_type = AssetType(short_name=short_name, description=description)
        self.registry.asset_types[short_name] = asset_type
        self._touch()
        logger.info("Added asset type %s (%s)", short_name, description)
        return asset_type

    def add_asset_reference(self, short_name: str, entity: str, asset_type: str, path: str) -> AssetReference:
        """Register an asset.

        The path is stored as given; checking that it exists on disk is the
        caller's job (the store does no I/O).
        """
        require_non_empty(short_name, "Asset short name")
        self._require_free_for(short_name, ItemKind.ASSET_REFERENCE)
        self._require(ItemKind.ENTITY, entity)
        self._require(ItemKind.ASSET_TYPE, asset_type)

        asset = AssetReference(short_name=short_name, entity=entity, asset_type=asset_type, path=path)
        self.registry.asset_references[short_name] = asset
        self._touch()
        logger.info("Added asset %s (entity=%s, type=%s, path=%s)", short_name, entity, asset_type, path)
        return asset

    def import_principles(self, items) -> list[str]:
        """Add or update a batch of ``(short_name, long_name, guidance)`` items.

        Every item is validated before any is written.  Returns the short
        names in input order.
        """
        items = list(items)
        for short_name, _long_name, _guidance in items:
            require_single_char(short_name, "Principle")
            self._require_free_for(short_name, ItemKind.PRINCIPLE)

        now = now_timestamp()
        for short_name, long_name, guidance in items:
            self.registry.principles[short_name] = Principle(
                short_name=short_name, long_name=long_name, guidance=guidance, last_modified=now,
            )
        if items:
            self.registry.last_modified = now
        logger.info("Imported %d principle(s)", len(items))
        return [item[0] for item in items]

    # ------------------------------------------------------------------
    # Rename (cascading)
    # ------------------------------------------------------------------

    def _rekey(self, kind: ItemKind, old: str, new: str):
        records = self.collection(kind)
        record = records.pop(old)
        renamed = record.model_copy(update={"short_name": new})
        records[new] = renamed
        return renamed

    def rename_principle(self, old: str, new: str) -> list[str]:
        """Rename a principle and re-key its reviews on every asset.

        Returns the assets whose review maps were updated.
        """
        self._require(ItemKind.PRINCIPLE, old)
        require_single_char(new, "Principle")
        self._require_unused(new)

        affected = self.affected_by(ItemKind.PRINCIPLE, old)
        principle = self._rekey(ItemKind.PRINCIPLE, old, new)
        assets = []
        for name in affected:
            asset = self.registry.asset_references[name]
            asset.principle_reviews[new] = asset.principle_reviews.pop(old)
            assets.append(asset)
        self._touch(principle, *assets)
        logger.info("Renamed principle %s -> %s (%d asset(s) updated)", old, new, len(affected))
        return affected

    def rename_entity(self, old: str, new: str) -> list[str]:
        self._require(ItemKind.ENTITY, old)
        require_non_empty(new, "Entity short name")
        self._require_unused(new)

        affected = self.affected_by(ItemKind.ENTITY, old)
        entity = self._rekey(ItemKind.ENTITY, old, new)
        assets = []
        for name in affected:
            asset = self.registry.asset_references[name]
            asset.entity = new
            assets.append(asset)
        self._touch(entity, *assets)
        logger.info("Renamed entity %s -> %s (%d asset(s) updated)", old, new, len(affected))
        return affected

    def rename_asset_type(self, old: str, new: str) -> list[str]:
        self._require(ItemKind.ASSET_TYPE, old)
        require_single_char(new, "Asset type")
        self._require_unused(new)

        affected = self.affected_by(ItemKind.ASSET_TYPE, old)
        asset_type = self._rekey(ItemKind.ASSET_TYPE, old, new)
        assets = []
        for name in affected:
            asset = self.registry.asset_references[name]
            asset.asset_type = new
            assets.append(asset)
        self._touch(asset_type, *assets)
        logger.info("Renamed asset type %s -> %s (%d asset(s) updated)", old, new, len(affected))
        return affected

    def rename_asset_reference(self, old: str, new: str) -> list[str]:
        """Rename an asset.  Nothing references assets, so nothing cascades."""
        self._require(ItemKind.ASSET_REFERENCE, old)
        require_non_empty(new, "Asset short name")
        self._require_unused(new)

        asset = self._rekey(ItemKind.ASSET_REFERENCE, old, new)
        self._touch(asset)
        logger.info("Renamed asset %s -> %s", old, new)
        return []

    def rename_item(self, old: str, new: str) -> tuple[ItemKind, list[str]]:
        """Rename whatever *old* names, resolved through ``find_item_type``."""
        kind = self.find_item_type(old)
        if kind is None:
            raise NotFoundError("item", old, self.all_names())
        renamers = {
            ItemKind.PRINCIPLE: self.rename_principle,
            ItemKind.ENTITY: self.rename_entity,
            ItemKind.ASSET_TYPE: self.rename_asset_type,
            ItemKind.ASSET_REFERENCE: self.rename_asset_reference,
        }
        return kind, renamers[kind](old, new)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_principle(self, name: str) -> list[str]:
        """Delete a principle and remove its review from every asset.

        Returns the assets that lost a review.
        """
        self._require(ItemKind.PRINCIPLE, name)

        affected = self.affected_by(ItemKind.PRINCIPLE, name)
        del self.registry.principles[name]
        assets = []
        for asset_name in affected:
            asset = self.registry.asset_references[asset_name]
            del asset.principle_reviews[name]
            assets.append(asset)
        self._touch(*assets)
        logger.info("Deleted principle %s (%d review(s) removed)", name, len(affected))
        return affected

    def _delete_unreferenced(self, kind: ItemKind, name: str) -> list[str]:
        self._require(kind, name)
        blocking = self.affected_by(kind, name)
        if blocking:
            raise InUseError(kind.label, name, blocking)
        del self.collection(kind)[name]
        self._touch()
        logger.info("Deleted %s %s", kind.label, name)
        return []

    def delete_entity(self, name: str) -> list[str]:
        """Delete an entity; refused while any asset references it."""
        return self._delete_unreferenced(ItemKind.ENTITY, name)

    def delete_asset_type(self, name: str) -> list[str]:
        """Delete an asset type; refused while any asset references it."""
        return self._delete_unreferenced(ItemKind.ASSET_TYPE, name)

    def delete_asset_reference(self, name: str) -> int:
        """Delete an asset together with its reviews.

        Returns the number of reviews removed with it.
        """
        asset = self._require(ItemKind.ASSET_REFERENCE, name)
        review_count = len(asset.principle_reviews)
        del self.registry.asset_references[name]
        self._touch()
        logger.info("Deleted asset %s (%d review(s) removed)", name, review_count)
        return review_count

    def delete_item(self, name: str) -> tuple[ItemKind, list[str] | int]:
        """Delete whatever *name* names, resolved through ``find_item_type``."""
        kind = self.find_item_type(name)
        if kind is None:
            raise NotFoundError("item", name, self.all_names())
        deleters = {
            ItemKind.PRINCIPLE: self.delete_principle,
            ItemKind.ENTITY: self.delete_entity,
            ItemKind.ASSET_TYPE: self.delete_asset_type,
            ItemKind.ASSET_REFERENCE: self.delete_asset_reference,
        }
        return kind, deleters[kind](name)

    # ------------------------------------------------------------------
    # Asset state and reviews
    # ------------------------------------------------------------------

    def set_asset_exemplar(self, asset_name: str, exemplar: bool) -> AssetReference:
        asset = self._require(ItemKind.ASSET_REFERENCE, asset_name)
        asset.exemplar = exemplar
        self._touch(asset)
        logger.info("Set exemplar=%s on asset %s", exemplar, asset_name)
        return asset

    def store_asset_review(self, asset_name: str, principle: str, rating: str | None, analysis: str) -> Review:
        """Store (overwrite) the review of *asset_name* under *principle*."""
        asset = self._require(ItemKind.ASSET_REFERENCE, asset_name)
        self._require(ItemKind.PRINCIPLE, principle)
        rating = normalize_rating(rating)

        review = Review(rating=rating, analysis=analysis)
        asset.principle_reviews[principle] = review
        self._touch(asset)
        logger.info("Stored %s review for asset %s (rating=%s)", principle, asset_name, rating)
        return review

    def set_asset_compliance(self, asset_name: str, principle: str, rating: str) -> Review:
        """Set only the rating of a review; any existing analysis is kept."""
        asset = self._require(ItemKind.ASSET_REFERENCE, asset_name)
        self._require(ItemKind.PRINCIPLE, principle)
        rating = normalize_rating(rating)

        previous = asset.principle_reviews.get(principle)
        analysis = previous.analysis if previous is not None else None
        review = Review(rating=rating, analysis=analysis)
        asset.principle_reviews[principle] = review
        self._touch(asset)
        logger.info("Set %s compliance for asset %s to %s", principle, asset_name, rating)
        return review

    def get_asset_review(self, asset_name: str, principle: str) -> Review | None:
        """Return the review, or ``None`` when the asset has none for *principle*."""
        asset = self._require(ItemKind.ASSET_REFERENCE, asset_name)
        return asset.principle_reviews.get(principle)

    def get_asset_reviews(self, asset_name: str) -> dict[str, Review]:
        return dict(self._require(ItemKind.ASSET_REFERENCE, asset_name).principle_reviews)

    # ------------------------------------------------------------------
    # Command metadata
    # ------------------------------------------------------------------

    def add_command(self, name: str, description: str) -> CommandConfig:
        name = name.lstrip(":")
        require_non_empty(name, "Command name")
        if name in self.registry.commands:
            raise NameCollisionError(name, "command")

        command = CommandConfig(name=name, description=description)
        self.registry.commands[name] = command
        self._touch()
        logger.info("Added command %s", name)
        return command

    def rename_command(self, old: str, new: str) -> CommandConfig:
        """Rename a command.

        The first rename of a built-in records its original name; later
        renames keep that provenance.
        """
        old = old.lstrip(":")
        new = new.lstrip(":")
        commands = self.registry.commands
        if old not in commands:
            raise NotFoundError("command", old, list(commands))
        require_non_empty(new, "Command name")
        if new in commands:
            raise NameCollisionError(new, "command")

        command = commands.pop(old)
        update = {"name": new}
        if command.built_in and command.original_name is None:
            update["original_name"] = old
        renamed = command.model_copy(update=update)
        commands[new] = renamed
        self._touch(renamed)
        logger.info("Renamed command %s -> %s", old, new)
        return renamed
