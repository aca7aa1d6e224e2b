"""
Tests for vql/registry_store.py -- RegistryStore mutations and persistence.

Validates:
    - One shared short-name namespace across the four kinds
    - Add-or-update within a kind
    - Rename cascades into asset references
    - Delete cascades (principles) and delete blocking (entities, asset types)
    - Validate-then-mutate: failures leave the registry unchanged
    - Reviews, compliance, exemplar flags
    - Command metadata renames
    - Load / save round trip, legacy documents, atomic writes
"""

import json
import os

import pytest

from vql.errors import (
    InUseError,
    InvalidArgumentError,
    NameCollisionError,
    NotFoundError,
    RegistryIOError,
)
from vql.models import Registry
from vql.registry_store import ItemKind, RegistryStore


def _snapshot(store):
    return store.registry.model_dump()


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------

class TestScenarios:
    """The basic lifecycle of an asset reference."""

    def test_register_asset_in_empty_registry(self, empty_store):
        """Adding an entity, type, and asset yields a fresh unreviewed asset."""
        empty_store.add_entity("u", "User")
        empty_store.add_asset_type("c", "Controller")
        empty_store.add_asset_reference("uc", "u", "c", "/tmp/x.js")

        asset = empty_store.registry.asset_references["uc"]
        assert asset.entity == "u"
        assert asset.asset_type == "c"
        assert asset.path == "/tmp/x.js"
        assert asset.exemplar is False
        assert asset.principle_reviews == {}

    def test_store_then_get_review(self, empty_store):
        """A stored review is returned with its rating, analysis, and timestamp."""
        empty_store.add_principle("a", "Architecture")
        empty_store.add_entity("u", "User")
        empty_store.add_asset_type("c", "Controller")
        empty_store.add_asset_reference("uc", "u", "c", "/tmp/x.js")

        empty_store.store_asset_review("uc", "a", "H", "Looks good")
        review = empty_store.get_asset_review("uc", "a")

        assert review.rating == "H"
        assert review.analysis == "Looks good"
        assert review.last_modified

    def test_rename_entity_updates_asset(self, empty_store):
        """Renaming an entity moves the key and rewrites the asset's entity field."""
        empty_store.add_entity("u", "User")
        empty_store.add_asset_type("c", "Controller")
        empty_store.add_asset_reference("uc", "u", "c", "/tmp/x.js")

        affected = empty_store.rename_entity("u", "usr")

        assert "u" not in empty_store.registry.entities
        assert empty_store.registry.entities["usr"].short_name == "usr"
        assert empty_store.registry.asset_references["uc"].entity == "usr"
        assert affected == ["uc"]

    def test_principle_name_taken_by_entity(self, empty_store):
        """A principle cannot take a short name an entity already uses."""
        empty_store.add_entity("a", "Account")

        with pytest.raises(NameCollisionError) as exc_info:
            empty_store.add_principle("a", "Architecture")

        assert exc_info.value.existing_kind == "entity"
        assert "a" not in empty_store.registry.principles


# ---------------------------------------------------------------------------
# Namespace
# ---------------------------------------------------------------------------

class TestNamespace:
    """One namespace shared by principles, entities, asset types, and assets."""

    @pytest.mark.parametrize("second", ["principle", "asset_type", "asset"])
    def test_cross_kind_add_collides(self, empty_store, second):
        """Adding another kind under a name an entity holds fails."""
        empty_store.add_entity("e", "Owner")
        empty_store.add_asset_type("t", "Type")
        empty_store.add_entity("x", "Taken")
        before = _snapshot(empty_store)

        adders = {
            "principle": lambda: empty_store.add_principle("x", "X"),
            "asset_type": lambda: empty_store.add_asset_type("x", "X"),
            "asset": lambda: empty_store.add_asset_reference("x", "e", "t", "x.py"),
        }
        with pytest.raises(NameCollisionError):
            adders[second]()
        assert _snapshot(empty_store) == before

    def test_asset_name_taken_by_principle(self, store):
        """An asset cannot take a principle's short name."""
        with pytest.raises(NameCollisionError) as exc_info:
            store.add_asset_reference("s", "usr", "c", "s.js")
        assert exc_info.value.existing_kind == "principle"

    def test_same_kind_readd_overwrites(self, store):
        """Re-adding a principle replaces it instead of colliding."""
        store.add_principle("a", "Architecture", "Layering and boundaries")
        assert store.registry.principles["a"].guidance == "Layering and boundaries"

    def test_asset_readd_replaces_record(self, store):
        """Re-adding an asset replaces the whole record, reviews included."""
        store.add_asset_reference("uc", "usr", "c", "src/other.js")

        asset = store.registry.asset_references["uc"]
        assert asset.path == "src/other.js"
        assert asset.principle_reviews == {}

    def test_rename_onto_taken_name(self, store):
        """Renaming onto any used short name fails and changes nothing."""
        before = _snapshot(store)
        with pytest.raises(NameCollisionError):
            store.rename_entity("usr", "uc")
        with pytest.raises(NameCollisionError):
            store.rename_asset_reference("uc", "a")
        assert _snapshot(store) == before

    def test_rename_onto_own_name(self, store):
        """Renaming an item to its current name is a collision."""
        with pytest.raises(NameCollisionError):
            store.rename_entity("usr", "usr")

    def test_find_item_type(self, store):
        """Each name resolves to the kind that owns it."""
        assert store.find_item_type("a") is ItemKind.PRINCIPLE
        assert store.find_item_type("usr") is ItemKind.ENTITY
        assert store.find_item_type("c") is ItemKind.ASSET_TYPE
        assert store.find_item_type("uc") is ItemKind.ASSET_REFERENCE
        assert store.find_item_type("nope") is None


# ---------------------------------------------------------------------------
# Short-name rules
# ---------------------------------------------------------------------------

class TestShortNames:
    """Principle and asset type short names are a single character."""

    def test_long_principle_name_rejected(self, empty_store):
        """A two-character principle short name is rejected."""
        with pytest.raises(InvalidArgumentError):
            empty_store.add_principle("ar", "Architecture")
        assert empty_store.registry.principles == {}

    def test_long_asset_type_name_rejected(self, empty_store):
        """A two-character asset type short name is rejected."""
        with pytest.raises(InvalidArgumentError):
            empty_store.add_asset_type("ct", "Controller")

    def test_rename_principle_to_long_name_rejected(self, store):
        """Renaming a principle to a long name is rejected before anything moves."""
        before = _snapshot(store)
        with pytest.raises(InvalidArgumentError):
            store.rename_principle("a", "arch")
        assert _snapshot(store) == before

    def test_entities_and_assets_have_no_length_limit(self, empty_store):
        """Entities and assets may have long short names."""
        empty_store.add_entity("customer_account", "Customer account")
        empty_store.add_asset_type("m", "Model")
        empty_store.add_asset_reference("customer_account_model", "customer_account", "m", "m.py")
        assert "customer_account_model" in empty_store.registry.asset_references


# ---------------------------------------------------------------------------
# Asset reference validation
# ---------------------------------------------------------------------------

class TestAddAsset:

    def test_unknown_entity(self, store):
        """An asset must reference an existing entity; the error lists entities."""
        with pytest.raises(NotFoundError) as exc_info:
            store.add_asset_reference("pc", "product", "c", "p.js")
        assert exc_info.value.kind == "entity"
        assert exc_info.value.available == ["usr"]
        assert "pc" not in store.registry.asset_references

    def test_unknown_asset_type(self, store):
        """An asset must reference an existing asset type."""
        with pytest.raises(NotFoundError) as exc_info:
            store.add_asset_reference("um", "usr", "m", "m.js")
        assert exc_info.value.kind == "asset type"


# ---------------------------------------------------------------------------
# Renames
# ---------------------------------------------------------------------------

class TestRenameCascade:
    """Renames rewrite every reference to the old key."""

    def test_rename_principle_moves_review(self, store):
        """The review moves to the new key unchanged."""
        original = store.registry.asset_references["uc"].principle_reviews["a"]

        affected = store.rename_principle("a", "x")

        reviews = store.registry.asset_references["uc"].principle_reviews
        assert "a" not in reviews
        assert reviews["x"] == original
        assert "x" in store.registry.principles
        assert store.registry.principles["x"].short_name == "x"
        assert affected == ["uc"]

    def test_rename_asset_type_updates_asset(self, store):
        """Renaming an asset type rewrites asset_type on its assets."""
        affected = store.rename_asset_type("c", "k")

        assert store.registry.asset_references["uc"].asset_type == "k"
        assert "c" not in store.registry.asset_types
        assert affected == ["uc"]

    def test_rename_asset_reference(self, store):
        """Renaming an asset keeps its reviews and reports no cascade."""
        affected = store.rename_asset_reference("uc", "user_ctrl")

        asset = store.registry.asset_references["user_ctrl"]
        assert asset.short_name == "user_ctrl"
        assert "a" in asset.principle_reviews
        assert affected == []

    def test_rename_unknown(self, store):
        """Renaming a missing item reports what is available."""
        with pytest.raises(NotFoundError) as exc_info:
            store.rename_entity("ghost", "g")
        assert exc_info.value.available == ["usr"]

    def test_rename_item_resolves_kind(self, store):
        """The generic rename resolves the namespace first."""
        kind, affected = store.rename_item("c", "k")
        assert kind is ItemKind.ASSET_TYPE
        assert affected == ["uc"]

    def test_rename_item_unknown(self, store):
        """The generic rename fails for a name no kind owns."""
        with pytest.raises(NotFoundError) as exc_info:
            store.rename_item("ghost", "g")
        assert exc_info.value.available == ["a", "c", "p", "s", "u", "uc", "usr"]

    def test_delete_item_unknown_lists_names(self, store):
        """The generic delete error names every short name in use."""
        with pytest.raises(NotFoundError) as exc_info:
            store.delete_item("ghost")
        assert "Available: a, c, p, s, u, uc, usr" in str(exc_info.value)


# ---------------------------------------------------------------------------
# Deletes
# ---------------------------------------------------------------------------

class TestDelete:

    def test_delete_principle_removes_reviews(self, store):
        """Deleting a principle removes its review from every asset."""
        affected = store.delete_principle("a")

        assert "a" not in store.registry.principles
        assert store.get_asset_review("uc", "a") is None
        assert affected == ["uc"]

    def test_delete_entity_in_use(self, store):
        """An entity still referenced by an asset cannot be deleted."""
        before = _snapshot(store)

        with pytest.raises(InUseError) as exc_info:
            store.delete_entity("usr")

        assert exc_info.value.blocking_assets == ["uc"]
        assert _snapshot(store) == before

    def test_delete_asset_type_in_use(self, store):
        """An asset type still referenced by an asset cannot be deleted."""
        with pytest.raises(InUseError) as exc_info:
            store.delete_asset_type("c")
        assert "uc" in str(exc_info.value)

    def test_delete_unreferenced_entity(self, store):
        """An unreferenced entity is deleted."""
        store.add_entity("order", "Order")
        assert store.delete_entity("order") == []
        assert "order" not in store.registry.entities

    def test_delete_asset_then_entity(self, store):
        """Once its asset is gone, the entity can be deleted."""
        removed = store.delete_asset_reference("uc")
        assert removed == 1
        store.delete_entity("usr")
        assert store.registry.entities == {}

    def test_delete_missing(self, store):
        """Deleting a missing asset raises NotFoundError."""
        with pytest.raises(NotFoundError):
            store.delete_asset_reference("ghost")

    def test_delete_item_resolves_kind(self, store):
        """The generic delete resolves the namespace first."""
        kind, affected = store.delete_item("a")
        assert kind is ItemKind.PRINCIPLE
        assert affected == ["uc"]


# ---------------------------------------------------------------------------
# Reviews and asset state
# ---------------------------------------------------------------------------

class TestReviews:

    def test_store_overwrites_previous_review(self, store):
        """A second review for the same pair replaces the first."""
        store.store_asset_review("uc", "a", None, "Needs work")
        review = store.get_asset_review("uc", "a")
        assert review.rating is None
        assert review.analysis == "Needs work"

    def test_lowercase_rating_normalized(self, store):
        """Ratings are stored upper-case."""
        store.store_asset_review("uc", "s", "m", "Some checks")
        assert store.get_asset_review("uc", "s").rating == "M"

    def test_invalid_rating_rejected(self, store):
        """An invalid rating fails without touching the existing review."""
        before = _snapshot(store)
        with pytest.raises(InvalidArgumentError):
            store.store_asset_review("uc", "a", "X", "Bad")
        assert _snapshot(store) == before

    def test_unknown_principle_lists_available(self, store):
        """Storing under an unknown principle names the defined principles."""
        with pytest.raises(NotFoundError) as exc_info:
            store.store_asset_review("uc", "z", "H", "text")
        assert exc_info.value.available == ["a", "p", "s", "u"]
        assert "Available: a, p, s, u" in str(exc_info.value)

    def test_compliance_keeps_analysis(self, store):
        """Setting compliance changes the rating and keeps the analysis."""
        review = store.set_asset_compliance("uc", "a", "l")
        assert review.rating == "L"
        assert review.analysis == "Clean layering. High compliance"

    def test_compliance_without_prior_review(self, store):
        """Setting compliance on an unreviewed principle creates a rating-only review."""
        review = store.set_asset_compliance("uc", "s", "M")
        assert review.rating == "M"
        assert review.analysis is None

    def test_exemplar(self, store):
        """The exemplar flag can be set and cleared."""
        store.set_asset_exemplar("uc", True)
        assert store.registry.asset_references["uc"].exemplar is True
        store.set_asset_exemplar("uc", False)
        assert store.registry.asset_references["uc"].exemplar is False

    def test_get_review_for_unknown_asset(self, store):
        """Asking for a review of an unknown asset raises NotFoundError."""
        with pytest.raises(NotFoundError):
            store.get_asset_review("ghost", "a")

    def test_get_asset_reviews(self, store):
        """All reviews of an asset are returned as a copy of the map."""
        reviews = store.get_asset_reviews("uc")
        assert list(reviews) == ["a"]
        reviews.clear()
        assert store.get_asset_reviews("uc")

    def test_mutation_touches_registry_timestamp(self, store):
        """A mutation updates the registry's last_modified."""
        store.registry.last_modified = "2000-01-01T00:00:00Z"
        store.set_asset_exemplar("uc", True)
        assert store.registry.last_modified != "2000-01-01T00:00:00Z"


# ---------------------------------------------------------------------------
# Bulk principle import
# ---------------------------------------------------------------------------

class TestImportPrinciples:

    def test_import_adds_and_updates(self, store):
        """Imported principles are added or replace existing ones."""
        names = store.import_principles([
            ("a", "Architecture", "Layers"),
            ("q", "Quality", "Tests"),
        ])
        assert names == ["a", "q"]
        assert store.registry.principles["a"].guidance == "Layers"
        assert store.registry.principles["q"].long_name == "Quality"

    def test_import_validates_everything_first(self, store):
        """One bad item means nothing is imported."""
        before = _snapshot(store)
        with pytest.raises(InvalidArgumentError):
            store.import_principles([("q", "Quality", ""), ("zz", "Bad", "")])
        assert _snapshot(store) == before

    def test_import_collision(self, store):
        """Importing onto a name another kind uses fails."""
        with pytest.raises(NameCollisionError):
            store.import_principles([("c", "Clarity", "")])


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

class TestCommands:

    def test_defaults_present(self):
        """A fresh registry holds the built-in commands."""
        store = RegistryStore()
        for name in ("ar", "at", "er", "pr", "setup", "st", "se", "sc", "rv", "rf"):
            assert store.registry.commands[name].built_in is True

    def test_rename_builtin_records_original(self, store):
        """The first rename of a built-in records its original name."""
        command = store.rename_command("st", "store")
        assert command.original_name == "st"
        assert "st" not in store.registry.commands

    def test_second_rename_keeps_original(self, store):
        """Later renames keep the first original name."""
        store.rename_command(":st", ":store")
        command = store.rename_command("store", "save")
        assert command.original_name == "st"

    def test_add_command_strips_colon(self, store):
        """Leading colons are ignored in command names."""
        command = store.add_command(":hello", "Says hello")
        assert command.name == "hello"
        assert command.built_in is False

    def test_add_existing_command(self, store):
        """Adding an existing command fails."""
        with pytest.raises(NameCollisionError):
            store.add_command("st", "Again")

    def test_rename_missing_command(self, store):
        """Renaming a missing command lists the commands."""
        with pytest.raises(NotFoundError) as exc_info:
            store.rename_command("zz", "yy")
        assert "st" in exc_info.value.available


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class TestPersistence:

    def test_load_missing_document_gives_defaults(self, tmp_path):
        """Loading from a directory without a document returns defaults, writes nothing."""
        store = RegistryStore.load(tmp_path)
        assert sorted(store.registry.principles) == ["a", "p", "s", "u"]
        assert store.registry.principles["a"].guidance == "Architecture evaluation guidelines"
        assert not os.listdir(tmp_path)

    def test_round_trip(self, store, tmp_path):
        """Saving then loading yields an identical registry."""
        store.save(tmp_path)
        loaded = RegistryStore.load(tmp_path)
        assert loaded.registry.model_dump() == store.registry.model_dump()

    def test_save_load_save_is_stable(self, store, tmp_path):
        """Loading and re-saving an unchanged document keeps it identical."""
        path = store.save(tmp_path)
        with open(path, encoding="utf-8") as fh:
            first = json.load(fh)
        RegistryStore.load(tmp_path).save(tmp_path)
        with open(path, encoding="utf-8") as fh:
            second = json.load(fh)
        assert first == second

    def test_save_leaves_no_temp_files(self, store, tmp_path):
        """The atomic write leaves only the document behind."""
        store.save(tmp_path)
        assert os.listdir(tmp_path) == ["vql_storage.json"]

    def test_corrupt_document_raises(self, tmp_path):
        """A document that is not JSON is reported, not replaced."""
        (tmp_path / "vql_storage.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(RegistryIOError):
            RegistryStore.load(tmp_path)
        assert (tmp_path / "vql_storage.json").read_text(encoding="utf-8") == "{not json"

    def test_invalid_document_raises(self, tmp_path):
        """A document with a bad rating fails model validation."""
        doc = Registry().to_document()
        doc["entities"] = {"u": {"short_name": "u", "description": "User"}}
        doc["asset_types"] = {"c": {"short_name": "c", "description": "Controller"}}
        doc["asset_references"] = {
            "uc": {
                "short_name": "uc", "entity": "u", "asset_type": "c", "path": "x.js",
                "principle_reviews": {"a": {"rating": "Excellent"}},
            },
        }
        (tmp_path / "vql_storage.json").write_text(json.dumps(doc), encoding="utf-8")
        with pytest.raises(RegistryIOError):
            RegistryStore.load(tmp_path)

    def test_legacy_document(self, tmp_path):
        """Older documents load without principles and lose legacy fields on save."""
        doc = {
            "version": "0.9.0",
            "created": "2024-01-01T00:00:00Z",
            "last_modified": "2024-01-01T00:00:00Z",
            "commands": {},
            "asset_types": {"c": {"short_name": "c", "description": "Controller",
                                  "last_modified": "2024-01-01T00:00:00Z"}},
            "entities": {"u": {"short_name": "u", "description": "User",
                               "last_modified": "2024-01-01T00:00:00Z"}},
            "asset_references": {
                "uc": {
                    "short_name": "uc", "entity": "u", "asset_type": "c",
                    "path": "src/uc.js", "exemplar": False,
                    "last_modified": "2024-01-01T00:00:00Z",
                    "arch_rating": "H", "arch_analysis": "old style",
                },
            },
        }
        (tmp_path / "vql_storage.json").write_text(json.dumps(doc), encoding="utf-8")

        store = RegistryStore.load(tmp_path)
        assert store.registry.principles == {}
        assert store.registry.asset_references["uc"].principle_reviews == {}

        store.save(tmp_path)
        saved = json.loads((tmp_path / "vql_storage.json").read_text(encoding="utf-8"))
        assert "arch_rating" not in saved["asset_references"]["uc"]
        assert saved["principles"] == {}
