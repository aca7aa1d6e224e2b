"""
vql/models/ -- Pydantic v2 models for the VQL registry.

Submodules:
    base        Persisted records (Principle, Entity, AssetType,
                AssetReference, Review, CommandConfig) and the Registry
                document.
    validators  Argument validators (short names, ratings, exemplar flags).
"""

from vql.models.base import (
    AssetReference,
    AssetType,
    CommandConfig,
    Entity,
    Principle,
    Registry,
    Review,
)

__all__ = [
    "AssetReference",
    "AssetType",
    "CommandConfig",
    "Entity",
    "Principle",
    "Registry",
    "Review",
]
