"""
vql/instructions.py -- Review and refactor instruction scripts.

The ``rv`` and ``rf`` commands do not change the registry.  They assemble an
ordered, LLM-actionable list of steps: which file to read, which principles
to apply (with each principle's guidance), and how to store the results
back with ``st``.

This module prepares the text only; the reviewing itself is done by
whoever consumes it.

Usage:
    from vql.instructions import build_review_instructions

    lines = build_review_instructions(store, "uc", ["a", "s"])
    print("\\n".join(lines))
"""

from __future__ import annotations

from vql.config import MISSING_GUIDANCE
from vql.errors import InvalidArgumentError, NotFoundError

_ALL_PRINCIPLES = ("*", "-pr")


def resolve_principles(store, names: list[str]) -> list[str]:
    """Validate a requested principle list.

    ``*`` or ``-pr`` selects every defined principle.  Duplicates are
    dropped, keeping first-seen order.

    Raises
    ------
    NotFoundError
        For a name that is not a defined principle (lists the valid ones).
    InvalidArgumentError
        If the list is empty.
    """
    principles = store.registry.principles
    if any(name in _ALL_PRINCIPLES for name in names):
        return sorted(principles)

    resolved = []
    for name in names:
        if name not in principles:
            raise NotFoundError("principle", name, list(principles))
        if name not in resolved:
            resolved.append(name)
    if not resolved:
        raise InvalidArgumentError("No valid principles specified")
    return resolved


def _guidance_lines(store, principles: list[str], indent: str) -> list[str]:
    lines = []
    for name in principles:
        principle = store.registry.principles[name]
        lines.append(f"{indent}- {name} ({principle.long_name}): {principle.guidance or MISSING_GUIDANCE}")
    return lines


def _all_assets(store) -> list:
    assets = [store.registry.asset_references[name] for name in sorted(store.registry.asset_references)]
    if not assets:
        raise InvalidArgumentError("No assets found in the project")
    return assets


# ---------------------------------------------------------------------------
# Single asset
# ---------------------------------------------------------------------------

def build_review_instructions(store, asset_name: str, names: list[str]) -> list[str]:
    asset = store.get_asset(asset_name)
    principles = resolve_principles(store, names)

    lines = [
        "LLM Review Request:",
        f"Asset: {asset_name} ({asset.path})",
        f"Principles to review: {', '.join(principles)}",
        "",
        "Review Instructions:",
        f"1. Read asset from: {asset.path}",
        f"2. Review for principles: {', '.join(principles)}",
        "3. For each principle:",
    ]
    lines.extend(_guidance_lines(store, principles, "   "))
    lines.extend([
        "4. Rate each principle (H/M/L)",
        "5. Provide detailed analysis",
        f'6. Store results using :{asset_name}.st({principles[0]}, "Review with rating...")',
    ])
    return lines


def split_refactor_args(store, names: list[str]) -> tuple[list[str], list[str]]:
    """Split ``rf`` arguments into (principles, reference assets).

    Leading principle names (or ``*`` / ``-pr``) are principles; everything
    from the first other name on is a reference asset.  A single argument
    naming an asset selects the principles already reviewed on that asset.
    """
    registry = store.registry
    if len(names) == 1 and names[0] in registry.asset_references:
        reference = names[0]
        return list(registry.asset_references[reference].principle_reviews), [reference]

    principle_names: list[str] = []
    references: list[str] = []
    for name in names:
        if not references and (name in _ALL_PRINCIPLES or name in registry.principles):
            principle_names.append(name)
        else:
            references.append(name)

    for reference in references:
        if reference not in registry.asset_references:
            raise NotFoundError("asset", reference, list(registry.asset_references))

    if principle_names or not references:
        return resolve_principles(store, principle_names), references
    return [], references


def build_refactor_instructions(store, asset_name: str, names: list[str]) -> list[str]:
    asset = store.get_asset(asset_name)
    principles, references = split_refactor_args(store, names)

    lines = [
        "LLM Refactor Request:",
        f"Asset: {asset_name} ({asset.path})",
    ]
    if references:
        lines.append(f"Using reference assets: {', '.join(references)}")
        for reference in references:
            lines.append(f"  - {reference} ({store.registry.asset_references[reference].path})")
    if principles or not references:
        lines.append(f"Principles to refactor for: {', '.join(principles)}")

    lines.extend(["", "Refactor Instructions:", f"1. Read asset from: {asset.path}"])
    if references:
        lines.extend([
            "2. Read reference assets and analyze their patterns",
            "3. Apply similar patterns to improve the target asset",
        ])
    else:
        lines.append(f"2. Consider principles: {', '.join(principles)}")
        lines.extend(_guidance_lines(store, principles, "   "))
        lines.append("3. Identify improvements for each principle")
    lines.extend([
        "4. Apply refactoring changes",
        "5. MANDATORY: Review refactored code and update all reviews",
        "6. Store updated reviews with 'After refactoring:' prefix",
    ])
    return lines


# ---------------------------------------------------------------------------
# All assets
# ---------------------------------------------------------------------------

def build_global_review_instructions(store, names: list[str]) -> list[str]:
    principles = resolve_principles(store, names)
    assets = _all_assets(store)

    lines = [
        "LLM Global Review Request:",
        f"Total assets: {len(assets)}",
        f"Principles to review: {', '.join(principles)}",
        "",
        "Global Review Instructions:",
        f"1. Review all {len(assets)} assets:",
    ]
    lines.extend(f"   - {asset.short_name} ({asset.path})" for asset in assets)
    lines.extend([
        f"2. For each asset, review principles: {', '.join(principles)}",
        "3. Rate each principle (H/M/L)",
        "4. Provide detailed analysis",
        '5. Store results using :[asset].st([principle], "Review with rating...")',
        "",
        f"Total reviews to perform: {len(assets)} assets x {len(principles)} principles"
        f" = {len(assets) * len(principles)} reviews",
    ])
    return lines


def build_global_refactor_instructions(store, names: list[str]) -> list[str]:
    principles = resolve_principles(store, names)
    assets = _all_assets(store)

    lines = [
        "LLM Global Refactor Request:",
        f"Total assets: {len(assets)}",
        f"Principles to refactor for: {', '.join(principles)}",
        "",
        "Global Refactor Instructions:",
        f"1. Process all {len(assets)} assets:",
    ]
    lines.extend(f"   - {asset.short_name} ({asset.path})" for asset in assets)
    lines.extend([
        "2. For each asset:",
        "   a. Read the current implementation",
        f"   b. Consider principles: {', '.join(principles)}",
    ])
    lines.extend(_guidance_lines(store, principles, "      "))
    lines.extend([
        "   c. Identify improvements for each principle",
        "   d. Apply refactoring changes",
        "   e. MANDATORY: Review refactored code and update all reviews",
        "3. Store updated reviews with 'After refactoring:' prefix",
        "",
        f"Total refactorings: {len(assets)} assets x {len(principles)} principles"
        f" = {len(assets) * len(principles)} potential improvements",
    ])
    return lines
