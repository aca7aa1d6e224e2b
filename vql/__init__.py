"""
vql/ -- Asset registry with principle-based reviews.

Modules:
    registry_store       RegistryStore: mutations, cascades, load/save
    grammar              Functional and flag command syntax -> ParsedCommand
    dispatcher           CommandDispatcher: load -> mutate -> save -> report
    instructions         rv / rf instruction scripts
    principle_import     '# Title (x)' principle documents
    consistency_checker  Schema and rule checks on the stored document
    cli                  ``vql`` command-line entry point
"""

from vql.config import VERSION as __version__

__all__ = ["__version__"]
