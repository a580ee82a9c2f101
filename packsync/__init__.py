"""packsync - keep a modpack instance in sync with its published pack.

A pack publishes a JSON manifest describing a base archive, an optional
client override archive and an ordered set of version patches. packsync
compares that manifest with the state recorded in a local profile and
applies whatever is missing, persisting the new state only once a run has
fully succeeded.

Key modules:
- core: Sync engine (manifest, state, planning, extraction, patching)
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "packsync contributors"

# Re-export commonly used types
from packsync.core.types import (
    InstanceState,
    ModChange,
    PackManifest,
    PackVersionPatch,
)

__all__ = [
    "__version__",
    "__author__",
    "InstanceState",
    "ModChange",
    "PackManifest",
    "PackVersionPatch",
]
