"""CLI command implementations for packsync.

This module contains all command-line interface implementations:
- sync: Bring a profile up to the published pack version
- plan: Show what the next sync would do
- state: Show the recorded instance state
"""

from packsync.commands.plan import plan
from packsync.commands.state import state
from packsync.commands.sync import sync

__all__ = ["plan", "state", "sync"]
