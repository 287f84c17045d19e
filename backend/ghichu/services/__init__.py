"""
Note store services: write-through cache, expiry sweeper and the store façade.
"""

from .note_store import NoteStore, StoreConfig
from .sweeper import ExpirySweeper, SweepReport, SweeperState
from .identifiers import generate_key

__all__ = [
    "NoteStore",
    "StoreConfig",
    "ExpirySweeper",
    "SweepReport",
    "SweeperState",
    "generate_key",
]
