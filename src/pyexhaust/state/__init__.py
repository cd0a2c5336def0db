"""State layer.

Two independent stores live here: the per-unit activation states (persisted
to disk) and the per-module status cache (memory only). The orchestrator and
the scheduler mutate them exclusively through these classes.
"""

from pyexhaust.state.module_cache import ModuleStatusCache
from pyexhaust.state.store import ExhaustStateStore

__all__ = ["ExhaustStateStore", "ModuleStatusCache"]
