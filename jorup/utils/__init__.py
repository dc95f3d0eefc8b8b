"""
jorup.utils

Lightweight utility helpers shared across the jorup stack.

This package aggregates:

    - temp:     temporary file/directory utilities
    - paths:    deterministic home-directory layout
    - json_io:  atomic JSON read/write helpers
    - locking:  advisory inter-process file locks

All public symbols from these modules are re-exported for convenience.
"""

from . import temp
from . import paths
from . import json_io
from . import locking

# Re-export all public symbols from the submodules
from .temp import *        # noqa: F401,F403
from .paths import *       # noqa: F401,F403
from .json_io import *     # noqa: F401,F403
from .locking import *     # noqa: F401,F403

__all__ = (
    temp.__all__
    + paths.__all__
    + json_io.__all__
    + locking.__all__
)
