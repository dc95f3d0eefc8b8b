"""
jorup

Top-level package initializer for the jorup node toolchain manager.

This module does not contain any logic.
It exposes configuration utilities and ensures the package loads cleanly.

Submodules include:
    - channel/
    - index/
    - registry/
    - installer/
    - runtime/
    - utils/
    - hashing/
    - cli/

The ``Jorup`` façade in ``jorup.core`` wires them together.
This root package exports only the version and the config loader.
"""

__version__ = "0.1.0"

from .config import JorupConfig, load_config

__all__ = [
    "__version__",
    "JorupConfig",
    "load_config",
]
