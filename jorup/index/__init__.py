"""
jorup.index

Release catalog: immutable descriptor records and the cached, refreshable
ReleaseIndex that serves them.
"""

from .models import (
    INDEX_SCHEMA_VERSION,
    Artifact,
    BlockchainConfigDescriptor,
    Index,
    ReleaseDescriptor,
    TrustedPeer,
)
from .release_index import ReleaseIndex

__all__ = [
    "INDEX_SCHEMA_VERSION",
    "Artifact",
    "BlockchainConfigDescriptor",
    "Index",
    "ReleaseDescriptor",
    "TrustedPeer",
    "ReleaseIndex",
]
