"""Git operations helpers."""

from .manager import SourceSynchronizer, SyncResult
from .secrets import SecretHandler

__all__ = ["SecretHandler", "SourceSynchronizer", "SyncResult"]
