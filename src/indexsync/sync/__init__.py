"""Synchronization of record mutations into indexes."""

from indexsync.sync.controller import RecordStorage, SyncController, SyncOutcome

__all__ = ["RecordStorage", "SyncController", "SyncOutcome"]
