"""Explicit ownership records for GPU-resident resources.

Geometry, materials and textures are not garbage collected on the device, so
every object that would hold device memory registers itself with a
:class:`ResourceLedger` on creation and must be released exactly once through
:meth:`GpuResource.dispose`. Disposal is idempotent: the first call releases,
later calls are no-ops, which lets every teardown path call it unconditionally.
"""
from __future__ import annotations

import itertools
from collections import Counter
from typing import Dict, Optional

from .utils import get_logger

_log = get_logger()


class ResourceError(RuntimeError):
    """Raised on use-after-release or an inconsistent ledger."""


class ResourceLedger:
    """Tracks live resources per kind and counts releases."""

    def __init__(self) -> None:
        self._live: Dict[int, "GpuResource"] = {}
        self._allocated: Counter[str] = Counter()
        self._released: Counter[str] = Counter()

    def register(self, resource: "GpuResource") -> None:
        self._live[resource.resource_id] = resource
        self._allocated[resource.kind] += 1
        _log.debug("alloc %s#%d", resource.kind, resource.resource_id)

    def release(self, resource: "GpuResource") -> None:
        if resource.resource_id not in self._live:
            raise ResourceError(f"{resource.kind}#{resource.resource_id} is not tracked by this ledger")
        del self._live[resource.resource_id]
        self._released[resource.kind] += 1
        _log.debug("release %s#%d", resource.kind, resource.resource_id)

    def live_count(self, kind: Optional[str] = None) -> int:
        if kind is None:
            return len(self._live)
        return sum(1 for r in self._live.values() if r.kind == kind)

    def allocated(self, kind: str) -> int:
        return self._allocated[kind]

    def released(self, kind: str) -> int:
        return self._released[kind]


_ids = itertools.count(1)


class GpuResource:
    kind: str = "resource"

    def __init__(self, ledger: Optional[ResourceLedger] = None) -> None:
        self.resource_id = next(_ids)
        self._ledger = ledger
        self._disposed = False
        if ledger is not None:
            ledger.register(self)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def ensure_alive(self) -> None:
        if self._disposed:
            raise ResourceError(f"{self.kind}#{self.resource_id} used after dispose()")

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._release()
        if self._ledger is not None:
            self._ledger.release(self)

    def _release(self) -> None:
        """Hook for subclasses to drop their payload."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()
