"""
Process-lifetime state shared by every UI surface: cached install statuses,
the set of mods with an operation in flight, and the last error per mod.

Nothing here is persisted.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, Mapping

from catalog_models import CatalogItem, InstallStatus, Provider, ResolvedStatus
from errors import BusyError
from local_mods import resolve_status
from settings_store import InstalledEntry

_log = logging.getLogger(__name__)


class ModStore:
    def __init__(self):
        self._lock = threading.Lock()
        # item id -> (latest version id the status was resolved against, status)
        self._status_cache: dict[str, tuple[str, ResolvedStatus]] = {}
        self._processing: set[str] = set()
        self._errors: dict[str, str] = {}

    # ── Status cache ──────────────────────────────────────────────────

    def get_status(self, item_id: str) -> InstallStatus:
        with self._lock:
            cached = self._status_cache.get(item_id)
        return cached[1].status if cached else InstallStatus.NOT_INSTALLED

    def get_info(
        self,
        item_id: str,
        latest_version_id: str,
        manifest: Mapping[str, InstalledEntry],
        provider: Provider | None = None,
    ) -> ResolvedStatus:
        with self._lock:
            cached = self._status_cache.get(item_id)
        if cached is not None and cached[0] == latest_version_id:
            return cached[1]

        info = resolve_status(manifest, item_id, latest_version_id, provider)
        with self._lock:
            if info.status == InstallStatus.NOT_INSTALLED:
                self._status_cache.pop(item_id, None)
            else:
                self._status_cache[item_id] = (latest_version_id, info)
        return info

    def set_info(self, item_id: str, latest_version_id: str, info: ResolvedStatus) -> None:
        with self._lock:
            self._status_cache[item_id] = (latest_version_id, info)

    def forget(self, item_id: str) -> None:
        with self._lock:
            self._status_cache.pop(item_id, None)

    def reset_statuses(self) -> None:
        with self._lock:
            self._status_cache.clear()
            self._errors.clear()

    def observe_listing(
        self,
        items: Iterable[CatalogItem],
        manifest: Mapping[str, InstalledEntry],
        provider: Provider | None = None,
    ) -> None:
        """Recompute cached statuses from a freshly fetched listing."""
        for item in items:
            info = resolve_status(manifest, item.id, item.latest.id, provider)
            with self._lock:
                if info.status == InstallStatus.NOT_INSTALLED:
                    self._status_cache.pop(item.id, None)
                else:
                    self._status_cache[item.id] = (item.latest.id, info)

    # ── In-flight tracking ────────────────────────────────────────────

    def is_processing(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._processing

    def processing_ids(self) -> set[str]:
        with self._lock:
            return set(self._processing)

    @contextmanager
    def begin(self, item_id: str) -> Iterator[None]:
        """Hold ``item_id`` for the duration of one operation.

        Raises ``BusyError`` straight away if another operation holds it.
        """
        with self._lock:
            if item_id in self._processing:
                raise BusyError(item_id)
            self._processing.add(item_id)
        _log.debug("Locked mod %s", item_id)
        try:
            yield
        finally:
            with self._lock:
                self._processing.discard(item_id)
            _log.debug("Released mod %s", item_id)

    # ── Errors ────────────────────────────────────────────────────────

    def set_error(self, item_id: str, message: str) -> None:
        with self._lock:
            self._errors[item_id] = message

    def clear_error(self, item_id: str) -> None:
        with self._lock:
            self._errors.pop(item_id, None)

    def last_error(self, item_id: str) -> str | None:
        with self._lock:
            return self._errors.get(item_id)
