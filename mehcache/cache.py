from __future__ import annotations

import time
import logging
from pathlib import Path
from typing import Any, Callable, Hashable, Optional

from .errors import ConfigurationError, PersistenceWriteError
from .utils.snapshot import CacheEntry, CacheState, PathLike, SnapshotStore, system_tmpdir

log = logging.getLogger("mehcache.cache")

DEFAULT_VALIDITY = 300  # segundos

Lookup = Callable[[Hashable], Any]


class MehCache:
    """
    Caché clave/valor en memoria, persistida a disco con TTL por clave.

    Pensada para procesos cortos (cron, CGI): el estado se carga al construir
    y se guarda completo en cada set. La expiración es perezosa: sólo se
    evalúa al hacer get. Si hay `lookup`, una clave expirada se refresca en
    sitio; si no, se elimina del snapshot.
    """

    def __init__(
        self,
        filename: PathLike,
        validity: int = DEFAULT_VALIDITY,
        lookup: Optional[Lookup] = None,
        *,
        tmpdir: Optional[Callable[[], PathLike]] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if not filename:
            raise ConfigurationError("filename_required")
        self._store = SnapshotStore(filename, tmpdir or system_tmpdir)
        self._clock = clock or time.time
        self._validity = DEFAULT_VALIDITY
        self._lookup: Optional[Lookup] = None

        self.set_validity(validity)
        self.set_lookup(lookup)
        self._state: CacheState = self._store.load()

    @property
    def filename(self) -> PathLike:
        return self._store.filename

    @property
    def path(self) -> Path:
        return self._store.path

    def _now(self) -> int:
        return int(self._clock())

    # ------------ configuración ------------
    def get_validity(self) -> int:
        return self._validity

    def set_validity(self, seconds: Any) -> None:
        """Segundos de validez; se trunca a entero y debe quedar >= 1."""
        if isinstance(seconds, (bool, str, bytes)):
            raise ConfigurationError(f"validity_not_a_number:{seconds!r}")
        try:
            value = int(seconds)
        except (TypeError, ValueError, OverflowError) as e:
            raise ConfigurationError(f"validity_not_a_number:{seconds!r}") from e
        if value < 1:
            raise ConfigurationError(f"validity_not_positive:{seconds!r}")
        self._validity = value

    def get_lookup(self) -> Optional[Lookup]:
        return self._lookup

    def set_lookup(self, lookup: Optional[Lookup]) -> None:
        """Función key -> value para refrescar; None la quita."""
        if lookup is not None and not callable(lookup):
            raise ConfigurationError(f"lookup_not_callable:{type(lookup).__name__}")
        self._lookup = lookup

    # ------------ get / set ------------
    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._state.get(key)
        if entry is not None and self._now() < entry.insert_time + self._validity:
            log.debug("hit %r", key)
            return entry.value

        if self._lookup is not None:
            log.debug("%s %r, refrescando con lookup", "expired" if entry else "miss", key)
            value = self._lookup(key)
            self.set(key, value)
            return value

        if entry is not None:
            log.debug("expired %r, eliminando", key)
            del self._state[key]
            self._persist(key, entry)
        return default

    def set(self, key: Hashable, value: Any) -> "MehCache":
        previous = self._state.get(key)
        self._state[key] = CacheEntry(value=value, insert_time=self._now())
        self._persist(key, previous)
        return self

    def _persist(self, key: Hashable, previous: Optional[CacheEntry]) -> None:
        """Guarda el estado; si falla, deshace el cambio de `key` en memoria."""
        try:
            self._store.store(self._state)
        except PersistenceWriteError:
            if previous is None:
                self._state.pop(key, None)
            else:
                self._state[key] = previous
            raise

    def __len__(self) -> int:
        # incluye claves expiradas aún no visitadas
        return len(self._state)

    def __repr__(self) -> str:
        return f"MehCache(filename={self.filename!r}, validity={self._validity})"
