from __future__ import annotations

import os
import pickle
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Hashable, Union

from ..errors import CorruptSnapshotError, PersistenceWriteError, UnreadableSnapshotError

log = logging.getLogger("mehcache.snapshot")

PathLike = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    insert_time: int  # epoch, segundos


CacheState = Dict[Hashable, CacheEntry]


def system_tmpdir() -> Path:
    """Directorio temporal del sistema (en Unix respeta TMPDIR)."""
    return Path(tempfile.gettempdir())


class SnapshotStore:
    """
    Snapshot en disco del estado completo de la caché.

    Se carga una vez al construir la caché y se reescribe entero en cada
    mutación: primero a un temporal, luego os.replace() sobre el destino.
    Un crash a mitad de escritura deja el snapshot anterior intacto.
    """

    def __init__(self, filename: PathLike, tmpdir: Callable[[], PathLike] = system_tmpdir) -> None:
        self.filename = filename
        self._tmpdir = tmpdir

    @property
    def path(self) -> Path:
        # se resuelve en cada llamada; el resolver puede cambiar de destino
        return Path(self._tmpdir()) / self.filename

    def load(self) -> CacheState:
        p = self.path
        if not p.exists():
            log.debug("snapshot %s no existe, estado vacío", p)
            return {}
        if not os.access(p, os.R_OK):
            raise UnreadableSnapshotError(f"snapshot_not_readable:{p}")
        self._check_owner(p)
        try:
            with p.open("rb") as fh:
                state = pickle.load(fh)
        except OSError as e:
            raise UnreadableSnapshotError(f"snapshot_not_readable:{p}: {e}") from e
        except Exception as e:
            raise CorruptSnapshotError(f"snapshot_corrupt:{p}: {e}") from e
        if not isinstance(state, dict):
            raise CorruptSnapshotError(f"snapshot_corrupt:{p}: expected dict, got {type(state).__name__}")
        for key, entry in state.items():
            if not isinstance(entry, CacheEntry):
                raise CorruptSnapshotError(
                    f"snapshot_corrupt:{p}: entry {key!r} is {type(entry).__name__}, not CacheEntry"
                )
        log.debug("snapshot %s cargado (%d claves)", p, len(state))
        return state

    @staticmethod
    def _check_owner(p: Path) -> None:
        # unpickle ejecuta código: sólo archivos del mismo usuario (tmpdir es compartido)
        getuid = getattr(os, "getuid", None)
        if getuid is None:
            return
        uid = getuid()
        owner = p.stat().st_uid
        if owner != uid:
            raise UnreadableSnapshotError(f"snapshot_not_owned:{p}: uid {owner} != {uid}")

    def store(self, state: CacheState) -> bool:
        target = self.path
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        except OSError as e:
            raise PersistenceWriteError(f"snapshot_write_failed:{target}: {e}") from e

        replaced = False
        try:
            with os.fdopen(fd, "wb") as fh:
                pickle.dump(state, fh, protocol=pickle.HIGHEST_PROTOCOL)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, target)
            replaced = True
        except Exception as e:
            raise PersistenceWriteError(f"snapshot_write_failed:{target}: {e}") from e
        finally:
            if not replaced:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass  # nunca llegó a crearse

        log.debug("snapshot %s guardado (%d claves)", target, len(state))
        return True
