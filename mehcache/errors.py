from __future__ import annotations


class MehCacheError(Exception):
    """Base de todos los errores de mehcache."""


class ConfigurationError(MehCacheError, ValueError):
    """filename ausente, validity no positiva o lookup no invocable."""


class UnreadableSnapshotError(MehCacheError, PermissionError):
    """El snapshot existe pero el proceso no puede leerlo."""


class CorruptSnapshotError(MehCacheError, ValueError):
    """El snapshot existe y se puede leer, pero no se puede decodificar."""


class PersistenceWriteError(MehCacheError, OSError):
    """Fallo al escribir el archivo temporal o al renombrarlo sobre el snapshot."""
