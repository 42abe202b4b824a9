from __future__ import annotations

import os
import sys
import json
import logging
import inspect
import importlib
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from .cache import DEFAULT_VALIDITY, Lookup, MehCache

# ------------ Logging ------------
logging.basicConfig(
    level=os.getenv("MEHCACHE_LOG_LEVEL", "WARNING"),
    stream=sys.stderr,
    format="%(levelname)s:%(name)s:%(message)s",
)
log = logging.getLogger("mehcache.server")

APP_NAME = "mehcache"
FILENAME = os.getenv("MEHCACHE_FILENAME", "mehcache.cache")
LOOKUP_PATH = os.getenv("MEHCACHE_LOOKUP", "")
try:
    VALIDITY = int(os.getenv("MEHCACHE_VALIDITY", str(DEFAULT_VALIDITY)))
except ValueError:
    VALIDITY = DEFAULT_VALIDITY

# la caché se crea en la primera llamada: un snapshot corrupto falla en la tool, no al importar
_cache: Optional[MehCache] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _resolve_lookup(path: str) -> Optional[Lookup]:
    """'paquete.modulo:funcion' -> funcion. Vacío -> None."""
    if not path:
        return None
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"invalid_lookup_path:{path}")
    fn = importlib.import_module(module_name)
    for part in attr.split("."):
        fn = getattr(fn, part)
    return fn


def _get_cache() -> MehCache:
    global _cache
    if _cache is None:
        _cache = MehCache(FILENAME, validity=VALIDITY, lookup=_resolve_lookup(LOOKUP_PATH))
        log.info("cache %s cargada (validity=%ss)", _cache.path, _cache.get_validity())
    return _cache


# ------------ App MCP (Tools) ------------
app = FastMCP(APP_NAME)


def _json(data: Dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False)


@app.tool()
def get_info() -> str:
    """Archivo de snapshot, validez y si hay lookup configurado."""
    try:
        cache = _get_cache()
        payload = {
            "ok": True,
            "serverInfo": {"name": APP_NAME, "version": "1.0"},
            "filename": str(cache.filename),
            "path": str(cache.path),
            "validity": cache.get_validity(),
            "lookup": cache.get_lookup() is not None,
            "entries": len(cache),
            "generated_at": _now(),
        }
    except Exception as e:
        log.exception("get_info error")
        payload = {"ok": False, "error": str(e), "generated_at": _now()}
    return _json(payload)


@app.tool()
def cache_get(key: str) -> str:
    """Valor vigente de una clave (refresca o expira según política)."""
    try:
        missing = object()
        value = _get_cache().get(key, missing)
        if value is missing:
            return _json({"ok": True, "key": key, "found": False, "generated_at": _now()})
        return _json({"ok": True, "key": key, "found": True, "value": value, "generated_at": _now()})
    except Exception as e:
        log.exception("cache_get error")
        return _json({"ok": False, "error": str(e), "generated_at": _now()})


@app.tool()
def cache_set(key: str, value: Any) -> str:
    """Guarda value bajo key y persiste el snapshot."""
    try:
        _get_cache().set(key, value)
        payload = {"ok": True, "key": key, "generated_at": _now()}
    except Exception as e:
        log.exception("cache_set error")
        payload = {"ok": False, "error": str(e), "generated_at": _now()}
    return _json(payload)


@app.tool()
def set_validity(seconds: int) -> str:
    """Cambia la validez (segundos) de esta sesión; no se persiste."""
    try:
        cache = _get_cache()
        cache.set_validity(seconds)
        payload = {"ok": True, "validity": cache.get_validity(), "generated_at": _now()}
    except Exception as e:
        payload = {"ok": False, "error": str(e), "generated_at": _now()}
    return _json(payload)


# ------------ Main ------------
def _run_stdio_app(app: FastMCP) -> int:
    """Arranca la app por STDIO (app.run en versiones recientes de mcp)."""
    meth = getattr(app, "run", None)
    if meth is None:
        log.error("FastMCP sin app.run; actualiza el paquete 'mcp'")
        return 2

    import anyio

    if inspect.iscoroutinefunction(meth):
        anyio.run(meth)
    else:
        meth()
    return 0


if __name__ == "__main__":
    sys.exit(_run_stdio_app(app))
