"""Cache import option parsing.

Two directives are read from the frontend options: ``cache-imports``,
a JSON list of ``{"type": ..., "attrs": {...}}`` objects, and
``cache-from``, a comma-separated list of registry references.
"""

import json
from collections.abc import Mapping
from typing import Any

from pyimagegen.errors import CacheOptionsError
from pyimagegen.types import CacheImport

CACHE_IMPORTS_KEY = "cache-imports"
CACHE_FROM_KEY = "cache-from"


def _field(entry: Mapping[str, Any], name: str) -> Any:
    # buildkit clients send capitalised keys
    if name in entry:
        return entry[name]
    return entry.get(name.capitalize())


def _cache_import(entry: Any, index: int) -> CacheImport:
    if not isinstance(entry, Mapping):
        raise CacheOptionsError(f"{CACHE_IMPORTS_KEY}[{index}] must be an object")

    cache_type = _field(entry, "type")
    if not isinstance(cache_type, str) or not cache_type:
        raise CacheOptionsError(f"{CACHE_IMPORTS_KEY}[{index}].type must be a non-empty string")

    attrs = _field(entry, "attrs") or {}
    if not isinstance(attrs, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in attrs.items()
    ):
        raise CacheOptionsError(f"{CACHE_IMPORTS_KEY}[{index}].attrs must map strings to strings")
    return CacheImport(type=cache_type, attrs=dict(attrs))


def parse_cache_imports(options: Mapping[str, str]) -> list[CacheImport]:
    """Parse cache import directives.

    Entries from ``cache-imports`` come first, then one registry import
    per ``cache-from`` reference.

    Args:
        options: Frontend options.

    Returns:
        Cache imports in directive order.

    Raises:
        CacheOptionsError: If ``cache-imports`` is not a valid JSON list.
    """
    imports: list[CacheImport] = []

    raw = options.get(CACHE_IMPORTS_KEY, "")
    if raw.strip():
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CacheOptionsError(f"Failed to parse {CACHE_IMPORTS_KEY}: {e}") from e
        if not isinstance(entries, list):
            raise CacheOptionsError(f"{CACHE_IMPORTS_KEY} must be a JSON list")
        imports.extend(_cache_import(entry, i) for i, entry in enumerate(entries))

    for ref in options.get(CACHE_FROM_KEY, "").split(","):
        ref = ref.strip()
        if ref:
            imports.append(CacheImport(type="registry", attrs={"ref": ref}))
    return imports


__all__ = ["CACHE_FROM_KEY", "CACHE_IMPORTS_KEY", "parse_cache_imports"]
