"""
Cache en memoria de lecturas de hojas.

Es un componente explicito: se crea una instancia y se pasa al cliente de
hojas. TTL por entrada, invalidacion por clave o por patron y tamaño maximo
con desalojo de la entrada menos usada.
"""
from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float
    created_at: float
    hits: int = 0


class SheetCache:
    """
    Cache con TTL. Thread-safe: el cliente de hojas corre en worker threads.

    Claves: "spreadsheet_id:sheet_name" (ver SheetCache.key).
    """

    def __init__(
        self,
        ttl_s: float = 7200.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries debe ser >= 1")
        self.ttl_s = ttl_s
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def key(spreadsheet_id: str, sheet_name: str) -> str:
        return f"{spreadsheet_id}:{sheet_name}"

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                self._misses += 1
                return None
            entry.hits += 1
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        now = self._clock()
        ttl = self.ttl_s if ttl_s is None else ttl_s
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._evict(now)
            self._entries[key] = _CacheEntry(value=value, expires_at=now + ttl, created_at=now)

    def invalidate(self, key: str) -> bool:
        """Elimina una clave. Retorna True si existia."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_pattern(self, pattern: str) -> int:
        """
        Elimina las claves que matchean la regex (re.search).

        Ejemplo: invalidate_pattern(r"^spreadsheet123:") borra todas las
        hojas de un spreadsheet.
        """
        regex = re.compile(pattern)
        with self._lock:
            keys = [key for key in self._entries if regex.search(key)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "entries": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_s": self.ttl_s,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
            }

    def _evict(self, now: float) -> None:
        """Libera un lugar: primero expiradas, si no la de menos hits (la mas vieja en empate)."""
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        if expired:
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)
            return

        victim = min(
            self._entries.items(),
            key=lambda item: (item[1].hits, item[1].created_at),
        )[0]
        del self._entries[victim]
        self._evictions += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
