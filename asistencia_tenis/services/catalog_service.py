import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import GatewayError, StorageError, ValidationError
from ..storage.local_store import (
    CACHED_ASSISTANTS_KEY,
    CACHED_GROUPS_KEY,
    CACHED_PROFESSORS_KEY,
    CACHED_STUDENTS_KEY,
    LocalStore,
)

logger = logging.getLogger(__name__)


def _is_active(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return True
    return str(value).strip().lower() not in ("false", "0", "no", "inactivo")


def normalize_group(group: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(group)
    out["codigo"] = str(group.get("codigo") or "").strip()
    out["hora"] = str(group.get("hora") or "").strip()
    out["descriptor"] = str(group.get("descriptor") or out["codigo"]).strip()
    out["profe"] = str(group.get("profe") or "").strip()
    out["activo"] = _is_active(group.get("activo"))
    return out


def normalize_student(student: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(student)
    # Los IDs llegan a veces como número desde la planilla
    out["id"] = str(student.get("id") or "").strip()
    out["nombre"] = str(student.get("nombre") or "").strip()
    out["grupo_principal"] = str(student.get("grupo_principal") or "").strip()
    out["grupo_secundario"] = str(student.get("grupo_secundario") or "").strip()
    out["activo"] = _is_active(student.get("activo"))
    return out


class CatalogService:
    """Listados de solo lectura (grupos, estudiantes, asistentes, profesores).

    Lectura en tres niveles: cache en memoria con TTL, backend, y como
    respaldo sin conexión la copia durable `cached_*` del almacenamiento local.
    """

    def __init__(self, client, store: Optional[LocalStore] = None, cache_ttl_sec: int = 300,
                 clock: Callable[[], float] = time.monotonic):
        self.client = client
        self.store = store
        self.cache_ttl_sec = cache_ttl_sec
        self._clock = clock
        self._cache: Dict[str, Tuple[float, List[Dict[str, Any]]]] = {}
        self.last_read_from_fallback = False

    def _read_through(self, key: str, loader: Callable[[], List[Dict[str, Any]]],
                      force_refresh: bool = False) -> List[Dict[str, Any]]:
        self.last_read_from_fallback = False
        cached = self._cache.get(key)
        if cached and not force_refresh and (self._clock() - cached[0]) < self.cache_ttl_sec:
            return cached[1]
        try:
            items = loader()
        except GatewayError as e:
            fallback = self._fallback(key)
            if fallback:
                logger.warning(f"Usando datos guardados localmente para {key} (sin conexión): {e}")
                self.last_read_from_fallback = True
                return fallback
            raise
        if not isinstance(items, list):
            raise ValidationError(f"Respuesta inválida del servidor para {key}")
        self._cache[key] = (self._clock(), items)
        if self.store is not None:
            try:
                self.store.set(key, items)
            except StorageError as e:
                logger.warning(f"No se pudo actualizar la copia local de {key}: {e}")
        return items

    def _fallback(self, key: str) -> List[Dict[str, Any]]:
        cached = self._cache.get(key)
        if cached and cached[1]:
            return cached[1]
        if self.store is None:
            return []
        stored = self.store.get(key, [])
        if isinstance(stored, list) and stored:
            self._cache[key] = (self._clock(), stored)
            return stored
        return []

    def clear_cache(self):
        self._cache.clear()

    # ===== Grupos =====

    def get_groups(self, force_refresh: bool = False) -> List[Dict[str, Any]]:
        def load():
            groups = [normalize_group(g) for g in self.client.get_groups()]
            return [g for g in groups if g["codigo"]]
        return self._read_through(CACHED_GROUPS_KEY, load, force_refresh)

    def get_group_by_code(self, codigo: str, force_refresh: bool = False) -> Dict[str, Any]:
        for group in self.get_groups(force_refresh):
            if group.get("codigo") == codigo:
                return group
        raise ValidationError(f"Grupo {codigo} no encontrado", field="grupo_codigo")

    # ===== Estudiantes =====

    def get_students(self, force_refresh: bool = False) -> List[Dict[str, Any]]:
        def load():
            students = [normalize_student(s) for s in self.client.get_students()]
            return [s for s in students if s["id"]]
        return self._read_through(CACHED_STUDENTS_KEY, load, force_refresh)

    def get_students_by_group(self, grupo_codigo: str, force_refresh: bool = False) -> List[Dict[str, Any]]:
        return [
            s for s in self.get_students(force_refresh)
            if s.get("activo", True) and grupo_codigo in (s.get("grupo_principal"), s.get("grupo_secundario"))
        ]

    # ===== Asistentes y profesores =====

    def get_assistants(self, force_refresh: bool = False) -> List[Dict[str, Any]]:
        def load():
            return [a for a in self.client.get_assistants() if _is_active(a.get("activo"))]
        return self._read_through(CACHED_ASSISTANTS_KEY, load, force_refresh)

    def get_professors(self, force_refresh: bool = False) -> List[Dict[str, Any]]:
        def load():
            return [p for p in self.client.get_professors() if _is_active(p.get("activo"))]
        return self._read_through(CACHED_PROFESSORS_KEY, load, force_refresh)
