"""
Cola durable de envíos pendientes (clave `pending_attendance`).

Estructura persistida: lista JSON de entradas
    { "id": "PENDING...", "kind": "attendance", "payload": {...}, "enqueuedAt": iso }

Reglas:
- Se agrega solo cuando falla un intento en línea.
- Se quita solo tras confirmación del backend (leer, enviar, y recién entonces borrar).
- Nunca se descarta nada en silencio: entradas ilegibles quedan en la cola.
"""

import logging
import threading
from typing import Any, Dict, Iterable, List, Tuple

from ..errors import StorageError
from ..models import PendingKind, PendingSubmission
from ..utils import generate_id, now_iso
from .local_store import PENDING_KEY, LocalStore

logger = logging.getLogger(__name__)


class PendingQueue:
    def __init__(self, store: LocalStore):
        self.store = store
        self._lock = threading.RLock()

    def _load_raw(self, for_write: bool = False) -> List[Dict[str, Any]]:
        raw = self.store.get(PENDING_KEY, [], strict=for_write)
        if not isinstance(raw, list):
            # No sobrescribir datos que no entendemos
            if for_write:
                raise StorageError("La cola pendiente tiene un formato inesperado; no se sobrescribe")
            logger.error("Cola pendiente con formato inesperado")
            return []
        return raw

    def enqueue(self, kind: PendingKind, payload: Dict[str, Any]) -> PendingSubmission:
        return self.enqueue_many([(kind, payload)])[0]

    def enqueue_many(self, items: Iterable[Tuple[PendingKind, Dict[str, Any]]]) -> List[PendingSubmission]:
        """Agrega varias entradas con una única escritura durable. Propaga StorageError."""
        with self._lock:
            queue = self._load_raw(for_write=True)
            created: List[PendingSubmission] = []
            for kind, payload in items:
                entry = PendingSubmission(
                    pending_id=generate_id("PENDING"),
                    kind=PendingKind(kind),
                    payload=dict(payload),
                    enqueued_at=now_iso(),
                )
                queue.append(entry.to_dict())
                created.append(entry)
            if created:
                self.store.set(PENDING_KEY, queue)
                logger.info(f"{len(created)} envíos agregados a la cola pendiente (total {len(queue)})")
            return created

    def list(self) -> List[PendingSubmission]:
        with self._lock:
            entries: List[PendingSubmission] = []
            for raw in self._load_raw():
                try:
                    entries.append(PendingSubmission.from_dict(raw))
                except (TypeError, ValueError) as e:
                    logger.error(f"Entrada pendiente ilegible (se conserva en la cola): {e}")
            return entries

    def remove(self, pending_ids: Iterable[str]) -> int:
        ids = {str(i) for i in pending_ids}
        if not ids:
            return 0
        with self._lock:
            queue = self._load_raw(for_write=True)
            remaining = [e for e in queue if str(e.get("id")) not in ids]
            removed = len(queue) - len(remaining)
            if removed:
                self.store.set(PENDING_KEY, remaining)
            return removed

    def complete_class_creation(self, pending_id: str, local_id: str, class_id: str) -> int:
        """Quita la creación de clase confirmada y reapunta sus filas al ID real.

        Ambas cosas van en una sola escritura: si el proceso se corta después,
        las asistencias encoladas ya no referencian el ID local. Retorna
        cuántas filas se reapuntaron.
        """
        with self._lock:
            queue = self._load_raw(for_write=True)
            remaining: List[Dict[str, Any]] = []
            relinked = 0
            for entry in queue:
                if str(entry.get("id")) == str(pending_id):
                    continue
                payload = entry.get("payload")
                if (
                    local_id != class_id
                    and entry.get("kind") in (PendingKind.ATTENDANCE.value, PendingKind.CANCELLATION.value)
                    and isinstance(payload, dict)
                    and payload.get("ID_Clase") == local_id
                ):
                    entry = dict(entry, payload=dict(payload, ID_Clase=class_id))
                    relinked += 1
                remaining.append(entry)
            if relinked or len(remaining) != len(queue):
                self.store.set(PENDING_KEY, remaining)
            if relinked:
                logger.info(f"{relinked} asistencias pendientes reapuntadas de {local_id} a {class_id}")
            return relinked

    def count(self) -> int:
        return len(self._load_raw())

    def count_by_kind(self) -> Dict[str, int]:
        out: Dict[str, int] = {k.value: 0 for k in PendingKind}
        for entry in self._load_raw():
            k = str(entry.get("kind") or "")
            out[k] = out.get(k, 0) + 1
        return out
