import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..models import Draft
from ..utils import now_iso, parse_iso
from .local_store import DRAFT_KEY, LocalStore

logger = logging.getLogger(__name__)

# Marca de versión del formato del borrador; los de otra versión se descartan
DRAFT_VERSION = "2"


class DraftStore:
    """Borrador de la sesión de asistencia en curso (uno solo a la vez)."""

    def __init__(self, store: LocalStore, ttl_hours: int = 24):
        self.store = store
        self.ttl = timedelta(hours=max(1, int(ttl_hours)))

    def save(self, draft: Draft) -> None:
        """Sobrescribe el borrador actual. Propaga StorageError."""
        draft.timestamp = now_iso()
        draft.version = DRAFT_VERSION
        self.store.set(DRAFT_KEY, draft.to_dict())
        logger.debug(f"Borrador guardado ({draft.grupo_codigo} {draft.fecha}, classId={draft.class_id})")

    def recover(self, now: Optional[datetime] = None) -> Optional[Draft]:
        """Recupera el borrador si sigue vigente; si expiró o es inválido, lo purga."""
        raw = self.store.get(DRAFT_KEY)
        if not raw:
            return None
        if not isinstance(raw, dict) or str(raw.get("version") or "") != DRAFT_VERSION:
            logger.info("Borrador con versión distinta o formato inválido; se descarta")
            self.clear()
            return None
        created = parse_iso(str(raw.get("timestamp") or ""))
        now = now or datetime.now(timezone.utc)
        if created is None or now - created > self.ttl:
            logger.info("Borrador expirado; se descarta")
            self.clear()
            return None
        try:
            return Draft.from_dict(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Borrador ilegible; se descarta: {e}")
            self.clear()
            return None

    def clear(self) -> None:
        self.store.remove(DRAFT_KEY)
        logger.debug("Borrador eliminado")
