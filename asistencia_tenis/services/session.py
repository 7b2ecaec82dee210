import logging
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Union

from ..errors import StorageError, ValidationError
from ..models import AttendanceStatus, Draft, Mark, parse_enum
from ..storage.draft_store import DraftStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    REJECTED = "rejected"
    BUILDING = "building"
    SUBMITTING = "submitting"
    ONLINE_SAVED = "online_saved"
    OFFLINE_QUEUED = "offline_queued"
    CLEARED = "cleared"
    FAILED = "failed"


class PipelineListener(Protocol):
    """Interfaz que implementa la UI para seguir el avance del envío."""

    def on_state_change(self, state: SessionState, session: "AttendanceSession",
                        detail: Optional[Dict[str, Any]] = None) -> None:
        ...


class AttendanceSession:
    """Estado de una sesión de reporte de clase (grupo + fecha).

    Reemplaza al estado global del controlador: se pasa explícitamente al
    pipeline. Si tiene un DraftStore, cada cambio local sobrescribe el borrador.
    """

    def __init__(
        self,
        grupo_codigo: str,
        fecha: str,
        enviado_por: str = "usuario",
        asistente_id: Optional[str] = None,
        class_id: Optional[str] = None,
        draft_store: Optional[DraftStore] = None,
    ):
        self.grupo_codigo = grupo_codigo
        self.fecha = fecha
        self.enviado_por = enviado_por
        self.asistente_id = asistente_id
        self.class_id = class_id
        self.class_created = False
        self.marks: Dict[str, Mark] = {}
        self.draft_store = draft_store
        self.state = SessionState.IDLE

    def set_mark(self, student_id: str, status: Union[AttendanceStatus, str],
                 justification: str = "", description: str = "") -> Mark:
        student_id = str(student_id or "").strip()
        if not student_id:
            raise ValidationError("ID de estudiante requerido", field="estudiante_id")
        estado = parse_enum(AttendanceStatus, status)
        if estado is None:
            raise ValidationError(f"Estado de asistencia inválido: {status}", field="estado")
        if estado == AttendanceStatus.JUSTIFICADA and not justification:
            logger.warning(f"Ausencia justificada sin motivo para el estudiante {student_id}")
        mark = Mark(status=estado, justification=justification or "", description=description or "")
        self.marks[student_id] = mark
        self._autosave()
        return mark

    def remove_mark(self, student_id: str) -> None:
        if self.marks.pop(str(student_id), None) is not None:
            self._autosave()

    def set_assistant(self, asistente_id: Optional[str]) -> None:
        self.asistente_id = asistente_id or None
        self._autosave()

    def to_draft(self) -> Draft:
        return Draft(
            grupo_codigo=self.grupo_codigo,
            fecha=self.fecha,
            attendance_data=dict(self.marks),
            asistente_id=self.asistente_id,
            class_id=self.class_id,
            class_created=self.class_created,
        )

    @classmethod
    def from_draft(cls, draft: Draft, enviado_por: str = "usuario",
                   draft_store: Optional[DraftStore] = None) -> "AttendanceSession":
        session = cls(
            grupo_codigo=draft.grupo_codigo,
            fecha=draft.fecha,
            enviado_por=enviado_por,
            asistente_id=draft.asistente_id,
            class_id=draft.class_id,
            draft_store=draft_store,
        )
        session.class_created = draft.class_created
        session.marks = dict(draft.attendance_data)
        return session

    def save_draft(self) -> None:
        """Persiste el borrador. Propaga StorageError."""
        if self.draft_store is not None:
            self.draft_store.save(self.to_draft())

    def _autosave(self) -> None:
        try:
            self.save_draft()
        except StorageError as e:
            logger.warning(f"No se pudo guardar el borrador local: {e}")
