"""
Reposiciones: individuales (dentro de una clase ya reportada) y grupales
(clase especial con cancha y profesor propios).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..errors import GatewayError, StorageError, ValidationError
from ..models import AttendanceRecord, AttendanceStatus, ClassType, PendingKind
from ..utils import generate_id, is_valid_date, is_valid_time_range, now_iso, sanitize_time_token
from .record_builder import BuildOptions, build_attendance_record
from .submission_pipeline import DATA_LOSS_MESSAGE, OFFLINE_MESSAGE, SubmissionOutcome, SubmissionPipeline
from .session import AttendanceSession, SessionState

logger = logging.getLogger(__name__)

MIN_CANCHA = 1
MAX_CANCHA = 5
MIN_REPOSICIONES = 1
MAX_REPOSICIONES = 5


@dataclass
class SelectionValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class GroupRepositionForm:
    fecha: str
    hora: str
    cancha: int
    profesor_id: str
    profesor_nombre: str
    estudiantes: List[Dict[str, Any]]
    numero_reposiciones: int = 1
    asistente_id: Optional[str] = None


def validate_selection(selected_students: Sequence[Dict[str, Any]]) -> SelectionValidation:
    if not isinstance(selected_students, (list, tuple)):
        return SelectionValidation(False, ["Lista de estudiantes inválida"])
    if not selected_students:
        return SelectionValidation(False, ["Debe seleccionar al menos un estudiante"])

    errors = []
    seen = set()
    duplicates = []
    for student in selected_students:
        sid = str(student.get("id") or "")
        if sid in seen:
            duplicates.append(sid)
        seen.add(sid)
    if duplicates:
        errors.append(f"Estudiantes duplicados: {', '.join(duplicates)}")
    for student in selected_students:
        if not student.get("id") or not student.get("nombre"):
            errors.append(f"Estudiante con datos incompletos: {student.get('id') or 'ID faltante'}")
    return SelectionValidation(not errors, errors)


def search_students_by_name(students: Sequence[Dict[str, Any]], term: str) -> List[Dict[str, Any]]:
    term = (term or "").strip().lower()
    if not term:
        return list(students)
    return [s for s in students if term in str(s.get("nombre") or "").lower()]


class RepositionService:
    """Reposición individual: estudiantes de otros grupos que recuperan en la clase actual."""

    def __init__(self, catalog, pipeline: SubmissionPipeline):
        self.catalog = catalog
        self.pipeline = pipeline

    def get_available_students(self) -> List[Dict[str, Any]]:
        return [s for s in self.catalog.get_students() if s.get("activo", True)]

    def create_reposition_records(self, selected_students: Sequence[Dict[str, Any]],
                                  session: AttendanceSession) -> List[AttendanceRecord]:
        if not session.grupo_codigo or not session.class_id or not session.fecha:
            raise ValidationError("Datos de clase incompletos para reposición")
        records = []
        for student in selected_students:
            records.append(build_attendance_record(
                student["id"],
                session.grupo_codigo,
                AttendanceStatus.PRESENTE,
                BuildOptions(
                    fecha=session.fecha,
                    grupo_codigo=session.grupo_codigo,
                    id_clase=session.class_id,
                    tipo_clase=ClassType.REPOSICION,
                    enviado_por=session.enviado_por,
                    descripcion=f"Reposición individual - Grupo original: {student.get('grupo_principal') or ''}",
                ),
            ))
        logger.info(f"{len(records)} registros de reposición individual creados")
        return records

    def save_reposition(self, selected_students: Sequence[Dict[str, Any]],
                        session: AttendanceSession) -> SubmissionOutcome:
        """Guarda la reposición por el mismo camino en línea / cola que la asistencia."""
        validation = validate_selection(selected_students)
        if not validation.valid:
            raise ValidationError(f"Selección inválida: {', '.join(validation.errors)}")
        records = self.create_reposition_records(selected_students, session)
        return self.pipeline.save_records(None, records, PendingKind.ATTENDANCE, class_id=session.class_id)


class GroupRepositionService:
    """Reposición grupal: una clase especial con N registros por estudiante."""

    def __init__(self, client, catalog, pending, default_user: str = "usuario"):
        self.client = client
        self.catalog = catalog
        self.pending = pending
        self.default_user = default_user

    def get_form_data(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "professors": self.catalog.get_professors(),
            "students": [s for s in self.catalog.get_students() if s.get("activo", True)],
            "assistants": self.catalog.get_assistants(),
        }

    @staticmethod
    def validate_form_data(form: GroupRepositionForm) -> SelectionValidation:
        errors = []
        if not form.fecha or not is_valid_date(form.fecha):
            errors.append("Fecha es requerida y debe ser válida")
        if not form.hora or not is_valid_time_range(form.hora):
            errors.append("Hora debe tener formato HH:MM-HH:MM (ej: 15:00-16:30)")
        if not form.profesor_id:
            errors.append("Profesor es requerido")
        if not isinstance(form.cancha, int) or not MIN_CANCHA <= form.cancha <= MAX_CANCHA:
            errors.append(f"Cancha debe ser entre {MIN_CANCHA} y {MAX_CANCHA}")
        if not form.estudiantes:
            errors.append("Debe seleccionar al menos un estudiante")
        if (not isinstance(form.numero_reposiciones, int)
                or not MIN_REPOSICIONES <= form.numero_reposiciones <= MAX_REPOSICIONES):
            errors.append(f"Número de reposiciones debe ser entre {MIN_REPOSICIONES} y {MAX_REPOSICIONES}")
        return SelectionValidation(not errors, errors)

    @staticmethod
    def generate_class_id(fecha: str, hora: str, cancha: int) -> str:
        return f"REP_{fecha}_{sanitize_time_token(hora)}_C{cancha}"

    def create_reposition_record(self, form: GroupRepositionForm, creado_por: Optional[str] = None) -> Dict[str, Any]:
        return {
            "ID": generate_id("REP"),
            "Fecha": form.fecha,
            "Estudiantes_IDs": ",".join(str(s["id"]) for s in form.estudiantes),
            "Tipo": "Grupal",
            "Profesor": form.profesor_nombre,
            "Asistente_ID": form.asistente_id or "",
            "Descripcion": (f"Reposición grupal - {form.hora} - Cancha {form.cancha} - "
                            f"{len(form.estudiantes)} estudiantes"),
            "Creado_por": creado_por or self.default_user,
            "Timestamp": now_iso(),
        }

    def create_attendance_records(self, form: GroupRepositionForm, class_id: str,
                                  enviado_por: Optional[str] = None) -> List[AttendanceRecord]:
        total = form.numero_reposiciones
        records = []
        for student in form.estudiantes:
            for i in range(total):
                # El ID de la clase especial hace de código de grupo
                records.append(build_attendance_record(
                    student["id"],
                    class_id,
                    AttendanceStatus.PRESENTE,
                    BuildOptions(
                        fecha=form.fecha,
                        grupo_codigo=class_id,
                        id_clase=class_id,
                        tipo_clase=ClassType.ESPECIAL,
                        enviado_por=enviado_por or self.default_user,
                        descripcion=(f"Reposición grupal {i + 1}/{total} - "
                                     f"Grupo original: {student.get('grupo_principal') or ''}"),
                    ),
                ))
        return records

    def save_group_reposition(self, form: GroupRepositionForm, creado_por: Optional[str] = None) -> SubmissionOutcome:
        validation = self.validate_form_data(form)
        if not validation.valid:
            raise ValidationError(f"Datos inválidos: {', '.join(validation.errors)}")

        class_id = self.generate_class_id(form.fecha, form.hora, form.cancha)
        reposition = self.create_reposition_record(form, creado_por)
        rows = [r.to_backend() for r in self.create_attendance_records(form, class_id, creado_por)]

        try:
            self.client.save_group_reposition(reposition, rows)
        except GatewayError as e:
            logger.warning(f"No se pudo guardar la reposición grupal en línea: {e}")
            try:
                self.pending.enqueue(PendingKind.GROUP_REPOSITION,
                                     {"repositionRecord": reposition, "attendanceRecords": rows})
            except StorageError as se:
                logger.critical(f"Fallo el respaldo local de la reposición {class_id}: {se}")
                return SubmissionOutcome(state=SessionState.FAILED, message=DATA_LOSS_MESSAGE, class_id=class_id)
            return SubmissionOutcome(state=SessionState.OFFLINE_QUEUED, message=OFFLINE_MESSAGE,
                                     queued_count=len(rows), class_id=class_id)

        logger.info(f"Reposición grupal {class_id} guardada: {len(form.estudiantes)} estudiantes, {len(rows)} registros")
        return SubmissionOutcome(
            state=SessionState.ONLINE_SAVED,
            message=f"Reposición grupal guardada: {len(rows)} registros",
            saved_count=len(rows),
            class_id=class_id,
        )
