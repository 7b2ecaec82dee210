"""
Construcción de registros de asistencia a partir de las marcas de la UI.

Funciones puras salvo por la generación de ID y timestamp.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Union

from ..errors import DataIntegrityError, ValidationError
from ..models import AttendanceRecord, AttendanceStatus, ClassType, Mark, parse_enum
from ..utils import generate_id, now_iso

logger = logging.getLogger(__name__)


@dataclass
class BuildOptions:
    fecha: str
    grupo_codigo: str = ""
    id_clase: str = ""
    tipo_clase: ClassType = ClassType.REGULAR
    enviado_por: str = "usuario"
    justificacion: str = ""
    descripcion: str = ""


@dataclass
class BuildError:
    index: int
    student_id: str
    error: str


@dataclass
class BuildResult:
    records: List[AttendanceRecord] = field(default_factory=list)
    errors: List[BuildError] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def build_attendance_record(
    student_id: str,
    grupo_codigo: str,
    status: Union[AttendanceStatus, str],
    options: BuildOptions,
) -> AttendanceRecord:
    """Arma un AttendanceRecord completo con ID nuevo y timestamp actual.

    Lanza ValidationError si falta estudiante, grupo o estado, o si el estado
    no pertenece al enum. Un `id_clase` vacío no se rechaza: se registra un
    error en el log para que quien llama detecte y repare el vínculo.
    """
    student_id = str(student_id or "").strip()
    grupo_codigo = str(grupo_codigo or "").strip()
    if not student_id:
        raise ValidationError("ID de estudiante requerido", field="estudiante_id")
    if not grupo_codigo:
        raise ValidationError("Código de grupo requerido", field="grupo_codigo")
    if status is None or str(getattr(status, "value", status)).strip() == "":
        raise ValidationError("Estado de asistencia requerido", field="estado")
    estado = parse_enum(AttendanceStatus, status)
    if estado is None:
        raise ValidationError(f"Estado de asistencia inválido: {status}", field="estado")
    tipo = parse_enum(ClassType, options.tipo_clase)
    if tipo is None:
        raise ValidationError(f"Tipo de clase inválido: {options.tipo_clase}", field="tipo_clase")

    id_clase = str(options.id_clase or "").strip()
    if not id_clase:
        logger.error(f"Registro de asistencia sin ID de clase (estudiante {student_id}, grupo {grupo_codigo})")

    return AttendanceRecord(
        id=generate_id("AST"),
        id_clase=id_clase,
        fecha=options.fecha,
        estudiante_id=student_id,
        grupo_codigo=grupo_codigo,
        tipo_clase=tipo,
        estado=estado,
        justificacion=options.justificacion or "",
        descripcion=options.descripcion or "",
        enviado_por=options.enviado_por or "usuario",
        timestamp=now_iso(),
    )


def _mark_fields(mark: Any) -> Mapping[str, Any]:
    if isinstance(mark, Mark):
        return {"status": mark.status, "justification": mark.justification, "description": mark.description}
    if isinstance(mark, Mapping):
        return mark
    # Marca simple: solo el estado
    return {"status": mark}


def build_group_attendance_records(
    marks_by_student: Mapping[str, Any],
    options: BuildOptions,
) -> BuildResult:
    """Construye un registro por estudiante; los fallos individuales no abortan el lote.

    Todos los registros exitosos comparten `options.id_clase`.
    """
    grupo_codigo = options.grupo_codigo
    result = BuildResult()
    for index, (student_id, mark) in enumerate(marks_by_student.items()):
        fields = _mark_fields(mark)
        sid = str(fields.get("studentId") or student_id or "")
        try:
            record = build_attendance_record(
                sid,
                grupo_codigo,
                fields.get("status"),
                BuildOptions(
                    fecha=options.fecha,
                    grupo_codigo=grupo_codigo,
                    id_clase=options.id_clase,
                    tipo_clase=options.tipo_clase,
                    enviado_por=options.enviado_por,
                    justificacion=str(fields.get("justification") or options.justificacion or ""),
                    descripcion=str(fields.get("description") or options.descripcion or ""),
                ),
            )
        except ValidationError as e:
            result.errors.append(BuildError(index=index, student_id=sid, error=str(e)))
            continue
        result.records.append(record)

    missing = [r for r in result.records if not r.id_clase]
    if missing:
        logger.error(f"{len(missing)} registros sin ID de clase en el lote del grupo {grupo_codigo}")

    counts: Dict[str, int] = {s.value: 0 for s in AttendanceStatus}
    for r in result.records:
        counts[r.estado.value] += 1
    result.summary = {
        "total": len(marks_by_student),
        "built": len(result.records),
        "errors": len(result.errors),
        "missingClassId": len(missing),
        **counts,
    }
    return result


def ensure_class_linkage(records: List[AttendanceRecord]) -> None:
    """Lanza DataIntegrityError si algún registro no tiene ID de clase."""
    missing = [r for r in records if not r.id_clase]
    if missing:
        raise DataIntegrityError(f"{len(missing)} registros sin ID_Clase", records=missing)
