from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional


class ClassStatus(str, Enum):
    REALIZADA = "Realizada"
    CANCELADA = "Cancelada"


class AttendanceStatus(str, Enum):
    PRESENTE = "Presente"
    AUSENTE = "Ausente"
    JUSTIFICADA = "Justificada"
    CANCELADA = "Cancelada"


class ClassType(str, Enum):
    REGULAR = "Regular"
    REPOSICION = "Reposición"
    CANCELADA = "Cancelada"
    ESPECIAL = "Especial"


class PendingKind(str, Enum):
    ATTENDANCE = "attendance"
    CANCELLATION = "cancellation"
    CLASS_CREATION = "class_creation"
    GROUP_REPOSITION = "group_reposition"


def parse_enum(enum_cls, value):
    """Convierte un valor (str o miembro) al miembro del enum; None si no pertenece."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class ClassRecord:
    id: str
    fecha: str
    grupo_codigo: str
    hora_grupo: str
    estado: ClassStatus
    creado_por: str
    created_at: str
    motivo_cancelacion: Optional[str] = None
    asistente_id: Optional[str] = None

    def to_backend(self) -> Dict[str, Any]:
        """Payload de createClassRecord."""
        return {
            "fecha": self.fecha,
            "grupo_codigo": self.grupo_codigo,
            "hora_grupo": self.hora_grupo,
            "estado": self.estado.value,
            "motivo_cancelacion": self.motivo_cancelacion or "",
            "asistente_id": self.asistente_id or "",
            "creado_por": self.creado_por,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["estado"] = self.estado.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassRecord":
        return cls(
            id=str(data.get("id") or ""),
            fecha=str(data.get("fecha") or ""),
            grupo_codigo=str(data.get("grupo_codigo") or ""),
            hora_grupo=str(data.get("hora_grupo") or ""),
            estado=ClassStatus(data.get("estado")),
            creado_por=str(data.get("creado_por") or ""),
            created_at=str(data.get("created_at") or ""),
            motivo_cancelacion=data.get("motivo_cancelacion") or None,
            asistente_id=data.get("asistente_id") or None,
        )


@dataclass(frozen=True)
class AttendanceRecord:
    id: str
    id_clase: str
    fecha: str
    estudiante_id: str
    grupo_codigo: str
    tipo_clase: ClassType
    estado: AttendanceStatus
    justificacion: str = ""
    descripcion: str = ""
    enviado_por: str = ""
    timestamp: str = ""

    def to_backend(self) -> Dict[str, Any]:
        """Fila tal como la espera saveAttendance."""
        return {
            "ID": self.id,
            "ID_Clase": self.id_clase,
            "Fecha": self.fecha,
            "Estudiante_ID": self.estudiante_id,
            "Grupo_Codigo": self.grupo_codigo,
            "Tipo_Clase": self.tipo_clase.value,
            "Estado": self.estado.value,
            "Justificacion": self.justificacion,
            "Descripcion": self.descripcion,
            "Enviado_Por": self.enviado_por,
            "Timestamp": self.timestamp,
        }


@dataclass
class Mark:
    """Marca de un estudiante antes del envío."""
    status: AttendanceStatus
    justification: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "justification": self.justification, "description": self.description}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Mark":
        return cls(
            status=AttendanceStatus(data.get("status")),
            justification=str(data.get("justification") or ""),
            description=str(data.get("description") or ""),
        )


@dataclass
class Draft:
    grupo_codigo: str
    fecha: str
    attendance_data: Dict[str, Mark] = field(default_factory=dict)
    asistente_id: Optional[str] = None
    class_id: Optional[str] = None
    # True cuando class_id ya fue confirmado por el backend
    class_created: bool = False
    timestamp: str = ""
    version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groupCode": self.grupo_codigo,
            "fecha": self.fecha,
            "attendanceData": {sid: m.to_dict() for sid, m in self.attendance_data.items()},
            "selectedAssistant": self.asistente_id,
            "classId": self.class_id,
            "classCreated": self.class_created,
            "timestamp": self.timestamp,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Draft":
        marks = {str(sid): Mark.from_dict(m) for sid, m in (data.get("attendanceData") or {}).items()}
        return cls(
            grupo_codigo=str(data.get("groupCode") or ""),
            fecha=str(data.get("fecha") or ""),
            attendance_data=marks,
            asistente_id=data.get("selectedAssistant") or None,
            class_id=data.get("classId") or None,
            class_created=bool(data.get("classCreated")),
            timestamp=str(data.get("timestamp") or ""),
            version=str(data.get("version") or ""),
        )


@dataclass
class PendingSubmission:
    pending_id: str
    kind: PendingKind
    payload: Dict[str, Any]
    enqueued_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.pending_id,
            "kind": self.kind.value,
            "payload": self.payload,
            "enqueuedAt": self.enqueued_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingSubmission":
        return cls(
            pending_id=str(data.get("id")),
            kind=PendingKind(data.get("kind")),
            payload=data.get("payload") or {},
            enqueued_at=str(data.get("enqueuedAt") or ""),
        )
