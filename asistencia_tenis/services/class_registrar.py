"""
Control de clases: una sola ClassRecord por (fecha, grupo, horario).

La unicidad se verifica del lado del cliente consultando al backend antes de
crear. No protege contra dos dispositivos reportando la misma clase al mismo
tiempo; eso requeriría una restricción única en la planilla.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Dict, Optional, Union

from ..errors import BackendError, ConflictError, GatewayError, ValidationError
from ..models import ClassRecord, ClassStatus, parse_enum
from ..utils import now_iso, parse_date, sanitize_group_token, sanitize_time_token

logger = logging.getLogger(__name__)


def generate_class_id(fecha: str, grupo_codigo: str, hora: str) -> str:
    """CLS_<fecha>_<hora saneada>_<grupo saneado>; determinístico."""
    return f"CLS_{fecha}_{sanitize_time_token(hora)}_{sanitize_group_token(grupo_codigo)}"


@dataclass
class ClassExistence:
    exists: bool
    class_id: str
    class_data: Optional[Dict[str, Any]] = None

    @property
    def existing_status(self) -> Optional[str]:
        if not self.class_data:
            return None
        return self.class_data.get("estado") or self.class_data.get("Estado")


@dataclass
class ClassReportValidation:
    valid: bool
    error: Optional[str] = None
    warning: Optional[str] = None
    class_id: Optional[str] = None
    conflict: bool = False
    existing_class: Optional[Dict[str, Any]] = field(default=None)


class ClassRegistrar:
    def __init__(
        self,
        client,
        catalog,
        past_days: int = 30,
        future_days: int = 7,
        today_provider: Callable[[], date] = date.today,
        default_user: str = "usuario",
    ):
        self.client = client
        self.catalog = catalog
        self.past_days = past_days
        self.future_days = future_days
        self.today_provider = today_provider
        self.default_user = default_user

    def class_exists(self, fecha: str, grupo_codigo: str) -> ClassExistence:
        """Consulta al backend. Los errores de red se propagan (no equivalen a 'no existe')."""
        group = self.catalog.get_group_by_code(grupo_codigo)
        hora = group.get("hora", "")
        derived_id = generate_class_id(fecha, grupo_codigo, hora)
        logger.debug(f"Verificando si la clase existe: {fecha} {grupo_codigo} {hora}")
        result = self.client.check_class_exists(fecha, grupo_codigo, hora)
        if "exists" not in result:
            raise BackendError("Respuesta de checkClassExists sin campo 'exists'", action="checkClassExists",
                               details=result)
        exists = bool(result.get("exists"))
        class_data = result.get("classData") if exists else None
        class_id = str(result.get("classId") or (class_data or {}).get("id") or derived_id)
        return ClassExistence(exists=exists, class_id=class_id, class_data=class_data)

    def create_class(
        self,
        fecha: str,
        grupo_codigo: str,
        status: Union[ClassStatus, str],
        motivo_cancelacion: Optional[str] = None,
        asistente_id: Optional[str] = None,
        creado_por: Optional[str] = None,
    ) -> ClassRecord:
        estado = parse_enum(ClassStatus, status)
        if estado is None:
            raise ValidationError(f"Estado de clase inválido: {status}", field="estado")

        group = self.catalog.get_group_by_code(grupo_codigo)
        existing = self.class_exists(fecha, grupo_codigo)
        if existing.exists:
            existing_status = existing.existing_status or "desconocido"
            raise ConflictError(
                f'La clase {grupo_codigo} del {fecha} ya fue reportada como "{existing_status}"',
                existing_status=existing_status,
                fecha=fecha,
                grupo_codigo=grupo_codigo,
                class_id=existing.class_id,
            )

        record = self.prepare_class_record(fecha, grupo_codigo, group.get("hora", ""), estado,
                                           motivo_cancelacion, asistente_id, creado_por)
        return self.submit_class_record(record)

    def prepare_class_record(
        self,
        fecha: str,
        grupo_codigo: str,
        hora: str,
        estado: ClassStatus,
        motivo_cancelacion: Optional[str] = None,
        asistente_id: Optional[str] = None,
        creado_por: Optional[str] = None,
    ) -> ClassRecord:
        """ClassRecord local (sin enviar) con el ID determinístico."""
        return ClassRecord(
            id=generate_class_id(fecha, grupo_codigo, hora),
            fecha=fecha,
            grupo_codigo=grupo_codigo,
            hora_grupo=hora,
            estado=estado,
            creado_por=creado_por or self.default_user,
            created_at=now_iso(),
            motivo_cancelacion=motivo_cancelacion or None,
            asistente_id=asistente_id or None,
        )

    def submit_class_record(self, record: ClassRecord) -> ClassRecord:
        """Envía la clase; solo es éxito si el backend confirma y devuelve un ID."""
        result = self.client.create_class_record(record.to_backend())
        data = result.get("data") if isinstance(result, dict) else None
        if not isinstance(data, dict) or not data.get("id"):
            raise BackendError("El backend no devolvió el ID de la clase creada", action="createClassRecord",
                               details=result if isinstance(result, dict) else {})
        backend_id = str(data["id"])
        if backend_id != record.id:
            logger.warning(f"El backend asignó un ID de clase distinto: {backend_id} (esperado {record.id})")
        created = ClassRecord(
            id=backend_id,
            fecha=record.fecha,
            grupo_codigo=record.grupo_codigo,
            hora_grupo=record.hora_grupo,
            estado=record.estado,
            creado_por=record.creado_por,
            created_at=str(data.get("created_at") or data.get("timestamp") or record.created_at),
            motivo_cancelacion=record.motivo_cancelacion,
            asistente_id=record.asistente_id,
        )
        logger.info(f"Clase creada: {created.id} ({created.estado.value})")
        return created

    def validate_class_report(self, fecha: str, grupo_codigo: str) -> ClassReportValidation:
        """Valida fecha, ventana [-past_days, +future_days], grupo y duplicado.

        Si el backend no responde durante la verificación de duplicado, el
        resultado es válido con advertencia: se prioriza poder trabajar sin
        conexión sobre la consistencia estricta.
        """
        parsed = parse_date(fecha)
        if parsed is None:
            return ClassReportValidation(valid=False, error="Fecha inválida")

        today = self.today_provider()
        if parsed > today + timedelta(days=self.future_days):
            return ClassReportValidation(
                valid=False,
                error=f"No se pueden reportar clases con más de {self.future_days} días de anticipación",
            )
        if parsed < today - timedelta(days=self.past_days):
            return ClassReportValidation(
                valid=False,
                error=f"No se pueden reportar clases de hace más de {self.past_days} días",
            )

        try:
            group = self.catalog.get_group_by_code(grupo_codigo)
        except ValidationError:
            return ClassReportValidation(valid=False, error=f"Grupo {grupo_codigo} no encontrado")
        except GatewayError as e:
            return ClassReportValidation(valid=False, error=f"No se pudo obtener el grupo {grupo_codigo}: {e}")

        derived_id = generate_class_id(fecha, grupo_codigo, group.get("hora", ""))
        try:
            existing = self.class_exists(fecha, grupo_codigo)
        except GatewayError as e:
            logger.warning(f"No se pudo verificar duplicado de {grupo_codigo} {fecha}; se continúa: {e}")
            return ClassReportValidation(
                valid=True,
                warning="No se pudo verificar si la clase ya fue reportada (sin conexión)",
                class_id=derived_id,
            )

        if existing.exists:
            return ClassReportValidation(
                valid=False,
                error=f"La clase {grupo_codigo} del {fecha} ya fue reportada",
                class_id=existing.class_id,
                conflict=True,
                existing_class=existing.class_data,
            )
        return ClassReportValidation(valid=True, class_id=existing.class_id)
