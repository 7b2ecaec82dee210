"""Jerarquía de errores del sistema de asistencia."""

from typing import Any, Dict, List, Optional


class AsistenciaError(Exception):
    """Error base del sistema."""


class ValidationError(AsistenciaError):
    """Datos inválidos detectados antes de cualquier llamada de red. No se reintenta."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConflictError(ValidationError):
    """La clase ya fue reportada; reintentar no sirve."""

    def __init__(
        self,
        message: str,
        existing_status: Optional[str] = None,
        fecha: Optional[str] = None,
        grupo_codigo: Optional[str] = None,
        class_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.existing_status = existing_status
        self.fecha = fecha
        self.grupo_codigo = grupo_codigo
        self.class_id = class_id


class DataIntegrityError(AsistenciaError):
    """Registros construidos sin ID de clase."""

    def __init__(self, message: str, records: Optional[List[Any]] = None):
        super().__init__(message)
        self.records = records or []


class GatewayError(AsistenciaError):
    """Fallo al comunicarse con el backend (a través del proxy)."""

    def __init__(self, message: str, action: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.action = action
        self.details = details or {}


class TransientGatewayError(GatewayError):
    """Timeout, conexión caída o 502/503/504."""


class MalformedResponseError(TransientGatewayError):
    """La respuesta no es un objeto JSON; nunca se toma como éxito."""


class BackendError(GatewayError):
    """El backend respondió success=false."""


class StorageError(AsistenciaError):
    """Fallo irrecuperable del almacenamiento local."""
