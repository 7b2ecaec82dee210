import json
import logging
from typing import Any, Dict, List, Optional

import requests

from ..config import Config
from ..errors import BackendError, MalformedResponseError, TransientGatewayError
from .sheets_proxy import LONG_OPERATIONS

logger = logging.getLogger(__name__)


class SheetsClient:
    """Cliente del backend (Apps Script) a través del proxy.

    Lecturas: GET con parámetros de consulta. Escrituras: POST con
    `{action, ...}`. Toda respuesta debe ser un objeto JSON con `success`.
    Los reintentos con backoff los hace el proxy; aquí se hace un solo intento.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        read_timeout: Optional[float] = None,
        long_timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or Config.SHEETS_PROXY_URL).rstrip("/")
        self.read_timeout = read_timeout if read_timeout is not None else Config.READ_TIMEOUT_SEC + 5
        self.long_timeout = long_timeout if long_timeout is not None else Config.CLIENT_TIMEOUT_SEC
        self.session = session or requests.Session()

    def _timeout(self, action: str) -> float:
        return self.long_timeout if action in LONG_OPERATIONS else self.read_timeout

    def _parse(self, action: str, resp) -> Dict[str, Any]:
        try:
            data = json.loads(resp.text)
        except ValueError:
            data = None
        if not isinstance(data, dict):
            if resp.status_code >= 500:
                raise TransientGatewayError(f"HTTP {resp.status_code} en {action}", action=action)
            raise MalformedResponseError(f"Respuesta no válida del servidor para {action}", action=action,
                                         details={"status": resp.status_code, "body": (resp.text or "")[:200]})
        if resp.status_code in (502, 503, 504) or (resp.status_code >= 500 and not data.get("success")):
            # Fallo estructurado del proxy tras agotar reintentos
            raise TransientGatewayError(data.get("error") or f"HTTP {resp.status_code} en {action}",
                                        action=action, details=data)
        if not data.get("success"):
            raise BackendError(data.get("error") or "Error desconocido del servidor", action=action, details=data)
        return data

    def _request(self, action: str, params: Optional[Dict[str, Any]] = None,
                 body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        timeout = self._timeout(action)
        try:
            if body is None:
                query = {"action": action}
                for k, v in (params or {}).items():
                    if v is not None:
                        query[k] = v
                logger.debug(f"Petición GET: {action} {params or {}}")
                resp = self.session.get(self.base_url, params=query, timeout=timeout)
            else:
                payload = {"action": action}
                payload.update(body)
                logger.debug(f"Petición POST: {action}")
                resp = self.session.post(self.base_url, json=payload, timeout=timeout)
        except requests.Timeout as e:
            raise TransientGatewayError(f"Tiempo de espera agotado en {action}", action=action) from e
        except requests.RequestException as e:
            raise TransientGatewayError(f"Error de red en {action}: {e}", action=action) from e
        return self._parse(action, resp)

    # ===== Lecturas =====

    def get_groups(self) -> List[Dict[str, Any]]:
        return self._request("getGroups").get("data") or []

    def get_students(self) -> List[Dict[str, Any]]:
        return self._request("getStudents").get("data") or []

    def get_students_by_group(self, grupo_codigo: str) -> List[Dict[str, Any]]:
        return self._request("getStudentsByGroup", params={"groupCode": grupo_codigo}).get("data") or []

    def get_professors(self) -> List[Dict[str, Any]]:
        return self._request("getProfessors").get("data") or []

    def get_assistants(self) -> List[Dict[str, Any]]:
        return self._request("getAssistants").get("data") or []

    def check_class_exists(self, fecha: str, grupo_codigo: str, hora: str) -> Dict[str, Any]:
        """Retorna {success, exists, classId?, classData?}."""
        return self._request(
            "checkClassExists",
            params={"fecha": fecha, "grupo_codigo": grupo_codigo, "hora": hora},
        )

    def test_connection(self) -> Dict[str, Any]:
        try:
            data = self._request("testConnection")
            return {"success": True, "message": data.get("message") or "OK", "timestamp": data.get("timestamp")}
        except (TransientGatewayError, BackendError) as e:
            logger.warning(f"Error de conectividad: {e}")
            return {"success": False, "error": str(e)}

    # ===== Escrituras =====

    def create_class_record(self, class_payload: Dict[str, Any]) -> Dict[str, Any]:
        """Retorna {success, data:{id, ...}}."""
        return self._request("createClassRecord", body=dict(class_payload))

    def save_attendance(self, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not rows:
            raise ValueError("Datos de asistencia vacíos")
        result = self._request("saveAttendance", body={"attendanceData": rows})
        logger.info(f"Asistencia guardada: {result.get('count', len(rows))} registros")
        return result

    def save_group_reposition(self, reposition_record: Dict[str, Any],
                              attendance_rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request(
            "saveGroupReposition",
            body={"repositionRecord": reposition_record, "attendanceRecords": attendance_rows},
        )
