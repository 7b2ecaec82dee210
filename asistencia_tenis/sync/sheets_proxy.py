"""
Proxy (relay) entre el cliente y el Web App de Google Apps Script.

Apps Script arranca en frío y puede tardar decenas de segundos; este proxy
absorbe esa latencia con tiempos de espera por tipo de acción y reintentos
con backoff exponencial, y siempre responde un objeto JSON con `success`.

Uso:
  python -m asistencia_tenis.sync.sheets_proxy
"""

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import requests
from flask import Flask, jsonify, request

from ..config import Config
from .retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

# Escrituras en lote y creación de clases: timeout extendido
LONG_OPERATIONS = frozenset({"saveAttendance", "createClassRecord", "saveGroupReposition"})

KNOWN_ACTIONS = frozenset({
    "getGroups", "getTodayGroups", "getStudents", "getStudentsByGroup",
    "getProfessors", "getAssistants", "getGroupByCode", "checkClassExists",
    "getSpreadsheetInfo", "testConnection", "saveAttendance", "createClassRecord",
    "saveGroupReposition",
})

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

_SUGGESTIONS = {
    "timeout": "Google Apps Script tardó demasiado en responder (posible arranque en frío). "
               "Espere unos segundos e intente nuevamente; los datos pueden quedar guardados localmente.",
    "network": "No se pudo conectar con Google Apps Script. Verifique la conexión a internet.",
    "upstream": "Google Apps Script devolvió un error. Revise el despliegue del script o intente más tarde.",
    "malformed": "Google Apps Script devolvió una respuesta que no es JSON. Revise el despliegue del script.",
}


def timeout_for(action: str, read_timeout: float, long_timeout: float) -> float:
    return long_timeout if action in LONG_OPERATIONS else read_timeout


def _failure(action: str, error: str, error_type: str, attempts: int, details: str = "") -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "success": False,
        "error": error,
        "errorType": error_type,
        "action": action,
        "attempts": attempts,
        "suggestion": _SUGGESTIONS.get(error_type, _SUGGESTIONS["upstream"]),
    }
    if details:
        body["details"] = details[:500]
    return body


def relay_action(
    request_data: Dict[str, Any],
    upstream_url: str,
    policy: Optional[RetryPolicy] = None,
    read_timeout: float = 25.0,
    long_timeout: float = 60.0,
    http: Any = requests,
) -> Tuple[int, Dict[str, Any]]:
    """Reenvía `request_data` al upstream. Retorna (status_http, cuerpo_json).

    Reintenta ante 502/503/504, timeout, error de conexión o cuerpo no-JSON.
    Otros códigos HTTP de error se devuelven de inmediato como fallo del upstream.
    """
    policy = policy or RetryPolicy()
    action = str(request_data.get("action") or "")
    timeout = timeout_for(action, read_timeout, long_timeout)
    started = time.monotonic()

    last_type = "network"
    last_error = ""
    last_details = ""
    attempt = 0
    while True:
        attempt += 1
        logger.info(f"[PROXY] {action}: intento {attempt}/{policy.max_attempts} (timeout {timeout:.0f}s)")
        try:
            resp = http.post(
                upstream_url,
                json=request_data,
                headers={"Content-Type": "application/json"},
                timeout=timeout,
            )
        except requests.Timeout as e:
            last_type, last_error, last_details = "timeout", f"Request timeout after {int(timeout * 1000)}ms", str(e)
        except requests.ConnectionError as e:
            last_type, last_error, last_details = "network", "Failed to connect to Google Apps Script", str(e)
        except requests.RequestException as e:
            logger.error(f"[PROXY] {action}: error de petición no recuperable: {e}")
            return 502, _failure(action, "Failed to connect to Google Apps Script", "upstream", attempt, str(e))
        else:
            status = int(resp.status_code)
            if 200 <= status < 300:
                try:
                    data = json.loads(resp.text)
                except ValueError:
                    data = None
                if isinstance(data, dict):
                    if not data.get("success"):
                        logger.warning(f"[PROXY] {action}: Apps Script devolvió success=false: {data.get('error')}")
                    elapsed = time.monotonic() - started
                    logger.info(f"[PROXY] {action}: OK en {elapsed:.1f}s ({attempt} intento/s)")
                    return 200, data
                last_type = "malformed"
                last_error = "Invalid JSON response from Google Apps Script"
                last_details = (resp.text or "")[:200]
            elif policy.is_retryable_status(status):
                last_type = "timeout" if status == 504 else "upstream"
                last_error = f"Google Apps Script HTTP error: {status}"
                last_details = (resp.text or "")[:500]
            else:
                logger.error(f"[PROXY] {action}: Apps Script HTTP {status} (no reintentable)")
                return 502, _failure(action, f"Google Apps Script HTTP error: {status}", "upstream",
                                     attempt, (resp.text or "")[:500])

        logger.warning(f"[PROXY] {action}: intento {attempt} falló ({last_type}): {last_error}")
        if not policy.should_retry(attempt):
            break
        delay = policy.wait(attempt)
        logger.info(f"[PROXY] {action}: reintentando tras {delay:.1f}s")

    status_code = 504 if last_type == "timeout" else 502
    logger.error(f"[PROXY] {action}: agotados {attempt} intentos ({last_type})")
    return status_code, _failure(action, last_error, last_type, attempt, last_details)


def create_app(
    upstream_url: Optional[str] = None,
    policy: Optional[RetryPolicy] = None,
    read_timeout: Optional[float] = None,
    long_timeout: Optional[float] = None,
    http: Any = requests,
) -> Flask:
    app = Flask(__name__)

    upstream = (upstream_url if upstream_url is not None else Config.APPS_SCRIPT_URL) or ""
    retry_policy = policy or RetryPolicy(
        max_retries=Config.RETRY_MAX_RETRIES, base_delay=Config.RETRY_BASE_DELAY_SEC
    )
    r_timeout = read_timeout if read_timeout is not None else Config.READ_TIMEOUT_SEC
    l_timeout = long_timeout if long_timeout is not None else Config.LONG_TIMEOUT_SEC

    @app.after_request
    def _cors(response):
        response.headers.update(CORS_HEADERS)
        return response

    @app.route("/healthz", methods=["GET"])
    def healthz():
        return jsonify({"status": "ok", "upstream_configurado": bool(upstream)}), 200

    @app.route("/")
    def index():
        return jsonify({
            "name": "Asistencia Tenis - Sheets Proxy",
            "version": 1,
            "health": "/healthz",
            "endpoints": ["/api/sheets"],
        })

    @app.route("/api/sheets", methods=["GET", "POST", "OPTIONS"])
    def sheets_proxy():
        if request.method == "OPTIONS":
            return "", 200

        if request.method == "GET":
            params = request.args.to_dict()
            if not params.get("action"):
                return jsonify({"success": False, "error": "Action parameter is required in GET request"}), 400
            request_data: Dict[str, Any] = dict(params)
        else:
            raw = request.get_data(as_text=True) or "{}"
            try:
                request_data = json.loads(raw)
            except ValueError:
                logger.error("[PROXY] Body POST no es JSON válido")
                return jsonify({"success": False, "error": "Invalid JSON in request body"}), 400
            if not isinstance(request_data, dict):
                return jsonify({"success": False, "error": "Invalid JSON in request body"}), 400

        action = request_data.get("action")
        if not action:
            return jsonify({"success": False, "error": "Action parameter is required"}), 400
        if action not in KNOWN_ACTIONS:
            # Se reenvía igual: Apps Script decide
            logger.warning(f"[PROXY] Acción desconocida: {action}")
        if not upstream:
            logger.error("[PROXY] APPS_SCRIPT_URL no configurada")
            return jsonify({"success": False, "error": "Internal proxy error",
                            "details": "APPS_SCRIPT_URL no configurada", "action": action}), 500

        status_code, body = relay_action(
            request_data,
            upstream,
            policy=retry_policy,
            read_timeout=r_timeout,
            long_timeout=l_timeout,
            http=http,
        )
        return jsonify(body), status_code

    return app


if __name__ == "__main__":  # pragma: no cover
    from ..logger_config import setup_logging

    setup_logging()
    app = create_app()
    logger.info(f"Proxy iniciado en http://{Config.PROXY_HOST}:{Config.PROXY_PORT}/api/sheets")
    app.run(host=Config.PROXY_HOST, port=Config.PROXY_PORT)
