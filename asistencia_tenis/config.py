"""
Configuración del sistema de asistencia de tenis.

Los valores se resuelven desde variables de entorno. Si existe un archivo
`.env` en la raíz del proyecto (o en el directorio de trabajo) se carga antes
con python-dotenv.

IMPORTANTE: la URL del Apps Script solo la necesita el proxy; el cliente habla
únicamente con el proxy (SHEETS_PROXY_URL).
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Ruta base del proyecto
BASE_DIR = Path(__file__).resolve().parent.parent

# Cargar variables de entorno desde archivo .env
_env_path = BASE_DIR / ".env"
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()


def get_env_variable(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    """Obtiene una variable de entorno; lanza ValueError si es requerida y falta."""
    value = os.getenv(key)
    if value is None or str(value).strip() == "":
        if required:
            raise ValueError(f"Variable de entorno requerida no configurada: {key}")
        return default
    return str(value).strip()


def get_env_int(key: str, default: int = 0) -> int:
    val = os.getenv(key)
    if val is None:
        return default
    try:
        return int(str(val).strip())
    except ValueError:
        logger.warning(f"Valor entero inválido para {key}={val!r}; usando {default}")
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    val = os.getenv(key)
    if val is None:
        return default
    try:
        return float(str(val).strip())
    except ValueError:
        logger.warning(f"Valor decimal inválido para {key}={val!r}; usando {default}")
        return default


class Config:
    """
    Clase de configuración del sistema.
    Centraliza parámetros del sistema para fácil mantenimiento.
    """

    # --- Conexión ---
    SHEETS_PROXY_URL = get_env_variable("SHEETS_PROXY_URL", "http://127.0.0.1:8888/api/sheets")
    APPS_SCRIPT_URL = get_env_variable("APPS_SCRIPT_URL", "")

    # --- Proxy ---
    PROXY_HOST = get_env_variable("PROXY_HOST", "127.0.0.1")
    PROXY_PORT = get_env_int("PROXY_PORT", 8888)

    # --- Tiempos de espera (segundos) ---
    # Apps Script tiene arranques en frío lentos: las escrituras en lote esperan más
    READ_TIMEOUT_SEC = get_env_float("READ_TIMEOUT_SEC", 25.0)
    LONG_TIMEOUT_SEC = get_env_float("LONG_TIMEOUT_SEC", 60.0)
    CLIENT_TIMEOUT_SEC = get_env_float("CLIENT_TIMEOUT_SEC", 70.0)

    # --- Reintentos del proxy ---
    RETRY_MAX_RETRIES = get_env_int("RETRY_MAX_RETRIES", 2)
    RETRY_BASE_DELAY_SEC = get_env_float("RETRY_BASE_DELAY_SEC", 1.0)

    # --- Persistencia local ---
    LOCAL_STORE_PATH = get_env_variable("LOCAL_STORE_PATH", os.path.join("data", "asistencia_local.sqlite"))
    DRAFT_TTL_HOURS = get_env_int("DRAFT_TTL_HOURS", 24)
    CATALOG_CACHE_TTL_SEC = get_env_int("CATALOG_CACHE_TTL_SEC", 300)

    # --- Ventana de reporte de clases ---
    REPORT_PAST_DAYS = get_env_int("REPORT_PAST_DAYS", 30)
    REPORT_FUTURE_DAYS = get_env_int("REPORT_FUTURE_DAYS", 7)

    # --- Varios ---
    DEFAULT_USER = get_env_variable("DEFAULT_USER", "usuario")
    LOGS_DIR = get_env_variable("LOGS_DIR", "logs")
    MONITOR_INTERVAL_SEC = get_env_float("MONITOR_INTERVAL_SEC", 30.0)

    @classmethod
    def ensure_directories(cls):
        """Asegura que todos los directorios necesarios existan."""
        directories = [
            cls.LOGS_DIR,
            os.path.dirname(cls.LOCAL_STORE_PATH) or ".",
        ]
        for directory in directories:
            try:
                Path(directory).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"Error al crear directorio {directory}: {e}")


def get_system_info() -> Dict[str, Any]:
    """Resumen de configuración para diagnóstico (sin secretos)."""
    return {
        "version": "1.0",
        "proxy_url": Config.SHEETS_PROXY_URL,
        "upstream_configurado": bool(Config.APPS_SCRIPT_URL),
        "local_store_path": Config.LOCAL_STORE_PATH,
        "draft_ttl_hours": Config.DRAFT_TTL_HOURS,
    }
