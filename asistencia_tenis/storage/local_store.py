import json
import logging
import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, List, Optional

from ..errors import StorageError

logger = logging.getLogger(__name__)

# Claves conocidas del almacenamiento local
DRAFT_KEY = "attendance_draft"
PENDING_KEY = "pending_attendance"
CACHED_GROUPS_KEY = "cached_groups"
CACHED_STUDENTS_KEY = "cached_students"
CACHED_ASSISTANTS_KEY = "cached_assistants"
CACHED_PROFESSORS_KEY = "cached_professors"


class LocalStore:
    """Almacén clave-valor durable sobre SQLite con valores JSON.

    Cada `set` se confirma (commit) antes de retornar: si retorna sin error,
    el dato sobrevive a un cierre del proceso.
    """

    def __init__(self, db_path: str = "asistencia_local.sqlite"):
        self.db_path = db_path
        self._lock = threading.RLock()
        # Timeout corto para no bloquear la UI si otro proceso tiene el archivo
        self._sqlite_conn_timeout_sec: float = 2.0
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=self._sqlite_conn_timeout_sec)

    def _ensure_schema(self):
        try:
            directory = os.path.dirname(os.path.abspath(self.db_path))
            os.makedirs(directory, exist_ok=True)
            conn = self._connect()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"No se pudo abrir el almacenamiento local {self.db_path}: {e}") from e
        try:
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
            except sqlite3.Error as e:
                logger.debug(f"PRAGMA no aplicado en {self.db_path}: {e}")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS local_store (
                    store_key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"No se pudo crear el esquema local: {e}") from e
        finally:
            conn.close()

    def get(self, key: str, default: Any = None, strict: bool = False) -> Any:
        """Lee el valor de `key`.

        Con `strict=True` un error de SQLite o un JSON corrupto lanzan
        StorageError en lugar de devolver `default`. Es la lectura que deben
        usar los caminos que luego reescriben la clave completa.
        """
        with self._lock:
            try:
                conn = self._connect()
                try:
                    row = conn.execute(
                        "SELECT value_json FROM local_store WHERE store_key = ?", (key,)
                    ).fetchone()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                if strict:
                    raise StorageError(f"Error al leer '{key}' del almacenamiento local: {e}") from e
                logger.error(f"Error al leer '{key}' del almacenamiento local: {e}")
                return default
        if not row:
            return default
        try:
            return json.loads(row[0])
        except (TypeError, ValueError) as e:
            if strict:
                raise StorageError(f"Valor corrupto en '{key}'; no se sobrescribe: {e}") from e
            logger.error(f"Valor corrupto en '{key}'; se ignora: {e}")
            return default

    def set(self, key: str, value: Any) -> None:
        try:
            value_json = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Valor no serializable para '{key}': {e}") from e
        updated_at = datetime.now(timezone.utc).isoformat()
        with self._lock:
            try:
                conn = self._connect()
                try:
                    conn.execute(
                        """
                        INSERT INTO local_store (store_key, value_json, updated_at) VALUES (?, ?, ?)
                        ON CONFLICT(store_key) DO UPDATE SET value_json = excluded.value_json,
                                                             updated_at = excluded.updated_at
                        """,
                        (key, value_json, updated_at),
                    )
                    conn.commit()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageError(f"Error al guardar '{key}' en el almacenamiento local: {e}") from e

    def remove(self, key: str) -> None:
        with self._lock:
            try:
                conn = self._connect()
                try:
                    conn.execute("DELETE FROM local_store WHERE store_key = ?", (key,))
                    conn.commit()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageError(f"Error al eliminar '{key}' del almacenamiento local: {e}") from e

    def keys(self) -> List[str]:
        with self._lock:
            try:
                conn = self._connect()
                try:
                    rows = conn.execute("SELECT store_key FROM local_store ORDER BY store_key").fetchall()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                logger.error(f"Error al listar claves locales: {e}")
                return []
        return [r[0] for r in rows]

    def clear(self, prefix: Optional[str] = None) -> int:
        """Elimina todas las claves (o las que empiezan con `prefix`). Retorna cuántas."""
        with self._lock:
            try:
                conn = self._connect()
                try:
                    if prefix:
                        cur = conn.execute(
                            "DELETE FROM local_store WHERE substr(store_key, 1, ?) = ?",
                            (len(prefix), prefix),
                        )
                    else:
                        cur = conn.execute("DELETE FROM local_store")
                    conn.commit()
                    return int(cur.rowcount or 0)
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageError(f"Error al limpiar el almacenamiento local: {e}") from e
