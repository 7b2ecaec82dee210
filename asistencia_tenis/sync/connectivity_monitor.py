import logging
import threading
from typing import Callable, Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from ..config import Config

logger = logging.getLogger(__name__)


def health_url_for(proxy_url: str) -> str:
    """http://host:port/api/sheets -> http://host:port/healthz"""
    parts = urlsplit(proxy_url)
    return urlunsplit((parts.scheme, parts.netloc, "/healthz", "", ""))


class ConnectivityMonitor:
    """Sondea periódicamente el `/healthz` del proxy.

    Al pasar de sin conexión a en línea llama a `on_online` (normalmente
    `SubmissionPipeline.sync_pending`). El primer sondeo exitoso también
    cuenta como transición para vaciar lo que haya quedado de otra sesión.
    """

    def __init__(
        self,
        on_online: Callable[[], object],
        proxy_url: Optional[str] = None,
        interval: Optional[float] = None,
        timeout: float = 3.0,
        http=requests,
    ):
        self.on_online = on_online
        self.health_url = health_url_for(proxy_url or Config.SHEETS_PROXY_URL)
        self.interval = interval if interval is not None else Config.MONITOR_INTERVAL_SEC
        self.timeout = timeout
        self.http = http
        self.online: Optional[bool] = None
        self._stop_evt = threading.Event()
        self._thr: Optional[threading.Thread] = None

    def probe(self) -> bool:
        try:
            r = self.http.get(self.health_url, timeout=self.timeout)
            return 200 <= r.status_code < 300
        except requests.RequestException as e:
            logger.debug(f"Sondeo de salud fallido: {e}")
            return False

    def check_once(self) -> bool:
        """Un ciclo del monitor. Retorna True si disparó la sincronización."""
        ok = self.probe()
        was_online = self.online
        self.online = ok
        if ok and was_online is not True:
            logger.info("Conexión disponible; sincronizando pendientes")
            try:
                self.on_online()
            except Exception as e:
                logger.error(f"Error al sincronizar tras reconexión: {e}", exc_info=True)
            return True
        if not ok and was_online:
            logger.warning("Conexión con el proxy perdida; los envíos se guardarán localmente")
        return False

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop_evt.clear()
        self._thr = threading.Thread(target=self._run, name="ConnectivityMonitor", daemon=True)
        self._thr.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_evt.set()
        if self._thr is not None:
            self._thr.join(timeout)

    def _run(self) -> None:
        while not self._stop_evt.is_set():
            self.check_once()
            self._stop_evt.wait(self.interval)
