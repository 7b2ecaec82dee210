import threading
from unittest import mock

import requests

from asistencia_tenis.sync.connectivity_monitor import ConnectivityMonitor, health_url_for


def _monitor(http, calls):
    return ConnectivityMonitor(lambda: calls.append(1), proxy_url="http://127.0.0.1:8888/api/sheets",
                               interval=0.01, http=http)


def test_health_url():
    assert health_url_for("http://127.0.0.1:8888/api/sheets") == "http://127.0.0.1:8888/healthz"


def test_sincroniza_solo_al_pasar_a_en_linea():
    http = mock.Mock()
    calls = []
    monitor = _monitor(http, calls)

    http.get.return_value = mock.Mock(status_code=200)
    assert monitor.check_once()
    assert not monitor.check_once()

    http.get.side_effect = requests.ConnectionError("caído")
    assert not monitor.check_once()
    assert monitor.online is False

    http.get.side_effect = None
    assert monitor.check_once()
    assert calls == [1, 1]
    http.get.assert_called_with("http://127.0.0.1:8888/healthz", timeout=3.0)


def test_error_http_cuenta_como_sin_conexion():
    http = mock.Mock()
    http.get.return_value = mock.Mock(status_code=503)
    calls = []

    assert not _monitor(http, calls).check_once()
    assert calls == []


def test_error_en_la_sincronizacion_no_detiene_el_monitor():
    http = mock.Mock()
    http.get.return_value = mock.Mock(status_code=200)

    def boom():
        raise RuntimeError("fallo")

    monitor = ConnectivityMonitor(boom, proxy_url="http://proxy/api/sheets", http=http)
    assert monitor.check_once()


def test_start_stop():
    http = mock.Mock()
    http.get.return_value = mock.Mock(status_code=200)
    synced = threading.Event()
    monitor = ConnectivityMonitor(synced.set, proxy_url="http://proxy/api/sheets", interval=0.01, http=http)

    monitor.start()
    assert synced.wait(2.0)
    monitor.stop(timeout=2.0)

    assert not monitor._thr.is_alive()
