import json
from unittest import mock

import pytest
import requests

from asistencia_tenis.errors import BackendError, MalformedResponseError, TransientGatewayError
from asistencia_tenis.sync.sheets_client import SheetsClient

BASE_URL = "http://127.0.0.1:8888/api/sheets"


def _resp(status, body):
    text = body if isinstance(body, str) else json.dumps(body)
    return mock.Mock(status_code=status, text=text)


@pytest.fixture
def session():
    return mock.Mock()


@pytest.fixture
def client(session):
    return SheetsClient(base_url=BASE_URL, read_timeout=30, long_timeout=70, session=session)


def test_lectura_por_get_con_parametros(client, session):
    session.get.return_value = _resp(200, {"success": True, "data": [{"id": "S1"}]})

    assert client.get_students_by_group("G1") == [{"id": "S1"}]
    session.get.assert_called_once_with(
        BASE_URL, params={"action": "getStudentsByGroup", "groupCode": "G1"}, timeout=30)


def test_escritura_por_post_con_timeout_largo(client, session):
    session.post.return_value = _resp(200, {"success": True, "count": 1})
    rows = [{"ID": "AST1"}]

    assert client.save_attendance(rows)["count"] == 1
    session.post.assert_called_once_with(
        BASE_URL, json={"action": "saveAttendance", "attendanceData": rows}, timeout=70)


def test_save_attendance_vacio(client):
    with pytest.raises(ValueError):
        client.save_attendance([])


def test_fallo_estructurado_del_proxy_es_transitorio(client, session):
    session.post.return_value = _resp(502, {"success": False, "error": "Google Apps Script HTTP error: 503",
                                            "attempts": 3})

    with pytest.raises(TransientGatewayError) as exc:
        client.save_attendance([{"ID": "AST1"}])
    assert exc.value.details["attempts"] == 3


def test_respuesta_no_json_nunca_es_exito(client, session):
    session.get.return_value = _resp(200, "<html></html>")

    with pytest.raises(MalformedResponseError):
        client.get_groups()


def test_success_false_es_error_del_backend(client, session):
    session.get.return_value = _resp(200, {"success": False, "error": "Grupo no encontrado"})

    with pytest.raises(BackendError, match="Grupo no encontrado"):
        client.get_groups()


def test_timeout_local(client, session):
    session.get.side_effect = requests.Timeout("timeout")

    with pytest.raises(TransientGatewayError):
        client.get_groups()


def test_test_connection_no_lanza(client, session):
    session.get.side_effect = requests.ConnectionError("sin red")

    assert client.test_connection()["success"] is False


def test_check_class_exists(client, session):
    session.get.return_value = _resp(200, {"success": True, "exists": False})

    assert client.check_class_exists("2025-03-10", "G1", "15:45-16:30") == {"success": True, "exists": False}
    assert session.get.call_args.kwargs["params"] == {
        "action": "checkClassExists", "fecha": "2025-03-10", "grupo_codigo": "G1", "hora": "15:45-16:30"}
