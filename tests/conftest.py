from datetime import date

import pytest

from asistencia_tenis.errors import TransientGatewayError
from asistencia_tenis.services.catalog_service import CatalogService
from asistencia_tenis.services.class_registrar import ClassRegistrar, generate_class_id
from asistencia_tenis.services.submission_pipeline import SubmissionPipeline
from asistencia_tenis.storage.draft_store import DraftStore
from asistencia_tenis.storage.local_store import LocalStore
from asistencia_tenis.storage.pending_queue import PendingQueue

TODAY = date(2025, 3, 12)


class FakeSheetsClient:
    """Backend en memoria con la misma interfaz que SheetsClient."""

    def __init__(self):
        self.groups = [
            {"codigo": "G1", "hora": "15:45-16:30", "descriptor": "Grupo 1", "profe": "Ana", "activo": True},
            {"codigo": "G2", "hora": "17:00-18:00", "descriptor": "Grupo 2", "profe": "Luis", "activo": True},
        ]
        self.students = [
            {"id": "S1", "nombre": "Sofía", "grupo_principal": "G1", "grupo_secundario": "", "activo": True},
            {"id": "S2", "nombre": "Mateo", "grupo_principal": "G1", "grupo_secundario": "", "activo": True},
            {"id": "S3", "nombre": "Valentina", "grupo_principal": "G1", "grupo_secundario": "", "activo": True},
            {"id": "S4", "nombre": "Bruno", "grupo_principal": "G2", "grupo_secundario": "G1", "activo": True},
            {"id": "S5", "nombre": "Lucía", "grupo_principal": "G2", "grupo_secundario": "", "activo": False},
        ]
        self.professors = [{"id": "P1", "nombre": "Ana", "activo": True}]
        self.assistants = [{"id": "A1", "nombre": "Carla", "activo": True}]
        self.classes = {}
        self.attendance = []
        self.repositions = []
        self.calls = []
        self.offline_actions = set()
        self.offline = False
        self.id_override = None

    def _call(self, action):
        self.calls.append(action)
        if self.offline or action in self.offline_actions:
            raise TransientGatewayError(f"Tiempo de espera agotado en {action}", action=action)

    def get_groups(self):
        self._call("getGroups")
        return [dict(g) for g in self.groups]

    def get_students(self):
        self._call("getStudents")
        return [dict(s) for s in self.students]

    def get_students_by_group(self, grupo_codigo):
        self._call("getStudentsByGroup")
        return [dict(s) for s in self.students if s["grupo_principal"] == grupo_codigo]

    def get_professors(self):
        self._call("getProfessors")
        return [dict(p) for p in self.professors]

    def get_assistants(self):
        self._call("getAssistants")
        return [dict(a) for a in self.assistants]

    def check_class_exists(self, fecha, grupo_codigo, hora):
        self._call("checkClassExists")
        existing = self.classes.get((fecha, grupo_codigo, hora))
        if existing:
            return {"success": True, "exists": True, "classId": existing["id"], "classData": dict(existing)}
        return {"success": True, "exists": False}

    def create_class_record(self, payload):
        self._call("createClassRecord")
        class_id = self.id_override or generate_class_id(payload["fecha"], payload["grupo_codigo"],
                                                         payload["hora_grupo"])
        record = dict(payload, id=class_id)
        self.classes[(payload["fecha"], payload["grupo_codigo"], payload["hora_grupo"])] = record
        return {"success": True, "data": dict(record)}

    def save_attendance(self, rows):
        self._call("saveAttendance")
        self.attendance.extend(dict(r) for r in rows)
        return {"success": True, "count": len(rows)}

    def save_group_reposition(self, reposition_record, attendance_rows):
        self._call("saveGroupReposition")
        self.repositions.append(dict(reposition_record))
        self.attendance.extend(dict(r) for r in attendance_rows)
        return {"success": True, "data": {"id": reposition_record.get("ID")}}

    def test_connection(self):
        return {"success": not self.offline}


class RecordingListener:
    def __init__(self):
        self.states = []

    def on_state_change(self, state, session, detail=None):
        self.states.append(state)


@pytest.fixture
def fake_client():
    return FakeSheetsClient()


@pytest.fixture
def store(tmp_path):
    return LocalStore(str(tmp_path / "local.sqlite"))


@pytest.fixture
def catalog(fake_client, store):
    return CatalogService(fake_client, store)


@pytest.fixture
def registrar(fake_client, catalog):
    return ClassRegistrar(fake_client, catalog, today_provider=lambda: TODAY)


@pytest.fixture
def drafts(store):
    return DraftStore(store)


@pytest.fixture
def pending(store):
    return PendingQueue(store)


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def pipeline(fake_client, catalog, registrar, drafts, pending, listener):
    return SubmissionPipeline(fake_client, catalog, registrar, drafts, pending, listener=listener)
