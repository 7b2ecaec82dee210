import sqlite3

import pytest

from asistencia_tenis.errors import StorageError
from asistencia_tenis.models import PendingKind
from asistencia_tenis.storage.local_store import PENDING_KEY


def test_enqueue_many_y_list(pending):
    created = pending.enqueue_many([
        (PendingKind.CLASS_CREATION, {"id": "CLS_1"}),
        (PendingKind.ATTENDANCE, {"ID": "AST1"}),
        (PendingKind.ATTENDANCE, {"ID": "AST2"}),
    ])

    entries = pending.list()
    assert [e.pending_id for e in entries] == [c.pending_id for c in created]
    assert len({e.pending_id for e in entries}) == 3
    assert pending.count() == 3
    assert pending.count_by_kind()["attendance"] == 2


def test_remove_solo_los_indicados(pending):
    first = pending.enqueue(PendingKind.ATTENDANCE, {"ID": "AST1"})
    pending.enqueue(PendingKind.ATTENDANCE, {"ID": "AST2"})

    assert pending.remove([first.pending_id]) == 1
    assert [e.payload["ID"] for e in pending.list()] == ["AST2"]


def test_entrada_ilegible_se_conserva(pending, store):
    store.set(PENDING_KEY, [{"id": "X", "kind": "desconocido", "payload": {}}])

    assert pending.list() == []
    pending.enqueue(PendingKind.ATTENDANCE, {"ID": "AST1"})
    assert pending.count() == 2


def test_formato_inesperado_no_se_sobrescribe(pending, store):
    store.set(PENDING_KEY, {"no": "es una lista"})

    with pytest.raises(StorageError):
        pending.enqueue(PendingKind.ATTENDANCE, {"ID": "AST1"})
    assert store.get(PENDING_KEY) == {"no": "es una lista"}


def test_lectura_bloqueada_no_borra_la_cola(pending, store, monkeypatch):
    pending.enqueue_many([(PendingKind.ATTENDANCE, {"ID": "A1"}), (PendingKind.ATTENDANCE, {"ID": "A2"})])
    real_connect = store._connect
    calls = {"n": 0}

    def bloqueada_una_vez():
        calls["n"] += 1
        if calls["n"] == 1:
            raise sqlite3.OperationalError("database is locked")
        return real_connect()

    monkeypatch.setattr(store, "_connect", bloqueada_una_vez)
    with pytest.raises(StorageError):
        pending.enqueue(PendingKind.ATTENDANCE, {"ID": "A3"})

    assert [e.payload["ID"] for e in pending.list()] == ["A1", "A2"]


def test_json_corrupto_no_se_sobrescribe(pending, store):
    store.set(PENDING_KEY, [])
    conn = sqlite3.connect(store.db_path)
    conn.execute("UPDATE local_store SET value_json = '[{\"id\": ' WHERE store_key = ?", (PENDING_KEY,))
    conn.commit()
    conn.close()

    with pytest.raises(StorageError):
        pending.enqueue(PendingKind.ATTENDANCE, {"ID": "A3"})

    conn = sqlite3.connect(store.db_path)
    raw = conn.execute("SELECT value_json FROM local_store WHERE store_key = ?", (PENDING_KEY,)).fetchone()[0]
    conn.close()
    assert raw == '[{"id": '


def test_complete_class_creation_reapunta_en_una_escritura(pending, store, monkeypatch):
    created = pending.enqueue_many([
        (PendingKind.CLASS_CREATION, {"id": "CLS_LOCAL"}),
        (PendingKind.ATTENDANCE, {"ID": "A1", "ID_Clase": "CLS_LOCAL"}),
        (PendingKind.CANCELLATION, {"ID": "A2", "ID_Clase": "CLS_LOCAL"}),
        (PendingKind.ATTENDANCE, {"ID": "A3", "ID_Clase": "CLS_OTRA"}),
    ])
    writes = []
    real_set = store.set
    monkeypatch.setattr(store, "set", lambda key, value: (writes.append(key), real_set(key, value)))

    assert pending.complete_class_creation(created[0].pending_id, "CLS_LOCAL", "CLS_REAL") == 2

    assert writes == [PENDING_KEY]
    assert {e.payload["ID"]: e.payload["ID_Clase"] for e in pending.list()} == {
        "A1": "CLS_REAL",
        "A2": "CLS_REAL",
        "A3": "CLS_OTRA",
    }
    assert pending.count_by_kind()["class_creation"] == 0
