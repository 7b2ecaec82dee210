import json

import pytest

from asistencia_tenis import cli
from asistencia_tenis.config import Config
from asistencia_tenis.models import PendingKind
from asistencia_tenis.storage.local_store import LocalStore
from asistencia_tenis.storage.pending_queue import PendingQueue


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    monkeypatch.setattr(Config, "LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(Config, "LOCAL_STORE_PATH", str(tmp_path / "data" / "local.sqlite"))


def test_status_sin_pendientes(tmp_path, capsys):
    code = cli.main(["--store", str(tmp_path / "s.sqlite"), "status"])

    out = json.loads(capsys.readouterr().out)
    assert code == 0
    assert out["pending"] == 0
    assert out["draft"] is None


def test_status_cuenta_por_tipo(tmp_path, capsys):
    path = str(tmp_path / "s.sqlite")
    PendingQueue(LocalStore(path)).enqueue(PendingKind.ATTENDANCE, {"ID": "AST1"})

    cli.main(["--store", path, "status"])

    out = json.loads(capsys.readouterr().out)
    assert out["pendingByKind"]["attendance"] == 1


def test_sync_usa_el_pipeline(tmp_path, capsys, monkeypatch, fake_client, catalog, registrar, drafts, pending):
    from asistencia_tenis.services.submission_pipeline import SubmissionPipeline

    pending.enqueue(PendingKind.ATTENDANCE, {"ID": "AST1", "ID_Clase": "CLS_1"})
    pipeline = SubmissionPipeline(fake_client, catalog, registrar, drafts, pending)
    monkeypatch.setattr(cli, "build_pipeline", lambda store_path, proxy_url: pipeline)

    code = cli.main(["sync"])

    out = json.loads(capsys.readouterr().out)
    assert code == 0
    assert out["ok"] is True
    assert out["synced"] == 1
    assert fake_client.attendance == [{"ID": "AST1", "ID_Clase": "CLS_1"}]
