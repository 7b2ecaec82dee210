from datetime import datetime, timedelta, timezone

from asistencia_tenis.models import AttendanceStatus, Draft, Mark
from asistencia_tenis.storage.draft_store import DRAFT_VERSION
from asistencia_tenis.storage.local_store import DRAFT_KEY
from asistencia_tenis.utils import parse_iso


def _draft():
    return Draft(
        grupo_codigo="G1",
        fecha="2025-03-10",
        attendance_data={
            "S1": Mark(AttendanceStatus.PRESENTE),
            "S3": Mark(AttendanceStatus.JUSTIFICADA, justification="Médica"),
        },
        asistente_id="A1",
    )


def test_guardar_y_recuperar(drafts):
    drafts.save(_draft())

    recovered = drafts.recover()

    assert recovered is not None
    assert recovered.grupo_codigo == "G1"
    assert recovered.version == DRAFT_VERSION
    assert recovered.attendance_data["S3"].justification == "Médica"
    assert recovered.asistente_id == "A1"


def test_borrador_expirado_se_purga(drafts, store):
    drafts.save(_draft())
    saved_at = parse_iso(store.get(DRAFT_KEY)["timestamp"])

    assert drafts.recover(now=saved_at + timedelta(hours=25)) is None
    assert store.get(DRAFT_KEY) is None


def test_borrador_dentro_del_ttl(drafts, store):
    drafts.save(_draft())
    saved_at = parse_iso(store.get(DRAFT_KEY)["timestamp"])

    assert drafts.recover(now=saved_at + timedelta(hours=23)) is not None


def test_version_distinta_se_descarta(drafts, store):
    data = _draft().to_dict()
    data["version"] = "1"
    data["timestamp"] = datetime.now(timezone.utc).isoformat()
    store.set(DRAFT_KEY, data)

    assert drafts.recover() is None
    assert store.get(DRAFT_KEY) is None


def test_clear(drafts, store):
    drafts.save(_draft())
    drafts.clear()
    assert drafts.recover() is None
