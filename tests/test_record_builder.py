import pytest

from asistencia_tenis.errors import DataIntegrityError, ValidationError
from asistencia_tenis.models import AttendanceStatus, ClassType, Mark
from asistencia_tenis.services.record_builder import (
    BuildOptions,
    build_attendance_record,
    build_group_attendance_records,
    ensure_class_linkage,
)

CLASS_ID = "CLS_2025-03-10_15-45-16-30_G1"


def test_registro_completo():
    record = build_attendance_record(
        "S3", "G1", "Justificada",
        BuildOptions(fecha="2025-03-10", grupo_codigo="G1", id_clase=CLASS_ID, justificacion="Médica"),
    )

    assert record.id.startswith("AST")
    assert record.id_clase == CLASS_ID
    assert record.estado == AttendanceStatus.JUSTIFICADA
    assert record.tipo_clase == ClassType.REGULAR
    assert record.justificacion == "Médica"
    assert record.timestamp.endswith("Z")
    assert record.to_backend()["Estado"] == "Justificada"


@pytest.mark.parametrize("student_id, grupo, status", [
    ("", "G1", "Presente"),
    ("S1", "", "Presente"),
    ("S1", "G1", ""),
    ("S1", "G1", "Tarde"),
])
def test_campos_invalidos(student_id, grupo, status):
    with pytest.raises(ValidationError):
        build_attendance_record(student_id, grupo, status, BuildOptions(fecha="2025-03-10", id_clase=CLASS_ID))


def test_ids_unicos():
    options = BuildOptions(fecha="2025-03-10", grupo_codigo="G1", id_clase=CLASS_ID)
    ids = {build_attendance_record("S1", "G1", "Presente", options).id for _ in range(50)}
    assert len(ids) == 50


def test_lote_comparte_id_clase_y_resume():
    marks = {
        "S1": Mark(AttendanceStatus.PRESENTE),
        "S2": {"status": "Ausente"},
        "S3": Mark(AttendanceStatus.JUSTIFICADA, justification="Médica"),
    }

    result = build_group_attendance_records(
        marks, BuildOptions(fecha="2025-03-10", grupo_codigo="G1", id_clase=CLASS_ID))

    assert result.ok
    assert {r.id_clase for r in result.records} == {CLASS_ID}
    assert result.summary["built"] == 3
    assert result.summary["Presente"] == 1
    assert result.summary["Ausente"] == 1
    assert result.summary["Justificada"] == 1
    assert result.summary["missingClassId"] == 0


def test_lote_con_errores_individuales():
    marks = {"S1": "Presente", "S2": "Tarde"}

    result = build_group_attendance_records(
        marks, BuildOptions(fecha="2025-03-10", grupo_codigo="G1", id_clase=CLASS_ID))

    assert not result.ok
    assert len(result.records) == 1
    assert result.errors[0].student_id == "S2"
    assert result.errors[0].index == 1


def test_sin_id_clase_falla_la_verificacion():
    result = build_group_attendance_records(
        {"S1": "Presente"}, BuildOptions(fecha="2025-03-10", grupo_codigo="G1"))

    assert result.summary["missingClassId"] == 1
    with pytest.raises(DataIntegrityError) as exc:
        ensure_class_linkage(result.records)
    assert exc.value.records == result.records


def test_asistencia_del_grupo_g1():
    marks = {
        "S1": Mark(AttendanceStatus.PRESENTE),
        "S2": Mark(AttendanceStatus.AUSENTE),
        "S3": Mark(AttendanceStatus.JUSTIFICADA, justification="Médica"),
    }

    result = build_group_attendance_records(
        marks, BuildOptions(fecha="2025-03-10", grupo_codigo="G1", id_clase="CLS_1"))

    assert len(result.records) == 3
    assert {r.id_clase for r in result.records} == {"CLS_1"}
    s3 = next(r for r in result.records if r.estudiante_id == "S3")
    assert "Médica" in s3.justificacion
