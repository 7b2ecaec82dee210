import pytest

from asistencia_tenis.errors import BackendError, ConflictError, TransientGatewayError, ValidationError
from asistencia_tenis.models import ClassStatus
from asistencia_tenis.services.class_registrar import generate_class_id


def test_generate_class_id_determinista():
    assert generate_class_id("2025-03-10", "G1", "15:45-16:30") == "CLS_2025-03-10_15-45-16-30_G1"
    assert generate_class_id("2025-03-10", "G 1/A", "15:45 - 16:30") == "CLS_2025-03-10_15-45-16-30_G-1-A"


def test_create_class_crea_una_sola_vez(registrar, fake_client):
    created = registrar.create_class("2025-03-10", "G1", ClassStatus.REALIZADA, creado_por="prof@club")

    assert created.id == "CLS_2025-03-10_15-45-16-30_G1"
    assert created.estado == ClassStatus.REALIZADA
    assert len(fake_client.classes) == 1

    with pytest.raises(ConflictError) as exc:
        registrar.create_class("2025-03-10", "G1", "Cancelada", motivo_cancelacion="Lluvia")
    assert exc.value.existing_status == "Realizada"
    assert 'ya fue reportada como "Realizada"' in str(exc.value)
    assert len(fake_client.classes) == 1


def test_create_class_estado_invalido(registrar):
    with pytest.raises(ValidationError):
        registrar.create_class("2025-03-10", "G1", "Suspendida")


def test_create_class_sin_id_del_backend(registrar, fake_client):
    fake_client.create_class_record = lambda payload: {"success": True, "data": {}}

    with pytest.raises(BackendError):
        registrar.create_class("2025-03-10", "G1", ClassStatus.REALIZADA)


def test_backend_asigna_otro_id(registrar, fake_client):
    fake_client.id_override = "CLS_SERVIDOR_1"

    created = registrar.create_class("2025-03-10", "G1", ClassStatus.REALIZADA)

    assert created.id == "CLS_SERVIDOR_1"


def test_class_exists_propaga_errores_de_red(registrar, fake_client):
    registrar.catalog.get_groups()
    fake_client.offline_actions.add("checkClassExists")

    with pytest.raises(TransientGatewayError):
        registrar.class_exists("2025-03-10", "G1")


@pytest.mark.parametrize("fecha, error", [
    ("10/03/2025", "Fecha inválida"),
    ("2025-02-30", "Fecha inválida"),
    ("2025-03-20", "anticipación"),
    ("2025-01-01", "hace más de 30 días"),
])
def test_validate_ventana_de_fechas(registrar, fecha, error):
    result = registrar.validate_class_report(fecha, "G1")

    assert not result.valid
    assert error in result.error


def test_validate_limites_de_la_ventana(registrar):
    assert registrar.validate_class_report("2025-03-19", "G1").valid
    assert registrar.validate_class_report("2025-02-10", "G1").valid


def test_validate_grupo_inexistente(registrar):
    result = registrar.validate_class_report("2025-03-10", "G9")

    assert not result.valid
    assert "G9" in result.error


def test_validate_duplicado(registrar):
    registrar.create_class("2025-03-10", "G1", ClassStatus.REALIZADA)

    result = registrar.validate_class_report("2025-03-10", "G1")

    assert not result.valid
    assert result.conflict
    assert result.class_id == "CLS_2025-03-10_15-45-16-30_G1"
    assert result.existing_class["estado"] == "Realizada"


def test_validate_sin_conexion_continua_con_advertencia(registrar, fake_client):
    registrar.catalog.get_groups()
    fake_client.offline_actions.add("checkClassExists")

    result = registrar.validate_class_report("2025-03-10", "G1")

    assert result.valid
    assert result.warning
    assert result.class_id == "CLS_2025-03-10_15-45-16-30_G1"
