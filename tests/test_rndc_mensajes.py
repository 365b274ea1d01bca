"""
Mensajes tipados: unión etiquetada por `tipo` y normalización a texto.
"""
import pytest
from pydantic import TypeAdapter, ValidationError

from rndc_api.core.config import settings
from rndc_api.schemas.rndc_lotes import EnvioIndividualRequest, LotePuntosControlRequest
from rndc_api.schemas.rndc_mensajes import (
    DatosEnvio,
    DatosMensaje,
    ConsultaDatos,
    RemesaDatos,
    PuntoControlDatos,
)

from conftest import punto_control, remesa_datos


def test_union_picks_variant_by_tipo():
    datos = TypeAdapter(DatosEnvio).validate_python(
        {**remesa_datos("R-5").model_dump(mode="json"), "cantidad_cargada": 32000}
    )

    assert isinstance(datos, RemesaDatos)
    assert datos.tipo == "remesa"
    assert datos.cantidad_cargada == "32000"


def test_union_with_queries():
    datos = TypeAdapter(DatosMensaje).validate_python(
        {"tipo": "consulta", "procesoid": 11, "variables": ["INGRESOID"], "filtros": {"NUMIDTERCERO": 1020}}
    )

    assert isinstance(datos, ConsultaDatos)
    assert datos.procesoid == "11"
    assert datos.filtros == {"NUMIDTERCERO": "1020"}


def test_union_rejects_unknown_tipo():
    with pytest.raises(ValidationError):
        TypeAdapter(DatosEnvio).validate_python({"tipo": "factura"})


def test_values_are_trimmed_text():
    datos = PuntoControlDatos(
        num_id_gps=900123456,
        ingreso_id_manifiesto=" 70001 ",
        num_placa="ABC123",
        cod_punto_control=1,
        latitud=4.6097,
        longitud=-74.0817,
        fecha_llegada="15/01/2025",
        hora_llegada="08:30",
    )

    assert datos.num_id_gps == "900123456"
    assert datos.ingreso_id_manifiesto == "70001"
    assert datos.latitud == "4.6097"


def test_envio_individual_request_accepts_any_kind():
    req = EnvioIndividualRequest(
        credenciales={"usuario": "U", "clave": "C"},
        mensaje=remesa_datos("R-9").model_dump(mode="json"),
    )
    assert isinstance(req.mensaje, RemesaDatos)


def test_text_with_control_characters_is_rejected():
    with pytest.raises(ValidationError):
        remesa_datos("R-\x00")


@pytest.mark.parametrize(
    "alias, esperado",
    [("pruebas", settings.RNDC_URL_PRUEBAS), (" Produccion ", settings.RNDC_URL_PRODUCCION)],
)
def test_ws_url_environment_aliases(alias, esperado):
    req = LotePuntosControlRequest.model_validate({
        "tipo": "puntos_control",
        "credenciales": {"usuario": "U", "clave": "C"},
        "items": [punto_control(1).model_dump(mode="json")],
        "ws_url": alias,
    })
    assert req.ws_url == esperado
