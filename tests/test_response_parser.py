"""
Clasificación de respuestas SOAP del RNDC.
"""
import pytest

from rndc_api.rndc.response_parser import interpretar_respuesta, extraer_documentos

from conftest import soap_envelope, respuesta_rndc


def test_business_rejection_code():
    r = interpretar_respuesta(respuesta_rndc("15", "Error de validacion"))

    assert r.success is False
    assert r.code == "15"
    assert r.message == "Error de validacion"
    assert r.raw_xml.startswith("<root>")


@pytest.mark.parametrize("codigo", ["00", "0", "000"])
def test_success_codes(codigo):
    r = interpretar_respuesta(respuesta_rndc(codigo, "OK"))
    assert r.success is True
    assert r.code == codigo


def test_missing_codigo_defaults_to_success():
    r = interpretar_respuesta(soap_envelope("<root><respuesta><mensaje>Recibido</mensaje></respuesta></root>"))
    assert r.success is True
    assert r.code == "000"
    assert r.message == "Recibido"


def test_ingresoid_is_success():
    r = interpretar_respuesta(soap_envelope("<root><ingresoid>123456789</ingresoid></root>"))

    assert r.success is True
    assert r.code == "123456789"
    assert "123456789" in r.message


def test_error_msg_extracts_code():
    r = interpretar_respuesta(
        soap_envelope("<root><ErrorMSG>error CRE141: El tercero no existe</ErrorMSG></root>")
    )
    assert r.success is False
    assert r.code == "CRE141"
    assert r.message == "error CRE141: El tercero no existe"


def test_error_msg_without_code():
    r = interpretar_respuesta(soap_envelope("<root><ErrorMSG>Usuario no autorizado</ErrorMSG></root>"))
    assert r.success is False
    assert r.code == "ERROR"


def test_not_xml_is_parse_error():
    r = interpretar_respuesta("<html>Service Unavailable")

    assert r.success is False
    assert r.code == "PARSE_ERROR"
    assert r.message == "Error al parsear respuesta SOAP"
    assert r.raw_xml == "<html>Service Unavailable"


def test_empty_body_is_parse_error():
    assert interpretar_respuesta("").code == "PARSE_ERROR"
    assert interpretar_respuesta(None).code == "PARSE_ERROR"


def test_well_formed_html_is_parse_error():
    r = interpretar_respuesta("<html><body><h1>502 Bad Gateway</h1></body></html>")
    assert r.success is False
    assert r.code == "PARSE_ERROR"


def test_inner_document_not_xml():
    r = interpretar_respuesta(soap_envelope("esto no es xml"))

    assert r.success is False
    assert r.code == "PARSE_ERROR"
    assert r.message == "Error al parsear respuesta del RNDC"
    assert r.raw_xml == "esto no es xml"


def test_inner_document_as_nested_elements():
    texto = (
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"><soap:Body>'
        "<RegistrarDatosMinResponse><RegistrarDatosMinResult>"
        "<root><respuesta><codigo>00</codigo><mensaje>OK</mensaje></respuesta></root>"
        "</RegistrarDatosMinResult></RegistrarDatosMinResponse>"
        "</soap:Body></soap:Envelope>"
    )
    r = interpretar_respuesta(texto)
    assert r.success is True
    assert r.code == "00"


def test_inner_document_with_its_own_declaration():
    inner = "<?xml version='1.0' encoding='ISO-8859-1' ?>\n<root><ingresoid>42</ingresoid></root>"
    r = interpretar_respuesta(soap_envelope(inner))
    assert r.success is True
    assert r.code == "42"


def test_unrecognized_document_assumed_accepted():
    r = interpretar_respuesta(soap_envelope("<root><otro>x</otro></root>"))
    assert r.success is True
    assert r.code == "000"
    assert r.message == "Respuesta recibida del RNDC"


def test_bare_rndc_document_without_envelope():
    r = interpretar_respuesta("<root><respuesta><codigo>99</codigo><mensaje>No</mensaje></respuesta></root>")
    assert r.success is False
    assert r.code == "99"


def test_interpretation_is_deterministic():
    texto = respuesta_rndc("15", "Error de validacion")
    assert interpretar_respuesta(texto) == interpretar_respuesta(texto)


def test_extraer_documentos_uppercase_keys():
    raw = (
        "<root>"
        "<documento><ingresoid>1</ingresoid><nomidtercero>JUAN</nomidtercero></documento>"
        "<documento><ingresoid>2</ingresoid><nomidtercero>ANA</nomidtercero></documento>"
        "</root>"
    )
    docs = extraer_documentos(raw)

    assert docs == [
        {"INGRESOID": "1", "NOMIDTERCERO": "JUAN"},
        {"INGRESOID": "2", "NOMIDTERCERO": "ANA"},
    ]


def test_extraer_documentos_repeated_children_become_list():
    raw = (
        "<root><documento><ingresoidmanifiesto>9</ingresoidmanifiesto>"
        "<puntoscontrol>"
        "<puntocontrol><codpuntocontrol>1</codpuntocontrol></puntocontrol>"
        "<puntocontrol><codpuntocontrol>2</codpuntocontrol></puntocontrol>"
        "</puntoscontrol></documento></root>"
    )
    [doc] = extraer_documentos(raw)

    assert doc["INGRESOIDMANIFIESTO"] == "9"
    assert doc["PUNTOSCONTROL"]["PUNTOCONTROL"] == [
        {"CODPUNTOCONTROL": "1"},
        {"CODPUNTOCONTROL": "2"},
    ]


def test_extraer_documentos_invalid_xml():
    assert extraer_documentos("no es xml") == []
    assert extraer_documentos(None) == []
