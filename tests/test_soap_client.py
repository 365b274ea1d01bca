"""
Cliente SOAP del RNDC sobre httpx.MockTransport.
"""
import logging

import httpx
import pytest

from rndc_api.rndc.soap_client import SOAP_ACTION, envolver_soap
from rndc_api.rndc.xml_builder import construir_xml

from conftest import RNDC_URL, PING_URL, ok_response, punto_control


def test_envelope_wraps_document_in_cdata():
    sobre = envolver_soap("<root><a>1</a></root>")

    assert "<RegistrarDatosMin xmlns=\"http://tempuri.org/\">" in sobre
    assert "<Mensaje><![CDATA[<root><a>1</a></root>]]></Mensaje>" in sobre


def test_envelope_splits_cdata_terminator():
    sobre = envolver_soap("<root><a>x]]>y</a></root>")
    assert "x]]]]><![CDATA[>y" in sobre


@pytest.mark.asyncio
async def test_enviar_success(guion, credenciales):
    cliente = guion.cliente()
    xml = construir_xml(credenciales, punto_control(1))

    r = await cliente.enviar(xml)

    assert r.success is True
    assert r.code == "00"
    assert r.message == "Registro exitoso"

    [request] = guion.requests
    assert str(request.url) == RNDC_URL
    assert request.method == "POST"
    assert request.headers["SOAPAction"] == SOAP_ACTION
    assert request.headers["Content-Type"].startswith("text/xml")
    body = request.content.decode("utf-8")
    assert f"<![CDATA[{xml}]]>" in body


@pytest.mark.asyncio
async def test_enviar_uses_ws_url_override(guion):
    await guion.cliente().enviar("<root/>", "http://pruebas.rndc.test/soap")
    assert str(guion.requests[0].url) == "http://pruebas.rndc.test/soap"


@pytest.mark.asyncio
async def test_enviar_http_error_status(guion):
    guion.respuestas.append(httpx.Response(500, text="Internal Server Error"))

    r = await guion.cliente().enviar("<root/>")

    assert r.success is False
    assert r.code == "HTTP_500"
    assert r.message.startswith("Error HTTP 500")
    assert r.raw_xml == "Internal Server Error"


@pytest.mark.asyncio
async def test_enviar_connection_error(guion):
    guion.respuestas.append(httpx.ConnectError("Connection refused"))

    r = await guion.cliente().enviar("<root/>")

    assert r.success is False
    assert r.code == "ERROR"
    assert r.message.startswith("Error de conexión")
    assert r.raw_xml == ""


@pytest.mark.asyncio
async def test_enviar_business_rejection(guion):
    guion.respuestas.append(ok_response("15", "Placa no existe"))

    r = await guion.cliente().enviar("<root/>")

    assert r.success is False
    assert r.code == "15"


@pytest.mark.asyncio
async def test_password_never_logged(guion, credenciales, caplog):
    caplog.set_level(logging.DEBUG, logger="rndc.soap")

    await guion.cliente().enviar(construir_xml(credenciales, punto_control(1)))

    assert "secreta" not in caplog.text
    assert "<password>****</password>" in caplog.text


@pytest.mark.parametrize(
    "respuesta, esperado",
    [
        (httpx.Response(200), "online"),
        (httpx.Response(405), "online"),
        (httpx.Response(503), "offline"),
        (httpx.ConnectError("Connection refused"), "offline"),
        (httpx.ReadTimeout("timed out"), "timeout"),
        (RuntimeError("boom"), "error"),
    ],
)
@pytest.mark.asyncio
async def test_ping_classification(guion, respuesta, esperado):
    guion.respuestas.append(respuesta)

    r = await guion.cliente().ping()

    assert r["status"] == esperado
    assert r["latencia_ms"] >= 0
    assert str(guion.requests[0].url) == PING_URL
    assert guion.requests[0].method == "GET"
