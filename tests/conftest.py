# tests/conftest.py
import os

# Base en memoria y sin pausa entre envíos: debe ir antes de importar rndc_api
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["RNDC_PAUSA_ENTRE_ENVIOS_MS"] = "0"
os.environ["RNDC_REANUDAR_LOTES_HUERFANOS"] = "false"

import json
from html import escape
from typing import Any, Dict, List

import httpx
import pytest
import pytest_asyncio

from rndc_api.core.db import Base, SessionLocal, engine
from rndc_api.models import rndc_lote, rndc_envio, rndc_consulta, rndc_manifiesto  # noqa: F401
from rndc_api.rndc.soap_client import RndcSoapClient, get_rndc_client
from rndc_api.schemas.rndc_mensajes import (
    CredencialesRndc,
    PuntoControlDatos,
    RemesaDatos,
    ManifiestoDatos,
)
from rndc_api.services.rndc_orquestador import LoteWorker, get_lote_worker

RNDC_URL = "http://rndc.test/soap/IBPMServices"
PING_URL = "http://rndc.test/ping"


# =====================================================
# Respuestas SOAP de ejemplo
# =====================================================
def soap_envelope(inner_xml: str) -> str:
    """Sobre SOAP con el XML interno escapado, como lo devuelve el RNDC."""
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        "<soap:Body>"
        '<RegistrarDatosMinResponse xmlns="http://tempuri.org/">'
        f"<RegistrarDatosMinResult>{escape(inner_xml, quote=False)}</RegistrarDatosMinResult>"
        "</RegistrarDatosMinResponse>"
        "</soap:Body>"
        "</soap:Envelope>"
    )


def respuesta_rndc(codigo: str, mensaje: str = "") -> str:
    return soap_envelope(
        f"<root><respuesta><codigo>{codigo}</codigo><mensaje>{mensaje}</mensaje></respuesta></root>"
    )


def ok_response(codigo: str = "00", mensaje: str = "Registro exitoso") -> httpx.Response:
    return httpx.Response(200, text=respuesta_rndc(codigo, mensaje))


def _xml_valor(tag: str, valor: Any) -> str:
    if isinstance(valor, dict):
        cuerpo = "".join(_xml_valor(k, v) for k, v in valor.items())
    elif isinstance(valor, list):
        return "".join(_xml_valor(tag, v) for v in valor)
    else:
        cuerpo = escape(str(valor), quote=False)
    return f"<{tag}>{cuerpo}</{tag}>"


def documentos_response(*docs: Dict[str, Any]) -> httpx.Response:
    """Respuesta de consulta: un <documento> por dict."""
    inner = "<root>" + "".join(_xml_valor("documento", d) for d in docs) + "</root>"
    return httpx.Response(200, text=soap_envelope(inner))


def eventos_sse(texto: str) -> List[Dict[str, Any]]:
    return [
        json.loads(linea[len("data: "):])
        for linea in texto.splitlines()
        if linea.startswith("data: ")
    ]


class RndcGuion:
    """
    Transporte falso del RNDC: devuelve las respuestas en el orden en que se cargan.
    Una excepción en la lista se lanza tal cual (error de red).
    """

    def __init__(self, respuestas: List[Any] = None):
        self.respuestas: List[Any] = list(respuestas or [])
        self.requests: List[httpx.Request] = []
        self.on_request = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)
        r = self.respuestas.pop(0) if self.respuestas else ok_response()
        if isinstance(r, Exception):
            raise r
        return r

    def cliente(self) -> RndcSoapClient:
        return RndcSoapClient(
            url_default=RNDC_URL,
            url_ping=PING_URL,
            timeout=5,
            ping_timeout=1,
            transport=httpx.MockTransport(self.handler),
        )


# =====================================================
# Fixtures
# =====================================================
@pytest.fixture(autouse=True)
def esquema_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def guion() -> RndcGuion:
    return RndcGuion()


@pytest.fixture
def credenciales() -> CredencialesRndc:
    return CredencialesRndc(usuario="GPSUSER@1", clave="secreta")


def punto_control(n: int, **extra) -> PuntoControlDatos:
    datos = {
        "num_id_gps": "900123456",
        "ingreso_id_manifiesto": f"7000{n}",
        "num_placa": f"ABC12{n % 10}",
        "cod_punto_control": str(n),
        "latitud": "4.6097",
        "longitud": "-74.0817",
        "fecha_llegada": "15/01/2025",
        "hora_llegada": "08:30",
        "fecha_salida": "15/01/2025",
        "hora_salida": "09:00",
    }
    datos.update(extra)
    return PuntoControlDatos(**datos)


def remesa_datos(consecutivo: str, **extra) -> RemesaDatos:
    datos = {
        "nit_empresa": "900123456",
        "consecutivo_remesa": consecutivo,
        "cantidad_cargada": 32000,
        "mercancia_remesa": "009880",
        "descripcion_corta_producto": "POLLO EN PIE",
        "num_id_remitente": "800111222",
        "cod_sede_remitente": "1",
        "num_id_destinatario": "800333444",
        "cod_sede_destinatario": "2",
        "num_id_propietario": "800111222",
        "cod_sede_propietario": "1",
        "fecha_cita_cargue": "15/01/2025",
        "hora_cita_cargue": "06:00",
        "fecha_cita_descargue": "15/01/2025",
        "hora_cita_descargue": "14:00",
    }
    datos.update(extra)
    return RemesaDatos(**datos)


def manifiesto_datos(numero: str, remesas: List[str], **extra) -> ManifiestoDatos:
    datos = {
        "nit_empresa": "900123456",
        "num_manifiesto_carga": numero,
        "fecha_expedicion": "15/01/2025",
        "cod_municipio_origen": "11001000",
        "cod_municipio_destino": "05001000",
        "num_id_titular": "1020304050",
        "num_placa": "abc 123",
        "num_id_conductor": "1020304050",
        "valor_flete": 1500000,
        "cod_municipio_pago_saldo": "11001000",
        "fecha_pago_saldo": "30/01/2025",
        "remesas": remesas,
    }
    datos.update(extra)
    return ManifiestoDatos(**datos)


@pytest_asyncio.fixture
async def worker(guion):
    w = LoteWorker(cliente_factory=guion.cliente, pausa_segundos=0)
    yield w
    await w.detener()


@pytest_asyncio.fixture
async def api_client(guion, worker):
    from rndc_api.main import app

    app.dependency_overrides[get_rndc_client] = guion.cliente
    app.dependency_overrides[get_lote_worker] = lambda: worker

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides = {}
