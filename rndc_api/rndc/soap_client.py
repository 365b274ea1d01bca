from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, Optional

import httpx

from rndc_api.core.config import settings
from rndc_api.rndc.response_parser import interpretar_respuesta
from rndc_api.rndc.rndc_types import RndcResultado, CODIGO_ERROR_CONEXION, codigo_http

logger = logging.getLogger("rndc.soap")


SOAP_NAMESPACE = "http://tempuri.org/"
SOAP_OPERACION = "RegistrarDatosMin"
SOAP_ACTION = f"{SOAP_NAMESPACE}{SOAP_OPERACION}"

_PASSWORD_RE = re.compile(r"(<password>)(.*?)(</password>)", re.IGNORECASE | re.DOTALL)


def envolver_soap(xml: str) -> str:
    """
    Envuelve el documento RNDC en un sobre SOAP 1.1 para RegistrarDatosMin.
    El documento va tal cual dentro de CDATA; un "]]>" literal se parte en dos secciones.
    """
    cdata = (xml or "").replace("]]>", "]]]]><![CDATA[>")
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
        'xmlns:xsd="http://www.w3.org/2001/XMLSchema" '
        'xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">\n'
        "<soap:Body>\n"
        f'<{SOAP_OPERACION} xmlns="{SOAP_NAMESPACE}">\n'
        f"<Mensaje><![CDATA[{cdata}]]></Mensaje>\n"
        f"</{SOAP_OPERACION}>\n"
        "</soap:Body>\n"
        "</soap:Envelope>"
    )


class RndcSoapClient:
    MAX_STRING_LEN = 3000

    def __init__(
        self,
        *,
        url_default: Optional[str] = None,
        url_ping: Optional[str] = None,
        timeout: Optional[float] = None,
        ping_timeout: Optional[float] = None,
        verify_ssl: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url_default = url_default or settings.RNDC_URL_PRODUCCION
        self.url_ping = url_ping or settings.RNDC_URL_PING
        self.timeout = timeout if timeout is not None else settings.RNDC_TIMEOUT_SECONDS
        self.ping_timeout = ping_timeout if ping_timeout is not None else settings.RNDC_PING_TIMEOUT_SECONDS
        self.verify_ssl = settings.RNDC_VERIFY_SSL if verify_ssl is None else verify_ssl
        # Solo para pruebas (httpx.MockTransport)
        self._transport = transport

    def _client(self, timeout: Optional[float]) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {"verify": self.verify_ssl, "timeout": timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    # =====================================================
    # LOG SAFE HELPERS
    # =====================================================
    def _truncate(self, s: Optional[str]) -> Optional[str]:
        if s is None:
            return s
        if len(s) <= self.MAX_STRING_LEN:
            return s
        return s[: self.MAX_STRING_LEN - 20] + f"...(truncated,len={len(s)})"

    def _mask(self, xml: str) -> str:
        # Nunca loguear la clave del usuario RNDC/GPS
        return _PASSWORD_RE.sub(r"\1****\3", xml or "")

    @staticmethod
    def _safe_response_detail(response: httpx.Response) -> str:
        return (response.reason_phrase or "").strip() or "sin detalle"

    # =====================================================
    # ENVÍO (RegistrarDatosMin)
    # =====================================================
    async def enviar(self, xml: str, ws_url: Optional[str] = None) -> RndcResultado:
        url = ws_url or self.url_default
        envelope = envolver_soap(xml)
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": SOAP_ACTION,
        }

        logger.info("========== RNDC POST ==========")
        logger.info("URL: %s", url)
        logger.debug("XML: %s", self._truncate(self._mask(xml)))
        logger.info("================================")

        try:
            async with self._client(self.timeout) as client:
                response = await client.post(url, content=envelope.encode("utf-8"), headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            logger.error("❌ Error de conexión con RNDC (%s): %s", url, e)
            return RndcResultado(
                success=False,
                code=CODIGO_ERROR_CONEXION,
                message=f"Error de conexión: {e}",
                raw_xml="",
            )

        body = response.text or ""

        logger.info("========== RNDC RESPONSE ==========")
        logger.info("STATUS CODE: %s", response.status_code)
        logger.debug("BODY: %s", self._truncate(body))
        logger.info("====================================")

        if not response.is_success:
            return RndcResultado(
                success=False,
                code=codigo_http(response.status_code),
                message=f"Error HTTP {response.status_code}: {self._safe_response_detail(response)}",
                raw_xml=body,
            )

        resultado = interpretar_respuesta(body)
        if not resultado.success:
            logger.warning("RNDC rechazó el mensaje: %s - %s", resultado.code, self._truncate(resultado.message))
        return resultado

    # =====================================================
    # PING (disponibilidad del servicio)
    # =====================================================
    async def ping(self, ws_url: Optional[str] = None) -> Dict[str, Any]:
        url = ws_url or self.url_ping
        inicio = time.monotonic()

        def _latencia() -> int:
            return int((time.monotonic() - inicio) * 1000)

        try:
            async with self._client(self.ping_timeout) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            logger.warning("Ping RNDC timeout (%ss): %s", self.ping_timeout, url)
            return {"status": "timeout", "latencia_ms": _latencia(), "status_code": None}
        except (httpx.HTTPError, OSError) as e:
            logger.warning("Ping RNDC sin conexión: %s (%s)", url, e)
            return {"status": "offline", "latencia_ms": _latencia(), "status_code": None, "error": str(e)}
        except Exception as e:
            logger.exception("Ping RNDC falló: %s", url)
            return {"status": "error", "latencia_ms": _latencia(), "status_code": None, "error": str(e)}

        # 405: el endpoint SOAP existe pero no acepta GET
        online = response.is_success or response.status_code == 405
        return {
            "status": "online" if online else "offline",
            "latencia_ms": _latencia(),
            "status_code": response.status_code,
        }


def get_rndc_client() -> RndcSoapClient:
    return RndcSoapClient()
