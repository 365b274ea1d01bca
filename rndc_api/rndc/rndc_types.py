from __future__ import annotations

from dataclasses import dataclass


# =====================================================
# Estados
# =====================================================
class EstadoLote:
    PROCESANDO = "processing"
    COMPLETADO = "completed"


class EstadoEnvio:
    PENDIENTE = "pending"
    PROCESANDO = "processing"
    EXITOSO = "success"
    ERROR = "error"

    TERMINALES = {EXITOSO, ERROR}


# Transiciones permitidas: el estado solo avanza, nunca retrocede
TRANSICIONES_ENVIO = {
    None: {EstadoEnvio.PENDIENTE},
    EstadoEnvio.PENDIENTE: {EstadoEnvio.PROCESANDO, EstadoEnvio.ERROR},
    EstadoEnvio.PROCESANDO: {EstadoEnvio.EXITOSO, EstadoEnvio.ERROR},
}

TRANSICIONES_LOTE = {
    None: {EstadoLote.PROCESANDO},
    EstadoLote.PROCESANDO: {EstadoLote.COMPLETADO},
}


class TipoLote:
    PUNTOS_CONTROL = "puntos_control"
    REMESA = "remesa"
    MANIFIESTO = "manifiesto"
    CUMPLIDO_REMESA = "cumplido_remesa"
    CUMPLIDO_MANIFIESTO = "cumplido_manifiesto"

    TODOS = (PUNTOS_CONTROL, REMESA, MANIFIESTO, CUMPLIDO_REMESA, CUMPLIDO_MANIFIESTO)


# =====================================================
# Códigos de resultado
# =====================================================
CODIGO_ERROR_CONEXION = "ERROR"
CODIGO_PARSE_ERROR = "PARSE_ERROR"
CODIGO_DESCONOCIDO_OK = "000"
CODIGOS_OK = {"00", "0", "000"}


def codigo_http(status_code: int) -> str:
    return f"HTTP_{status_code}"


class TransicionEstadoInvalida(ValueError):
    """Cambio de estado (o de xml_request) que rompería la monotonía del registro."""


@dataclass
class RndcResultado:
    success: bool
    code: str
    message: str
    raw_xml: str = ""
