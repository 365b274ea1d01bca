from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from rndc_api.rndc.soap_client import RndcSoapClient
from rndc_api.schemas.rndc_mensajes import CredencialesRndc
from rndc_api.services.rndc_consultas_service import consultar_tercero, consultar_vehiculo
from rndc_api.services.rndc_lotes_service import EnvioNuevo, obtener_lote
from rndc_api.services.rndc_orquestador import LoteWorker, crear_y_lanzar
from rndc_api.services.utils import norm_str, norm_placa, to_doc, to_date, primer_valor

logger = logging.getLogger("rndc.despachos")


class _CacheConsultas:
    """Una misma granja/placa/cédula se consulta una sola vez por validación."""

    def __init__(
        self,
        db: Session,
        cliente: RndcSoapClient,
        *,
        credenciales: CredencialesRndc,
        nit_empresa: str,
        ws_url: Optional[str],
    ):
        self.db = db
        self.cliente = cliente
        self.credenciales = credenciales
        self.nit_empresa = nit_empresa
        self.ws_url = ws_url
        self._terceros: Dict[str, Dict[str, Any]] = {}
        self._vehiculos: Dict[str, Dict[str, Any]] = {}

    async def tercero(self, num_id: str) -> Dict[str, Any]:
        if num_id not in self._terceros:
            self._terceros[num_id] = await consultar_tercero(
                self.db,
                self.cliente,
                credenciales=self.credenciales,
                nit_empresa=self.nit_empresa,
                num_id_tercero=num_id,
                ws_url=self.ws_url,
            )
        return self._terceros[num_id]

    async def vehiculo(self, placa: str) -> Dict[str, Any]:
        if placa not in self._vehiculos:
            self._vehiculos[placa] = await consultar_vehiculo(
                self.db,
                self.cliente,
                credenciales=self.credenciales,
                nit_empresa=self.nit_empresa,
                num_placa=placa,
                ws_url=self.ws_url,
            )
        return self._vehiculos[placa]


def _coordenadas(doc: Dict[str, Any]) -> str:
    lat = primer_valor(doc, "LATITUD")
    lon = primer_valor(doc, "LONGITUD")
    if lat is None or lon is None:
        return ""
    return f"{lat},{lon}"


def _sede(doc: Dict[str, Any]) -> Dict[str, str]:
    return {
        "sede": primer_valor(doc, "NOMSEDETERCERO", "NOMIDTERCERO") or "",
        "coordenadas": _coordenadas(doc),
    }


def _primer_doc(r: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not r.get("success") or not r.get("datos"):
        return None
    return r["datos"][0]


def _no_encontrado(etiqueta: str, valor: str, r: Dict[str, Any]) -> str:
    if not r.get("success"):
        return f"{etiqueta} {valor}: error consultando RNDC ({r.get('code')}: {r.get('message')})"
    return f"{etiqueta} {valor} no registrada en RNDC"


async def _validar_fila(cache: _CacheConsultas, fila: Any) -> Dict[str, Any]:
    granja = to_doc(fila.granja)
    planta = to_doc(fila.planta)
    placa = norm_placa(fila.placa)
    cedula = to_doc(fila.cedula)
    fecha = to_date(fila.fecha)

    out: Dict[str, Any] = {
        "granja": granja,
        "planta": planta,
        "placa": placa,
        "cedula": cedula,
        "toneladas": fila.toneladas,
        "fecha": norm_str(fila.fecha),
        "granja_valida": False,
        "granja_datos": None,
        "planta_valida": False,
        "planta_datos": None,
        "placa_valida": False,
        "placa_datos": None,
        "cedula_valida": False,
        "cedula_datos": None,
        "errores": [],
    }
    errores: List[str] = out["errores"]

    # ---- granja / planta (sedes de terceros)
    for campo, etiqueta, valor in (("granja", "Granja", granja), ("planta", "Planta", planta)):
        if not valor:
            errores.append(f"{etiqueta} vacía")
            continue
        r = await cache.tercero(valor)
        doc = _primer_doc(r)
        if doc is None:
            errores.append(_no_encontrado(etiqueta, valor, r))
            continue
        out[f"{campo}_valida"] = True
        out[f"{campo}_datos"] = _sede(doc)

    # ---- placa
    if not placa:
        errores.append("Placa vacía")
    else:
        r = await cache.vehiculo(placa)
        doc = _primer_doc(r)
        if doc is None:
            errores.append(_no_encontrado("Placa", placa, r))
        else:
            vence_soat = primer_valor(doc, "FECHAVENCIMIENTOSOAT") or ""
            out["placa_datos"] = {
                "propietario_id": primer_valor(doc, "NUMIDPROPIETARIO") or "",
                "vence_soat": vence_soat,
                "peso_vacio": primer_valor(doc, "PESOVEHICULOVACIO") or "",
            }
            soat = to_date(vence_soat)
            if fecha and soat and soat < fecha:
                errores.append(f"SOAT de la placa {placa} vencido ({vence_soat})")
            else:
                out["placa_valida"] = True

    # ---- conductor
    if not cedula:
        errores.append("Cédula vacía")
    else:
        r = await cache.tercero(cedula)
        doc = _primer_doc(r)
        if doc is None:
            errores.append(_no_encontrado("Cédula", cedula, r))
        else:
            vence_licencia = primer_valor(doc, "FECHAVENCIMIENTOLICENCIA") or ""
            out["cedula_datos"] = {"vence_licencia": vence_licencia}
            licencia = to_date(vence_licencia)
            if fecha and licencia and licencia < fecha:
                errores.append(f"Licencia del conductor {cedula} vencida ({vence_licencia})")
            else:
                out["cedula_valida"] = True

    # ---- toneladas
    try:
        if fila.toneladas is None or float(fila.toneladas) <= 0:
            errores.append("Toneladas debe ser mayor a cero")
    except (TypeError, ValueError):
        errores.append(f"Toneladas inválidas: {fila.toneladas}")

    return out


async def validar_despachos_stream(
    db: Session,
    cliente: RndcSoapClient,
    *,
    credenciales: CredencialesRndc,
    nit_empresa: str,
    filas: Sequence[Any],
    ws_url: Optional[str] = None,
) -> AsyncIterator[Dict[str, Any]]:
    """
    Valida fila por fila contra las consultas del RNDC.
    Emite {progress, total, current} por fila y al final {done: True, rows}.
    """
    cache = _CacheConsultas(db, cliente, credenciales=credenciales, nit_empresa=nit_empresa, ws_url=ws_url)
    total = len(filas)
    rows: List[Dict[str, Any]] = []

    for i, fila in enumerate(filas, start=1):
        row = await _validar_fila(cache, fila)
        rows.append(row)
        yield {
            "progress": i,
            "total": total,
            "current": {
                "placa": row["placa"],
                "granja": row["granja"],
                "valida": not row["errores"],
            },
        }

    logger.info(
        "Validación de despachos: %s fila(s), %s con errores",
        total, sum(1 for r in rows if r["errores"]),
    )
    yield {"done": True, "rows": rows}


async def validar_despachos(db: Session, cliente: RndcSoapClient, **kwargs) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    async for evento in validar_despachos_stream(db, cliente, **kwargs):
        if evento.get("done"):
            rows = evento["rows"]
    return rows


# =====================================================
# Envío de remesas / manifiestos con progreso en stream
# =====================================================
def _lote_dict(lote) -> Dict[str, Any]:
    return {
        "id": lote.id,
        "tipo": lote.tipo,
        "estado": lote.estado,
        "total_registros": lote.total_registros,
        "total_exitosos": lote.total_exitosos,
        "total_errores": lote.total_errores,
        "total_pendientes": lote.total_pendientes,
    }


async def enviar_lote_stream(
    db: Session,
    worker: LoteWorker,
    *,
    tipo: str,
    envios: Sequence[EnvioNuevo],
    ws_url: Optional[str] = None,
) -> AsyncIterator[Dict[str, Any]]:
    """
    Crea el lote y lo entrega al worker; el stream solo observa. Si el cliente
    se desconecta el lote sigue corriendo y se puede consultar por polling.
    """
    cola: asyncio.Queue = asyncio.Queue()

    lote = crear_y_lanzar(db, worker, tipo=tipo, envios=envios, ws_url=ws_url, on_progreso=cola.put)
    lote_id = lote.id
    tarea = worker.tarea(lote_id)

    yield {"lote_id": lote_id, "progress": 0, "total": lote.total_registros}

    while tarea is not None and not tarea.done():
        siguiente = asyncio.ensure_future(cola.get())
        hechos, _ = await asyncio.wait({siguiente, tarea}, return_when=asyncio.FIRST_COMPLETED)
        if siguiente in hechos:
            yield siguiente.result()
        else:
            siguiente.cancel()

    while not cola.empty():
        yield cola.get_nowait()

    db.expire_all()
    yield {"done": True, "lote": _lote_dict(obtener_lote(db, lote_id=lote_id))}
