from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from rndc_api.core.config import settings
from rndc_api.core.db import SessionLocal
from rndc_api.models.rndc_lote import RndcLote
from rndc_api.rndc.rndc_types import RndcResultado, CODIGO_ERROR_CONEXION
from rndc_api.rndc.soap_client import RndcSoapClient
from rndc_api.services.rndc_lotes_service import (
    EnvioNuevo,
    crear_lote,
    obtener_lote,
    obtener_envio,
    listar_envios_pendientes,
    conteos_terminales,
    marcar_envio_en_proceso,
    registrar_resultado_envio,
    marcar_envio_error,
    completar_lote,
    lotes_en_proceso,
    cerrar_envios_interrumpidos,
)

logger = logging.getLogger("rndc.orquestador")

ProgresoCallback = Callable[[Dict[str, Any]], Awaitable[None]]

# Resúmenes de lotes terminados que se guardan para esperar()
MAX_RESULTADOS = 200


def _pausa_default() -> float:
    return max(0, settings.RNDC_PAUSA_ENTRE_ENVIOS_MS) / 1000.0


async def _notificar(on_progreso: Optional[ProgresoCallback], evento: Dict[str, Any]) -> None:
    if on_progreso is None:
        return
    try:
        await on_progreso(evento)
    except Exception:
        # Un consumidor de progreso caído no detiene el lote
        logger.exception("Error notificando progreso del lote")


def _marcar_error_seguro(
    db: Session,
    *,
    envio_id: str,
    lote_id: str,
    mensaje: str,
    exitosos: int,
    errores: int,
) -> None:
    try:
        marcar_envio_error(
            db,
            envio_id=envio_id,
            mensaje=mensaje,
            lote_id=lote_id,
            exitosos=exitosos,
            errores=errores,
        )
    except Exception:
        db.rollback()
        logger.exception("No se pudo registrar el error del envío %s (lote %s)", envio_id, lote_id)


# =====================================================
# Ejecución de un lote (secuencial, FIFO)
# =====================================================
async def ejecutar_lote(
    lote_id: str,
    *,
    ws_url: Optional[str] = None,
    cliente: Optional[RndcSoapClient] = None,
    session_factory: Callable[[], Session] = SessionLocal,
    pausa_segundos: Optional[float] = None,
    on_progreso: Optional[ProgresoCallback] = None,
) -> Dict[str, Any]:
    """
    Envía al RNDC, uno por uno y en orden de creación, los envíos pendientes del lote.

    Cada envío pasa pending -> processing -> success|error; el resultado y los
    conteos del lote se guardan en un mismo commit. Los errores de un envío no
    detienen el lote y el cierre (completed) se escribe siempre al final,
    salvo que la tarea sea cancelada (apagado del servidor).
    """
    cliente = cliente or RndcSoapClient()
    pausa = _pausa_default() if pausa_segundos is None else pausa_segundos

    db = session_factory()
    try:
        lote = obtener_lote(db, lote_id=lote_id)
        total = lote.total_registros
        url = ws_url or lote.ws_url
        exitosos, errores = conteos_terminales(db, lote_id=lote_id)
        pendientes = listar_envios_pendientes(db, lote_id=lote_id)
    except Exception:
        db.close()
        raise

    logger.info("========== LOTE %s ==========", lote_id)
    logger.info("Tipo: %s | Total: %s | Pendientes: %s | URL: %s", lote.tipo, total, len(pendientes), url or "default")

    interrumpido = False
    try:
        for idx, envio_id in enumerate(pendientes):
            actual: Dict[str, Any] = {"envio_id": envio_id}

            # 1) pending -> processing
            try:
                envio = obtener_envio(db, envio_id=envio_id)
                actual["referencia"] = envio.referencia
                actual["num_placa"] = envio.num_placa
                marcar_envio_en_proceso(db, envio=envio)
                xml = envio.xml_request
            except Exception as e:
                db.rollback()
                logger.exception("Lote %s: no se pudo tomar el envío %s", lote_id, envio_id)
                errores += 1
                _marcar_error_seguro(
                    db,
                    envio_id=envio_id,
                    lote_id=lote_id,
                    mensaje=f"Error al preparar el envío: {e}",
                    exitosos=exitosos,
                    errores=errores,
                )
                actual.update(estado="error", codigo=CODIGO_ERROR_CONEXION, mensaje=str(e))
                await _notificar(on_progreso, {"progress": exitosos + errores, "total": total, "current": actual})
                continue

            # 2) envío al RNDC
            try:
                resultado = await cliente.enviar(xml, url)
            except Exception as e:
                logger.exception("Lote %s: excepción enviando %s", lote_id, envio_id)
                resultado = RndcResultado(
                    success=False,
                    code=CODIGO_ERROR_CONEXION,
                    message=f"Error inesperado: {e}",
                    raw_xml="",
                )

            if resultado.success:
                exitosos += 1
            else:
                errores += 1

            # 3) processing -> success|error + conteos (mismo commit)
            try:
                lote = obtener_lote(db, lote_id=lote_id)
                registrar_resultado_envio(
                    db,
                    envio=envio,
                    resultado=resultado,
                    lote=lote,
                    exitosos=exitosos,
                    errores=errores,
                )
            except Exception as e:
                db.rollback()
                logger.exception("Lote %s: no se pudo guardar el resultado del envío %s", lote_id, envio_id)
                if resultado.success:
                    exitosos -= 1
                    errores += 1
                _marcar_error_seguro(
                    db,
                    envio_id=envio_id,
                    lote_id=lote_id,
                    mensaje=f"Error al guardar resultado ({resultado.code}): {e}",
                    exitosos=exitosos,
                    errores=errores,
                )
                resultado = RndcResultado(success=False, code=CODIGO_ERROR_CONEXION, message=str(e))

            actual.update(
                estado="success" if resultado.success else "error",
                codigo=resultado.code,
                mensaje=resultado.message,
            )
            await _notificar(on_progreso, {"progress": exitosos + errores, "total": total, "current": actual})

            if pausa > 0 and idx < len(pendientes) - 1:
                await asyncio.sleep(pausa)

    except asyncio.CancelledError:
        interrumpido = True
        logger.warning("Lote %s cancelado: queda en proceso para reanudarse al iniciar", lote_id)
        raise
    finally:
        try:
            if not interrumpido:
                lote = completar_lote(db, lote_id=lote_id)
                exitosos, errores = lote.total_exitosos, lote.total_errores
        except Exception:
            db.rollback()
            logger.exception("Lote %s: no se pudo marcar como completado", lote_id)
        finally:
            db.close()

    logger.info("Lote %s terminado: exitosos=%s errores=%s", lote_id, exitosos, errores)
    return {"lote_id": lote_id, "total": total, "exitosos": exitosos, "errores": errores}


# =====================================================
# Worker: una tarea asyncio por lote
# =====================================================
class LoteWorker:
    """
    Registro explícito de las tareas de envío en segundo plano.
    Un lote se procesa de forma secuencial; lotes distintos corren en paralelo.
    """

    def __init__(
        self,
        *,
        cliente_factory: Callable[[], RndcSoapClient] = RndcSoapClient,
        session_factory: Callable[[], Session] = SessionLocal,
        pausa_segundos: Optional[float] = None,
    ):
        self.cliente_factory = cliente_factory
        self.session_factory = session_factory
        self.pausa_segundos = pausa_segundos
        self._tareas: Dict[str, asyncio.Task] = {}
        self._resultados: Dict[str, Dict[str, Any]] = {}

    def iniciar(
        self,
        lote_id: str,
        *,
        ws_url: Optional[str] = None,
        on_progreso: Optional[ProgresoCallback] = None,
    ) -> asyncio.Task:
        tarea = self._tareas.get(lote_id)
        if tarea is not None and not tarea.done():
            return tarea

        tarea = asyncio.create_task(
            ejecutar_lote(
                lote_id,
                ws_url=ws_url,
                cliente=self.cliente_factory(),
                session_factory=self.session_factory,
                pausa_segundos=self.pausa_segundos,
                on_progreso=on_progreso,
            ),
            name=f"rndc-lote-{lote_id}",
        )
        self._tareas[lote_id] = tarea
        tarea.add_done_callback(partial(self._al_terminar, lote_id))
        return tarea

    def _al_terminar(self, lote_id: str, tarea: asyncio.Task) -> None:
        if self._tareas.get(lote_id) is tarea:
            self._tareas.pop(lote_id, None)

        if tarea.cancelled():
            logger.warning("Tarea del lote %s cancelada", lote_id)
            return
        exc = tarea.exception()
        if exc is not None:
            logger.error("Tarea del lote %s terminó con error", lote_id, exc_info=exc)
            return
        self._resultados[lote_id] = tarea.result()
        # Resúmenes que nadie reclamó: se descartan los más antiguos
        while len(self._resultados) > MAX_RESULTADOS:
            self._resultados.pop(next(iter(self._resultados)))

    def tarea(self, lote_id: str) -> Optional[asyncio.Task]:
        return self._tareas.get(lote_id)

    def en_ejecucion(self, lote_id: str) -> bool:
        tarea = self._tareas.get(lote_id)
        return tarea is not None and not tarea.done()

    def activos(self) -> List[str]:
        return [k for k, t in self._tareas.items() if not t.done()]

    async def esperar(self, lote_id: str) -> Optional[Dict[str, Any]]:
        """Espera el lote y entrega su resumen una sola vez."""
        tarea = self._tareas.get(lote_id)
        if tarea is not None:
            resumen = await asyncio.shield(tarea)
            self._resultados.pop(lote_id, None)
            return resumen
        return self._resultados.pop(lote_id, None)

    async def detener(self) -> None:
        tareas = [t for t in self._tareas.values() if not t.done()]
        for t in tareas:
            t.cancel()
        if tareas:
            await asyncio.gather(*tareas, return_exceptions=True)


lote_worker = LoteWorker()


def get_lote_worker() -> LoteWorker:
    return lote_worker


# =====================================================
# Crear + lanzar
# =====================================================
def crear_y_lanzar(
    db: Session,
    worker: LoteWorker,
    *,
    tipo: str,
    envios: Sequence[EnvioNuevo],
    ws_url: Optional[str] = None,
    on_progreso: Optional[ProgresoCallback] = None,
) -> RndcLote:
    """Persiste el lote (síncrono) y lo entrega al worker; retorna sin esperar los envíos."""
    lote = crear_lote(db, tipo=tipo, envios=envios, ws_url=ws_url)
    worker.iniciar(lote.id, ws_url=ws_url, on_progreso=on_progreso)
    return lote


# =====================================================
# Lotes huérfanos (caída del proceso)
# =====================================================
async def reanudar_lotes_huerfanos(
    worker: LoteWorker,
    *,
    session_factory: Callable[[], Session] = SessionLocal,
) -> List[str]:
    """
    Lotes que quedaron en 'processing' sin tarea viva: los envíos a medio camino
    se cierran como error y los pendientes se retoman en el worker.
    """
    reanudados: List[str] = []
    with session_factory() as db:
        for lote in lotes_en_proceso(db):
            if worker.en_ejecucion(lote.id):
                continue

            cerrar_envios_interrumpidos(db, lote_id=lote.id)

            if listar_envios_pendientes(db, lote_id=lote.id):
                worker.iniciar(lote.id, ws_url=lote.ws_url)
                reanudados.append(lote.id)
            else:
                completar_lote(db, lote_id=lote.id)

    if reanudados:
        logger.warning("Lotes reanudados al iniciar: %s", reanudados)
    return reanudados
