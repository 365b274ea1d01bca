# rndc_api/rndc/response_parser.py
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from lxml import etree

from rndc_api.rndc.rndc_types import (
    RndcResultado,
    CODIGOS_OK,
    CODIGO_PARSE_ERROR,
    CODIGO_DESCONOCIDO_OK,
)

logger = logging.getLogger("rndc.parser")

# Nombres del elemento que trae el XML interno (según operación / versión del WS)
ELEMENTOS_RESULTADO = ("RegistrarDatosMinResult", "AtenderMensajeRNDCResult", "return")

_XML_DECL_RE = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)
_ERROR_CODE_RE = re.compile(r"error\s+(\w+):", re.IGNORECASE)

MAX_NIVELES = 3


def _parse(texto: Optional[str]) -> Optional[etree._Element]:
    if texto is None:
        return None
    s = _XML_DECL_RE.sub("", texto, count=1).strip()
    if not s:
        return None
    try:
        # Sin entidades externas ni red: la respuesta viene de un tercero
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        return etree.fromstring(s, parser=parser)
    except (etree.XMLSyntaxError, ValueError):
        return None


def _local(el: Any) -> str:
    if not isinstance(el.tag, str):
        return ""
    return etree.QName(el).localname


def _buscar(root: etree._Element, *nombres: str) -> Optional[etree._Element]:
    # Búsqueda por nombre local, ignorando prefijos de namespace
    buscados = {n.lower() for n in nombres}
    for el in root.iter():
        if _local(el).lower() in buscados:
            return el
    return None


def _hijo_directo(el: etree._Element, nombre: str) -> Optional[etree._Element]:
    for h in el:
        if _local(h).lower() == nombre.lower():
            return h
    return None


def _texto(el: Optional[etree._Element]) -> str:
    if el is None:
        return ""
    return "".join(el.itertext()).strip()


def _contenido_resultado(el: etree._Element) -> str:
    """
    El XML interno puede venir como texto escapado (&lt;root&gt;...) o como
    elementos anidados sin escapar.
    """
    hijos = [h for h in el if isinstance(h.tag, str)]
    if hijos:
        return "".join(etree.tostring(h, encoding="unicode", with_tail=False) for h in hijos)
    return (el.text or "").strip()


def _extraer_interno(texto: str, outer: etree._Element) -> str:
    interno = texto
    actual = outer
    for _ in range(MAX_NIVELES):
        el = _buscar(actual, *ELEMENTOS_RESULTADO)
        if el is None:
            break
        interno = _contenido_resultado(el)
        siguiente = _parse(interno)
        if siguiente is None:
            break
        actual = siguiente
    return interno


def interpretar_respuesta(texto: Optional[str]) -> RndcResultado:
    """
    Clasifica la respuesta SOAP del RNDC en un RndcResultado.
    No lanza excepciones: cualquier problema de forma termina en PARSE_ERROR.
    Es determinística: el mismo texto siempre produce el mismo resultado.
    """
    texto = texto or ""

    outer = _parse(texto)
    if outer is None:
        return RndcResultado(
            success=False,
            code=CODIGO_PARSE_ERROR,
            message="Error al parsear respuesta SOAP",
            raw_xml=texto,
        )

    # Páginas de error HTML bien formadas también llegan con 200 a veces
    if _local(outer).lower() == "html":
        return RndcResultado(
            success=False,
            code=CODIGO_PARSE_ERROR,
            message="La respuesta no es XML del RNDC (HTML)",
            raw_xml=texto,
        )

    interno = _extraer_interno(texto, outer)
    root = _parse(interno)
    if root is None:
        return RndcResultado(
            success=False,
            code=CODIGO_PARSE_ERROR,
            message="Error al parsear respuesta del RNDC",
            raw_xml=interno,
        )

    return _clasificar(root, interno)


def _clasificar(root: etree._Element, raw_xml: str) -> RndcResultado:
    # 1) Registro aceptado: <root><ingresoid>...</ingresoid></root>
    ingreso = _hijo_directo(root, "ingresoid")
    if ingreso is None:
        documento = _hijo_directo(root, "documento")
        if documento is not None:
            ingreso = _hijo_directo(documento, "ingresoid")
    ingreso_id = _texto(ingreso)
    if ingreso_id:
        return RndcResultado(
            success=True,
            code=ingreso_id,
            message=f"Registro aceptado. IngresoID: {ingreso_id}",
            raw_xml=raw_xml,
        )

    # 2) Rechazo de negocio: <ErrorMSG>error CRE141: ...</ErrorMSG>
    error_msg = _texto(_buscar(root, "ErrorMSG"))
    if error_msg:
        m = _ERROR_CODE_RE.search(error_msg)
        code = m.group(1).upper() if m else "ERROR"
        return RndcResultado(success=False, code=code, message=error_msg, raw_xml=raw_xml)

    # 3) Bloque <respuesta><codigo/><mensaje/></respuesta>
    respuesta = _buscar(root, "respuesta")
    if respuesta is not None:
        codigo = _texto(_hijo_directo(respuesta, "codigo")) or CODIGO_DESCONOCIDO_OK
        mensaje = _texto(_hijo_directo(respuesta, "mensaje"))
        return RndcResultado(
            success=codigo in CODIGOS_OK,
            code=codigo,
            message=mensaje,
            raw_xml=raw_xml,
        )

    # 4) Nada reconocible: se asume aceptado (ver DESIGN.md)
    logger.info("Respuesta RNDC sin bloque reconocible, se asume código %s", CODIGO_DESCONOCIDO_OK)
    return RndcResultado(
        success=True,
        code=CODIGO_DESCONOCIDO_OK,
        message="Respuesta recibida del RNDC",
        raw_xml=raw_xml,
    )


# =====================================================
# Extracción de documentos (consultas)
# =====================================================
def _a_valor(el: etree._Element) -> Any:
    hijos = [h for h in el if isinstance(h.tag, str)]
    if not hijos:
        return (el.text or "").strip()

    out: Dict[str, Any] = {}
    for h in hijos:
        k = _local(h).upper()
        v = _a_valor(h)
        if k in out:
            if not isinstance(out[k], list):
                out[k] = [out[k]]
            out[k].append(v)
        else:
            out[k] = v
    return out


def extraer_documentos(raw_xml: Optional[str]) -> List[Dict[str, Any]]:
    """
    Devuelve los registros <documento> (o <resultado>) de una respuesta de consulta,
    con llaves en MAYÚSCULAS. Lista vacía si no hay registros o el XML no es válido.
    """
    root = _parse(raw_xml)
    if root is None:
        return []

    registros = [el for el in root.iter() if _local(el).lower() in ("documento", "resultado")]
    # Solo los de nivel más externo (un <resultado> puede traer <documento> adentro)
    externos = [
        el for el in registros
        if not any(_local(a).lower() in ("documento", "resultado") for a in el.iterancestors())
    ]

    out: List[Dict[str, Any]] = []
    for el in externos:
        valor = _a_valor(el)
        if isinstance(valor, dict):
            hijos_doc = valor.get("DOCUMENTO")
            if hijos_doc is not None and _local(el).lower() == "resultado":
                out.extend(hijos_doc if isinstance(hijos_doc, list) else [hijos_doc])
            else:
                out.append(valor)
    return out
