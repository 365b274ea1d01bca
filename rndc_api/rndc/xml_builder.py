# rndc_api/rndc/xml_builder.py
from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence, Tuple

from lxml import etree

from rndc_api.schemas.rndc_mensajes import (
    CredencialesRndc,
    PuntoControlDatos,
    RemesaDatos,
    ManifiestoDatos,
    CumplidoRemesaDatos,
    CumplidoManifiestoDatos,
    ConsultaDatos,
    ConsultaMonitoreoDatos,
)

# El RNDC compara el encabezado literalmente: los mensajes GPS usan minúsculas
ENCABEZADO_RNDC = "<?xml version='1.0' encoding='ISO-8859-1' ?>"
ENCABEZADO_GPS = "<?xml version='1.0' encoding='iso-8859-1' ?>"

TIPO_REGISTRO = "1"
TIPO_CONSULTA = "3"
TIPO_MONITOREO = "9"

PROCESO_REMESA = "3"
PROCESO_MANIFIESTO = "4"
PROCESO_CUMPLIDO_REMESA = "5"
PROCESO_CUMPLIDO_MANIFIESTO = "6"
PROCESO_REMESAS_MANIFIESTO = "43"
PROCESO_PUNTO_CONTROL = "60"
PROCESO_MONITOREO = "4"

# (etiqueta RNDC, atributo del modelo) en el orden que exige el servicio
CAMPOS_PUNTO_CONTROL: Tuple[Tuple[str, str], ...] = (
    ("numidgps", "num_id_gps"),
    ("ingresoidmanifiesto", "ingreso_id_manifiesto"),
    ("numplaca", "num_placa"),
    ("codpuntocontrol", "cod_punto_control"),
    ("latitud", "latitud"),
    ("longitud", "longitud"),
    ("fechallegada", "fecha_llegada"),
    ("horallegada", "hora_llegada"),
    ("fechasalida", "fecha_salida"),
    ("horasalida", "hora_salida"),
)

CAMPOS_REMESA: Tuple[Tuple[str, str], ...] = (
    ("NUMNITEMPRESATRANSPORTE", "nit_empresa"),
    ("CONSECUTIVOREMESA", "consecutivo_remesa"),
    ("CODOPERACIONTRANSPORTE", "cod_operacion_transporte"),
    ("CODNATURALEZACARGA", "cod_naturaleza_carga"),
    ("CANTIDADCARGADA", "cantidad_cargada"),
    ("UNIDADMEDIDACAPACIDAD", "unidad_medida_capacidad"),
    ("CODTIPOEMPAQUE", "cod_tipo_empaque"),
    ("MERCANCIAREMESA", "mercancia_remesa"),
    ("DESCRIPCIONCORTAPRODUCTO", "descripcion_corta_producto"),
    ("CODTIPOIDREMITENTE", "cod_tipo_id_remitente"),
    ("NUMIDREMITENTE", "num_id_remitente"),
    ("CODSEDEREMITENTE", "cod_sede_remitente"),
    ("CODTIPOIDDESTINATARIO", "cod_tipo_id_destinatario"),
    ("NUMIDDESTINATARIO", "num_id_destinatario"),
    ("CODSEDEDESTINATARIO", "cod_sede_destinatario"),
    ("CODTIPOIDPROPIETARIO", "cod_tipo_id_propietario"),
    ("NUMIDPROPIETARIO", "num_id_propietario"),
    ("CODSEDEPROPIETARIO", "cod_sede_propietario"),
    ("DUENOPOLIZA", "dueno_poliza"),
    ("NUMPOLIZATRANSPORTE", "num_poliza_transporte"),
    ("COMPANIASEGURO", "compania_seguro"),
    ("FECHAVENCIMIENTOPOLIZACARGA", "fecha_vencimiento_poliza"),
    ("HORASPACTOCARGA", "horas_pacto_carga"),
    ("MINUTOSPACTOCARGA", "minutos_pacto_carga"),
    ("FECHACITAPACTADACARGUE", "fecha_cita_cargue"),
    ("HORACITAPACTADACARGUE", "hora_cita_cargue"),
    ("HORASPACTODESCARGUE", "horas_pacto_descargue"),
    ("MINUTOSPACTODESCARGUE", "minutos_pacto_descargue"),
    ("FECHACITAPACTADADESCARGUE", "fecha_cita_descargue"),
    ("HORACITAPACTADADESCARGUEREMESA", "hora_cita_descargue"),
)

CAMPOS_MANIFIESTO: Tuple[Tuple[str, str], ...] = (
    ("NUMNITEMPRESATRANSPORTE", "nit_empresa"),
    ("NUMMANIFIESTOCARGA", "num_manifiesto_carga"),
    ("CODOPERACIONTRANSPORTE", "cod_operacion_transporte"),
    ("FECHAEXPEDICIONMANIFIESTO", "fecha_expedicion"),
    ("CODMUNICIPIOORIGENMANIFIESTO", "cod_municipio_origen"),
    ("CODMUNICIPIODESTINOMANIFIESTO", "cod_municipio_destino"),
    ("CODIDTITULARMANIFIESTO", "cod_id_titular"),
    ("NUMIDTITULARMANIFIESTO", "num_id_titular"),
    ("NUMPLACA", "num_placa"),
    ("NUMPLACAREMOLQUE", "num_placa_remolque"),
    ("CODIDCONDUCTOR", "cod_id_conductor"),
    ("NUMIDCONDUCTOR", "num_id_conductor"),
    ("VALORFLETEPACTADOVIAJE", "valor_flete"),
    ("RETENCIONICAMANIFIESTOCARGA", "retencion_ica"),
    ("VALORANTICIPOMANIFIESTO", "valor_anticipo"),
    ("CODMUNICIPIOPAGOSALDO", "cod_municipio_pago_saldo"),
    ("FECHAPAGOSALDOMANIFIESTO", "fecha_pago_saldo"),
    ("CODRESPONSABLEPAGOCARGUE", "cod_responsable_pago_cargue"),
    ("CODRESPONSABLEPAGODESCARGUE", "cod_responsable_pago_descargue"),
    ("OBSERVACIONES", "observaciones"),
)

CAMPOS_CUMPLIDO_REMESA: Tuple[Tuple[str, str], ...] = (
    ("NUMNITEMPRESATRANSPORTE", "nit_empresa"),
    ("CONSECUTIVOREMESA", "consecutivo_remesa"),
    ("TIPOCUMPLIDOREMESA", "tipo_cumplido"),
    ("CANTIDADCARGADA", "cantidad_cargada"),
    ("CANTIDADENTREGADA", "cantidad_entregada"),
    ("UNIDADMEDIDACAPACIDAD", "unidad_medida_capacidad"),
    ("FECHAENTRADACARGUE", "fecha_entrada_cargue"),
    ("HORAENTRADACARGUEREMESA", "hora_entrada_cargue"),
    ("FECHAENTRADADESCARGUE", "fecha_entrada_descargue"),
    ("HORAENTRADADESCARGUECUMPLIDO", "hora_entrada_descargue"),
)

CAMPOS_CUMPLIDO_MANIFIESTO: Tuple[Tuple[str, str], ...] = (
    ("NUMNITEMPRESATRANSPORTE", "nit_empresa"),
    ("NUMMANIFIESTOCARGA", "num_manifiesto_carga"),
    ("TIPOCUMPLIDOMANIFIESTO", "tipo_cumplido"),
    ("FECHAENTREGADOCUMENTOS", "fecha_entrega_documentos"),
)


# =====================================================
# Helpers de armado
# =====================================================
def _txt(v: Any) -> str:
    if v is None:
        return ""
    return str(v)


def _hijo(padre: etree._Element, tag: str, valor: Any = None) -> etree._Element:
    el = etree.SubElement(padre, tag)
    el.text = _txt(valor)
    el.tail = "\n"
    return el


def _contenedor(padre: etree._Element, tag: str) -> etree._Element:
    # Elemento con hijos: cada hijo en su propia línea
    el = etree.SubElement(padre, tag)
    el.text = "\n"
    el.tail = "\n"
    return el


def _raiz(credenciales: CredencialesRndc, tipo: str, procesoid: str) -> etree._Element:
    root = etree.Element("root")
    root.text = "\n"

    acceso = _contenedor(root, "acceso")
    _hijo(acceso, "username", credenciales.usuario)
    _hijo(acceso, "password", credenciales.clave)

    solicitud = _contenedor(root, "solicitud")
    _hijo(solicitud, "tipo", tipo)
    _hijo(solicitud, "procesoid", procesoid)

    return root


def _variables(root: etree._Element, datos: Any, campos: Iterable[Tuple[str, str]]) -> etree._Element:
    variables = _contenedor(root, "variables")
    for tag, attr in campos:
        _hijo(variables, tag, getattr(datos, attr))
    return variables


def _serializar(root: etree._Element, encabezado: str) -> str:
    root.tail = None
    cuerpo = etree.tostring(root, encoding="unicode")
    return f"{encabezado}\n{cuerpo}"


def _entre_comillas(v: Optional[str]) -> str:
    # Sintaxis de filtros de consulta del RNDC: 'valor'
    return f"'{_txt(v)}'"


# =====================================================
# Mensajes de registro (tipo 1)
# =====================================================
def construir_xml_punto_control(credenciales: CredencialesRndc, datos: PuntoControlDatos) -> str:
    root = _raiz(credenciales, TIPO_REGISTRO, PROCESO_PUNTO_CONTROL)
    variables = _variables(root, datos, CAMPOS_PUNTO_CONTROL)
    if datos.sin_salida:
        _hijo(variables, "sinsalida", "S")
    return _serializar(root, ENCABEZADO_GPS)


def construir_xml_remesa(credenciales: CredencialesRndc, datos: RemesaDatos) -> str:
    root = _raiz(credenciales, TIPO_REGISTRO, PROCESO_REMESA)
    _variables(root, datos, CAMPOS_REMESA)
    return _serializar(root, ENCABEZADO_RNDC)


def construir_xml_manifiesto(credenciales: CredencialesRndc, datos: ManifiestoDatos) -> str:
    root = _raiz(credenciales, TIPO_REGISTRO, PROCESO_MANIFIESTO)
    variables = _variables(root, datos, CAMPOS_MANIFIESTO)

    remesas = _contenedor(variables, "REMESASMAN")
    remesas.set("procesoid", PROCESO_REMESAS_MANIFIESTO)
    for consecutivo in datos.remesas:
        remesa = _contenedor(remesas, "REMESA")
        _hijo(remesa, "CONSECUTIVOREMESA", consecutivo)

    return _serializar(root, ENCABEZADO_RNDC)


def construir_xml_cumplido_remesa(credenciales: CredencialesRndc, datos: CumplidoRemesaDatos) -> str:
    root = _raiz(credenciales, TIPO_REGISTRO, PROCESO_CUMPLIDO_REMESA)
    _variables(root, datos, CAMPOS_CUMPLIDO_REMESA)
    return _serializar(root, ENCABEZADO_RNDC)


def construir_xml_cumplido_manifiesto(credenciales: CredencialesRndc, datos: CumplidoManifiestoDatos) -> str:
    root = _raiz(credenciales, TIPO_REGISTRO, PROCESO_CUMPLIDO_MANIFIESTO)
    _variables(root, datos, CAMPOS_CUMPLIDO_MANIFIESTO)
    return _serializar(root, ENCABEZADO_RNDC)


# =====================================================
# Consultas (tipo 3) y monitoreo (tipo 9)
# =====================================================
def construir_xml_consulta(credenciales: CredencialesRndc, datos: ConsultaDatos) -> str:
    root = _raiz(credenciales, TIPO_CONSULTA, datos.procesoid)
    _hijo(root, "variables", ",".join(datos.variables))

    documento = _contenedor(root, "documento")
    for tag, valor in datos.filtros.items():
        _hijo(documento, tag, _entre_comillas(valor))

    return _serializar(root, ENCABEZADO_RNDC)


def construir_xml_monitoreo(credenciales: CredencialesRndc, datos: ConsultaMonitoreoDatos) -> str:
    root = _raiz(credenciales, TIPO_MONITOREO, PROCESO_MONITOREO)

    documento = _contenedor(root, "documento")
    _hijo(documento, "numidgps", datos.num_id_gps)
    if datos.tipo_consulta == "ESPECIFICO":
        _hijo(documento, "ingresoidmanifiesto", datos.ingreso_id_manifiesto)
    else:
        _hijo(documento, "manifiestos", datos.tipo_consulta)

    return _serializar(root, ENCABEZADO_GPS)


def construir_xml_consulta_terceros(
    credenciales: CredencialesRndc,
    *,
    nit_empresa: str,
    num_id_tercero: str,
    variables: Optional[Sequence[str]] = None,
) -> str:
    datos = ConsultaDatos(
        procesoid="11",
        variables=list(variables or VARIABLES_TERCEROS),
        filtros={"NUMNITEMPRESATRANSPORTE": nit_empresa, "NUMIDTERCERO": num_id_tercero},
    )
    return construir_xml_consulta(credenciales, datos)


def construir_xml_consulta_vehiculo(
    credenciales: CredencialesRndc,
    *,
    nit_empresa: str,
    num_placa: str,
    variables: Optional[Sequence[str]] = None,
) -> str:
    datos = ConsultaDatos(
        procesoid="12",
        variables=list(variables or VARIABLES_VEHICULO),
        filtros={"NUMNITEMPRESATRANSPORTE": nit_empresa, "NUMPLACA": num_placa},
    )
    return construir_xml_consulta(credenciales, datos)


def construir_xml_consulta_cantidad_remesa(
    credenciales: CredencialesRndc, *, nit_empresa: str, consecutivo_remesa: str
) -> str:
    datos = ConsultaDatos(
        procesoid="3",
        variables=["INGRESOID", "FECHAING", "CANTIDADCARGADA"],
        filtros={"NUMNITEMPRESATRANSPORTE": nit_empresa, "CONSECUTIVOREMESA": consecutivo_remesa},
    )
    return construir_xml_consulta(credenciales, datos)


VARIABLES_TERCEROS = (
    "INGRESOID",
    "FECHAING",
    "CODTIPOIDTERCERO",
    "NOMIDTERCERO",
    "PRIMERAPELLIDOIDTERCERO",
    "SEGUNDOAPELLIDOIDTERCERO",
    "NUMTELEFONOCONTACTO",
    "NOMENCLATURADIRECCION",
    "CODMUNICIPIORNDC",
    "CODSEDETERCERO",
    "NOMSEDETERCERO",
    "NUMLICENCIACONDUCCION",
    "CODCATEGORIALICENCIACONDUCCION",
    "FECHAVENCIMIENTOLICENCIA",
    "LATITUD",
    "LONGITUD",
    "REGIMENSIMPLE",
)

VARIABLES_VEHICULO = (
    "INGRESOID",
    "FECHAING",
    "NUMPLACA",
    "CODCONFIGURACIONUNIDADCARGA",
    "CODMARCAVEHICULOCARGA",
    "CODLINEAVEHICULOCARGA",
    "ANOFABRICACIONVEHICULOCARGA",
    "CODTIPOIDPROPIETARIO",
    "NUMIDPROPIETARIO",
    "CODTIPOIDTENEDOR",
    "NUMIDTENEDOR",
    "NUMSEGUROSOAT",
    "FECHAVENCIMIENTOSOAT",
    "NUMNITASEGURADORASOAT",
    "PESOVEHICULOVACIO",
    "CAPACIDADUNIDADCARGA",
)


# =====================================================
# Dispatcher
# =====================================================
_CONSTRUCTORES = {
    "punto_control": construir_xml_punto_control,
    "remesa": construir_xml_remesa,
    "manifiesto": construir_xml_manifiesto,
    "cumplido_remesa": construir_xml_cumplido_remesa,
    "cumplido_manifiesto": construir_xml_cumplido_manifiesto,
    "consulta": construir_xml_consulta,
    "consulta_monitoreo": construir_xml_monitoreo,
}


def construir_xml(credenciales: CredencialesRndc, datos: Any) -> str:
    """
    Renderiza un mensaje tipado (variante etiquetada por `tipo`) al dialecto XML del RNDC.
    No valida reglas de negocio, solo arma el documento.
    """
    constructor = _CONSTRUCTORES.get(getattr(datos, "tipo", None))
    if constructor is None:
        raise ValueError(f"Tipo de mensaje RNDC no soportado: {getattr(datos, 'tipo', None)!r}")
    return constructor(credenciales, datos)
