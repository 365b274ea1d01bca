import re
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class CredencialesRndc(BaseModel):
    usuario: str = Field(..., min_length=1)
    clave: str = Field(..., min_length=1)


# Caracteres de control que no caben en un documento XML 1.0
_CONTROL_XML = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def _texto(v):
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, str):
        if _CONTROL_XML.search(v):
            raise ValueError("El texto contiene caracteres de control no permitidos en XML")
        return v.strip()
    if isinstance(v, list):
        return [_texto(x) for x in v]
    if isinstance(v, dict):
        return {k: _texto(x) for k, x in v.items()}
    return v


class _DatosRndc(BaseModel):
    """
    Base de los mensajes tipados. El RNDC solo recibe texto:
    números llegan como str y los espacios sobrantes se recortan.
    """

    @model_validator(mode="before")
    @classmethod
    def _a_texto(cls, data):
        # "tipo" es el discriminador de las uniones, no se toca
        if not isinstance(data, dict):
            return data
        return {k: (v if k == "tipo" else _texto(v)) for k, v in data.items()}

    @property
    def referencia(self) -> Optional[str]:
        return None

    @property
    def placa(self) -> Optional[str]:
        return None


# =====================================================
# Reporte de puntos de control (GPS) - procesoid 60
# =====================================================
class PuntoControlDatos(_DatosRndc):
    tipo: Literal["punto_control"] = "punto_control"

    num_id_gps: str = Field(..., min_length=1)
    ingreso_id_manifiesto: str = Field(..., min_length=1)
    num_placa: str = Field(..., min_length=1)
    cod_punto_control: str = Field(..., min_length=1)
    latitud: str
    longitud: str
    fecha_llegada: str
    hora_llegada: str
    fecha_salida: Optional[str] = None
    hora_salida: Optional[str] = None
    sin_salida: bool = False

    @property
    def referencia(self) -> Optional[str]:
        return self.ingreso_id_manifiesto

    @property
    def placa(self) -> Optional[str]:
        return self.num_placa


# =====================================================
# Remesa terrestre de carga - procesoid 3
# =====================================================
class RemesaDatos(_DatosRndc):
    tipo: Literal["remesa"] = "remesa"

    nit_empresa: str = Field(..., min_length=1)
    consecutivo_remesa: str = Field(..., min_length=1)
    cod_operacion_transporte: str = "G"
    cod_naturaleza_carga: str = "1"
    cantidad_cargada: str
    unidad_medida_capacidad: str = "1"
    cod_tipo_empaque: str = "0"
    mercancia_remesa: str
    descripcion_corta_producto: str

    cod_tipo_id_remitente: str = "N"
    num_id_remitente: str
    cod_sede_remitente: str
    cod_tipo_id_destinatario: str = "N"
    num_id_destinatario: str
    cod_sede_destinatario: str
    cod_tipo_id_propietario: str = "N"
    num_id_propietario: str
    cod_sede_propietario: str

    dueno_poliza: str = "E"
    num_poliza_transporte: Optional[str] = None
    compania_seguro: Optional[str] = None
    fecha_vencimiento_poliza: Optional[str] = None

    horas_pacto_carga: str = "12"
    minutos_pacto_carga: str = "0"
    fecha_cita_cargue: str
    hora_cita_cargue: str
    horas_pacto_descargue: str = "12"
    minutos_pacto_descargue: str = "0"
    fecha_cita_descargue: str
    hora_cita_descargue: str

    @property
    def referencia(self) -> Optional[str]:
        return self.consecutivo_remesa


# =====================================================
# Manifiesto de carga - procesoid 4
# =====================================================
class ManifiestoDatos(_DatosRndc):
    tipo: Literal["manifiesto"] = "manifiesto"

    nit_empresa: str = Field(..., min_length=1)
    num_manifiesto_carga: str = Field(..., min_length=1)
    cod_operacion_transporte: str = "G"
    fecha_expedicion: str
    cod_municipio_origen: str
    cod_municipio_destino: str
    cod_id_titular: str = "C"
    num_id_titular: str
    num_placa: str = Field(..., min_length=1)
    num_placa_remolque: Optional[str] = None
    cod_id_conductor: str = "C"
    num_id_conductor: str
    valor_flete: str
    retencion_ica: str = "0"
    valor_anticipo: str = "0"
    cod_municipio_pago_saldo: str
    fecha_pago_saldo: str
    cod_responsable_pago_cargue: str = "E"
    cod_responsable_pago_descargue: str = "E"
    observaciones: Optional[str] = None
    remesas: List[str] = Field(..., min_length=1)

    @field_validator("num_placa")
    @classmethod
    def _placa(cls, v: str) -> str:
        return "".join(v.split()).upper()

    @property
    def referencia(self) -> Optional[str]:
        return self.num_manifiesto_carga

    @property
    def placa(self) -> Optional[str]:
        return self.num_placa


# =====================================================
# Cumplidos - procesoid 5 (remesa) / 6 (manifiesto)
# =====================================================
class CumplidoRemesaDatos(_DatosRndc):
    tipo: Literal["cumplido_remesa"] = "cumplido_remesa"

    nit_empresa: str = Field(..., min_length=1)
    consecutivo_remesa: str = Field(..., min_length=1)
    tipo_cumplido: str = "C"
    cantidad_cargada: str
    cantidad_entregada: str
    unidad_medida_capacidad: str = "1"
    fecha_entrada_cargue: str
    hora_entrada_cargue: str
    fecha_entrada_descargue: str
    hora_entrada_descargue: str

    @property
    def referencia(self) -> Optional[str]:
        return self.consecutivo_remesa


class CumplidoManifiestoDatos(_DatosRndc):
    tipo: Literal["cumplido_manifiesto"] = "cumplido_manifiesto"

    nit_empresa: str = Field(..., min_length=1)
    num_manifiesto_carga: str = Field(..., min_length=1)
    tipo_cumplido: str = "C"
    fecha_entrega_documentos: str

    @property
    def referencia(self) -> Optional[str]:
        return self.num_manifiesto_carga


# =====================================================
# Consultas (tipo 3) y monitoreo GPS (tipo 9)
# =====================================================
PROCESO_CONSULTA_REMESAS = "3"
PROCESO_CONSULTA_TERCEROS = "11"
PROCESO_CONSULTA_VEHICULOS = "12"


class ConsultaDatos(_DatosRndc):
    tipo: Literal["consulta"] = "consulta"

    procesoid: str = Field(..., min_length=1)
    variables: List[str] = Field(..., min_length=1)
    # Filtros en el orden en que deben ir dentro de <documento>
    filtros: Dict[str, str] = Field(default_factory=dict)


class ConsultaMonitoreoDatos(_DatosRndc):
    tipo: Literal["consulta_monitoreo"] = "consulta_monitoreo"

    num_id_gps: str = Field(..., min_length=1)
    tipo_consulta: Literal["NUEVOS", "TODOS", "ESPECIFICO"] = "NUEVOS"
    ingreso_id_manifiesto: Optional[str] = None

    @model_validator(mode="after")
    def _especifico_requiere_manifiesto(self):
        if self.tipo_consulta == "ESPECIFICO" and not self.ingreso_id_manifiesto:
            raise ValueError("ingreso_id_manifiesto es requerido para consultas ESPECIFICO")
        return self


DatosEnvio = Annotated[
    Union[
        PuntoControlDatos,
        RemesaDatos,
        ManifiestoDatos,
        CumplidoRemesaDatos,
        CumplidoManifiestoDatos,
    ],
    Field(discriminator="tipo"),
]

DatosMensaje = Annotated[
    Union[
        PuntoControlDatos,
        RemesaDatos,
        ManifiestoDatos,
        CumplidoRemesaDatos,
        CumplidoManifiestoDatos,
        ConsultaDatos,
        ConsultaMonitoreoDatos,
    ],
    Field(discriminator="tipo"),
]
