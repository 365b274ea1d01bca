from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field

from rndc_api.schemas.rndc_lotes import LoteRemesaRequest, LoteManifiestoRequest, WsUrl
from rndc_api.schemas.rndc_mensajes import CredencialesRndc


class DespachoFila(BaseModel):
    # Tal como viene del Excel: números o texto
    granja: Any = None
    planta: Any = None
    placa: Any = None
    cedula: Any = None
    toneladas: Optional[Any] = None
    fecha: Optional[Any] = None


class ValidarDespachosRequest(BaseModel):
    credenciales: CredencialesRndc
    nit_empresa: str = Field(..., min_length=1)
    filas: List[DespachoFila] = Field(..., min_length=1)
    ws_url: WsUrl = None


class SedeDatos(BaseModel):
    sede: str
    coordenadas: str


class PlacaDatos(BaseModel):
    propietario_id: str
    vence_soat: str
    peso_vacio: str


class CedulaDatos(BaseModel):
    vence_licencia: str


class DespachoValidado(BaseModel):
    granja: Optional[str] = None
    planta: Optional[str] = None
    placa: Optional[str] = None
    cedula: Optional[str] = None
    toneladas: Optional[Any] = None
    fecha: Optional[str] = None

    granja_valida: bool
    granja_datos: Optional[SedeDatos] = None
    planta_valida: bool
    planta_datos: Optional[SedeDatos] = None
    placa_valida: bool
    placa_datos: Optional[PlacaDatos] = None
    cedula_valida: bool
    cedula_datos: Optional[CedulaDatos] = None
    errores: List[str] = []


EnviarDespachosRequest = Union[LoteRemesaRequest, LoteManifiestoRequest]
