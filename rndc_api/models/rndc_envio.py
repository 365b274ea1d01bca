from uuid import uuid4

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from rndc_api.core.db import Base
from rndc_api.rndc.rndc_types import EstadoEnvio, TRANSICIONES_ENVIO, TransicionEstadoInvalida


class RndcEnvio(Base):
    __tablename__ = "rndc_envio"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))

    lote_id = Column(String(36), ForeignKey("rndc_lote.id", ondelete="CASCADE"), nullable=False, index=True)
    orden = Column(Integer, nullable=False, default=0)

    tipo = Column(String(40), nullable=False)

    # Datos de negocio validados (modelo tipado del mensaje)
    datos = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    # Campos promovidos para búsqueda
    referencia = Column(String(60), nullable=True, index=True)
    num_placa = Column(String(20), nullable=True, index=True)

    xml_request = Column(Text, nullable=False)

    estado = Column(String(20), nullable=False, default=EstadoEnvio.PENDIENTE, index=True)

    codigo_respuesta = Column(String(60), nullable=True)
    mensaje_respuesta = Column(Text, nullable=True)
    xml_response = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    lote = relationship("RndcLote", back_populates="envios")

    @validates("estado")
    def _validar_estado(self, key, nuevo):
        actual = self.estado
        if actual == nuevo and actual is not None and actual not in EstadoEnvio.TERMINALES:
            return nuevo
        if nuevo not in TRANSICIONES_ENVIO.get(actual, set()):
            raise TransicionEstadoInvalida(f"Envío {self.id}: transición {actual} -> {nuevo} no permitida")
        return nuevo

    @validates("xml_request")
    def _validar_xml_request(self, key, nuevo):
        # Inmutable una vez asignado
        if self.xml_request is not None and nuevo != self.xml_request:
            raise TransicionEstadoInvalida(f"Envío {self.id}: xml_request no se puede modificar")
        return nuevo
