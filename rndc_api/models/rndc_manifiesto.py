from uuid import uuid4

from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from rndc_api.core.db import Base


class RndcManifiesto(Base):
    __tablename__ = "rndc_manifiesto"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))

    consulta_id = Column(String(36), ForeignKey("rndc_consulta.id"), nullable=True, index=True)

    ingreso_id_manifiesto = Column(String(30), nullable=False, unique=True, index=True)
    num_nit_empresa_transporte = Column(String(30), nullable=True)
    fecha_expedicion_manifiesto = Column(String(20), nullable=True)
    codigo_empresa = Column(String(20), nullable=True)
    num_manifiesto_carga = Column(String(30), nullable=True)
    num_placa = Column(String(20), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    puntos_control = relationship(
        "RndcPuntoControl",
        back_populates="manifiesto",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="RndcPuntoControl.cod_punto_control",
    )


class RndcPuntoControl(Base):
    __tablename__ = "rndc_punto_control"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))

    manifiesto_id = Column(
        String(36), ForeignKey("rndc_manifiesto.id", ondelete="CASCADE"), nullable=False, index=True
    )

    cod_punto_control = Column(String(10), nullable=True)
    cod_municipio = Column(String(10), nullable=True)
    direccion = Column(Text, nullable=True)
    fecha_cita = Column(String(20), nullable=True)
    hora_cita = Column(String(10), nullable=True)
    latitud = Column(String(30), nullable=True)
    longitud = Column(String(30), nullable=True)
    tiempo_pactado = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    manifiesto = relationship("RndcManifiesto", back_populates="puntos_control")
