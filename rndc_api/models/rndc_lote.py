from uuid import uuid4

from sqlalchemy import String, Text, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship, validates, Mapped, mapped_column
from sqlalchemy.sql import func

from rndc_api.core.db import Base
from rndc_api.rndc.rndc_types import EstadoLote, TRANSICIONES_LOTE, TransicionEstadoInvalida


class RndcLote(Base):
    __tablename__ = "rndc_lote"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # puntos_control | remesa | manifiesto | cumplido_remesa | cumplido_manifiesto
    tipo: Mapped[str] = mapped_column(String(40), nullable=False, index=True)

    estado: Mapped[str] = mapped_column(String(20), nullable=False, default=EstadoLote.PROCESANDO)

    total_registros: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_exitosos: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_errores: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_pendientes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    ws_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    lote_origen_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("rndc_lote.id"), nullable=True
    )
    observacion: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    completed_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    envios = relationship(
        "RndcEnvio",
        back_populates="lote",
        order_by="RndcEnvio.orden",
        cascade="all, delete-orphan",
    )

    @validates("estado")
    def _validar_estado(self, key, nuevo):
        actual = self.estado
        if actual == nuevo:
            return nuevo
        if nuevo not in TRANSICIONES_LOTE.get(actual, set()):
            raise TransicionEstadoInvalida(f"Lote {self.id}: transición {actual} -> {nuevo} no permitida")
        return nuevo
