from uuid import uuid4

from sqlalchemy import String, Text, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from rndc_api.core.db import Base


class RndcConsulta(Base):
    __tablename__ = "rndc_consulta"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # terceros | vehiculos | remesa | monitoreo | libre
    tipo_consulta: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    nombre_consulta: Mapped[str | None] = mapped_column(String(120), nullable=True)

    nit_empresa: Mapped[str | None] = mapped_column(String(30), nullable=True)
    num_id_tercero: Mapped[str | None] = mapped_column(String(30), nullable=True)

    xml_request: Mapped[str] = mapped_column(Text, nullable=False)
    xml_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    datos_respuesta: Mapped[list | None] = mapped_column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    # processing -> success | error
    estado: Mapped[str] = mapped_column(String(20), nullable=False, default="processing")
    codigo_respuesta: Mapped[str | None] = mapped_column(String(60), nullable=True)
    mensaje_respuesta: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    processed_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
