from dotenv import load_dotenv
from pathlib import Path

# =====================================================
# Cargar variables de entorno (.env)
# =====================================================
# main.py está en /rndc_api
# .env está en la raíz del proyecto
env_path = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=env_path)

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from rndc_api.core.config import settings
from rndc_api.core.db import get_db, init_db

from rndc_api.routers.rndc_lotes import router as rndc_lotes_router
from rndc_api.routers.rndc_consultas import router as rndc_consultas_router
from rndc_api.routers.rndc_monitoreo import router as rndc_monitoreo_router
from rndc_api.routers.despachos import router as despachos_router

from rndc_api.services.rndc_orquestador import lote_worker, reanudar_lotes_huerfanos

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("rndc.app")


# =====================================================
# Ciclo de vida
# =====================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    if settings.RNDC_REANUDAR_LOTES_HUERFANOS:
        reanudados = await reanudar_lotes_huerfanos(lote_worker)
        logger.info("Lotes huérfanos reanudados: %s", len(reanudados))

    yield

    # Los lotes cancelados quedan en 'processing' y se retoman al iniciar
    await lote_worker.detener()


# =====================================================
# App
# =====================================================
app = FastAPI(title="RNDC - Despachos API", lifespan=lifespan)

# =====================================================
# CORS
# =====================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =====================================================
# Routers
# =====================================================
app.include_router(rndc_lotes_router)
app.include_router(rndc_consultas_router)
app.include_router(rndc_monitoreo_router)
app.include_router(despachos_router)


# =====================================================
# Endpoints base
# =====================================================
@app.get("/")
def root():
    return {"service": "RNDC - Despachos API"}


@app.get("/health")
def health():
    return {"status": "ok", "lotes_en_ejecucion": len(lote_worker.activos())}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    result = db.execute(text("SELECT 1")).scalar()
    return {"db": "ok", "result": result}
