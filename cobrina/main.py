# cobrina/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .db import Base, engine
from . import models  # noqa: F401  (registers tables on Base.metadata)
from .errors import install_error_handlers
from .logging_config import logger
from .routes import (
    auditorias,
    auth,
    carteras,
    colchon,
    empleados,
    entidades,
    events,
    gestiones,
    ops,
    proyecciones,
    stickies,
    tips,
)
from .settings import get_settings

settings = get_settings()


def _ensure_db_ready() -> None:
    # schema init for pytest + local runs; Alembic owns real migrations
    Base.metadata.create_all(bind=engine)


# Run schema init at import time so pytest cannot bypass it
_ensure_db_ready()


@asynccontextmanager
async def lifespan(app: FastAPI):
    _ensure_db_ready()
    logger.info(f"COBRINA {settings.APP_VERSION} starting ({settings.ENV})")
    yield


app = FastAPI(title="COBRINA API", version=settings.APP_VERSION, lifespan=lifespan)

install_error_handlers(app)

app.include_router(auth.router)
app.include_router(ops.router)
app.include_router(empleados.router)
app.include_router(entidades.router)
app.include_router(stickies.router)
app.include_router(tips.router)
app.include_router(proyecciones.router)
app.include_router(auditorias.router)
app.include_router(gestiones.router)
app.include_router(colchon.router)
app.include_router(carteras.router)
app.include_router(events.router)


@app.get("/")
def health():
    return {"status": "ok", "service": "cobrina"}
