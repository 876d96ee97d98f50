from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from spac_os.config import get_settings
from spac_os.log import configure_logging
from spac_os.models.base import init_db
from spac_os.api import catalog, financial, score_history, settings as org_settings, spacs, targets

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: logging, then database tables
    configure_logging(settings.log_level)
    await init_db()
    yield


app = FastAPI(
    title="SPAC OS API",
    description="SPAC lifecycle, deal pipeline and regulatory tracking",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(spacs.router, prefix="/spacs", tags=["spacs"])
app.include_router(targets.router, prefix="/targets", tags=["targets"])
app.include_router(score_history.router, prefix="/score-history", tags=["score-history"])
app.include_router(financial.router, prefix="/financial", tags=["financial"])
app.include_router(org_settings.router, prefix="/settings", tags=["settings"])
app.include_router(catalog.router, prefix="/catalog", tags=["catalog"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {"message": "SPAC OS API", "docs": "/docs"}
