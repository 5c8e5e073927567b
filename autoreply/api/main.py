import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from autoreply.api.routes.calls import router as calls_router
from autoreply.api.routes.catalog import router as catalog_router
from autoreply.api.routes.documents import router as documents_router
from autoreply.api.routes.mappings import router as mappings_router
from autoreply.api.routes.respond import router as respond_router
from autoreply.config import settings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Autoreply API",
    description="Grounded WhatsApp auto-replies over documents, calls and catalogs",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_origin_regex=r"https://.*\.vercel\.app|http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(calls_router)
app.include_router(mappings_router)
app.include_router(documents_router)
app.include_router(catalog_router)
app.include_router(respond_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
