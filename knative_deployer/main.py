from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from knative_deployer.api import components
from knative_deployer.api.utils import register_exception_handlers
from knative_deployer.db import engine, init_db
from knative_deployer.logging_config import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db(engine)
    yield


app = FastAPI(
    title="knative-deployer",
    description="Build apps from source on Kubernetes and serve them with Knative",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/", include_in_schema=False)
def root() -> RedirectResponse:
    """Redirect root URL to Swagger UI docs."""
    return RedirectResponse(url="/docs")


app.include_router(components.router)

register_exception_handlers(app)

if __name__ == "__main__":
    uvicorn.run("knative_deployer.main:app", host="0.0.0.0", port=8001, log_level="info")
