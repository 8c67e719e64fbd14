from __future__ import annotations

import os

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from iamaas.api import deployments, users
from iamaas.api.utils import register_exception_handlers
from iamaas.logging_config import configure_logging

_DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:5173"


def _cors_origins() -> list[str]:
    raw = os.getenv("IAMAAS_CORS_ORIGINS", _DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def create_app() -> FastAPI:
    configure_logging()
    api = FastAPI(
        title="IAM as a Service",
        description="Provisions isolated Keycloak realms for paying customers",
        version="0.1.0",
    )
    api.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @api.get("/", include_in_schema=False)
    def root() -> RedirectResponse:
        return RedirectResponse(url="/docs")

    api.include_router(users.router)
    api.include_router(deployments.router)
    register_exception_handlers(api)
    return api


app = create_app()

if __name__ == "__main__":
    uvicorn.run("iamaas.main:app", host="0.0.0.0", port=int(os.getenv("IAMAAS_PORT", "8001")), log_level="info")
