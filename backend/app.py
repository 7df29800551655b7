"""FastAPI service exposing benefit eligibility evaluation and rule authoring tools.

Profiles, programs, rules and cached results live in the SQLAlchemy database
configured by DATABASE_URL. Bundled rule files and a demo profile are imported
on startup unless SEED_ON_STARTUP=false.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.db import init_db
from backend.routers import eligibility as eligibility_router
from backend.routers import profiles as profiles_router
from backend.routers import rules as rules_router
from backend.seed import seed_demo_data
from eligibility_engine.errors import EntityNotFoundError

logger = logging.getLogger("eligibility-api")
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_settings() -> Dict[str, Any]:
    return {
        "allowed_origins": _split_origins(os.getenv("ALLOWED_ORIGINS", "*")) or ["*"],
        "allow_origin_regex": os.getenv("ALLOWED_ORIGIN_REGEX") or None,
        "seed_on_startup": os.getenv("SEED_ON_STARTUP", "true").lower() in ("1", "true", "yes"),
    }


def error_response(status_code: int, detail: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def create_app(settings: Optional[Dict[str, Any]] = None) -> FastAPI:
    settings = settings or get_settings()
    api = FastAPI(
        title="Benefits Eligibility API",
        description="Evaluates household profiles against benefit program rules.",
        version="0.1.0",
    )
    api.add_middleware(
        CORSMiddleware,
        allow_origins=settings["allowed_origins"],
        allow_origin_regex=settings["allow_origin_regex"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for module in (eligibility_router, profiles_router, rules_router):
        api.include_router(module.router)

    @api.on_event("startup")
    async def prepare_database() -> None:
        init_db()
        if settings["seed_on_startup"]:
            logger.info("Seeding bundled rules and demo profile")
            seed_demo_data()

    @api.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @api.get("/")
    async def root() -> Dict[str, str]:
        return {"service": "eligibility-api", "status": "ok"}

    @api.exception_handler(EntityNotFoundError)
    async def entity_not_found(_, exc: EntityNotFoundError):  # type: ignore[override]
        return error_response(404, str(exc))

    @api.exception_handler(HTTPException)
    async def http_error(_, exc: HTTPException):  # type: ignore[override]
        return error_response(exc.status_code, exc.detail)

    @api.exception_handler(Exception)
    async def unhandled_error(_, exc: Exception):  # type: ignore[override]
        logger.exception("Unhandled error: %s", exc)
        return error_response(500, "Internal server error")

    return api


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.app:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
