from __future__ import annotations

from fastapi import FastAPI

from .env_settings import get_env
from .log_config import setup_logging
from .routers import auth


def create_app(*, configure_logging: bool = True) -> FastAPI:
    env = get_env()
    if configure_logging:
        setup_logging(level=env.log_level, retention_days=env.log_retention_days, log_dir=env.log_dir)

    app = FastAPI(title="dirauth")
    app.include_router(auth.router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


# uvicorn dirauth.main:app
app = create_app()
