from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .dependencies import Services, build_services, lifespan
from .routes import documents, settings as settings_routes, system


def create_app(services: Optional[Services] = None) -> FastAPI:
    services = services or build_services()
    logging.basicConfig(
        level=services.settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Docflow Backend", version="0.1.0", lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[services.settings.frontend_origin, "http://localhost", "http://127.0.0.1"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(system.router)
    app.include_router(documents.router)
    app.include_router(settings_routes.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("docflow.app:app", host="0.0.0.0", port=app.state.services.settings.backend_port, reload=True)
