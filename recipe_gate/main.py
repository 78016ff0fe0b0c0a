import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recipe_gate.app.routes.gating import router as gating_router
from recipe_gate.app.services.gating import get_gate_service

load_dotenv()

logger = logging.getLogger("recipe_gate")


def create_app() -> FastAPI:
    app = FastAPI(title="Recipe Gate API")

    # Vite proxy origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(gating_router)

    @app.on_event("startup")
    async def warm_entitlement() -> None:
        service = get_gate_service()
        entitlement = await service.current_entitlement()
        logger.info("Gate service ready tier=%s", entitlement.tier.value)

    return app


app = create_app()
