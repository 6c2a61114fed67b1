from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from searchmate.api.routes import search
from searchmate.config import settings
from searchmate.errors import ModelConfigurationError
from searchmate.llm_client import get_model, reset_models
from searchmate.models.schemas import HealthResponse


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    yield
    # Shutdown
    reset_models()


app = FastAPI(
    title="SearchMate",
    description="Conversational web-search assistant",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(search.router)


@app.get("/api/health", response_model=HealthResponse)
async def health():
    try:
        get_model()
        configured = True
    except ModelConfigurationError:
        configured = False
    return HealthResponse(status="ok", service="searchmate", model_configured=configured)


def serve():
    """Run the API server."""
    uvicorn.run(
        "searchmate.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.app_log_level.lower(),
    )


if __name__ == "__main__":
    serve()
