"""
OwnGPT Orchestrator - FastAPI Application.

HTTP surface over the model lifecycle manager and the chat relay.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import StreamingResponse

from . import __version__
from .config import get_config
from .context import ServiceContext, build_context
from .errors import (
    InferenceError,
    InputValidationError,
    NoActiveModelError,
    OrchestratorError,
    UnitNotFoundError,
)
from .models.schemas import (
    ActivateRequest,
    ActivationResult,
    ChatRequest,
    ChatResponse,
    SystemInfo,
)
from .ollama_client import InferenceStream
from .utils import install_health_check_filter, setup_logging

logger = logging.getLogger("OwnGPT.Orchestrator")

router = APIRouter()


def get_context(request: Request) -> ServiceContext:
    ctx = getattr(request.app.state, "ctx", None)
    if ctx is None:
        raise HTTPException(status_code=503, detail="Orchestrator not initialized")
    return ctx


# =============================================================================
# Health & Status Endpoints
# =============================================================================

@router.get("/health")
async def health_check(ctx: ServiceContext = Depends(get_context)):
    """Health check plus the current model."""
    current = await ctx.models.current()
    return {
        "status": "healthy",
        "model_running": current.is_running,
        "model_name": current.container_name,
    }


@router.get("/")
async def root():
    """Root endpoint with API overview."""
    return {
        "service": "owngpt-orchestrator",
        "description": "Model container lifecycle and chat relay",
        "version": __version__,
        "endpoints": {
            "health": "GET /health",
            "models": {
                "activate": "POST /activate",
                "installed": "GET /models",
                "available": "GET /available-models",
                "delete": "DELETE /models/{name}",
                "refresh": "POST /refresh-model",
            },
            "chat": {
                "send": "POST /chat",
                "stream": "POST /chat/stream",
            },
            "system": "GET /system-info",
        },
    }


@router.get("/system-info")
async def system_info(ctx: ServiceContext = Depends(get_context)) -> SystemInfo:
    """GPU availability and container memory limit."""
    return await ctx.models.system_info()


# =============================================================================
# Model Lifecycle Endpoints
# =============================================================================

@router.post("/activate")
@router.post("/create-dockerfile", include_in_schema=False)
async def activate_model(
    request: ActivateRequest, ctx: ServiceContext = Depends(get_context)
) -> ActivationResult:
    """Build/start the requested model and make it current."""
    try:
        return await ctx.models.activate(request.model)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrchestratorError as e:
        logger.error(f"Activation of {request.model} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/models")
async def list_models(ctx: ServiceContext = Depends(get_context)):
    """Installed model containers and their state."""
    try:
        models = await ctx.models.list_models()
    except OrchestratorError as e:
        logger.error(f"Failed to list installed models: {e}")
        raise HTTPException(status_code=500, detail="Failed to list installed models")
    return {"models": [m.model_dump() for m in models]}


@router.get("/available-models")
async def available_models(ctx: ServiceContext = Depends(get_context)):
    """Curated catalog merged with locally built images."""
    models = await ctx.models.available_models()
    return {"available_models": [m.model_dump() for m in models]}


@router.delete("/models/{name:path}")
async def delete_model(name: str, ctx: ServiceContext = Depends(get_context)):
    """Remove a model's container and image."""
    try:
        await ctx.models.delete_model(name)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnitNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OrchestratorError as e:
        logger.error(f"Failed to delete model {name}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"message": f"Model {name} deleted successfully"}


@router.post("/refresh-model")
async def refresh_model(ctx: ServiceContext = Depends(get_context)):
    """Re-detect the current model from running containers."""
    try:
        current = await ctx.models.resync()
    except OrchestratorError as e:
        logger.error(f"Failed to refresh model state: {e}")
        raise HTTPException(status_code=500, detail="Failed to refresh model state")

    if current.is_running:
        return {"message": "Current model refreshed successfully", "current_model": current.model_dump()}
    return {"message": "No running models found", "current_model": None}


# =============================================================================
# Chat Endpoints
# =============================================================================

@router.post("/chat")
async def chat(request: ChatRequest, ctx: ServiceContext = Depends(get_context)):
    """Send a message and return the whole reply."""
    try:
        response = await ctx.chat.send(request.message)
    except (InputValidationError, NoActiveModelError) as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except InferenceError as e:
        return JSONResponse(
            status_code=500,
            content=ChatResponse(error=f"Failed to get response from model: {e}").model_dump(),
        )
    return ChatResponse(response=response)


def _sse_frame(event: str, data: str) -> str:
    lines = data.split("\n")
    return f"event: {event}\n" + "".join(f"data: {line}\n" for line in lines) + "\n"


async def _sse_events(stream: InferenceStream, heartbeat: float) -> AsyncIterator[str]:
    """Relay stream chunks as SSE frames, with keep-alives while idle."""
    pending: Optional[asyncio.Future] = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(stream.__anext__())
            done, _ = await asyncio.wait({pending}, timeout=heartbeat)
            if not done:
                yield ":keepalive\n\n"
                continue

            finished, pending = pending, None
            try:
                chunk = finished.result()
            except StopAsyncIteration:
                break
            except InferenceError as e:
                logger.error(f"Stream failed: {e}")
                yield _sse_frame("error", f"Error: {e}")
                break
            if chunk.text:
                yield _sse_frame("data", chunk.text)
    finally:
        if pending is not None:
            pending.cancel()
        await stream.aclose()


@router.post("/chat/stream")
async def chat_stream(request: ChatRequest, ctx: ServiceContext = Depends(get_context)):
    """Send a message and relay the reply as server-sent events."""
    try:
        stream = await ctx.chat.stream(request.message)
    except (InputValidationError, NoActiveModelError) as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    return StreamingResponse(
        _sse_events(stream, ctx.config.sse_heartbeat_seconds),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# =============================================================================
# Application
# =============================================================================

def create_app(context: Optional[ServiceContext] = None) -> FastAPI:
    """Build the FastAPI app; ``context`` overrides the production wiring."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("OwnGPT Orchestrator starting up...")
        ctx = context or build_context()
        app.state.ctx = ctx

        # Pick up a model container that is already running
        try:
            current = await ctx.models.resync()
            if current.is_running:
                logger.info(f"Resumed current model: {current.container_name}")
        except OrchestratorError as e:
            logger.warning(f"Could not scan existing model containers: {e}")

        logger.info("OwnGPT Orchestrator ready")
        yield
        logger.info("OwnGPT Orchestrator shutting down...")
        await ctx.ollama.aclose()

    config = context.config if context else get_config()
    app = FastAPI(
        title="OwnGPT Orchestrator",
        description="Model Container Lifecycle and Chat Relay Service",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
    )
    app.include_router(router)
    return app


app = create_app()


# =============================================================================
# Entry Point
# =============================================================================

def main():
    """Run the orchestrator service."""
    import uvicorn
    config = get_config()
    setup_logging(
        log_dir=config.log_dir,
        level=getattr(logging, config.log_level.upper(), logging.INFO),
    )
    install_health_check_filter()
    uvicorn.run(
        "owngpt_orchestrator.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
    )


if __name__ == "__main__":
    main()
