from fastapi import FastAPI, Request

from martin_relay import __version__
from martin_relay.config import get_settings
from martin_relay.errors import ConfigurationError
from martin_relay.logging_config import get_logger, setup_logging
from martin_relay.routers import webhook
from martin_relay.schemas.webhook import HealthResponse
from martin_relay.services.orchestrator import create_orchestrator

settings = get_settings()
setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Martin Relay",
    description="Debounced WhatsApp relay between Z-API and an OpenAI assistant",
    version=__version__,
)

app.include_router(webhook.router)

app.state.orchestrator = None
app.state.missing_credentials = []


@app.on_event("startup")
async def start_orchestrator() -> None:
    current = get_settings()
    try:
        app.state.orchestrator = create_orchestrator(current)
    except ConfigurationError as e:
        app.state.orchestrator = None
        app.state.missing_credentials = e.missing
        logger.error("Orchestrator not started", extra={"context": {"missing": e.missing}})
        return
    logger.info(
        "Orchestrator started",
        extra={"context": {"debounce_seconds": current.debounce_seconds, "max_wait_seconds": current.run_max_wait_seconds}},
    )


@app.on_event("shutdown")
async def stop_orchestrator() -> None:
    orchestrator = app.state.orchestrator
    if orchestrator is None:
        return
    await orchestrator.aclose()
    app.state.orchestrator = None
    logger.info("Orchestrator stopped")


@app.get("/health", response_model=HealthResponse)
async def health(request: Request):
    orchestrator = request.app.state.orchestrator
    if orchestrator is None:
        return HealthResponse(status="ok", configured=False)
    return HealthResponse(status="ok", configured=True, **orchestrator.stats())
