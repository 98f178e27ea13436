import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ai_fallback import (
    PROVIDER_PLUGINS,
    AllProvidersFailedError,
    FallbackOrchestrator,
)

# Configure logging
logging.basicConfig(level=logging.INFO)

# Load environment variables from .env file
load_dotenv()


class CompletionRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    preferred_provider: Optional[str] = None
    per_attempt_timeout: Optional[float] = Field(default=None, gt=0)
    total_time_budget: Optional[float] = Field(default=None, gt=0)


class CompletionResponse(BaseModel):
    text: str
    provider: str
    model: str
    attempts: List[Dict[str, Any]] = []


# --- Lifespan Management ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage the FallbackOrchestrator's lifecycle with the app's lifespan."""
    app.state.orchestrator = FallbackOrchestrator()
    logging.info("FallbackOrchestrator initialized.")
    yield
    await app.state.orchestrator.close()
    logging.info("FallbackOrchestrator closed.")


# --- FastAPI App Setup ---
app = FastAPI(lifespan=lifespan)


def get_orchestrator(request: Request) -> FallbackOrchestrator:
    """Dependency to get the orchestrator instance from the app state."""
    return request.app.state.orchestrator


@app.post("/v1/complete", response_model=CompletionResponse)
async def complete(
    body: CompletionRequest,
    orchestrator: FallbackOrchestrator = Depends(get_orchestrator),
):
    """
    Produce a completion from the first provider that answers.
    Responds 503 with a per-provider report when every provider fails.
    """
    try:
        result = await orchestrator.complete(
            body.prompt,
            preferred_provider=body.preferred_provider,
            per_attempt_timeout=body.per_attempt_timeout,
            total_time_budget=body.total_time_budget,
        )
    except AllProvidersFailedError as e:
        logging.error(f"Completion failed: {len(e.attempts)} candidate(s) tried")
        return JSONResponse(status_code=503, content=e.build_report())

    return CompletionResponse(
        text=result.text,
        provider=result.provider,
        model=result.model,
        attempts=[record.to_dict() for record in result.attempts],
    )


@app.get("/")
def read_root():
    return {"Status": "AI completion service is running"}


@app.get("/v1/providers")
async def list_providers(
    orchestrator: FallbackOrchestrator = Depends(get_orchestrator),
):
    """
    Returns every supported provider with its configured credential count.
    """
    return {
        name: {"credentials": orchestrator.rotator.count(name)}
        for name in PROVIDER_PLUGINS
    }


@app.get("/v1/rate-limits")
async def rate_limits(
    orchestrator: FallbackOrchestrator = Depends(get_orchestrator),
):
    """
    Returns the current window counters and blocks per provider/model.
    """
    return orchestrator.rate_limiter.snapshot()

