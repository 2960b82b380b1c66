"""Claude Gateway - Main FastAPI application."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Union

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from . import __version__
from .config import get_gateway_config, get_settings
from .converter import convert_request, convert_response, validate_request
from .errors import APIError, GatewayError, InvalidRequestError
from .models.claude import (
    ClaudeMessagesRequest,
    ClaudeMessagesResponse,
    ClaudeStreamEvent,
    ClaudeTextContent,
    ClaudeTokenCountRequest,
    ClaudeTokenCountResponse,
    ClaudeToolResultContent,
)
from .router import ProviderRouter
from .streaming import format_sse, translate_stream
from .utils import (
    extract_api_key_from_headers,
    generate_request_id,
    get_current_timestamp,
    setup_logging,
)

# Initialize settings
settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

STREAM_QUEUE_SIZE = 100
KEEPALIVE_INTERVAL = 15.0
KEEPALIVE_FRAME = ": keep-alive\n\n"
DONE_FRAME = "event: done\ndata: {}\n\n"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Claude Gateway starting up...")
    config = get_gateway_config(settings)
    router = ProviderRouter(
        config,
        timeout=settings.request_timeout,
        stream_timeout=settings.stream_timeout,
    )
    app.state.router = router
    logger.info(f"   Server: {settings.host}:{settings.port}")
    logger.info(f"   Providers: {', '.join(config.providers)}")
    logger.info(f"   Models: {', '.join(config.list_model_paths())}")
    yield
    await router.aclose()
    logger.info("Claude Gateway shutting down...")


# Create FastAPI app
app = FastAPI(
    title="Claude Gateway",
    description="Anthropic Messages API gateway for OpenAI-compatible upstreams",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_router(request: Request) -> ProviderRouter:
    """Router built by the lifespan handler."""
    return request.app.state.router


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_claude_error().model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
        for error in exc.errors()
    )
    error = InvalidRequestError(f"Invalid request body: {details}")
    return await gateway_error_handler(request, error)


def error_frame(error: GatewayError) -> str:
    return f"event: error\ndata: {json.dumps(error.to_claude_error().model_dump())}\n\n"


async def stream_events(events: AsyncIterator[ClaudeStreamEvent], request_id: str) -> StreamingResponse:
    """Run stream translation in a child task and serve its frames as SSE.

    The first frame is awaited before the response starts, so failures that
    happen before any event (bad credentials, unknown model) still get a
    proper HTTP status.
    """
    queue: "asyncio.Queue[Union[str, GatewayError, None]]" = asyncio.Queue(maxsize=STREAM_QUEUE_SIZE)

    async def produce() -> None:
        started = False
        try:
            async for event in events:
                await queue.put(format_sse(event))
                started = True
            await queue.put(DONE_FRAME)
        except Exception as e:
            if isinstance(e, GatewayError):
                error = e
                logger.error(f"Stream {request_id} failed: {e.message}")
            else:
                error = APIError(f"Stream failed: {e}")
                logger.exception(f"Stream {request_id} failed")
            if not started:
                await queue.put(error)
                return
            await queue.put(error_frame(error))
        finally:
            await events.aclose()
        await queue.put(None)

    producer = asyncio.create_task(produce())
    first = await queue.get()
    if isinstance(first, GatewayError):
        raise first

    async def body() -> AsyncIterator[str]:
        try:
            frame = first
            while frame is not None:
                yield frame
                try:
                    frame = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_INTERVAL)
                except asyncio.TimeoutError:
                    frame = KEEPALIVE_FRAME
            logger.info(f"Stream {request_id} completed")
        finally:
            if not producer.done():
                logger.info(f"Stream {request_id} closed by client")
                producer.cancel()

    return StreamingResponse(
        body(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@app.post("/v1/messages", response_model=ClaudeMessagesResponse)
async def create_message(
    request: ClaudeMessagesRequest,
    http_request: Request,
    router: ProviderRouter = Depends(get_router),
):
    """Handle Claude API /v1/messages requests."""
    request_id = generate_request_id()

    logger.info(
        f"Processing request {request_id}: model={request.model}, "
        f"stream={request.stream}, max_tokens={request.max_tokens}"
    )

    validate_request(request)
    openai_request = convert_request(request, get_settings().model_aliases)
    client_key = extract_api_key_from_headers(dict(http_request.headers))

    try:
        if request.stream:
            events = translate_stream(router.chat_stream(openai_request, client_key), request.model)
            return await stream_events(events, request_id)

        response = await router.chat_complete(openai_request, client_key)
        result = convert_response(response, request.model)
        logger.info(f"Request {request_id} completed successfully")
        return result

    except GatewayError as e:
        logger.error(f"Request {request_id} failed: {e.message}")
        raise
    except Exception as e:
        logger.exception(f"Request {request_id} failed")
        raise APIError(f"Request failed: {e}") from e


def _count_chars(content: Any) -> int:
    if isinstance(content, str):
        return len(content)
    if not isinstance(content, list):
        return 0
    total = 0
    for block in content:
        if isinstance(block, ClaudeTextContent):
            total += len(block.text)
        elif isinstance(block, ClaudeToolResultContent):
            total += len(block.result_text())
    return total


@app.post("/v1/messages/count_tokens", response_model=ClaudeTokenCountResponse)
async def count_tokens(request: ClaudeTokenCountRequest):
    """Handle token counting requests."""
    total_chars = _count_chars(request.system)
    for message in request.messages:
        total_chars += _count_chars(message.content)

    # Rough estimation: 4 characters per token
    return ClaudeTokenCountResponse(input_tokens=max(1, total_chars // 4))


@app.get("/health")
async def health_check(router: ProviderRouter = Depends(get_router)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": get_current_timestamp(),
        "version": __version__,
        "models": router.config.list_model_paths(),
    }


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": f"Claude Gateway v{__version__}",
        "status": "running",
        "endpoints": {
            "messages": "/v1/messages",
            "count_tokens": "/v1/messages/count_tokens",
            "health": "/health",
        },
    }


def main():
    """Console entry point."""
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
