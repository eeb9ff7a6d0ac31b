"""
FastAPI HTTP server exposing LiteRT-LM through an OpenAI-compatible API.

Provides REST API endpoints for:
- Chat completions (plain and simulated streaming)
- Model listing
- Health checks
"""

import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field, ValidationError

from . import __version__
from .config import Config
from .errors import LiteRTError, ProcessTimeoutError
from .health import binary_available, collect_health
from .prompts import estimate_tokens, messages_to_prompt
from .runner import LiteRTRunner
from .streaming import stream_chat_completion

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class APIError(Exception):
    """Error returned to the client as a JSON body with a status code."""

    def __init__(self, status_code: int, content: dict):
        self.status_code = status_code
        self.content = content
        super().__init__(str(content))


def invalid_request(message: str) -> APIError:
    return APIError(
        400, {"error": {"message": message, "type": "invalid_request_error"}}
    )


def generation_error(error: LiteRTError) -> APIError:
    status_code = 504 if isinstance(error, ProcessTimeoutError) else 500
    return APIError(
        status_code, {"error": {"message": str(error), "type": error.error_type}}
    )


class ChatMessage(BaseModel):
    """Single message in a conversation."""

    role: str = Field(..., description="Message role (system, user, assistant)")
    content: str = Field("", description="Message content")


class ChatCompletionRequest(BaseModel):
    """Request model for /v1/chat/completions."""

    # Validated in the route so a malformed history gets the OpenAI-style 400
    messages: Optional[Any] = Field(None, description="Conversation history")
    model: str = Field("litert-lm", description="Model name echoed in the response")
    temperature: float = Field(
        1.0, description="Accepted for compatibility; the binary ignores it"
    )
    max_tokens: int = Field(
        256, description="Accepted for compatibility; the binary ignores it"
    )
    stream: bool = Field(False, description="Stream the answer as SSE chunks")
    n: int = Field(1, description="Number of choices (only 1 is produced)")


def create_app(config: Optional[Config] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Server configuration (read from the environment if None)

    Returns:
        Configured FastAPI app with its LiteRTRunner in app.state
    """
    config = config or Config.from_env()
    runner = LiteRTRunner(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Log configuration on startup."""
        logger.info(f"Using binary: {config.litert_binary}")
        logger.info(f"Using model: {config.model_path}")
        logger.info(f"Backend: {config.backend}")
        logger.debug(f"Config: {config.summary()}")
        if not binary_available(config.litert_binary):
            logger.warning(
                f"LiteRT binary not found or not executable: {config.litert_binary}"
            )
        if config.api_key:
            logger.info("API key authentication enabled")

        yield

        logger.info("Shutting down server...")

    app = FastAPI(
        title="LiteRT-LM API",
        description="OpenAI-compatible API for local LiteRT-LM inference",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.runner = runner

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        return JSONResponse(status_code=exc.status_code, content=exc.content)

    async def authenticate(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    ):
        """Check the bearer API key when one is configured."""
        if not config.api_key:
            return
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise APIError(401, {"error": "Missing or invalid API key"})
        if not secrets.compare_digest(
            credentials.credentials.encode("utf-8"), config.api_key.encode("utf-8")
        ):
            raise APIError(401, {"error": "Invalid API key"})

    @app.get("/")
    async def root():
        """Root endpoint with basic info."""
        return {
            "name": "LiteRT-LM API",
            "version": __version__,
            "model": config.model_id,
            "status": "running",
        }

    @app.get("/health")
    async def health(test: bool = False):
        """Health check endpoint (?test=true also runs the binary)."""
        return await collect_health(config, runner, test=test)

    @app.get("/v1/models", dependencies=[Depends(authenticate)])
    async def list_models():
        """List models endpoint (OpenAI compatible)."""
        return {
            "object": "list",
            "data": [
                {
                    "id": config.model_id,
                    "object": "model",
                    "created": int(time.time()),
                    "owned_by": "litert-lm",
                    "permission": [],
                    "root": config.model_id,
                    "parent": None,
                }
            ],
        }

    @app.post("/v1/chat/completions", dependencies=[Depends(authenticate)])
    async def chat_completions(request: ChatCompletionRequest, raw_request: Request):
        """
        OpenAI-compatible chat completion.

        Args:
            request: ChatCompletionRequest with the message history
            raw_request: Incoming request, used to detect client disconnects

        Returns:
            chat.completion JSON, or an SSE stream of chat.completion.chunk events
        """
        if not isinstance(request.messages, list) or not request.messages:
            raise invalid_request("Messages array is required")
        try:
            messages = [ChatMessage.model_validate(msg) for msg in request.messages]
        except ValidationError:
            raise invalid_request("Each message needs a role and string content")

        prompt = messages_to_prompt([msg.model_dump() for msg in messages])
        request_id = f"chatcmpl-{secrets.token_hex(16)}"

        if request.stream:
            return StreamingResponse(
                stream_chat_completion(
                    runner,
                    prompt,
                    request_id=request_id,
                    model=request.model,
                    chunk_size=config.stream_chunk_size,
                    interval=config.stream_interval,
                    is_disconnected=raw_request.is_disconnected,
                ),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
            )

        try:
            result = await runner.invoke(prompt)
        except LiteRTError as e:
            logger.error(f"Chat error: {e}", exc_info=True)
            raise generation_error(e)

        response = result.answer
        prompt_tokens = estimate_tokens(prompt)
        completion_tokens = estimate_tokens(response)
        return {
            "id": request_id,
            "object": "chat.completion",
            "created": int(time.time()),
            "model": request.model,
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": response},
                    "finish_reason": "stop",
                }
            ],
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": estimate_tokens(prompt + response),
            },
            "metrics": result.metrics.to_dict(),
        }

    return app


app = create_app()


def main():
    """Main entry point for running the server."""
    import uvicorn

    config = Config.from_env()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info(f"LiteRT-LM API Server starting on port {config.api_port}")

    # Run server
    uvicorn.run(
        create_app(config),
        host=config.api_host,
        port=config.api_port,
        reload=False,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
