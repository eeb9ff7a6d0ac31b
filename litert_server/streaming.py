"""
Simulated streaming for LiteRT-LM answers.

The binary has no token streaming, so the complete answer is split into
word groups and emitted with a small delay as OpenAI-style SSE chunks.
"""

import asyncio
import json
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from .errors import LiteRTError
from .runner import LiteRTRunner

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


def chunk_words(answer: str, chunk_size: int = 5) -> List[str]:
    """
    Split an answer into groups of words.

    Args:
        answer: Complete answer text
        chunk_size: Number of words per chunk

    Returns:
        Chunks in order; every chunk except the last ends with a space
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")

    # Any whitespace run separates words; chunks are rejoined with single spaces
    words = answer.split()
    chunks = [
        " ".join(words[i : i + chunk_size]) for i in range(0, len(words), chunk_size)
    ]
    return [chunk + " " for chunk in chunks[:-1]] + chunks[-1:]


async def synthesize(
    answer: str,
    chunk_size: int = 5,
    interval: float = 0.05,
    is_disconnected: Optional[DisconnectCheck] = None,
) -> AsyncIterator[str]:
    """
    Yield an already-complete answer in paced word chunks.

    Args:
        answer: Complete answer text
        chunk_size: Number of words per chunk
        interval: Seconds to wait between chunks
        is_disconnected: Optional coroutine function; emission stops when it returns True

    Yields:
        Text fragments that concatenate back to the answer
    """
    chunks = chunk_words(answer, chunk_size)
    for index, chunk in enumerate(chunks):
        if index:
            await asyncio.sleep(interval)
            if is_disconnected is not None and await is_disconnected():
                logger.info(f"Client disconnected after {index}/{len(chunks)} chunks")
                return
        yield chunk


def format_sse(payload) -> str:
    """Format one server-sent event line."""
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n"


def completion_chunk(
    request_id: str, model: str, delta: dict, finish_reason: Optional[str] = None
) -> dict:
    return {
        "id": request_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "delta": delta,
                "finish_reason": finish_reason,
            }
        ],
    }


async def stream_chat_completion(
    runner: LiteRTRunner,
    prompt: str,
    request_id: str,
    model: str,
    chunk_size: int = 5,
    interval: float = 0.05,
    is_disconnected: Optional[DisconnectCheck] = None,
) -> AsyncIterator[str]:
    """
    Run the binary and stream its answer as chat.completion.chunk events.

    The process runs inside the generator, so cancelling the response
    (client disconnect) kills it. Failures become a single error chunk.

    Yields:
        SSE-formatted lines, ending with "data: [DONE]"
    """
    try:
        answer = await runner.run(prompt)
    except LiteRTError as e:
        logger.error(f"Streaming generation failed: {e}")
        error_event = completion_chunk(request_id, model, {}, finish_reason="error")
        error_event["error"] = {"message": str(e), "type": e.error_type}
        yield format_sse(error_event)
        yield format_sse("[DONE]")
        return

    first = True
    async for chunk in synthesize(
        answer, chunk_size=chunk_size, interval=interval, is_disconnected=is_disconnected
    ):
        delta = {"role": "assistant", "content": chunk} if first else {"content": chunk}
        first = False
        yield format_sse(completion_chunk(request_id, model, delta))

    yield format_sse(completion_chunk(request_id, model, {}, finish_reason="stop"))
    yield format_sse("[DONE]")
