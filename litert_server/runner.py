"""
LiteRT-LM process runner.

Runs the litert_lm_main binary once per request and turns its output into
an answer. Provides:
- Command construction from the configuration
- Bounded concurrency and a hard timeout per process
- Exit classification (fatal check failures vs. generic errors)
- The stdout -> stderr -> greeting answer pipeline
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import Config
from .errors import FatalError, NonFatalError, ProcessTimeoutError, StartupError
from .markers import FALLBACK_GREETING, NO_RESPONSE, contains_fatal_signature
from .parser import ExtractionResult, extract_metrics, extract_response

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessCapture:
    """Everything one run of the binary wrote, plus its exit code."""

    returncode: int
    stdout: str
    stderr: str


@dataclass
class InvocationResult(ExtractionResult):
    """Resolved answer and metrics for one successful run."""

    source: str = "stdout"
    returncode: int = 0
    elapsed_seconds: float = 0.0


def classify_exit(capture: ProcessCapture) -> None:
    """
    Raise the matching error for a failed run.

    Args:
        capture: Output of a finished process

    Raises:
        FatalError: Non-zero exit with a check failure / fatal log line in stderr
        NonFatalError: Any other non-zero exit
    """
    if capture.returncode == 0:
        return

    for line in capture.stderr.splitlines():
        if contains_fatal_signature(line):
            raise FatalError(line.strip())

    raise NonFatalError(capture.returncode, capture.stderr)


def resolve_answer(
    stdout: str, stderr: str, fallback: str = FALLBACK_GREETING
) -> Tuple[str, str]:
    """
    Pick the answer from stdout, then stderr, then a fixed fallback.

    Returns:
        Tuple of (answer, source) where source is "stdout", "stderr" or "fallback"
    """
    for source, output in (("stdout", stdout), ("stderr", stderr)):
        answer = extract_response(output)
        if answer and answer != NO_RESPONSE:
            return answer, source

    logger.warning(
        f"No response found in LiteRT output (stdout: {len(stdout)} chars, "
        f"stderr: {len(stderr)} chars), returning fallback answer"
    )
    logger.debug(f"Raw output: {stdout}")
    logger.debug(f"Raw error: {stderr}")
    return fallback, "fallback"


class LiteRTRunner:
    """Runs litert_lm_main as a child process, one process per request."""

    def __init__(self, config: Config):
        """
        Initialize the runner.

        Args:
            config: Server configuration (binary, model, backend, limits)
        """
        self.config = config
        self._slots = asyncio.Semaphore(config.max_concurrent_processes)

    def build_command(self, prompt: str, backend: Optional[str] = None) -> List[str]:
        return [
            self.config.litert_binary,
            "--backend",
            backend or self.config.backend,
            "--model_path",
            self.config.model_path,
            "--input_prompt",
            prompt,
        ]

    async def capture(
        self, command: List[str], timeout: Optional[float] = None
    ) -> ProcessCapture:
        """
        Run a command to completion and capture both output channels.

        Args:
            command: Full argument vector, binary first
            timeout: Seconds allowed for waiting on a free slot plus running
                the process (config default if None)

        Returns:
            ProcessCapture with decoded stdout/stderr

        Raises:
            StartupError: If the binary cannot be started
            ProcessTimeoutError: If no slot frees up or the process outlives the timeout
        """
        timeout = timeout if timeout is not None else self.config.process_timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"No free LiteRT process slot within {timeout:g}s")
            raise ProcessTimeoutError(timeout)

        logger.debug(f"Executing: {command}")
        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise StartupError(f"Failed to start LiteRT process: {e}") from e

            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(), timeout=max(0.0, deadline - loop.time())
                )
            except asyncio.TimeoutError:
                await self._kill(process)
                raise ProcessTimeoutError(timeout)
            except asyncio.CancelledError:
                logger.info(f"Request cancelled, killing LiteRT process {process.pid}")
                await self._kill(process)
                raise
        finally:
            self._slots.release()

        return ProcessCapture(
            returncode=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

    async def invoke(
        self,
        prompt: str,
        backend: Optional[str] = None,
        timeout: Optional[float] = None,
        command: Optional[List[str]] = None,
    ) -> InvocationResult:
        """
        Run the binary for a prompt and resolve its answer.

        Args:
            prompt: Prompt text passed via --input_prompt
            backend: Backend override (cpu, gpu, npu, ...)
            timeout: Timeout override in seconds
            command: Full argument vector override (e.g. benchmark mode)

        Returns:
            InvocationResult with the answer, its source channel and metrics
        """
        start_time = time.time()
        capture = await self.capture(
            command or self.build_command(prompt, backend), timeout=timeout
        )
        elapsed = time.time() - start_time

        classify_exit(capture)

        answer, source = resolve_answer(capture.stdout, capture.stderr)
        metrics = extract_metrics(capture.stdout + "\n" + capture.stderr)
        logger.info(
            f"LiteRT run finished in {elapsed:.2f}s "
            f"(answer from {source}, {len(answer)} chars)"
        )
        return InvocationResult(
            answer=answer,
            source=source,
            returncode=capture.returncode,
            elapsed_seconds=round(elapsed, 3),
            metrics=metrics,
        )

    async def run(
        self,
        prompt: str,
        backend: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Run the binary and return only the answer text."""
        result = await self.invoke(prompt, backend=backend, timeout=timeout)
        return result.answer
