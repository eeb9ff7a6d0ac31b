"""
Health reporting for the API server.

Reports:
- Configured binary, model and backend
- Whether the binary exists and is executable
- Server process memory, CPU and thread count
- Optionally, a short self-test run of the binary
"""

import logging
import os
from typing import Dict

import psutil

from .config import Config
from .errors import LiteRTError
from .runner import LiteRTRunner

logger = logging.getLogger(__name__)


def get_process_metrics() -> Dict:
    """
    Get resource usage of the server process.

    Returns:
        Dictionary with memory, CPU and thread metrics (empty on error)
    """
    try:
        process = psutil.Process()
        memory_mb = process.memory_info().rss / (1024 * 1024)
        return {
            "memory_mb": round(memory_mb, 2),
            "cpu_percent": round(process.cpu_percent(interval=None), 2),
            "thread_count": process.num_threads(),
        }
    except psutil.Error as e:
        logger.error(f"Error collecting metrics: {e}")
        return {}


def binary_available(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


async def collect_health(
    config: Config, runner: LiteRTRunner, test: bool = False
) -> Dict:
    """
    Build the /health payload.

    Args:
        config: Server configuration
        runner: Runner used for the optional self-test
        test: If True, run the binary once on a short prompt

    Returns:
        Dictionary with status, configuration and process metrics
    """
    health = {
        "status": "ok",
        "model": config.model_path,
        "backend": config.backend,
        "binary": config.litert_binary,
        "binary_found": binary_available(config.litert_binary),
        "process": get_process_metrics(),
    }

    if test:
        try:
            test_response = await runner.run(
                "Test", timeout=config.health_test_timeout
            )
            health["binary_test"] = "passed"
            health["test_response_length"] = len(test_response)
        except LiteRTError as e:
            logger.warning(f"Binary self-test failed: {e}")
            health["binary_test"] = "failed"
            health["test_error"] = str(e)

    return health
