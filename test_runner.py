"""
Tests for the LiteRT-LM process runner, using fake binaries.
"""

import asyncio
import os
import time

import pytest

from litert_server.config import Config
from litert_server.errors import (
    FatalError,
    NonFatalError,
    ProcessTimeoutError,
    StartupError,
)
from litert_server.markers import FALLBACK_GREETING
from litert_server.runner import (
    LiteRTRunner,
    ProcessCapture,
    classify_exit,
    resolve_answer,
)


def make_runner(binary, **overrides):
    return LiteRTRunner(Config(litert_binary=binary, model_path="model.litertlm", **overrides))


def test_build_command():
    runner = make_runner("/opt/litert/litert_lm_main", backend="gpu")
    assert runner.build_command("Hello world") == [
        "/opt/litert/litert_lm_main",
        "--backend",
        "gpu",
        "--model_path",
        "model.litertlm",
        "--input_prompt",
        "Hello world",
    ]
    assert runner.build_command("Hi", backend="npu")[2] == "npu"


def test_classify_exit_success_passes():
    classify_exit(ProcessCapture(returncode=0, stdout="", stderr="F0000 ignored"))


def test_classify_exit_fatal_carries_line():
    capture = ProcessCapture(
        returncode=1,
        stdout="",
        stderr="I0000 00:00:00 loading\nF0000 00:00:00 Check failure: model load\n*** stack",
    )
    with pytest.raises(FatalError) as excinfo:
        classify_exit(capture)
    assert excinfo.value.line == "F0000 00:00:00 Check failure: model load"


def test_classify_exit_check_failure_without_fatal_prefix():
    capture = ProcessCapture(
        returncode=134, stdout="", stderr="engine.cc:10] Check failure stack trace:"
    )
    with pytest.raises(FatalError) as excinfo:
        classify_exit(capture)
    assert excinfo.value.line == "engine.cc:10] Check failure stack trace:"


def test_classify_exit_non_fatal():
    capture = ProcessCapture(returncode=2, stdout="", stderr="unknown flag --foo\n")
    with pytest.raises(NonFatalError) as excinfo:
        classify_exit(capture)
    assert excinfo.value.exit_code == 2
    assert excinfo.value.stderr == "unknown flag --foo\n"


def test_resolve_answer_prefers_stdout():
    assert resolve_answer("Response: from stdout", "Response: from stderr") == (
        "from stdout",
        "stdout",
    )


def test_resolve_answer_falls_back_to_stderr():
    assert resolve_answer("I0000 logs only", "Response: from stderr") == (
        "from stderr",
        "stderr",
    )


def test_resolve_answer_falls_back_to_greeting():
    assert resolve_answer("", "I0000 logs\nW0000 more logs") == (
        FALLBACK_GREETING,
        "fallback",
    )


def test_invoke_success(fake_binary):
    binary = fake_binary(
        stdout=(
            "I0001 00:00:00 init\n"
            "Response: Paris is the capital of France.\n"
            "Prefill: 120 tokens/sec\n"
        ),
        stderr="Decode: 15.5 tokens/sec\nPeak memory: 700 MB\n",
    )
    result = asyncio.run(make_runner(binary).invoke("What is the capital of France?"))

    assert result.answer == "Paris is the capital of France."
    assert result.source == "stdout"
    assert result.returncode == 0
    assert result.metrics.prefill_tokens_per_sec == 120.0
    assert result.metrics.decode_tokens_per_sec == 15.5
    assert result.metrics.peak_memory_mb == 700.0


def test_invoke_passes_arguments(echo_binary):
    answer = asyncio.run(make_runner(echo_binary, backend="cpu").run("Hello"))
    assert answer.splitlines() == [
        "--backend",
        "cpu",
        "--model_path",
        "model.litertlm",
        "--input_prompt",
        "Hello",
    ]


def test_invoke_uses_stderr_when_stdout_is_empty(fake_binary):
    binary = fake_binary(stderr="I0000 00:00:00 init\nGenerated text: from stderr\n")
    result = asyncio.run(make_runner(binary).invoke("hi"))
    assert result.answer == "from stderr"
    assert result.source == "stderr"


def test_invoke_returns_greeting_when_nothing_extractable(fake_binary):
    binary = fake_binary(stdout="I0000 00:00:00 init\n", stderr="W0000 00:00:00 warn\n")
    assert asyncio.run(make_runner(binary).run("hi")) == FALLBACK_GREETING


def test_invoke_fatal_error(fake_binary):
    binary = fake_binary(
        stderr="F0000 00:00:00 Check failure: model load", exit_code=1
    )
    with pytest.raises(FatalError) as excinfo:
        asyncio.run(make_runner(binary).run("hi"))
    assert excinfo.value.line == "F0000 00:00:00 Check failure: model load"


def test_invoke_non_fatal_error(fake_binary):
    binary = fake_binary(stderr="E0001 bad model path", exit_code=3)
    with pytest.raises(NonFatalError) as excinfo:
        asyncio.run(make_runner(binary).run("hi"))
    assert excinfo.value.exit_code == 3
    assert "E0001 bad model path" in excinfo.value.stderr


def test_invoke_missing_binary(tmp_path):
    runner = make_runner(str(tmp_path / "does_not_exist"))
    with pytest.raises(StartupError):
        asyncio.run(runner.run("hi"))


def test_invoke_binary_not_executable(non_executable):
    with pytest.raises(StartupError):
        asyncio.run(make_runner(non_executable).run("hi"))


def test_invoke_timeout_kills_process(fake_binary):
    binary = fake_binary(sleep=10)
    runner = make_runner(binary, process_timeout=0.3)
    with pytest.raises(ProcessTimeoutError) as excinfo:
        asyncio.run(runner.run("hi"))
    assert excinfo.value.timeout == 0.3


def test_invoke_timeout_override(fake_binary):
    binary = fake_binary(sleep=10)
    runner = make_runner(binary)
    with pytest.raises(ProcessTimeoutError):
        asyncio.run(runner.run("hi", timeout=0.2))


def test_cancellation_kills_process(script_binary, tmp_path):
    pid_file = tmp_path / "child.pid"
    binary = script_binary(f'echo $$ > "{pid_file}"\nexec sleep 10')
    runner = make_runner(binary)

    async def cancel_midway():
        task = asyncio.create_task(runner.run("hi"))
        while not pid_file.exists() or not pid_file.read_text().strip():
            await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(asyncio.wait_for(cancel_midway(), timeout=5))

    pid = int(pid_file.read_text())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def test_concurrent_processes_are_bounded(script_binary, tmp_path):
    running = tmp_path / "running"
    running.mkdir()
    counts = tmp_path / "counts.log"
    binary = script_binary(
        f'mkdir "{running}/$$"\n'
        f'ls "{running}" | wc -l >> "{counts}"\n'
        "sleep 0.2\n"
        f'rmdir "{running}/$$"\n'
        "echo 'Response: done'"
    )
    runner = make_runner(binary, max_concurrent_processes=2)

    async def run_many():
        return await asyncio.gather(*(runner.run(f"prompt {i}") for i in range(5)))

    assert asyncio.run(run_many()) == ["done"] * 5

    observed = [int(line) for line in counts.read_text().split()]
    assert len(observed) == 5
    assert max(observed) <= 2


def test_timeout_includes_wait_for_a_free_slot(fake_binary):
    runner = make_runner(fake_binary(sleep=3))
    quick_binary = fake_binary(stdout="Response: quick")

    async def wait_behind_busy_slot():
        busy = asyncio.create_task(runner.run("slow"))
        await asyncio.sleep(0.2)
        start = time.monotonic()
        try:
            with pytest.raises(ProcessTimeoutError) as excinfo:
                await runner.invoke("hi", timeout=0.5, command=[quick_binary])
            return excinfo.value.timeout, time.monotonic() - start
        finally:
            busy.cancel()
            with pytest.raises(asyncio.CancelledError):
                await busy

    timeout, elapsed = asyncio.run(wait_behind_busy_slot())
    assert timeout == 0.5
    assert elapsed < 2


def test_slot_is_released_after_timeout(fake_binary):
    runner = make_runner(fake_binary(sleep=10))
    quick_binary = fake_binary(stdout="Response: quick")

    async def timeout_then_run():
        with pytest.raises(ProcessTimeoutError):
            await runner.run("hi", timeout=0.2)
        result = await runner.invoke("hi", timeout=5, command=[quick_binary])
        return result.answer

    assert asyncio.run(timeout_then_run()) == "quick"
