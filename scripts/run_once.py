#!/usr/bin/env python3
"""
One-off LiteRT-LM run, useful to check the binary and model setup.

Usage:
    python scripts/run_once.py --prompt "Your question here"
    python scripts/run_once.py --prompt "Hello world" --backend gpu
    python scripts/run_once.py --benchmark
    echo "What is Python?" | python scripts/run_once.py
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from litert_server.config import Config
from litert_server.errors import LiteRTError
from litert_server.runner import LiteRTRunner


def benchmark_command(config: Config, prefill_tokens: int, decode_tokens: int):
    return [
        config.litert_binary,
        "--backend",
        config.backend,
        "--model_path",
        config.model_path,
        "--benchmark",
        "--benchmark_prefill_tokens",
        str(prefill_tokens),
        "--benchmark_decode_tokens",
        str(decode_tokens),
        "--async",
        "false",
    ]


def main():
    """Main entry point for a one-off LiteRT-LM run."""
    parser = argparse.ArgumentParser(
        description="Run the LiteRT-LM binary once and print the parsed output",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_once.py --prompt "What is the meaning of life?"
  python scripts/run_once.py --prompt "Hello" --binary ./litert_lm_main --model model.litertlm
  python scripts/run_once.py --benchmark --prefill-tokens 10 --decode-tokens 10
  echo "What is Python?" | python scripts/run_once.py
        """,
    )

    parser.add_argument(
        "--prompt",
        type=str,
        default=None,
        help="The prompt to run (if not provided, reads from stdin)",
    )
    parser.add_argument("--binary", type=str, default=None, help="Path to litert_lm_main")
    parser.add_argument("--model", type=str, default=None, help="Path to .litertlm model")
    parser.add_argument("--backend", type=str, default=None, help="cpu, gpu or npu")
    parser.add_argument(
        "--timeout", type=float, default=None, help="Process timeout in seconds"
    )
    parser.add_argument(
        "--benchmark",
        action="store_true",
        help="Run in benchmark mode and print performance metrics",
    )
    parser.add_argument("--prefill-tokens", type=int, default=10)
    parser.add_argument("--decode-tokens", type=int, default=10)
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logger = logging.getLogger(__name__)

    config = Config.from_env().with_overrides(
        litert_binary=args.binary,
        model_path=args.model,
        backend=args.backend,
        process_timeout=args.timeout,
    )
    runner = LiteRTRunner(config)

    print(f"Binary: {config.litert_binary}", file=sys.stderr)
    print(f"Model: {config.model_path}", file=sys.stderr)
    print(f"Backend: {config.backend}", file=sys.stderr)
    print("-" * 60, file=sys.stderr)

    if args.benchmark:
        prompt = ""
        command = benchmark_command(config, args.prefill_tokens, args.decode_tokens)
    else:
        # Get prompt from args or stdin
        if args.prompt:
            prompt = args.prompt
        else:
            if sys.stdin.isatty():
                parser.error("No prompt provided. Use --prompt or pipe input via stdin")
            prompt = sys.stdin.read().strip()
            if not prompt:
                parser.error("Empty prompt provided")
        command = None
        logger.info(f"Prompt: {prompt[:100]}{'...' if len(prompt) > 100 else ''}")

    try:
        result = asyncio.run(runner.invoke(prompt, command=command))

    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        sys.exit(130)

    except LiteRTError as e:
        logger.error(f"Error: {e}", exc_info=args.verbose)
        print(f"\nRun failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Exit code: {result.returncode} ({result.elapsed_seconds}s)", file=sys.stderr)

    if not args.benchmark:
        print(f"\n[Output from {result.source}]\n", file=sys.stderr)
        # Print output to stdout (clean, no prefix)
        print(result.answer)

    metrics = result.metrics.to_dict()
    if metrics:
        print("\n[Metrics]", file=sys.stderr)
        for name, value in metrics.items():
            print(f"  {name}: {value}", file=sys.stderr)
    elif args.benchmark:
        print("No performance metrics found in benchmark output", file=sys.stderr)

    logger.info("Run completed successfully")


if __name__ == "__main__":
    main()
