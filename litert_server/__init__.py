"""
LiteRT-LM OpenAI-compatible API server

Wraps the local litert_lm_main binary and exposes:
- Chat completions (plain and simulated streaming)
- Model listing
- Health checks with an optional binary self-test
"""

__version__ = "0.1.0"
