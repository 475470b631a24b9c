"""
Turn Engine - turn-execution core for an LLM-driven coding agent.
"""

__version__ = "1.0.0"
__author__ = "Turn Engine Team"

__all__ = [
    "TurnController",
    "PolicyEngine",
    "FunctionCallExtractor",
    "create_content_generator",
]


# Lazy attribute access to avoid importing httpx-backed modules at package import time.
# This keeps `import turn_engine.domain...` cheap during test collection.
def __getattr__(name: str):  # pragma: no cover - simple lazy loader
    if name == "TurnController":
        from .application.turn_service import TurnController as _T
        return _T
    if name == "PolicyEngine":
        from .domain.services.policy_engine import PolicyEngine as _P
        return _P
    if name == "FunctionCallExtractor":
        from .domain.services.function_call_extractor import FunctionCallExtractor as _F
        return _F
    if name == "create_content_generator":
        from .infrastructure.backends.factory import create_content_generator as _c
        return _c
    raise AttributeError(f"module 'turn_engine' has no attribute {name!r}")
