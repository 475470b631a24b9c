"""Backend strategies implementing the ContentGenerator protocol."""

from .code_assist import CodeAssistContentGenerator
from .factory import STRATEGIES, create_content_generator
from .gateway import GatewayContentGenerator
from .gemini import GeminiApiContentGenerator
from .logging_generator import LoggingContentGenerator

__all__ = [
    "CodeAssistContentGenerator",
    "GatewayContentGenerator",
    "GeminiApiContentGenerator",
    "LoggingContentGenerator",
    "STRATEGIES",
    "create_content_generator",
]
