"""
LLM Adapter - Optional query interpretation through a local Ollama model.

Usage:
    from sectionlens.adapters.llm import LLMQueryInterpreter, LLMService

    interpreter = LLMQueryInterpreter(LLMService())
    hint = await interpreter.interpret("headline for hero-section in Korea")
"""

from .interpreter import LLMQueryInterpreter, parse_hint
from .service import LLMResponse, LLMService, strip_code_fences

__all__ = [
    "LLMService",
    "LLMResponse",
    "LLMQueryInterpreter",
    "parse_hint",
    "strip_code_fences",
]
