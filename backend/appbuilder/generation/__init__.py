"""Code generation package.

Provides:
- build_prompt / build_prompt_for_document: deterministic prompt construction
- GenerationClient: single-call adapter around the Anthropic Messages API
- GenerationClientFake: scripted test double
"""

from appbuilder.generation.client import Completion, GeneratedCode, GenerationClient
from appbuilder.generation.client_fake import GenerationClientFake
from appbuilder.generation.prompts import build_prompt, build_prompt_for_document

__all__ = [
    "Completion",
    "GeneratedCode",
    "GenerationClient",
    "GenerationClientFake",
    "build_prompt",
    "build_prompt_for_document",
]
