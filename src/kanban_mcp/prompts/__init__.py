"""Prompt templates, loader and builder exports."""

from .builder import PromptBuilder
from .loader import BUNDLED_TEMPLATE_DIR, PromptLoadError, PromptLoader
from .models import Phase, PromptTemplate

__all__ = [
    "BUNDLED_TEMPLATE_DIR",
    "Phase",
    "PromptBuilder",
    "PromptLoadError",
    "PromptLoader",
    "PromptTemplate",
]
