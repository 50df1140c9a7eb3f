"""Command-line interface for llm-toolrun."""
from .main import main

__all__ = ["main"]
