"""Shared mock model that emits a predefined batch of tool calls."""
from __future__ import annotations

from typing import Any

from pydantic_ai.messages import (
    ModelRequest,
    ModelResponse,
    RetryPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
)
from pydantic_ai.models import Model
from pydantic_ai.usage import RequestUsage


class ToolCallingModel(Model):
    """Mock model: one batch of tool calls per user prompt, then a final text.

    Only the latest request is inspected, so the same batch is replayed on
    every turn of a multi-turn thread.
    """

    def __init__(self, tool_calls: list[dict[str, Any]], final_text: str = "Task completed"):
        super().__init__()
        self.tool_calls = tool_calls
        self.final_text = final_text
        self.call_count = 0

    @property
    def model_name(self) -> str:
        return "tool-calling-mock"

    @property
    def system(self) -> str:
        return "test"

    async def request(self, messages, model_settings, model_request_parameters):
        self.call_count += 1
        usage = RequestUsage(input_tokens=10, output_tokens=5)

        latest = messages[-1] if messages else None
        answered = isinstance(latest, ModelRequest) and any(
            isinstance(part, (ToolReturnPart, RetryPromptPart)) for part in latest.parts
        )

        if not answered and self.tool_calls:
            parts = [
                ToolCallPart(tool_name=call["name"], args=call["args"], tool_call_id=f"call_{i}")
                for i, call in enumerate(self.tool_calls)
            ]
            return ModelResponse(parts=parts, model_name=self.model_name, usage=usage)

        return ModelResponse(
            parts=[TextPart(content=self.final_text)],
            model_name=self.model_name,
            usage=usage,
        )
