from collections.abc import AsyncIterator

from llama_index.llms.openrouter import OpenRouter

from src.llm.errors import LlmConfigError
from src.llm.events import DeltaEvent, DoneEvent, LlmEvent


class OpenRouterStreamClient:
    def __init__(self, api_key: str | None, model: str, temperature: float = 0.2, max_tokens: int = 2048) -> None:
        if not api_key:
            raise LlmConfigError("OPENROUTER_API_KEY not configured")
        self.model = model
        self.llm = OpenRouter(
            api_key=api_key,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    async def stream(self, prompt: str) -> AsyncIterator[LlmEvent]:
        response_gen = await self.llm.astream_complete(prompt)
        async for response in response_gen:
            if response.delta:
                yield DeltaEvent(text=response.delta)
        yield DoneEvent()
