from abc import ABC, abstractmethod


class AIProvider(ABC):
    """Abstract base class for generative model providers."""

    DEFAULT_MODEL: str = ""

    def __init__(self, api_key: str, model: str | None = None, timeout_seconds: float = 60):
        self.api_key = api_key
        self._model = model
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    async def generate(self, prompt: str, json_mode: bool = True) -> dict:
        """Send a single-turn prompt to the provider.

        Args:
            prompt: Full prompt text.
            json_mode: Ask the provider for an application/json response.

        Returns:
            dict with content, tokens_in, tokens_out, model.
        """
        ...

    def get_model(self) -> str:
        return self._model or self.DEFAULT_MODEL
