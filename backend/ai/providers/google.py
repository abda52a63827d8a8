import httpx

from ai.providers.base import AIProvider


class ProviderError(RuntimeError):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class GoogleProvider(AIProvider):
    """Google Gemini AI provider."""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
    DEFAULT_MODEL = "gemini-2.0-flash"

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _endpoint(self, model: str) -> str:
        return f"{self.BASE_URL}/{model}:generateContent"

    def _headers(self) -> dict:
        return {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

    @staticmethod
    def extract_text(data: dict) -> str:
        """Join the text parts of the first candidate."""
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return " ".join(part.get("text", "") for part in parts if part.get("text")).strip()

    # ------------------------------------------------------------------
    # generate
    # ------------------------------------------------------------------
    async def generate(self, prompt: str, json_mode: bool = True) -> dict:
        model = self.get_model()
        payload: dict = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        }
        if json_mode:
            payload["generationConfig"] = {"responseMimeType": "application/json"}

        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            resp = await client.post(self._endpoint(model), headers=self._headers(), json=payload)
            if resp.status_code != 200:
                raise ProviderError(resp.status_code, f"Google API error: {resp.text}")
            data = resp.json()

        content = self.extract_text(data)
        if not content:
            raise ProviderError(502, "Gemini response had no text output")

        usage = data.get("usageMetadata", {})
        return {
            "content": content,
            "tokens_in": usage.get("promptTokenCount", 0),
            "tokens_out": usage.get("candidatesTokenCount", 0),
            "model": model,
        }
