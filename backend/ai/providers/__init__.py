from ai.providers.base import AIProvider
from ai.providers.google import GoogleProvider, ProviderError

from config import settings


def _looks_like_provider_model(provider_name: str, model_id: str | None) -> bool:
    if not model_id:
        return False
    m = model_id.strip().lower()
    if not m:
        return False
    if provider_name == "google":
        return "gemini" in m
    return True


def get_provider(
    provider_name: str,
    api_key: str,
    model: str | None = None,
    timeout_seconds: float = 60,
) -> AIProvider:
    providers = {
        "google": GoogleProvider,
    }
    cls = providers.get(provider_name)
    if not cls:
        raise ValueError(f"Unknown provider: {provider_name}")

    safe_model = model if _looks_like_provider_model(provider_name, model) else None
    return cls(api_key=api_key, model=safe_model, timeout_seconds=timeout_seconds)


def get_default_provider() -> AIProvider | None:
    """Configured Gemini provider, or None when no API key is set."""
    api_key = (settings.GEMINI_API_KEY or "").strip()
    if not api_key:
        return None
    return get_provider(
        "google",
        api_key,
        model=settings.GEMINI_MODEL,
        timeout_seconds=settings.GEMINI_TIMEOUT_SECONDS,
    )


__all__ = ["AIProvider", "GoogleProvider", "ProviderError", "get_provider", "get_default_provider"]
