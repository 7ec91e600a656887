"""
Shared Ollama utilities: base URL resolution and model listing.
"""

import logging
import os

import requests

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


def ollama_base_url(base_url: str | None = None) -> str:
    """Resolve the Ollama base URL.

    Priority: explicit argument, OLLAMA_HOST, http://localhost:11434.
    OLLAMA_HOST may omit the scheme (e.g. "127.0.0.1:11434").
    """
    url = base_url or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_URL
    if "://" not in url:
        url = f"http://{url}"
    return url.rstrip("/")


def ollama_list_models(base_url: str, timeout: float = 5) -> list[str]:
    """List locally installed Ollama model names.

    Raises RuntimeError if Ollama is unreachable or the reply is not a
    model list.
    """
    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RuntimeError(
            f"Cannot reach Ollama at {base_url}. "
            "Is Ollama running? Start it with: ollama serve"
        ) from e
    try:
        models = resp.json().get("models") or []
    except (ValueError, AttributeError) as e:
        raise RuntimeError(f"Unexpected response from Ollama at {base_url}: {e}") from e
    if not isinstance(models, list):
        raise RuntimeError(f"Unexpected response from Ollama at {base_url}: no model list")
    return [
        m["name"] for m in models
        if isinstance(m, dict) and isinstance(m.get("name"), str)
    ]


def ollama_has_model(installed: list[str], model: str) -> bool:
    """Check a model name against installed names.

    Ollama lists models as "name:tag" and strips ":latest" in some places,
    so both forms are accepted.
    """
    bare = model.split(":")[0] if ":" in model else model
    names = set(installed)
    return (
        model in names or f"{model}:latest" in names or
        bare in names or f"{bare}:latest" in names
    )
