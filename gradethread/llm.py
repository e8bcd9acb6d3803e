"""LLM client wrapper: OpenAI, Groq (free tier), or Ollama (local, free), all vision-capable."""
import json
import os
import re
import threading
from pathlib import Path
from typing import Sequence

import openai
from dotenv import load_dotenv
from openai import OpenAI
from pydantic import BaseModel

from gradethread.errors import (
    ConfigurationError,
    ModelTimeoutError,
    ParseError,
    RateLimitError,
    UpstreamError,
)

# Load .env from project root (parent of gradethread/) so it works when run as python -m gradethread.run
_project_root = Path(__file__).resolve().parent.parent
load_dotenv(_project_root / ".env")

# Provider: openai (default), groq (free tier), ollama (local, free)
GROQ_BASE = "https://api.groq.com/openai/v1"
OLLAMA_BASE = "http://localhost:11434/v1"
PROVIDERS = ("openai", "groq", "ollama")

DEFAULT_TIMEOUT_SECONDS = 60.0

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)(?:\n?```|$)", re.DOTALL | re.IGNORECASE)

# Process-scoped client: built on first use, released by close_client().
_client: OpenAI | None = None
_client_lock = threading.Lock()


class Completion(BaseModel):
    """Text of one model reply plus the usage numbers we log."""

    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


def get_provider() -> str:
    provider = (os.getenv("LLM_PROVIDER") or "openai").strip().lower()
    if provider not in PROVIDERS:
        raise ConfigurationError(f"Unknown LLM_PROVIDER '{provider}'. Use one of: {', '.join(PROVIDERS)}.")
    return provider


def get_timeout() -> float:
    """Per-call timeout in seconds (LLM_TIMEOUT_SECONDS)."""
    raw = os.getenv("LLM_TIMEOUT_SECONDS")
    if not raw:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"LLM_TIMEOUT_SECONDS must be a number, got '{raw}'") from None
    if value <= 0:
        raise ConfigurationError("LLM_TIMEOUT_SECONDS must be positive")
    return value


def _build_client() -> OpenAI:
    """Return OpenAI-compatible client based on LLM_PROVIDER in .env."""
    provider = get_provider()
    # Retries belong to the submission pipeline's caller, not to this client.
    options = {"timeout": get_timeout(), "max_retries": 0}

    if provider == "groq":
        key = os.getenv("GROQ_API_KEY")
        if not key or key.startswith("gsk_REPLACE"):
            raise ConfigurationError(
                "Groq API key not set. Set LLM_PROVIDER=groq and GROQ_API_KEY=your-key in .env. "
                "Get a free key at https://console.groq.com/"
            )
        return OpenAI(api_key=key, base_url=GROQ_BASE, **options)

    if provider == "ollama":
        # Ollama has no auth; use a placeholder key. Needs a vision model: ollama run llama3.2-vision
        return OpenAI(api_key="ollama", base_url=OLLAMA_BASE, **options)

    key = os.getenv("OPENAI_API_KEY")
    if not key or key.startswith("sk-REPLACE"):
        raise ConfigurationError(
            "OpenAI API key not set. Create .env and set OPENAI_API_KEY=your-key, "
            "or use LLM_PROVIDER=groq + GROQ_API_KEY, or LLM_PROVIDER=ollama with a local vision model."
        )
    return OpenAI(api_key=key, **options)


def get_client() -> OpenAI:
    """Shared client, created on first use."""
    global _client
    with _client_lock:
        if _client is None:
            _client = _build_client()
        return _client


def close_client() -> None:
    """Release the shared client. The next get_client() builds a fresh one."""
    global _client
    with _client_lock:
        if _client is not None:
            _client.close()
            _client = None


def get_model() -> str:
    """Return model name from env or default for current provider."""
    provider = get_provider()
    if provider == "groq":
        return os.getenv("GROQ_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct")
    if provider == "ollama":
        return os.getenv("OLLAMA_MODEL", "llama3.2-vision")
    return os.getenv("OPENAI_MODEL", "gpt-4o")


def _user_content(user: str, images: Sequence[str]) -> str | list[dict]:
    if not images:
        return user
    parts: list[dict] = [{"type": "image_url", "image_url": {"url": uri}} for uri in images]
    parts.append({"type": "text", "text": user})
    return parts


def complete(
    system: str,
    user: str,
    model: str | None = None,
    images: Sequence[str] = (),
    max_tokens: int = 1024,
) -> Completion:
    """
    Single completion, optionally with images (data URIs). Returns text plus token usage.
    SDK failures are re-raised as ModelTimeoutError, RateLimitError or UpstreamError.
    """
    client = get_client()
    model = model or get_model()
    try:
        resp = client.chat.completions.create(
            model=model,
            max_tokens=max_tokens,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": _user_content(user, images)},
            ],
        )
    except openai.APITimeoutError as e:
        raise ModelTimeoutError(str(e)) from e
    except openai.RateLimitError as e:
        raise RateLimitError(str(e)) from e
    except openai.APIError as e:
        raise UpstreamError(str(e)) from e

    if not resp.choices:
        raise UpstreamError("No choices in model response")
    usage = resp.usage
    return Completion(
        text=resp.choices[0].message.content or "",
        model=model,
        input_tokens=usage.prompt_tokens if usage else 0,
        output_tokens=usage.completion_tokens if usage else 0,
    )


def strip_code_fences(text: str) -> str:
    """Drop ```json ... ``` (or bare ```) wrapping; text without fences is returned stripped."""
    text = text.strip()
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def extract_json_from_response(text: str) -> dict:
    """
    Parse the JSON object in a model reply, fenced or raw.
    Raises ParseError when it is not valid JSON or not an object.
    """
    body = strip_code_fences(text)
    try:
        data = json.loads(body)
    except (ValueError, RecursionError) as e:
        # ValueError also covers the int digit limit; deep nesting raises RecursionError.
        raise ParseError(f"Model returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data
