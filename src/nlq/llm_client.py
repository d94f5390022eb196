"""
Language-backend client -- provider-agnostic wrapper.

Supported providers:
  mock      -- deterministic rule-based answers (tests / offline dev)
  openai    -- OpenAI Chat Completions (gpt-4o-mini default)
  anthropic -- Anthropic Messages (claude-3-haiku default)

``generate`` never raises: it returns an ``LLMResponse`` whose ``failure`` is
one of ``timeout``, ``unavailable`` or ``error`` when no usable text came back.
Calls run on a small shared thread pool so a single backend is never hit by
more than ``llm_max_concurrency`` requests at once, and so the wait can be
bounded by a timeout.

Configuration is read from Settings (env / .env).
"""
from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional

from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import elapsed_ms

logger = get_logger(__name__)

FailureKind = Literal["timeout", "unavailable", "error"]

_DEFAULT_SYSTEM = "You are a helpful email-reporting assistant."


class BackendUnavailable(RuntimeError):
    """The provider cannot be used (missing key, missing SDK, unknown name)."""


@dataclass(frozen=True)
class LLMResponse:
    text: str = ""
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    elapsed_ms: int = 0
    provider: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None


# Signature shared by ``generate`` and test doubles injected in its place.
LLMCallable = Callable[..., LLMResponse]


# ── Providers ────────────────────────────────────────────

def _call_mock(prompt: str, system: str | None, timeout: float) -> str:
    from src.nlq.mock_backend import respond

    logger.info("LLM mock mode -- rule-based response")
    return respond(prompt, system)


def _call_openai(prompt: str, system: str | None, timeout: float) -> str:
    """Call OpenAI Chat Completions API."""
    settings = get_settings()
    api_key = settings.openai_api_key
    if not api_key:
        raise BackendUnavailable(
            "openai_api_key is not set.  "
            "Set OPENAI_API_KEY in your .env file or environment."
        )

    try:
        import openai  # type: ignore[import-untyped]
    except ImportError as exc:
        raise BackendUnavailable(
            "The 'openai' package is not installed.  "
            "Run: pip install openai"
        ) from exc

    client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
    response = client.chat.completions.create(
        model=settings.openai_model,
        messages=[
            {"role": "system", "content": system or _DEFAULT_SYSTEM},
            {"role": "user", "content": prompt},
        ],
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
    text = response.choices[0].message.content or ""
    logger.info("OpenAI response (%d chars)", len(text))
    return text


def _call_anthropic(prompt: str, system: str | None, timeout: float) -> str:
    """Call Anthropic Messages API."""
    settings = get_settings()
    api_key = settings.anthropic_api_key
    if not api_key:
        raise BackendUnavailable(
            "anthropic_api_key is not set.  "
            "Set ANTHROPIC_API_KEY in your .env file or environment."
        )

    try:
        import anthropic  # type: ignore[import-untyped]
    except ImportError as exc:
        raise BackendUnavailable(
            "The 'anthropic' package is not installed.  "
            "Run: pip install anthropic"
        ) from exc

    client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
    response = client.messages.create(
        model=settings.anthropic_model,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
        system=system or _DEFAULT_SYSTEM,
        messages=[{"role": "user", "content": prompt}],
    )
    text = response.content[0].text if response.content else ""
    logger.info("Anthropic response (%d chars)", len(text))
    return text


_PROVIDERS: dict[str, Any] = {
    "mock": _call_mock,
    "openai": _call_openai,
    "anthropic": _call_anthropic,
}

_MODELS: dict[str, Callable[[], str]] = {
    "mock": lambda: "rule-based",
    "openai": lambda: get_settings().openai_model,
    "anthropic": lambda: get_settings().anthropic_model,
}


# ── Worker pool ──────────────────────────────────────────

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            workers = max(1, get_settings().llm_max_concurrency)
            _executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="llm")
        return _executor


def _classify(exc: BaseException) -> FailureKind:
    if isinstance(exc, (BackendUnavailable, NotImplementedError)):
        return "unavailable"
    # SDK timeout classes (openai.APITimeoutError, anthropic.APITimeoutError, ...)
    if isinstance(exc, TimeoutError) or "Timeout" in type(exc).__name__:
        return "timeout"
    if "Connection" in type(exc).__name__:
        return "unavailable"
    return "error"


# ── Public API ───────────────────────────────────────────

def _resolve(provider: str | None) -> tuple[str, Any]:
    if provider is None:
        provider = get_settings().llm_provider
    provider = provider.lower()
    fn = _PROVIDERS.get(provider)
    if fn is None:
        raise NotImplementedError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )
    return provider, fn


def generate(
    prompt: str,
    context: str | None = None,
    timeout: float | None = None,
    provider: str | None = None,
) -> LLMResponse:
    """Send *prompt* (with *context* as the system prompt) to the language backend.

    Parameters
    ----------
    prompt : str
        The user-turn text.
    context : str, optional
        Instructions / schema description passed as the system prompt.
    timeout : float, optional
        Seconds to wait for the backend; defaults to ``llm_timeout_seconds``.
    provider : str, optional
        Override the provider from settings.  One of: mock, openai, anthropic.
    """
    if timeout is None:
        timeout = get_settings().llm_timeout_seconds
    start = time.perf_counter()
    name = (provider or get_settings().llm_provider).lower()

    try:
        name, fn = _resolve(provider)
    except NotImplementedError as exc:
        logger.warning("LLM unavailable: %s", exc)
        return LLMResponse(failure="unavailable", error=str(exc),
                           elapsed_ms=elapsed_ms(start), provider=name)

    logger.info("Calling LLM provider=%s  prompt_len=%d  timeout=%.1fs", name, len(prompt), timeout)
    future = _get_executor().submit(fn, prompt, context, timeout)
    try:
        text = future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        logger.warning("LLM call timed out after %.1fs  provider=%s", timeout, name)
        return LLMResponse(failure="timeout", error=f"Language backend timed out after {timeout:g}s",
                           elapsed_ms=elapsed_ms(start), provider=name)
    except Exception as exc:
        kind = _classify(exc)
        logger.warning("LLM call failed  provider=%s  kind=%s  error=%s", name, kind, exc)
        return LLMResponse(failure=kind, error=str(exc), elapsed_ms=elapsed_ms(start), provider=name)

    if not text or not text.strip():
        logger.warning("LLM returned empty output  provider=%s", name)
        return LLMResponse(failure="error", error="Empty response from language backend",
                           elapsed_ms=elapsed_ms(start), provider=name)

    return LLMResponse(text=text, elapsed_ms=elapsed_ms(start), provider=name)


def backend_status(provider: str | None = None) -> dict[str, Any]:
    """Describe the configured backend without calling it."""
    settings = get_settings()
    name = (provider or settings.llm_provider).lower()
    status: dict[str, Any] = {
        "provider": name,
        "model": _MODELS[name]() if name in _MODELS else None,
        "timeout_seconds": settings.llm_timeout_seconds,
        "max_concurrency": settings.llm_max_concurrency,
        "available": False,
        "detail": "",
    }
    if name not in _PROVIDERS:
        status["detail"] = f"Unknown provider '{name}'"
    elif name == "openai" and not settings.openai_api_key:
        status["detail"] = "OPENAI_API_KEY is not set"
    elif name == "anthropic" and not settings.anthropic_api_key:
        status["detail"] = "ANTHROPIC_API_KEY is not set"
    else:
        status["available"] = True
        status["detail"] = "ready"
    return status
