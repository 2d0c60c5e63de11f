"""
LLM provider clients for the analysis pipeline.

Two providers share one small interface:

* ``GeminiLLMClient`` — Google Generative Language REST API (``generateContent``)
* ``OllamaLLMClient`` — a local Ollama server (``/api/generate``), handy offline

Public API
----------
BaseLLMClient.generate(prompt)               -> str
BaseLLMClient.generate_json(prompt, expect)  -> list | dict
get_llm_client()                             -> BaseLLMClient (fresh per request)
classify_error(exc)                          -> ErrorKind
parse_json_response(text, expect)            -> (ok, value)

Unlike a best-effort extractor, every failure here raises ``LLMServiceError``
tagged with one of four kinds so the orchestrator can pick a user-facing
message.  Model replies are untrusted text: ``generate_json`` only promises
that *some* JSON value of the expected container type was found.
"""
from __future__ import annotations

import abc
import asyncio
import enum
import json
import logging
import re
from typing import Any, List, Optional, Tuple, Type, Union

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------

class ErrorKind(str, enum.Enum):
    QUOTA_EXCEEDED = "quota_exceeded"
    INVALID_API_KEY = "invalid_api_key"
    API_UNAVAILABLE = "api_unavailable"
    GENERIC = "generic"


class LLMServiceError(Exception):
    """Raised when an LLM call cannot produce a usable reply."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.GENERIC) -> None:
        super().__init__(message)
        self.kind = kind


class LLMResponseParseError(LLMServiceError):
    """The model replied, but no JSON value of the expected shape was found."""

    def __init__(self, message: str, preview: str = "") -> None:
        super().__init__(message, ErrorKind.GENERIC)
        self.preview = preview


def classify_error_message(message: str) -> ErrorKind:
    """Map a provider error message to an ErrorKind by substring."""
    if "429" in message:
        return ErrorKind.QUOTA_EXCEEDED
    if "api key" in message.lower():
        return ErrorKind.INVALID_API_KEY
    if "quota" in message.lower():
        return ErrorKind.QUOTA_EXCEEDED
    return ErrorKind.API_UNAVAILABLE


def classify_error(exc: BaseException) -> ErrorKind:
    """Return the ErrorKind for any exception raised during an LLM stage."""
    if isinstance(exc, LLMServiceError):
        return exc.kind
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return ErrorKind.API_UNAVAILABLE
    return classify_error_message(str(exc))


# ---------------------------------------------------------------------------
# Shared system instruction
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You are a senior product manager and business analyst who specialises in \
finding the business-logic gaps that derail product launches.

Your job is to read Product Requirements Documents, identify the user journeys \
and business flows they imply, and find what is missing, inconsistent or \
ambiguous: unhandled failure paths, undefined ownership, missing admin or \
support flows, compliance blind spots and revenue-impacting edge cases.

Focus on business logic rather than implementation details. Frame every gap as \
a concrete question the PRD must answer. When asked for JSON, reply with JSON \
only — no markdown fences and no commentary.\
"""


# ---------------------------------------------------------------------------
# Robust JSON parsing
# ---------------------------------------------------------------------------

JsonContainer = Union[Type[list], Type[dict]]


def parse_json_response(text: str, expect: JsonContainer = list) -> Tuple[bool, Any]:
    """
    Try multiple strategies to pull a JSON value out of messy LLM output.

    Handles:
    - Markdown code fences (```json … ```, ``` … ```)
    - Surrounding prose — finds the first balanced [...] or {...} block
    - Trailing commas before ] or }
    - Python-style True / False / None

    Only a value whose type matches *expect* counts as success.

    Returns ``(success, parsed_value)``.
    """
    if not text or not text.strip():
        return False, None

    text = text.strip()
    open_b, close_b = ("[", "]") if expect is list else ("{", "}")

    # Strategy 1: direct parse
    ok, val = _try_json(text)
    if ok and isinstance(val, expect):
        return True, val

    # Strategy 2: strip markdown code fences
    stripped = _strip_code_fences(text)
    if stripped != text:
        ok, val = _try_json(stripped)
        if ok and isinstance(val, expect):
            return True, val
        text = stripped

    # Strategy 3: first balanced structure of the expected type
    fragment = _extract_json_structure(text, open_b, close_b)
    if fragment:
        for candidate in (fragment, _fix_json_issues(fragment)):
            ok, val = _try_json(candidate)
            if ok and isinstance(val, expect):
                return True, val

    return False, None


def _try_json(text: str) -> Tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return False, None


def _strip_code_fences(text: str) -> str:
    """Remove ```json / ``` delimiters that LLMs often wrap output in."""
    text = re.sub(r"^```(?:json|javascript|text)?\s*\n?", "", text, flags=re.IGNORECASE)
    text = re.sub(r"\n?```\s*$", "", text)
    return text.strip()


_PYTHON_LITERALS = {"True": "true", "False": "false", "None": "null"}
_BARE_WORD = re.compile(r"[A-Za-z_]\w*")
_TRAILING_COMMA = re.compile(r",\s*$")


def _fix_json_issues(text: str) -> str:
    """
    Repair the most common JSON mangling patterns from LLMs: trailing commas
    and Python-style literals.  String literals are copied through untouched.
    """
    out: List[str] = []
    in_string = False
    escape_next = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            out.append(ch)
            if escape_next:
                escape_next = False
            elif ch == "\\":
                escape_next = True
            elif ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
        elif ch in "]}":
            # Drop a comma left dangling before the closer
            tail = "".join(out)
            trimmed = _TRAILING_COMMA.sub("", tail)
            if trimmed != tail:
                out = [trimmed]
        else:
            word = _BARE_WORD.match(text, i)
            if word and (i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_")):
                out.append(_PYTHON_LITERALS.get(word.group(0), word.group(0)))
                i = word.end()
                continue
        out.append(ch)
        i += 1
    return "".join(out).strip()


def _extract_json_structure(text: str, open_b: str, close_b: str) -> str:
    """
    Find the first complete balanced open_b … close_b structure in *text*.
    Returns the matched fragment, or empty string if not found.
    """
    start = text.find(open_b)
    while start != -1:
        depth = 0
        in_string = False
        escape_next = False

        for i, ch in enumerate(text[start:], start=start):
            if escape_next:
                escape_next = False
                continue
            if ch == "\\" and in_string:
                escape_next = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == open_b:
                depth += 1
            elif ch == close_b:
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        # Unbalanced from this opener; try the next one
        start = text.find(open_b, start + 1)
    return ""


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

class BaseLLMClient(abc.ABC):
    """One prompt in, one reply string out."""

    provider_name: str = "base"

    def __init__(
        self,
        model: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.model = model
        self.timeout_seconds = float(timeout if timeout is not None else settings.LLM_TIMEOUT)
        self.timeout = httpx.Timeout(self.timeout_seconds, connect=10.0)
        self._transport = transport

    @abc.abstractmethod
    async def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """Return the model's reply text or raise LLMServiceError."""

    def is_configured(self) -> bool:
        return True

    async def generate_json(self, prompt: str, expect: JsonContainer = list) -> Any:
        """
        Call the model and return the first JSON value of type *expect*.

        Raises LLMResponseParseError when the reply contains no such value.
        """
        response_text = await self.generate(prompt)
        ok, parsed = parse_json_response(response_text, expect)
        if not ok:
            logger.warning(
                "generate_json: no JSON %s in %s reply. Preview: %s",
                expect.__name__,
                self.provider_name,
                response_text[:400],
            )
            raise LLMResponseParseError(
                f"Could not parse a JSON {expect.__name__} from the AI response",
                preview=response_text[:400],
            )
        return parsed

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)


class GeminiLLMClient(BaseLLMClient):
    """Google Gemini via the ``models/{model}:generateContent`` REST endpoint."""

    provider_name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(model or settings.GEMINI_MODEL, timeout, transport)
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        if not self.api_key:
            raise LLMServiceError(
                "Gemini API key not found. Set GEMINI_API_KEY in the environment.",
                ErrorKind.INVALID_API_KEY,
            )

        body = {
            "systemInstruction": {"parts": [{"text": _SYSTEM_PROMPT}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": settings.LLM_TEMPERATURE,
                "topP": settings.LLM_TOP_P,
                "topK": settings.LLM_TOP_K,
                "maxOutputTokens": max_tokens or settings.LLM_MAX_OUTPUT_TOKENS,
            },
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"

        try:
            async with self._client() as client:
                resp = await client.post(url, params={"key": self.api_key}, json=body)
        except httpx.TimeoutException as exc:
            logger.error("gemini: request timed out after %.0f s", self.timeout_seconds)
            raise LLMServiceError(
                f"Gemini request timed out after {self.timeout_seconds:.0f}s",
                ErrorKind.API_UNAVAILABLE,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("gemini: transport error: %s", exc)
            raise LLMServiceError(
                f"Gemini request failed: {exc}", ErrorKind.API_UNAVAILABLE
            ) from exc

        if resp.status_code != 200:
            message = f"Gemini API request failed: {resp.status_code} - {resp.text[:300]}"
            logger.error("gemini: %s", message)
            raise LLMServiceError(message, classify_error_message(message))

        try:
            payload = resp.json()
        except ValueError as exc:
            raise LLMServiceError(
                "Gemini returned a non-JSON body", ErrorKind.API_UNAVAILABLE
            ) from exc

        candidates = payload.get("candidates") or []
        if not candidates:
            feedback = payload.get("promptFeedback", {})
            raise LLMServiceError(
                f"Gemini returned no candidates (feedback: {feedback})",
                ErrorKind.GENERIC,
            )

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))
        if not text.strip():
            finish = candidates[0].get("finishReason", "UNKNOWN")
            raise LLMServiceError(
                f"Gemini returned an empty reply (finishReason={finish})",
                ErrorKind.GENERIC,
            )
        return text


class OllamaLLMClient(BaseLLMClient):
    """A local Ollama server via ``/api/generate``."""

    provider_name = "ollama"

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(model or settings.OLLAMA_LLM_MODEL, timeout, transport)
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")

    async def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{self.base_url}/api/generate",
                    json={
                        "model": self.model,
                        "prompt": prompt,
                        "system": _SYSTEM_PROMPT,
                        "stream": False,
                        "options": {
                            "num_predict": max_tokens or settings.LLM_MAX_OUTPUT_TOKENS,
                            "temperature": settings.LLM_TEMPERATURE,
                        },
                    },
                )
        except httpx.TimeoutException as exc:
            logger.error("ollama: request timed out after %.0f s", self.timeout_seconds)
            raise LLMServiceError(
                f"Ollama request timed out after {self.timeout_seconds:.0f}s",
                ErrorKind.API_UNAVAILABLE,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("ollama: connection error: %s", exc)
            raise LLMServiceError(
                f"Ollama request failed: {exc}", ErrorKind.API_UNAVAILABLE
            ) from exc

        if resp.status_code != 200:
            message = f"Ollama returned HTTP {resp.status_code}: {resp.text[:300]}"
            logger.error("ollama: %s", message)
            raise LLMServiceError(message, classify_error_message(message))

        text = resp.json().get("response", "")
        if not text.strip():
            raise LLMServiceError("Ollama returned an empty reply", ErrorKind.GENERIC)
        return text


def get_llm_client(provider: Optional[str] = None) -> BaseLLMClient:
    """Build a fresh client for the configured provider."""
    name = (provider or settings.LLM_PROVIDER).lower().strip()
    if name == "gemini":
        return GeminiLLMClient()
    if name == "ollama":
        return OllamaLLMClient()
    raise ValueError(f"Unknown LLM_PROVIDER {name!r}; expected 'gemini' or 'ollama'")
