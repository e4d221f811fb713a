"""Client for OpenAI-compatible chat completion endpoints."""

import json
import logging
import re
from typing import Any, Optional

import httpx

from news_processor.core import LLMClient, RetryError, RetryPolicy, retry_with_backoff

logger = logging.getLogger(__name__)

# Local inference servers answer with these while swapping models in
_LOADING_MARKERS = ("failed to load model", "loading model", "model is loading")


class LLMError(Exception):
    """Base class for model call failures."""


class ModelLoadingError(LLMError):
    """The backend is still loading the requested model."""


class LLMRequestError(LLMError):
    """The backend rejected the request or returned an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def is_model_loading_response(status_code: int, body: str) -> bool:
    if status_code not in (404, 503):
        return False
    lowered = body.lower()
    return any(marker in lowered for marker in _LOADING_MARKERS)


class OpenAIClient(LLMClient):
    """Chat completions over httpx.

    Model-loading responses are retried inside the client using
    ``loading_policy``, which has a long total budget because cold model
    loads can take minutes. All other failures are raised to the caller.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str = "",
        loading_policy: Optional[RetryPolicy] = None,
        timeout: float = 300.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.loading_policy = loading_policy or RetryPolicy(
            max_retries=5,
            initial_backoff=1.0,
            backoff_factor=2.0,
            max_backoff=30.0,
            max_total_timeout=1800.0,
        )
        self.timeout = timeout
        self.client = client

    @property
    def model_name(self) -> str:
        return self.model

    async def complete(
        self,
        system_prompt: str,
        user_prompts: list[str],
        image_urls: Optional[list[str]] = None,
        output_schema: Optional[dict[str, Any]] = None,
        temperature: float = 0.5,
        max_tokens: int = 0,
    ) -> str:
        payload = self._build_payload(
            system_prompt, user_prompts, image_urls, output_schema, temperature, max_tokens
        )

        try:
            data = await retry_with_backoff(
                lambda: self._post(payload),
                lambda e: isinstance(e, ModelLoadingError),
                self.loading_policy,
            )
        except RetryError as e:
            raise ModelLoadingError(f"model failed to load after retries: {e}") from e

        choices = data.get("choices") or []
        if not choices:
            raise LLMRequestError("empty response from llm")

        content = (choices[0].get("message") or {}).get("content")
        if content is None:
            raise LLMRequestError("response message has no content")

        return content

    def _build_payload(
        self,
        system_prompt: str,
        user_prompts: list[str],
        image_urls: Optional[list[str]],
        output_schema: Optional[dict[str, Any]],
        temperature: float,
        max_tokens: int,
    ) -> dict[str, Any]:
        user_text = "\n".join(user_prompts)

        if image_urls:
            user_content: Any = [{"type": "text", "text": user_text}]
            for url in image_urls:
                user_content.append({"type": "image_url", "image_url": {"url": url}})
        else:
            user_content = user_text

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "temperature": temperature,
        }

        if max_tokens > 0:
            payload["max_tokens"] = max_tokens

        if output_schema is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {**output_schema, "strict": True},
            }

        return payload

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"

        url = f"{self.base_url}/chat/completions"
        try:
            if self.client is not None:
                response = await self.client.post(url, headers=headers, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise LLMRequestError(f"error during API call: {e}") from e

        if response.status_code != 200:
            body = response.text
            if is_model_loading_response(response.status_code, body):
                logger.info(f"Model {self.model} is still loading ({response.status_code})")
                raise ModelLoadingError(f"{response.status_code}: {body[:200]}")
            raise LLMRequestError(
                f"error during API call: status {response.status_code}: {body[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise LLMRequestError(f"invalid JSON from llm endpoint: {e}") from e

    def preprocess_json(self, raw: str) -> str:
        return extract_json(raw)


def _fix_json(text: str) -> str:
    """Remove trailing commas before } or ]."""
    return re.sub(r",(\s*[}\]])", r"\1", text)


def extract_json(text: str) -> str:
    """Extract JSON from a markdown code block or surrounding prose."""
    text = text.strip()

    # Strategy 1: markdown code block
    code_block_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if code_block_match:
        return _fix_json(code_block_match.group(1).strip())

    # Unterminated fence: take everything after it
    if text.startswith("```"):
        return _fix_json(re.sub(r"^```(?:json)?", "", text).strip())

    # Strategy 2: already valid
    candidate = _fix_json(text)
    try:
        json.loads(candidate)
        return candidate
    except json.JSONDecodeError:
        pass

    # Strategy 3: outermost object or array embedded in prose
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            candidate = _fix_json(text[start : end + 1])
            try:
                json.loads(candidate)
                return candidate
            except json.JSONDecodeError:
                continue

    # Last resort: return as is
    return candidate
