"""
AI provider adapters

One implementation per provider family behind a common interface:
- GoogleProvider: Gemini REST API called with httpx
- OpenAICompatibleProvider: OpenAI SDK pointed at any compatible base URL
  (OpenAI, Groq, OpenRouter, ...)

Every call embeds or completes exactly one request. There are no retries, no
batching and no fallback provider; errors propagate to the caller.
"""
import base64
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
import openai

from app.core.exceptions import (
    EmptyCompletionError,
    ProviderError,
    ProviderResponseParseError,
)
from app.services.provider_config import ProviderConfig, ProviderFamily

logger = logging.getLogger(__name__)

# Generation can take well over httpx's 5s default
PROVIDER_TIMEOUT = 120.0

IMAGE_DESCRIPTION_PROMPT = (
    "This image is a page from a technical machinery manual. Describe it in "
    "detail so it can be found by search: transcribe headings, part names, "
    "part numbers, labels, warnings, specifications and table values, and "
    "explain what any diagram, exploded view or schematic shows."
)

JSON_SYSTEM_MESSAGE = "You are a helpful assistant designed to output JSON."

_http_client: Optional[httpx.Client] = None


def get_http_client() -> httpx.Client:
    """Shared HTTP client for provider calls."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.Client(timeout=PROVIDER_TIMEOUT)
    return _http_client


def parse_json_completion(text: str) -> Dict[str, Any]:
    """Parse a completion requested in JSON mode. No repair is attempted."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProviderResponseParseError(
            f"AI response is not valid JSON: {e.msg}", raw_text=text
        ) from e
    if not isinstance(data, dict):
        raise ProviderResponseParseError("AI response JSON is not an object", raw_text=text)
    return data


def _turn_text(content: Any) -> str:
    # Assistant turns may hold a diagnostic dict from a previous analysis
    if isinstance(content, (dict, list)):
        return json.dumps(content, ensure_ascii=False)
    return str(content)


class AIProvider(ABC):
    """Common interface for the embedding and completion calls."""

    family: ProviderFamily

    def __init__(self, config: ProviderConfig, embedding_model: Optional[str] = None):
        self.config = config
        self.embedding_model = embedding_model or config.embedding_model

    @property
    def name(self) -> str:
        return self.family.value

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Embed a single text."""

    @abstractmethod
    def analyze(self, prompt: str) -> Dict[str, Any]:
        """Single-shot completion in strict JSON mode."""

    @abstractmethod
    def chat(self, history: List[dict], system_instruction: str) -> str:
        """Multi-turn completion. ``history`` holds {"role": "user"|"assistant", "content"} turns."""

    @abstractmethod
    def describe_image(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
        """Natural-language description of an image."""

    @abstractmethod
    def list_models(self) -> Dict[str, Any]:
        """Models available for the configured key."""


class GoogleProvider(AIProvider):
    family = ProviderFamily.GOOGLE

    def __init__(
        self,
        config: ProviderConfig,
        http_client: Optional[httpx.Client] = None,
        embedding_model: Optional[str] = None,
    ):
        super().__init__(config, embedding_model)
        self.http = http_client or get_http_client()

    @staticmethod
    def _model_path(model: str) -> str:
        return model if model.startswith("models/") else f"models/{model}"

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return "unknown error"

    def _request(self, method: str, url: str, body: Optional[dict] = None) -> dict:
        try:
            response = self.http.request(
                method, url, params={"key": self.config.api_key}, json=body
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Google API request failed: {e}") from e

        if response.is_error:
            message = self._error_message(response)
            logger.error(f"Google API error {response.status_code}: {message}")
            raise ProviderError(message, upstream_status=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Google API returned a non-JSON body ({response.status_code})")
            raise ProviderError("invalid response body", upstream_status=response.status_code) from e

    def _generate(self, contents: List[dict], json_mode: bool = False) -> str:
        url = f"{self.config.base_url}/{self._model_path(self.config.model)}:generateContent"
        body: Dict[str, Any] = {"contents": contents}
        if json_mode:
            body["generationConfig"] = {"responseMimeType": "application/json"}

        data = self._request("POST", url, body)
        try:
            text = data["candidates"][0]["content"]["parts"][0].get("text")
        except (KeyError, IndexError, TypeError):
            text = None
        if not text:
            raise EmptyCompletionError("Empty response from Google")
        return text

    def embed(self, text: str) -> List[float]:
        url = f"{self.config.base_url}/{self._model_path(self.embedding_model)}:embedContent"
        data = self._request("POST", url, {"content": {"parts": [{"text": text}]}})
        values = (data.get("embedding") or {}).get("values")
        if not values:
            raise ProviderError("Google API returned no embedding")
        return [float(v) for v in values]

    def analyze(self, prompt: str) -> Dict[str, Any]:
        contents = [{"role": "user", "parts": [{"text": "Respond ONLY with JSON: " + prompt}]}]
        return parse_json_completion(self._generate(contents, json_mode=True))

    def chat(self, history: List[dict], system_instruction: str) -> str:
        contents = [
            {
                "role": "model" if turn["role"] == "assistant" else "user",
                "parts": [{"text": _turn_text(turn["content"])}],
            }
            for turn in history
        ]

        # No system role here: the instruction rides on the first user turn
        if contents and contents[0]["role"] == "user":
            first = contents[0]["parts"][0]
            first["text"] = f"{system_instruction}\n\n{first['text']}"
        else:
            contents.insert(0, {"role": "user", "parts": [{"text": system_instruction}]})

        return self._generate(contents)

    def describe_image(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
        contents = [{
            "role": "user",
            "parts": [
                {"text": IMAGE_DESCRIPTION_PROMPT},
                {
                    "inline_data": {
                        "mime_type": mime_type,
                        "data": base64.b64encode(image_bytes).decode("ascii"),
                    }
                },
            ],
        }]
        return self._generate(contents)

    def list_models(self) -> Dict[str, Any]:
        return self._request("GET", f"{self.config.base_url}/models")


class OpenAICompatibleProvider(AIProvider):
    family = ProviderFamily.OPENAI

    def __init__(
        self,
        config: ProviderConfig,
        http_client: Optional[httpx.Client] = None,
        embedding_model: Optional[str] = None,
    ):
        super().__init__(config, embedding_model)
        self.client = openai.OpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            http_client=http_client or get_http_client(),
            max_retries=0,
        )

    @staticmethod
    def _error_message(error: openai.APIStatusError) -> str:
        body = error.body
        if isinstance(body, dict):
            if isinstance(body.get("error"), dict):
                body = body["error"]
            if body.get("message"):
                return str(body["message"])
        return "unknown error"

    def _call(self, fn, **kwargs):
        try:
            return fn(**kwargs)
        except openai.APIStatusError as e:
            message = self._error_message(e)
            logger.error(f"AI API error {e.status_code}: {message}")
            raise ProviderError(message, upstream_status=e.status_code) from e
        except openai.APIConnectionError as e:
            raise ProviderError(f"AI API request failed: {e}") from e

    @staticmethod
    def _completion_text(completion) -> str:
        text = None
        if completion.choices:
            text = completion.choices[0].message.content
        if not text:
            raise EmptyCompletionError("Empty response from the AI API")
        return text

    def embed(self, text: str) -> List[float]:
        response = self._call(
            self.client.embeddings.create,
            model=self.embedding_model,
            input=text,
            encoding_format="float",
        )
        if not response.data:
            raise ProviderError("AI API returned no embedding")
        return [float(v) for v in response.data[0].embedding]

    def analyze(self, prompt: str) -> Dict[str, Any]:
        completion = self._call(
            self.client.chat.completions.create,
            model=self.config.model,
            messages=[
                {"role": "system", "content": JSON_SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
        )
        return parse_json_completion(self._completion_text(completion))

    def chat(self, history: List[dict], system_instruction: str) -> str:
        messages = [{"role": "system", "content": system_instruction}]
        messages.extend(
            {"role": turn["role"], "content": _turn_text(turn["content"])}
            for turn in history
        )
        completion = self._call(
            self.client.chat.completions.create,
            model=self.config.model,
            messages=messages,
        )
        return self._completion_text(completion)

    def describe_image(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
        data_url = f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"
        completion = self._call(
            self.client.chat.completions.create,
            model=self.config.model,
            messages=[{
                "role": "user",
                "content": [
                    {"type": "text", "text": IMAGE_DESCRIPTION_PROMPT},
                    {"type": "image_url", "image_url": {"url": data_url}},
                ],
            }],
        )
        return self._completion_text(completion)

    def list_models(self) -> Dict[str, Any]:
        page = self._call(self.client.models.list)
        return {"data": [{"id": model.id} for model in page.data]}


PROVIDERS = {
    ProviderFamily.GOOGLE: GoogleProvider,
    ProviderFamily.OPENAI: OpenAICompatibleProvider,
}


def build_provider(config: ProviderConfig, http_client: Optional[httpx.Client] = None) -> AIProvider:
    """Select the adapter for the configured family."""
    return PROVIDERS[config.family](config, http_client=http_client)
