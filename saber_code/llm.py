"""Model backend adapter via litellm, plus model listing over the Ollama HTTP API."""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import litellm
import requests

from .errors import BackendError, BackendTimeoutError, BackendUnreachableError
from .logger import get_logger

litellm.suppress_debug_info = True

_log = get_logger(__name__)

LIST_MODELS_TIMEOUT = 10


@dataclass
class BackendResponse:
    content: str
    model: str
    done: bool = True


@dataclass
class StreamChunk:
    chunk: str
    done: bool = False


@dataclass
class ModelInfo:
    name: str
    size: Optional[int] = None


class ModelBackend:
    """Request/response and streaming access to one configured backend."""

    def __init__(self, config):
        self.config = config

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    def _qualified(self, model: str) -> str:
        if "/" in model or not self.config.provider:
            return model
        return f"{self.config.provider}/{model}"

    def _kwargs(self, messages: List[Dict[str, Any]], model: str, **options) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self._qualified(model),
            "messages": messages,
            "api_base": self.base_url,
            "timeout": self.config.timeout_for(model),
            "temperature": options.pop("temperature", self.config.temperature),
            "top_p": options.pop("top_p", self.config.top_p),
            "max_tokens": options.pop("max_tokens", self.config.max_output_tokens),
        }
        kwargs.update(options)
        return kwargs

    def _translate(self, exc: Exception, model: str) -> BackendError:
        if isinstance(exc, litellm.exceptions.Timeout):
            return BackendTimeoutError(model, self.config.timeout_for(model))
        if isinstance(exc, litellm.exceptions.APIConnectionError):
            return BackendUnreachableError(self.base_url, str(exc))
        return BackendError(f"Model backend error: {type(exc).__name__}: {exc}")

    def generate(self, messages: List[Dict[str, Any]], model: Optional[str] = None,
                 **options) -> BackendResponse:
        model = model or self.config.model
        _log.info("generate: model=%s messages=%d", model, len(messages))
        try:
            response = litellm.completion(**self._kwargs(messages, model, **options))
        except Exception as e:
            err = self._translate(e, model)
            _log.error("Backend call failed: %s", err)
            raise err from e
        content = response.choices[0].message.content or ""
        return BackendResponse(content=content, model=model, done=True)

    def stream(self, messages: List[Dict[str, Any]], model: Optional[str] = None,
               **options) -> Iterator[StreamChunk]:
        """Yield text chunks as they arrive. The last record always has ``done=True``."""
        model = model or self.config.model
        _log.info("stream: model=%s messages=%d", model, len(messages))
        try:
            response_stream = litellm.completion(stream=True, **self._kwargs(messages, model, **options))
            for chunk in response_stream:
                if not chunk.choices:
                    continue
                text = getattr(chunk.choices[0].delta, "content", None)
                if text:
                    yield StreamChunk(chunk=text, done=False)
        except Exception as e:
            err = self._translate(e, model)
            _log.error("Stream interrupted: %s", err)
            raise err from e
        yield StreamChunk(chunk="", done=True)

    def list_models(self) -> List[ModelInfo]:
        url = f"{self.base_url}/api/tags"
        try:
            resp = requests.get(url, timeout=LIST_MODELS_TIMEOUT)
            resp.raise_for_status()
        except requests.exceptions.ConnectionError as e:
            raise BackendUnreachableError(self.base_url, str(e)) from e
        except requests.exceptions.Timeout as e:
            raise BackendTimeoutError("model listing", LIST_MODELS_TIMEOUT) from e
        except requests.exceptions.RequestException as e:
            raise BackendError(f"Cannot list models: {e}") from e
        data = resp.json() or {}
        return [
            ModelInfo(name=m.get("name", ""), size=m.get("size"))
            for m in data.get("models", [])
        ]
