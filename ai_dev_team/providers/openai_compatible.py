"""OpenAI-compatible provider (OpenAI, vLLM, LMStudio, Ollama's /v1 API, etc.)."""

from typing import Any

import httpx
import structlog

from ai_dev_team.exceptions import AgentError, AgentTimeoutError, ProviderConnectionError
from ai_dev_team.providers.base import LLMProvider, LLMRequest, LLMResponse
from ai_dev_team.utils.retry import retry_with_backoff

log = structlog.get_logger(__name__)

RETRYABLE_STATUS = {429, 502, 503, 504}


class OpenAICompatibleProvider(LLMProvider):
    """Language-model provider for OpenAI-compatible API servers.

    Transient failures (timeouts, connection errors, rate limits and
    gateway errors) are retried with exponential backoff before being
    raised.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434/v1",
        model: str = "default",
        api_key: str | None = None,
        timeout: float = 300.0,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_jitter: float = 1.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize OpenAI-compatible provider.

        Args:
            base_url: API base URL (e.g., http://localhost:8000/v1)
            model: Model identifier to use
            api_key: Optional API key for authentication
            timeout: Request timeout in seconds (default: 300)
            temperature: Default sampling temperature
            max_tokens: Default response token limit
            max_retries: Attempts per request
            base_delay: Backoff wait after the first failure, in seconds
            max_jitter: Upper bound of the random extra wait per retry
            client: Preconfigured HTTP client (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_jitter = max_jitter

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    @classmethod
    def from_settings(cls, settings: Any) -> "OpenAICompatibleProvider":
        """Build a provider from an ``LLMConfig`` section."""
        api_key = settings.api_key.get_secret_value() if settings.api_key else None
        return cls(
            base_url=settings.base_url,
            model=settings.model,
            api_key=api_key,
            timeout=settings.timeout,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )

    async def connect(self) -> list[str]:
        """Verify server connection and return the available model ids.

        Raises:
            ProviderConnectionError: If the server is not reachable.
        """
        try:
            response = await self.client.get(f"{self.base_url}/models")
            response.raise_for_status()
        except httpx.ConnectError as e:
            log.error("llm_server_not_running", url=self.base_url)
            raise ProviderConnectionError(
                "OpenAI-compatible server not running (network error)",
                provider_url=self.base_url,
                suggestion="Ensure your server (vLLM, LMStudio, Ollama, etc.) is started.",
            ) from e
        except httpx.HTTPStatusError as e:
            # Some servers do not implement /models
            if e.response.status_code == 404:
                log.warning("models_endpoint_not_available", url=self.base_url)
                return []
            raise AgentError(f"Model listing failed ({e.response.status_code})") from e

        model_ids = [m.get("id", "") for m in response.json().get("data", [])]
        if self.model != "default" and model_ids and not any(self.model in mid for mid in model_ids):
            log.warning("model_not_found", model=self.model, available=model_ids)
        else:
            log.info("llm_provider_connected", model=self.model, available_models=len(model_ids))
        return model_ids

    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Run a chat completion, retrying transient failures."""
        return await retry_with_backoff(
            lambda: self._complete_once(request),
            "llm_completion",
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_jitter=self.max_jitter,
            exceptions=(AgentTimeoutError, ProviderConnectionError),
        )

    async def _complete_once(self, request: LLMRequest) -> LLMResponse:
        payload = {
            "model": self.model,
            "messages": request.messages(),
            "temperature": self.temperature if request.temperature is None else request.temperature,
            "max_tokens": request.max_tokens or self.max_tokens,
        }
        log.debug("llm_request", model=self.model, prompt_length=len(request.prompt))

        try:
            response = await self.client.post(f"{self.base_url}/chat/completions", json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise AgentTimeoutError("LLM request timeout", timeout_seconds=self.timeout) from e
        except httpx.ConnectError as e:
            raise ProviderConnectionError(
                "LLM server unreachable (network error)", provider_url=self.base_url
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = self._error_detail(e.response)
            if status == 429:
                raise ProviderConnectionError(
                    f"LLM rate limit exceeded: {detail}", provider_url=self.base_url
                ) from e
            if status in RETRYABLE_STATUS:
                raise ProviderConnectionError(
                    f"LLM service temporarily unavailable ({status}): {detail}",
                    provider_url=self.base_url,
                ) from e
            raise AgentError(f"LLM API error ({status}): {detail}") from e

        result = response.json()
        choices = result.get("choices", [])
        if not choices:
            raise AgentError("No choices returned from LLM API")

        content = choices[0].get("message", {}).get("content", "") or ""
        usage = result.get("usage", {})
        tokens = usage.get("total_tokens", usage.get("completion_tokens", 0)) or 0

        log.info("llm_completed", model=self.model, output_length=len(content), tokens=tokens)
        return LLMResponse(content=content, model=result.get("model", self.model), tokens_used=tokens, raw=result)

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            return str(body["error"].get("message", body["error"]))
        return str(body)[:200]

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "OpenAICompatibleProvider":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.client.aclose()
