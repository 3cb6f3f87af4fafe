import os
from dataclasses import dataclass
from typing import Protocol

import httpx


class LLMError(RuntimeError):
    """
    LLM呼び出しに関する例外の基底。
    - code/retryable を持たせ、API側で一貫したエラーレスポンスにマップできるようにする。
    """

    code: str = "LLM_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str = "LLM error",
        *,
        code: str | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message)
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable


class LLMTimeoutError(LLMError):
    code = "LLM_TIMEOUT"
    retryable = True


class LLMAuthError(LLMError):
    code = "LLM_AUTH_ERROR"
    retryable = False


class LLMRateLimitError(LLMError):
    code = "LLM_RATE_LIMIT"
    retryable = True


class LLMInputTooLargeError(LLMError):
    code = "LLM_INPUT_TOO_LARGE"
    retryable = False


class LLMProviderError(LLMError):
    code = "LLM_PROVIDER_ERROR"
    retryable = True


class LLMClient(Protocol):
    """LLM呼び出しのインターフェース（実装差し替え可能にするための境界）。"""

    def generate(self, prompt: str, *, system: str | None = None) -> str:  # pragma: no cover (実装側で検証する)
        """system（任意）と prompt を入力に、LLMの生成結果テキストを返す。"""


@dataclass(frozen=True)
class LLMConfig:
    provider: str
    api_key: str | None
    model: str
    timeout_seconds: float
    base_url: str = "https://ai.gateway.lovable.dev/v1"

    @staticmethod
    def from_env() -> "LLMConfig":
        provider = os.getenv("LLM_PROVIDER", "stub").strip().lower()
        api_key = os.getenv("LLM_API_KEY")
        model = os.getenv("LLM_MODEL", "google/gemini-2.5-flash").strip()
        timeout_seconds = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
        base_url = os.getenv("LLM_API_BASE_URL", "https://ai.gateway.lovable.dev/v1").strip()
        return LLMConfig(
            provider=provider,
            api_key=api_key,
            model=model,
            timeout_seconds=timeout_seconds,
            base_url=base_url,
        )


class StubLLMClient:
    """外部APIに接続しないスタブ実装（テスト/開発用）。"""

    def __init__(self, config: LLMConfig):
        self.config = config

    def generate(self, prompt: str, *, system: str | None = None) -> str:
        # prompt は評価せず、決まった文言を返す
        return "STUB_LLM_RESPONSE"


def build_llm_client(config: LLMConfig) -> LLMClient:
    provider = (config.provider or "").strip().lower()
    if provider in ("stub", "none", "disabled"):
        return StubLLMClient(config)

    if provider in ("gateway", "openai", "openai_compatible", "lovable"):
        return ChatCompletionsClient(config)

    raise LLMError(f"Unsupported LLM_PROVIDER: {config.provider}")


class ChatCompletionsClient:
    """
    OpenAI互換の chat/completions ゲートウェイ用の最小クライアント。
    - 外部SDKに依存せず httpx で叩く
    - 送るのは system + user の2メッセージのみ（会話履歴は送らない）
    """

    def __init__(self, config: LLMConfig):
        if not config.api_key:
            raise LLMAuthError("LLM_API_KEY is required for the chat completions gateway")
        self.config = config
        self.base_url = (config.base_url or "").rstrip("/")

    def generate(self, prompt: str, *, system: str | None = None) -> str:
        model = (self.config.model or "").strip() or "google/gemini-2.5-flash"
        url = f"{self.base_url}/chat/completions"
        headers = {"Authorization": f"Bearer {self.config.api_key}"}

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        payload = {"model": model, "messages": messages}

        timeout = httpx.Timeout(self.config.timeout_seconds)
        try:
            with httpx.Client(timeout=timeout) as client:
                resp = client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            raise LLMTimeoutError("LLM gateway request timed out") from e
        except httpx.RequestError as e:
            # DNS/connection reset etc.
            raise LLMProviderError(f"LLM gateway request failed: {type(e).__name__}") from e

        if resp.status_code >= 400:
            msg = None
            try:
                j = resp.json()
                if isinstance(j, dict):
                    err = j.get("error")
                    if isinstance(err, dict):
                        msg = err.get("message")
                    elif isinstance(err, str):
                        msg = err
            except ValueError:
                msg = None

            message = msg or f"LLM gateway error (status={resp.status_code})"
            if resp.status_code in (401, 403):
                raise LLMAuthError(message)
            if resp.status_code == 402:
                raise LLMError(message, code="LLM_PAYMENT_REQUIRED")
            if resp.status_code == 429:
                raise LLMRateLimitError(message)
            if resp.status_code == 413:
                raise LLMInputTooLargeError(message)
            if resp.status_code == 400 and any(
                k in message.lower()
                for k in ("too large", "too long", "exceed", "exceeded", "maximum", "context length")
            ):
                raise LLMInputTooLargeError(message)
            if 500 <= resp.status_code <= 599:
                raise LLMProviderError(message)
            raise LLMError(message)

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMProviderError("LLM gateway returned non-JSON response") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices[0], dict):
            raise LLMProviderError("LLM gateway returned no choices")
        message = choices[0].get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        # 空応答は呼び出し側で既定文言に置き換える
        return content if isinstance(content, str) else ""
