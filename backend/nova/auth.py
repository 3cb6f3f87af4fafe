import os
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from .errors import NovaError, UnauthorizedError


class IdentityResolver(Protocol):
    """Bearer資格情報からユーザーIDを解決する境界。"""

    def resolve(self, credential: str) -> str:  # pragma: no cover (実装側で検証する)
        """credential に対応する user_id を返す。解決できなければ UnauthorizedError。"""


def _parse_static_tokens(raw: str) -> dict[str, str]:
    tokens: dict[str, str] = {}
    for pair in raw.split(","):
        token, sep, user_id = pair.strip().partition(":")
        if sep and token.strip() and user_id.strip():
            tokens[token.strip()] = user_id.strip()
    return tokens


@dataclass(frozen=True)
class AuthConfig:
    provider: str
    static_tokens: dict[str, str] = field(default_factory=dict)
    supabase_url: str | None = None
    anon_key: str | None = None
    timeout_seconds: float = 10

    @staticmethod
    def from_env() -> "AuthConfig":
        provider = os.getenv("AUTH_PROVIDER", "static").strip().lower()
        static_tokens = _parse_static_tokens(os.getenv("AUTH_STATIC_TOKENS", ""))
        return AuthConfig(
            provider=provider,
            static_tokens=static_tokens,
            supabase_url=os.getenv("SUPABASE_URL"),
            anon_key=os.getenv("SUPABASE_ANON_KEY"),
            timeout_seconds=float(os.getenv("AUTH_TIMEOUT_SECONDS", "10")),
        )


class StaticIdentityResolver:
    """環境変数で与えたトークン表で解決する実装（開発/テスト用）。"""

    def __init__(self, config: AuthConfig):
        self.tokens = dict(config.static_tokens)

    def resolve(self, credential: str) -> str:
        user_id = self.tokens.get(credential or "")
        if not user_id:
            raise UnauthorizedError("Unauthorized")
        return user_id


class SupabaseIdentityResolver:
    """Supabase Auth の /auth/v1/user にアクセストークンを渡してユーザーを取得する。"""

    def __init__(self, config: AuthConfig):
        if not config.supabase_url:
            raise NovaError("SUPABASE_URL is required for AUTH_PROVIDER=supabase")
        if not config.anon_key:
            raise NovaError("SUPABASE_ANON_KEY is required for AUTH_PROVIDER=supabase")
        self.config = config
        self.base_url = config.supabase_url.rstrip("/")

    def resolve(self, credential: str) -> str:
        if not credential:
            raise UnauthorizedError("Unauthorized")

        headers = {"Authorization": f"Bearer {credential}", "apikey": self.config.anon_key}
        timeout = httpx.Timeout(self.config.timeout_seconds)
        try:
            with httpx.Client(timeout=timeout) as client:
                resp = client.get(f"{self.base_url}/auth/v1/user", headers=headers)
        except httpx.RequestError as e:
            raise NovaError(f"Auth request failed: {type(e).__name__}") from e

        if resp.status_code in (401, 403):
            raise UnauthorizedError("Unauthorized")
        if resp.status_code >= 400:
            raise NovaError(f"Auth API error (status={resp.status_code})")

        try:
            data = resp.json()
        except ValueError as e:
            raise NovaError("Auth API returned non-JSON response") from e

        user_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(user_id, str) or not user_id:
            raise UnauthorizedError("Unauthorized")
        return user_id


def build_identity_resolver(config: AuthConfig) -> IdentityResolver:
    provider = (config.provider or "").strip().lower()
    if provider == "static":
        return StaticIdentityResolver(config)

    if provider == "supabase":
        return SupabaseIdentityResolver(config)

    raise NovaError(f"Unsupported AUTH_PROVIDER: {config.provider}")
