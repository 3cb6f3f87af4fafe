import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import httpx

from .errors import NovaError, StorageWriteError


class ContentStore(Protocol):
    """アップロードされた生バイト列の保存先（実装差し替え可能にするための境界）。"""

    def put(self, path: str, content: bytes, content_type: str) -> None:  # pragma: no cover (実装側で検証する)
        """path に content を保存する。失敗時は StorageWriteError を送出する。既存パスは上書きしない。"""


@dataclass(frozen=True)
class StorageConfig:
    provider: str
    local_dir: str
    bucket: str
    supabase_url: str | None
    service_key: str | None
    timeout_seconds: float

    @staticmethod
    def from_env() -> "StorageConfig":
        provider = os.getenv("STORAGE_PROVIDER", "local").strip().lower()
        local_dir = os.getenv("STORAGE_LOCAL_DIR", "./storage")
        bucket = os.getenv("STORAGE_BUCKET", "datasets").strip()
        supabase_url = os.getenv("SUPABASE_URL")
        service_key = os.getenv("SUPABASE_SERVICE_KEY")
        timeout_seconds = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "30"))
        return StorageConfig(
            provider=provider,
            local_dir=local_dir,
            bucket=bucket,
            supabase_url=supabase_url,
            service_key=service_key,
            timeout_seconds=timeout_seconds,
        )


class LocalContentStore:
    """ローカルディスクに保存する実装（開発/テスト用）。"""

    def __init__(self, config: StorageConfig):
        self.config = config
        self.root = Path(config.local_dir)

    def put(self, path: str, content: bytes, content_type: str) -> None:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise StorageWriteError(f"Invalid storage path: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # "xb": 既存ファイルがあれば失敗させる（upsertしない）
            with open(target, "xb") as f:
                f.write(content)
        except FileExistsError as e:
            raise StorageWriteError(f"The resource already exists: {path}") from e
        except OSError as e:
            raise StorageWriteError(f"Storage write failed: {type(e).__name__}") from e


class SupabaseContentStore:
    """
    Supabase Storage 用の最小クライアント。
    - 外部SDKに依存せず、Storage REST API を httpx で叩く
    """

    def __init__(self, config: StorageConfig):
        if not config.supabase_url:
            raise NovaError("SUPABASE_URL is required for STORAGE_PROVIDER=supabase")
        if not config.service_key:
            raise NovaError("SUPABASE_SERVICE_KEY is required for STORAGE_PROVIDER=supabase")
        self.config = config
        self.base_url = config.supabase_url.rstrip("/")

    def put(self, path: str, content: bytes, content_type: str) -> None:
        # オブジェクトキーはセグメント単位でURLエスケープする（"#" "?" を含むファイル名対策）
        url = f"{self.base_url}/storage/v1/object/{quote(self.config.bucket, safe='')}/{quote(path, safe='/')}"
        headers = {
            "Authorization": f"Bearer {self.config.service_key}",
            "apikey": self.config.service_key,
            "Content-Type": content_type,
            "x-upsert": "false",
        }

        timeout = httpx.Timeout(self.config.timeout_seconds)
        try:
            with httpx.Client(timeout=timeout) as client:
                resp = client.post(url, headers=headers, content=content)
        except httpx.RequestError as e:
            raise StorageWriteError(f"Storage request failed: {type(e).__name__}") from e

        if resp.status_code >= 400:
            msg = None
            try:
                j = resp.json()
                if isinstance(j, dict):
                    msg = j.get("message") or j.get("error")
            except ValueError:
                msg = None
            raise StorageWriteError(msg or f"Storage API error (status={resp.status_code})")


def build_content_store(config: StorageConfig) -> ContentStore:
    provider = (config.provider or "").strip().lower()
    if provider in ("local", "disk", "filesystem"):
        return LocalContentStore(config)

    if provider == "supabase":
        return SupabaseContentStore(config)

    raise NovaError(f"Unsupported STORAGE_PROVIDER: {config.provider}")
