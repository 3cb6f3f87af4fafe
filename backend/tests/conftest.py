import os
import tempfile

# nova.db はimport時に DATABASE_URL を読むため、アプリのimportより先に設定する
testDbPath = os.path.join(tempfile.mkdtemp(prefix="nova-test-"), "test.db")
os.environ["DATABASE_URL"] = f"sqlite:///{testDbPath}"
os.environ["AUTH_PROVIDER"] = "static"
os.environ["AUTH_STATIC_TOKENS"] = "token-alice:alice,token-bob:bob"
os.environ["LLM_PROVIDER"] = "stub"

import pytest
from fastapi.testclient import TestClient

from nova.db import SessionLocal, engine
from nova.main import app
from nova.models import Base


@pytest.fixture(autouse=True)
def storageDir(tmp_path, monkeypatch) -> str:
    """目的: 生ファイルの保存先をテストごとの一時ディレクトリにする。"""
    path = tmp_path / "storage"
    monkeypatch.setenv("STORAGE_PROVIDER", "local")
    monkeypatch.setenv("STORAGE_LOCAL_DIR", str(path))
    return str(path)


@pytest.fixture()
def client() -> TestClient:
    """目的: FastAPIのTestClientを提供し、startup/shutdownイベントを確実に実行する。"""
    with TestClient(app) as testClient:
        yield testClient


@pytest.fixture()
def authHeaders() -> dict:
    return {"Authorization": "Bearer token-alice"}


@pytest.fixture()
def otherAuthHeaders() -> dict:
    return {"Authorization": "Bearer token-bob"}


@pytest.fixture()
def db():
    """目的: テスト側からDBの状態を直接確認するためのセッション。"""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def cleanDatabase() -> None:
    """目的: 各テストが独立して再現できるよう、テストごとにDBをクリーンにする。"""
    yield

    app.dependency_overrides.clear()
    with engine.begin() as connection:
        # 子テーブルから順に消す
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture()
def uploadCsv(client, authHeaders):
    """目的: CSV文字列をアップロードするヘルパーを返す。"""

    def _upload(csvText: str, fileName: str = "sample.csv", headers: dict | None = None):
        files = {"file": (fileName, csvText.encode("utf-8"), "text/csv")}
        return client.post(
            "/datasets/upload",
            files=files,
            data={"fileName": fileName},
            headers=headers if headers is not None else authHeaders,
        )

    return _upload
