import nova.__main__ as serve_mod


def testMainRunsUvicornWithEnvHostAndPort(monkeypatch):
    """目的: 起動エントリポイントが HOST / PORT を読んで nova.main:app を uvicorn で起動することを確認する。"""
    calls: list = []
    monkeypatch.setattr(serve_mod.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.setenv("HOST", "0.0.0.0")
    monkeypatch.setenv("PORT", "9000")

    serve_mod.main()

    assert calls == [("nova.main:app", {"host": "0.0.0.0", "port": 9000})]


def testMainDefaultsToLocalhost(monkeypatch):
    calls: list = []
    monkeypatch.setattr(serve_mod.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.delenv("HOST", raising=False)
    monkeypatch.delenv("PORT", raising=False)

    serve_mod.main()

    assert calls[0][1] == {"host": "127.0.0.1", "port": 8000}
