from __future__ import annotations

from labedu import serve


def test_uvicorn_options_defaults(monkeypatch):
    for name in ("HOST", "PORT", "RELOAD", "LOG_LEVEL", "FORWARDED_ALLOW_IPS", *serve._SSL_ENV):
        monkeypatch.delenv(name, raising=False)

    options = serve.uvicorn_options()

    assert options["host"] == "0.0.0.0"
    assert options["port"] == 8000
    assert options["reload"] is False
    assert options["log_level"] == "info"
    assert "ssl_certfile" not in options


def test_uvicorn_options_read_environment(monkeypatch):
    for name in serve._SSL_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.setenv("RELOAD", "yes")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("SSL_CERTFILE", "/etc/labedu/cert.pem")
    monkeypatch.setenv("SSL_KEYFILE", "/etc/labedu/key.pem")

    options = serve.uvicorn_options()

    assert options["port"] == 9001
    assert options["reload"] is True
    assert options["log_level"] == "debug"
    assert options["ssl_certfile"] == "/etc/labedu/cert.pem"
    assert options["ssl_keyfile"] == "/etc/labedu/key.pem"
    assert "ssl_ca_certs" not in options


def test_main_passes_options_to_uvicorn(monkeypatch):
    captured = {}

    def fake_run(app, **kwargs):
        captured["app"] = app
        captured.update(kwargs)

    monkeypatch.setattr(serve.uvicorn, "run", fake_run)
    monkeypatch.setenv("PORT", "8100")

    serve.main()

    assert captured["app"] == "labedu.main:app"
    assert captured["port"] == 8100
