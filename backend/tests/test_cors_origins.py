from fastapi.testclient import TestClient

from backend.app.main import (
    DEFAULT_ALLOWED_ORIGINS,
    LOCAL_DEVELOPMENT_ORIGINS,
    _read_allowed_origins,
    _resolve_allowed_origins,
    app,
)


def test_read_allowed_origins_strips_trailing_slashes_and_blanks():
    assert _read_allowed_origins(["http://shop.example.com/", " ", "http://shop.example.com"]) == [
        "http://shop.example.com",
    ]


def test_resolve_allowed_origins_reads_env_and_keeps_dev_origins(monkeypatch):
    monkeypatch.setenv(
        "BACKEND_ALLOWED_ORIGINS",
        "https://admin.example.com, https://shop.example.com/",
    )

    origins = _resolve_allowed_origins()

    assert "https://admin.example.com" in origins
    assert "https://shop.example.com" in origins
    assert LOCAL_DEVELOPMENT_ORIGINS <= set(origins)
    assert "http://localhost:3000" not in origins


def test_resolve_allowed_origins_defaults_without_env(monkeypatch):
    monkeypatch.delenv("BACKEND_ALLOWED_ORIGINS", raising=False)

    assert set(_resolve_allowed_origins()) == DEFAULT_ALLOWED_ORIGINS


def test_products_endpoint_includes_cors_headers_for_local_dev_origin():
    client = TestClient(app)
    origin = "http://localhost:5173"

    response = client.options(
        "/products/",
        headers={
            "Origin": origin,
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code == 200
    assert response.headers.get("access-control-allow-origin") == origin
