from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from arena.server.middleware import SecurityHeadersMiddleware, SlashNormalizationMiddleware


async def _plain(request):
    return JSONResponse({"path": request.url.path})


async def _cached(request):
    return JSONResponse({}, headers={"Cache-Control": "public, max-age=60"})


def _client() -> TestClient:
    app = Starlette(routes=[Route("/items", _plain, methods=["GET", "POST"]), Route("/cached", _cached)])
    app.add_middleware(SlashNormalizationMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    return TestClient(app)


class TestSecurityHeadersMiddleware:
    def test_adds_headers(self):
        response = _client().get("/items")

        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["content-security-policy"] == "default-src 'none'; frame-ancestors 'none'"
        assert response.headers["cache-control"] == "no-store"

    def test_keeps_handler_cache_control(self):
        response = _client().get("/cached")

        assert response.headers.get_list("cache-control") == ["public, max-age=60"]


class TestSlashNormalizationMiddleware:
    def test_post_with_trailing_slash_is_not_redirected(self):
        response = _client().post("/items/", follow_redirects=False)

        assert response.status_code == 200

    def test_root_untouched(self):
        assert _client().get("/").status_code == 404
