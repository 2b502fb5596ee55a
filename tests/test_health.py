"""Smoke test for application startup."""


def test_app_imports() -> None:
    """Verify the app can be imported without errors."""
    from tradepost.main import app

    assert app.title == "Tradepost"


def test_routes_registered() -> None:
    from tradepost.main import app

    paths = set(app.openapi()["paths"])
    assert {"/trades", "/trades/{trade_id}/settle", "/collection/{user_id}", "/ready"} <= paths
    assert {"get", "post"} <= set(app.openapi()["paths"]["/trades/{trade_id}/settle"])
