"""Keel: request-processing core for role-based JSON backends.

Authenticates callers with short-lived access tokens, rotates CSRF-bound
refresh cookies, authorizes use cases by role, and gates them on a
scheduled application state.

Basic usage::

    from keel import App, AppConfig

    app = App(AppConfig.from_env())

    @app.route("/report/list", roles=["Reporter"])
    async def list_reports(ctx):
        return [...]

Serve ``app`` with any ASGI server.
"""

__version__ = "0.1.0-dev"
__all__ = [
    "App",
    "AppConfig",
    "AppState",
    "ConfigurationError",
    "DefaultRoles",
    "ErrorMiddleware",
    "KeelError",
    "PreMiddleware",
    "Request",
    "RequestContext",
    "Response",
    "RouteConfig",
    "TestClient",
    "UseCaseError",
    "get_context",
]

_LAZY = {
    "App": "keel.app",
    "AppConfig": "keel.config",
    "AppState": "keel.appstate.states",
    "ConfigurationError": "keel.errors",
    "DefaultRoles": "keel.roles",
    "ErrorMiddleware": "keel.middleware.protocol",
    "KeelError": "keel.errors",
    "PreMiddleware": "keel.middleware.protocol",
    "Request": "keel.http.request",
    "RequestContext": "keel.context",
    "Response": "keel.http.response",
    "RouteConfig": "keel.routing.route",
    "TestClient": "keel.testing",
    "UseCaseError": "keel.errors",
    "get_context": "keel.context",
}


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import keel`` fast while providing a clean top-level API.
    """
    module_name = _LAZY.get(name)
    if module_name is None:
        msg = f"module 'keel' has no attribute {name!r}"
        raise AttributeError(msg)
    import importlib

    return getattr(importlib.import_module(module_name), name)
