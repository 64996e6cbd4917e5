"""The keel application shell.

Collects use cases, middleware, roles and schemas during setup, then
freezes them into a route registry and an assembled pipeline on the
first request (or ASGI lifespan startup). Persistence collaborators are
passed in; each defaults to its in-memory implementation.
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any, TypeAlias

from keel._internal.asgi import Receive, Scope, Send
from keel.appstate.gate import AppStateGate
from keel.appstate.states import AppState
from keel.appstate.stores import AppStateStore, InMemoryAppStateStore
from keel.auth.accounts import AccountService, InMemoryUserStore, Mailer, UserStore
from keel.auth.engine import AuthenticationEngine
from keel.auth.stores import InMemoryRefreshTokenStore, RefreshTokenStore
from keel.auth.tokens import TokenService
from keel.authz.engine import AuthorizationEngine
from keel.authz.stores import InMemoryRoleStore, RoleStore
from keel.config import AppConfig
from keel.middleware.builtin import default_middleware
from keel.middleware.pipeline import Pipeline, assemble
from keel.middleware.protocol import Descriptor, ErrorMiddleware, PreMiddleware, middleware
from keel.roles import RoleCatalog, RoleCategory
from keel.routes import DEFAULT_SCHEMAS, Services, default_routes
from keel.routing.registry import RouteRegistry
from keel.routing.route import RouteConfig
from keel.server.handler import handle_request
from keel.validation.schemas import Schema, SchemaValidator

logger = logging.getLogger("keel.server")

Handler: TypeAlias = Callable[..., Any]


class App:
    """The keel application.

    Mutable during setup. Frozen when ``__call__()`` first runs; after
    that, registering routes, middleware, roles or schemas raises
    ``RuntimeError``.

    Usage::

        app = App(AppConfig.from_env())

        @app.route("/report/create", method="post", roles=["Reporter"])
        async def create_report(ctx):
            return {"id": ...}
    """

    __slots__ = (
        "_app_state_store",
        "_freeze_lock",
        "_frozen",
        "_mailer",
        "_middleware_list",
        "_pending_routes",
        "_pipeline",
        "_refresh_store",
        "_registry",
        "_role_store",
        "_roles",
        "_services",
        "_shutdown_hooks",
        "_startup_hooks",
        "_user_store",
        "_validator",
        "config",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        refresh_tokens: RefreshTokenStore | None = None,
        roles: RoleStore | None = None,
        app_state: AppStateStore | None = None,
        users: UserStore | None = None,
        mailer: Mailer | None = None,
    ) -> None:
        self.config: AppConfig = config or AppConfig()
        self._refresh_store = refresh_tokens or InMemoryRefreshTokenStore()
        self._role_store = roles or InMemoryRoleStore()
        self._app_state_store = app_state or InMemoryAppStateStore()
        self._user_store = users or InMemoryUserStore()
        self._mailer = mailer
        self._roles = RoleCatalog()
        self._validator = SchemaValidator(DEFAULT_SCHEMAS)
        self._pending_routes: list[tuple[str, RouteConfig | Mapping[str, Any]]] = []
        self._middleware_list: list[Descriptor] = []
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._frozen = False
        self._freeze_lock = threading.Lock()

        # Compiled state, set by _freeze()
        self._registry: RouteRegistry | None = None
        self._pipeline: Pipeline | None = None
        self._services: Services | None = None

    # -- Use cases --

    def route(
        self,
        path: str,
        *,
        method: str = "get",
        roles: list[str] | tuple[str, ...],
        app_states: list[AppState] | tuple[AppState, ...] | None = None,
    ) -> Callable[[Handler], Handler]:
        """Register a use case via decorator. The handler receives the context."""

        def decorator(func: Handler) -> Handler:
            self.register(path, RouteConfig(method, func, list(roles), app_states))
            return func

        return decorator

    def register(self, path: str, config: RouteConfig | Mapping[str, Any]) -> None:
        """Register a use case. A path that matches a default replaces it."""
        self._check_not_frozen()
        self._pending_routes.append((path, config))

    # -- Middleware --

    def add_middleware(
        self,
        descriptor: Descriptor | Callable[..., Any],
        *,
        order: float | None = None,
        name: str | None = None,
    ) -> None:
        """Add a pipeline step.

        Pass a ``PreMiddleware``/``ErrorMiddleware``, or a bare callable with
        ``order=``; bare callables are classified by parameter count.
        """
        self._check_not_frozen()
        if not isinstance(descriptor, PreMiddleware | ErrorMiddleware):
            descriptor = middleware(order, descriptor, name)  # type: ignore[arg-type]
        self._middleware_list.append(descriptor)

    # -- Roles and schemas --

    def add_role(self, role: str, category: RoleCategory | str = RoleCategory.APPLICATION) -> None:
        self._check_not_frozen()
        self._roles.add(role, category)

    def add_schema(self, schema_id: str, schema: Schema) -> None:
        self._check_not_frozen()
        self._validator.register(schema_id, schema)

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register a sync or async hook run at ASGI lifespan startup."""
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- Compiled state --

    @property
    def services(self) -> Services:
        """Engines and services. Available once the app is frozen."""
        self._ensure_frozen()
        assert self._services is not None
        return self._services

    @property
    def registry(self) -> RouteRegistry:
        self._ensure_frozen()
        assert self._registry is not None
        return self._registry

    @property
    def pipeline(self) -> Pipeline:
        self._ensure_frozen()
        assert self._pipeline is not None
        return self._pipeline

    # -- ASGI --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        self._ensure_frozen()
        assert self._pipeline is not None
        await handle_request(scope, receive, send, pipeline=self._pipeline)

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    self._ensure_frozen()
                    await self._run_hooks(self._startup_hooks)
                except Exception as exc:
                    logger.exception("Startup failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                await self._run_hooks(self._shutdown_hooks)
                await send({"type": "lifespan.shutdown.complete"})
                return

    @staticmethod
    async def _run_hooks(hooks: list[Callable[..., Any]]) -> None:
        for hook in hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Freeze exactly once, even if first requests arrive concurrently."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Build engines, the route registry and the pipeline.

        MUST only be called while holding _freeze_lock.

        Raises:
            ConfigurationError: Missing signing keys, an invalid route, or an
                invalid or conflicting middleware descriptor.
        """
        config = self.config
        config.require_secrets()

        registry = RouteRegistry()
        tokens = TokenService(config)
        authentication = AuthenticationEngine(tokens, self._refresh_store)
        authorization = AuthorizationEngine.from_config(config, registry, self._role_store)
        gate = AppStateGate.from_config(config, self._app_state_store)
        services = Services(
            config=config,
            tokens=tokens,
            authentication=authentication,
            accounts=AccountService(self._user_store, authentication, mailer=self._mailer),
            authorization=authorization,
            roles=self._roles,
            gate=gate,
            validator=self._validator,
        )

        for path, route_config in default_routes(services).items():
            registry.register(path, route_config)
        for path, route_config in self._pending_routes:
            registry.register(path, route_config)
        registry.freeze()

        pipeline = assemble(
            [
                *default_middleware(
                    config,
                    registry=registry,
                    tokens=tokens,
                    authorization=authorization,
                    gate=gate,
                ),
                *self._middleware_list,
            ]
        )

        self._registry = registry
        self._pipeline = pipeline
        self._services = services
        self._frozen = True
        logger.info(
            "Serving %d use case(s) through %d middleware step(s)",
            len(registry),
            len(pipeline.pre) + len(pipeline.error),
        )

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register use cases, middleware, roles and schemas first."
            )
            raise RuntimeError(msg)
