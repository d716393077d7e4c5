import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from starlette.concurrency import run_in_threadpool

from .auth.discovery import ConfigResolver
from .auth.matrix import AuthorizationState, load_policy
from .auth.oauth import OAuthFlowOrchestrator
from .auth.sessions import LOGGING_OUT_ATTRIBUTE, SessionStore
from .auth.sync import AuthorizationMatrixSynchronizer
from .auth.users import get_session_principal
from .config import (
    get_session_cookie_name,
    get_session_idle_ttl_seconds,
    is_bearer_token_login_enabled,
    is_project_matrix_default,
    is_session_cookie_secure,
)
from .db import init_db
from .errors import LoginError, login_error_response, register_error_handlers
from .observability.logging import setup_logging, bind_request_id
from .observability.metrics import metrics_endpoint, request_metrics_middleware
from .observability.sentry import init_sentry
from .routers import security_realm, status


logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization")
    if not auth_header:
        return None
    parts = auth_header.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip() or None
    return None


def create_app(
    *,
    resolver: Optional[ConfigResolver] = None,
    authorization_state: Optional[AuthorizationState] = None,
) -> FastAPI:
    state = authorization_state or AuthorizationState()
    resolver = resolver or ConfigResolver()
    orchestrator = OAuthFlowOrchestrator(resolver, AuthorizationMatrixSynchronizer(state))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db()
        if authorization_state is None:
            try:
                state.replace_policy(load_policy(project_scoped_default=is_project_matrix_default()))
            except Exception:  # noqa: BLE001
                state.suspend_persistence()
                logger.exception(
                    "Failed to load the persisted authorization matrix; starting empty and not saving changes"
                )
            else:
                logger.info("Loaded authorization matrix %r", state.policy)
        # Warm the configuration; a failure here only defers discovery.
        try:
            await run_in_threadpool(resolver.resolve)
        except Exception:  # noqa: BLE001
            logger.exception("Initial configuration discovery failed; continuing without blocking")
        yield

    app = FastAPI(title="Cluster Login", version="0.1.0", lifespan=lifespan)
    app.state.authorization_state = state
    app.state.orchestrator = orchestrator
    app.state.session_store = SessionStore(get_session_idle_ttl_seconds())

    register_error_handlers(app)
    setup_logging()
    init_sentry(app)

    cookie_name = get_session_cookie_name()

    @app.middleware("http")
    async def authenticate_request(request: Request, call_next):
        session = request.state.http_session
        principal = get_session_principal(session)
        bearer_token = _bearer_token(request)
        if principal is None and bearer_token and is_bearer_token_login_enabled():
            if session is not None and session.attributes.pop(LOGGING_OUT_ATTRIBUTE, None):
                logger.debug("Session is logging out; ignoring bearer token once")
            else:
                try:
                    principal = await run_in_threadpool(orchestrator.authenticate, bearer_token)
                except LoginError as exc:
                    logger.info("Bearer token authentication failed: %s", exc.message)
                    return login_error_response(exc)
                if principal is None:
                    logger.debug(
                        "Bearer token maps to no recognized role for %s %s",
                        request.method,
                        request.url.path,
                    )
        request.state.principal = principal
        return await call_next(request)

    @app.middleware("http")
    async def bind_http_session(request: Request, call_next):
        store: SessionStore = request.app.state.session_store
        request.state.http_session = store.get(request.cookies.get(cookie_name))
        request.state.issued_session = None
        response = await call_next(request)
        issued = request.state.issued_session
        if issued is not None:
            response.set_cookie(
                cookie_name,
                issued.id,
                httponly=True,
                samesite="lax",
                secure=is_session_cookie_secure(),
            )
        return response

    # Metrics middleware
    app.middleware("http")(request_metrics_middleware)
    # Request ID binder
    @app.middleware("http")
    async def add_request_id(request, call_next):
        rid = request.headers.get("X-Request-Id")
        bind_request_id(rid)
        response = await call_next(request)
        if rid:
            response.headers["X-Request-Id"] = rid
        return response

    # Routers
    app.include_router(status.router)
    app.include_router(security_realm.router)
    app.include_router(security_realm.logout_router)
    # Prometheus metrics
    app.add_api_route("/metrics", metrics_endpoint, include_in_schema=False)

    return app


app = create_app()
