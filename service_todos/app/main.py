"""
Todo service for the IAM Todo application.

Composition root: builds the token signer, credential provider and pool,
bootstraps the schema, then serves the session-gated todo API.
"""

import os
import sys
from typing import Any, Dict, Optional

import pydantic
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from shared.base_service import BaseService
from shared.errors import IdleConnectionError, ServiceException, ValidationError
from shared.logging import get_logger

from .auth import SessionAuth
from .config import DEFAULT_SESSION_SECRET, TodoServiceConfig
from .models import TodoCreatedResponse
from .persistence.health import DatabaseHealthProbe
from .persistence.iam import IAMCredentialProvider, RDSTokenSigner
from .persistence.pool import ConnectionPool
from .persistence.schema import SchemaInitializer
from .persistence.tls import load_trust_bundle
from .persistence.todos import TodoRepository

PUBLIC_DIR = os.path.join(os.path.dirname(__file__), '..', 'public')

LOGIN_FAILED_HTML = """
    Login Failed. <a href="/login">Try again</a>
    <script>
        setTimeout(() => { window.location.href = '/login'; }, 2000);
    </script>
"""


class TodoService(BaseService):
    """Todo service implementation."""

    healthy_message = "Database connection healthy."
    unhealthy_message = "Database connection unhealthy."

    def __init__(self,
                 config: Optional[TodoServiceConfig] = None,
                 *,
                 signer_client: Optional[Any] = None,
                 connector: Optional[Any] = None):
        super().__init__("todos", config if config is not None else TodoServiceConfig())

        # Fatal on missing settings or CA material; nothing has touched the network yet.
        self.endpoint = self.config.database_endpoint()
        self.logger.info(
            "Database configuration",
            host=self.endpoint.host,
            port=self.endpoint.port,
            user=self.endpoint.user,
            database=self.endpoint.database,
            region=self.endpoint.region
        )
        self.trust_bundle = load_trust_bundle(self.config.ca_bundle_path)

        self.signer = RDSTokenSigner(self.endpoint, client=signer_client)
        self.credential_provider = IAMCredentialProvider(self.signer, metrics=self.metrics)
        self.pool = ConnectionPool(
            self.endpoint,
            self.credential_provider,
            settings=self.config.pool_settings(),
            ssl_context=self.trust_bundle.ssl_context(),
            connector=connector,
            metrics=self.metrics,
            on_fatal=self._on_pool_fatal,
        )
        self.health_probe = DatabaseHealthProbe(self.pool, timeout=self.config.health_timeout)
        self.schema = SchemaInitializer(self.pool)
        self.todos = TodoRepository(self.pool)

        if self.config.session_secret == DEFAULT_SESSION_SECRET and self.config.is_production:
            self.logger.warning("Using default session secret in production")
        self.session_auth = SessionAuth(
            self.config.app_password,
            self.config.session_secret,
            https_only=self.config.is_production,
        )

        self._setup_todo_routes()
        self.session_auth.install(self.app)
        self.app.mount("/", StaticFiles(directory=PUBLIC_DIR, html=True), name="public")

    def _setup_todo_routes(self):
        """Set up login and todo routes."""

        @self.app.get("/login")
        async def login_page(request: Request):
            if self.session_auth.is_authenticated(request):
                return RedirectResponse("/", status_code=302)
            return FileResponse(os.path.join(PUBLIC_DIR, "login.html"))

        @self.app.post("/login")
        async def login(request: Request):
            body = await _read_body(request)
            if self.session_auth.login(request, body.get("password")):
                return RedirectResponse("/", status_code=303)
            return HTMLResponse(LOGIN_FAILED_HTML, status_code=401)

        @self.app.get("/logout")
        async def logout(request: Request):
            self.session_auth.logout(request)
            return RedirectResponse("/login", status_code=302)

        @self.app.get("/api/todos")
        async def list_todos():
            try:
                todos = await self.todos.list_todos()
            except ServiceException as e:
                self.logger.error("Error fetching todos", code=e.code, error=e.message)
                self.metrics.record_error(e.code)
                return JSONResponse(
                    status_code=500,
                    content={"message": "Failed to fetch todos due to a server error."}
                )
            return jsonable_encoder(todos)

        @self.app.post("/add-todo", status_code=201)
        async def add_todo(request: Request):
            body = await _read_body(request)
            text = body.get("todoText")
            if not isinstance(text, str) or not text.strip():
                return JSONResponse(status_code=400, content={"message": "Todo text cannot be empty."})

            try:
                todo = await self.todos.add_todo(text)
            except ValidationError as e:
                return JSONResponse(status_code=400, content={"message": e.message})
            except ServiceException as e:
                self.logger.error("Error inserting todo", code=e.code, error=e.message)
                self.metrics.record_error(e.code)
                return JSONResponse(
                    status_code=500,
                    content={"message": "Failed to save todo due to a server error."}
                )

            self.metrics.record_business_event("todo_created")
            return jsonable_encoder(TodoCreatedResponse(todo=todo))

    async def _check_dependencies(self) -> Dict[str, str]:
        status = await self.health_probe.check()
        return {"database": "ok" if status.healthy else "unhealthy"}

    def _on_pool_fatal(self, error: IdleConnectionError):
        self.logger.error("Fatal database pool error, stopping service", code=error.code, details=error.details)
        self.request_exit(1)

    async def startup(self):
        await self.schema.ensure_schema()
        self.logger.info(
            "Todo service ready using IAM auth token generation",
            host=self.endpoint.host,
            database=self.endpoint.database
        )

    async def shutdown(self):
        await self.pool.shutdown()


async def _read_body(request: Request) -> Dict[str, Any]:
    """Form or JSON request body as a dict."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}
    form = await request.form()
    return dict(form)


def create_app():
    """Create todo service application."""
    service = TodoService()
    return service.app


def main():
    try:
        service = TodoService()
    except (ServiceException, pydantic.ValidationError) as e:
        get_logger("todos.main").error("Fatal startup error, server cannot start", error=str(e))
        sys.exit(1)
    sys.exit(service.run())


if __name__ == "__main__":
    main()
