"""
Shared-password login over a signed cookie session.
"""

import hmac
from typing import Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from starlette.middleware.sessions import SessionMiddleware

from shared.logging import get_logger

SESSION_FLAG = "is_authenticated"
SESSION_MAX_AGE = 60 * 60 * 24

PUBLIC_PATHS = ("/login", "/logout", "/health", "/metrics")


class SessionAuth:
    """Single static password; successful login sets a session flag."""

    def __init__(self,
                 password: str,
                 secret_key: str,
                 https_only: bool = False,
                 public_paths: Iterable[str] = PUBLIC_PATHS):
        self._password = password
        self._secret_key = secret_key
        self.https_only = https_only
        self.public_paths = tuple(public_paths)
        self.logger = get_logger("todos.auth")

    def install(self, app: FastAPI):
        """Add the gate and the session middleware (outermost) to app."""

        @app.middleware("http")
        async def require_auth(request: Request, call_next):
            if self.is_public(request.url.path) or self.is_authenticated(request):
                return await call_next(request)
            self.logger.info("Unauthorized access attempt, redirecting to login", path=request.url.path)
            return RedirectResponse("/login", status_code=303)

        app.add_middleware(
            SessionMiddleware,
            secret_key=self._secret_key,
            max_age=SESSION_MAX_AGE,
            same_site="lax",
            https_only=self.https_only,
        )

    def is_public(self, path: str) -> bool:
        return path in self.public_paths

    def is_authenticated(self, request: Request) -> bool:
        return bool(request.session.get(SESSION_FLAG))

    def verify_password(self, candidate: Optional[str]) -> bool:
        if not isinstance(candidate, str):
            return False
        return hmac.compare_digest(candidate.encode("utf-8"), self._password.encode("utf-8"))

    def login(self, request: Request, password: Optional[str]) -> bool:
        if not self.verify_password(password):
            self.logger.info("Failed login attempt")
            return False
        request.session[SESSION_FLAG] = True
        self.logger.info("User authenticated successfully")
        return True

    def logout(self, request: Request):
        request.session.clear()
