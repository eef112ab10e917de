"""
Base service class for the IAM Todo service.
"""

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from typing import Dict, Optional
import asyncio
import contextlib
import os
import signal
import time

import uvicorn
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import ServiceException


class SupervisedServer(uvicorn.Server):
    """Uvicorn server whose signal handling is owned by the service."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class BaseService:
    """Base service class with common functionality."""

    healthy_message = "Service healthy."
    unhealthy_message = "Service unhealthy."

    def __init__(self, service_name: str, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.config = config if config is not None else get_config(service_name)
        self.port = self.config.port
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()
        self._server: Optional[SupervisedServer] = None
        self._exit_code = 0
        self._stop_requested = False

        configure_logging(service_name, self.config.log_level)

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"IAM Todo - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        # Request timing middleware
        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()
            try:
                response = await call_next(request)

                duration = time.time() - start_time
                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=response.status_code,
                    duration=duration
                )
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )
                return response
            finally:
                clear_context()

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            dependencies = await self._check_dependencies()
            healthy = all(status == "ok" for status in dependencies.values())
            self.metrics.record_health_check("ok" if healthy else "error")

            body = {
                "service": self.service_name,
                "status": "OK" if healthy else "Error",
                "message": self.healthy_message if healthy else self.unhealthy_message,
                "uptime_seconds": self._get_uptime(),
                "dependencies": dependencies,
                "version": "1.0.0",
                "commit": os.getenv("GIT_COMMIT", "unknown")
            }
            return JSONResponse(status_code=200 if healthy else 503, content=body)

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=generate_latest(self.metrics.registry),
                media_type=CONTENT_TYPE_LATEST
            )

        # Error handlers
        @self.app.exception_handler(ServiceException)
        async def service_exception_handler(request: Request, exc: ServiceException):
            """Handle ServiceException."""
            self.logger.error(
                "Service error",
                code=exc.code,
                message=exc.message,
                details=exc.details
            )
            self.metrics.record_error(exc.code)
            payload = exc.to_response()
            if exc.status_code >= 500:
                # Internal details stay in the logs
                payload.details = {}
            return JSONResponse(
                status_code=exc.status_code,
                content=payload.model_dump()
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={
                    "code": "INTERNAL_ERROR",
                    "message": "Internal server error",
                    "details": {}
                }
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    async def startup(self):
        """Run before the HTTP server accepts requests. Override in subclasses."""

    async def shutdown(self):
        """Run after the HTTP server stopped. Override in subclasses."""

    def request_exit(self, exit_code: int = 0):
        """Ask the running server to stop; the process exits with exit_code."""
        self._exit_code = max(self._exit_code, exit_code)
        self._stop_requested = True
        if self._server is not None:
            self._server.should_exit = True

    def _handle_signal(self, sig: signal.Signals):
        self.logger.info("Received signal, shutting down gracefully", signal=sig.name)
        if self._server is not None and self._server.should_exit:
            self._server.force_exit = True
        self.request_exit(0)

    async def serve(self) -> int:
        """Start up, serve until a signal or fatal error, then shut down.

        Returns the process exit code.
        """
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

        try:
            await self.startup()
        except ServiceException as e:
            self.logger.error("Startup failed, server cannot start", code=e.code, error=e.message)
            self._exit_code = 1

        if not self._stop_requested and self._exit_code == 0:
            self._server = SupervisedServer(uvicorn.Config(
                self.app,
                host=self.config.host,
                port=self.config.port,
                log_level=self.config.log_level.lower(),
                lifespan="off",
            ))
            self.logger.info("Listening", host=self.config.host, port=self.config.port)
            await self._server.serve()

        try:
            await self.shutdown()
        except ServiceException as e:
            self.logger.error("Shutdown failed", code=e.code, error=e.message)
            self._exit_code = 1
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

        return self._exit_code

    def run(self) -> int:
        """Run the service."""
        return asyncio.run(self.serve())
