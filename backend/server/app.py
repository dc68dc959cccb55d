"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (default client binding)
- Register routes
"""

from __future__ import annotations

from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.live.base import LiveConnector
from adapters.live.gemini import GeminiLiveConnector
from adapters.llm.client import BackendFactory, ClientBinding, resolve_credential
from config import AppConfig
from observability import logger

from server.routes import register_routes


LiveConnectorFactory = Callable[[ClientBinding], LiveConnector]


def default_live_connector(binding: ClientBinding) -> LiveConnector:
    """Gemini Live connector for the binding's credential."""
    return GeminiLiveConnector(credential=binding.credential, url=binding.config.live_ws_url)


def create_app(
    config: AppConfig | None = None,
    *,
    backend_factory: BackendFactory | None = None,
    live_connector_factory: LiveConnectorFactory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations and fake backends
    - Environment-specific setup
    - ASGI server compatibility

    A missing default credential is not fatal: requests may bring
    their own key, and the rest report CredentialInvalid.
    """
    config = config or AppConfig.load_from_env()
    logger.configure(enable_json_logs=config.enable_json_logs)

    app = FastAPI(title="Health Assistant API")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Default binding ONCE per process; per-request keys rebind from it
    app.state.binding = ClientBinding.build(
        resolve_credential(None, config),
        config,
        backend_factory,
    )
    app.state.live_connector_factory = live_connector_factory or default_live_connector

    # Routes
    register_routes(app)

    return app
