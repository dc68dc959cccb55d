"""
Client binding: one credential, one set of remote clients.

Rules:
- A binding is immutable. A different credential means a new binding.
- Bindings are constructed explicitly and owned by the caller; there is
  no process-wide cache.
- Credential acquisition is an external concern: this module only
  resolves "override, then configured default".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from openai import AsyncOpenAI

from adapters.llm.base import GenerationBackend
from adapters.llm.openai_backend import OpenAICompatibleBackend
from config import AppConfig
from observability.logger import log_event


def resolve_credential(override: str | None, config: AppConfig) -> str | None:
    """
    Current credential value.

    Priority: caller-supplied override, then the configured default.
    Blank strings count as absent.
    """
    for candidate in (override, config.default_api_key):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def build_llm_client(*, credential: str, config: AppConfig) -> AsyncOpenAI:
    """Build an OpenAI SDK client aimed at the configured base URL."""
    return AsyncOpenAI(api_key=credential, base_url=config.llm_base_url)


BackendFactory = Callable[[str, AppConfig], GenerationBackend]


def default_backend_factory(credential: str, config: AppConfig) -> GenerationBackend:
    """OpenAI-compatible backend; speech goes to the native endpoint."""
    return OpenAICompatibleBackend(
        client=build_llm_client(credential=credential, config=config),
        api_key=credential,
        speech_base_url=config.speech_base_url,
    )


@dataclass(frozen=True)
class ClientBinding:
    """
    Read-only pairing of a credential with the clients built from it.

    Shared by the chat, quote and speech clients and the live connector.
    credential is None when no key is available; callers then report
    CredentialInvalid without touching the network.
    """
    credential: str | None
    config: AppConfig
    backend: GenerationBackend | None
    backend_factory: BackendFactory | None = field(default=None, compare=False, repr=False)

    @staticmethod
    def build(
        credential: str | None,
        config: AppConfig,
        backend_factory: BackendFactory | None = None,
    ) -> ClientBinding:
        """
        Construct a binding (and its backend) for one credential value.

        backend_factory replaces the default OpenAI-compatible backend;
        it is carried over by rebind().
        """
        backend: GenerationBackend | None = None
        if credential:
            factory = backend_factory or default_backend_factory
            backend = factory(credential, config)

        log_event({
            "event_type": "CLIENT_BINDING_BUILT",
            "base_url": config.llm_base_url,
            "has_credential": credential is not None,
        })
        return ClientBinding(
            credential=credential,
            config=config,
            backend=backend,
            backend_factory=backend_factory,
        )

    def rebind(self, credential: str | None) -> ClientBinding:
        """
        Return a binding for the given credential.

        Same value: this binding. Different value: a brand new binding.
        """
        if credential == self.credential:
            return self
        return ClientBinding.build(credential, self.config, self.backend_factory)

    @property
    def has_credential(self) -> bool:
        """True when a non-empty credential is bound."""
        return bool(self.credential)
