"""Async client for the Retell REST API.

The sync engine talks to Retell only through the `RetellClient` interface so
that workflows can be driven by an in-memory fake in tests. The HTTP
implementation is a thin layer over `httpx.AsyncClient`:

- Bearer auth from `RETELL_API_KEY`
- JSON request/response bodies, 204 -> None
- non-2xx responses raise `ApiError` ("Retell API <status>: <body>")
- a semaphore bounds concurrent requests

Usage:
    client = create_client()
    try:
        agents = await paginate(client.list_voice_agents, "agent_id")
    finally:
        await client.aclose()
"""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import httpx

from .errors import ConfigValidationError, RetellSyncError
from .log import get_logger
from .models import ConversationFlowEngine, RetellLlmEngine


_log = get_logger("client")

DEFAULT_API_URL = "https://api.retellai.com"
DEFAULT_PAGE_SIZE = 1000


# ---------------------------------------------------------------------------
# Client configuration
# ---------------------------------------------------------------------------


@dataclass
class ClientConfig:
    """Configuration for connecting to the Retell API.

    Attributes:
        api_url: Base URL for the API
        api_key: Bearer token (env RETELL_API_KEY)
        timeout: Request timeout in seconds
        page_size: Items per page for paginated list endpoints
        max_concurrency: Max in-flight requests per client
    """

    api_url: str = DEFAULT_API_URL
    api_key: str | None = None
    timeout: float = 30.0
    page_size: int = DEFAULT_PAGE_SIZE
    max_concurrency: int = 8

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Create config from environment variables.

        Environment variables:
        - RETELL_API_URL: API base URL
        - RETELL_API_KEY: API key
        """
        return cls(
            api_url=os.environ.get("RETELL_API_URL", DEFAULT_API_URL),
            api_key=os.environ.get("RETELL_API_KEY"),
        )


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ApiError(RetellSyncError):
    """Raised when the API answers with a non-2xx status."""

    def __init__(self, message: str, cause: Exception | None = None, *, status: int = 0, body: str = ""):
        super().__init__(message)
        self.cause = cause
        self.status = status
        self.body = body


class ApiNotFoundError(ApiError):
    """Raised on 404."""

    pass


class ApiConnectionError(RetellSyncError):
    """Raised when the API cannot be reached."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


# ---------------------------------------------------------------------------
# Client interface
# ---------------------------------------------------------------------------

Page = list[dict[str, Any]]


class RetellClient(ABC):
    """Abstract interface for the Retell endpoints the sync engine uses.

    List methods for agents, LLMs and flows return a single page; use
    `paginate` to collect every page. Returned payloads are raw JSON and are
    validated by the caller (see schemas.py).
    """

    # --- Lists ---

    @abstractmethod
    async def list_voice_agents(self, **page: Any) -> Page: ...

    @abstractmethod
    async def list_chat_agents(self, **page: Any) -> Page: ...

    @abstractmethod
    async def list_llms(self, **page: Any) -> Page: ...

    @abstractmethod
    async def list_conversation_flows(self, **page: Any) -> Page: ...

    @abstractmethod
    async def list_phone_numbers(self) -> Page: ...

    @abstractmethod
    async def list_components(self) -> Page: ...

    @abstractmethod
    async def list_test_cases(self, engine: RetellLlmEngine | ConversationFlowEngine) -> Page:
        """Test case definitions attached to an engine (at its version, if set)."""
        ...

    # --- Retrieve ---

    @abstractmethod
    async def get_voice_agent(self, agent_id: str, version: int | None = None) -> dict[str, Any]: ...

    @abstractmethod
    async def get_chat_agent(self, agent_id: str, version: int | None = None) -> dict[str, Any]: ...

    @abstractmethod
    async def get_llm(self, llm_id: str, version: int | None = None) -> dict[str, Any]: ...

    @abstractmethod
    async def get_conversation_flow(self, flow_id: str, version: int | None = None) -> dict[str, Any]: ...

    @abstractmethod
    async def get_agent_versions(self, agent_id: str) -> Page: ...

    # --- Update ---

    @abstractmethod
    async def update_voice_agent(self, agent_id: str, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def update_chat_agent(self, agent_id: str, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def update_llm(self, llm_id: str, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def update_conversation_flow(self, flow_id: str, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def update_test_case(self, test_case_id: str, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def update_component(self, component_id: str, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def update_phone_number(self, phone_number: str, data: dict[str, Any]) -> Any: ...

    # --- Publish ---

    @abstractmethod
    async def publish_voice_agent(self, agent_id: str) -> None: ...

    @abstractmethod
    async def publish_chat_agent(self, agent_id: str) -> None: ...

    async def aclose(self) -> None:
        return None

    async def __aenter__(self) -> "RetellClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


async def paginate(
    fetch_page: Callable[..., Awaitable[Page]],
    id_key: str,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Page:
    """Collect every page of a cursor-paginated list endpoint.

    The cursor is the last item's id and version; a page shorter than `limit`
    is the last one.
    """
    items: Page = []
    cursor: dict[str, Any] = {}
    while True:
        page = await fetch_page(limit=limit, **cursor)
        items.extend(page)
        if len(page) < limit:
            return items
        last = page[-1]
        cursor = {"pagination_key": last.get(id_key)}
        version = last.get("version")
        if isinstance(version, (int, float)) and not isinstance(version, bool):
            cursor["pagination_key_version"] = version


# ---------------------------------------------------------------------------
# HTTP implementation
# ---------------------------------------------------------------------------


def _page_params(page: dict[str, Any]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    if page.get("limit"):
        params["limit"] = page["limit"]
    if page.get("pagination_key"):
        params["pagination_key"] = page["pagination_key"]
    if page.get("pagination_key_version") is not None:
        params["pagination_key_version"] = page["pagination_key_version"]
    return params


def _version_params(version: int | None) -> dict[str, Any]:
    return {"version": version} if version is not None else {}


class HttpRetellClient(RetellClient):
    def __init__(self, config: ClientConfig, *, transport: httpx.AsyncBaseTransport | None = None):
        if not config.api_key:
            raise ConfigValidationError(path=Path("RETELL_API_KEY"), message="API key is not set")
        self._config = config
        self._semaphore = asyncio.Semaphore(max(1, config.max_concurrency))
        self._client = httpx.AsyncClient(
            base_url=config.api_url.rstrip("/"),
            timeout=config.timeout,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        async with self._semaphore:
            try:
                resp = await self._client.request(method, path, params=params or None, json=json)
            except httpx.RequestError as e:
                raise ApiConnectionError(f"Failed to connect to Retell API: {e}", e) from e

        if resp.is_error:
            body = resp.text
            error_cls = ApiNotFoundError if resp.status_code == 404 else ApiError
            raise error_cls(f"Retell API {resp.status_code}: {body}", status=resp.status_code, body=body)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def list_voice_agents(self, **page: Any) -> Page:
        return await self.request("GET", "/list-agents", params=_page_params(page))

    async def list_chat_agents(self, **page: Any) -> Page:
        return await self.request("GET", "/list-chat-agents", params=_page_params(page))

    async def list_llms(self, **page: Any) -> Page:
        return await self.request("GET", "/list-retell-llms", params=_page_params(page))

    async def list_conversation_flows(self, **page: Any) -> Page:
        return await self.request("GET", "/list-conversation-flows", params=_page_params(page))

    async def list_phone_numbers(self) -> Page:
        return await self.request("GET", "/list-phone-numbers")

    async def list_components(self) -> Page:
        return await self.request("GET", "/list-conversation-flow-components")

    async def list_test_cases(self, engine: RetellLlmEngine | ConversationFlowEngine) -> Page:
        params: dict[str, Any] = {"type": engine.type.value}
        if isinstance(engine, RetellLlmEngine):
            params["llm_id"] = engine.llm_id
        else:
            params["conversation_flow_id"] = engine.conversation_flow_id
        params.update(_version_params(engine.version))
        return await self.request("GET", "/list-test-case-definitions", params=params)

    async def get_voice_agent(self, agent_id: str, version: int | None = None) -> dict[str, Any]:
        return await self.request("GET", f"/get-agent/{agent_id}", params=_version_params(version))

    async def get_chat_agent(self, agent_id: str, version: int | None = None) -> dict[str, Any]:
        return await self.request("GET", f"/get-chat-agent/{agent_id}", params=_version_params(version))

    async def get_llm(self, llm_id: str, version: int | None = None) -> dict[str, Any]:
        return await self.request("GET", f"/get-retell-llm/{llm_id}", params=_version_params(version))

    async def get_conversation_flow(self, flow_id: str, version: int | None = None) -> dict[str, Any]:
        return await self.request("GET", f"/get-conversation-flow/{flow_id}", params=_version_params(version))

    async def get_agent_versions(self, agent_id: str) -> Page:
        return await self.request("GET", f"/get-agent-versions/{agent_id}")

    async def update_voice_agent(self, agent_id: str, data: dict[str, Any]) -> Any:
        return await self.request("PATCH", f"/update-agent/{agent_id}", json=data)

    async def update_chat_agent(self, agent_id: str, data: dict[str, Any]) -> Any:
        return await self.request("PATCH", f"/update-chat-agent/{agent_id}", json=data)

    async def update_llm(self, llm_id: str, data: dict[str, Any]) -> Any:
        return await self.request("PATCH", f"/update-retell-llm/{llm_id}", json=data)

    async def update_conversation_flow(self, flow_id: str, data: dict[str, Any]) -> Any:
        return await self.request("PATCH", f"/update-conversation-flow/{flow_id}", json=data)

    async def update_test_case(self, test_case_id: str, data: dict[str, Any]) -> Any:
        return await self.request("PUT", f"/update-test-case-definition/{test_case_id}", json=data)

    async def update_component(self, component_id: str, data: dict[str, Any]) -> Any:
        return await self.request("PATCH", f"/update-conversation-flow-component/{component_id}", json=data)

    async def update_phone_number(self, phone_number: str, data: dict[str, Any]) -> Any:
        return await self.request("PATCH", f"/update-phone-number/{quote(phone_number, safe='')}", json=data)

    async def publish_voice_agent(self, agent_id: str) -> None:
        await self.request("POST", f"/publish-agent/{agent_id}")

    async def publish_chat_agent(self, agent_id: str) -> None:
        await self.request("POST", f"/publish-chat-agent/{agent_id}")

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_client(
    config: ClientConfig | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RetellClient:
    """Create a Retell client.

    Args:
        config: Client configuration (defaults to ClientConfig.from_env())
        transport: Optional httpx transport (tests pass an httpx.MockTransport)

    Raises:
        ConfigValidationError: If no API key is configured
    """
    config = config or ClientConfig.from_env()
    _log.debug("creating client", api_url=config.api_url)
    return HttpRetellClient(config, transport=transport)
