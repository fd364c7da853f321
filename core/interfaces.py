"""Core interfaces and data models for lambda-http-bridge.

This module defines the records exchanged between the Lambda side of the
bridge (invocation events and responses) and the wrapped asynchronous
service (requests and responses), along with the abstract service contract
every wrapped application must implement.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.body import BodyProducer, EmptyBody, Payload, as_body_producer

# A list holds the values of a header sent repeatedly instead of comma-joined.
HeaderValue = Union[str, bytes, List[str]]

MULTI_VALUE_HEADERS = frozenset({"set-cookie"})


class ServiceConfig(BaseModel):
    """Configuration value a service is bound to when it is created.

    Used for per-instance setup only; it never changes between invocations.
    """

    model_config = ConfigDict(extra="forbid")

    host: str = Field(default="127.0.0.1", description="Nominal local address")
    port: int = Field(default=8080, ge=1, le=65535, description="Nominal local port")

    @property
    def local_addr(self) -> str:
        return f"{self.host}:{self.port}"


class InvocationEvent(BaseModel):
    """One HTTP request delivered by the serverless host."""

    method: str = Field(default="GET", description="HTTP method")
    version: str = Field(default="HTTP/1.1", description="HTTP version")
    scheme: Optional[str] = Field(None, description="URI scheme (http/https)")
    authority: Optional[str] = Field(None, description="URI authority (host[:port])")
    path: str = Field(default="/", description="Request path, not percent-decoded")
    query_params: List[Tuple[str, str]] = Field(
        default_factory=list,
        description="Decoded query parameters in original order (keys may repeat)",
    )
    headers: Dict[str, str] = Field(default_factory=dict, description="Request headers")
    body: Optional[Union[str, bytes]] = Field(
        None, description="None (empty), str (text) or bytes (binary)"
    )
    extensions: Dict[str, Any] = Field(
        default_factory=dict,
        description="Source-specific data (path parameters, stage variables, request context)",
    )


class ServiceRequest(BaseModel):
    """Generic request handed to the wrapped service."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    method: str = "GET"
    version: str = "HTTP/1.1"
    uri: str = "/"
    headers: Dict[str, str] = Field(default_factory=dict)
    payload: Payload = Field(default_factory=Payload.empty)


class ServiceResponse(BaseModel):
    """Generic response produced by the wrapped service.

    The body may be given as bytes, str, None, an async iterable of chunks or
    a BodyProducer; it is always stored as a BodyProducer.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: int = Field(default=200, ge=100, le=599)
    headers: Dict[str, HeaderValue] = Field(default_factory=dict)
    body: BodyProducer = Field(default_factory=EmptyBody)

    @field_validator("body", mode="before")
    @classmethod
    def coerce_body(cls, v: Any) -> BodyProducer:
        return as_body_producer(v)


class InvocationResponse(BaseModel):
    """Complete response handed back to the serverless host."""

    status_code: int = Field(..., description="HTTP status code")
    headers: Dict[str, Union[str, List[str]]] = Field(
        default_factory=dict,
        description="Response headers (a list holds the values of a repeated header)",
    )
    body: Union[str, bytes] = Field(default="", description="str (text) or bytes (binary)")

    @property
    def is_binary(self) -> bool:
        return isinstance(self.body, bytes)


class Service(ABC):
    """An initialized asynchronous HTTP service.

    The same instance handles every invocation of an adapter, one at a time.
    """

    @abstractmethod
    async def call(self, request: ServiceRequest) -> ServiceResponse:
        """Handle one request.

        Args:
            request: Normalized request

        Returns:
            The service response

        Raises:
            Exception: Any failure; the adapter renders it into an error response
        """
        pass

    async def close(self) -> None:
        """Release service resources. Optional."""
        pass


class ServiceFactory(ABC):
    """Creates the service instance an adapter will use."""

    @abstractmethod
    async def new_service(self, config: ServiceConfig) -> Service:
        """Create and initialize a service bound to ``config``.

        Raises:
            Exception: If the service cannot be initialized
        """
        pass


RequestHandler = Callable[[ServiceRequest], Awaitable[ServiceResponse]]


class CallableService(Service):
    """Service backed by a plain ``async def handler(request)`` function."""

    def __init__(self, handler: RequestHandler) -> None:
        self.handler = handler

    async def call(self, request: ServiceRequest) -> ServiceResponse:
        return await self.handler(request)


class CallableServiceFactory(ServiceFactory):
    """Factory wrapping a request handler function into a CallableService."""

    def __init__(self, handler: RequestHandler) -> None:
        self.handler = handler

    async def new_service(self, config: ServiceConfig) -> Service:
        return CallableService(self.handler)
