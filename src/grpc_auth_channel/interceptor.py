"""Interceptors that attach credentials to outgoing call metadata."""

import abc
import inspect
import logging
import re
from typing import Awaitable, Callable, Iterable, Optional, Tuple, Union

from grpc.aio import Metadata

from grpc_auth_channel.exceptions import (
    InterceptorError,
    InvalidConfigurationError,
    InvalidCredentialError,
)


logger = logging.getLogger(__name__)

X_API_KEY = "x-api-key"
AUTHORIZATION = "authorization"

_METADATA_KEY = re.compile(r"[0-9a-z_.\-]+")
_METADATA_VALUE = re.compile(r"[\x20-\x7e]+")

RawMetadata = Union[None, Metadata, Iterable[Tuple[str, str]]]
TokenProvider = Callable[[], Union[str, Awaitable[str]]]


def copy_metadata(metadata: RawMetadata) -> Metadata:
    """Returns a new Metadata holding the same entries as metadata."""
    if metadata is None:
        return Metadata()
    return Metadata(*metadata)


def validate_metadata_key(key: str) -> str:
    if not isinstance(key, str) or not _METADATA_KEY.fullmatch(key):
        raise InvalidConfigurationError(f"Invalid metadata key: {key!r}")
    if key.startswith("grpc-"):
        raise InvalidConfigurationError(f"Metadata key {key!r} is reserved by gRPC")
    if key.endswith("-bin"):
        raise InvalidConfigurationError(f"Metadata key {key!r} is for binary values")
    return key


def is_ascii_value(value: str) -> bool:
    """Whether value may be sent as an ASCII metadata value."""
    return isinstance(value, str) and _METADATA_VALUE.fullmatch(value) is not None


class Interceptor(abc.ABC):
    """Decorates the metadata of every outgoing call.

    Implementations only add or overwrite the entries they own and must not
    keep per-call state: the same instance runs concurrently for every call
    made through a channel.
    """

    @abc.abstractmethod
    async def intercept(self, metadata: Metadata) -> Metadata:
        """Decorate the metadata of one outgoing call.

        Args:
          metadata: The call's metadata. It is a private copy for this call,
            so it may be modified in place.

        Returns:
          The metadata to send. Usually the same object that was passed in.

        Raises:
          InterceptorError: The credential could not be resolved or applied.
            The call is aborted before it is sent.
        """
        return metadata  # pragma: no cover

    @property
    def name(self) -> str:
        return type(self).__name__


class APIKeyInterceptor(Interceptor):
    """Sends a static API key in a metadata field, x-api-key by default."""

    def __init__(self, api_key: str, header_name: str = X_API_KEY):
        if not isinstance(api_key, str) or not api_key:
            raise InvalidCredentialError("API key", "must be a non-empty string")
        if not is_ascii_value(api_key):
            raise InvalidCredentialError("API key", "must be printable ASCII")
        self._api_key = api_key
        self._header_name = validate_metadata_key(header_name)

    @property
    def header_name(self) -> str:
        return self._header_name

    async def intercept(self, metadata: Metadata) -> Metadata:
        metadata.set_all(self._header_name, [self._api_key])
        return metadata

    def __repr__(self):
        return f"{self.name}(header_name={self._header_name!r})"


class BearerTokenInterceptor(Interceptor):
    """Sends "authorization: Bearer <token>".

    The token is either a fixed string or a provider called once per call.
    A provider may return the token or an awaitable resolving to it, so
    refreshing tokens over the network is supported. Providers are shared by
    all calls on a channel and must do their own locking if they cache.

    Provider failures, empty tokens, and tokens that are not printable ASCII
    all fail the call with InterceptorError; there is no separate
    classification for expired tokens.
    """

    def __init__(self, token: Union[str, TokenProvider]):
        self._token: Optional[str] = None
        self._provider: Optional[TokenProvider] = None
        if isinstance(token, str):
            if not token:
                raise InvalidCredentialError("bearer token", "must be a non-empty string")
            if not is_ascii_value(token):
                raise InvalidCredentialError("bearer token", "must be printable ASCII")
            self._token = token
        elif callable(token):
            self._provider = token
        else:
            raise InvalidCredentialError(
                "bearer token", "must be a string or a callable returning one")

    @property
    def dynamic(self) -> bool:
        return self._provider is not None

    async def resolve_token(self) -> str:
        """Returns the token to send, calling the provider if there is one."""
        if self._provider is None:
            return self._token
        try:
            token = self._provider()
            if inspect.isawaitable(token):
                token = await token
        except Exception as e:
            logger.error("%s: token provider failed with %s", self.name, type(e).__name__)
            raise InterceptorError(self.name, "bearer token", "token provider failed") from e
        if not isinstance(token, str) or not token:
            raise InterceptorError(self.name, "bearer token", "token provider returned no token")
        if not is_ascii_value(token):
            raise InterceptorError(self.name, "bearer token", "token is not printable ASCII")
        return token

    async def intercept(self, metadata: Metadata) -> Metadata:
        token = await self.resolve_token()
        metadata.set_all(AUTHORIZATION, [f"Bearer {token}"])
        return metadata

    def __repr__(self):
        source = "provider" if self.dynamic else "static"
        return f"{self.name}({source})"
