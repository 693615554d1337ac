"""Exceptions raised while building authenticated gRPC channels.

All exceptions inherit from ChannelAuthError so callers can catch every
failure of this package with a single except clause. None of them carry
credential values in their messages.
"""

from typing import Optional


class ChannelAuthError(Exception):
    """Base exception for all grpc_auth_channel errors."""


class InvalidConfigurationError(ChannelAuthError, ValueError):
    """Malformed TLS configuration or endpoint.

    Raised before any I/O takes place. Fix the configuration before retrying.
    """


class ChannelEstablishmentError(ChannelAuthError):
    """The transport could not be built or the initial connection failed.

    Transient by nature; the caller decides whether to retry.
    """

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Could not establish channel to {target}: {reason}")


class InvalidCredentialError(ChannelAuthError, ValueError):
    """A credential is structurally invalid at interceptor construction."""

    def __init__(self, credential: str, reason: str):
        self.credential = credential
        self.reason = reason
        super().__init__(f"Invalid {credential}: {reason}")


class InterceptorError(ChannelAuthError):
    """A credential could not be resolved or applied to an outgoing call.

    Aborts the single RPC attempt that triggered it. The underlying failure,
    if any, is available as ``__cause__``.
    """

    def __init__(self, interceptor: str, credential: str, reason: Optional[str] = None):
        self.interceptor = interceptor
        self.credential = credential
        self.reason = reason
        message = f"{interceptor} could not apply {credential}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
