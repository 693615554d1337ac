"""Authenticated, TLS secured gRPC client channels."""

from grpc_auth_channel.aio_channel import Channel, channel, insecure_channel, secure_channel
from grpc_auth_channel.chain import InterceptorChain, interceptors
from grpc_auth_channel.config import Endpoint, TlsConfig
from grpc_auth_channel.exceptions import (
    ChannelAuthError,
    ChannelEstablishmentError,
    InterceptorError,
    InvalidConfigurationError,
    InvalidCredentialError,
)
from grpc_auth_channel.interceptor import (
    APIKeyInterceptor,
    BearerTokenInterceptor,
    Interceptor,
)


__all__ = [
    "APIKeyInterceptor",
    "BearerTokenInterceptor",
    "Channel",
    "channel",
    "ChannelAuthError",
    "ChannelEstablishmentError",
    "Endpoint",
    "insecure_channel",
    "Interceptor",
    "InterceptorChain",
    "InterceptorError",
    "interceptors",
    "InvalidConfigurationError",
    "InvalidCredentialError",
    "secure_channel",
    "TlsConfig",
]
