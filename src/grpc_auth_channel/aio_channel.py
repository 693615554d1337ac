import asyncio
import logging
from typing import Optional, Sequence, Union

import grpc
import grpc.aio
from grpc._typing import ChannelArgumentType
from grpc.aio import (
    ClientInterceptor,
    StreamStreamClientInterceptor,
    StreamUnaryClientInterceptor,
    UnaryStreamClientInterceptor,
    UnaryUnaryClientInterceptor,
)

from grpc_auth_channel.chain import InterceptorChain
from grpc_auth_channel.config import Endpoint, TlsConfig
from grpc_auth_channel.exceptions import ChannelEstablishmentError, InvalidConfigurationError
from grpc_auth_channel.interceptor import Interceptor


logger = logging.getLogger(__name__)

_VALID_CLASSES = (UnaryUnaryClientInterceptor, UnaryStreamClientInterceptor,
                  StreamUnaryClientInterceptor, StreamStreamClientInterceptor)


class Channel(grpc.aio._channel.Channel):
    """An aio Channel that registers interceptors for every call type.

    grpc.aio.Channel files an interceptor under the first call type it
    implements only. This one adds it to each call type it implements, so a
    single InterceptorChain decorates unary and streaming calls alike.
    """

    def __init__(self, target: str, options: ChannelArgumentType,
                 credentials: Optional[grpc.ChannelCredentials],
                 compression: Optional[grpc.Compression],
                 interceptors: Optional[Sequence[ClientInterceptor]]):
        """Constructor.

        Args:
          target: The target to which to connect.
          options: Configuration options for the channel.
          credentials: A cygrpc.ChannelCredentials or None.
          compression: An optional value indicating the compression method to be
            used over the lifetime of the channel.
          interceptors: An optional list of interceptors that would be used for
            intercepting any RPC executed with that channel.
        """
        interceptors = list(interceptors or ())
        for interceptor in interceptors:
            if not isinstance(interceptor, _VALID_CLASSES):
                msg = ' or '.join(x.__name__ for x in _VALID_CLASSES)
                raise ValueError(
                    f"Interceptor {interceptor} must be {msg}")

        super().__init__(target, options, credentials, compression, None)

        for interceptor in interceptors:
            if isinstance(interceptor, UnaryUnaryClientInterceptor):
                self._unary_unary_interceptors.append(interceptor)
            if isinstance(interceptor, UnaryStreamClientInterceptor):
                self._unary_stream_interceptors.append(interceptor)
            if isinstance(interceptor, StreamUnaryClientInterceptor):
                self._stream_unary_interceptors.append(interceptor)
            if isinstance(interceptor, StreamStreamClientInterceptor):
                self._stream_stream_interceptors.append(interceptor)


def insecure_channel(
        target: str,
        options: Optional[ChannelArgumentType] = None,
        compression: Optional[grpc.Compression] = None,
        interceptors: Optional[Sequence[ClientInterceptor]] = None) -> Channel:
    """Creates an insecure asynchronous Channel to a server.

    Meant for local development and tests. Credentials sent over an
    insecure channel travel in plain text.

    Args:
      target: The server address
      options: An optional list of key-value pairs (:term:`channel_arguments`
        in gRPC Core runtime) to configure the channel.
      compression: An optional value indicating the compression method to be
        used over the lifetime of the channel.
      interceptors: An optional sequence of interceptors that will be executed for
        any call executed with this channel.

    Returns:
      A Channel.
    """
    return Channel(target, () if options is None else options, None,
                   compression, interceptors)


def secure_channel(target: str,
                   credentials: grpc.ChannelCredentials,
                   options: Optional[ChannelArgumentType] = None,
                   compression: Optional[grpc.Compression] = None,
                   interceptors: Optional[Sequence[ClientInterceptor]] = None) -> Channel:
    """Creates a secure asynchronous Channel to a server.

    Args:
      target: The server address.
      credentials: A ChannelCredentials instance.
      options: An optional list of key-value pairs (:term:`channel_arguments`
        in gRPC Core runtime) to configure the channel.
      compression: An optional value indicating the compression method to be
        used over the lifetime of the channel.
      interceptors: An optional sequence of interceptors that will be executed for
        any call executed with this channel.

    Returns:
      A Channel.
    """
    return Channel(target, () if options is None else options,
                   credentials._credentials, compression, interceptors)


async def wait_until_ready(channel: grpc.aio.Channel, target: str):
    """Connects channel and waits for READY.

    Raises:
      ChannelEstablishmentError: The connection attempt failed or the channel
        was shut down.
    """
    state = channel.get_state(try_to_connect=True)
    while state != grpc.ChannelConnectivity.READY:
        if state == grpc.ChannelConnectivity.TRANSIENT_FAILURE:
            raise ChannelEstablishmentError(
                target, "connection attempt failed")
        if state == grpc.ChannelConnectivity.SHUTDOWN:
            raise ChannelEstablishmentError(target, "channel was shut down")
        await channel.wait_for_state_change(state)
        state = channel.get_state(try_to_connect=True)


def _as_chain(interceptors) -> Optional[InterceptorChain]:
    if interceptors is None or isinstance(interceptors, InterceptorChain):
        return interceptors
    if isinstance(interceptors, Interceptor):
        return InterceptorChain((interceptors,))
    return InterceptorChain(interceptors)


async def channel(
        tls: TlsConfig,
        endpoint: Union[Endpoint, str],
        interceptors: Union[None, InterceptorChain, Sequence[Interceptor]] = None) -> Channel:
    """Creates a TLS Channel to endpoint, optionally bound to interceptors.

    Unless endpoint.lazy is set, the channel is connected before it is
    returned. If that fails or the caller cancels, the channel is closed and
    nothing is left behind.

    Args:
      tls: Trust roots, client certificate and server name override.
      endpoint: An Endpoint or an endpoint URI such as "https://host:443".
      interceptors: An InterceptorChain or a sequence of Interceptors to run
        on every call made through the channel.

    Returns:
      A Channel.

    Raises:
      InvalidConfigurationError: tls or endpoint is malformed. Nothing was
        attempted.
      ChannelEstablishmentError: The transport could not be built or the
        initial connection failed.
    """
    if not isinstance(tls, TlsConfig):
        raise InvalidConfigurationError(f"Expected TlsConfig, got {type(tls).__name__}")
    if isinstance(endpoint, str):
        endpoint = Endpoint.parse(endpoint)
    if not isinstance(endpoint, Endpoint):
        raise InvalidConfigurationError(f"Expected Endpoint, got {type(endpoint).__name__}")
    if endpoint.scheme != "https":
        raise InvalidConfigurationError(
            f"{endpoint} is not an https endpoint; use insecure_channel for plaintext")
    chain = _as_chain(interceptors)

    target = endpoint.target
    try:
        credentials = tls.credentials()
    except Exception as e:
        raise ChannelEstablishmentError(
            target, f"cannot build TLS credentials ({type(e).__name__})") from e

    options = endpoint.channel_options() + tls.channel_options()
    logger.debug("Creating channel to %s (mutual TLS: %s, interceptors: %d)",
                 endpoint, tls.mutual, 0 if chain is None else len(chain))
    result = secure_channel(target, credentials, options=options,
                            interceptors=None if chain is None else [chain])
    if endpoint.lazy:
        return result

    try:
        await asyncio.wait_for(wait_until_ready(result, target), endpoint.connect_timeout)
    except asyncio.TimeoutError as e:
        await result.close()
        logger.warning("Timed out connecting to %s after %ss", endpoint, endpoint.connect_timeout)
        raise ChannelEstablishmentError(
            target, f"timed out after {endpoint.connect_timeout}s") from e
    except ChannelEstablishmentError as e:
        await result.close()
        logger.warning("Could not connect to %s: %s", endpoint, e.reason)
        raise
    except BaseException:
        await result.close()
        raise
    logger.debug("Channel to %s is ready", endpoint)
    return result
