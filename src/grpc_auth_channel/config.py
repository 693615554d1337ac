"""TLS and endpoint settings consumed by the channel factory."""

import dataclasses
import ipaddress
from pathlib import Path
from typing import List, Optional, Tuple, Union
from urllib.parse import urlsplit

import grpc

from grpc_auth_channel.exceptions import InvalidConfigurationError


DEFAULT_PORTS = {"https": 443, "http": 80}

PathLike = Union[str, Path]


def _read_pem(path: Optional[PathLike], what: str) -> Optional[bytes]:
    if path is None:
        return None
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise InvalidConfigurationError(f"Cannot read {what} from {path}: {e.strerror}") from e
    if not data.strip():
        raise InvalidConfigurationError(f"{what} file {path} is empty")
    return data


def _is_ipv6(host: str) -> bool:
    try:
        return ipaddress.ip_address(host).version == 6
    except ValueError:
        return False


@dataclasses.dataclass(frozen=True)
class TlsConfig:
    """How to validate the server and, optionally, authenticate the client.

    Args:
      ca_certificate: PEM encoded trust roots. None uses the roots bundled
        with gRPC.
      client_certificate: PEM encoded client certificate chain for mutual TLS.
      client_key: PEM encoded private key matching client_certificate.
      domain_name: Overrides the name used to verify the server certificate.
    """

    ca_certificate: Optional[bytes] = None
    client_certificate: Optional[bytes] = None
    client_key: Optional[bytes] = dataclasses.field(default=None, repr=False)
    domain_name: Optional[str] = None

    def __post_init__(self):
        for name in ("ca_certificate", "client_certificate", "client_key"):
            value = getattr(self, name)
            if value is None:
                continue
            if not isinstance(value, bytes):
                raise InvalidConfigurationError(f"{name} must be PEM encoded bytes")
            if not value.strip():
                raise InvalidConfigurationError(f"{name} is empty")
        if (self.client_certificate is None) != (self.client_key is None):
            raise InvalidConfigurationError(
                "client_certificate and client_key must be given together")
        if self.domain_name is not None and (
                not isinstance(self.domain_name, str) or not self.domain_name.strip()):
            raise InvalidConfigurationError("domain_name must be a non-empty string")

    @classmethod
    def from_files(cls,
                   ca_certificate: Optional[PathLike] = None,
                   client_certificate: Optional[PathLike] = None,
                   client_key: Optional[PathLike] = None,
                   domain_name: Optional[str] = None) -> "TlsConfig":
        """Builds a TlsConfig from PEM files on disk."""
        return cls(
            ca_certificate=_read_pem(ca_certificate, "CA certificate"),
            client_certificate=_read_pem(client_certificate, "client certificate"),
            client_key=_read_pem(client_key, "client key"),
            domain_name=domain_name,
        )

    @property
    def mutual(self) -> bool:
        return self.client_certificate is not None

    def credentials(self) -> grpc.ChannelCredentials:
        return grpc.ssl_channel_credentials(
            root_certificates=self.ca_certificate,
            private_key=self.client_key,
            certificate_chain=self.client_certificate,
        )

    def channel_options(self) -> List[Tuple[str, str]]:
        if self.domain_name is None:
            return []
        return [("grpc.ssl_target_name_override", self.domain_name)]


@dataclasses.dataclass(frozen=True)
class Endpoint:
    """A validated target address plus the transport settings for it.

    Args:
      host: DNS name or IP address of the server.
      port: TCP port, 1 to 65535.
      scheme: "https" or "http". Only used to pick a default port; the
        channel factory only accepts "https" since it always builds TLS.
      keep_alive_while_idle: Send keepalive pings even without active calls.
      keep_alive_interval: Seconds between HTTP/2 keepalive pings, None to
        disable. These are HTTP/2 PINGs, not TCP keepalive, which grpcio
        does not expose as a channel argument.
      connect_timeout: Seconds to wait for the initial connection, None to
        wait forever.
      lazy: Return the channel without connecting; the connection is made on
        the first call.
      user_agent: Prepended to the gRPC user agent string.
    """

    host: str
    port: int
    scheme: str = "https"
    keep_alive_while_idle: bool = True
    keep_alive_interval: Optional[float] = 60.0
    connect_timeout: Optional[float] = 10.0
    lazy: bool = False
    user_agent: Optional[str] = None

    def __post_init__(self):
        if self.scheme not in DEFAULT_PORTS:
            raise InvalidConfigurationError(f"Unsupported scheme: {self.scheme!r}")
        if not isinstance(self.host, str) or not self.host:
            raise InvalidConfigurationError("Endpoint host is empty")
        if any(c.isspace() or c in "/?#@" for c in self.host):
            raise InvalidConfigurationError(f"Invalid endpoint host: {self.host!r}")
        if ":" in self.host and not _is_ipv6(self.host):
            raise InvalidConfigurationError(
                f"Endpoint host {self.host!r} must not contain a port")
        if isinstance(self.port, bool) or not isinstance(self.port, int) \
                or not 0 < self.port < 65536:
            raise InvalidConfigurationError(f"Invalid endpoint port: {self.port!r}")
        if self.keep_alive_interval is not None and self.keep_alive_interval <= 0:
            raise InvalidConfigurationError("keep_alive_interval must be positive")
        if self.connect_timeout is not None and self.connect_timeout <= 0:
            raise InvalidConfigurationError("connect_timeout must be positive")

    @classmethod
    def parse(cls, uri: str, **settings) -> "Endpoint":
        """Parses "scheme://host[:port]" into an Endpoint.

        Keyword arguments are passed through as endpoint settings.
        """
        if not isinstance(uri, str) or not uri.strip():
            raise InvalidConfigurationError("Endpoint URI is empty")
        try:
            parts = urlsplit(uri.strip())
        except ValueError as e:
            raise InvalidConfigurationError(f"Malformed endpoint URI: {uri!r}") from e
        if parts.scheme not in DEFAULT_PORTS:
            raise InvalidConfigurationError(f"Unsupported scheme in endpoint URI: {uri!r}")
        if parts.path not in ("", "/") or parts.query or parts.fragment:
            raise InvalidConfigurationError(f"Endpoint URI must not have a path: {uri!r}")
        if parts.username or parts.password:
            raise InvalidConfigurationError("Endpoint URI must not carry user info")
        if "[" in parts.netloc and not _is_ipv6(parts.hostname or ""):
            raise InvalidConfigurationError(f"Bracketed host is not an IPv6 address: {uri!r}")
        try:
            port = parts.port
        except ValueError as e:
            raise InvalidConfigurationError(f"Invalid port in endpoint URI: {uri!r}") from e
        return cls(
            host=parts.hostname or "",
            port=DEFAULT_PORTS[parts.scheme] if port is None else port,
            scheme=parts.scheme,
            **settings,
        )

    @property
    def target(self) -> str:
        """The host:port string handed to gRPC."""
        if _is_ipv6(self.host):
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    def channel_options(self) -> List[Tuple[str, Union[str, int]]]:
        options = [
            ("grpc.keepalive_permit_without_calls", int(self.keep_alive_while_idle)),
        ]
        if self.keep_alive_interval is not None:
            options.append(("grpc.keepalive_time_ms", int(self.keep_alive_interval * 1000)))
        if self.user_agent:
            options.append(("grpc.primary_user_agent", self.user_agent))
        return options

    def __str__(self):
        return f"{self.scheme}://{self.target}"
