from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import ipaddress
import os
from pathlib import Path

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

DEFAULT_PORT = 9069
DEFAULT_STORAGE_DIR = "index_storage"
MEMORY_BUDGET_IN_BYTES = 100_000_000
# tantivy refuses smaller per-thread arenas
MIN_MEMORY_BUDGET_IN_BYTES = 15_000_000

_DEFAULT_PORTS = {"http": 80, "https": 443}
_HTTP_URL = TypeAdapter(AnyHttpUrl)


class StartupError(RuntimeError):
    pass


def _to_int(value: str | None, *, default: int, minimum: int) -> int:
    if value is None:
        return default
    parsed = int(value)
    return max(minimum, parsed)


def _to_optional_str(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class Settings:
    storage_dir: str
    port: int
    download_url_prefix: str | None
    log_level: str
    writer_memory_budget: int


@lru_cache
def get_settings() -> Settings:
    return Settings(
        storage_dir=os.getenv("KEYWORD_SEARCH_STORAGE_DIR", DEFAULT_STORAGE_DIR),
        port=_to_int(os.getenv("KEYWORD_SEARCH_PORT"), default=DEFAULT_PORT, minimum=1),
        download_url_prefix=_to_optional_str(os.getenv("KEYWORD_SEARCH_DOWNLOAD_URL_PREFIX")),
        log_level=os.getenv("KEYWORD_SEARCH_LOG_LEVEL", "INFO").upper(),
        writer_memory_budget=_to_int(
            os.getenv("KEYWORD_SEARCH_WRITER_MEMORY_BUDGET"),
            default=MEMORY_BUDGET_IN_BYTES,
            minimum=MIN_MEMORY_BUDGET_IN_BYTES,
        ),
    )


@dataclass(frozen=True)
class BindAddress:
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class DownloadUrlPrefix:
    """Externally reachable base URL used to build index download links."""

    scheme: str
    host: str
    port: int | None = None

    @classmethod
    def parse(cls, value: str) -> DownloadUrlPrefix:
        try:
            url = _HTTP_URL.validate_python(value)
        except ValidationError as exc:
            raise StartupError(
                f"Failed to parse `download_url_prefix` CLI option: {value!r} is not a valid http(s) URL"
            ) from exc

        if not url.host:
            raise StartupError(
                f"Failed to parse `download_url_prefix` CLI option: {value!r} has no host"
            )

        port = url.port
        if port == _DEFAULT_PORTS.get(url.scheme):
            port = None
        return cls(scheme=url.scheme, host=url.host, port=port)

    @classmethod
    def from_bind_address(cls, address: BindAddress) -> DownloadUrlPrefix:
        try:
            ip = ipaddress.ip_address(address.host)
        except ValueError as exc:
            raise StartupError(f"Invalid bind address: {address.host}") from exc

        if ip.version == 6:
            raise StartupError("ipv6 is not supported")

        host = "localhost" if ip.is_unspecified else str(ip)
        return cls.parse(f"http://{host}:{address.port}")

    @property
    def netloc(self) -> str:
        if self.port is None:
            return self.host
        return f"{self.host}:{self.port}"

    def download_url(self, index_name: str) -> str:
        return f"{self.scheme}://{self.netloc}/v1/files/download/{index_name}"

    def __str__(self) -> str:
        return f"{self.scheme}://{self.netloc}"


def resolve_download_url_prefix(
    explicit_prefix: str | None,
    bind_address: BindAddress,
) -> DownloadUrlPrefix:
    if explicit_prefix is not None:
        return DownloadUrlPrefix.parse(explicit_prefix)
    return DownloadUrlPrefix.from_bind_address(bind_address)


def parse_socket_addr(value: str) -> BindAddress:
    """Parse ``HOST:PORT`` (IPv6 hosts in brackets, e.g. ``[::1]:9069``)."""
    host, separator, port_text = value.rpartition(":")
    if not separator or not host or not port_text.isdigit():
        raise StartupError(f"Invalid socket address: {value!r}, expected HOST:PORT")

    port = int(port_text)
    if not 0 < port < 65536:
        raise StartupError(f"Invalid port in socket address: {value!r}")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        ipaddress.ip_address(host)
    except ValueError as exc:
        raise StartupError(f"Invalid IP address in socket address: {value!r}") from exc

    return BindAddress(host=host, port=port)


@dataclass(frozen=True)
class ServerConfig:
    storage_root: Path
    download_url_prefix: DownloadUrlPrefix
    writer_memory_budget: int = MEMORY_BUDGET_IN_BYTES
