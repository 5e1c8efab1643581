"""Persistence of the frpc configuration file.

The file is a narrow, line-oriented subset of TOML: a header of server
identity assignments followed by one ``[[proxies]]`` block per mapping.
Parsing is lenient. Malformed values fall back to defaults and are
reported as :class:`ParseWarning` records instead of failing the load,
so a partially hand-edited file still yields a usable configuration.
"""

import asyncio
import json
import os
import re
import tempfile
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field

from .common.exceptions import ConfigIOError
from .common.locks import timed_lock
from .common.logging import get_logger
from .common.utils import parse_port
from .models import PortMapping, Protocol, TunnelConfig
from .settings import SupervisorSettings

logger = get_logger(__name__)

PROXY_MARKER = "[[proxies]]"

_QUOTED = re.compile(r'"((?:[^"\\]|\\.)*)"')


@dataclass(frozen=True)
class ParseWarning:
    """A value that could not be parsed and was replaced by a default."""

    line: int
    key: str
    value: str
    message: str


@dataclass
class ParseResult:
    """Parsed configuration plus the degradations met while parsing it."""

    config: TunnelConfig
    warnings: list[ParseWarning] = field(default_factory=list)


def _unescape(inner: str) -> str:
    try:
        return str(json.loads(f'"{inner}"'))
    except ValueError:
        return inner


def _parse_string(raw: str) -> str:
    match = _QUOTED.match(raw)
    if match:
        return _unescape(match.group(1))
    return raw.split("#", 1)[0].strip().strip('"')


def _parse_scalar(raw: str) -> str:
    return raw.split("#", 1)[0].strip()


def _parse_list(raw: str) -> list[str]:
    body = raw.strip()
    if body.startswith("["):
        body = body[1:]
        if "]" in body:
            body = body[: body.rfind("]")]
    items = [_unescape(m) for m in _QUOTED.findall(body)]
    if not items:
        items = [part.strip().strip('"') for part in body.split(",")]
    return [item for item in items if item]


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


class ConfigStore:
    """Load and save the frpc configuration file."""

    def __init__(self, settings: SupervisorSettings):
        self.settings = settings
        self.path = settings.config_path

    def default_config(self) -> TunnelConfig:
        """Configuration used when no file exists yet."""
        return TunnelConfig(
            server_addr=self.settings.server_addr,
            server_port=self.settings.server_port,
        )

    def load(self) -> TunnelConfig:
        """Load the configuration, falling back to defaults when absent.

        Raises:
            ConfigIOError: If the file exists but cannot be read
        """
        return self.load_with_diagnostics().config

    def load_with_diagnostics(self) -> ParseResult:
        """Load the configuration and report every degraded value."""
        if not self.path.exists():
            logger.debug("Config file not found, using defaults", path=str(self.path))
            return ParseResult(config=self.default_config())

        try:
            content = self.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise ConfigIOError(f"Failed to read config file {self.path}: {e}") from e

        result = self.parse(content)
        for warning in result.warnings:
            logger.warning(
                "Config value degraded to default",
                path=str(self.path),
                line=warning.line,
                key=warning.key,
                value=warning.value,
                reason=warning.message,
            )
        return result

    def parse(self, text: str) -> ParseResult:
        """Parse configuration text.

        Unknown keys and tables are skipped. Header keys only count outside
        ``[[proxies]]`` blocks.
        """
        config = self.default_config()
        warnings: list[ParseWarning] = []
        blocks: list[dict[str, tuple[int, str]]] = []
        current: dict[str, tuple[int, str]] | None = None
        in_other_table = False

        for lineno, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue

            if line.startswith(PROXY_MARKER):
                if current is not None:
                    blocks.append(current)
                current = {PROXY_MARKER: (lineno, "")}
                in_other_table = False
                continue

            if line.startswith("["):
                if current is not None:
                    blocks.append(current)
                    current = None
                in_other_table = True
                continue

            key, sep, value = line.partition("=")
            if not sep:
                continue
            key = key.strip()
            value = value.strip()

            if current is not None:
                current[key] = (lineno, value)
            elif not in_other_table:
                self._apply_header(config, key, value, lineno, warnings)

        if current is not None:
            blocks.append(current)

        for block in blocks:
            mapping = self._build_mapping(block, warnings)
            if mapping is None:
                continue
            if mapping.name in config.mappings:
                warnings.append(
                    ParseWarning(
                        line=block[PROXY_MARKER][0],
                        key="name",
                        value=mapping.name,
                        message="duplicate mapping name, later block wins",
                    )
                )
            config.mappings[mapping.name] = mapping

        return ParseResult(config=config, warnings=warnings)

    def _apply_header(
        self,
        config: TunnelConfig,
        key: str,
        value: str,
        lineno: int,
        warnings: list[ParseWarning],
    ) -> None:
        if key == "serverAddr":
            addr = _parse_string(value)
            if addr:
                config.server_addr = addr
            else:
                warnings.append(
                    ParseWarning(lineno, key, value, "empty server address")
                )
        elif key == "serverPort":
            port = parse_port(_parse_scalar(value))
            if port:
                config.server_port = port
            else:
                warnings.append(
                    ParseWarning(
                        lineno,
                        key,
                        value,
                        f"invalid port, using {self.settings.server_port}",
                    )
                )
        elif key == "auth.token":
            config.token = _parse_string(value)
        elif key == "user":
            config.user = _parse_string(value)

    def _build_mapping(
        self, block: dict[str, tuple[int, str]], warnings: list[ParseWarning]
    ) -> PortMapping | None:
        block_line = block[PROXY_MARKER][0]

        name = _parse_string(block["name"][1]) if "name" in block else ""
        if not name:
            warnings.append(
                ParseWarning(block_line, "name", "", "proxy block without a name")
            )
            return None

        protocol = Protocol(self.settings.default_protocol)
        if "type" in block:
            lineno, raw = block["type"]
            try:
                protocol = Protocol(_parse_string(raw).lower())
            except ValueError:
                warnings.append(
                    ParseWarning(
                        lineno, "type", raw, f"unknown type, using {protocol.value}"
                    )
                )

        ports: dict[str, int] = {}
        for key in ("localPort", "remotePort"):
            ports[key] = 0
            if key not in block:
                continue
            lineno, raw = block[key]
            port = parse_port(_parse_scalar(raw))
            if port is None:
                warnings.append(ParseWarning(lineno, key, raw, "invalid port, using 0"))
            else:
                ports[key] = port

        local_ip = self.settings.local_ip
        if "localIP" in block:
            local_ip = _parse_string(block["localIP"][1]) or local_ip

        subdomain = None
        if "subdomain" in block:
            subdomain = _parse_string(block["subdomain"][1])

        custom_domains = None
        if "customDomains" in block:
            custom_domains = _parse_list(block["customDomains"][1])

        return PortMapping(
            name=name,
            local_ip=local_ip,
            local_port=ports["localPort"],
            remote_port=ports["remotePort"],
            protocol=protocol,
            custom_domains=custom_domains,
            subdomain=subdomain,
        )

    def render(self, config: TunnelConfig) -> str:
        """Serialize ``config`` in the fixed field order frpc expects."""
        lines = [
            f"serverAddr = {_quote(config.server_addr)}",
            f"serverPort = {config.server_port}",
        ]
        if config.token:
            lines.append(f"auth.token = {_quote(config.token)}")
        if config.user:
            lines.append(f"user = {_quote(config.user)}")
        lines.append("")

        for mapping in config.mappings.values():
            lines.append(PROXY_MARKER)
            lines.append(f"name = {_quote(mapping.name)}")
            lines.append(f"type = {_quote(mapping.protocol.value)}")
            lines.append(f"localIP = {_quote(mapping.local_ip)}")
            lines.append(f"localPort = {mapping.local_port}")
            lines.append(f"remotePort = {mapping.remote_port}")
            if mapping.subdomain is not None:
                lines.append(f"subdomain = {_quote(mapping.subdomain)}")
            if mapping.custom_domains is not None:
                domains = ", ".join(_quote(d) for d in mapping.custom_domains)
                lines.append(f"customDomains = [{domains}]")
            lines.append("")

        return "\n".join(lines) + "\n"

    def save(self, config: TunnelConfig) -> None:
        """Write ``config`` to disk, replacing the previous file atomically.

        Raises:
            ConfigIOError: If the directory or file cannot be written
        """
        content = self.render(config)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=".frpc_", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                os.replace(temp_path, self.path)
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise
        except OSError as e:
            raise ConfigIOError(f"Failed to write config file {self.path}: {e}") from e

        logger.info(
            "Configuration saved",
            path=str(self.path),
            mappings=len(config.mappings),
        )


class ConfigCache:
    """Shared in-memory copy of the last persisted configuration.

    ``get`` and ``set`` must be called while holding :meth:`locked`.
    """

    def __init__(self, lock_timeout: float | None = None):
        self._config: TunnelConfig | None = None
        self._lock = asyncio.Lock()
        self._lock_timeout = lock_timeout

    def locked(self) -> AbstractAsyncContextManager[None]:
        """Async context manager guarding the cached configuration."""
        return timed_lock(self._lock, self._lock_timeout, "config")

    def get(self) -> TunnelConfig | None:
        if self._config is None:
            return None
        return self._config.model_copy(deep=True)

    def set(self, config: TunnelConfig) -> None:
        self._config = config.model_copy(deep=True)
