"""Configuration and runtime context for Stencil."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from .errors import FilesystemError
from .text import Messages

DEFAULT_ROOT_DIR = Path(os.path.expanduser("~")) / ".stencil"
CONFIG_FILENAME = "config.json"
STORE_FILENAME = "store.json"
CACHE_DIRNAME = "cache"
DEFAULT_ENDPOINT = "https://api.github.com/graphql"
ENV_HOME = "STENCIL_HOME"
ENV_TOKEN = "STENCIL_TOKEN"
GITHUB_TOKEN_ENV = "GITHUB_TOKEN"
PROXY_ENVS: tuple[str, ...] = ("HTTPS_PROXY", "https_proxy", "HTTP_PROXY", "http_proxy")


@dataclass
class Config:
    token: str | None = None
    endpoint: str = DEFAULT_ENDPOINT
    proxy: str | None = None


def resolve_root_dir(path: Path | str | None = None) -> Path:
    """Return the Stencil root directory from an explicit path, the env or the default."""

    if path is not None:
        return Path(path).expanduser().resolve()
    env_home = os.getenv(ENV_HOME)
    if env_home:
        return Path(env_home).expanduser().resolve()
    return DEFAULT_ROOT_DIR


def _coerce(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def load_config(root: Path) -> Config:
    config_file = root / CONFIG_FILENAME
    if not config_file.exists():
        return Config()
    try:
        raw = json.loads(config_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise FilesystemError(
            Messages.ERROR_CONFIG_CORRUPT.format(path=config_file, reason=exc.msg),
            config_file,
        ) from exc
    except OSError as exc:
        raise FilesystemError(
            Messages.ERROR_FILESYSTEM.format(path=config_file, reason=exc.strerror or exc),
            config_file,
        ) from exc
    if not isinstance(raw, dict):
        raw = {}
    return Config(
        token=_coerce(raw.get("token")),
        endpoint=_coerce(raw.get("endpoint")) or DEFAULT_ENDPOINT,
        proxy=_coerce(raw.get("proxy")),
    )


def save_config(config: Config, root: Path) -> None:
    data: Dict[str, Any] = {}
    if config.token:
        data["token"] = config.token
    if config.endpoint and config.endpoint != DEFAULT_ENDPOINT:
        data["endpoint"] = config.endpoint
    if config.proxy:
        data["proxy"] = config.proxy
    config_file = root / CONFIG_FILENAME
    try:
        root.mkdir(parents=True, exist_ok=True)
        config_file.write_text(
            json.dumps(data, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
    except OSError as exc:
        raise FilesystemError(
            Messages.ERROR_FILESYSTEM.format(path=config_file, reason=exc.strerror or exc),
            config_file,
        ) from exc


def set_token(value: str | None, root: Path) -> None:
    config = load_config(root)
    config.token = (value or "").strip() or None
    save_config(config, root)


def resolve_token(configured: str | None) -> str:
    """Return the first available token from config or environment, or an empty string."""

    if configured:
        return configured
    for env_name in (ENV_TOKEN, GITHUB_TOKEN_ENV):
        value = os.getenv(env_name)
        if value:
            return value.strip()
    return ""


def resolve_proxy(configured: str | None) -> str | None:
    if configured:
        return configured
    for env_name in PROXY_ENVS:
        value = os.getenv(env_name)
        if value:
            return value.strip()
    return None


@dataclass(frozen=True, slots=True)
class Context:
    """Settings for one invocation, passed explicitly into each component."""

    root_dir: Path
    config: Config = field(default_factory=Config)

    @classmethod
    def create(cls, root: Path | str | None = None, *, ensure: bool = True) -> "Context":
        root_dir = resolve_root_dir(root)
        if root_dir.exists() and not root_dir.is_dir():
            raise FilesystemError(
                Messages.ERROR_NOT_A_DIRECTORY.format(path=root_dir), root_dir
            )
        context = cls(root_dir=root_dir, config=load_config(root_dir))
        if ensure:
            context.cache_dir.mkdir(parents=True, exist_ok=True)
        return context

    @property
    def cache_dir(self) -> Path:
        return self.root_dir / CACHE_DIRNAME

    @property
    def store_file(self) -> Path:
        return self.root_dir / STORE_FILENAME

    @property
    def config_file(self) -> Path:
        return self.root_dir / CONFIG_FILENAME

    @property
    def endpoint(self) -> str:
        return self.config.endpoint or DEFAULT_ENDPOINT

    @property
    def proxy(self) -> str | None:
        return resolve_proxy(self.config.proxy)

    def token(self) -> str:
        return resolve_token(self.config.token)
