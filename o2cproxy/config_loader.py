"""Configuration loading from the environment, a .env file and optional YAML.

Precedence, highest first: process environment, ``.env`` values, the YAML
file named by ``O2C_CONFIG``, built-in defaults. Model mappings come from
``--model`` arguments, else from the YAML ``models`` list, else the default.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

import yaml
from dotenv import dotenv_values

from .core.backend import Backend
from .core.exceptions import ConfigurationError, ModelNotAllowedError
from .messages.translator import DEFAULT_MODEL_LIMITS, ModelLimits

logger = logging.getLogger("o2c-proxy")

DEFAULT_MODEL_NAME = "gpt-5.2-codex"
DEFAULT_PROVIDER = "openai"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_PORT = 3000
DEFAULT_BIND_ADDRESS = "127.0.0.1"
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_STREAM_TIMEOUT_MS = 600000
DEFAULT_MAX_RETRIES = 2
DEFAULT_ENV_FILE = ".env"

CONFIG_PATH_ENV = "O2C_CONFIG"
ENV_FILE_ENV = "O2C_ENV_FILE"


@dataclass(frozen=True)
class ModelMapping:
    """Pairs the backend model name with the name clients use."""

    upstream: str
    downstream: str

    def as_dict(self) -> dict[str, str]:
        return {"upstream": self.upstream, "downstream": self.downstream}


@dataclass
class ProxyConfig:
    """Resolved proxy configuration."""

    provider: str = DEFAULT_PROVIDER
    openai_key: str = ""
    openrouter_key: str = ""
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    openrouter_base_url: str = DEFAULT_OPENROUTER_BASE_URL
    model_mappings: list[ModelMapping] = field(
        default_factory=lambda: [ModelMapping(DEFAULT_MODEL_NAME, DEFAULT_MODEL_NAME)]
    )
    model_limits: dict[str, ModelLimits] = field(default_factory=lambda: dict(DEFAULT_MODEL_LIMITS))
    port: int = DEFAULT_PORT
    bind_address: str = DEFAULT_BIND_ADDRESS
    verbose_logging: bool = False
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    stream_timeout_ms: int = DEFAULT_STREAM_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    strict_model_mapping: bool = False
    skip_startup_checks: bool = False

    @property
    def default_mapping(self) -> ModelMapping:
        return self.model_mappings[0]

    @property
    def default_upstream_model(self) -> str:
        return self.default_mapping.upstream

    @property
    def default_downstream_model(self) -> str:
        return self.default_mapping.downstream

    @property
    def allowed_models(self) -> list[str]:
        return [mapping.downstream for mapping in self.model_mappings]

    def get_model_mapping(self, downstream_model: str) -> Optional[ModelMapping]:
        for mapping in self.model_mappings:
            if mapping.downstream == downstream_model:
                return mapping
        return None

    def resolve_model(self, requested: Optional[str]) -> ModelMapping:
        """Mapping for a client model name.

        Unknown names fall back to the default mapping unless strict mapping
        is enabled.

        Raises:
            ModelNotAllowedError: If strict mapping is on and the name is unknown.
        """
        downstream_model = requested or self.default_downstream_model
        mapping = self.get_model_mapping(downstream_model)
        if mapping is not None:
            return mapping
        if self.strict_model_mapping:
            raise ModelNotAllowedError(downstream_model, self.allowed_models)
        logger.debug(
            f"Model '{downstream_model}' has no mapping; using default '{self.default_downstream_model}'"
        )
        return self.default_mapping

    def build_backend(self) -> Backend:
        """Backend for the selected provider."""
        if self.provider == "openrouter":
            base_url, api_key = self.openrouter_base_url, self.openrouter_key
        else:
            base_url, api_key = self.openai_base_url, self.openai_key
        return Backend(
            name=self.provider,
            base_url=base_url,
            api_key=api_key,
            timeout=self.timeout_ms / 1000,
            stream_timeout=self.stream_timeout_ms / 1000,
            max_retries=self.max_retries,
        )

    def public_config(self) -> dict[str, Any]:
        """Configuration view without credentials."""
        return {
            "provider": self.provider,
            "model_mappings": [mapping.as_dict() for mapping in self.model_mappings],
            "default_upstream_model": self.default_upstream_model,
            "default_downstream_model": self.default_downstream_model,
            "openai_base_url": self.openai_base_url,
            "openrouter_base_url": self.openrouter_base_url,
            "port": self.port,
            "bind_address": self.bind_address,
            "has_upstream_api_key": self.build_backend().has_api_key,
            "verbose_logging": self.verbose_logging,
        }


def parse_model_arg(model_arg: str) -> ModelMapping:
    """Parse ``upstream:downstream``.

    The first unescaped ``:`` separates the names and ``\\`` escapes the next
    character. A trailing lone ``\\`` is kept. Without a separator both names
    are equal.
    """
    upstream = ""
    downstream: Optional[str] = None
    escaped = False

    for char in model_arg:
        if escaped:
            if downstream is None:
                upstream += char
            else:
                downstream += char
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == ":" and downstream is None:
            downstream = ""
            continue
        if downstream is None:
            upstream += char
        else:
            downstream += char

    if escaped:
        if downstream is None:
            upstream += "\\"
        else:
            downstream += "\\"

    if downstream is None:
        return ModelMapping(upstream, upstream)
    return ModelMapping(upstream, downstream)


def collect_model_args(args: Sequence[str]) -> list[str]:
    """Collect ``--model``/``-m`` values from raw command-line arguments."""
    model_args: list[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("--model", "-m"):
            if i + 1 < len(args) and args[i + 1]:
                model_args.append(args[i + 1])
                i += 1
        elif arg.startswith("--model="):
            model_args.append(arg.split("=", 1)[1])
        elif arg.startswith("-m="):
            model_args.append(arg.split("=", 1)[1])
        i += 1
    return model_args


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load environment values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    raw_values = dotenv_values(env_path)
    return {key: value for key, value in raw_values.items() if value is not None}


def load_yaml_config(path: str, env_values: Mapping[str, str]) -> dict[str, Any]:
    """Load a YAML configuration file with ``${VAR}`` substitution."""
    config_path = Path(path)
    logger.info(f"Loading configuration from {config_path}")
    if not config_path.exists():
        logger.error(f"Config file not found: {config_path}")
        raise ConfigurationError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return _substitute_env_vars(data, env_values)


def _substitute_env_vars(obj: Any, env_values: Mapping[str, str]) -> Any:
    """Recursively substitute ``${VAR_NAME}`` and ``$VAR_NAME`` in strings."""
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env_values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if isinstance(obj, str):
        pattern = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

        def replace_var(match):
            var_name = match.group(1) or match.group(2)
            value = env_values.get(var_name)
            if value is None:
                logger.warning(
                    f"CONFIG ERROR: Environment variable '${var_name}' is not set! "
                    f"The literal placeholder will be used."
                )
                return match.group(0)
            return value

        return pattern.sub(replace_var, obj)
    return obj


def _get(cfg: Mapping[str, Any], *keys: str) -> Any:
    cur: Any = cfg
    for key in keys:
        if not isinstance(cur, Mapping):
            return None
        cur = cur.get(key)
    return cur


def _first_set(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _to_int(value: Any, default: int, name: str) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


def _to_flag(value: Any) -> bool:
    """Only a literal ``true`` (any case) or a YAML boolean true enables a flag."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() == "true"


def _parse_yaml_models(entries: Any) -> list[ModelMapping]:
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ConfigurationError("'models' must be a list")
    mappings: list[ModelMapping] = []
    for entry in entries:
        if isinstance(entry, str):
            mappings.append(parse_model_arg(entry))
        elif isinstance(entry, Mapping) and entry.get("upstream"):
            upstream = str(entry["upstream"])
            mappings.append(ModelMapping(upstream, str(entry.get("downstream") or upstream)))
        else:
            raise ConfigurationError(f"Invalid model mapping entry: {entry!r}")
    return mappings


def _parse_model_limits(entries: Any) -> dict[str, ModelLimits]:
    if entries is None:
        return dict(DEFAULT_MODEL_LIMITS)
    if not isinstance(entries, Mapping):
        raise ConfigurationError("'model_limits' must be a mapping")
    limits: dict[str, ModelLimits] = {}
    for key, value in entries.items():
        if not isinstance(value, Mapping):
            raise ConfigurationError(f"Invalid model limits for '{key}': {value!r}")
        try:
            limits[str(key)] = ModelLimits(
                context_window=int(value["context_window"]),
                max_input=int(value["max_input"]),
                max_output=int(value["max_output"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid model limits for '{key}': {value!r}") from exc
    return limits


def build_config(
    env: Optional[Mapping[str, str]] = None,
    argv: Optional[Sequence[str]] = None,
    config_path: Optional[str] = None,
) -> ProxyConfig:
    """Build the proxy configuration.

    Args:
        env: Environment mapping; defaults to ``os.environ`` plus the ``.env`` file
        argv: Command-line arguments without the program name
        config_path: YAML path; defaults to ``$O2C_CONFIG``

    Returns:
        Resolved ``ProxyConfig``.

    Raises:
        ConfigurationError: If the YAML file or a numeric value is invalid.
    """
    use_process_env = env is None
    base_env: Mapping[str, str] = os.environ if use_process_env else env

    env_file = base_env.get(ENV_FILE_ENV)
    if env_file is None and use_process_env:
        env_file = DEFAULT_ENV_FILE
    file_values: dict[str, str] = {}
    if env_file:
        file_values = load_env_values(Path(env_file))
        if file_values:
            logger.info(f"Loaded environment variables from {env_file}")
    merged: dict[str, str] = {**file_values, **base_env}

    yaml_path = config_path or merged.get(CONFIG_PATH_ENV)
    cfg: dict[str, Any] = load_yaml_config(yaml_path, merged) if yaml_path else {}

    model_args = collect_model_args(list(argv or []))
    if model_args:
        mappings = [parse_model_arg(arg) for arg in model_args]
    else:
        mappings = _parse_yaml_models(cfg.get("models"))
    if not mappings:
        mappings = [ModelMapping(DEFAULT_MODEL_NAME, DEFAULT_MODEL_NAME)]

    provider = str(_first_set(merged.get("PROVIDER"), cfg.get("provider")) or DEFAULT_PROVIDER)

    config = ProxyConfig(
        provider=provider.lower(),
        openai_key=merged.get("OPENAI_API_KEY") or "",
        openrouter_key=merged.get("OPENROUTER_API_KEY") or "",
        openai_base_url=merged.get("OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE_URL,
        openrouter_base_url=merged.get("OPENROUTER_BASE_URL") or DEFAULT_OPENROUTER_BASE_URL,
        model_mappings=mappings,
        model_limits=_parse_model_limits(cfg.get("model_limits")),
        port=_to_int(_first_set(merged.get("PORT"), _get(cfg, "server", "port")), DEFAULT_PORT, "PORT"),
        bind_address=str(
            _first_set(merged.get("BIND_ADDRESS"), _get(cfg, "server", "host")) or DEFAULT_BIND_ADDRESS
        ),
        verbose_logging=_to_flag(_first_set(merged.get("VERBOSE_LOGGING"), cfg.get("verbose_logging"))),
        timeout_ms=_to_int(
            _first_set(merged.get("UPSTREAM_TIMEOUT_MS"), _get(cfg, "upstream", "timeout_ms")),
            DEFAULT_TIMEOUT_MS,
            "UPSTREAM_TIMEOUT_MS",
        ),
        stream_timeout_ms=_to_int(
            _first_set(merged.get("UPSTREAM_STREAM_TIMEOUT_MS"), _get(cfg, "upstream", "stream_timeout_ms")),
            DEFAULT_STREAM_TIMEOUT_MS,
            "UPSTREAM_STREAM_TIMEOUT_MS",
        ),
        max_retries=_to_int(
            _first_set(merged.get("UPSTREAM_MAX_RETRIES"), _get(cfg, "upstream", "max_retries")),
            DEFAULT_MAX_RETRIES,
            "UPSTREAM_MAX_RETRIES",
        ),
        strict_model_mapping=_to_flag(
            _first_set(merged.get("STRICT_MODEL_MAPPING"), cfg.get("strict_model_mapping"))
        ),
        skip_startup_checks=_to_flag(merged.get("SKIP_STARTUP_CHECKS")),
    )
    if config.max_retries < 0:
        raise ConfigurationError("UPSTREAM_MAX_RETRIES must not be negative")
    return config
