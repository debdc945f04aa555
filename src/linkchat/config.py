"""User configuration management."""

import dataclasses
import json
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

# Python 3.11+ has tomllib built-in, older versions need tomli
if sys.version_info >= (3, 11):
    import tomllib as tomli
else:
    import tomli

from linkchat.files import DEFAULT_MAX_FILE_SIZE, default_restricted_paths
from linkchat.workspace import find_local_config, global_config_path


logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Missing or invalid settings."""

    def __init__(self, message: str, key: str = "", suggestion: str = ""):
        self.message = message
        self.key = key
        self.suggestion = suggestion or "Fix the value with `link config --set KEY=VALUE` or run `link config --reset`"
        super().__init__(self.format_message())

    def format_message(self) -> str:
        return f"{self.message}\n  Suggestion: {self.suggestion}"


# =============================================================================
# Validation helpers
# =============================================================================

def _check_type(value: Any, kind: type, key: str) -> None:
    # bool is an int subclass; never accept it for numeric settings
    if kind in (int, float) and isinstance(value, bool):
        raise ConfigurationError(f"{key} must be a number, got {value!r}", key)
    if kind is float and isinstance(value, int):
        return
    if not isinstance(value, kind):
        raise ConfigurationError(f"{key} must be of type {kind.__name__}, got {value!r}", key)


def _check_positive(value: Any, key: str, kind: type = int) -> None:
    _check_type(value, kind, key)
    if value <= 0:
        raise ConfigurationError(f"{key} must be greater than 0, got {value!r}", key)


def _check_text(value: Any, key: str) -> None:
    _check_type(value, str, key)
    if not value.strip():
        raise ConfigurationError(f"{key} must not be empty", key)


def _check_choice(value: Any, choices: tuple, key: str) -> None:
    if value not in choices:
        raise ConfigurationError(f"{key} must be one of {', '.join(choices)}, got {value!r}", key)


def _check_str_list(value: Any, key: str) -> None:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"{key} must be a list of strings, got {value!r}", key)


def _check_bools(section: Any, prefix: str, names: tuple) -> None:
    for name in names:
        _check_type(getattr(section, name), bool, f"{prefix}.{name}")


# =============================================================================
# Sections
# =============================================================================

@dataclass
class OllamaSettings:
    """Connection to the model server."""
    endpoint: str = "http://localhost:11434"
    model: str = "gpt-oss:20b"
    timeout: int = 30  # seconds
    max_tokens: int = 4096
    temperature: float = 0.7
    history_window: int = 0  # 0 = send the whole conversation

    def __post_init__(self):
        _check_type(self.endpoint, str, "ollama.endpoint")
        parsed = urlparse(self.endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(
                f"ollama.endpoint must be an http(s) URL, got {self.endpoint!r}",
                "ollama.endpoint",
            )
        _check_text(self.model, "ollama.model")
        _check_positive(self.timeout, "ollama.timeout", float)
        _check_positive(self.max_tokens, "ollama.max_tokens")
        _check_type(self.temperature, float, "ollama.temperature")
        if not 0 <= self.temperature <= 1:
            raise ConfigurationError(
                f"ollama.temperature must be between 0 and 1, got {self.temperature!r}",
                "ollama.temperature",
            )
        _check_type(self.history_window, int, "ollama.history_window")
        if self.history_window < 0:
            raise ConfigurationError("ollama.history_window must be 0 or more", "ollama.history_window")


@dataclass
class CodeGenerationSettings:
    default_language: str = "python"
    include_comments: bool = True
    include_tests: bool = False
    output_directory: str = "."

    def __post_init__(self):
        _check_text(self.default_language, "code_generation.default_language")
        _check_bools(self, "code_generation", ("include_comments", "include_tests"))
        _check_text(self.output_directory, "code_generation.output_directory")


@dataclass
class CodeReviewSettings:
    enabled_rules: list[str] = field(
        default_factory=lambda: ["security", "performance", "style", "maintainability"]
    )
    severity: list[str] = field(default_factory=lambda: ["error", "warning", "info"])
    auto_fix: bool = False
    report_format: str = "markdown"

    def __post_init__(self):
        _check_str_list(self.enabled_rules, "code_review.enabled_rules")
        _check_str_list(self.severity, "code_review.severity")
        for level in self.severity:
            _check_choice(level, ("error", "warning", "info"), "code_review.severity")
        _check_bools(self, "code_review", ("auto_fix",))
        _check_choice(self.report_format, ("json", "markdown", "html"), "code_review.report_format")


@dataclass
class ExecutionSettings:
    timeout: int = 10  # seconds
    enable_network: bool = False
    enable_file_system: bool = True
    max_memory: int = 128  # MB

    def __post_init__(self):
        _check_positive(self.timeout, "execution.timeout", float)
        _check_bools(self, "execution", ("enable_network", "enable_file_system"))
        _check_positive(self.max_memory, "execution.max_memory")


@dataclass
class UISettings:
    theme: str = "auto"
    show_line_numbers: bool = True
    syntax_highlighting: bool = True
    auto_save: bool = True

    def __post_init__(self):
        _check_choice(self.theme, ("light", "dark", "auto"), "ui.theme")
        _check_bools(self, "ui", ("show_line_numbers", "syntax_highlighting", "auto_save"))


@dataclass
class SecuritySettings:
    enable_sandbox: bool = True
    allowed_modules: list[str] = field(
        default_factory=lambda: ["fs", "path", "util", "crypto", "json", "os", "re", "math"]
    )
    restricted_paths: list[str] = field(default_factory=default_restricted_paths)
    max_execution_time: int = 10  # seconds
    max_file_size: int = DEFAULT_MAX_FILE_SIZE  # bytes

    def __post_init__(self):
        _check_bools(self, "security", ("enable_sandbox",))
        _check_str_list(self.allowed_modules, "security.allowed_modules")
        _check_str_list(self.restricted_paths, "security.restricted_paths")
        _check_positive(self.max_execution_time, "security.max_execution_time", float)
        _check_positive(self.max_file_size, "security.max_file_size")


SECTIONS = {
    "ollama": OllamaSettings,
    "code_generation": CodeGenerationSettings,
    "code_review": CodeReviewSettings,
    "execution": ExecutionSettings,
    "ui": UISettings,
    "security": SecuritySettings,
}


def normalize_key(key: str) -> str:
    """ollama.maxTokens -> ollama.max_tokens; codeReview -> code_review."""
    parts = [re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", part).lower() for part in key.strip().split(".")]
    return ".".join(parts)


def parse_value(raw: str) -> Any:
    """Command-line value: JSON when it parses, otherwise the plain string."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(v) for v in value) + "]"
    # JSON string escapes are valid TOML basic-string escapes
    return json.dumps(str(value), ensure_ascii=False)


# =============================================================================
# Config
# =============================================================================

@dataclass
class ConfigSource:
    """Track where the active settings came from."""
    path: Optional[Path] = None
    loaded_from: str = "default"  # "default", "global", "local", "file"
    env_overrides: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        parts = [f"Active: {self.loaded_from}"]
        if self.path:
            parts.append(f"File: {self.path}")
        if self.env_overrides:
            parts.append(f"Env: {', '.join(self.env_overrides)}")
        return " | ".join(parts)


@dataclass
class Config:
    """link-chat configuration."""

    ollama: OllamaSettings = field(default_factory=OllamaSettings)
    code_generation: CodeGenerationSettings = field(default_factory=CodeGenerationSettings)
    code_review: CodeReviewSettings = field(default_factory=CodeReviewSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    ui: UISettings = field(default_factory=UISettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)

    # Debug settings
    debug: bool = False

    # Config source tracking (not loaded from file)
    _source: ConfigSource = field(default_factory=ConfigSource)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Build and validate a config from parsed TOML.

        Raises:
            ConfigurationError: If a section or value is invalid.
        """
        config = cls()
        for name, section_cls in SECTIONS.items():
            raw = data.get(name, data.get(_camel(name)))
            if raw is None:
                continue
            if not isinstance(raw, dict):
                raise ConfigurationError(f"[{name}] must be a table", name)

            known = {f.name for f in dataclasses.fields(section_cls)}
            values = {}
            for key, value in raw.items():
                field_name = normalize_key(key)
                if field_name in known:
                    values[field_name] = value
                else:
                    logger.debug("Ignoring unknown setting %s.%s", name, key)
            try:
                setattr(config, name, section_cls(**values))
            except TypeError as e:
                raise ConfigurationError(f"Invalid [{name}] section: {e}", name) from e

        if "debug" in data:
            config.debug = bool(data["debug"])
        return config

    def to_dict(self) -> dict:
        data = {name: dataclasses.asdict(getattr(self, name)) for name in SECTIONS}
        data["debug"] = self.debug
        return data

    @classmethod
    def load(cls, path: Optional[Path] = None, debug: bool = False) -> "Config":
        """Load configuration from a file and the environment.

        Lookup order when no path is given:
        1. Local config (.link-chat/config.toml in cwd or a parent)
        2. Global config (~/.link-chat/config.toml), written with defaults if missing

        Environment variables override whatever the file says.

        Raises:
            ConfigurationError: Unreadable TOML or invalid values.
        """
        if path is not None:
            config_path, origin = Path(path), "file"
        else:
            local = find_local_config()
            if local:
                config_path, origin = local, "local"
            else:
                config_path, origin = global_config_path(), "global"

        if config_path.exists():
            try:
                with open(config_path, "rb") as f:
                    data = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigurationError(f"Invalid TOML in {config_path}: {e}", suggestion=(
                    f"Fix the file by hand or run `link config --reset`"
                )) from e
            config = cls.from_dict(data)
            config._source = ConfigSource(path=config_path, loaded_from=origin)
            if debug:
                print(f"\033[90m[Config] Loaded {origin}: {config_path}\033[0m")
        else:
            config = cls()
            config._source = ConfigSource(path=config_path, loaded_from="default")
            try:
                config.save(config_path)
                logger.info("Wrote default configuration to %s", config_path)
            except OSError as e:
                logger.warning("Could not write default configuration to %s: %s", config_path, e)

        config._load_from_env()

        if debug:
            print(f"\033[90m[Config] Endpoint: {config.ollama.endpoint}, Model: {config.ollama.model}\033[0m")

        return config

    def _load_from_env(self) -> list[str]:
        """Apply environment overrides; returns the variables used."""
        overrides = []

        if endpoint := os.environ.get("LINK_OLLAMA_ENDPOINT"):
            self.set("ollama.endpoint", endpoint, save=False)
            overrides.append("LINK_OLLAMA_ENDPOINT")
        if model := os.environ.get("LINK_OLLAMA_MODEL"):
            self.set("ollama.model", model, save=False)
            overrides.append("LINK_OLLAMA_MODEL")
        if os.environ.get("LINK_DEBUG", "").lower() in ("1", "true", "yes"):
            self.debug = True
            overrides.append("LINK_DEBUG")

        self._source.env_overrides = overrides
        return overrides

    @property
    def path(self) -> Path:
        """File that ``save`` writes to by default."""
        return self._source.path or global_config_path()

    # -------------------------------------------------------------------------
    # Dotted access
    # -------------------------------------------------------------------------

    def _split_key(self, key: str) -> tuple[str, Optional[str]]:
        normalized = normalize_key(key)
        section, _, name = normalized.partition(".")
        if section == "debug" and not name:
            return section, None
        if section not in SECTIONS:
            raise ConfigurationError(f"Unknown configuration section: {key}", key,
                                     f"Sections: {', '.join(SECTIONS)}")
        if name:
            known = [f.name for f in dataclasses.fields(SECTIONS[section])]
            if name not in known:
                raise ConfigurationError(f"Unknown configuration key: {key}", key,
                                         f"Keys in [{section}]: {', '.join(known)}")
        return section, name or None

    def get(self, key: str) -> Any:
        """Value at a dotted key; a bare section name returns the whole table."""
        section, name = self._split_key(key)
        if section == "debug":
            return self.debug
        if name is None:
            return dataclasses.asdict(getattr(self, section))
        return getattr(getattr(self, section), name)

    def set(self, key: str, value: Any, save: bool = True) -> None:
        """Validate and apply one setting, then persist it.

        The live config is untouched when validation fails.

        Raises:
            ConfigurationError: Unknown key or invalid value.
        """
        section, name = self._split_key(key)
        if section == "debug":
            _check_type(value, bool, "debug")
            self.debug = value
        elif name is None:
            raise ConfigurationError(f"Cannot assign a whole section: {key}", key,
                                     f"Use {section}.<key>=<value>")
        else:
            candidate = dataclasses.replace(getattr(self, section), **{name: value})
            setattr(self, section, candidate)
            logger.info("Config %s.%s set to %r", section, name, value)
        if save:
            self.save()

    def reset(self, save: bool = True) -> None:
        """Restore every setting to its default."""
        for name, section_cls in SECTIONS.items():
            setattr(self, name, section_cls())
        self.debug = False
        logger.info("Configuration reset to defaults")
        if save:
            self.save()

    def show_config_info(self) -> str:
        """Return current settings grouped by section."""
        lines = ["Configuration:"]
        for name in SECTIONS:
            lines.append(f"  [{name}]")
            for key, value in dataclasses.asdict(getattr(self, name)).items():
                lines.append(f"    {key} = {_toml_value(value)}")
        lines.append("")
        lines.append(f"Source: {self._source}")
        return "\n".join(lines)

    def save(self, path: Optional[Path] = None) -> None:
        """Save configuration to a TOML file."""
        path = Path(path) if path else self.path
        path.parent.mkdir(parents=True, exist_ok=True)

        o, g, r, e, u, s = (
            self.ollama, self.code_generation, self.code_review,
            self.execution, self.ui, self.security,
        )
        v = _toml_value

        content = f'''# link-chat configuration
# ======================
#
# Environment variables override this file:
#   LINK_OLLAMA_ENDPOINT, LINK_OLLAMA_MODEL, LINK_DEBUG
#
# Config lookup (first found wins):
#   1. --config PATH
#   2. .link-chat/config.toml in the project or a parent directory
#   3. ~/.link-chat/config.toml

debug = {v(self.debug)}

[ollama]
# Ollama server
endpoint = {v(o.endpoint)}
model = {v(o.model)}
# Seconds to wait for the server
timeout = {v(o.timeout)}
max_tokens = {v(o.max_tokens)}
# 0.0 - 1.0
temperature = {v(o.temperature)}
# Most recent messages sent per turn (0 = all)
history_window = {v(o.history_window)}

[code_generation]
default_language = {v(g.default_language)}
include_comments = {v(g.include_comments)}
include_tests = {v(g.include_tests)}
# Base directory for replies saved without an explicit file name
output_directory = {v(g.output_directory)}

[code_review]
enabled_rules = {v(r.enabled_rules)}
# Any of "error", "warning", "info"
severity = {v(r.severity)}
auto_fix = {v(r.auto_fix)}
# "json", "markdown" or "html"
report_format = {v(r.report_format)}

[execution]
timeout = {v(e.timeout)}
enable_network = {v(e.enable_network)}
enable_file_system = {v(e.enable_file_system)}
# MB
max_memory = {v(e.max_memory)}

[ui]
# "light", "dark" or "auto"
theme = {v(u.theme)}
show_line_numbers = {v(u.show_line_numbers)}
syntax_highlighting = {v(u.syntax_highlighting)}
# Save the session after every turn
auto_save = {v(u.auto_save)}

[security]
enable_sandbox = {v(s.enable_sandbox)}
allowed_modules = {v(s.allowed_modules)}
# Files under these directories are never read or written
restricted_paths = {v(s.restricted_paths)}
max_execution_time = {v(s.max_execution_time)}
# Bytes
max_file_size = {v(s.max_file_size)}
'''
        path.write_text(content, encoding="utf-8")
        self._source.path = path


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
