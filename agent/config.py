"""Configuration loading and validation."""

import json
import os
from dataclasses import dataclass, field
from agent.exceptions import ConfigError


DEFAULT_MINECRAFT_LOG_FILTER = r"(?:DedicatedServer/]:\s|\[Bot server]:\s)(?:<(.+?)>)?(.*)"


@dataclass
class ModelConfig:
    """Configuration for the chat completions model."""
    model_name: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    temperature: float = 0.7
    options: dict = field(default_factory=dict)
    json_mode: bool = False


@dataclass
class EndpointSettings:
    """Configuration for endpoint connectivity and retries."""
    connect_timeout: float = 5.0
    read_timeout: float = 120.0
    max_retries: int = 3
    health_check_on_start: bool = True


@dataclass
class ToolExecutionConfig:
    """Configuration for tool execution behavior."""
    default_timeout: float = 30.0
    timeouts: dict[str, float] = field(default_factory=dict)
    max_result_length: int = 20000


@dataclass
class WeatherToolConfig:
    """Configuration for the get_weather tool."""
    api_key: str = ""
    cache_seconds: int = 600


@dataclass
class MinecraftLogToolConfig:
    """Configuration for the minecraft_read_log tool."""
    server_log_path: str = ""
    lines: int = 50
    filter: str | None = None


@dataclass
class MinecraftRconToolConfig:
    """Configuration for the minecraft_list_players tool."""
    host: str = ""
    port: int = 25575
    password: str = ""


@dataclass
class ToolsConfig:
    """Per-tool configuration. A tool with no usable config stays unregistered."""
    weather: WeatherToolConfig = field(default_factory=WeatherToolConfig)
    minecraft_log: MinecraftLogToolConfig = field(default_factory=MinecraftLogToolConfig)
    minecraft_rcon: MinecraftRconToolConfig = field(default_factory=MinecraftRconToolConfig)


@dataclass
class BotTriggerConfig:
    """A pattern that makes a bot respond, optionally limited to one social context."""
    pattern: str
    social_context: str | None = None
    probability: float = 1.0


@dataclass
class BotConfig:
    """Configuration for one bot."""
    name: str
    personality: str = "You are a helpful assistant."
    social_contexts: list[str] = field(default_factory=list)
    triggers: list[BotTriggerConfig] = field(default_factory=list)
    tools: list[str] | None = None


@dataclass
class ConsoleConfig:
    """Configuration for the console chat source."""
    social_context: str = "console"
    chat_history_length: int = 20


@dataclass
class TelemetryConfig:
    """Configuration for telemetry and metrics logging."""
    enabled: bool = False
    log_dir: str = "./data/metrics"
    otel_enabled: bool = False
    otel_endpoint: str | None = None
    otel_service_name: str = "tool-loop-bots"


def _default_bots() -> list[BotConfig]:
    return [
        BotConfig(
            name="Bot",
            social_contexts=["console", "web"],
            triggers=[BotTriggerConfig(pattern=".*")],
        )
    ]


@dataclass
class AgentConfig:
    """Complete runtime configuration."""
    chat_model: ModelConfig = field(default_factory=ModelConfig)
    endpoint: EndpointSettings = field(default_factory=EndpointSettings)
    tool_execution: ToolExecutionConfig = field(default_factory=ToolExecutionConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    bots: list[BotConfig] = field(default_factory=_default_bots)
    console: ConsoleConfig = field(default_factory=ConsoleConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    max_tool_rounds: int = 10
    data_dir: str = "data"
    log_dir: str = "data/logs"
    cache_path: str = "data/cache.db"


def load_config(config_path: str = "config.json") -> AgentConfig:
    """Load configuration from JSON file with defaults."""
    if not os.path.exists(config_path):
        config = AgentConfig()
        _apply_env_overrides(config.chat_model)
        return config

    try:
        with open(config_path, "r") as f:
            raw = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise ConfigError(f"Failed to load config from {config_path}: {e}")

    if not isinstance(raw, dict):
        raise ConfigError(f"Config root in {config_path} must be an object")

    data_dir = raw.get("data_dir", "data")

    chat_model = _load_model_settings(raw.get("chat_model", {}))
    _apply_env_overrides(chat_model)

    endpoint = _load_endpoint_settings(raw.get("endpoint", {}))
    tool_execution = _load_tool_execution_settings(raw.get("tool_execution", {}))
    tools = _load_tools_settings(raw.get("tools", {}))
    bots = _load_bots(raw.get("bots"))
    console = _load_console_settings(raw.get("console", {}))
    telemetry = _load_telemetry_settings(raw.get("telemetry", {}), data_dir)

    max_tool_rounds = _coerce_int(raw.get("max_tool_rounds", 10), "max_tool_rounds", 0)

    log_dir = raw.get("log_dir", os.path.join(data_dir, "logs"))
    cache_path = raw.get("cache_path", os.path.join(data_dir, "cache.db"))
    telemetry_dir = telemetry.log_dir or os.path.join(data_dir, "metrics")

    # Ensure data directories exist
    for d in [data_dir, log_dir, telemetry_dir]:
        os.makedirs(d, exist_ok=True)

    return AgentConfig(
        chat_model=chat_model,
        endpoint=endpoint,
        tool_execution=tool_execution,
        tools=tools,
        bots=bots,
        console=console,
        telemetry=telemetry,
        max_tool_rounds=max_tool_rounds,
        data_dir=data_dir,
        log_dir=log_dir,
        cache_path=cache_path,
    )


def _apply_env_overrides(chat_model: ModelConfig) -> None:
    env_api_key = os.getenv("OPENAI_API_KEY")
    if env_api_key and not chat_model.api_key:
        chat_model.api_key = env_api_key
    env_base_url = os.getenv("OPENAI_BASE_URL")
    if env_base_url:
        chat_model.base_url = env_base_url


def _load_model_settings(raw: dict) -> ModelConfig:
    """Parse and validate chat model settings."""
    if not isinstance(raw, dict):
        raise ConfigError("chat_model must be an object")

    model_name = raw.get("model_name", "gpt-4o-mini")
    if not isinstance(model_name, str) or not model_name.strip():
        raise ConfigError("chat_model.model_name must be a non-empty string")

    base_url = raw.get("base_url", "https://api.openai.com/v1")
    if not isinstance(base_url, str) or not base_url.strip():
        raise ConfigError("chat_model.base_url must be a non-empty string")

    api_key = raw.get("api_key", "")
    if not isinstance(api_key, str):
        raise ConfigError("chat_model.api_key must be a string")

    options = raw.get("options", {})
    if not isinstance(options, dict):
        raise ConfigError("chat_model.options must be an object")

    json_mode = raw.get("json_mode", False)
    if not isinstance(json_mode, bool):
        raise ConfigError("chat_model.json_mode must be a boolean")

    return ModelConfig(
        model_name=model_name.strip(),
        base_url=base_url.strip(),
        api_key=api_key.strip(),
        temperature=_coerce_float(raw.get("temperature", 0.7), "chat_model.temperature", 0.0),
        options=options,
        json_mode=json_mode,
    )


def _load_endpoint_settings(raw: dict) -> EndpointSettings:
    """Parse and validate endpoint connectivity settings."""
    if not isinstance(raw, dict):
        raise ConfigError("endpoint must be an object")
    connect_timeout = _coerce_float(raw.get("connect_timeout", 5.0), "endpoint.connect_timeout", 0.1)
    read_timeout = _coerce_float(raw.get("read_timeout", 120.0), "endpoint.read_timeout", 0.1)
    max_retries = _coerce_int(raw.get("max_retries", 3), "endpoint.max_retries", 1)

    health_check_on_start = raw.get("health_check_on_start", True)
    if not isinstance(health_check_on_start, bool):
        raise ConfigError("endpoint.health_check_on_start must be a boolean")

    return EndpointSettings(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        max_retries=max_retries,
        health_check_on_start=health_check_on_start,
    )


def _load_tool_execution_settings(raw: dict) -> ToolExecutionConfig:
    """Parse and validate tool execution settings."""
    if not isinstance(raw, dict):
        raise ConfigError("tool_execution must be an object")
    default_timeout = _coerce_float(
        raw.get("default_timeout", 30.0),
        "tool_execution.default_timeout",
        0.1,
    )

    timeouts_raw = raw.get("timeouts", {})
    if timeouts_raw is None:
        timeouts_raw = {}
    if not isinstance(timeouts_raw, dict):
        raise ConfigError("tool_execution.timeouts must be an object")

    timeouts: dict[str, float] = {}
    for key, value in timeouts_raw.items():
        if not isinstance(key, str):
            raise ConfigError("tool_execution.timeouts keys must be strings")
        timeouts[key] = _coerce_float(value, f"tool_execution.timeouts.{key}", 0.1)

    max_result_length = _coerce_int(
        raw.get("max_result_length", 20000),
        "tool_execution.max_result_length",
        1,
    )

    return ToolExecutionConfig(
        default_timeout=default_timeout,
        timeouts=timeouts,
        max_result_length=max_result_length,
    )


def _load_tools_settings(raw: dict) -> ToolsConfig:
    """Parse and validate per-tool settings."""
    if not isinstance(raw, dict):
        raise ConfigError("tools must be an object")

    weather_raw = raw.get("weather", {}) or {}
    if not isinstance(weather_raw, dict):
        raise ConfigError("tools.weather must be an object")
    api_key = weather_raw.get("api_key", "")
    if not isinstance(api_key, str):
        raise ConfigError("tools.weather.api_key must be a string")
    weather = WeatherToolConfig(
        api_key=api_key.strip(),
        cache_seconds=_coerce_int(weather_raw.get("cache_seconds", 600), "tools.weather.cache_seconds", 0),
    )

    log_raw = raw.get("minecraft_log", {}) or {}
    if not isinstance(log_raw, dict):
        raise ConfigError("tools.minecraft_log must be an object")
    server_log_path = log_raw.get("server_log_path", "")
    if not isinstance(server_log_path, str):
        raise ConfigError("tools.minecraft_log.server_log_path must be a string")
    log_filter = log_raw.get("filter")
    if log_filter is not None and (not isinstance(log_filter, str) or not log_filter.strip()):
        raise ConfigError("tools.minecraft_log.filter must be a non-empty string if provided")
    minecraft_log = MinecraftLogToolConfig(
        server_log_path=server_log_path.strip(),
        lines=_coerce_int(log_raw.get("lines", 50), "tools.minecraft_log.lines", 1),
        filter=log_filter,
    )

    rcon_raw = raw.get("minecraft_rcon", {}) or {}
    if not isinstance(rcon_raw, dict):
        raise ConfigError("tools.minecraft_rcon must be an object")
    rcon_host = rcon_raw.get("host", "")
    if not isinstance(rcon_host, str):
        raise ConfigError("tools.minecraft_rcon.host must be a string")
    rcon_password = rcon_raw.get("password", "")
    if not isinstance(rcon_password, str):
        raise ConfigError("tools.minecraft_rcon.password must be a string")
    minecraft_rcon = MinecraftRconToolConfig(
        host=rcon_host.strip(),
        port=_coerce_int(rcon_raw.get("port", 25575), "tools.minecraft_rcon.port", 1),
        password=rcon_password,
    )

    return ToolsConfig(weather=weather, minecraft_log=minecraft_log, minecraft_rcon=minecraft_rcon)


def _load_bots(raw: list | None) -> list[BotConfig]:
    """Parse and validate the bot list."""
    if raw is None:
        return _default_bots()
    if not isinstance(raw, list):
        raise ConfigError("bots must be a list")

    bots: list[BotConfig] = []
    seen: set[str] = set()
    for idx, bot in enumerate(raw):
        if not isinstance(bot, dict):
            raise ConfigError(f"bots[{idx}] must be an object")

        name = bot.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"bots[{idx}].name must be a non-empty string")
        name = name.strip()
        if name.lower() in seen:
            raise ConfigError(f"bots[{idx}].name '{name}' is used by more than one bot")
        seen.add(name.lower())

        personality = bot.get("personality", "You are a helpful assistant.")
        if not isinstance(personality, str):
            raise ConfigError(f"bots[{idx}].personality must be a string")

        social_contexts = bot.get("social_contexts", [])
        if not isinstance(social_contexts, list) or not all(
            isinstance(sc, str) and sc.strip() for sc in social_contexts
        ):
            raise ConfigError(f"bots[{idx}].social_contexts must be a list of non-empty strings")

        triggers = [
            _load_trigger(trigger, f"bots[{idx}].triggers[{t_idx}]")
            for t_idx, trigger in enumerate(bot.get("triggers") or [])
        ]

        tools = bot.get("tools")
        if tools is not None and (
            not isinstance(tools, list) or not all(isinstance(t, str) for t in tools)
        ):
            raise ConfigError(f"bots[{idx}].tools must be a list of tool names")
        if tools is not None and len(set(tools)) != len(tools):
            raise ConfigError(f"bots[{idx}].tools lists the same tool more than once")

        bots.append(BotConfig(
            name=name,
            personality=personality,
            social_contexts=[sc.strip() for sc in social_contexts],
            triggers=triggers,
            tools=tools,
        ))
    return bots


def _load_trigger(raw: dict, path: str) -> BotTriggerConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must be an object")
    pattern = raw.get("pattern")
    if not isinstance(pattern, str) or not pattern:
        raise ConfigError(f"{path}.pattern must be a non-empty string")
    social_context = raw.get("social_context")
    if social_context is not None and not isinstance(social_context, str):
        raise ConfigError(f"{path}.social_context must be a string if provided")
    probability = _coerce_float(raw.get("probability", 1.0), f"{path}.probability", 0.0)
    if probability > 1.0:
        raise ConfigError(f"{path}.probability must be <= 1.0")
    return BotTriggerConfig(
        pattern=pattern,
        social_context=social_context or None,
        probability=probability,
    )


def _load_console_settings(raw: dict) -> ConsoleConfig:
    """Parse and validate console chat source settings."""
    if not isinstance(raw, dict):
        raise ConfigError("console must be an object")
    social_context = raw.get("social_context", "console")
    if not isinstance(social_context, str) or not social_context.strip():
        raise ConfigError("console.social_context must be a non-empty string")
    return ConsoleConfig(
        social_context=social_context.strip(),
        chat_history_length=_coerce_int(
            raw.get("chat_history_length", 20),
            "console.chat_history_length",
            0,
        ),
    )


def _load_telemetry_settings(raw: dict, data_dir: str) -> TelemetryConfig:
    """Parse and validate telemetry settings."""
    if not isinstance(raw, dict):
        raise ConfigError("telemetry must be an object")
    enabled = raw.get("enabled", False)
    if not isinstance(enabled, bool):
        raise ConfigError("telemetry.enabled must be a boolean")

    log_dir = raw.get("log_dir", os.path.join(data_dir, "metrics"))
    if not isinstance(log_dir, str) or not log_dir.strip():
        raise ConfigError("telemetry.log_dir must be a non-empty string")

    otel_enabled = raw.get("otel_enabled", False)
    if not isinstance(otel_enabled, bool):
        raise ConfigError("telemetry.otel_enabled must be a boolean")

    otel_endpoint = raw.get("otel_endpoint")
    if otel_endpoint is not None and (not isinstance(otel_endpoint, str) or not otel_endpoint.strip()):
        raise ConfigError("telemetry.otel_endpoint must be a non-empty string if provided")

    otel_service_name = raw.get("otel_service_name", "tool-loop-bots")
    if not isinstance(otel_service_name, str) or not otel_service_name.strip():
        raise ConfigError("telemetry.otel_service_name must be a non-empty string")

    return TelemetryConfig(
        enabled=enabled,
        log_dir=log_dir,
        otel_enabled=otel_enabled,
        otel_endpoint=otel_endpoint.strip() if isinstance(otel_endpoint, str) else None,
        otel_service_name=otel_service_name.strip(),
    )


def _coerce_float(value: object, name: str, min_value: float) -> float:
    """Coerce config value to float with basic validation."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number")

    if value < min_value:
        raise ConfigError(f"{name} must be >= {min_value}")
    return value


def _coerce_int(value: object, name: str, min_value: int) -> int:
    """Coerce config value to int with basic validation."""
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer")

    if value < min_value:
        raise ConfigError(f"{name} must be >= {min_value}")
    return value
