import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import dotenv_values
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from infra.llm import LlmConfig

from mpilot.constants import ROOT_DIR

ENV_FILES = (ROOT_DIR / ".env", ROOT_DIR / ".env.example")


def _read_env_values() -> dict:
    values = {}
    for path in ENV_FILES:
        if not path.exists():
            continue
        values.update(dotenv_values(path))
    values.update(os.environ)
    return values


class LLMSettings(BaseModel):
    provider: str = Field(
        default="openai",
        validation_alias=AliasChoices("provider", "LLM_PROVIDER", "MPILOT_LLM_PROVIDER"),
    )
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("api_key", "LLM_API_KEY", "MPILOT_LLM_API_KEY"),
    )
    model: str = Field(
        default="gpt-4o",
        validation_alias=AliasChoices("model", "LLM_MODEL", "MPILOT_LLM_MODEL"),
    )
    temperature: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices(
            "temperature", "LLM_TEMPERATURE", "MPILOT_LLM_TEMPERATURE"
        ),
    )
    timeout: float = Field(
        default=60.0,
        validation_alias=AliasChoices("timeout", "LLM_TIMEOUT", "MPILOT_LLM_TIMEOUT"),
    )
    base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("base_url", "LLM_BASE_URL", "MPILOT_LLM_BASE_URL"),
    )
    max_tokens: int = Field(
        default=1024,
        validation_alias=AliasChoices(
            "max_tokens", "LLM_MAX_TOKENS", "MPILOT_LLM_MAX_TOKENS"
        ),
    )

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("temperature", mode="before")
    @classmethod
    def _parse_temperature(cls, value):
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        return value


class LoopSettings(BaseModel):
    max_iterations: int = Field(default=20, ge=1)
    inter_iteration_delay_ms: int = Field(default=300, ge=0)
    default_wait_after_ms: int = Field(default=500, ge=0)
    default_backoff_ms: int = Field(default=500, ge=0)
    launch_settle_ms: int = Field(default=3000, ge=0)
    command_timeout: float = Field(default=8.0, gt=0)
    dump_timeout: float = Field(default=20.0, gt=0)
    send_screenshot: bool = True

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8020
    cors_origins: str = ""
    ws_token: Optional[str] = None
    ws_trace: bool = False

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _strip(cls, value):
        if value is None:
            return ""
        return str(value).strip()

    @property
    def cors_origins_list(self) -> List[str]:
        if not self.cors_origins:
            return []
        if self.cors_origins == "*":
            return ["*"]
        return [item.strip() for item in self.cors_origins.split(",") if item.strip()]


class PilotSettings(BaseSettings):
    adb_path: str = Field(
        default="adb",
        validation_alias=AliasChoices("adb_path", "ADB_PATH", "MPILOT_ADB_PATH"),
    )
    device_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("device_id", "DEVICE_ID", "MPILOT_DEVICE_ID"),
    )
    adb_ime_id: str = Field(
        default="com.android.adbkeyboard/.AdbIME",
        validation_alias=AliasChoices("adb_ime_id", "ADB_IME_ID", "MPILOT_ADB_IME_ID"),
    )
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("log_level", "LOG_LEVEL", "MPILOT_LOG_LEVEL"),
    )
    llm: LLMSettings = LLMSettings()
    loop: LoopSettings = LoopSettings()
    server: ServerSettings = ServerSettings()

    model_config = SettingsConfigDict(
        env_file=[str(path) for path in ENV_FILES],
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("device_id", mode="before")
    @classmethod
    def _blank_device(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            _flat_env_settings,
            file_secret_settings,
        )


@dataclass
class LoopConfig:
    max_iterations: int = 20
    inter_iteration_delay_ms: int = 300
    default_wait_after_ms: int = 500
    default_backoff_ms: int = 500
    launch_settle_ms: int = 3000
    send_screenshot: bool = True


def build_llm_config(
    settings: PilotSettings,
    *,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
) -> LlmConfig:
    llm_settings = settings.llm
    return LlmConfig(
        provider=(llm_settings.provider or "openai").strip().lower(),
        api_key=api_key or llm_settings.api_key,
        model=model or llm_settings.model,
        temperature=llm_settings.temperature,
        timeout=llm_settings.timeout,
        base_url=llm_settings.base_url,
        max_tokens=llm_settings.max_tokens,
    )


def build_loop_config(settings: PilotSettings, *, max_iterations: Optional[int] = None) -> LoopConfig:
    loop = settings.loop
    return LoopConfig(
        max_iterations=max_iterations or loop.max_iterations,
        inter_iteration_delay_ms=loop.inter_iteration_delay_ms,
        default_wait_after_ms=loop.default_wait_after_ms,
        default_backoff_ms=loop.default_backoff_ms,
        launch_settle_ms=loop.launch_settle_ms,
        send_screenshot=loop.send_screenshot,
    )


def load_settings(config_path: Optional[str] = None) -> PilotSettings:
    data = {}
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError("config not found: {}".format(path))
        data = json.loads(path.read_text(encoding="utf-8"))
    return PilotSettings(**data)


_FLAT_ENV = {
    "llm": {
        "LLM_PROVIDER": ("provider", str),
        "LLM_API_KEY": ("api_key", str),
        "LLM_MODEL": ("model", str),
        "LLM_TEMPERATURE": ("temperature", float),
        "LLM_TIMEOUT": ("timeout", float),
        "LLM_BASE_URL": ("base_url", str),
        "LLM_MAX_TOKENS": ("max_tokens", int),
    },
    "loop": {
        "MAX_ITERATIONS": ("max_iterations", int),
        "ITERATION_DELAY_MS": ("inter_iteration_delay_ms", int),
        "WAIT_AFTER_MS": ("default_wait_after_ms", int),
        "BACKOFF_MS": ("default_backoff_ms", int),
        "LAUNCH_SETTLE_MS": ("launch_settle_ms", int),
        "COMMAND_TIMEOUT": ("command_timeout", float),
        "DUMP_TIMEOUT": ("dump_timeout", float),
    },
    "server": {
        "HOST": ("host", str),
        "PORT": ("port", int),
        "CORS_ORIGINS": ("cors_origins", str),
        "WS_TOKEN": ("ws_token", str),
    },
}


def _flat_env_settings(_settings: Optional[BaseSettings] = None, *_args, **_kwargs) -> dict:
    # Accepts LLM_MODEL / MPILOT_LLM_MODEL style names for the nested sections.
    env = _read_env_values()
    data = {}
    for section, mapping in _FLAT_ENV.items():
        values = {}
        for suffix, (field, cast) in mapping.items():
            for env_key in ("MPILOT_" + suffix, suffix):
                raw = env.get(env_key)
                if raw in (None, ""):
                    continue
                try:
                    values[field] = cast(raw)
                except ValueError:
                    continue
                break
        if values:
            data[section] = values
    return data
