"""
Application settings and configuration management.

Uses Pydantic Settings for validation and environment variable support.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_WELCOME_MESSAGE = (
    "Hello and welcome! I'm your AI assistant. I can run the tools my server "
    "exposes on your behalf. Just mention me and ask what you need!"
)


class BotSettings(BaseSettings):
    """Discord bot configuration."""

    name: str = Field(default="ToolBridge", description="Bot display name")
    command_prefix: str = Field(default="!", description="Command prefix for bot commands")
    token: str = Field(default="", description="Discord bot token")
    allowed_channel_ids: list[int] = Field(
        default_factory=list,
        description="If non-empty, bot only responds in these channel IDs. "
                    "Set via BOT__ALLOWED_CHANNEL_IDS='[123456,789012]'",
    )
    dev_guild_id: int | None = Field(
        default=None,
        description="If set, syncs slash commands to this guild instantly (dev mode). "
                    "If None, syncs globally (up to 1 hour propagation).",
    )
    respond_to_all: bool = Field(
        default=False,
        description="Answer every message in allowed channels, not only @mentions",
    )
    greet_new_members: bool = Field(
        default=False,
        description="Send welcome_message when a member joins a guild. "
                    "Requires the privileged Server Members intent.",
    )
    welcome_message: str = Field(
        default=DEFAULT_WELCOME_MESSAGE,
        description="Text sent to the guild system channel when a member joins",
    )


class LLMSettings(BaseSettings):
    """LLM API configuration."""

    model: str = Field(
        default="gpt-4o",
        description="Model or deployment name. A LiteLLM provider prefix "
                    "('openai/gpt-4o', 'anthropic/...') is honoured as-is; for Azure "
                    "endpoints this is the deployment name.",
    )
    api_key: str = Field(default="", description="API key for the model's provider")
    endpoint: str | None = Field(
        default=None,
        description="Custom base URL. Azure OpenAI / AI Foundry hosts select the "
                    "Azure profile; any other URL is treated as an OpenAI-compatible "
                    "endpoint. None uses the provider's default endpoint.",
    )
    api_version: str = Field(
        default="2024-06-01", description="API version sent to Azure deployments"
    )
    max_tokens: int = Field(default=1024, description="Maximum tokens in response")
    temperature: float = Field(default=0.3, description="Sampling temperature")
    request_timeout: float = Field(
        default=120.0, gt=0, description="Per-request timeout for completions, in seconds"
    )
    max_turns: int = Field(
        default=10,
        ge=1,
        description="Maximum completion requests in one orchestration run",
    )
    time_budget: float | None = Field(
        default=None,
        gt=0,
        description="Wall-clock budget for one orchestration run, in seconds. "
                    "None means only max_turns bounds the run.",
    )
    system_prompt_path: Path | None = Field(
        default=None,
        description="Path to a system prompt file. None uses the bundled prompt.",
    )

    model_config = SettingsConfigDict(env_prefix="LLM_")


class ToolSettings(BaseSettings):
    """MCP tool server configuration."""

    server_command: str = Field(
        default="node", description="Executable that runs the MCP server"
    )
    server_path: str | None = Field(
        default=None,
        description="Path to the MCP server entry point (e.g. dist/index.js). "
                    "Appended after server_args when set.",
    )
    server_args: list[str] = Field(
        default_factory=list,
        description="Extra arguments passed to server_command, before server_path. "
                    "Set via TOOLS__SERVER_ARGS='[\"--flag\"]'",
    )
    server_cwd: Path | None = Field(
        default=None, description="Working directory for the server process"
    )
    call_timeout: float = Field(
        default=60.0, gt=0, description="Timeout for a single MCP request, in seconds"
    )
    serialize_requests: bool = Field(
        default=True,
        description="Send one MCP request at a time over the shared connection",
    )

    model_config = SettingsConfigDict(env_prefix="TOOL_")

    def server_argv(self) -> list[str]:
        """Arguments for the server process, excluding the command itself."""
        args = list(self.server_args)
        if self.server_path:
            args.append(self.server_path)
        return args


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(default=None, description="Log file path")

    # Sub-configurations
    bot: BotSettings = Field(default_factory=BotSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from file and environment.

    Args:
        env_file: Path to .env file (optional)

    Returns:
        Loaded settings instance
    """
    global _settings
    if env_file:
        _settings = Settings(_env_file=env_file)
    else:
        _settings = Settings()
    return _settings
