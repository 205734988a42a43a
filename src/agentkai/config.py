from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SYSTEM_PROMPT = (
    "You are Kai, a helpful assistant. Keep answers short and direct. "
    "Use the available tools when they help, and save information worth "
    "remembering with add_memory."
)


class AgentConfig(BaseSettings):
    """Settings for a :class:`~agentkai.orchestrator.ConversationOrchestrator`.

    Values come from keyword arguments, then ``AGENTKAI_*`` environment
    variables (case-insensitive), then a ``.env`` file. The API key and
    base URL also accept ``OPENAI_API_KEY`` / ``OPENAI_BASE_URL``.

    Timeouts are in seconds. ``generation_timeout`` bounds the wait for
    the stream to open and for each following chunk; it defaults to twice
    ``request_timeout`` since generation is slower than a lookup.
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTKAI_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    model: str = "gpt-4o"
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("AGENTKAI_API_KEY", "OPENAI_API_KEY"),
    )
    base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("AGENTKAI_BASE_URL", "OPENAI_BASE_URL"),
    )
    temperature: float | None = None
    max_tokens: int | None = None
    request_timeout: float = 30.0
    generation_timeout: float | None = None
    max_rounds: int = 10
    max_history: int = 50
    memory_limit: int = 5
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    @property
    def effective_generation_timeout(self) -> float:
        if self.generation_timeout is not None:
            return self.generation_timeout
        return self.request_timeout * 2

    @classmethod
    def from_env(
        cls, prefix: str = "AGENTKAI_", env_file: str | Path | None = ".env",
    ) -> "AgentConfig":
        """Build a config from the environment only.

        Args:
            prefix: Environment prefix for every field except the API
                key and base URL, which keep their fixed names.
            env_file: Dotenv file to read, or ``None`` to skip it.
        """
        return cls(_env_prefix=prefix, _env_file=env_file)
