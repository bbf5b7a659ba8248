"""Application configuration via pydantic-settings.

Reads from environment variables and .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from agent_relay.stream_decoder import FrameStyle


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Upstream agent API
    bot_id: str = ""
    afp_api_url: str = ""
    core_url: str = ""
    client_id: str = ""
    client_secret: str = ""

    # Frontend
    frontend_url: str = "http://localhost:3000"

    # Streaming
    stream_frame_style: FrameStyle = FrameStyle.DATA_ONLY
    stream_idle_timeout: float = 60.0
    http_timeout: float = 30.0

    # Recreate registry entries for unknown session ids on send
    adopt_unknown_sessions: bool = False

    log_level: str = "INFO"

    @property
    def missing_agent_settings(self) -> list[str]:
        required = {
            "BOT_ID": self.bot_id,
            "AFP_API_URL": self.afp_api_url,
            "CORE_URL": self.core_url,
            "CLIENT_ID": self.client_id,
            "CLIENT_SECRET": self.client_secret,
        }
        return [name for name, value in required.items() if not value]

    @property
    def agent_configured(self) -> bool:
        return not self.missing_agent_settings


settings = Settings()
