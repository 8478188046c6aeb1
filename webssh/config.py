"""Configuration for webssh components."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebSSHConfig(BaseSettings):
    buff_size: int = Field(default=512, gt=0)

    term_type: str = "xterm"
    term_cols: int = 80
    term_rows: int = 40
    term_speed: int = 14400

    login_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0
    default_ssh_port: int = 22

    model_config = SettingsConfigDict(env_prefix="webssh_")

    def term_size(self) -> tuple[int, int]:
        """Initial terminal geometry as (columns, rows)."""
        return self.term_cols, self.term_rows
