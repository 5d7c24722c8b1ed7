from typing import Optional
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Hospital Management System Client"

    # Backend
    API_BASE_URL: str = "http://localhost:3000"
    API_PREFIX: str = "/api"
    REQUEST_TIMEOUT: Optional[float] = None

    @field_validator("API_BASE_URL", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if isinstance(v, str):
            return v.rstrip("/")
        raise ValueError(v)

    # next-auth session forwarding
    SESSION_COOKIE_NAME: str = "next-auth.session-token"
    SESSION_TOKEN: Optional[str] = None

    # Realtime receivers
    SSE_RECONNECT_DELAY: float = 5.0
    SSE_BACKOFF_FACTOR: float = 1.0
    SSE_MAX_RECONNECT_DELAY: float = 60.0
    SSE_MAX_RECONNECT_ATTEMPTS: Optional[int] = 10

    @model_validator(mode='after')
    def check_reconnect_policy(self) -> 'Settings':
        if self.SSE_BACKOFF_FACTOR < 1.0:
            raise ValueError("SSE_BACKOFF_FACTOR must be >= 1.0")
        if self.SSE_MAX_RECONNECT_DELAY < self.SSE_RECONNECT_DELAY:
            self.SSE_MAX_RECONNECT_DELAY = self.SSE_RECONNECT_DELAY
        return self

    # Screens
    NOTICE_AUTO_HIDE_SECONDS: float = 6.0
    DEFAULT_PAGE_SIZE: int = 10

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra='ignore')

settings = Settings()
