import os
from functools import lru_cache
from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/98.0.4758.102 Safari/537.36"
)

ENV_PREFIX = "RELAY_"


class Settings(BaseModel):
    """Process-wide relay configuration. Built once, never mutated."""

    model_config = ConfigDict(frozen=True)

    allowed_domains: Tuple[str, ...] = ("terabox.com", "1drv.ms")
    user_agent: str = DEFAULT_USER_AGENT
    referer: str = "https://terabox.com/"
    probe_timeout: float = Field(10.0, gt=0)
    fetch_timeout: float = Field(30.0, gt=0)
    probe_enabled: bool = True
    strict_host_check: bool = False
    http2: bool = False
    chunk_size: int = Field(64 * 1024, ge=1024)
    host: str = "0.0.0.0"
    port: int = Field(8000, ge=1, le=65535)
    log_level: str = "INFO"

    @field_validator("allowed_domains", mode="before")
    @classmethod
    def _split_domains(cls, value):
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",")]
        domains = tuple(d.lower() for d in value if d)
        if not domains:
            raise ValueError("allowed_domains must not be empty")
        return domains

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def outbound_headers(self) -> Dict[str, str]:
        # Sent on every upstream request regardless of the inbound request
        return {
            "User-Agent": self.user_agent,
            "Accept": "*/*",
            "Accept-Encoding": "gzip, deflate, br",
            "Connection": "keep-alive",
            "Referer": self.referer,
        }

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            key = ENV_PREFIX + name.upper()
            if key in environ and environ[key] != "":
                values[name] = environ[key]
        # Hosting platforms usually hand out the port as plain PORT
        if "port" not in values and environ.get("PORT"):
            values["port"] = environ["PORT"]
        return cls(**values)


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
