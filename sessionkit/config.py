from typing import Literal

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings

MIN_SECRET_LENGTH = 64


class CookieSettings(BaseModel):
    name: str
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    http_only: bool = True
    same_site: Literal["lax", "strict", "none"] = "lax"
    # None: session / refresh cookies follow the token TTL, the csrf cookie lives for the browser session
    max_age: int | None = None

    @model_validator(mode="after")
    def same_site_none_requires_secure(self):
        if self.same_site == "none" and not self.secure:
            raise ValueError(f"cookie {self.name!r}: same_site='none' requires secure=True")
        return self

    class Config:
        frozen = True


class HeaderSettings(BaseModel):
    send_to_client: str
    get_from_client: str

    class Config:
        frozen = True


class SessionConfig(BaseSettings):
    # Signing / encryption. previous_secrets still verify old tokens, oldest first.
    server_secret: str
    previous_secrets: list[str] = []
    signing_salt: str = "sessionkit.session"
    encrypt_data: bool = False

    # Session token
    session_max_age: int | None = 7 * 24 * 3600  # 7 days

    # Refresh tokens
    refresh_enabled: bool = True
    refresh_max_age: int = 30 * 24 * 3600  # 30 days

    # Transport
    transport: Literal["cookie", "header"] = "cookie"
    session_cookie: CookieSettings = CookieSettings(name="_sessiondata")
    csrf_cookie: CookieSettings = CookieSettings(name="XSRF-TOKEN", http_only=False)
    refresh_cookie: CookieSettings = CookieSettings(name="_refreshtoken")
    session_header: HeaderSettings = HeaderSettings(
        send_to_client="Set-Authorization", get_from_client="Authorization"
    )
    csrf_header: HeaderSettings = HeaderSettings(
        send_to_client="Set-XSRF-Token", get_from_client="XSRF-Token"
    )
    refresh_header: HeaderSettings = HeaderSettings(
        send_to_client="Set-Refresh-Token", get_from_client="Refresh-Token"
    )

    # CSRF
    csrf_submit_header: str = "X-XSRF-TOKEN"
    csrf_rotate_on_login: bool = True
    csrf_exempt_paths: list[str] = []  # regex patterns, matched against the request path

    # App
    log_level: str = "INFO"
    environment: str = "development"
    sentry_dsn: str = ""
    store_purge_interval: int = 3600  # seconds between expired refresh token sweeps

    @field_validator("server_secret")
    @classmethod
    def secret_min_length(cls, v: str) -> str:
        if len(v) < MIN_SECRET_LENGTH:
            raise ValueError(f"server_secret must be at least {MIN_SECRET_LENGTH} characters")
        return v

    @field_validator("session_max_age", "refresh_max_age")
    @classmethod
    def positive_ttl(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("TTL must be positive")
        return v

    @field_validator("csrf_cookie")
    @classmethod
    def csrf_cookie_readable(cls, v: CookieSettings) -> CookieSettings:
        # double-submit: client script must be able to read the token
        if v.http_only:
            raise ValueError("csrf cookie must not be http-only")
        return v

    @property
    def signing_secrets(self) -> list[str]:
        """All accepted secrets, oldest first; the last one signs new tokens."""
        return [*self.previous_secrets, self.server_secret]

    class Config:
        env_prefix = "SESSION_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_nested_delimiter = "__"
        frozen = True
