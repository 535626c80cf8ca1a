"""Configuration for the profile web app."""

from pydantic import model_validator

from profiledesk.settings import SharedSettings


class WebSettings(SharedSettings):
    """Web-specific settings layered on top of shared CRM settings."""

    web_host: str = "0.0.0.0"
    web_port: int = 8000
    public_base_url: str | None = None

    auth_url: str = ""
    auth_anon_key: str = ""
    auth_jwt_secret: str | None = None
    auth_jwt_audience: str = "authenticated"
    auth_http_timeout_seconds: float = 8.0
    auth_session_cookie_name: str = "profiledesk_session"
    auth_session_ttl_seconds: int = 3600
    auth_cookie_secure: bool = False
    auth_cookie_samesite: str = "lax"

    notification_seconds: int = 3

    @model_validator(mode="after")
    def validate_auth_cookie_samesite(self) -> "WebSettings":
        """Normalize and validate cookie SameSite policy."""
        normalized = self.auth_cookie_samesite.strip().lower()
        if normalized not in {"lax", "strict", "none"}:
            raise ValueError("AUTH_COOKIE_SAMESITE must be one of: lax, strict, none")
        self.auth_cookie_samesite = normalized
        return self

    @model_validator(mode="after")
    def validate_auth_provider(self) -> "WebSettings":
        """Require auth provider credentials in non-local runtime environments."""
        env = self.runtime_env.strip().lower()
        if env in {"local", "dev", "development", "test"}:
            return self

        if not self.auth_url.strip():
            raise ValueError("AUTH_URL must be set when RUNTIME_ENV is non-local.")
        if not self.auth_anon_key.strip():
            raise ValueError("AUTH_ANON_KEY must be set when RUNTIME_ENV is non-local.")
        return self

    @property
    def auth_base_url(self) -> str:
        """Auth provider REST root, e.g. `https://<project>.supabase.co/auth/v1`."""
        base = self.auth_url.strip().rstrip("/")
        if base and not base.endswith("/auth/v1"):
            base = f"{base}/auth/v1"
        return base


settings = WebSettings()
