"""Configuration for the authentication gate."""

from functools import lru_cache
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from oidcgate.errors import ConfigError
from oidcgate.hooks import (
    LoginSuccessHandler,
    RouteProtector,
    StateEncoder,
    UnauthorizedResponder,
    bearer_unauthorized,
    encode_path_state,
    exclude_paths,
    redirect_to_state,
)

DEFAULT_SCOPES = ("openid", "email", "profile")
DEFAULT_SIGNING_ALGS = ("RS256", "RS512")


class GateConfig(BaseModel):
    """
    Identity provider, client credentials and hooks for one gate.

    Instances are immutable. Use ``with_defaults()`` to fill optional fields and
    ``validated()`` to get a defaulted config or a ``ConfigError`` listing every
    problem at once.
    """

    model_config = ConfigDict(frozen=True)

    issuer: str = ""
    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    # Fully qualified OAuth2 callback URL registered with the provider
    redirect_uri: str = ""
    # Path that triggers the callback protocol; must be the path part of redirect_uri
    callback_path: str | None = None
    scopes: list[str] = Field(default_factory=list)
    supported_signing_algs: list[str] = Field(default_factory=list)
    # If set, the identity token is also accepted from (and written to) this cookie
    auth_cookie_name: str | None = None
    http_timeout: float = Field(default=5.0, gt=0)

    # Hooks, each either a plain function or a coroutine function
    unauthorized: UnauthorizedResponder | None = None
    login_state_encoder: StateEncoder | None = None
    login_success_handler: LoginSuccessHandler | None = None
    route_protector: RouteProtector | None = None

    def with_defaults(self) -> "GateConfig":
        """Returns a copy with unset optional fields defaulted. Caller values are kept."""
        updates: dict[str, Any] = {}

        if self.unauthorized is None:
            updates["unauthorized"] = bearer_unauthorized
        if self.redirect_uri and not self.callback_path:
            path = urlparse(self.redirect_uri).path
            if path:
                updates["callback_path"] = path
        if self.login_state_encoder is None:
            updates["login_state_encoder"] = encode_path_state
        if self.login_success_handler is None:
            updates["login_success_handler"] = redirect_to_state
        if not self.scopes:
            updates["scopes"] = list(DEFAULT_SCOPES)
        if not self.supported_signing_algs:
            updates["supported_signing_algs"] = list(DEFAULT_SIGNING_ALGS)

        if not updates:
            return self
        return self.model_copy(update=updates)

    def validation_errors(self) -> list[str]:
        """Every violated invariant, in a stable order. Empty when the config is usable."""
        problems: list[str] = []

        if not self.issuer:
            problems.append("issuer must be specified")
        if not self.client_id:
            problems.append("client id must be specified")
        if not self.client_secret.get_secret_value():
            problems.append("client secret must be specified")
        if not self.redirect_uri:
            problems.append("redirect uri must be specified")

        if not self.callback_path:
            problems.append("callback path must be specified")
        else:
            if not self.redirect_uri.endswith(self.callback_path):
                problems.append(f"callback path must match redirect uri: {self.callback_path}")
            if not self.callback_path.startswith("/"):
                problems.append(f"callback path must start with a slash: {self.callback_path}")

        return problems

    def validated(self) -> "GateConfig":
        cfg = self.with_defaults()
        problems = cfg.validation_errors()
        if problems:
            raise ConfigError(problems)
        return cfg


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Gate and server settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server Configuration
    server_host: str = Field(default="0.0.0.0", description="Server bind address")
    server_port: int = Field(default=8080, description="Server port", ge=1, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    # OpenID Connect Configuration
    oidc_issuer: str = Field(..., description="Identity provider issuer URL")
    oidc_client_id: str = Field(..., description="OAuth client ID")
    oidc_client_secret: SecretStr = Field(..., description="OAuth client secret")
    oidc_redirect_uri: str = Field(..., description="Fully qualified OAuth callback URL")
    oidc_callback_path: str | None = Field(
        None, description="Callback path, derived from the redirect URI when unset"
    )
    oidc_scopes: str = Field(default="", description="Comma-separated list of scopes")
    oidc_signing_algs: str = Field(
        default="", description="Comma-separated list of accepted signing algorithms"
    )
    oidc_auth_cookie_name: str | None = Field(None, description="Identity token cookie name")
    oidc_http_timeout: float = Field(
        default=5.0, description="Timeout in seconds for identity provider calls", gt=0
    )
    oidc_public_paths: str = Field(
        default="/health", description="Comma-separated list of paths that do not require login"
    )

    @property
    def public_paths(self) -> list[str]:
        return _split_csv(self.oidc_public_paths)

    @property
    def gate_config(self) -> GateConfig:
        """Returns a GateConfig built from these settings (not yet validated)."""
        return GateConfig(
            issuer=self.oidc_issuer,
            client_id=self.oidc_client_id,
            client_secret=self.oidc_client_secret,
            redirect_uri=self.oidc_redirect_uri,
            callback_path=self.oidc_callback_path or None,
            scopes=_split_csv(self.oidc_scopes),
            supported_signing_algs=_split_csv(self.oidc_signing_algs),
            auth_cookie_name=self.oidc_auth_cookie_name or None,
            http_timeout=self.oidc_http_timeout,
            route_protector=exclude_paths(*self.public_paths) if self.public_paths else None,
        )


def settings_problems(error: ValidationError) -> list[str]:
    """One message per invalid setting, named by its environment variable."""
    problems = []
    for detail in error.errors():
        name = "_".join(str(part) for part in detail["loc"]).upper() or "settings"
        problems.append(f"{name}: {detail['msg']}")
    return problems


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Raises:
        ConfigError: listing every missing or invalid environment variable
    """
    try:
        return Settings()  # type: ignore
    except ValidationError as e:
        raise ConfigError(settings_problems(e)) from e
