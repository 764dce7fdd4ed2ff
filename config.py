# config.py - settings read once from the environment and passed explicitly
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from errors import ConfigurationError

SUPPORTED_METHODS = ("stripe", "paypal")

PAYPAL_LIVE = "https://api-m.paypal.com"
PAYPAL_SANDBOX = "https://api-m.sandbox.paypal.com"


def _first(env: Mapping[str, str], *names: str, default: str = "") -> str:
    for name in names:
        val = (env.get(name) or "").strip()
        if val:
            return val
    return default


def _bool(val: str) -> bool:
    return val.strip().lower() in ("1", "true", "yes", "on")


def _split(val: str) -> Tuple[str, ...]:
    return tuple(x.strip() for x in val.replace(",", " ").split() if x.strip())


@dataclass(frozen=True)
class Settings:
    smoobu_api_token: str = ""
    smoobu_base_url: str = "https://login.smoobu.com"
    smoobu_customer_id: Optional[str] = None
    smoobu_channel_id: Optional[str] = None
    stripe_secret: Optional[str] = None
    paypal_client_id: Optional[str] = None
    paypal_secret: Optional[str] = None
    app_url: str = "http://localhost:3000"
    environment: str = "development"
    currency: str = "eur"
    cors_origins: Tuple[str, ...] = ()
    debug_errors: bool = False
    upstream_timeout: float = 15.0
    rate_limits: Tuple[str, ...] = ()
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        try:
            timeout = float(_first(env, "UPSTREAM_TIMEOUT", default="15"))
        except ValueError:
            raise ConfigurationError("UPSTREAM_TIMEOUT must be a number")
        limits = _first(env, "RATE_LIMITS", default="200 per minute; 2000 per hour")
        return cls(
            smoobu_api_token=_first(env, "SMOOBU_API_TOKEN"),
            smoobu_base_url=_first(env, "SMOOBU_BASE_URL", default="https://login.smoobu.com").rstrip("/"),
            smoobu_customer_id=_first(env, "SMOOBU_CUSTOMER_ID") or None,
            smoobu_channel_id=_first(env, "SMOOBU_CHANNEL_ID") or None,
            stripe_secret=_first(env, "STRIPE_SECRET", "STRIPE_SECRET_KEY") or None,
            paypal_client_id=_first(env, "PP_CLIENT", "PAYPAL_CLIENT_ID") or None,
            paypal_secret=_first(env, "PP_SECRET", "PAYPAL_SECRET") or None,
            app_url=_first(env, "APP_URL", default="http://localhost:3000").rstrip("/"),
            environment=_first(env, "APP_ENV", "NODE_ENV", default="development").lower(),
            currency=_first(env, "CURRENCY", default="eur").lower(),
            cors_origins=_split(_first(env, "CORS_ORIGINS")),
            debug_errors=_bool(_first(env, "DEBUG_ERRORS")),
            upstream_timeout=timeout,
            rate_limits=tuple(x.strip() for x in limits.split(";") if x.strip()),
            log_level=_first(env, "LOG_LEVEL", default="INFO").upper(),
            log_file=_first(env, "LOG_FILE") or None,
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def expose_error_details(self) -> bool:
        return self.debug_errors and not self.is_production

    @property
    def paypal_base_url(self) -> str:
        return PAYPAL_LIVE if self.is_production else PAYPAL_SANDBOX

    @property
    def enabled_methods(self) -> Tuple[str, ...]:
        methods = []
        if self.stripe_secret:
            methods.append("stripe")
        if self.paypal_client_id and self.paypal_secret:
            methods.append("paypal")
        return tuple(methods)

    def validate(self) -> "Settings":
        """Fail fast on startup instead of discovering missing credentials per request."""
        if not self.smoobu_api_token:
            raise ConfigurationError("SMOOBU_API_TOKEN is not set")
        if bool(self.paypal_client_id) != bool(self.paypal_secret):
            raise ConfigurationError("PayPal needs both PP_CLIENT and PP_SECRET")
        if not self.enabled_methods:
            raise ConfigurationError("No payment processor configured (STRIPE_SECRET or PP_CLIENT/PP_SECRET)")
        if self.is_production:
            missing = [m for m in SUPPORTED_METHODS if m not in self.enabled_methods]
            if missing:
                raise ConfigurationError(f"Payment processor not configured in production: {', '.join(missing)}")
        return self
