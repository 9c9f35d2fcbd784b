import logging
import os


class SecurityValidationError(RuntimeError):
    pass


def parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def get_app_env() -> str:
    value = (os.getenv("APP_ENV") or "dev").strip().lower()
    if value in {"prod", "production"}:
        return "prod"
    return "dev"


def is_prod() -> bool:
    return get_app_env() == "prod"


def allow_insecure_defaults() -> bool:
    default = not is_prod()
    return parse_bool_env("ALLOW_INSECURE_DEFAULTS", default)


def get_proxy_api_key() -> str:
    return (os.getenv("PROXY_API_KEY") or "").strip()


def get_internal_api_key() -> str:
    return (os.getenv("INTERNAL_API_KEY") or "").strip()


def registry_configured() -> bool:
    url = os.getenv("DASHBOARD_SERVICE_URL")
    # Unset means the built-in default registry URL
    return url is None or bool(url.strip())


def validate_secret_settings() -> None:
    if allow_insecure_defaults():
        if not get_proxy_api_key():
            logging.warning(
                "SECURITY WARNING: PROXY_API_KEY is not set. "
                "Endpoints are unauthenticated; set PROXY_API_KEY for non-local usage."
            )
        if registry_configured() and not get_internal_api_key():
            logging.warning(
                "SECURITY WARNING: INTERNAL_API_KEY is not set. "
                "Registry calls are sent without credentials."
            )
        return

    invalid_reasons: list[str] = []
    if not get_proxy_api_key():
        invalid_reasons.append("PROXY_API_KEY is missing")
    if registry_configured() and not get_internal_api_key():
        invalid_reasons.append("INTERNAL_API_KEY is missing while the registry is enabled")

    if invalid_reasons:
        raise SecurityValidationError(
            "Refusing startup due to insecure defaults: "
            + "; ".join(invalid_reasons)
            + ". Set secure secrets or ALLOW_INSECURE_DEFAULTS=true explicitly."
        )
