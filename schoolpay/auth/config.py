"""
JWT verification settings.

Read from the environment or `.env`. The secret has no default: the service
refuses to start without one.
"""
import logging

from pydantic_settings import BaseSettings

logger = logging.getLogger("schoolpay.auth.config")

MIN_SECRET_LENGTH = 32
SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")


class AuthSettings(BaseSettings):
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    class Config:
        env_file = ".env"
        extra = "ignore"


auth_settings = AuthSettings()


def validate_auth_config() -> None:
    """Fail startup on a weak secret or an algorithm we do not verify."""
    problems = []
    if len(auth_settings.jwt_secret_key) < MIN_SECRET_LENGTH:
        problems.append(f"JWT_SECRET_KEY must be at least {MIN_SECRET_LENGTH} characters")
    if auth_settings.jwt_algorithm not in SUPPORTED_ALGORITHMS:
        problems.append(f"JWT_ALGORITHM must be one of {', '.join(SUPPORTED_ALGORITHMS)}")

    for problem in problems:
        logger.critical("Auth configuration error: %s", problem)
    if problems:
        raise RuntimeError("Auth configuration validation failed: " + "; ".join(problems))
