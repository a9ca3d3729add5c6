"""Client settings loaded from environment variables."""
import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

from reposcope.domain.errors import InvalidArgumentError


DEFAULT_API_URL = "https://api.github.com"
DEFAULT_USER_AGENT = "reposcope"


def _env_number(name: str, default: str, convert=int):
    raw = os.getenv(name, default)
    try:
        return convert(raw)
    except ValueError as e:
        raise InvalidArgumentError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    """Connection settings for the API transport.

    Attributes:
        token: Personal access token; anonymous requests when None
        api_base_url: Base URL every relative route is resolved against
        timeout_seconds: Total timeout for a single HTTP request
        max_retries: Attempts per request before a retryable error is raised
        rate_limit_floor: Remaining-quota level at which requests wait for reset
        user_agent: Value of the User-Agent header
    """
    token: Optional[str] = None
    api_base_url: str = DEFAULT_API_URL
    timeout_seconds: float = 30.0
    max_retries: int = 5
    rate_limit_floor: int = 10
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_env(cls) -> 'Settings':
        """Build settings from the environment (and a ``.env``/``env`` file)."""
        # Load environment variables from .env or env file
        load_dotenv('.env') or load_dotenv('env')

        return cls(
            token=os.getenv("GITHUB_TOKEN") or None,
            api_base_url=os.getenv("GITHUB_API_URL", DEFAULT_API_URL),
            timeout_seconds=_env_number("GITHUB_TIMEOUT", "30", float),
            max_retries=_env_number("GITHUB_MAX_RETRIES", "5"),
            rate_limit_floor=_env_number("GITHUB_RATE_LIMIT_FLOOR", "10"),
            user_agent=os.getenv("GITHUB_USER_AGENT", DEFAULT_USER_AGENT),
        )
