import os
from dataclasses import dataclass

DEFAULT_API_URL = "https://api.openweathermap.org/data/3.0"
DEFAULT_IP_LOCATION_URL = "https://ipapi.co/json/"
DEFAULT_LOCATION_TIMEOUT_SECONDS = 5.0


def get_env_var(name: str) -> str:
    """Return the value of a required environment variable.

    This helper reads an environment variable and raises an error if it is
    not set or is an empty string. Use it to enforce required configuration
    at startup.

    Args:
        name (str): Name of the environment variable to read.

    Returns:
        str: The non-empty value of the requested environment variable.

    Raises:
        EnvironmentError: If the environment variable is not set or empty.
    """
    value = os.environ.get(name)
    if not value:
        raise EnvironmentError(f"{name} environment variable not set")
    return value


def get_env_var_or_default(name: str, default: str) -> str:
    """Return an optional environment variable, or `default` when unset."""
    return os.environ.get(name) or default


@dataclass(frozen=True)
class Settings:
    """Runtime configuration gathered from the environment.

    Attributes:
        db_url (str): SQLAlchemy URL of the durable record store.
        api_url (str): OpenWeatherMap One Call base URL.
        api_key (str): OpenWeatherMap API key.
        ip_location_url (str): IP geolocation endpoint.
        location_timeout_seconds (float): Ceiling for waiting on a
            location fix before proceeding without one.
        log_level (str): Logging level name.
    """

    db_url: str
    api_url: str
    api_key: str
    ip_location_url: str = DEFAULT_IP_LOCATION_URL
    location_timeout_seconds: float = DEFAULT_LOCATION_TIMEOUT_SECONDS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Raises:
            EnvironmentError: If `DB_URL` or `OPENWEATHERMAP_API_KEY` is
                missing.
            ValueError: If `LOCATION_TIMEOUT_SECONDS` is not a number.
        """
        timeout = float(
            get_env_var_or_default(
                "LOCATION_TIMEOUT_SECONDS",
                str(DEFAULT_LOCATION_TIMEOUT_SECONDS),
            )
        )
        return cls(
            db_url=get_env_var("DB_URL"),
            api_url=get_env_var_or_default("API_URL", DEFAULT_API_URL),
            api_key=get_env_var("OPENWEATHERMAP_API_KEY"),
            ip_location_url=get_env_var_or_default(
                "IP_LOCATION_URL", DEFAULT_IP_LOCATION_URL
            ),
            location_timeout_seconds=timeout,
            log_level=get_env_var_or_default("LOG_LEVEL", "INFO").upper(),
        )
