"""Account authorization for the B2 Cloud Storage API.

Authorization Flow:
1. Client sends the account ID and application key to b2_authorize_account
   using HTTP Basic auth
2. The response carries an auth token plus the API and download URLs to use
3. The token is sent with every API call until the server reports it expired,
   at which point the account is authorized again
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat
import threading
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from .errors import ConfigError
from .models import AuthSession, Credentials
from .transport import Transport, decode_model

if TYPE_CHECKING:
    from typing import Self

logger = logging.getLogger(__name__)

# B2 API endpoints
AUTHORIZE_ACCOUNT_URL = "https://api.backblazeb2.com/b2api/v1/b2_authorize_account"

# Default config locations
DEFAULT_CONFIG_NAME = ".b2"
XDG_CONFIG_NAME = "b2/b2.conf"

# Environment variables
CONFIG_ENV_VAR = "B2_CONFIG"
ACCOUNT_ID_ENV_VAR = "B2_ACCOUNT_ID"
APPLICATION_KEY_ENV_VAR = "B2_APPLICATION_KEY"

# File permissions (owner read/write only)
CONFIG_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR  # 0o600


def _get_default_config_path() -> Path:
    """Determine the default configuration file path.

    Checks in order:
    1. B2_CONFIG environment variable
    2. ~/.b2 (home directory)
    3. ~/.config/b2/b2.conf (XDG config)

    Returns:
        Path to the configuration file.
    """
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        return Path(env_config).expanduser()

    home_config = Path.home() / DEFAULT_CONFIG_NAME
    if home_config.exists():
        return home_config

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        xdg_config = Path(xdg_config_home) / XDG_CONFIG_NAME
    else:
        xdg_config = Path.home() / ".config" / XDG_CONFIG_NAME

    if xdg_config.exists():
        return xdg_config

    return home_config


def load_credentials(config_path: str | Path | None = None) -> Credentials | None:
    """Load credentials from a configuration file.

    Falls back to the B2_ACCOUNT_ID and B2_APPLICATION_KEY environment
    variables when the file does not exist.

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        Credentials if found, None otherwise.

    Raises:
        ConfigError: If the config file exists but cannot be parsed.
    """
    path = (
        _get_default_config_path()
        if config_path is None
        else Path(config_path).expanduser()
    )

    if not path.exists():
        account_id = os.environ.get(ACCOUNT_ID_ENV_VAR)
        application_key = os.environ.get(APPLICATION_KEY_ENV_VAR)
        if account_id and application_key:
            return Credentials(account_id=account_id, application_key=application_key)
        return None

    try:
        data = yaml.safe_load(path.read_text())

        if not data:
            return None

        return Credentials.model_validate(data)

    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config file: {e}") from e
    except Exception as e:
        raise ConfigError(f"Failed to load config: {e}") from e


def save_credentials(
    credentials: Credentials, config_path: str | Path | None = None
) -> Path:
    """Save credentials to a configuration file readable only by the owner.

    Args:
        credentials: Credentials to save.
        config_path: Path to config file. If None, uses default location.

    Returns:
        The path written to.

    Raises:
        ConfigError: If the credentials cannot be saved.
    """
    path = (
        _get_default_config_path()
        if config_path is None
        else Path(config_path).expanduser()
    )

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        content = yaml.safe_dump(
            credentials.model_dump(by_alias=True), default_flow_style=False
        )
        path.write_text(content)
        path.chmod(CONFIG_FILE_MODE)
    except Exception as e:
        raise ConfigError(f"Failed to save config: {e}") from e

    return path


def require_credentials(config_path: str | Path | None = None) -> Credentials:
    """Load credentials, failing when none are configured.

    Raises:
        ConfigError: If no credentials are configured or they cannot be read.
    """
    credentials = load_credentials(config_path)
    if credentials is None:
        raise ConfigError(
            "No credentials configured. Run `login` or set "
            f"{ACCOUNT_ID_ENV_VAR} and {APPLICATION_KEY_ENV_VAR}."
        )
    return credentials


class AuthClient:
    """Authorization manager for the B2 API.

    Holds the account credentials and the current session. A session is only
    ever replaced as a whole, and re-authorization is serialized so that
    callers that saw the same expired token trigger a single refresh.

    Example:
        >>> auth = AuthClient(Credentials(account_id="id", application_key="key"))
        >>> session = auth.ensure_authorized()
        >>> headers = {"Authorization": session.auth_token}

    Attributes:
        credentials: Account ID and application key.
        session: Current session (None until the first authorization).
    """

    def __init__(
        self, credentials: Credentials, transport: Transport | None = None
    ) -> None:
        """Initialize the authorization manager.

        Args:
            credentials: Account credentials.
            transport: Transport to send requests with. A new one if None.
        """
        self.credentials = credentials
        self.transport = transport or Transport()
        self.session: AuthSession | None = None
        self._lock = threading.Lock()
        self._async_lock = asyncio.Lock()

    @property
    def _basic_auth(self) -> tuple[str, str]:
        return (self.credentials.account_id, self.credentials.application_key)

    def authorize(self) -> AuthSession:
        """Authorize the account and store the new session.

        Returns:
            The new session.

        Raises:
            UnauthorizedError: If the credentials are rejected.
            TransportError: If the request fails.
        """
        data = self.transport.request(
            "GET", AUTHORIZE_ACCOUNT_URL, auth=self._basic_auth
        )
        self.session = decode_model(AuthSession, data)
        logger.debug(f"Authorized account {self.session.account_id}")
        return self.session

    async def authorize_async(self) -> AuthSession:
        """Authorize the account and store the new session (async version)."""
        data = await self.transport.request_async(
            "GET", AUTHORIZE_ACCOUNT_URL, auth=self._basic_auth
        )
        self.session = decode_model(AuthSession, data)
        logger.debug(f"Authorized account {self.session.account_id}")
        return self.session

    def ensure_authorized(self) -> AuthSession:
        """Return the current session, authorizing first if there is none."""
        if self.session is not None:
            return self.session

        with self._lock:
            if self.session is None:
                return self.authorize()
            return self.session

    async def ensure_authorized_async(self) -> AuthSession:
        """Return the current session, authorizing first if there is none."""
        if self.session is not None:
            return self.session

        async with self._async_lock:
            if self.session is None:
                return await self.authorize_async()
            return self.session

    def reauthorize(self, stale_token: str) -> AuthSession:
        """Replace a session whose token the server reported as expired.

        Args:
            stale_token: The token that was rejected.

        Returns:
            The refreshed session. If another caller already replaced the
            stale token, its session is returned without a new request.
        """
        with self._lock:
            if self.session is not None and self.session.auth_token != stale_token:
                return self.session
            logger.debug("Auth token expired, authorizing again")
            return self.authorize()

    async def reauthorize_async(self, stale_token: str) -> AuthSession:
        """Replace a session whose token expired (async version)."""
        async with self._async_lock:
            if self.session is not None and self.session.auth_token != stale_token:
                return self.session
            logger.debug("Auth token expired, authorizing again")
            return await self.authorize_async()

    @classmethod
    def from_config(
        cls,
        config_path: str | Path | None = None,
        transport: Transport | None = None,
    ) -> Self:
        """Create an AuthClient from saved credentials.

        Args:
            config_path: Path to config file. If None, uses default location.
            transport: Transport to send requests with.

        Returns:
            AuthClient for the saved account.

        Raises:
            ConfigError: If no credentials are configured.
        """
        return cls(require_credentials(config_path), transport)

