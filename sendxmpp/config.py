"""sendxmpp account configuration.

The account file is TOML with two required keys::

    jid = "me@example.org"
    password = "secret"

Lookup order when no path is given:
1. ~/.config/sendxmpp.toml
2. /etc/sendxmpp/sendxmpp.toml
3. environment only (SENDXMPP_JID, SENDXMPP_PASSWORD)
"""

import logging
import os
import tomllib
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigError

logger = logging.getLogger("sendxmpp.config")

DEFAULT_CONFIG_PATHS = (
    "~/.config/sendxmpp.toml",
    "/etc/sendxmpp/sendxmpp.toml",
)


class AccountSettings(BaseSettings):
    """Account settings from the config file, completed by the environment."""

    jid: str = Field(description="Account JID")
    password: str = Field(description="Account password")

    gpg_binary: str = Field(default="gpg", description="OpenPGP encryptor executable")
    shutdown_grace: float = Field(default=4.0, gt=0, description="Seconds before forced shutdown")
    connect_timeout: float = Field(default=30.0, gt=0, description="Seconds to wait for session start")

    model_config = {"env_prefix": "SENDXMPP_", "extra": "ignore"}


def _read_toml(path: str) -> dict:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _settings_from(data: dict, path: Optional[str]) -> AccountSettings:
    try:
        return AccountSettings(**data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "?" for err in e.errors())
        raise ConfigError(f"invalid or missing settings: {fields}", path=path) from e


def load_settings(path: Optional[str] = None) -> AccountSettings:
    """Load account settings.

    Args:
        path: Explicit config file. If given, it must exist and parse.

    Raises:
        ConfigError: no usable configuration was found
    """
    if path:
        try:
            data = _read_toml(path)
        except OSError as e:
            raise ConfigError(e.strerror or str(e), path=path) from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"not valid TOML: {e}", path=path) from e
        return _settings_from(data, path)

    for candidate in DEFAULT_CONFIG_PATHS:
        candidate = os.path.expanduser(candidate)
        if not os.path.isfile(candidate):
            continue
        try:
            data = _read_toml(candidate)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Skipping unusable config {candidate}: {e}")
            continue
        logger.debug(f"Using config {candidate}")
        return _settings_from(data, candidate)

    try:
        return AccountSettings()
    except ValidationError as e:
        searched = ", ".join(DEFAULT_CONFIG_PATHS)
        raise ConfigError(f"no config file found (searched {searched}) and SENDXMPP_JID/SENDXMPP_PASSWORD not set") from e
