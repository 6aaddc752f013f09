"""Facilitator credential resolution.

Credentials come from a local ``KEY=VALUE`` file (``~/.x402-credentials`` by
default) and fall back to process environment variables when the file is
missing or incomplete.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values

from x402_sentinel.common import DEFAULT_CREDENTIALS_FILENAME, DEFAULT_FACILITATOR_URL
from x402_sentinel.errors import ConfigurationError

logger = logging.getLogger(__name__)

API_KEY_VAR = "X402_API_KEY"
API_SECRET_VAR = "X402_API_SECRET"
FACILITATOR_URL_VAR = "X402_FACILITATOR_URL"
CREDENTIALS_FILE_VAR = "X402_CREDENTIALS_FILE"


@dataclass(frozen=True)
class Credentials:
    api_key: str
    api_secret: str

    def __repr__(self) -> str:
        return f"Credentials(api_key={self.api_key[:4]}..., api_secret=***)"


def default_credentials_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    environ = os.environ if environ is None else environ
    override = environ.get(CREDENTIALS_FILE_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_CREDENTIALS_FILENAME


def load_credentials_from_file(path: Path) -> Optional[Credentials]:
    """Read credentials from a KEY=VALUE file.

    Returns None if the file is absent or lacks either value.
    """
    if not path.is_file():
        return None

    values = dotenv_values(path)
    api_key = (values.get(API_KEY_VAR) or "").strip()
    api_secret = (values.get(API_SECRET_VAR) or "").strip()
    if not api_key or not api_secret:
        logger.info(f"Credential file {path} is incomplete, trying environment")
        return None
    return Credentials(api_key=api_key, api_secret=api_secret)


def load_credentials_from_env(environ: Mapping[str, str]) -> Optional[Credentials]:
    api_key = (environ.get(API_KEY_VAR) or "").strip()
    api_secret = (environ.get(API_SECRET_VAR) or "").strip()
    if not api_key or not api_secret:
        return None
    return Credentials(api_key=api_key, api_secret=api_secret)


def resolve_credentials(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Credentials:
    """Resolve facilitator credentials, file first then environment.

    Args:
        path: Credential file; defaults to $X402_CREDENTIALS_FILE or ~/.x402-credentials
        environ: Environment mapping; defaults to os.environ

    Raises:
        ConfigurationError: If neither source provides both values
    """
    environ = os.environ if environ is None else environ
    path = path or default_credentials_path(environ)

    credentials = load_credentials_from_file(path) or load_credentials_from_env(environ)
    if credentials is None:
        raise ConfigurationError(
            f"x402 credentials not found in {path} or ${API_KEY_VAR}/${API_SECRET_VAR}"
        )
    return credentials


def resolve_facilitator_url(environ: Optional[Mapping[str, str]] = None) -> str:
    environ = os.environ if environ is None else environ
    return (environ.get(FACILITATOR_URL_VAR) or DEFAULT_FACILITATOR_URL).rstrip("/")
