"""Load the account id and bearer token from the YAML credentials file."""

from pathlib import Path
from typing import Any

import yaml

from oanda_cli.core.config import Settings
from oanda_cli.core.errors import CredentialsError
from oanda_cli.core.types import Credentials


def _require_str(section: dict[str, Any], key: str, profile: str) -> str:
    value = section.get(key)
    if value is None or not str(value).strip():
        raise CredentialsError(f"profile {profile!r} has no {key}")
    return str(value).strip()


def load_credentials(path: str | Path, profile: str = "default") -> Credentials:
    """Read `<profile>: {account_id, token}` from a YAML file."""

    file_path = Path(path).expanduser()
    try:
        raw = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CredentialsError(f"cannot read credentials file {file_path}: {exc}") from exc

    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise CredentialsError(f"invalid credentials file {file_path}: {exc}") from exc

    if not isinstance(document, dict):
        raise CredentialsError(f"credentials file {file_path} is not a mapping")

    section = document.get(profile)
    if not isinstance(section, dict):
        raise CredentialsError(f"profile {profile!r} not found in {file_path}")

    return Credentials(
        account_id=_require_str(section, "account_id", profile),
        token=_require_str(section, "token", profile),
    )


def resolve_credentials(settings: Settings) -> Credentials:
    """Prefer ACCOUNT_ID/API_TOKEN from the environment, else fall back to the file."""

    account_id = settings.ACCOUNT_ID.strip()
    token = settings.API_TOKEN.strip()
    if account_id and token:
        return Credentials(account_id=account_id, token=token)

    return load_credentials(settings.CREDENTIALS_PATH, settings.CREDENTIALS_PROFILE)
