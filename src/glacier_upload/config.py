"""Configuration loading from CLI args, environment, and config file."""

import os
import sys
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast


class InsecureConfigWarning(UserWarning):
    """Warning for insecure configuration practices."""

    pass

# tomli is in stdlib as tomllib in Python 3.11+
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


ENV_REGION = "GLACIER_REGION"
ENV_PROFILE = "GLACIER_PROFILE"
ENV_ACCOUNT_ID = "GLACIER_ACCOUNT_ID"
ENV_WORKERS = "GLACIER_WORKERS"

DEFAULT_REGION = "us-east-1"
DEFAULT_ACCOUNT_ID = "-"
DEFAULT_WORKERS = 4

DEFAULT_CONFIG_PATHS = [
    Path.home() / ".glacier-upload.toml",
    Path.home() / ".config" / "glacier-upload" / "config.toml",
]

DEFAULT_JOURNAL_DIR = Path.home() / ".cache" / "glacier-upload"


@dataclass
class Config:
    """Resolved configuration from all sources."""

    region: str
    account_id: str
    profile: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    endpoint_url: str | None = None

    # Target
    vault: str | None = None
    file: str | None = None
    description: str = ""

    # Recovery modes
    list_uploads: bool = False
    list_parts: str | None = None
    abort: str | None = None

    # Output options
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_file: str | None = None

    # Upload options
    part_size: str | None = None
    multipart_threshold: str | None = None
    resume: bool = False
    journal_dir: str = str(DEFAULT_JOURNAL_DIR)
    retries: int = 3

    # Performance
    workers: int = DEFAULT_WORKERS


def _load_config_file(path: str | Path | None) -> dict[str, object]:
    if path is not None:
        paths = [Path(path)]
    else:
        paths = DEFAULT_CONFIG_PATHS

    for config_path in paths:
        if config_path.exists():
            with open(config_path, "rb") as f:
                return dict(tomllib.load(f))

    return {}


def _resolve(cli_value: object, env_name: str | None, file_config: dict, key: str) -> Any:
    if cli_value is not None:
        return cli_value
    if env_name is not None and os.environ.get(env_name) is not None:
        return os.environ[env_name]
    return file_config.get(key)


def load_config(
    cli_region: str | None = None,
    cli_profile: str | None = None,
    cli_account_id: str | None = None,
    cli_workers: int | None = None,
    config_file: str | None = None,
    **kwargs: object,
) -> Config:
    """Precedence: CLI > env > config file > default."""
    file_config = _load_config_file(config_file)

    region = _resolve(cli_region, ENV_REGION, file_config, "region") or DEFAULT_REGION
    profile = _resolve(cli_profile, ENV_PROFILE, file_config, "profile")
    account_id = (
        _resolve(cli_account_id, ENV_ACCOUNT_ID, file_config, "account_id")
        or DEFAULT_ACCOUNT_ID
    )

    # Explicit keys only come from the file; the env vars AWS_* are read by boto3 itself
    access_key_id = cast(str | None, file_config.get("access_key_id"))
    secret_access_key = cast(str | None, file_config.get("secret_access_key"))
    if secret_access_key is not None:
        warnings.warn(
            "AWS secret key loaded from config file. Storing secrets in plaintext "
            "files is insecure. Consider using an AWS profile or environment "
            "variables instead.",
            InsecureConfigWarning,
            stacklevel=2,
        )

    workers = cli_workers
    if workers is None:
        env_workers = os.environ.get(ENV_WORKERS)
        if env_workers is not None:
            try:
                workers = int(env_workers)
            except ValueError:
                pass  # Ignore invalid env var, use file/default
    if workers is None:
        workers = cast(int | None, file_config.get("workers"))
    if workers is None:
        workers = DEFAULT_WORKERS

    for key in ("endpoint_url", "part_size", "multipart_threshold", "journal_dir"):
        if kwargs.get(key) is None and file_config.get(key) is not None:
            kwargs[key] = file_config[key]
        elif kwargs.get(key) is None:
            kwargs.pop(key, None)

    return Config(
        region=str(region),
        account_id=str(account_id),
        profile=cast(str | None, profile),
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        workers=workers,
        **cast(dict[str, Any], kwargs),
    )
