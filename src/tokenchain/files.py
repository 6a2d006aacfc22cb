"""Credential file loading and the application default credentials search path."""

import json
import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .consts import ADC_CONFIG_ROOT_ENV, ADC_FILENAME, ADC_PATH_ENV
from .exceptions import CredentialFileError

logger = logging.getLogger("tokenchain.files")


def load_credential_file(path_or_json: str | os.PathLike | Mapping) -> dict[str, Any]:
    """Parse a credential file, a raw JSON payload or an already parsed mapping.

    Args:
        path_or_json: Filesystem path, JSON text, or a mapping.

    Returns:
        The parsed JSON object.

    Raises:
        CredentialFileError: If the file cannot be read or is not a JSON object.
    """
    if isinstance(path_or_json, Mapping):
        return dict(path_or_json)

    text = str(path_or_json)
    if text.lstrip().startswith("{"):
        source = "<json payload>"
    else:
        source = os.path.expanduser(text)
        try:
            text = Path(source).read_text(encoding="utf-8")
        except (FileNotFoundError, PermissionError, IsADirectoryError) as e:
            raise CredentialFileError(
                f"Cannot read credential file: {source}",
                errors=[str(e)],
                suggestions=["Check the path and file permissions"],
                context={"path": source},
            ) from e

    try:
        info = json.loads(text)
    except json.JSONDecodeError as e:
        raise CredentialFileError(
            f"Invalid JSON in credential file: {source}",
            errors=[f"JSON error: {e.msg}"],
            suggestions=["Fix JSON syntax in the credential file"],
            context={"path": source},
        ) from e

    if not isinstance(info, dict):
        raise CredentialFileError(
            f"Credential JSON is not an object: {source}",
            context={"path": source},
        )
    logger.debug(f"Loaded credential JSON of type {info.get('type')!r} from {source}")
    return info


def adc_paths() -> list[str]:
    """Ordered list of places to look for application default credentials.

    1. ``$GOOGLE_APPLICATION_CREDENTIALS``
    2. ``$CLOUDSDK_CONFIG/application_default_credentials.json``
    3. the gcloud config directory conventional for this OS
    """
    paths = []

    explicit = os.environ.get(ADC_PATH_ENV, "").strip()
    if explicit:
        paths.append(os.path.expanduser(explicit))

    config_root = os.environ.get(ADC_CONFIG_ROOT_ENV, "").strip()
    if config_root:
        paths.append(os.path.join(os.path.expanduser(config_root), ADC_FILENAME))

    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA", "").strip()
        if appdata:
            paths.append(os.path.join(appdata, "gcloud", ADC_FILENAME))
        system_drive = os.environ.get("SystemDrive", "C:")
        paths.append(os.path.join(system_drive + os.sep, "gcloud", ADC_FILENAME))
    else:
        paths.append(
            os.path.join(os.path.expanduser("~"), ".config", "gcloud", ADC_FILENAME)
        )

    return paths
