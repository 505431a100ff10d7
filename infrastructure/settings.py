import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from domain.errors import SettingsError

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = ".dep-cache.json"


class RemoteStoreSettings(BaseModel):
    """Remote tier credentials as found in .dep-cache.json."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    endpoint_url: str = Field(..., alias="endpointUrl", min_length=1, description="Base URL of the object store")
    api_key: str = Field(..., alias="apiKey", min_length=1, description="Bearer API key")
    bucket_name: str = Field(..., alias="bucketName", min_length=1, description="Bucket holding cache entries")
    timeout_seconds: Optional[float] = Field(
        None, alias="timeoutSeconds", gt=0, description="Per-operation HTTP timeout; unset means none"
    )


def load_remote_settings(working_directory: Path) -> Optional[RemoteStoreSettings]:
    """
    Load remote store settings from the working directory.

    Returns:
        The settings, or None if there is no settings file (local cache only)

    Raises:
        SettingsError: If the file exists but is unreadable or incomplete
    """
    settings_path = Path(working_directory) / SETTINGS_FILE_NAME
    if not settings_path.is_file():
        logger.info("%s not found. Local cache only.", SETTINGS_FILE_NAME)
        return None

    logger.info("%s found", SETTINGS_FILE_NAME)
    try:
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise SettingsError(f"cannot read {settings_path}: {e}") from e

    try:
        return RemoteStoreSettings.model_validate(data)
    except ValidationError as e:
        raise SettingsError(
            f"{SETTINGS_FILE_NAME} requires endpointUrl, apiKey and bucketName: {e}"
        ) from e
