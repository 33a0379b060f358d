"""
Request dependencies

Decodes the per-user configuration token carried in every addon URL and
hands out the process-wide aggregator.
"""
import base64
import binascii
import json
import logging
from typing import Annotated
from urllib.parse import unquote

from fastapi import Depends, HTTPException, Path
from pydantic import ValidationError

from iptv_catalog.schemas import AddonConfig, ErrorDetail
from iptv_catalog.services.aggregator_service import CatalogAggregator, get_aggregator
from iptv_catalog.services.errors import ConfigTokenError


logger = logging.getLogger(__name__)


def decode_config_token(token: str) -> AddonConfig:
    """
    Decode a configuration token

    Tokens are base64url-encoded JSON (padding optional); URL-encoded raw
    JSON is accepted as well.

    Raises:
        ConfigTokenError: If the token is not a valid configuration
    """
    raw = unquote(token).strip()
    try:
        if raw.startswith("{"):
            payload = json.loads(raw)
        else:
            padded = raw + "=" * (-len(raw) % 4)
            payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, UnicodeError, binascii.Error) as e:
        raise ConfigTokenError(f"Configuration token is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ConfigTokenError("Configuration token must encode a JSON object")

    try:
        return AddonConfig.model_validate(payload)
    except ValidationError as e:
        raise ConfigTokenError(f"Invalid configuration: {e.error_count()} error(s)") from e


def encode_config_token(config: dict) -> str:
    """Inverse of decode_config_token, used by configuration pages and tests"""
    raw = json.dumps(config, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def get_config(token: Annotated[str, Path(description="Base64url-encoded configuration")]) -> AddonConfig:
    """FastAPI dependency turning the path token into a configuration"""
    try:
        return decode_config_token(token)
    except ConfigTokenError as e:
        logger.warning(f"Rejected configuration token: {e}")
        error = ErrorDetail(code="INVALID_CONFIG", message=str(e), context={"token_length": len(token)})
        raise HTTPException(status_code=400, detail=error.model_dump()) from e


def get_catalog_aggregator() -> CatalogAggregator:
    return get_aggregator()


ConfigDep = Annotated[AddonConfig, Depends(get_config)]
AggregatorDep = Annotated[CatalogAggregator, Depends(get_catalog_aggregator)]
