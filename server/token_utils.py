import logging
from typing import Any, Dict

import requests
from flask import Blueprint, jsonify, request

from config_utils import Settings
from errors import ConfigurationError, InvalidRequestError, UpstreamError


logger = logging.getLogger(__name__)

POWERBI_SCOPE = "https://analysis.windows.net/powerbi/api/.default"
AUTH_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
EMBED_URL_TEMPLATE = (
    "https://api.powerbi.com/v1.0/myorg/groups/{group_id}/reports/{report_id}/GenerateToken"
)

AUTH_TOKEN_ERROR = "Failed to fetch auth token"
EMBED_TOKEN_ERROR = "Failed to get embed token"


def _post(url: str, public_message: str, timeout: int, **kwargs: Any) -> Dict[str, Any]:
    try:
        response = requests.post(url, timeout=timeout, **kwargs)
    except requests.RequestException as e:
        logger.error("%s: request to %s failed: %s", public_message, url, e)
        raise UpstreamError(public_message) from e

    if not response.ok:
        logger.error("%s: upstream returned %s: %s", public_message, response.status_code, response.text)
        raise UpstreamError(public_message, upstream_status=response.status_code, upstream_body=response.text)

    try:
        return response.json()
    except ValueError as e:
        logger.error("%s: upstream returned non-JSON body: %s", public_message, response.text[:500])
        raise UpstreamError(public_message, upstream_status=response.status_code) from e


def fetch_auth_token(settings: Settings) -> Dict[str, Any]:
    """Client-credentials grant against the identity provider; returns its JSON as-is."""
    missing = settings.missing()["identity"]
    if missing:
        logger.error("Cannot fetch auth token, missing configuration: %s", ", ".join(missing))
        raise ConfigurationError(AUTH_TOKEN_ERROR, missing=missing)

    return _post(
        AUTH_URL_TEMPLATE.format(tenant_id=settings.tenant_id),
        AUTH_TOKEN_ERROR,
        settings.http_timeout,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        data={
            "grant_type": "client_credentials",
            "client_id": settings.client_id,
            "client_secret": settings.client_secret,
            "scope": POWERBI_SCOPE,
        },
    )


def fetch_embed_token(settings: Settings, auth_token: str) -> Dict[str, Any]:
    """View-level embed token for the configured report, authorized by ``auth_token``."""
    if not isinstance(auth_token, str) or not auth_token.strip():
        raise InvalidRequestError("Missing 'authToken' in request body")

    missing = settings.missing()["embed"]
    if missing:
        logger.error("Cannot fetch embed token, missing configuration: %s", ", ".join(missing))
        raise ConfigurationError(EMBED_TOKEN_ERROR, missing=missing)

    return _post(
        EMBED_URL_TEMPLATE.format(group_id=settings.group_id, report_id=settings.report_id),
        EMBED_TOKEN_ERROR,
        settings.http_timeout,
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {auth_token.strip()}",
        },
        json={"accessLevel": "View"},
    )


def create_token_blueprint(settings: Settings) -> Blueprint:
    bp = Blueprint("tokens", __name__)

    @bp.post("/auth-token")
    def auth_token():
        return jsonify(fetch_auth_token(settings))

    @bp.post("/embed-token")
    def embed_token():
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            data = {}
        return jsonify(fetch_embed_token(settings, data.get("authToken")))

    return bp
