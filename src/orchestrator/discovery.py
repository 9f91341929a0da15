"""
src/orchestrator/discovery.py

Model listing for the settings dropdown.

Native:  GET {NATIVE_MODELS_URL}?key=...   -> {"models": [{"name": "models/x", "supportedGenerationMethods": [...]}]}
Proxy:   GET {base_url}/v1/models (Bearer)  -> {"data": [{"id": ...}]} | [...] | {"models": [...]}
"""


import logging
from typing import Any, List, Optional

import httpx

from config import NATIVE_MODELS_URL, Backend, Settings
from orchestrator.errors import EmptyResultError, NoCredentialsError, RateLimitError, TransportError


logger = logging.getLogger(__name__)

TIMEOUT_SECONDS = 20.0


def _model_id(item: Any) -> str:

    if isinstance(item, dict):
        return str(item.get("id") or item.get("name") or "")
    return str(item)

def _normalise_native(data: Any) -> List[str]:

    models = data.get("models") if isinstance(data, dict) else None
    if not isinstance(models, list):
        return []

    return [
        str(m.get("name", "")).replace("models/", "", 1)
        for m in models
        if isinstance(m, dict) and "generateContent" in (m.get("supportedGenerationMethods") or [])
    ]

def _normalise_proxy(data: Any) -> List[str]:

    if isinstance(data, dict) and isinstance(data.get("data"), list):
        items = data["data"]
    elif isinstance(data, list):
        items = data
    elif isinstance(data, dict) and isinstance(data.get("models"), list):
        items = data["models"]
    else:
        items = []

    return [_model_id(item) for item in items]

def _error_message(response: httpx.Response) -> str:

    try:
        body = response.json()
    except ValueError:
        body = {}
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])

    return f"HTTP {response.status_code}"

async def list_models(settings: Settings, *, client: Optional[httpx.AsyncClient] = None) -> List[str]:
    """
    Return the sorted model identifiers available at the configured endpoint.

    Raises:
        NoCredentialsError: no API key.
        EmptyResultError: nothing usable came back.
        TransportError: network or HTTP failure.
    """

    if not settings.api_key:
        raise NoCredentialsError("No API Key")

    native = settings.backend is Backend.NATIVE
    if native:
        url = NATIVE_MODELS_URL
        params = {"key": settings.api_key}
        headers = {"Content-Type": "application/json"}
    else:
        url = f"{settings.clean_base_url}/v1/models"
        params = {}
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {settings.api_key}"}

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=TIMEOUT_SECONDS)
    try:
        response = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as exc:
        raise TransportError(str(exc) or exc.__class__.__name__) from exc
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code == 429:
        raise RateLimitError(_error_message(response))
    if response.is_error:
        raise TransportError(_error_message(response), status=response.status_code)

    try:
        data = response.json()
    except ValueError as exc:
        raise TransportError(f"Invalid JSON from {url}") from exc

    models = [m for m in (_normalise_native(data) if native else _normalise_proxy(data)) if m]
    logger.debug("Listed %d model(s) from %s", len(models), url)

    if not models:
        raise EmptyResultError("Could not parse any models from the API response.")

    return sorted(models)
