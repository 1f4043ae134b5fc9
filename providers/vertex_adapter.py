"""Google Vertex AI adapter (OpenAI-compatible endpoint).

Vertex authenticates with a short-lived OAuth access token obtained by
exchanging a service-account assertion signed with RS256. Tokens are cached
process-wide, one per service account.
"""

import logging
import re
import time

import jwt
import requests

import config
from .attachments import Dialect, VendorCapabilities
from .errors import ConfigurationError, TransportError, translate_sdk_errors
from .models import AttachmentType, StreamRequest, VertexSettings
from .openai_compat import ChatCompletionsAdapter
from .token_cache import SingleFlightTokenCache

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

GOOGLE_TOKEN_CACHE = SingleFlightTokenCache()

_PUBLISHER_MODEL = re.compile(r"^publishers/([^/]+)/models/(.+)$")
_RESOURCE_MODEL = re.compile(r"^projects/[^/]+/locations/[^/]+/publishers/([^/]+)/models/(.+)$")
_MODELS_PREFIX = re.compile(r"^models/(.+)$")


# ── Service-account token exchange ────────────────────────────────────────────


def normalize_private_key(pem: str) -> str:
    """Accept a PEM pasted with real newlines or as an escaped JSON string value."""
    key = pem.strip()
    key = key.replace("\\r\\n", "\n").replace("\\n", "\n").replace("\\r", "\n")
    if key[:1] in ("'", '"'):
        key = key[1:]
    if key[-1:] in ("'", '"'):
        key = key[:-1]
    return key.strip() + "\n"


def sign_assertion(client_email: str, private_key: str, now: float | None = None) -> str:
    """Build the RS256-signed JWT assertion for the Google token endpoint."""
    issued_at = int(now if now is not None else time.time())
    claims = {
        "iss": client_email,
        "sub": client_email,
        "aud": config.GOOGLE_TOKEN_URL,
        "iat": issued_at,
        "exp": issued_at + config.GOOGLE_ASSERTION_LIFETIME_SECS,
        "scope": config.GOOGLE_TOKEN_SCOPE,
    }
    try:
        return jwt.encode(claims, normalize_private_key(private_key), algorithm="RS256")
    except (ValueError, TypeError, jwt.PyJWTError) as exc:
        raise ConfigurationError(
            "Invalid service account private key. Paste the PEM contents (with real newlines), "
            "or paste the JSON value (it should contain \\n sequences).",
            {"reason": str(exc)},
        ) from exc


def fetch_google_access_token(client_email: str, private_key: str) -> tuple[str, float]:
    """Exchange a signed assertion for an access token.

    Returns:
        ``(access_token, expires_in_seconds)``
    """
    assertion = sign_assertion(client_email, private_key)
    with translate_sdk_errors("Google OAuth"):
        response = requests.post(
            config.GOOGLE_TOKEN_URL,
            data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=config.TOKEN_EXCHANGE_TIMEOUT_SECONDS,
        )
    if not response.ok:
        raise TransportError(
            f"Failed to fetch Google access token ({response.status_code}): {response.text or response.reason}",
            status_code=response.status_code,
        )
    payload = response.json()
    logger.info("Fetched Google access token for %s", client_email)
    return payload["access_token"], float(payload.get("expires_in", config.GOOGLE_ASSERTION_LIFETIME_SECS))


def get_google_access_token(vertex: VertexSettings, cache: SingleFlightTokenCache | None = None) -> str:
    return (cache or GOOGLE_TOKEN_CACHE).get(
        vertex.client_email,
        lambda: fetch_google_access_token(vertex.client_email, vertex.private_key),
    )


# ── Endpoint and model names ──────────────────────────────────────────────────


def vertex_base_url(project_id: str, location: str) -> str:
    host = "aiplatform.googleapis.com" if location == "global" else f"{location}-aiplatform.googleapis.com"
    return f"https://{host}/v1beta1/projects/{project_id}/locations/{location}/endpoints/openapi"


def normalize_vertex_publisher_model(model: str) -> str:
    """``"publishers/google/models/gemini-2.5-pro"`` -> ``"google/gemini-2.5-pro"``

    Full resource names and ``models/<name>`` are accepted too; a bare name
    defaults to the Google publisher.
    """
    trimmed = model.strip()
    if not trimmed:
        return trimmed
    for pattern in (_PUBLISHER_MODEL, _RESOURCE_MODEL):
        match = pattern.match(trimmed)
        if match:
            return f"{match.group(1)}/{match.group(2)}"
    match = _MODELS_PREFIX.match(trimmed)
    if match:
        return f"google/{match.group(1)}"
    if "/" in trimmed:
        return trimmed
    return f"google/{trimmed}"


# ── Adapter ───────────────────────────────────────────────────────────────────


class VertexAdapter(ChatCompletionsAdapter):
    credential = None
    label = "Vertex AI"

    @staticmethod
    def settings(request: StreamRequest) -> VertexSettings:
        vertex = request.vertex
        if vertex is None or not all(
            value.strip() for value in (vertex.project_id, vertex.location, vertex.client_email, vertex.private_key)
        ):
            raise ConfigurationError("Please configure Vertex AI credentials in Settings.")
        return vertex

    def check_credentials(self, request: StreamRequest) -> None:
        self.settings(request)
        if not self.model_name(request):
            raise ConfigurationError(f"Invalid model id: {request.model_config.model_id}")

    def api_key(self, request: StreamRequest) -> str:
        return get_google_access_token(self.settings(request))

    def base_url(self, request: StreamRequest) -> str:
        vertex = self.settings(request)
        return request.custom_base_url or vertex_base_url(vertex.project_id, vertex.location)

    def capabilities(self, request: StreamRequest) -> VendorCapabilities:
        return VendorCapabilities(
            Dialect.CHAT_COMPLETIONS,
            images=request.model_config.supports(AttachmentType.IMAGE),
            pdfs=False,
            functions=True,
        )

    def vendor_model_name(self, request: StreamRequest) -> str:
        return normalize_vertex_publisher_model(self.model_name(request))

    def apply_vendor_params(self, request: StreamRequest, params: dict) -> None:
        model = params["model"]
        model_config = request.model_config
        if request.web_search_enabled and model.startswith("google/") and "gemini" in model:
            # Grounding takes no sub-options on this endpoint
            params["web_search_options"] = {}
        if "gemini-3" in model and model_config.thinking_level:
            params["thinking_level"] = model_config.thinking_level
        elif "gemini-2.5" in model and model_config.budget_tokens:
            params["thinking_budget"] = model_config.budget_tokens
