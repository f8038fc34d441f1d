"""Outbound request credentials for custom feeds."""

import base64

from .schemas import ApiKeyAuth, BasicAuth, BearerAuth, NoAuth

DEFAULT_API_KEY_HEADER = "X-API-Key"


def build_headers(auth, api_key_header: str = DEFAULT_API_KEY_HEADER) -> dict[str, str]:
    """Build the auth headers for a feed's authentication scheme.

    Missing credentials yield an empty value rather than an error; the
    upstream will reject the request and the failure surfaces as an
    ordinary fetch error.
    """
    if auth is None or isinstance(auth, NoAuth):
        return {}
    if isinstance(auth, ApiKeyAuth):
        return {api_key_header: auth.api_key or ""}
    if isinstance(auth, BearerAuth):
        return {"Authorization": f"Bearer {auth.token or ''}"}
    if isinstance(auth, BasicAuth):
        pair = f"{auth.username or ''}:{auth.password or ''}"
        encoded = base64.b64encode(pair.encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {encoded}"}
    raise TypeError(f"Unsupported authentication scheme: {type(auth).__name__}")
