"""Bearer-token check for the control API.

A single shared token (``SCENEFLOW_API_TOKEN``) guards every ``/api/`` route
except the public ones. With no token configured the API is open, which is
the expected setup when it only listens on localhost.
"""

import secrets

PUBLIC_PATHS = {
    "/health",
    "/api/health",
    "/api/",
}


def is_public(path: str) -> bool:
    path = path.rstrip("/") or "/"
    return (
        path in PUBLIC_PATHS
        or f"{path}/" in PUBLIC_PATHS
        or path.startswith("/api/docs")
        or path.startswith("/api/redoc")
        or path.startswith("/api/openapi")
    )


def validate_token(presented: str, expected: str | None) -> bool:
    """Constant-time comparison; any token is accepted when none is configured."""
    if not expected:
        return True
    return secrets.compare_digest(presented.encode(), expected.encode())
