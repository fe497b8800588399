"""Request-scoped access to the shared runtime."""

from fastapi import HTTPException, Request

from sceneflow.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Runtime not initialised")
    return runtime
