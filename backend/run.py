"""Run the SceneFlow control API."""

import os

import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(
        "backend.main:app",
        host=os.environ.get("SCENEFLOW_HOST", "127.0.0.1"),
        port=port,
        reload=os.environ.get("SCENEFLOW_ENV", "production") == "development",
    )
