"""SceneFlow: bulk scene submission and tracking for a generation web UI."""

__version__ = "0.1.0"
