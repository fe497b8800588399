"""Host UI boundary and its Playwright adapter."""

from sceneflow.host.base import ElementRef, HostPage, MutationCallback, PageSnapshot

__all__ = ["ElementRef", "HostPage", "MutationCallback", "PageSnapshot"]
