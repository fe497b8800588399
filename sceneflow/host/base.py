"""Host UI boundary: what the core needs from the page it drives."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol

MutationCallback = Callable[[list[str]], Awaitable[None] | None]


@dataclass
class PageSnapshot:
    """Everything progress inference reads from one render of the page."""

    # src of every rendered completed-media element (video src / source src), page order
    media_sources: list[str] = field(default_factory=list)
    # trimmed text of leaf elements, only those that look like a bare "NN%"
    percent_texts: list[str] = field(default_factory=list)
    # text of alert / toast / snackbar regions
    alert_texts: list[str] = field(default_factory=list)
    # text of the main content area
    main_text: str = ""


class ElementRef(Protocol):
    """A handle on one UI control."""

    @property
    def key(self) -> str:
        """Stable identity, used to tell newly-appeared controls apart."""
        ...

    async def click(self) -> None: ...
    async def set_text(self, text: str) -> None:
        """Set the value and raise both ``input`` and ``change`` on the element."""
        ...
    async def set_files(self, name: str, mime_type: str, data: bytes) -> None: ...
    async def is_disabled(self) -> bool: ...
    async def text(self) -> str: ...
    async def tag_name(self) -> str: ...
    async def attribute(self, name: str) -> str | None: ...
    async def query_all(self, pattern: str) -> list["ElementRef"]: ...


class HostPage(Protocol):
    """Page-level operations. Patterns starting with ``//`` are XPath, anything else CSS."""

    async def query(self, pattern: str) -> ElementRef | None: ...
    async def query_all(self, pattern: str) -> list[ElementRef]: ...
    async def file_inputs(self) -> list[ElementRef]: ...
    async def set_zoom(self, factor: float) -> None: ...
    async def dismiss(self) -> None:
        """Close any open menu or dropdown."""
        ...
    async def snapshot(self) -> PageSnapshot: ...
    async def observe(self, callback: MutationCallback) -> None:
        """Start reporting mutated text (one string per changed node) to ``callback``."""
        ...
    async def disconnect(self) -> None: ...
