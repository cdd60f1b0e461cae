"""Landing page: start a practice attempt."""

from __future__ import annotations

from uuid import uuid4

from nicegui import ui

from passagemark.config import get_settings


def demos_enabled() -> bool:
    """Check if demo pages are enabled via feature flag.

    Returns:
        True if DEV__ENABLE_DEMO_PAGES is set to true.
    """
    return get_settings().dev.enable_demo_pages


def require_demo_enabled() -> bool:
    """Check if demos are enabled, show error if not.

    Returns:
        True if demos are enabled, False otherwise.
    """
    if demos_enabled():
        return True
    ui.label("Demo pages are disabled").classes("text-h5 text-red-500")
    ui.label("Set DEV__ENABLE_DEMO_PAGES=true in your environment to enable.").classes(
        "text-body1 text-grey-7"
    )
    return False


@ui.page("/")
async def index_page() -> None:
    """Offer a fresh practice attempt with its own session key."""
    if not require_demo_enabled():
        return

    ui.label("Reading practice").classes("text-2xl font-bold mb-4")
    ui.label(
        "Select text in the passage to highlight it. Click a highlight to remove it."
    ).classes("text-body1 mb-4")
    ui.button(
        "Start attempt",
        icon="play_arrow",
        on_click=lambda: ui.navigate.to(f"/exam/attempt-{uuid4().hex[:8]}"),
    )
