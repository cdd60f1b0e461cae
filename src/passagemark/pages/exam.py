"""Reading exam page with passage highlighting.

Renders a passage and its question group as highlight containers. The
browser reports selections as (text-node index, offset) pairs; the page
replays them over a server-parsed copy of the rendered markup, so offsets
are computed by the same code path the tests exercise.

Route: /exam/{session_key}
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from nicegui import app, ui
from selectolax.lexbor import LexborHTMLParser, LexborNode

from passagemark.config import get_settings
from passagemark.engine import CONTAINER_ATTR, HighlightEngine
from passagemark.interaction import InteractionController, InteractionState
from passagemark.models import HighlightColor
from passagemark.offsets import TextRange, text_point_at
from passagemark.persistence import get_session_storage
from passagemark.store import AnnotationStore
from passagemark.text_tree.lexbor import LexborTree, document_root, parse_document

if TYPE_CHECKING:
    from collections.abc import MutableMapping

    from nicegui.events import GenericEventArguments

    from passagemark.config import Settings

logger = logging.getLogger(__name__)

_PASSAGE_HTML = """
<h3>The Lost City of Helike</h3>
<p>In <strong>373 BC</strong>, an earthquake and a tsunami destroyed the Greek
city of <em>Helike</em>. For centuries its ruins were thought to lie under the
sea, yet <a href="#fn1">recent surveys</a> found them buried beneath a coastal
lagoon.</p>
<p>Archaeologists now believe the lagoon silted up within a few decades,
sealing the city under layers of mud that preserved walls, coins and pottery.</p>
"""

_QUESTIONS_HTML = """
<ol>
<li>When was Helike destroyed?</li>
<li>Where were the ruins <em>originally</em> expected to be found?</li>
<li>What preserved the walls, coins and pottery?</li>
</ol>
"""

CONTAINERS: dict[str, str] = {
    "passage-1": _PASSAGE_HTML,
    "questions-1": _QUESTIONS_HTML,
}

_CSS = """
.note-highlight { cursor: pointer; border-radius: 2px; }
.note-highlight-yellow { background-color: #fde047; }
.note-highlight-green { background-color: #86efac; }
.pm-prompt { position: fixed; z-index: 50; transform: translateX(-50%); }
"""

_BUTTON_COLORS = {
    HighlightColor.YELLOW: "yellow-6",
    HighlightColor.GREEN: "green-4",
}

# JS: walk text nodes with the server's rules and report selections as
# (text-node index, offset) pairs.
_SELECTION_JS = """
const PM_SKIP = new Set(['SCRIPT', 'STYLE', 'NOSCRIPT', 'TEMPLATE']);

function pmTextNodes(root) {
    const out = [];
    (function walk(el) {
        for (let c = el.firstChild; c; c = c.nextSibling) {
            if (c.nodeType === Node.TEXT_NODE) out.push(c);
            else if (c.nodeType === Node.ELEMENT_NODE && !PM_SKIP.has(c.tagName)) walk(c);
        }
    })(root);
    return out;
}

function pmPoint(nodes, node, offset) {
    if (node.nodeType === Node.TEXT_NODE) {
        const idx = nodes.indexOf(node);
        return idx < 0 ? null : {index: idx, offset: offset};
    }
    if (offset < node.childNodes.length) {
        const child = node.childNodes[offset];
        const inner = child.nodeType === Node.TEXT_NODE
            ? child : pmTextNodes(child)[0];
        if (inner) return {index: nodes.indexOf(inner), offset: 0};
    }
    const own = pmTextNodes(node);
    if (!own.length) return null;
    const last = own[own.length - 1];
    return {index: nodes.indexOf(last), offset: last.textContent.length};
}

document.addEventListener('mouseup', (e) => {
    const container = e.target.closest('[data-highlight-container]');
    if (!container) return;
    setTimeout(() => {
        const sel = window.getSelection();
        if (!sel || sel.isCollapsed || !sel.rangeCount) return;
        const range = sel.getRangeAt(0);
        if (!container.contains(range.commonAncestorContainer)) return;
        const nodes = pmTextNodes(container);
        const start = pmPoint(nodes, range.startContainer, range.startOffset);
        const end = pmPoint(nodes, range.endContainer, range.endOffset);
        if (!start || !end) return;
        const rect = range.getBoundingClientRect();
        emitEvent('pm_selection', {
            container: container.getAttribute('data-highlight-container'),
            start: start, end: end,
            x: rect.left + rect.width / 2, y: rect.bottom + 8,
            on_mark: e.target.classList.contains('note-highlight'),
        });
    }, 10);
});

document.addEventListener('click', (e) => {
    const mark = e.target.closest('.note-highlight');
    if (!mark) return;
    const container = mark.closest('[data-highlight-container]');
    if (!container) return;
    const rect = mark.getBoundingClientRect();
    emitEvent('pm_mark_click', {
        container: container.getAttribute('data-highlight-container'),
        id: mark.getAttribute('data-highlight-id'),
        x: rect.left + rect.width / 2, y: rect.bottom + 8,
    });
});

document.addEventListener('mousedown', (e) => {
    if (!e.target.closest('[data-highlight-container], .pm-prompt')) {
        emitEvent('pm_outside', {});
    }
});
window.pmPromptOpen = false;
window.addEventListener('scroll', () => {
    // One event per open prompt; the server closes it on receipt
    if (!window.pmPromptOpen) return;
    window.pmPromptOpen = false;
    emitEvent('pm_scroll', {});
}, true);
document.addEventListener('keydown', (e) => {
    if (e.key === 'Escape') emitEvent('pm_escape', {});
});
"""


class RenderedContainers:
    """``ContainerHost`` over the markup currently shown in the browser.

    Each container keeps a server-parsed copy of exactly what was sent, so
    client text-node indices resolve to the same nodes server-side.
    """

    def __init__(self) -> None:
        self._documents: dict[str, LexborHTMLParser] = {}

    def update(self, container_id: str, rendered_html: str) -> None:
        self._documents[container_id] = parse_document(rendered_html)

    def get_container_by_id(self, container_id: str) -> LexborNode | None:
        document = self._documents.get(container_id)
        return None if document is None else document_root(document)


def _coerce_point(raw: Any) -> tuple[int, int] | None:
    if not isinstance(raw, dict):
        return None
    index, offset = raw.get("index"), raw.get("offset")
    if not isinstance(index, int) or not isinstance(offset, int):
        return None
    return index, offset


def open_session_store(
    session_key: str,
    settings: Settings,
    user_storage: MutableMapping[str, Any],
) -> AnnotationStore:
    """Open the highlight store for one attempt, using the configured backend."""
    return AnnotationStore(
        session_key,
        get_session_storage(settings, user_storage=user_storage),
        default_color=settings.highlight.default_color,
        key_prefix=settings.storage.key_prefix,
    )


@ui.page("/exam/{session_key}")
async def exam_page(session_key: str) -> None:
    """Reading passage and questions with highlight prompts."""
    store = open_session_store(session_key, get_settings(), app.storage.user)
    host = RenderedContainers()
    tree = LexborTree()
    engine = HighlightEngine(host, tree, store)
    controller = InteractionController(engine)

    ui.add_css(_CSS)
    views: dict[str, ui.html] = {}

    def refresh(container_id: str) -> None:
        rendered = engine.render_markup(container_id, CONTAINERS[container_id])
        host.update(container_id, rendered)
        views[container_id].set_content(rendered)

    def refresh_all() -> None:
        for container_id in CONTAINERS:
            refresh(container_id)

    # --- Toolbar ---
    with ui.row().classes("items-center gap-4"):
        ui.label("Highlight").classes("text-caption")
        color_toggle = ui.toggle(
            [c.value for c in HighlightColor],
            value=store.active_color.value,
            on_change=lambda e: store.set_active_color(e.value),
        )

        def clear_all() -> None:
            engine.clear_all()
            refresh_all()

        ui.button("Clear", icon="delete_sweep", on_click=clear_all).props(
            "flat dense"
        )

    # --- Containers ---
    with ui.row().classes("w-full gap-8 no-wrap"):
        for container_id, source in CONTAINERS.items():
            with ui.card().classes("w-1/2"):
                rendered = engine.render_markup(container_id, source)
                host.update(container_id, rendered)
                # WARNING: sanitize=False is only safe for trusted passage markup.
                views[container_id] = ui.html(rendered, sanitize=False).props(
                    f'{CONTAINER_ATTR}="{container_id}"'
                )

    # --- Prompts ---
    with ui.card().classes("pm-prompt") as selection_card:
        with ui.row().classes("gap-2"):
            for color in HighlightColor:
                ui.button(
                    color.value.title(),
                    on_click=lambda _e, c=color: commit(c),
                ).props(f"dense color={_BUTTON_COLORS[color]}")
            ui.button(icon="close", on_click=controller.cancel).props("flat dense")
    selection_card.set_visibility(False)

    with ui.card().classes("pm-prompt") as removal_card:
        with ui.row().classes("gap-2"):
            ui.button("Remove highlight", on_click=lambda: remove()).props("dense")
            ui.button(icon="close", on_click=controller.cancel).props("flat dense")
    removal_card.set_visibility(False)

    def commit(color: HighlightColor) -> None:
        annotation = controller.pick_color(color)
        if annotation is not None:
            color_toggle.set_value(store.active_color.value)
            refresh(annotation.container_id)
            ui.run_javascript("window.getSelection()?.removeAllRanges()")

    def remove() -> None:
        pending = controller.removal_prompt
        if pending is not None and controller.confirm_removal():
            refresh(pending.container_id)

    def show_prompts(ctl: InteractionController) -> None:
        selection = ctl.selection_prompt
        removal = ctl.removal_prompt
        state = ctl.state
        selection_card.set_visibility(state is InteractionState.SELECTION_PENDING)
        removal_card.set_visibility(state is InteractionState.REMOVAL_PENDING)
        prompt_open = "false" if state is InteractionState.IDLE else "true"
        ui.run_javascript(f"window.pmPromptOpen = {prompt_open}")
        if selection is not None and selection.anchor is not None:
            x, y = selection.anchor
            selection_card.style(f"left: {x}px; top: {y}px")
        if removal is not None and removal.anchor is not None:
            x, y = removal.anchor
            removal_card.style(f"left: {x}px; top: {y}px")

    controller.subscribe(show_prompts)

    # --- Browser events ---
    def handle_selection(e: GenericEventArguments) -> None:
        container_id = e.args.get("container")
        start = _coerce_point(e.args.get("start"))
        end = _coerce_point(e.args.get("end"))
        if container_id not in CONTAINERS or start is None or end is None:
            return
        container = host.get_container_by_id(container_id)
        if container is None:
            return
        start_point = text_point_at(tree, container, *start)
        end_point = text_point_at(tree, container, *end)
        if start_point is None or end_point is None:
            logger.debug("Stale selection indices for %s: %s", container_id, e.args)
            controller.cancel()
            return
        controller.selection_ended(
            container_id,
            TextRange(start_point, end_point),
            anchor=(float(e.args.get("x", 0)), float(e.args.get("y", 0))),
            on_annotation=bool(e.args.get("on_mark")),
        )

    def handle_mark_click(e: GenericEventArguments) -> None:
        container_id = e.args.get("container")
        annotation_id = e.args.get("id")
        if container_id not in CONTAINERS or not isinstance(annotation_id, str):
            return
        controller.annotation_clicked(
            container_id,
            annotation_id,
            anchor=(float(e.args.get("x", 0)), float(e.args.get("y", 0))),
        )

    ui.on("pm_selection", handle_selection)
    ui.on("pm_mark_click", handle_mark_click)
    ui.on("pm_outside", lambda _e: controller.outside_click())
    ui.on("pm_scroll", lambda _e: controller.scrolled())
    ui.on("pm_escape", lambda _e: controller.key_pressed("Escape"))

    await ui.context.client.connected()
    await ui.run_javascript(_SELECTION_JS)
