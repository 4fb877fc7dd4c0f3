"""
Accessibility-tree extraction over the debugger protocol.

AX nodes are converted to ``UIElement`` with page-relative geometry from
``DOM.getBoxModel``; ``to_screen`` turns them into screen coordinates using
the window origin and the browser's own toolbar height.
"""

from __future__ import annotations

import contextlib
import logging
import sys
import time
from typing import Any

from .cdp_client import CdpClient, CdpConnection
from .types import Rect, UIElement

_LOGGER = logging.getLogger("uiscout.cdp_elements")

ROLE_TO_TYPE: dict[str, str] = {
    "button": "Button",
    "link": "Hyperlink",
    "textbox": "Edit",
    "search box": "Edit",
    "searchbox": "Edit",
    "combobox": "ComboBox",
    "checkbox": "CheckBox",
    "radio": "RadioButton",
    "menuitem": "MenuItem",
    "menuitemcheckbox": "MenuItem",
    "menuitemradio": "MenuItem",
    "tab": "TabItem",
    "tabpanel": "TabItem",
    "heading": "Text",
    "image": "Image",
    "img": "Image",
    "list": "List",
    "listitem": "ListItem",
    "table": "Table",
    "row": "DataItem",
    "cell": "DataItem",
    "columnheader": "Header",
    "rowheader": "Header",
    "slider": "Slider",
    "spinbutton": "Spinner",
    "progressbar": "ProgressBar",
    "scrollbar": "ScrollBar",
    "toolbar": "ToolBar",
    "status": "StatusBar",
    "alert": "Text",
    "dialog": "Window",
    "document": "Document",
}

INTERACTIVE_ROLES = frozenset(
    {
        "button",
        "link",
        "textbox",
        "search box",
        "searchbox",
        "combobox",
        "checkbox",
        "radio",
        "menuitem",
        "menuitemcheckbox",
        "menuitemradio",
        "tab",
        "slider",
        "spinbutton",
    }
)

GENERIC_TYPE = "Control"
OFFSET_EXPRESSION = "window.outerHeight - window.innerHeight"


def fallback_chrome_offset(platform: str | None = None) -> int:
    return 140 if (platform or sys.platform) == "darwin" else 120


def _ax_value(value: Any) -> Any:
    """CDP AXValue is usually a dict with {type,value}. Return the underlying value."""
    if isinstance(value, dict) and "value" in value:
        return value.get("value")
    return value


def _ax_text(node: dict[str, Any], key: str) -> str:
    raw = _ax_value(node.get(key))
    return str(raw).strip() if raw not in (None, "") else ""


def _ax_bool_prop(node: dict[str, Any], name: str) -> bool:
    if node.get(name) is True:
        return True
    props = node.get("properties")
    if not isinstance(props, list):
        return False
    for p in props:
        if isinstance(p, dict) and p.get("name") == name:
            return bool(_ax_value(p.get("value")))
    return False


def convert_ax_node(node: dict[str, Any], box: Rect | None) -> UIElement | None:
    """Convert one AX node, or return None when it should not be surfaced."""
    if node.get("ignored"):
        return None
    role = str(_ax_value(node.get("role")) or "").strip()
    if not role:
        return None
    role_key = role.casefold()
    elem_type = ROLE_TO_TYPE.get(role_key, GENERIC_TYPE)
    interactive = role_key in INTERACTIVE_ROLES
    name = _ax_text(node, "name")
    if not interactive and not name:
        return None
    if box is None or box.is_empty:
        return None
    width = int(round(box.width))
    height = int(round(box.height))
    if width <= 0 or height <= 0:
        return None
    return UIElement(
        type=elem_type,
        name=name,
        x=int(round(box.x)),
        y=int(round(box.y)),
        width=width,
        height=height,
        is_enabled=not _ax_bool_prop(node, "disabled") and not _ax_bool_prop(node, "readonly"),
        description=_ax_text(node, "description") or None,
        value=_ax_text(node, "value") or None,
    )


def _worth_measuring(node: dict[str, Any]) -> bool:
    if node.get("ignored") or not node.get("backendDOMNodeId"):
        return False
    role = str(_ax_value(node.get("role")) or "").strip().casefold()
    if not role:
        return False
    return role in INTERACTIVE_ROLES or bool(_ax_text(node, "name"))


async def get_interactive_elements(client: CdpClient, conn: CdpConnection) -> list[UIElement]:
    start = time.monotonic()
    try:
        nodes = await client.get_full_tree(conn)
        elements: list[UIElement] = []
        for node in nodes:
            # Box models are only fetched for nodes that can survive the filter.
            if not _worth_measuring(node):
                continue
            box = await client.get_box_model(conn, int(node["backendDOMNodeId"]))
            element = convert_ax_node(node, box)
            if element is not None:
                elements.append(element)
    except Exception as exc:  # noqa: BLE001
        _LOGGER.warning(
            "cdp_get_elements success=false duration_ms=%s error=%s",
            int((time.monotonic() - start) * 1000),
            exc,
        )
        return []
    _LOGGER.info(
        "cdp_get_elements success=true nodes=%s elements=%s duration_ms=%s",
        len(nodes),
        len(elements),
        int((time.monotonic() - start) * 1000),
    )
    return elements


async def get_element_at(client: CdpClient, conn: CdpConnection, x: int, y: int) -> UIElement | None:
    try:
        backend_id = await client.get_node_for_location(conn, x, y)
        if backend_id is None:
            return None
        await conn.send("Accessibility.enable")
        try:
            nodes = await client.get_partial_tree(conn, backend_id)
        finally:
            with contextlib.suppress(Exception):
                await conn.send("Accessibility.disable")
        if not nodes:
            return None
        box = await client.get_box_model(conn, backend_id)
        return convert_ax_node(nodes[0], box)
    except Exception as exc:  # noqa: BLE001
        _LOGGER.warning("cdp_element_at_failed x=%s y=%s error=%s", x, y, exc)
        return None


async def get_chrome_ui_offset(client: CdpClient, conn: CdpConnection, platform: str | None = None) -> int:
    """Height of the browser's own toolbars (tab strip, address bar)."""
    try:
        value = await client.evaluate(conn, OFFSET_EXPRESSION)
    except Exception as exc:  # noqa: BLE001
        _LOGGER.debug("cdp_chrome_offset_fallback error=%s", exc)
        return fallback_chrome_offset(platform)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return fallback_chrome_offset(platform)
    return int(round(value))


def to_screen(elements: list[UIElement], window_bounds: Rect | None, offset: int) -> list[UIElement]:
    origin_x = window_bounds.x if window_bounds is not None else 0.0
    origin_y = window_bounds.y if window_bounds is not None else 0.0
    return [e.moved(origin_x, origin_y + offset) for e in elements]
