"""Built-in browser action catalog served by the execution process."""

from __future__ import annotations

from typing import Any

ALL_ROLES = ("executor", "thinker", "planner", "reviewer")

# Tools not listed here are granted to the executor only.
ROLE_GRANTS: dict[str, tuple[str, ...]] = {
    "browser_navigate": ALL_ROLES,
    "browser_snapshot": ALL_ROLES,
    "browser_take_screenshot": ALL_ROLES,
    "browser_screen_capture": ALL_ROLES,
    "browser_navigate_back": ("executor", "planner"),
    "browser_navigate_forward": ("executor", "planner"),
    "browser_tab_list": ("executor", "planner"),
    "browser_tab_new": ("executor", "planner"),
    "browser_tab_select": ("executor", "planner"),
    "browser_tab_close": ("executor", "planner"),
}

TOOL_PREFIX = "browser_"

_ELEMENT = {"type": "string", "description": "Human-readable element description"}
_REF = {
    "type": "string",
    "description": "Exact target element reference from the page snapshot",
}


def _tool(
    name: str,
    description: str,
    properties: dict[str, dict[str, Any]] | None = None,
    required: tuple[str, ...] = (),
) -> dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "parameters": {
            "type": "object",
            "properties": dict(properties or {}),
            "required": list(required),
        },
        "allowedAgents": list(ROLE_GRANTS.get(name, ("executor",))),
    }


def _number(description: str) -> dict[str, Any]:
    return {"type": "number", "description": description}


def base_tools() -> list[dict[str, Any]]:
    """Actions available in both snapshot and vision modes."""
    return [
        _tool(
            "browser_navigate",
            "Navigate to a URL",
            {"url": {"type": "string", "description": "The URL to navigate to"}},
            ("url",),
        ),
        _tool("browser_navigate_back", "Go back to the previous page"),
        _tool("browser_navigate_forward", "Go forward to the next page"),
        _tool("browser_snapshot", "Capture accessibility snapshot of the current page"),
        _tool(
            "browser_take_screenshot",
            "Take a screenshot of the current page",
            {
                "raw": {
                    "type": "boolean",
                    "description": "Whether to return without compression (in PNG format)",
                }
            },
        ),
        _tool(
            "browser_click",
            "Perform click on a web page",
            {"element": _ELEMENT, "ref": _REF},
            ("element", "ref"),
        ),
        _tool(
            "browser_hover",
            "Hover over element on page",
            {"element": _ELEMENT, "ref": _REF},
            ("element", "ref"),
        ),
        _tool(
            "browser_type",
            "Type text into editable element",
            {
                "element": _ELEMENT,
                "ref": _REF,
                "text": {"type": "string", "description": "Text to type into the element"},
                "submit": {
                    "type": "boolean",
                    "description": "Whether to submit entered text (press Enter after)",
                },
                "slowly": {
                    "type": "boolean",
                    "description": "Whether to type one character at a time",
                },
            },
            ("element", "ref", "text"),
        ),
        _tool(
            "browser_select_option",
            "Select an option in a dropdown",
            {
                "element": _ELEMENT,
                "ref": _REF,
                "values": {
                    "type": "array",
                    "description": "Array of values to select in the dropdown",
                    "items": {"type": "string"},
                },
            },
            ("element", "ref", "values"),
        ),
        _tool(
            "browser_press_key",
            "Press a key on the keyboard",
            {
                "key": {
                    "type": "string",
                    "description": "Name of the key to press or a character to generate",
                }
            },
            ("key",),
        ),
        _tool("browser_console_messages", "Returns all console messages"),
        _tool(
            "browser_file_upload",
            "Choose one or multiple files to upload",
            {
                "paths": {
                    "type": "array",
                    "description": "The absolute paths to the files to upload",
                }
            },
            ("paths",),
        ),
        _tool("browser_pdf_save", "Save page as PDF"),
        _tool(
            "browser_wait",
            "Wait for a specified time in seconds",
            {"time": _number("The time to wait in seconds (capped at 10 seconds)")},
            ("time",),
        ),
        _tool("browser_close", "Close the page"),
        _tool("browser_install", "Install the browser specified in the config"),
        _tool("browser_tab_list", "List browser tabs"),
        _tool(
            "browser_tab_new",
            "Open a new tab",
            {"url": {"type": "string", "description": "The URL to navigate to in the new tab"}},
        ),
        _tool(
            "browser_tab_select",
            "Select a tab by index",
            {"index": _number("The index of the tab to select")},
            ("index",),
        ),
        _tool(
            "browser_tab_close",
            "Close a tab",
            {"index": _number("The index of the tab to close")},
        ),
    ]


def vision_tools() -> list[dict[str, Any]]:
    """Coordinate-based actions, only served when the process runs in vision mode."""
    return [
        _tool("browser_screen_capture", "Take a screenshot of the current page"),
        _tool(
            "browser_screen_click",
            "Click left mouse button at specific coordinates",
            {"element": _ELEMENT, "x": _number("X coordinate"), "y": _number("Y coordinate")},
            ("element", "x", "y"),
        ),
        _tool(
            "browser_screen_move_mouse",
            "Move mouse to a given position",
            {"element": _ELEMENT, "x": _number("X coordinate"), "y": _number("Y coordinate")},
            ("element", "x", "y"),
        ),
        _tool(
            "browser_screen_drag",
            "Drag left mouse button from one position to another",
            {
                "element": _ELEMENT,
                "startX": _number("Start X coordinate"),
                "startY": _number("Start Y coordinate"),
                "endX": _number("End X coordinate"),
                "endY": _number("End Y coordinate"),
            },
            ("element", "startX", "startY", "endX", "endY"),
        ),
        _tool(
            "browser_screen_type",
            "Type text at the current cursor position",
            {
                "text": {"type": "string", "description": "Text to type"},
                "submit": {
                    "type": "boolean",
                    "description": "Whether to submit entered text (press Enter after)",
                },
            },
            ("text",),
        ),
    ]


def normalize_tool_name(name: str) -> str:
    return name if name.startswith(TOOL_PREFIX) else f"{TOOL_PREFIX}{name}"
