from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import pytest


def _helper(tmp_path: Path, body: str) -> list[str]:
    script = tmp_path / "helper.py"
    script.write_text(body, encoding="utf-8")
    return [sys.executable, str(script)]


def _emit(payload: object) -> str:
    return f"import json, sys\nprint(json.dumps({payload!r}))\n"


def test_build_helper_argv() -> None:
    from uiscout.sources import build_helper_argv

    assert build_helper_argv("uia-dump --depth 3", "Notepad") == ["uia-dump", "--depth", "3", "Notepad"]
    assert build_helper_argv("uia-dump --title {window} --json", "My App") == [
        "uia-dump",
        "--title",
        "My App",
        "--json",
    ]
    assert build_helper_argv(["ax-dump"], "") == ["ax-dump"]


def test_element_normalization() -> None:
    from uiscout.sources import element_from_raw, elements_from_raw

    el = element_from_raw(
        {
            "type": "Button",
            "name": "OK",
            "bounds": {"x": 10.4, "y": 20.6, "width": 80, "height": 24},
            "isEnabled": False,
            "automationId": "okBtn",
            "description": "  ",
        }
    )
    assert el is not None
    assert (el.x, el.y, el.width, el.height) == (10, 21, 80, 24)
    assert el.is_enabled is False
    assert el.automation_id == "okBtn"
    assert el.description is None

    flat = element_from_raw({"role": "Edit", "x": 0, "y": 0, "width": 5, "height": 5, "value": "abc"})
    assert flat is not None and flat.type == "Edit" and flat.value == "abc"

    raws = [
        {"type": "Pane", "x": 0, "y": 0, "width": 0, "height": 100},
        {"type": "Text", "x": "a", "y": 0, "width": 10, "height": 10},
        {"type": "Text", "name": "Hello", "x": 1, "y": 1, "width": 10, "height": 10},
    ]
    assert [e.name for e in elements_from_raw(raws)] == ["Hello"]


def test_subprocess_source_reads_json_list(tmp_path: Path) -> None:
    from uiscout.sources import SubprocessDiscoverySource
    from uiscout.types import WindowInfo

    payload = [{"type": "Button", "name": "Save", "x": 1, "y": 2, "width": 3, "height": 4}, "junk"]
    source = SubprocessDiscoverySource("native", _helper(tmp_path, _emit(payload)), timeout=20)
    raws = asyncio.run(source.run(WindowInfo(title="Editor")))
    assert raws == [payload[0]]


def test_subprocess_source_accepts_wrapped_elements(tmp_path: Path) -> None:
    from uiscout.sources import SubprocessDiscoverySource
    from uiscout.types import WindowInfo

    payload = {"window": "Editor", "elements": [{"type": "Edit", "x": 0, "y": 0, "width": 9, "height": 9}]}
    source = SubprocessDiscoverySource("document", _helper(tmp_path, _emit(payload)), timeout=20)
    assert len(asyncio.run(source.run(WindowInfo(title="Editor")))) == 1


def test_subprocess_source_passes_window_title(tmp_path: Path) -> None:
    from uiscout.sources import SubprocessDiscoverySource
    from uiscout.types import WindowInfo

    body = "import json, sys\nprint(json.dumps([{'name': sys.argv[1], 'x': 0, 'y': 0, 'width': 1, 'height': 1}]))\n"
    source = SubprocessDiscoverySource("native", _helper(tmp_path, body), timeout=20)
    raws = asyncio.run(source.run(WindowInfo(title="Quarterly Report.xlsx")))
    assert raws[0]["name"] == "Quarterly Report.xlsx"


def test_empty_output_is_no_elements(tmp_path: Path) -> None:
    from uiscout.sources import SubprocessDiscoverySource
    from uiscout.types import WindowInfo

    source = SubprocessDiscoverySource("legacy", _helper(tmp_path, "pass\n"), timeout=20)
    assert asyncio.run(source.run(WindowInfo(title="x"))) == []


@pytest.mark.parametrize(
    ("body", "fragment"),
    [
        ("import sys\nsys.stderr.write('no access')\nsys.exit(3)\n", "exited with 3"),
        ("print('not json')\n", "invalid JSON"),
        (_emit({"error": "window not found"}), "window not found"),
    ],
)
def test_helper_failures_raise_source_error(tmp_path: Path, body: str, fragment: str) -> None:
    from uiscout.errors import DiscoverySourceError
    from uiscout.sources import SubprocessDiscoverySource
    from uiscout.types import WindowInfo

    source = SubprocessDiscoverySource("native", _helper(tmp_path, body), timeout=20)
    with pytest.raises(DiscoverySourceError) as exc_info:
        asyncio.run(source.run(WindowInfo(title="x")))
    assert fragment in exc_info.value.message
    assert exc_info.value.source == "native"


def test_helper_timeout_and_missing_binary(tmp_path: Path) -> None:
    from uiscout.errors import DiscoverySourceError
    from uiscout.sources import run_json_helper

    slow = _helper(tmp_path, "import time\ntime.sleep(30)\n")
    with pytest.raises(DiscoverySourceError, match="timed out"):
        asyncio.run(run_json_helper("native", slow, 0.5))

    with pytest.raises(DiscoverySourceError, match="cannot start helper"):
        asyncio.run(run_json_helper("native", [str(tmp_path / "missing-helper")], 5))


def test_window_provider_parses_helper_output(tmp_path: Path) -> None:
    from uiscout.windows import SubprocessWindowProvider

    payload = {
        "name": "Inbox - Google Chrome",
        "className": "Chrome_WidgetWin_1",
        "app": "chrome.exe",
        "pid": 4242,
        "bounds": {"x": 0, "y": 0, "width": 1280, "height": 800},
    }
    provider = SubprocessWindowProvider(_helper(tmp_path, _emit(payload)), timeout=20)
    window = asyncio.run(provider.active_window())
    assert window is not None
    assert window.window_class == "Chrome_WidgetWin_1"
    assert window.process_name == "chrome.exe"
    assert window.process_id == 4242
    assert window.bounds is not None and window.bounds.width == 1280


def test_window_provider_failure_returns_none(tmp_path: Path) -> None:
    from uiscout.windows import SubprocessWindowProvider

    provider = SubprocessWindowProvider(_helper(tmp_path, "import sys\nsys.exit(1)\n"), timeout=20)
    assert asyncio.run(provider.active_window("anything")) is None


def test_window_from_raw_rejects_non_dicts() -> None:
    from uiscout.windows import window_from_raw

    assert window_from_raw(json.loads("[]")) is None
    assert window_from_raw({"title": "X", "pid": True}).process_id is None


def test_non_finite_numbers_are_rejected() -> None:
    from uiscout.sources import element_from_raw

    assert element_from_raw({"type": "Button", "x": float("inf"), "y": 0, "width": 10, "height": 10}) is None
    assert element_from_raw({"type": "Button", "x": 0, "y": 0, "width": float("nan"), "height": 10}) is None
    assert element_from_raw(json.loads('{"type": "Button", "x": 0, "y": 0, "width": 1e400, "height": 4}')) is None
