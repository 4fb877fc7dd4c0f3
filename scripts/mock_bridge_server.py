#!/usr/bin/env python3
"""Serve a canned game scene on the bridge port (one frame per connection)."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from uiscout.game_bridge import encode_frame  # noqa: E402
from uiscout.logging_setup import configure_logging  # noqa: E402

_LOGGER = logging.getLogger("uiscout.mock_bridge")


def _button(name: str, x: int, y: int, value: str) -> dict:
    return {
        "type": "Button",
        "name": name,
        "path": f"Canvas/MainMenu/{name}",
        "screenRect": {"x": x, "y": y, "width": 200, "height": 60},
        "isInteractable": True,
        "isVisible": True,
        "value": value,
    }


def sample_scene() -> dict:
    return {
        "version": "1.0",
        "gameInfo": {"name": "MockGame", "scene": "MainMenu", "resolution": {"width": 1920, "height": 1080}},
        "elements": [
            _button("PlayButton", 860, 440, "PLAY"),
            _button("SettingsButton", 860, 520, "SETTINGS"),
            _button("QuitButton", 860, 600, "QUIT"),
            {
                "type": "Text",
                "name": "TitleText",
                "path": "Canvas/MainMenu/TitleText",
                "screenRect": {"x": 660, "y": 100, "width": 600, "height": 80},
                "isInteractable": False,
                "isVisible": True,
                "value": "Mock Game",
            },
            {
                "type": "Slider",
                "name": "VolumeSlider",
                "path": "Canvas/MainMenu/VolumeSlider",
                "screenRect": {"x": 760, "y": 700, "width": 400, "height": 40},
                "isInteractable": True,
                "isVisible": True,
                "value": "0.75",
            },
            {
                "type": "Card3D",
                "name": "HandCard_0",
                "path": "GameBoard/Hand/HandCard_0",
                "screenRect": {"x": 400, "y": 700, "width": 120, "height": 180},
                "isInteractable": True,
                "isVisible": True,
                "value": "Fireball",
            },
        ],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def _handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    peer = writer.get_extra_info("peername")
    frame = encode_frame(sample_scene())
    writer.write(frame)
    await writer.drain()
    writer.close()
    await writer.wait_closed()
    _LOGGER.info("mock_bridge_served peer=%s bytes=%s", peer, len(frame))


async def serve(host: str, port: int) -> None:
    server = await asyncio.start_server(_handle, host, port)
    _LOGGER.info("mock_bridge_listening host=%s port=%s", host, port)
    async with server:
        await server.serve_forever()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=9876)
    args = parser.parse_args()
    configure_logging()
    try:
        asyncio.run(serve(args.host, args.port))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
