"""
Plugin process entrypoint.

Resolves the device profile, initialises logging and serves the control API
with the plugin attached to its lifespan.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from . import DeviceConfig
from .api.server import create_app
from .host import LocalHost
from .plugin import ConnectDvrPlugin
from .utils.logging import configure_logging

LOG = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent / "configs"
PROFILES_PATH = CONFIG_DIR / "devices.yaml"


def load_profiles(path: Path = PROFILES_PATH) -> Dict[str, Dict[str, Any]]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            profiles = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        LOG.info("No device profile file at %s", path)
        return {}
    if not isinstance(profiles, dict):
        LOG.warning("Ignoring malformed device profile file %s", path)
        return {}
    return {str(name): dict(values or {}) for name, values in profiles.items()}


def resolve_config(args: argparse.Namespace) -> DeviceConfig:
    profiles = load_profiles(Path(args.profiles))
    values = dict(profiles.get(args.profile, {}))
    if args.profile not in profiles and profiles:
        LOG.warning("Profile '%s' not found in %s", args.profile, args.profiles)

    for key in ("host", "username", "password"):
        override = getattr(args, key)
        if override:
            values[key] = override
    if args.verify_tls:
        values["verify_tls"] = True
    return DeviceConfig.from_mapping(values)


async def serve(
    config: DeviceConfig, bind: str = "127.0.0.1", port: int = 8090, log_level: Optional[str] = None
) -> None:
    """
    Run the control API and the plugin inside one asyncio loop.
    """

    import uvicorn

    level = configure_logging(log_level)
    host = LocalHost()
    plugin = ConnectDvrPlugin(host)
    app = create_app(plugin=plugin, host=host, config=config)

    server_config = uvicorn.Config(
        app=app,
        host=bind,
        port=port,
        log_config=None,
        log_level=logging.getLevelName(level).lower(),
        reload=False,
    )
    server = uvicorn.Server(config=server_config)

    def _handle_signal(signum: int, frame: Optional[object]) -> None:
        LOG.info("Received signal %s, shutting down server...", signum)
        server.should_exit = True

    for signame in ("SIGINT", "SIGTERM"):
        signal.signal(getattr(signal, signame), _handle_signal)

    await server.serve()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Haivision Connect DVR control plugin")
    parser.add_argument("--profile", default="default", help="device profile to load")
    parser.add_argument("--profiles", default=str(PROFILES_PATH), help="path to the device profile file")
    parser.add_argument("--host", default="", help="device address (overrides the profile)")
    parser.add_argument("--username", default="", help="device username (overrides the profile)")
    parser.add_argument("--password", default="", help="device password (overrides the profile)")
    parser.add_argument("--verify-tls", action="store_true", help="verify the device TLS certificate")
    parser.add_argument("--bind", default="127.0.0.1", help="bind host for the API server")
    parser.add_argument("--port", type=int, default=8090, help="bind port for the API server")
    parser.add_argument("--log-level", default="", help="log level name, e.g. DEBUG or WARNING")
    return parser.parse_args(argv)


def run(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    try:
        configure_logging(args.log_level)
    except ValueError as exc:
        raise SystemExit(str(exc)) from None
    config = resolve_config(args)

    try:
        asyncio.run(serve(config=config, bind=args.bind, port=args.port, log_level=args.log_level))
    except KeyboardInterrupt:
        LOG.info("Plugin interrupted by user.")


if __name__ == "__main__":
    run()
