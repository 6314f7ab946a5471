# bilichat
# Copyright (c) 2025 bilichat contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
命令行入口: python -m bilichat -id ROOM -cookie COOKIE
"""
import argparse
import asyncio
import logging
import signal
import sys
from datetime import timedelta
from pathlib import Path

from . import __version__
from .config import ConfigManager
from .exceptions import ConfigError, StartupError
from .logger import log, setup_logging
from .messages import ConnectionClosed, Event, RoomSnapshot
from .session import LiveSession


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bilichat", description="bilibili 直播弹幕客户端")
    parser.add_argument("-id", "--room-id", dest="room_id", type=int, default=None, help="直播间号")
    parser.add_argument("-cookie", "--cookie", dest="cookie", default=None, help="浏览器 Cookie")
    parser.add_argument("--config", type=Path, default=None, help="配置文件路径")
    parser.add_argument("--debug", action="store_true", help="输出调试日志")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def format_event(event: Event) -> str:
    medal = f"[{event.medal.name} {event.medal.level}] " if event.medal else ""
    author = f"{event.author}: " if event.author else ""
    return f"{event.timestamp:%H:%M:%S} {type(event).__name__} {medal}{author}{event.content}"


def format_snapshot(snapshot: RoomSnapshot) -> str:
    uptime = timedelta(seconds=int(snapshot.uptime.total_seconds()))
    top = ", ".join(f"{entry.rank}.{entry.name}({entry.score})" for entry in snapshot.online_rank[:3])
    return (
        f"[{snapshot.room_id}] {snapshot.title} | {snapshot.parent_area_name}/{snapshot.area_name} | "
        f"online {snapshot.online} | attention {snapshot.attention} | uptime {uptime} | top: {top}"
    )


async def _print_events(session: LiveSession, shutdown: asyncio.Event) -> None:
    while True:
        event = await session.events.get()
        print(format_event(event), flush=True)
        if isinstance(event, ConnectionClosed):
            shutdown.set()
            return


async def _print_snapshots(session: LiveSession) -> None:
    while True:
        snapshot = await session.snapshots.get()
        print(format_snapshot(snapshot), flush=True)


async def run(session: LiveSession) -> int:
    try:
        await session.start()
    except StartupError as e:
        log.error(f"Failed to connect live room {session.room_id}: {e}")
        print(f"Failed to connect live room {session.room_id}: {e}", file=sys.stderr)
        return 1

    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    def signal_handler(signum, frame):
        log.info(f"Received signal {signum}, stopping...")
        loop.call_soon_threadsafe(shutdown.set)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    consumers = [
        asyncio.create_task(_print_events(session, shutdown)),
        asyncio.create_task(_print_snapshots(session)),
    ]
    try:
        await shutdown.wait()
    finally:
        await session.stop()
        for task in consumers:
            task.cancel()
        await asyncio.gather(*consumers, return_exceptions=True)
    return 1 if session.err_reason else 0


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        config = ConfigManager(args.config)
        cookie = args.cookie or config.cookie
        room_id = args.room_id or config.room_id
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 1

    if not cookie or not room_id:
        if config.created:
            print(f"Created configuration file at {config.config_file}, please fill in cookie and room_id")
            return 0
        print("cookie and room_id are required, pass -cookie/-id or set them in the configuration file",
              file=sys.stderr)
        return 2

    level = logging.DEBUG if args.debug else str(config.get("log.level", "info")).upper()
    setup_logging(
        log_dir=config.config_file.parent / "logs",
        level=level,
        console=args.debug or bool(config.get("log.console", False)),
    )

    session = LiveSession(cookie, room_id, config.client_config())
    return asyncio.run(run(session))


if __name__ == "__main__":
    sys.exit(main())
