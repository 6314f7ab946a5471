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
直播间信息轮询与历史弹幕
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Mapping, TypeVar

from .classifier import dig, dig_int, dig_str
from .constants import HISTORY_URL, ONLINE_RANK_URL, POLL_INTERVAL, ROOM_INFO_URL
from .exceptions import HttpError
from .logger import log
from .messages import ChatMessage, RankEntry, RoomSnapshot
from .network import HttpClient

T = TypeVar("T")

LIVE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def offer_latest(queue: asyncio.Queue[T], item: T) -> None:
    """Put without blocking; when the queue is full the oldest item is discarded."""
    while True:
        try:
            queue.put_nowait(item)
            return
        except asyncio.QueueFull:
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass


def parse_uptime(live_time: str, now: datetime | None = None) -> timedelta:
    try:
        started = datetime.strptime(live_time, LIVE_TIME_FORMAT)
    except (TypeError, ValueError):
        return timedelta(0)
    uptime = (now or datetime.now()) - started
    return uptime if uptime > timedelta(0) else timedelta(0)


async def _get_json(http: HttpClient, url: str, params: Mapping[str, Any],
                    headers: Mapping[str, str] | None = None) -> Any:
    resp = await http.get(url, params=params, headers=headers)
    if not resp.ok:
        raise HttpError(f"GET {url} returned status {resp.status}")
    try:
        return resp.json()
    except ValueError as e:
        raise HttpError(f"GET {url} returned invalid JSON: {e}") from e


class RoomPoller:
    """
    定时拉取直播间信息与高能榜

    Args:
        http      (HttpClient)   : HTTP 客户端
        room_id   (int)          : 直播间号
        queue     (asyncio.Queue): 快照输出队列，满时丢弃最旧的快照
        interval  (float)        : 轮询间隔（秒）. Defaults to 30
        page_size (int)          : 高能榜条数. Defaults to 50
    """

    def __init__(
        self,
        http: HttpClient,
        room_id: int,
        queue: asyncio.Queue[RoomSnapshot],
        interval: float = POLL_INTERVAL,
        page_size: int = 50,
        headers: Mapping[str, str] | None = None,
    ):
        self.http = http
        self.room_id = room_id
        self.queue = queue
        self.interval = interval
        self.page_size = page_size
        self.headers = headers

    async def fetch_snapshot(self) -> RoomSnapshot:
        info = await _get_json(self.http, ROOM_INFO_URL, {"room_id": self.room_id}, self.headers)
        uid = dig_int(info, "data.uid")

        rank = await _get_json(
            self.http,
            ONLINE_RANK_URL,
            {"ruid": uid, "roomId": self.room_id, "page": 1, "pageSize": self.page_size},
            self.headers,
        )
        items = dig(rank, "data.OnlineRankItem", [])
        entries = tuple(
            RankEntry(
                name=dig_str(item, "name"),
                score=dig_int(item, "score"),
                rank=dig_int(item, "userRank"),
            )
            for item in (items if isinstance(items, list) else [])
        )

        return RoomSnapshot(
            room_id=self.room_id,
            uid=uid,
            title=dig_str(info, "data.title"),
            parent_area_name=dig_str(info, "data.parent_area_name"),
            area_name=dig_str(info, "data.area_name"),
            online=dig_int(info, "data.online"),
            attention=dig_int(info, "data.attention"),
            uptime=parse_uptime(dig_str(info, "data.live_time")),
            online_rank=entries,
        )

    async def poll_once(self) -> RoomSnapshot | None:
        try:
            snapshot = await self.fetch_snapshot()
        except HttpError as e:
            log.error(f"Failed to fetch room information: {e}")
            return None
        offer_latest(self.queue, snapshot)
        return snapshot

    async def run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)


async def fetch_history(http: HttpClient, room_id: int,
                        headers: Mapping[str, str] | None = None) -> list[ChatMessage]:
    """
    获取直播间历史弹幕

    Returns:
        list[ChatMessage]: 按服务器返回顺序排列的历史弹幕
    """
    body = await _get_json(http, HISTORY_URL, {"roomid": room_id}, headers)
    rooms = dig(body, "data.room", [])
    messages = []
    for item in rooms if isinstance(rooms, list) else []:
        try:
            timestamp = datetime.strptime(dig_str(item, "timeline"), LIVE_TIME_FORMAT)
        except ValueError:
            timestamp = datetime.now()
        messages.append(ChatMessage(
            cmd="DANMU_MSG",
            author=dig_str(item, "nickname"),
            content=dig_str(item, "text").replace("\r", ""),
            timestamp=timestamp,
        ))
    return messages


__all__ = ["RoomPoller", "fetch_history", "offer_latest", "parse_uptime"]
