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
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any


@dataclass(frozen=True)
class Medal:
    """
    粉丝勋章
    .name: 勋章名
    .level: 勋章等级
    """
    name: str
    level: int


@dataclass(frozen=True)
class Event:
    """
    直播间事件
    .cmd: 原始命令名
    .author: 发送者
    .content: 展示内容（已去除 \\r）
    .timestamp: 事件时间
    .medal: 粉丝勋章，可能为空
    """
    cmd: str
    author: str = ""
    content: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    medal: Medal | None = None


@dataclass(frozen=True)
class ChatMessage(Event):
    """弹幕"""


@dataclass(frozen=True)
class GiftMessage(Event):
    """礼物"""


@dataclass(frozen=True)
class SuperChatMessage(Event):
    """
    醒目留言
    .price: 价格（元）
    """
    price: int = 0


@dataclass(frozen=True)
class RoomEnter(Event):
    """进入直播间"""


@dataclass(frozen=True)
class ComboGift(Event):
    """礼物连击"""


@dataclass(frozen=True)
class GuardPurchase(Event):
    """上舰"""


@dataclass(frozen=True)
class RankUpdate(Event):
    """高能榜人数更新，content 为人数"""


@dataclass(frozen=True)
class Unrecognized(Event):
    """
    Command the classifier has no rule for. Never queued.
    .body: the raw JSON body
    """
    body: Any = None


@dataclass(frozen=True)
class ConnectionClosed(Event):
    """Terminal event: the live connection ended; content holds the reason."""


@dataclass(frozen=True)
class RankEntry:
    name: str
    score: int
    rank: int


@dataclass(frozen=True)
class RoomSnapshot:
    """
    直播间信息快照，每次轮询整体重建
    """
    room_id: int
    uid: int = 0
    title: str = ""
    parent_area_name: str = ""
    area_name: str = ""
    online: int = 0
    attention: int = 0
    uptime: timedelta = timedelta(0)
    online_rank: tuple[RankEntry, ...] = ()


__all__ = [
    "Medal",
    "Event",
    "ChatMessage",
    "GiftMessage",
    "SuperChatMessage",
    "RoomEnter",
    "ComboGift",
    "GuardPurchase",
    "RankUpdate",
    "Unrecognized",
    "ConnectionClosed",
    "RankEntry",
    "RoomSnapshot",
]
