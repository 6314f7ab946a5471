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
事件分类：把服务器推送的 JSON 转换为领域事件

Rules are registered per command with :func:`rule`. Field access goes
through :func:`dig`, which returns a default instead of raising, so a payload
with missing fields still classifies into an event with empty values.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from .messages import *

Rule = Callable[[str, Any], Event]

ROOM_ENTER_TEXT = "entered room"

_rules: dict[str, Rule] = {}

_MISSING = object()


def rule(*cmds: str) -> Callable[[Rule], Rule]:
    """Register the decorated function as the rule for ``cmds``"""
    def decorator(func: Rule) -> Rule:
        for cmd in cmds:
            _rules[cmd] = func
        return func
    return decorator


def dig(obj: Any, path: str, default: Any = None) -> Any:
    """
    按路径取值，路径段以 ``.`` 分隔，数字段用于列表下标。

    >>> dig({"info": [0, "hi", [1, "alice"]]}, "info.2.1")
    'alice'
    """
    current = obj
    for key in path.split("."):
        if isinstance(current, dict):
            current = current.get(key, _MISSING)
        elif isinstance(current, (list, tuple)) and key.lstrip("-").isdigit():
            index = int(key)
            current = current[index] if -len(current) <= index < len(current) else _MISSING
        else:
            current = _MISSING
        if current is _MISSING or current is None:
            return default
    return current


def dig_str(obj: Any, path: str) -> str:
    value = dig(obj, path, "")
    if isinstance(value, (dict, list)):
        return ""
    return str(value)


def dig_int(obj: Any, path: str) -> int:
    value = dig(obj, path, 0)
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return 0


def _medal(name: str, level: int) -> Medal | None:
    if not name:
        return None
    return Medal(name=name, level=level)


def _timestamp(seconds: int) -> datetime:
    # 服务器偶尔给出毫秒时间戳
    if seconds > 10 ** 11:
        seconds //= 1000
    if seconds <= 0:
        return datetime.now()
    try:
        return datetime.fromtimestamp(seconds)
    except (OverflowError, OSError, ValueError):
        return datetime.now()


def _clean(content: str) -> str:
    return content.replace("\r", "")


def normalize_cmd(cmd: str) -> str:
    # DANMU_MSG 事件名可能带后缀：DANMU_MSG:4:0:2:2:2:0
    if cmd.startswith("DANMU_MSG:"):
        return "DANMU_MSG"
    return cmd


@rule("DANMU_MSG")
def _chat(cmd: str, body: Any) -> Event:
    return ChatMessage(
        cmd=cmd,
        author=dig_str(body, "info.2.1"),
        content=_clean(dig_str(body, "info.1")),
        timestamp=_timestamp(dig_int(body, "info.0.4")),
        medal=_medal(dig_str(body, "info.3.1"), dig_int(body, "info.3.0")),
    )


@rule("SUPER_CHAT_MESSAGE", "SUPER_CHAT_MESSAGE_JPN")
def _super_chat(cmd: str, body: Any) -> Event:
    price = dig_int(body, "data.price")
    return SuperChatMessage(
        cmd=cmd,
        author=dig_str(body, "data.user_info.uname"),
        content=_clean(f"[¥ {price}] {dig_str(body, 'data.message')}"),
        timestamp=_timestamp(dig_int(body, "data.start_time")),
        medal=_medal(dig_str(body, "data.medal_info.medal_name"),
                     dig_int(body, "data.medal_info.medal_level")),
        price=price,
    )


@rule("COMBO_SEND")
def _combo(cmd: str, body: Any) -> Event:
    return ComboGift(
        cmd=cmd,
        author=dig_str(body, "data.r_uname"),
        content=_clean(
            f"{dig_str(body, 'data.action')} {dig_int(body, 'data.combo_num')} * "
            f"{dig_str(body, 'data.gift_name')}"
        ),
    )


@rule("GUARD_BUY")
def _guard(cmd: str, body: Any) -> Event:
    return GuardPurchase(
        cmd=cmd,
        author=dig_str(body, "data.username"),
        content=_clean(f"{dig_int(body, 'data.num')} * {dig_str(body, 'data.gift_name')}"),
        timestamp=_timestamp(dig_int(body, "data.start_time")),
    )


@rule("INTERACT_WORD")
def _enter(cmd: str, body: Any) -> Event:
    return RoomEnter(
        cmd=cmd,
        author=dig_str(body, "data.uname"),
        content=ROOM_ENTER_TEXT,
        timestamp=_timestamp(dig_int(body, "data.timestamp")),
        medal=_medal(dig_str(body, "data.fans_medal.medal_name"),
                     dig_int(body, "data.fans_medal.medal_level")),
    )


@rule("SEND_GIFT")
def _gift(cmd: str, body: Any) -> Event:
    return GiftMessage(
        cmd=cmd,
        author=dig_str(body, "data.uname"),
        content=_clean(
            f"{dig_str(body, 'data.action')} {dig_int(body, 'data.num')} * "
            f"{dig_str(body, 'data.giftName')}"
        ),
        timestamp=_timestamp(dig_int(body, "data.timestamp")),
        medal=_medal(dig_str(body, "data.medal_info.medal_name"),
                     dig_int(body, "data.medal_info.medal_level")),
    )


@rule("ONLINE_RANK_COUNT")
def _rank_count(cmd: str, body: Any) -> Event:
    return RankUpdate(cmd=cmd, content=str(dig_int(body, "data.count")))


def classify(cmd: str, body: Any) -> Event:
    """
    分类一条消息

    Args:
        cmd  (str): 消息中的 cmd 字段
        body (Any): 解析后的 JSON

    Returns:
        Event: 对应的领域事件，未知命令返回 Unrecognized
    """
    cmd = normalize_cmd(cmd or "")
    handler = _rules.get(cmd)
    if handler is None:
        return Unrecognized(cmd=cmd, body=body)
    return handler(cmd, body)


def classify_body(body: Any) -> Event:
    """Classify a decoded frame body by its own ``cmd`` field"""
    return classify(dig_str(body, "cmd"), body)


def known_commands() -> list[str]:
    return sorted(_rules)


__all__ = [
    "rule",
    "dig",
    "dig_str",
    "dig_int",
    "normalize_cmd",
    "classify",
    "classify_body",
    "known_commands",
]
