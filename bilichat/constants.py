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

from enum import Enum, IntEnum


class Operation(IntEnum):
    # 数据包类型（header 中的 op 字段）
    HEARTBEAT = 2
    HEARTBEAT_REPLY = 3
    MESSAGE = 5
    AUTH = 7
    AUTH_REPLY = 8


class ProtocolVersion(IntEnum):
    RAW_JSON = 0
    HEARTBEAT = 1
    ZLIB_JSON = 2
    BROTLI_JSON = 3


class SessionState(Enum):
    IDLE = "Idle"
    RESOLVING_IDENTITY = "Resolving identity"
    RESOLVING_TOKEN = "Resolving token"
    CONNECTING = "Connecting"
    AUTHENTICATING = "Authenticating"
    ESTABLISHED = "Established"
    CLOSED = "Closed"


HEADER_LENGTH = 16
HEADER_FORMAT = ">IHHII"

HEARTBEAT_PAYLOAD = b"[object Object]"
HEARTBEAT_INTERVAL = 30.0
POLL_INTERVAL = 30.0

# 握手包中的固定字段
HANDSHAKE_PROTOCOL_VERSION = ProtocolVersion.ZLIB_JSON
HANDSHAKE_PLATFORM = "web"
HANDSHAKE_TYPE = 2

# 发送弹幕的默认样式
DANMAKU_COLOR = 16777215
DANMAKU_FONT_SIZE = 25
DANMAKU_MODE = 1

NAV_URL = "https://api.bilibili.com/x/web-interface/nav"
DANMU_INFO_URL = "https://api.live.bilibili.com/xlive/web-room/v1/index/getDanmuInfo"
ROOM_INFO_URL = "https://api.live.bilibili.com/room/v1/room/get_info"
ONLINE_RANK_URL = "https://api.live.bilibili.com/xlive/general-interface/v1/rank/getOnlineGoldRank"
HISTORY_URL = "https://api.live.bilibili.com/xlive/web-room/v1/dM/gethistory"
SEND_MESSAGE_URL = "https://api.live.bilibili.com/msg/send"

# nav 接口未返回 wbi_img 时使用的公开密钥
DEFAULT_WBI_IMG_URL = "https://i0.hdslb.com/bfs/wbi/7cd084941338484aae1ad9425b84077c.png"
DEFAULT_WBI_SUB_URL = "https://i0.hdslb.com/bfs/wbi/4932caff0ff746eab6f01bf08b70ac45.png"

WEB_LOCATION = "444.8"

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36"
)

HEADERS = {
    "Origin": "https://live.bilibili.com",
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "zh-CN,zh;q=0.8,zh-TW;q=0.7,zh-HK;q=0.5,en-US;q=0.3,en;q=0.2",
}

__all__ = [
    "Operation",
    "ProtocolVersion",
    "SessionState",
    "HEADER_LENGTH",
    "HEADER_FORMAT",
    "HEARTBEAT_PAYLOAD",
    "HEARTBEAT_INTERVAL",
    "POLL_INTERVAL",
    "HEADERS",
]
