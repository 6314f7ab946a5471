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
r"""
bilichat.session

直播间弹幕会话：认证、连接、心跳、读循环
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any

from .classifier import classify_body, dig, dig_int, dig_str
from .config import ClientConfig
from .constants import *
from .constants import (
    DANMAKU_COLOR,
    DANMAKU_FONT_SIZE,
    DANMAKU_MODE,
    DANMU_INFO_URL,
    DEFAULT_WBI_IMG_URL,
    DEFAULT_WBI_SUB_URL,
    HANDSHAKE_PLATFORM,
    HANDSHAKE_PROTOCOL_VERSION,
    HANDSHAKE_TYPE,
    NAV_URL,
    SEND_MESSAGE_URL,
    WEB_LOCATION,
)
from .exceptions import HttpError, ProtocolError, SessionError, StartupError, TransportError
from .logger import log
from .messages import ConnectionClosed, Event, RoomSnapshot, Unrecognized
from .network import HttpClient, HttpResponse, WebSocketConnection, parse_cookie
from .poller import RoomPoller, fetch_history
from .protocol import decode_header, encode, unpack
from .wbi import sign_params


class LiveSession:
    """
    Websocket 实时获取直播弹幕

    Events are delivered through two bounded queues owned by the session:

    + events:    ChatMessage / GiftMessage / SuperChatMessage / RoomEnter /
                 ComboGift / GuardPurchase / RankUpdate, and a final
                 ConnectionClosed when the live connection drops
    + snapshots: RoomSnapshot, rebuilt on every poll

    There is no reconnection: once the connection is lost the session stays
    closed and a new session has to be created.
    """

    def __init__(
        self,
        cookie: str,
        room_id: int,
        config: ClientConfig | None = None,
        http: HttpClient | None = None,
    ):
        """
        Args:
            cookie  (str)                  : 浏览器 Cookie 字符串
            room_id (int)                  : 直播间号
            config  (ClientConfig, optional): 运行参数. Defaults to ClientConfig()
            http    (HttpClient, optional)  : HTTP 客户端，未传入时自动创建并在 stop 时关闭
        """
        self.cookie = cookie
        self.cookies = parse_cookie(cookie)
        self.room_id = room_id
        self.config = config if config is not None else ClientConfig()
        self.http = http if http is not None else HttpClient()
        self._owns_http = http is None

        self.events: asyncio.Queue[Event] = asyncio.Queue(maxsize=self.config.event_queue_size)
        self.snapshots: asyncio.Queue[RoomSnapshot] = asyncio.Queue(maxsize=self.config.snapshot_queue_size)

        # 以下字段只在建立连接前写入一次
        self.uid: int = 0
        self.token: str = ""
        self.hosts: list[str] = []
        self.wbi_img_url: str = ""
        self.wbi_sub_url: str = ""

        self.popularity: int | None = None
        self.err_reason: str = ""

        self.poller = RoomPoller(
            self.http,
            room_id,
            self.snapshots,
            interval=self.config.poll_interval,
            page_size=self.config.rank_page_size,
            headers=self._headers(),
        )

        self._state = SessionState.IDLE
        self._conn: WebSocketConnection | None = None
        self._sequence = 0
        self._tasks: list[asyncio.Task] = []
        self._history_fetched = False
        self._history_done = asyncio.Event()
        self._closed = asyncio.Event()
        self._stopping = False

    def __repr__(self):
        return f"<LiveSession room={self.room_id} {self._state.value}>"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def sequence(self) -> int:
        """Sequence number of the last packet sent"""
        return self._sequence

    async def __aenter__(self) -> "LiveSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def _set_state(self, state: SessionState) -> None:
        log.debug(f"[{self.room_id}] {self._state.value} -> {state.value}")
        self._state = state

    def _headers(self) -> dict[str, str]:
        headers = dict(HEADERS)
        headers["User-Agent"] = self.config.user_agent
        headers["Referer"] = f"https://live.bilibili.com/{self.room_id}"
        if self.cookie:
            headers["Cookie"] = self.cookie
        return headers

    async def start(self) -> None:
        """
        连接直播间

        Raises:
            SessionError: 会话已经启动过
            StartupError: 获取用户信息、令牌、连接主机或认证失败
        """
        if self._state is not SessionState.IDLE:
            raise SessionError(f"session is {self._state.value}, it can only be started once")

        log.info(f"Connecting to live room {self.room_id}")
        try:
            await self._resolve_identity()
            await self._resolve_token()
            await self._connect()
            await self._authenticate()
        except BaseException:
            await self._release()
            self._set_state(SessionState.CLOSED)
            self._closed.set()
            raise

        self._set_state(SessionState.ESTABLISHED)
        log.info(f"Connected to live room {self.room_id} as uid {self.uid}")
        self._spawn_tasks()

    async def stop(self) -> None:
        """
        断开连接，取消所有任务
        """
        if self._stopping:
            return
        self._stopping = True
        log.info(f"Closing live room {self.room_id}")

        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        for task in tasks:
            task.cancel()
        await self._release()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                log.error(f"Task ended with error: {result!r}")
        self._tasks.clear()
        if self._owns_http:
            await self.http.close()

        self._set_state(SessionState.CLOSED)
        self._closed.set()
        log.info(f"Live room {self.room_id} closed")

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def send_message(self, text: str) -> bool:
        """
        直播间发送弹幕

        Args:
            text (str): 弹幕内容

        Returns:
            bool: 是否发送成功
        """
        if self._state is not SessionState.ESTABLISHED:
            raise SessionError(f"cannot send message while {self._state.value}")

        csrf = self.cookies.get("bili_jct", "")
        data = {
            "bubble": 0,
            "msg": text,
            "color": DANMAKU_COLOR,
            "mode": DANMAKU_MODE,
            "fontsize": DANMAKU_FONT_SIZE,
            "rnd": int(time.time()),
            "roomid": self.room_id,
            "csrf": csrf,
            "csrf_token": csrf,
        }
        try:
            resp = await self.http.post_form(SEND_MESSAGE_URL, data, headers=self._headers())
        except HttpError as e:
            log.error(f"Failed to send message: {e}")
            return False
        if not resp.ok:
            log.error(f"Failed to send message, http status: {resp.status}")
            return False
        try:
            body = resp.json()
        except ValueError as e:
            log.error(f"Failed to send message, invalid response: {e}")
            return False
        if (code := dig_int(body, "code")) != 0:
            log.warning(f"Failed to send message, code: {code}, message: {dig_str(body, 'message')}")
            return False
        return True

    # 启动流程

    async def _resolve_identity(self) -> None:
        self._set_state(SessionState.RESOLVING_IDENTITY)
        if self.uid:
            return
        body = _startup_json(await self._startup_get(NAV_URL, None, "user_id"), "user_id")

        if dig(body, "data.wbi_img") is not None:
            self.wbi_img_url = dig_str(body, "data.wbi_img.img_url")
            self.wbi_sub_url = dig_str(body, "data.wbi_img.sub_url")
        if not self.wbi_img_url or not self.wbi_sub_url:
            self.wbi_img_url = DEFAULT_WBI_IMG_URL
            self.wbi_sub_url = DEFAULT_WBI_SUB_URL
        self.uid = dig_int(body, "data.mid")
        log.debug(f"Resolved uid {self.uid}")

    async def _resolve_token(self) -> None:
        self._set_state(SessionState.RESOLVING_TOKEN)
        params = sign_params(
            {"id": self.room_id, "type": 0, "web_location": WEB_LOCATION},
            self.wbi_img_url,
            self.wbi_sub_url,
        )
        body = _startup_json(await self._startup_get(DANMU_INFO_URL, params, "token"), "token")

        self.token = dig_str(body, "data.token")
        host_list = dig(body, "data.host_list", [])
        self.hosts = [
            f"wss://{dig_str(item, 'host')}:{dig_int(item, 'wss_port')}/sub"
            for item in (host_list if isinstance(host_list, list) else [])
            if dig_str(item, "host")
        ]
        if not self.hosts:
            raise StartupError("failed to get wss host")
        log.debug(f"Got {len(self.hosts)} candidate hosts")

    async def _startup_get(self, url: str, params: dict[str, Any] | None, what: str) -> HttpResponse:
        try:
            resp = await self.http.get(url, params=params, headers=self._headers())
        except HttpError as e:
            raise StartupError(f"failed to get {what}, err: {e}") from e
        if not resp.ok:
            raise StartupError(f"failed to get {what}, http status: {resp.status}")
        return resp

    async def _connect(self) -> None:
        self._set_state(SessionState.CONNECTING)
        last_error: Exception | None = None
        for url in self.hosts:
            log.info(f"Trying host {url}")
            try:
                self._conn = await self.http.ws_connect(url, headers=self._headers())
                break
            except TransportError as e:
                log.warning(f"Failed to connect {url}: {e}")
                last_error = e
        if self._conn is None:
            raise StartupError(f"websocket connect err: {last_error}")

    async def _authenticate(self) -> None:
        self._set_state(SessionState.AUTHENTICATING)
        auth = {
            "uid": self.uid,
            "roomid": self.room_id,
            "protover": int(HANDSHAKE_PROTOCOL_VERSION),
            "buvid": self.cookies.get("buvid3", ""),
            "platform": HANDSHAKE_PLATFORM,
            "type": HANDSHAKE_TYPE,
            "key": self.token,
        }
        payload = json.dumps(auth, separators=(",", ":")).encode()
        try:
            await self._send(ProtocolVersion.HEARTBEAT, Operation.AUTH, payload)
            raw = await self._conn.receive()
            header = decode_header(raw)
        except (TransportError, ProtocolError) as e:
            raise StartupError(f"invalid auth response: {e}") from e

        if header.operation != Operation.AUTH_REPLY:
            raise StartupError(f"invalid auth response op code: {header.operation}")
        body_bytes = raw[header.header_length:header.total_length]
        try:
            body = json.loads(body_bytes.decode("utf-8"))
        except ValueError as e:
            raise StartupError(f"invalid auth response body: {body_bytes!r}") from e
        code = dig(body, "code")
        if code is None:
            raise StartupError("invalid auth response, not found code")
        if code != 0:
            raise StartupError(f"invalid auth response code: {code}, resp: {body_bytes!r}")
        log.debug("Authentication succeeded")

    def _spawn_tasks(self) -> None:
        self._tasks.append(asyncio.create_task(self._read_loop(), name=f"bilichat_read_{self.room_id}"))
        self._tasks.append(asyncio.create_task(self._heartbeat(), name=f"bilichat_heartbeat_{self.room_id}"))
        self._tasks.append(asyncio.create_task(self.poller.run(), name=f"bilichat_poller_{self.room_id}"))
        if not self._history_fetched:
            self._history_fetched = True
            self._tasks.append(asyncio.create_task(self._replay_history(), name=f"bilichat_history_{self.room_id}"))
        else:
            self._history_done.set()

    # 运行期任务

    async def _send(self, version: int, operation: int, payload: bytes) -> None:
        if self._conn is None:
            raise TransportError("not connected")
        self._sequence += 1
        data = encode(version, operation, self._sequence, payload)
        log.debug(f"Sending raw data: {data!r}")
        await self._conn.send(data)

    async def _heartbeat(self) -> None:
        """
        定时发送心跳包
        """
        while True:
            await asyncio.sleep(self.config.heartbeat_interval)
            try:
                await self._send(ProtocolVersion.HEARTBEAT, Operation.HEARTBEAT, HEARTBEAT_PAYLOAD)
                log.debug("Sent heartbeat")
            except TransportError as e:
                log.error(f"Failed to send heartbeat: {e}")

    async def _replay_history(self) -> None:
        try:
            try:
                messages = await fetch_history(self.http, self.room_id, self._headers())
            except HttpError as e:
                log.error(f"Failed to fetch chat history: {e}")
                return
            for message in messages:
                await self.events.put(message)
            log.debug(f"Replayed {len(messages)} history messages")
        finally:
            self._history_done.set()

    async def _read_loop(self) -> None:
        await self._history_done.wait()
        while True:
            try:
                data = await self._conn.receive()
            except TransportError as e:
                await self._connection_lost(str(e))
                return
            await self._handle_data(data)

    async def _handle_data(self, data: bytes) -> None:
        """
        处理数据
        """
        try:
            unpacked = unpack(data)
        except ProtocolError as e:
            log.debug(f"Dropped packet: {e}")
            return

        if unpacked.popularity is not None:
            self.popularity = unpacked.popularity
            log.debug(f"Heartbeat reply, popularity {self.popularity}")
            return

        for frame in unpacked.frames:
            if frame.header.operation != Operation.MESSAGE:
                continue
            try:
                body = frame.json()
            except ValueError as e:
                log.debug(f"Dropped frame with invalid JSON: {e}")
                continue
            if not isinstance(body, dict):
                continue
            try:
                event = classify_body(body)
            except Exception as e:
                log.debug(f"Dropped frame {dig_str(body, 'cmd')}: {e!r}")
                continue
            if isinstance(event, Unrecognized):
                log.debug(f"Unrecognized command {event.cmd}")
                continue
            await self.events.put(event)

    async def _connection_lost(self, reason: str) -> None:
        if self._stopping:
            return
        log.error(f"Connection to live room {self.room_id} lost: {reason}")
        self.err_reason = reason
        self._set_state(SessionState.CLOSED)

        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current:
                task.cancel()
        await self._release()
        self._closed.set()
        await self.events.put(ConnectionClosed(cmd="DISCONNECT", content=reason))

    async def _release(self) -> None:
        if self._conn is not None:
            try:
                await self._conn.close()
            except TransportError as e:
                log.debug(f"Error while closing connection: {e}")
        if self._owns_http and self._state is not SessionState.ESTABLISHED:
            await self.http.close()


def _startup_json(resp: HttpResponse, what: str) -> Any:
    try:
        body = resp.json()
    except ValueError as e:
        raise StartupError(f"failed to get {what}, invalid body: {e}") from e
    if (code := dig_int(body, "code")) != 0:
        raise StartupError(f"failed to get {what}, code: {code}")
    return body


__all__ = ["LiveSession"]
