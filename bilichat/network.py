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
网络层：基于 aiohttp 的 HTTP 客户端与 WebSocket 连接

Both classes are thin collaborators of the session; tests replace them with
in-memory fakes exposing the same methods.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from http.cookies import CookieError, SimpleCookie
from typing import Any, Mapping

import aiohttp

from .exceptions import HttpError, TransportError
from .logger import log


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: bytes

    @property
    def ok(self) -> bool:
        return self.status == 200 and len(self.body) > 0

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


def parse_cookie(cookie: str) -> dict[str, str]:
    """
    解析浏览器 Cookie 字符串

    >>> parse_cookie("SESSDATA=abc; bili_jct=def")
    {'SESSDATA': 'abc', 'bili_jct': 'def'}
    """
    jar: SimpleCookie = SimpleCookie()
    try:
        jar.load(cookie or "")
    except CookieError:
        # SimpleCookie 对部分字符过于严格，退回到逐段切分
        result: dict[str, str] = {}
        for part in (cookie or "").split(";"):
            name, sep, value = part.strip().partition("=")
            if sep and name:
                result[name] = value
        return result
    return {name: morsel.value for name, morsel in jar.items()}


class WebSocketConnection:
    """
    A binary-message duplex connection.

    ``receive`` raises :class:`TransportError` once the peer closes or the
    socket fails, which is how the read loop learns the session is over.
    """

    def __init__(self, ws: aiohttp.ClientWebSocketResponse):
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send(self, data: bytes) -> None:
        try:
            await self._ws.send_bytes(data)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise TransportError(f"failed to send: {e}") from e

    async def receive(self) -> bytes:
        while True:
            try:
                msg = await self._ws.receive()
            except (aiohttp.ClientError, ConnectionError) as e:
                raise TransportError(f"failed to receive: {e}") from e
            if msg.type == aiohttp.WSMsgType.BINARY:
                return msg.data
            if msg.type == aiohttp.WSMsgType.TEXT:
                log.debug(f"Ignoring text frame: {msg.data[:50]}")
                continue
            if msg.type == aiohttp.WSMsgType.ERROR:
                raise TransportError(f"websocket error: {self._ws.exception()}")
            raise TransportError(f"websocket closed ({msg.type.name}, code {self._ws.close_code})")

    async def close(self) -> None:
        if not self._ws.closed:
            await self._ws.close()


class HttpClient:
    """
    HTTP 客户端

    Args:
        headers (Mapping[str, str], optional): 每个请求都会带上的请求头
    """

    def __init__(self, headers: Mapping[str, str] | None = None):
        self.headers: dict[str, str] = dict(headers or {})
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)
        return self._session

    async def get(self, url: str, params: Mapping[str, Any] | None = None,
                  headers: Mapping[str, str] | None = None) -> HttpResponse:
        try:
            async with self._get_session().get(url, params=_query(params), headers=headers) as resp:
                return HttpResponse(resp.status, await resp.read())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise HttpError(f"GET {url} failed: {e}") from e

    async def post_form(self, url: str, data: Mapping[str, Any],
                        headers: Mapping[str, str] | None = None) -> HttpResponse:
        try:
            async with self._get_session().post(url, data=_query(data), headers=headers) as resp:
                return HttpResponse(resp.status, await resp.read())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise HttpError(f"POST {url} failed: {e}") from e

    async def ws_connect(self, url: str, headers: Mapping[str, str] | None = None) -> WebSocketConnection:
        try:
            ws = await self._get_session().ws_connect(url, headers=headers)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"failed to connect {url}: {e}") from e
        return WebSocketConnection(ws)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


def _query(params: Mapping[str, Any] | None) -> dict[str, str] | None:
    if params is None:
        return None
    return {k: str(v) for k, v in params.items()}


__all__ = ["HttpResponse", "HttpClient", "WebSocketConnection", "parse_cookie"]
