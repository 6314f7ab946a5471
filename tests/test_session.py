import asyncio
import json
import struct
import unittest

from fakes import *

from bilichat import classifier
from bilichat.config import ClientConfig
from bilichat.constants import DANMU_INFO_URL, NAV_URL, SEND_MESSAGE_URL, Operation, SessionState
from bilichat.exceptions import SessionError, StartupError
from bilichat.messages import ChatMessage, ConnectionClosed, RoomSnapshot
from bilichat.network import HttpResponse
from bilichat.protocol import decode_header, encode
from bilichat.session import LiveSession


class SessionTestCase(unittest.IsolatedAsyncioTestCase):
    def make_session(self, routes=None, connections=None, **config) -> LiveSession:
        config.setdefault("heartbeat_interval", 60)
        config.setdefault("poll_interval", 60)
        self.http = FakeHttp(live_routes() if routes is None else routes, connections)
        session = LiveSession(COOKIE, ROOM_ID, ClientConfig(**config), http=self.http)
        self.addAsyncCleanup(session.stop)
        return session

    async def started(self, **kwargs) -> tuple[LiveSession, FakeConnection]:
        conn = FakeConnection(auth_reply())
        connections = kwargs.pop("connections", {host_url("a.example.com"): conn})
        session = self.make_session(connections=connections, **kwargs)
        await session.start()
        return session, conn


class TestStartup(SessionTestCase):
    async def test_handshake(self):
        session, conn = await self.started()
        self.assertIs(session.state, SessionState.ESTABLISHED)
        self.assertEqual(session.uid, 42)
        self.assertEqual(session.token, "tok")
        self.assertEqual(session.hosts, [host_url("a.example.com"), host_url("b.example.com")])

        header = decode_header(conn.sent[0])
        self.assertEqual((header.version, header.operation, header.sequence), (1, Operation.AUTH, 1))
        auth = json.loads(conn.sent[0][16:])
        self.assertEqual(auth, {
            "uid": 42, "roomid": ROOM_ID, "protover": 2, "buvid": "bv3",
            "platform": "web", "type": 2, "key": "tok",
        })

    async def test_token_request_is_signed(self):
        await self.started()
        _, _, params, headers = self.http.requests_to(DANMU_INFO_URL)[0]
        self.assertEqual(params["id"], ROOM_ID)
        self.assertEqual(params["type"], 0)
        self.assertEqual(params["web_location"], "444.8")
        self.assertEqual(len(params["w_rid"]), 32)
        self.assertIn("wts", params)
        self.assertEqual(headers["Referer"], f"https://live.bilibili.com/{ROOM_ID}")
        self.assertEqual(headers["Cookie"], COOKIE)

    async def test_host_failover(self):
        conn = FakeConnection(auth_reply())
        session, _ = await self.started(connections={host_url("b.example.com"): conn})
        self.assertEqual(self.http.ws_attempts, [host_url("a.example.com"), host_url("b.example.com")])
        self.assertIs(session.state, SessionState.ESTABLISHED)

    async def test_all_hosts_fail(self):
        session = self.make_session(connections={})
        with self.assertRaises(StartupError):
            await session.start()
        self.assertIs(session.state, SessionState.CLOSED)

    async def test_identity_rejected(self):
        routes = live_routes()
        routes[NAV_URL] = json_response({"code": -101, "message": "账号未登录"})
        session = self.make_session(routes=routes)
        with self.assertRaises(StartupError):
            await session.start()
        self.assertEqual(self.http.requests_to(DANMU_INFO_URL), [])

    async def test_identity_http_failure(self):
        routes = live_routes()
        routes[NAV_URL] = HttpResponse(500, b"")
        session = self.make_session(routes=routes)
        with self.assertRaises(StartupError):
            await session.start()

    async def test_no_hosts(self):
        session = self.make_session(routes=live_routes(hosts=()))
        with self.assertRaises(StartupError):
            await session.start()

    async def test_auth_rejected(self):
        conn = FakeConnection(auth_reply(code=-1))
        session = self.make_session(connections={host_url("a.example.com"): conn})
        with self.assertRaises(StartupError):
            await session.start()
        self.assertTrue(conn.closed)
        self.assertIs(session.state, SessionState.CLOSED)

    async def test_auth_wrong_operation(self):
        conn = FakeConnection(encode(1, Operation.HEARTBEAT_REPLY, 1, struct.pack(">I", 1)))
        session = self.make_session(connections={host_url("a.example.com"): conn})
        with self.assertRaises(StartupError):
            await session.start()

    async def test_start_twice(self):
        session, _ = await self.started()
        with self.assertRaises(SessionError):
            await session.start()


class TestEstablished(SessionTestCase):
    async def test_events_are_classified(self):
        session, conn = await self.started()
        conn.feed(message_packet(
            danmaku("alice", "hello"),
            {"cmd": "WATCHED_CHANGE", "data": {"num": 1}},
            danmaku("bob", "world"),
        ))
        first = await asyncio.wait_for(session.events.get(), 1)
        second = await asyncio.wait_for(session.events.get(), 1)
        self.assertEqual((first.author, first.content), ("alice", "hello"))
        self.assertEqual((second.author, second.content), ("bob", "world"))
        await asyncio.sleep(0.05)
        self.assertTrue(session.events.empty())

    async def test_bad_packets_are_dropped(self):
        session, conn = await self.started()
        conn.feed(b"\x00\x01")
        conn.feed(encode(2, Operation.MESSAGE, 0, b"not zlib"))
        conn.feed(encode(0, Operation.MESSAGE, 0, b"{not json"))
        conn.feed(message_packet(danmaku("alice", "still here")))
        event = await asyncio.wait_for(session.events.get(), 1)
        self.assertEqual(event.content, "still here")

    async def test_unrepresentable_number_drops_only_that_frame(self):
        session, conn = await self.started()
        conn.feed(message_packet({"cmd": "SUPER_CHAT_MESSAGE", "data": {"price": float("inf"), "message": "x"}}))
        conn.feed(message_packet({"cmd": "ONLINE_RANK_COUNT", "data": {"count": float("-inf")}}))
        conn.feed(message_packet(danmaku("alice", "after")))
        events = [await asyncio.wait_for(session.events.get(), 1) for _ in range(3)]
        self.assertEqual(events[0].price, 0)
        self.assertEqual(events[1].content, "0")
        self.assertEqual((events[2].author, events[2].content), ("alice", "after"))
        self.assertIs(session.state, SessionState.ESTABLISHED)

    async def test_classifier_failure_skips_frame(self):
        session, conn = await self.started()
        bad_body = {"cmd": "SEND_GIFT", "data": {}}

        def broken(cmd, body):
            raise RuntimeError("broken rule")

        self.addCleanup(classifier._rules.__setitem__, "SEND_GIFT", classifier._rules["SEND_GIFT"])
        classifier._rules["SEND_GIFT"] = broken
        conn.feed(message_packet(bad_body, danmaku("alice", "still here")))
        event = await asyncio.wait_for(session.events.get(), 1)
        self.assertEqual(event.content, "still here")
        self.assertFalse(any(t.done() for t in session._tasks if t.get_name().startswith("bilichat_read")))

    async def test_history_replayed_before_live(self):
        conn = FakeConnection(auth_reply(), message_packet(danmaku("live", "now")))
        session = self.make_session(
            routes=live_routes(history=[("old1", "first"), ("old2", "second\r")]),
            connections={host_url("a.example.com"): conn},
        )
        await session.start()
        events = [await asyncio.wait_for(session.events.get(), 1) for _ in range(3)]
        self.assertEqual([e.content for e in events], ["first", "second", "now"])
        self.assertTrue(all(isinstance(e, ChatMessage) for e in events))

    async def test_history_failure_does_not_block(self):
        routes = live_routes()
        del routes[HISTORY_URL]
        conn = FakeConnection(auth_reply(), message_packet(danmaku("alice", "hi")))
        session = self.make_session(routes=routes, connections={host_url("a.example.com"): conn})
        await session.start()
        event = await asyncio.wait_for(session.events.get(), 1)
        self.assertEqual(event.content, "hi")

    async def test_heartbeat(self):
        session, conn = await self.started(heartbeat_interval=0.1)
        await asyncio.sleep(0.25)
        beats = [decode_header(p) for p in conn.sent if decode_header(p).operation == Operation.HEARTBEAT]
        self.assertEqual(len(beats), 2)
        self.assertEqual([b.sequence for b in beats], [2, 3])
        self.assertEqual(conn.sent[1][16:], b"[object Object]")

        await session.stop()
        count = len(conn.sent)
        await asyncio.sleep(0.25)
        self.assertEqual(len(conn.sent), count)

    async def test_popularity(self):
        session, conn = await self.started()
        conn.feed(encode(1, Operation.HEARTBEAT_REPLY, 0, struct.pack(">I", 1234)))
        self.assertTrue(await wait_until(lambda: session.popularity == 1234))
        self.assertTrue(session.events.empty())

    async def test_snapshot(self):
        session, _ = await self.started()
        snapshot = await asyncio.wait_for(session.snapshots.get(), 1)
        self.assertIsInstance(snapshot, RoomSnapshot)
        self.assertEqual(snapshot.title, "hello")
        self.assertEqual(snapshot.online_rank[0].name, "fan")

    async def test_connection_lost(self):
        session, conn = await self.started()
        conn.drop("peer closed")
        event = await asyncio.wait_for(session.events.get(), 1)
        self.assertIsInstance(event, ConnectionClosed)
        self.assertIn("peer closed", event.content)
        self.assertIs(session.state, SessionState.CLOSED)
        await asyncio.wait_for(session.wait_closed(), 1)
        self.assertTrue(await wait_until(lambda: all(t.done() for t in session._tasks)))

    async def test_stop(self):
        session, conn = await self.started()
        await session.stop()
        self.assertIs(session.state, SessionState.CLOSED)
        self.assertTrue(conn.closed)
        self.assertFalse(self.http.closed)

        conn.feed(message_packet(danmaku("alice", "too late")))
        await asyncio.sleep(0.05)
        self.assertTrue(session.events.empty())


class TestSendMessage(SessionTestCase):
    async def test_success(self):
        session, _ = await self.started()
        self.http.routes[SEND_MESSAGE_URL] = json_response({"code": 0, "data": {}})
        self.assertTrue(await session.send_message("你好"))
        _, _, data, _ = self.http.requests_to(SEND_MESSAGE_URL)[0]
        self.assertEqual(data["msg"], "你好")
        self.assertEqual(data["roomid"], ROOM_ID)
        self.assertEqual(data["csrf"], "csrf")
        self.assertEqual(data["csrf_token"], "csrf")
        self.assertEqual(data["color"], 16777215)
        self.assertEqual(data["fontsize"], 25)
        self.assertEqual(data["mode"], 1)
        self.assertEqual(data["bubble"], 0)

    async def test_rejected(self):
        session, _ = await self.started()
        self.http.routes[SEND_MESSAGE_URL] = json_response({"code": 10030, "message": "发送频率过快"})
        self.assertFalse(await session.send_message("hi"))

    async def test_http_failure(self):
        session, _ = await self.started()
        self.assertFalse(await session.send_message("hi"))
        self.http.routes[SEND_MESSAGE_URL] = HttpResponse(200, b"<html>")
        self.assertFalse(await session.send_message("hi"))

    async def test_not_established(self):
        session = self.make_session()
        with self.assertRaises(SessionError):
            await session.send_message("hi")
