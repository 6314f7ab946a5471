import asyncio
import unittest
from datetime import datetime, timedelta

from fakes import *

from bilichat.messages import RoomSnapshot
from bilichat.network import HttpResponse
from bilichat.poller import *


class TestOfferLatest(unittest.IsolatedAsyncioTestCase):
    async def test_drops_oldest(self):
        queue: asyncio.Queue = asyncio.Queue(maxsize=2)
        for i in range(4):
            offer_latest(queue, i)
        self.assertEqual([queue.get_nowait(), queue.get_nowait()], [2, 3])


class TestUptime(unittest.TestCase):
    def test_parse(self):
        now = datetime(2024, 1, 1, 13, 30, 0)
        self.assertEqual(parse_uptime("2024-01-01 12:00:00", now), timedelta(hours=1, minutes=30))

    def test_not_live(self):
        self.assertEqual(parse_uptime("0000-00-00 00:00:00"), timedelta(0))
        self.assertEqual(parse_uptime(""), timedelta(0))


class TestRoomPoller(unittest.IsolatedAsyncioTestCase):
    async def test_snapshot(self):
        http = FakeHttp(live_routes())
        queue: asyncio.Queue = asyncio.Queue(maxsize=8)
        poller = RoomPoller(http, ROOM_ID, queue, page_size=50)
        snapshot = await poller.poll_once()

        self.assertIsInstance(snapshot, RoomSnapshot)
        self.assertEqual(queue.get_nowait(), snapshot)
        self.assertEqual(snapshot.uid, 7)
        self.assertEqual(snapshot.online, 321)
        self.assertEqual(snapshot.attention, 9000)
        self.assertEqual(snapshot.area_name, "虚拟日常")
        self.assertEqual(snapshot.uptime, timedelta(0))
        self.assertEqual(snapshot.online_rank[0].score, 100)
        self.assertEqual(snapshot.online_rank[0].rank, 1)

        _, _, params, _ = http.requests_to(ONLINE_RANK_URL)[0]
        self.assertEqual(params, {"ruid": 7, "roomId": ROOM_ID, "page": 1, "pageSize": 50})
        _, _, params, _ = http.requests_to(ROOM_INFO_URL)[0]
        self.assertEqual(params, {"room_id": ROOM_ID})

    async def test_failure_keeps_previous_snapshot(self):
        http = FakeHttp(live_routes())
        queue: asyncio.Queue = asyncio.Queue(maxsize=8)
        poller = RoomPoller(http, ROOM_ID, queue)
        await poller.poll_once()
        http.routes.pop(ROOM_INFO_URL)
        self.assertIsNone(await poller.poll_once())
        http.routes[ROOM_INFO_URL] = HttpResponse(200, b"oops")
        self.assertIsNone(await poller.poll_once())
        self.assertEqual(queue.qsize(), 1)

    async def test_history(self):
        http = FakeHttp(live_routes(history=[("alice", "hi\r"), ("bob", "yo")]))
        messages = await fetch_history(http, ROOM_ID)
        self.assertEqual([(m.author, m.content) for m in messages], [("alice", "hi"), ("bob", "yo")])
        self.assertEqual(messages[0].timestamp, datetime(2024, 1, 1, 12, 0, 0))
