import unittest

from bilichat.network import HttpResponse, parse_cookie


class TestParseCookie(unittest.TestCase):
    def test_browser_cookie(self):
        cookies = parse_cookie("SESSDATA=abc%2C123; bili_jct=def; buvid3=xyz-1infoc")
        self.assertEqual(cookies["SESSDATA"], "abc%2C123")
        self.assertEqual(cookies["bili_jct"], "def")
        self.assertEqual(cookies["buvid3"], "xyz-1infoc")

    def test_empty(self):
        self.assertEqual(parse_cookie(""), {})

    def test_missing_key(self):
        self.assertNotIn("bili_jct", parse_cookie("SESSDATA=abc"))


class TestHttpResponse(unittest.TestCase):
    def test_ok(self):
        self.assertTrue(HttpResponse(200, b"{}").ok)
        self.assertFalse(HttpResponse(200, b"").ok)
        self.assertFalse(HttpResponse(412, b"{}").ok)

    def test_json(self):
        self.assertEqual(HttpResponse(200, b'{"code": 0}').json(), {"code": 0})
        with self.assertRaises(ValueError):
            HttpResponse(200, b"<html>").json()
