"""
Tests for the course search collaborator.

The HTTP session is a mock; the tests only check how responses are
classified (rows / session expired / other failure).
"""

import json
import threading
import unittest
from unittest import mock

import requests

from course_monitor import scraper
from course_monitor.scraper import SearchError, SessionExpiredError, looks_like_login_html


def response(status=200, body=""):
    resp = mock.Mock()
    resp.status_code = status
    resp.text = body
    return resp


def rows(*pairs):
    return json.dumps(
        {
            "aaData": [
                {"jx02id": p, "jx0404id": c, "kcmc": f"Course {p}", "xkrs": 3, "pkrs": 40}
                for p, c in pairs
            ]
        }
    )


class TestSearchModule(unittest.TestCase):
    def test_parses_rows(self) -> None:
        session = mock.Mock()
        session.post.return_value = response(body=rows(("1", "10"), ("2", "20")))

        courses = scraper.search_module(session, "xsxkKnjxk", " 数学 ", base_url="http://portal")

        self.assertEqual([c.key for c in courses], ["1_10", "2_20"])
        self.assertEqual(courses[0].capacity, 40)
        url = session.post.call_args.args[0]
        self.assertTrue(url.startswith("http://portal/jsxsd/xsxkkc/xsxkKnjxk?kcxx="))
        kwargs = session.post.call_args.kwargs
        self.assertEqual(kwargs["data"], {"iDisplayStart": "0", "iDisplayLength": "10000"})
        self.assertFalse(kwargs["allow_redirects"])

    def test_null_rows_is_empty(self) -> None:
        session = mock.Mock()
        session.post.return_value = response(body='{"aaData": null}')
        self.assertEqual(scraper.search_module(session, "xsxkXxxk", "x"), [])

    def test_redirect_means_session_expired(self) -> None:
        session = mock.Mock()
        session.post.return_value = response(status=302)
        with self.assertRaises(SessionExpiredError):
            scraper.search_module(session, "xsxkXxxk", "x")

    def test_login_page_means_session_expired(self) -> None:
        session = mock.Mock()
        session.post.return_value = response(body="<!DOCTYPE html><title>统一身份认证</title>")
        with self.assertRaises(SessionExpiredError):
            scraper.search_module(session, "xsxkXxxk", "x")

    def test_server_error_is_not_session_expired(self) -> None:
        session = mock.Mock()
        session.post.return_value = response(status=500, body="oops")
        with self.assertRaises(SearchError) as ctx:
            scraper.search_module(session, "xsxkXxxk", "x")
        self.assertNotIsInstance(ctx.exception, SessionExpiredError)

    def test_garbage_body_is_search_error(self) -> None:
        session = mock.Mock()
        session.post.return_value = response(body="not json")
        with self.assertRaises(SearchError) as ctx:
            scraper.search_module(session, "xsxkXxxk", "x")
        self.assertNotIsInstance(ctx.exception, SessionExpiredError)

    def test_network_error_is_search_error(self) -> None:
        session = mock.Mock()
        session.post.side_effect = requests.ConnectionError("reset")
        with self.assertRaises(SearchError):
            scraper.search_module(session, "xsxkXxxk", "x")

    def test_blank_module_rejected(self) -> None:
        with self.assertRaises(SearchError):
            scraper.search_module(mock.Mock(), " ", "x")


class TestSearch(unittest.TestCase):
    def test_merges_all_modules_by_key(self) -> None:
        session = mock.Mock()
        session.post.side_effect = [
            response(body=rows(("1", "1"))),
            response(body=rows(("1", "1"), ("2", "2"))),
            response(body='{"aaData": []}'),
            response(body=rows(("3", "3"))),
            response(body='{"aaData": []}'),
        ]
        with mock.patch.object(scraper, "MODULE_DELAY_SECONDS", 0):
            courses = scraper.search(session, "x", threading.Event())

        self.assertEqual(sorted(c.key for c in courses), ["1_1", "2_2", "3_3"])
        self.assertEqual(session.post.call_count, len(scraper.MODULE_TYPES))

    def test_session_expired_propagates(self) -> None:
        session = mock.Mock()
        session.post.side_effect = [response(body=rows(("1", "1"))), response(status=302)]
        with mock.patch.object(scraper, "MODULE_DELAY_SECONDS", 0):
            with self.assertRaises(SessionExpiredError):
                scraper.search(session, "x", threading.Event())

    def test_stop_event_interrupts_between_modules(self) -> None:
        session = mock.Mock()
        session.post.return_value = response(body=rows(("1", "1")))
        stop = threading.Event()
        stop.set()

        scraper.search(session, "x", stop)

        self.assertEqual(session.post.call_count, 1)


class TestLoginDetection(unittest.TestCase):
    def test_markers(self) -> None:
        self.assertTrue(looks_like_login_html("<html><body>login</body></html>"))
        self.assertTrue(looks_like_login_html("redirect to /authserver/login?service=x"))
        self.assertFalse(looks_like_login_html('{"aaData": []}'))
        self.assertFalse(looks_like_login_html("   "))


if __name__ == "__main__":
    unittest.main()
