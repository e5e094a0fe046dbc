"""
Test suite for the nREPL server.

Messages are handled directly through handle_message, plus one round trip
over a real socket with the bundled client.
"""

import contextlib
import io
import threading
import unittest

from tests.fakes import PROMPT


class NReplTestCase(unittest.TestCase):
    def setUp(self):
        from jsrepl.repl.nrepl import NReplServer

        from tests.fakes import fast_config, fake_registry

        self.registry, self.factory = fake_registry(
            {"1 + 1\n": "1 + 1\r\n2\r\n" + PROMPT}
        )
        self.server = NReplServer(
            port=0, config=fast_config(), registry=self.registry, port_file=None
        )

    def tearDown(self):
        self.registry.close_all()


class TestHandleMessage(NReplTestCase):
    """Test message dispatch."""

    def test_clone_creates_session(self):
        response = self.server.handle_message({"op": "clone", "id": "1"})
        self.assertEqual(response["id"], "1")
        self.assertEqual(response["status"], ["done"])
        self.assertIn(response["new-session"], self.server.sessions)
        self.assertEqual(self.factory.channels, [])

    def test_eval_in_session(self):
        session = self.server.handle_message({"op": "clone"})["new-session"]
        response = self.server.handle_message(
            {"op": "eval", "code": "1 + 1", "session": session, "id": "2"}
        )
        self.assertEqual(response["out"], "2")
        self.assertEqual(response["session"], session)
        self.assertEqual(response["status"], ["done"])

    def test_eval_without_session(self):
        response = self.server.handle_message({"op": "eval", "code": "1 + 1"})
        self.assertIn(response["session"], self.server.sessions)

    def test_sessions_have_separate_processes(self):
        a = self.server.handle_message({"op": "clone"})["new-session"]
        b = self.server.handle_message({"op": "clone"})["new-session"]
        self.server.handle_message({"op": "eval", "code": "1 + 1", "session": a})
        self.server.handle_message({"op": "eval", "code": "1 + 1", "session": b})
        self.assertEqual(len(self.factory.channels), 2)

    def test_close(self):
        session = self.server.handle_message({"op": "clone"})["new-session"]
        self.server.handle_message({"op": "eval", "code": "1 + 1", "session": session})
        response = self.server.handle_message({"op": "close", "session": session})
        self.assertEqual(response["status"], ["done", "session-closed"])
        self.assertNotIn(session, self.server.sessions)
        self.assertTrue(self.factory.last.closed)

    def test_describe(self):
        response = self.server.handle_message({"op": "describe"})
        self.assertIn("eval-last", response["ops"])
        self.assertIn("jsrepl", response["versions"])

    def test_unknown_op(self):
        response = self.server.handle_message({"op": "frobnicate"})
        self.assertEqual(response["status"], ["error", "unknown-op"])

    def test_boundary_defaults_point_to_end(self):
        response = self.server.handle_message({"op": "boundary", "text": "x = a.b"})
        self.assertEqual(response["start"], 4)

    def test_eval_last_without_expression(self):
        response = self.server.handle_message(
            {"op": "eval-last", "text": "x = ", "point": 4}
        )
        self.assertEqual(response["status"], ["error"])
        self.assertEqual(response["error-type"], "NoExpressionFound")

    def test_missing_field(self):
        response = self.server.handle_message({"op": "boundary"})
        self.assertEqual(response["status"], ["error"])
        self.assertEqual(response["error-type"], "KeyError")

    def test_transform(self):
        response = self.server.handle_message(
            {"op": "transform", "code": 'import x from "y";'}
        )
        self.assertIn('await import("y")', response["code"])

    def test_missing_program(self):
        """A REPL that cannot be started is an error response."""
        from jsrepl.errors import ExecutableNotFound

        def unstartable(argv, env=None, cwd=None):
            raise ExecutableNotFound(f"Cannot start {argv[0]!r}")

        self.registry.channel_factory = unstartable
        response = self.server.handle_message({"op": "eval", "code": "1 + 1"})
        self.assertEqual(response["status"], ["error"])
        self.assertEqual(response["error-type"], "ExecutableNotFound")


class TestSocket(NReplTestCase):
    """Test a client round trip over TCP."""

    def test_round_trip(self):
        from jsrepl.repl.nrepl import SimpleNReplClient

        port = self.server.bind()
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            thread = threading.Thread(target=self.server.start, daemon=True)
            thread.start()

            client = SimpleNReplClient(port=port)
            try:
                client.connect()
                response = client.eval("1 + 1")
                described = client.send_message({"op": "describe"})
            finally:
                client.close()
                self.server.stop()
            thread.join(timeout=5)

        self.assertEqual(response["out"], "2")
        self.assertEqual(response["session"], client_session(stdout.getvalue()))
        self.assertIn("eval", described["ops"])


def client_session(output):
    """The session id the client printed on connect."""
    for line in output.splitlines():
        if line.startswith("Session: "):
            return line[len("Session: ") :]
    return None


if __name__ == "__main__":
    unittest.main()
