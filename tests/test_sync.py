"""
Test suite for the output synchronizer.

This module tests the "send, then collect until stable" primitive:
- Reply termination on the prompt or on an echo-only line
- Scoped redirection of the session's sink and marker
- One exchange per session at a time
- Process exit during an exchange
- Reply cleanup and submission framing
"""

import inspect
import unittest


class TestHelpers(unittest.TestCase):
    """Test the text helpers used around an exchange."""

    def test_prompt_pattern_matches_redrawn_prompt(self):
        from jsrepl.process.sync import prompt_pattern

        from tests.fakes import PROMPT, redraw

        pattern = prompt_pattern("> ")
        self.assertTrue(pattern.search(PROMPT))
        self.assertTrue(pattern.search("2\r\n" + PROMPT))
        self.assertTrue(pattern.search(redraw("Math.abs")))

    def test_prompt_pattern_requires_control_sequences(self):
        from jsrepl.process.sync import prompt_pattern

        pattern = prompt_pattern("> ")
        self.assertIsNone(pattern.search("> "))
        self.assertIsNone(pattern.search("a > b"))

    def test_strip_ansi(self):
        from jsrepl.process.sync import strip_ansi

        self.assertEqual(strip_ansi("\x1b[1G\x1b[0J> \x1b[3G"), "> ")
        self.assertEqual(strip_ansi("\x1b[33m42\x1b[39m"), "42")

    def test_frame_single_line(self):
        from jsrepl.process.sync import frame_submission

        self.assertEqual(frame_submission("1 + 1"), "1 + 1\n")
        self.assertEqual(frame_submission("1 + 1\n"), "1 + 1\n")

    def test_frame_multiple_lines(self):
        """Multi-line text is sent in raw-paste mode."""
        from jsrepl.process.sync import frame_submission

        self.assertEqual(
            frame_submission("const a = 1;\nconst b = 2;\n"),
            ".editor\nconst a = 1;\nconst b = 2;\n\x04",
        )

    def test_clean_output(self):
        from jsrepl.process.sync import clean_output

        from tests.fakes import PROMPT

        raw = "1 + 1\r\n2\r\n" + PROMPT
        self.assertEqual(clean_output(raw, "1 + 1\n", "> "), "2")

    def test_clean_output_raw_paste(self):
        from jsrepl.process.sync import clean_output

        from tests.fakes import PROMPT

        sent = ".editor\nlet a = 1;\na + 1\n\x04"
        raw = (
            ".editor\r\n// Entering editor mode (Ctrl+D to finish, Ctrl+C to cancel)\r\n"
            "let a = 1;\r\na + 1\r\n2\r\n" + PROMPT
        )
        self.assertEqual(clean_output(raw, sent, "> "), "2")

    def test_clean_output_keeps_errors(self):
        from jsrepl.process.sync import clean_output

        from tests.fakes import PROMPT

        raw = "nope\r\nUncaught ReferenceError: nope is not defined\r\n" + PROMPT
        self.assertEqual(
            clean_output(raw, "nope\n", "> "),
            "Uncaught ReferenceError: nope is not defined",
        )


class TestExchangeAccumulator(unittest.TestCase):
    def test_last_line_tracks_partial_lines(self):
        from jsrepl.process.sync import Exchange

        exchange = Exchange("x")
        exchange.feed("abc\r\n")
        self.assertEqual(exchange.last_line, "abc")
        exchange.feed("de")
        exchange.feed("f")
        self.assertEqual(exchange.last_line, "def")
        exchange.feed("\r\n")
        self.assertEqual(exchange.last_line, "def")
        self.assertEqual(exchange.output, "abc\r\ndef\r\n")
        self.assertTrue(exchange.live)

    def test_preview_line_is_not_last_line(self):
        """The cursor moves back up after drawing a preview; that line is skipped."""
        from jsrepl.process.sync import Exchange

        exchange = Exchange("encodeURI\t")
        exchange.feed(
            "encodeURI\r\n\x1b[90m[Function: encodeURI]\x1b[39m\x1b[12G\x1b[1A"
        )
        self.assertEqual(exchange.last_line, "encodeURI")

    def test_preview_line_split_across_chunks(self):
        from jsrepl.process.sync import Exchange

        exchange = Exchange("encodeURI\t")
        exchange.feed("encodeURI\r\n\x1b[90m[Func")
        exchange.feed("tion: encodeURI]\x1b[39m\x1b[12G\x1b[1A")
        self.assertEqual(exchange.last_line, "encodeURI")


class TestOutputSynchronizer(unittest.TestCase):
    """Test exchanges against a scripted REPL."""

    def setUp(self):
        from tests.fakes import fast_config, fake_registry

        self.registry, self.factory = fake_registry(
            {
                "1 + 1\n": ["1 + 1\r\n", "2\r\n", "\x1b[1G\x1b[0J> \x1b[3G"],
                "echo\n": "echo",
                "process.exit()\n": ["process.exit()\r\n", "bye"],
            }
        )
        self.session = self.registry.get_or_create("test", fast_config())
        self.transcript_after_start = self.session.output

    def tearDown(self):
        self.registry.close_all()

    def test_startup_waits_for_prompt(self):
        from tests.fakes import PROMPT

        self.assertEqual(self.transcript_after_start, PROMPT)

    def test_exchange_returns_reply(self):
        from jsrepl.process.sync import OutputSynchronizer

        from tests.fakes import PROMPT

        output = OutputSynchronizer().exchange(self.session, "1 + 1\n")
        self.assertEqual(output, "1 + 1\r\n2\r\n" + PROMPT)
        self.assertEqual(self.factory.last.written, ["1 + 1\n"])

    def test_exchange_delivers_to_transcript(self):
        from jsrepl.process.sync import OutputSynchronizer

        before = self.session.output
        output = OutputSynchronizer().exchange(self.session, "1 + 1\n")
        self.assertEqual(self.session.output, before + output)
        self.assertEqual(self.session.marker, len(before + output))

    def test_exchange_without_delivery(self):
        from jsrepl.process.sync import OutputSynchronizer

        before = self.session.output
        OutputSynchronizer().exchange(self.session, "1 + 1\n", deliver=False)
        self.assertEqual(self.session.output, before)

    def test_echo_only_reply_ends_exchange(self):
        """A last line that is a prefix of the input ends the wait."""
        from jsrepl.process.sync import OutputSynchronizer

        output = OutputSynchronizer().exchange(self.session, "echo\n")
        self.assertEqual(output, "echo")

    def test_silent_reply_ends_exchange(self):
        from jsrepl.process.sync import OutputSynchronizer

        self.assertEqual(OutputSynchronizer().exchange(self.session, "\t"), "")

    def test_completion_request_ends_on_inline_completion(self):
        """The input line grows past the request and no prompt is drawn."""
        from jsrepl.process.sync import OutputSynchronizer

        before = self.session.output
        self.factory.last.replies["Math.ab\t"] = "Math.abs"
        output = OutputSynchronizer().probe(self.session, "Math.ab\t")
        self.assertEqual(output, "Math.abs")
        self.assertEqual(self.session.output, before)

    def test_completion_request_ends_on_echo(self):
        from jsrepl.process.sync import OutputSynchronizer

        self.factory.last.replies["encodeURI\t"] = "encodeURI"
        self.assertEqual(
            OutputSynchronizer().probe(self.session, "encodeURI\t"), "encodeURI"
        )

    def test_submit_frames_code(self):
        from jsrepl.process.sync import OutputSynchronizer

        OutputSynchronizer().submit(self.session, "let a = 1;\nlet b = 2;")
        self.assertEqual(
            self.factory.last.written, [".editor\nlet a = 1;\nlet b = 2;\n\x04"]
        )

    def test_sink_and_marker_restored_after_failure(self):
        """Redirection is undone on every exit path."""
        from jsrepl.process.sync import OutputSynchronizer

        channel = self.factory.last
        original_write = channel.write

        def broken_write(text):
            raise OSError("write failed")

        channel.write = broken_write
        marker = self.session.marker
        try:
            with self.assertRaises(OSError):
                OutputSynchronizer().exchange(self.session, "1 + 1\n")
        finally:
            channel.write = original_write

        self.assertEqual(self.session.sink, self.session.deliver)
        self.assertEqual(self.session.marker, marker)
        self.assertFalse(self.session.exchange_open)

    def test_one_exchange_at_a_time(self):
        from jsrepl.errors import ExchangeInProgress
        from jsrepl.process.sync import OutputSynchronizer

        with self.session.exclusive():
            with self.assertRaises(ExchangeInProgress):
                OutputSynchronizer().exchange(self.session, "1 + 1\n")
        self.assertFalse(self.session.exchange_open)

    def test_output_outside_exchange_goes_to_transcript(self):
        before = self.session.output
        self.factory.last.pending.append("late output\r\n")
        self.session.pump(0.01)
        self.assertEqual(self.session.output, before + "late output\r\n")

    def test_process_exit_ends_exchange(self):
        """Output captured before the process exits is returned."""
        from jsrepl.process.sync import OutputSynchronizer

        from tests.fakes import EXIT

        self.factory.last.replies["process.exit()\n"] = ["process.exit()\r\n", EXIT]
        output = OutputSynchronizer().exchange(self.session, "process.exit()\n")
        self.assertEqual(output, "process.exit()\r\n")
        self.assertTrue(self.session.closed)
        self.assertIsNone(self.registry.get("test"))

    def test_exchange_has_no_timeout(self):
        """Waiting is bounded only by the reply; interrupting is the way out."""
        from jsrepl.process.sync import OutputSynchronizer

        for method in (OutputSynchronizer.exchange, OutputSynchronizer.wait_for_prompt):
            self.assertNotIn("timeout", inspect.signature(method).parameters)

    def test_interrupt_produces_prompt(self):
        from jsrepl.process.sync import OutputSynchronizer

        self.session.interrupt()
        output = OutputSynchronizer().wait_for_prompt(self.session)
        self.assertIn("interrupted", output)
        self.assertEqual(self.factory.last.interrupts, 1)


if __name__ == "__main__":
    unittest.main()
