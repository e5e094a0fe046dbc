"""
Test suite for completion.

This module tests:
- Locating the token to complete
- Parsing listing and inline completion replies
- The completion probe sequence
- Completion cache hits, misses and invalidation
"""

import unittest

LISTING = (
    "encodeURI\r\n"
    "encodeURI           encodeURIComponent\r\n"
    "\r\n"
    "\x1b[1G\x1b[0J> encodeURI\x1b[12G"
)

# Second Tab after Math.ab was completed inline to Math.abs
MATH_LISTING = "\r\r\nMath.abs\r\r\n\r\r\n\x1b[1G\x1b[0J> Math.abs\x1b[11G"

# Eager-evaluation preview drawn under the input line
PREVIEW = "\r\n\x1b[90m[Function: encodeURI]\x1b[39m\x1b[12G\x1b[1A"


class TestCompletionToken(unittest.TestCase):
    def test_member_chain(self):
        from jsrepl.repl.completion import completion_token

        context = completion_token("let x = Math.ab", 15)
        self.assertEqual(context.token, "Math.ab")
        self.assertEqual((context.start, context.end), (8, 15))
        self.assertFalse(context.in_module_path)

    def test_empty_token(self):
        from jsrepl.repl.completion import completion_token

        self.assertEqual(completion_token("f(", 2).token, "")

    def test_require_path(self):
        from jsrepl.repl.completion import completion_token

        text = "const fs = require('fs/p"
        context = completion_token(text, len(text))
        self.assertEqual(context.token, "fs/p")
        self.assertTrue(context.in_module_path)

    def test_import_from_path(self):
        from jsrepl.repl.completion import completion_token

        text = 'import x from "./li'
        context = completion_token(text, len(text))
        self.assertEqual(context.token, "./li")
        self.assertTrue(context.in_module_path)


class TestParseReply(unittest.TestCase):
    """Test turning captured probe output into candidates."""

    def test_listing(self):
        from jsrepl.repl.completion import parse_completion_reply

        self.assertEqual(
            parse_completion_reply(LISTING, "encodeURI"),
            ["encodeURI", "encodeURIComponent"],
        )

    def test_listing_over_several_lines(self):
        from jsrepl.repl.completion import parse_completion_reply

        reply = "Math.\r\nMath.E   Math.PI\r\n\r\n\r\nMath.abs  Math.max\r\n> Math."
        self.assertEqual(
            parse_completion_reply(reply, "Math."),
            ["Math.E", "Math.PI", "Math.abs", "Math.max"],
        )

    def test_inline_completion(self):
        from jsrepl.repl.completion import parse_completion_reply

        self.assertEqual(parse_completion_reply("Math.abs", "Math.ab"), ["Math.abs"])

    def test_inline_completion_then_listing(self):
        from jsrepl.repl.completion import parse_completion_reply

        reply = "Math.abs" + MATH_LISTING
        self.assertEqual(parse_completion_reply(reply, "Math.ab"), ["Math.abs"])

    def test_preview_line_ignored(self):
        from jsrepl.repl.completion import parse_completion_reply

        reply = "encodeURI" + PREVIEW + LISTING[len("encodeURI") :]
        self.assertEqual(
            parse_completion_reply(reply, "encodeURI"),
            ["encodeURI", "encodeURIComponent"],
        )

    def test_unchanged_token(self):
        from jsrepl.repl.completion import parse_completion_reply

        self.assertEqual(parse_completion_reply("foo", "foo"), [])

    def test_empty_reply(self):
        from jsrepl.repl.completion import parse_completion_reply

        self.assertEqual(parse_completion_reply("", "foo"), [])


class TestCompletionCache(unittest.TestCase):
    def test_extension_hits(self):
        from jsrepl.process.cache import CompletionCache

        cache = CompletionCache()
        cache.store("Math.a", ["Math.abs", "Math.acos"])
        self.assertEqual(cache.lookup("Math.ab"), ["Math.abs", "Math.acos"])

    def test_boundary_character_misses(self):
        from jsrepl.process.cache import CompletionCache

        cache = CompletionCache()
        cache.store("foo", ["foo", "fooBar"])
        for token in ("foo.", "foo(", "foo/", "foo'", 'foo"'):
            self.assertIsNone(cache.lookup(token), token)

    def test_open_bracket_is_not_a_boundary(self):
        """Candidates for "foo" are reused for "foo["."""
        from jsrepl.process.cache import CompletionCache

        cache = CompletionCache()
        cache.store("foo", ["fooBar"])
        self.assertEqual(cache.lookup("foo["), ["fooBar"])

    def test_non_extension_misses(self):
        from jsrepl.process.cache import CompletionCache

        cache = CompletionCache()
        cache.store("abc", ["abcd"])
        self.assertIsNone(cache.lookup("ab"))
        self.assertIsNone(cache.lookup("xyz"))

    def test_lookup_returns_copy(self):
        from jsrepl.process.cache import CompletionCache

        cache = CompletionCache()
        cache.store("a", ["ab"])
        cache.lookup("a").append("zz")
        self.assertEqual(cache.lookup("a"), ["ab"])

    def test_clear(self):
        from jsrepl.process.cache import CompletionCache

        cache = CompletionCache()
        cache.store("a", ["ab"])
        cache.clear()
        self.assertTrue(cache.is_empty())
        self.assertIsNone(cache.lookup("a"))


class TestCompletionEngine(unittest.TestCase):
    """Test completion probes against a scripted REPL."""

    def setUp(self):
        from tests.fakes import fast_config, fake_registry

        # Inline completion rewrites the input line and draws no prompt
        self.registry, self.factory = fake_registry(
            {
                "Math.ab\t": "Math.abs",
                "encodeURI\t": "encodeURI",
                "require('fs/p\t": "require('fs/promises",
            }
        )
        self.session = self.registry.get_or_create("test", fast_config())
        self.channel = self.factory.last
        self.channel.replies["\t"] = MATH_LISTING

    def tearDown(self):
        self.registry.close_all()

    def engine(self):
        from jsrepl.repl.completion import CompletionEngine

        return CompletionEngine()

    def test_probe_sequence(self):
        """Token and Tab, a second Tab, then the line is cleared."""
        from jsrepl.process.channel import LINE_CLEAR

        self.assertEqual(self.engine().complete(self.session, "Math.ab"), ["Math.abs"])
        self.assertEqual(self.channel.written, ["Math.ab\t", "\t", LINE_CLEAR])

    def test_listing_from_second_tab(self):
        self.channel.replies["\t"] = LISTING[len("encodeURI") :]
        self.assertEqual(
            self.engine().complete(self.session, "encodeURI"),
            ["encodeURI", "encodeURIComponent"],
        )

    def test_preview_line_does_not_block_completion(self):
        """A dimmed preview under the input does not hold the request open."""
        self.channel.replies["encodeURI\t"] = "encodeURI" + PREVIEW
        self.channel.replies["\t"] = LISTING[len("encodeURI") :]
        self.assertEqual(
            self.engine().complete(self.session, "encodeURI"),
            ["encodeURI", "encodeURIComponent"],
        )

    def test_probe_not_in_transcript(self):
        before = self.session.output
        self.engine().complete(self.session, "Math.ab")
        self.assertEqual(self.session.output, before)

    def test_module_path(self):
        self.channel.replies["\t"] = (
            "\r\r\nrequire('fs/promises\r\r\n\r\r\n"
            "\x1b[1G\x1b[0J> require('fs/promises\x1b[23G"
        )
        candidates = self.engine().complete(self.session, "fs/p", in_module_path=True)
        self.assertEqual(candidates, ["fs/promises"])
        self.assertEqual(self.channel.written[0], "require('fs/p\t")

    def test_complete_at_point(self):
        context, candidates = self.engine().complete_at_point(
            self.session, "x = Math.ab", 11
        )
        self.assertEqual(context.token, "Math.ab")
        self.assertEqual(candidates, ["Math.abs"])

    def test_extension_uses_cache(self):
        """Extending the token without a boundary character does not probe."""
        engine = self.engine()
        engine.complete(self.session, "Math.ab")
        probes = len(self.channel.written)

        self.assertEqual(engine.complete(self.session, "Math.abs"), ["Math.abs"])
        self.assertEqual(len(self.channel.written), probes)

    def test_boundary_reprobes(self):
        engine = self.engine()
        engine.complete(self.session, "Math.ab")
        probes = len(self.channel.written)

        engine.complete(self.session, "Math.abs(")
        self.assertEqual(len(self.channel.written), probes + 3)

    def test_evaluation_clears_cache(self):
        """Any delivered evaluation result empties the cache."""
        from jsrepl.process.sync import OutputSynchronizer

        self.engine().complete(self.session, "Math.ab")
        self.assertFalse(self.session.completion_cache.is_empty())

        OutputSynchronizer().submit(self.session, "let z = 1")
        self.assertTrue(self.session.completion_cache.is_empty())


if __name__ == "__main__":
    unittest.main()
