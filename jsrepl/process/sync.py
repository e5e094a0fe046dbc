"""
jsrepl.process.sync - Send text and collect the complete reply

Every higher feature goes through ``OutputSynchronizer.exchange``: write
some text to the REPL, then poll until the reply is complete. A reply is
complete when a full polling interval passes without new output and the
last terminal line is either the prompt or a prefix of what was sent (only
the echo has arrived so far).

There is no timeout. A process that never prints a final line blocks the
caller; interrupting the evaluation (``Session.interrupt``) makes the REPL
print a fresh prompt, which ends the wait.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from jsrepl.debug import log
from jsrepl.process.channel import CTRL_D

# CSI control sequences (cursor movement, erase, colours)
ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")
_LINE_SPLIT_RE = re.compile(r"\r?\n")
# A line ending in cursor-up: the cursor went back to the line above it
_CURSOR_UP_RE = re.compile(r"\x1b\[\d*A$")

EDITOR_COMMAND = ".editor"
EDITOR_BANNER_RE = re.compile(r"^// Entering editor mode.*$", re.MULTILINE)


def prompt_pattern(prompt: str) -> re.Pattern:
    """
    Match a line that ends a reply.

    The REPL redraws its prompt as: cursor to column 1, erase to end of
    screen, the prompt text and whatever is on the input line, then cursor
    to the input column. Anything may follow.
    """
    return re.compile(
        r"\x1b\[1G\x1b\[0J" + re.escape(prompt) + r"[^\n]*?\x1b\[\d+G", re.DOTALL
    )


def strip_ansi(text: str) -> str:
    """Remove terminal control sequences."""
    return ANSI_RE.sub("", text)


def clean_output(raw: str, sent: str, prompt: str) -> str:
    """
    Reduce a captured reply to what the evaluation printed.

    Removes control sequences, carriage returns, the editor-mode banner,
    leading lines that echo the submitted input and the trailing prompt.
    """
    text = strip_ansi(raw).replace("\r", "")
    text = EDITOR_BANNER_RE.sub("", text)
    lines = text.split("\n")

    bare_prompt = prompt.strip()
    while lines and lines[-1].strip() in ("", bare_prompt):
        lines.pop()

    sent_lines = [
        line.strip()
        for line in sent.replace(CTRL_D, "").split("\n")
        if line.strip() and line.strip() != EDITOR_COMMAND
    ]
    while lines:
        head = lines[0].strip()
        if head.startswith(bare_prompt):
            head = head[len(bare_prompt) :].strip()
        if not head or head == EDITOR_COMMAND:
            lines.pop(0)
        elif sent_lines and head == sent_lines[0]:
            lines.pop(0)
            sent_lines.pop(0)
        else:
            break

    return "\n".join(lines).strip("\n")


def frame_submission(text: str) -> str:
    """
    Wrap ``text`` for submission.

    A single line is sent as-is followed by a newline. Anything spanning
    several lines goes through raw-paste (editor) mode so the REPL does not
    evaluate it line by line: ``.editor``, the text, a newline, then EOT.
    """
    body = text.strip("\n")
    if "\n" not in body:
        return body + "\n"
    return f"{EDITOR_COMMAND}\n{body}\n{CTRL_D}"


def _terminal_line(line: str) -> str:
    """``line`` without carriage returns, or "" if the cursor has left it."""
    line = line.rstrip("\r")
    if _CURSOR_UP_RE.search(line):
        return ""
    return line


@dataclass
class Exchange:
    """Accumulator for one send/receive transaction."""

    text: str
    chunks: list[str] = field(default_factory=list)
    live: bool = False
    last_line: str = ""
    _partial: str = field(default="", repr=False)
    _complete: str = field(default="", repr=False)

    @property
    def output(self) -> str:
        return "".join(self.chunks)

    def feed(self, chunk: str) -> None:
        """Record newly arrived output."""
        self.chunks.append(chunk)
        self.live = True

        lines = _LINE_SPLIT_RE.split(self._partial + chunk)
        self._partial = lines[-1]
        for line in lines[:-1]:
            self._complete = _terminal_line(line) or self._complete
        self.last_line = _terminal_line(self._partial) or self._complete


class OutputSynchronizer:
    """
    Blocking "send, then collect output until stable" primitive.

    Only one exchange may be open per session; the session's sink and
    marker are repointed at the exchange's accumulator and restored on
    every exit path.
    """

    def __init__(self, poll_interval: Optional[float] = None):
        """
        Args:
            poll_interval: Seconds of silence required before the reply is
                checked. Defaults to the session's configured interval.
        """
        self.poll_interval = poll_interval

    def _interval(self, session: Any) -> float:
        return self.poll_interval or session.config.poll_interval

    def exchange(self, session: Any, text: str, deliver: bool = True) -> str:
        """
        Write ``text`` and return everything printed until the reply ends.

        Args:
            session: The session to talk to.
            text: Characters to write, sent verbatim.
            deliver: Append the reply to the session transcript (which also
                clears the completion cache). Completion probes pass False.

        Returns:
            The captured output, control sequences included.
        """
        pattern = prompt_pattern(session.config.prompt)
        trimmed = text.strip()

        def done(line: str) -> bool:
            return bool(pattern.search(line)) or trimmed.startswith(line)

        return self._run(session, text, done, deliver)

    def probe(self, session: Any, text: str) -> str:
        """
        Write a completion probe and return the reply without delivering it.

        An inline completion rewrites the input line in place and draws no
        prompt, so a last line that extends the probe also ends the reply.
        """
        pattern = prompt_pattern(session.config.prompt)
        trimmed = text.strip()

        def done(line: str) -> bool:
            return (
                bool(pattern.search(line))
                or trimmed.startswith(line)
                or (bool(trimmed) and line.startswith(trimmed))
            )

        return self._run(session, text, done, deliver=False)

    def wait_for_prompt(self, session: Any, deliver: bool = True) -> str:
        """Write nothing; wait until the REPL prints its prompt."""
        pattern = prompt_pattern(session.config.prompt)

        def done(line: str) -> bool:
            return bool(pattern.search(line))

        return self._run(session, "", done, deliver)

    def submit(self, session: Any, text: str) -> str:
        """Send a block of code as one evaluation and return the reply."""
        return self.exchange(session, frame_submission(text))

    def _run(
        self,
        session: Any,
        text: str,
        done: Callable[[str], bool],
        deliver: bool,
    ) -> str:
        interval = self._interval(session)
        with session.exclusive():
            exchange = Exchange(text)
            with session.redirect(exchange.feed):
                if text:
                    log(f"send {text!r}")
                    session.write(text)
                while True:
                    exchange.live = False
                    if not session.pump(interval):
                        break
                    if not exchange.live and done(exchange.last_line):
                        break

        output = exchange.output
        log(f"recv {output!r}")
        if deliver:
            session.deliver(output)
        return output
