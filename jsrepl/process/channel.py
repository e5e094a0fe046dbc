"""
jsrepl.process.channel - Pseudo-terminal transport to the REPL process

The REPL only emits its prompt framing and answers tab completion when it
is attached to a terminal, so the child runs inside a pty managed by
pexpect. This layer knows nothing about prompts or replies; it writes
characters and hands back whatever output is available.
"""

from typing import Optional

import pexpect

from jsrepl.errors import ExecutableNotFound

# Control bytes understood by the REPL's line editor
CTRL_A = "\x01"  # move to start of line
CTRL_C = "\x03"  # interrupt the current evaluation
CTRL_D = "\x04"  # end of transmission (commits raw-paste mode)
CTRL_K = "\x0b"  # kill to end of line
TAB = "\t"
LINE_CLEAR = CTRL_A + CTRL_K

READ_SIZE = 4096


class ProcessChannel:
    """
    A live subprocess handle exposing "write characters, read characters".

    Output is decoded as UTF-8; undecodable bytes are replaced rather than
    raising, since the captured transcript is handed back verbatim.
    """

    def __init__(
        self,
        argv: list[str],
        env: Optional[dict[str, str]] = None,
        cwd: Optional[str] = None,
        dimensions: tuple[int, int] = (24, 1000),
    ):
        """
        Spawn the process.

        Args:
            argv: Executable followed by its arguments.
            env: Environment for the child (default: inherit).
            cwd: Working directory for the child.
            dimensions: Terminal (rows, cols). Wide terminals keep long
                completion listings from wrapping.
        """
        if not argv:
            raise ValueError("argv must name an executable")
        self.argv = list(argv)
        try:
            self.child = pexpect.spawn(
                self.argv[0],
                self.argv[1:],
                env=env,
                cwd=cwd,
                encoding="utf-8",
                codec_errors="replace",
                dimensions=dimensions,
            )
        except pexpect.ExceptionPexpect as e:
            raise ExecutableNotFound(f"Cannot start {self.argv[0]!r}: {e}") from e
        self.eof = False

    @property
    def pid(self) -> int:
        return self.child.pid

    def write(self, text: str) -> None:
        """Write raw characters to the process. No newline is appended."""
        if text:
            self.child.send(text)

    def read_available(self, timeout: float) -> Optional[str]:
        """
        Return output that arrives within ``timeout`` seconds.

        Returns:
            The text read, "" if nothing arrived, or None once the process
            has reached end-of-file.
        """
        if self.eof:
            return None
        try:
            return self.child.read_nonblocking(size=READ_SIZE, timeout=timeout)
        except pexpect.TIMEOUT:
            return ""
        except pexpect.EOF:
            self.eof = True
            return None

    def interrupt(self) -> None:
        """Abort the evaluation in flight."""
        self.write(CTRL_C)

    def is_alive(self) -> bool:
        return not self.eof and self.child.isalive()

    def close(self, force: bool = True) -> None:
        """Terminate the process and release the pty."""
        if not self.child.closed:
            self.child.close(force=force)
        self.eof = True
