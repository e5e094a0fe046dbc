"""
jsrepl.process.session - REPL sessions and the session registry

A Session is one external REPL process plus everything tied to it: the
configuration it was started with, the transcript of delivered output,
the output sink and write marker the synchronizer repoints during an
exchange, and the completion cache.

Sessions are kept in a SessionRegistry keyed by name. A session is started
the first time it is asked for, and a session whose process has exited is
torn down and replaced on the next request.
"""

import json
import os
import shlex
import subprocess
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Union

from jsrepl.process.cache import CompletionCache
from jsrepl.debug import log
from jsrepl.errors import ExchangeInProgress, ExecutableNotFound
from jsrepl.process.channel import ProcessChannel
from jsrepl.process.sync import OutputSynchronizer

# =============================================================================
# Executable resolution
# =============================================================================


@dataclass(frozen=True)
class LiteralExecutable:
    """A fixed executable name or path."""

    path: str

    def resolve(self) -> str:
        return self.path


@dataclass(frozen=True)
class ResolvedExecutable:
    """An executable looked up by calling ``resolver`` once at session start."""

    resolver: Callable[[], str]

    def resolve(self) -> str:
        path = self.resolver()
        if not path:
            raise ExecutableNotFound("executable resolver returned nothing")
        return path


Executable = Union[LiteralExecutable, ResolvedExecutable]


def nvm_resolver(version: str, nvm_dir: Optional[str] = None) -> Callable[[], str]:
    """
    Build a resolver that asks nvm for the node binary of ``version``.

    Args:
        version: Any version string nvm understands ("20", "lts/iron", ...).
        nvm_dir: nvm installation directory (default: $NVM_DIR or ~/.nvm).

    Returns:
        A zero-argument callable returning the absolute path of node.
    """

    def resolve() -> str:
        directory = nvm_dir or os.environ.get("NVM_DIR") or os.path.expanduser("~/.nvm")
        script = os.path.join(directory, "nvm.sh")
        if not os.path.isfile(script):
            raise ExecutableNotFound(f"nvm not found at {script}")

        command = f". {shlex.quote(script)} >/dev/null && nvm which {shlex.quote(version)}"
        try:
            result = subprocess.run(
                ["bash", "-c", command],
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            error_msg = e.stderr.strip() if e.stderr else str(e)
            raise ExecutableNotFound(
                f"nvm could not resolve node {version}: {error_msg}"
            ) from e
        except FileNotFoundError:
            raise ExecutableNotFound("bash is required to query nvm") from None

        lines = result.stdout.strip().splitlines()
        if not lines:
            raise ExecutableNotFound(f"nvm returned no path for node {version}")
        return lines[-1].strip()

    return resolve


# =============================================================================
# Startup
# =============================================================================


def default_repl_mode() -> str:
    """REPL mode from NODE_REPL_MODE, falling back to sloppy mode."""
    return (os.environ.get("NODE_REPL_MODE") or "sloppy").lower()


def build_startup_script(prompt: str, repl_mode: str) -> str:
    """
    The inline -e program that starts a REPL on the global context.

    Eager evaluation preview is off, so no dimmed result line is drawn
    under the input after a keystroke.
    """
    return (
        "require('repl').start({"
        f"prompt: {json.dumps(prompt)}, "
        "useGlobal: true, "
        "preview: false, "
        f"replMode: require('repl')['REPL_MODE_{repl_mode.upper()}']"
        "})"
    )


def build_argv(executable: str, config: Any) -> list[str]:
    return [
        executable,
        *config.program_arguments,
        "-e",
        build_startup_script(config.prompt, config.repl_mode),
    ]


def build_environment(
    module_paths: list[str], base: Optional[dict[str, str]] = None
) -> dict[str, str]:
    """Child environment with ``module_paths`` appended to NODE_PATH."""
    env = dict(os.environ if base is None else base)
    if module_paths:
        parts = [env["NODE_PATH"]] if env.get("NODE_PATH") else []
        parts.extend(module_paths)
        env["NODE_PATH"] = os.pathsep.join(parts)
    return env


# =============================================================================
# Session
# =============================================================================


class Session:
    """
    One external REPL process, identified by name.

    Output that arrives outside an exchange goes to the default sink, which
    delivers it to the transcript. During an exchange the synchronizer
    repoints ``sink`` and ``marker`` at its own accumulator.
    """

    def __init__(
        self,
        name: str,
        config: Any,
        channel_factory: Callable[..., Any] = ProcessChannel,
    ):
        self.name = name
        self.config = config
        self.channel_factory = channel_factory
        self.channel: Any = None
        self.executable_path: Optional[str] = None
        self.transcript: list[str] = []
        self.marker = 0
        self.sink: Callable[[str], None] = self.deliver
        self.completion_cache = CompletionCache()
        self.exchange_open = False
        self.closed = False

    def __repr__(self):
        state = "closed" if self.closed else "open"
        return f"Session({self.name!r}, {state})"

    def start(self, wait: bool = True) -> "Session":
        """
        Launch the REPL process.

        Args:
            wait: Block until the first prompt has been printed.
        """
        self.executable_path = self.config.executable().resolve()
        argv = build_argv(self.executable_path, self.config)
        env = build_environment(self.config.get_absolute_module_paths())
        log(f"starting session {self.name!r}: {argv[0]}")
        self.channel = self.channel_factory(
            argv, env=env, cwd=self.config.project_root
        )
        self.closed = False

        if wait:
            OutputSynchronizer().wait_for_prompt(self)
        return self

    @property
    def output(self) -> str:
        """Everything delivered to the transcript so far."""
        return "".join(self.transcript)

    def deliver(self, text: str) -> None:
        """Append evaluation output to the transcript and drop cached completions."""
        if text:
            self.transcript.append(text)
            self.marker += len(text)
        self.completion_cache.clear()

    def clear(self) -> None:
        """Forget the transcript."""
        self.transcript.clear()
        self.marker = 0

    @contextmanager
    def redirect(self, sink: Callable[[str], None], marker: int = 0) -> Iterator[None]:
        """Send output to ``sink`` for the duration of the block."""
        saved_sink, saved_marker = self.sink, self.marker
        self.sink, self.marker = sink, marker
        try:
            yield
        finally:
            self.sink, self.marker = saved_sink, saved_marker

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold the session for a single exchange."""
        if self.exchange_open:
            raise ExchangeInProgress(self.name)
        self.exchange_open = True
        try:
            yield
        finally:
            self.exchange_open = False

    def write(self, text: str) -> None:
        self.channel.write(text)

    def pump(self, timeout: float) -> bool:
        """
        Feed output arriving within ``timeout`` seconds to the current sink.

        Returns:
            False once the process has exited, True otherwise.
        """
        remaining = timeout
        deadline = time.monotonic() + timeout
        while remaining > 0:
            chunk = self.channel.read_available(remaining)
            if chunk is None:
                if not self.closed:
                    log(f"session {self.name!r} process exited")
                self.closed = True
                return False
            if chunk:
                self.sink(chunk)
            remaining = deadline - time.monotonic()
        return True

    def interrupt(self) -> None:
        """Send the interrupt byte; the REPL answers with a fresh prompt."""
        log(f"interrupting session {self.name!r}")
        self.channel.interrupt()

    def is_alive(self) -> bool:
        return (
            self.channel is not None and not self.closed and self.channel.is_alive()
        )

    def close(self) -> None:
        if self.channel is not None:
            self.channel.close()
        self.closed = True
        self.completion_cache.clear()
        log(f"session {self.name!r} closed")


# =============================================================================
# Registry
# =============================================================================


class SessionRegistry:
    """Named sessions, started on first use and replaced once their process exits."""

    def __init__(self, channel_factory: Callable[..., Any] = ProcessChannel):
        self.channel_factory = channel_factory
        self.sessions: dict[str, Session] = {}

    def get(self, name: str) -> Optional[Session]:
        """Return the live session called ``name``, tearing down a dead one."""
        session = self.sessions.get(name)
        if session is not None and not session.is_alive():
            log(f"removing exited session {name!r}")
            self.remove(name)
            return None
        return session

    def get_or_create(self, name: str, config: Any) -> Session:
        session = self.get(name)
        if session is None:
            session = Session(name, config, channel_factory=self.channel_factory)
            session.start()
            self.sessions[name] = session
        return session

    def remove(self, name: str) -> None:
        session = self.sessions.pop(name, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        for name in list(self.sessions):
            self.remove(name)

    def names(self) -> list[str]:
        return list(self.sessions)


# Process-wide registry used when callers do not supply their own
REGISTRY = SessionRegistry()
