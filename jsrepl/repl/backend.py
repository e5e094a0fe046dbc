"""
jsrepl REPL backend - The operation surface editors and frontends call.

This module provides a generic backend that turns editor-level requests
(send this line, this region, the expression before the cursor, complete
this token) into exchanges with a JavaScript REPL session, plus terminal
frontends built on it.
"""

import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from jsrepl.config import ReplConfig, load_config
from jsrepl.debug import log
from jsrepl.errors import NoExpressionFound
from jsrepl.process.session import REGISTRY, Session, SessionRegistry
from jsrepl.process.sync import OutputSynchronizer, clean_output, frame_submission
from jsrepl.repl.completion import CompletionContext, CompletionEngine
from jsrepl.source.boundary import boundary_of
from jsrepl.source.modules import transform


class ResultType(Enum):
    """Type of result returned from a send."""

    VALUE = "value"
    EMPTY = "empty"


@dataclass
class EvalResult:
    """
    Result of sending code to the REPL.

    ``output`` is what the evaluation printed, with control sequences, the
    echoed input and the trailing prompt removed. ``raw`` is the captured
    transcript exactly as the process wrote it. Errors thrown by the
    JavaScript code are part of the output; they are not interpreted here.
    """

    type: ResultType
    code: str = ""
    output: str = ""
    raw: str = ""

    def is_empty(self) -> bool:
        return self.type == ResultType.EMPTY


@dataclass
class ReplState:
    """History of sends made through one backend."""

    history: list[tuple[str, EvalResult]] = field(default_factory=list)
    counter: int = 0

    def add_to_history(self, code: str, result: EvalResult):
        self.history.append((code, result))
        if not result.is_empty():
            self.counter += 1

    def clear_history(self):
        self.history.clear()
        self.counter = 0


class ReplBackend:
    """
    Editor-facing operations on one named REPL session.

    The session is started lazily on first use and restarted transparently
    if its process has exited.
    """

    def __init__(
        self,
        config: Optional[ReplConfig] = None,
        registry: Optional[SessionRegistry] = None,
        synchronizer: Optional[OutputSynchronizer] = None,
    ):
        """
        Initialize the REPL backend.

        Args:
            config: Session settings. If None, loads the nearest .jsrepl.json.
            registry: Where sessions live (default: the process-wide registry).
            synchronizer: Exchange primitive shared with the completion engine.
        """
        self.config = config or load_config()
        self.registry = registry or REGISTRY
        self.synchronizer = synchronizer or OutputSynchronizer()
        self.completion = CompletionEngine(self.synchronizer)
        self.state = ReplState()

    @property
    def session(self) -> Session:
        """The live session, started on demand."""
        return self.registry.get_or_create(self.config.session_name, self.config)

    @property
    def transcript(self) -> str:
        session = self.registry.get(self.config.session_name)
        return session.output if session else ""

    # =========================================================================
    # Sending code
    # =========================================================================

    def prepare(self, code: str) -> str:
        """The exact text that will be submitted for ``code``."""
        if self.config.transform_modules:
            return transform(code)
        return code

    def send_code(self, code: str) -> EvalResult:
        """Submit ``code`` as one evaluation and wait for the complete reply."""
        prepared = self.prepare(code)
        if not prepared.strip():
            result = EvalResult(ResultType.EMPTY, code=prepared)
            self.state.add_to_history(code, result)
            return result

        raw = self.synchronizer.submit(self.session, prepared)
        output = clean_output(raw, frame_submission(prepared), self.config.prompt)
        result = EvalResult(ResultType.VALUE, code=prepared, output=output, raw=raw)
        self.state.add_to_history(code, result)
        return result

    def send_line(self, line: str) -> EvalResult:
        return self.send_code(line)

    def send_region(self, text: str, start: int, end: int) -> EvalResult:
        """Send ``text[start:end]``; the offsets may be given in either order."""
        start, end = sorted((start, end))
        return self.send_code(text[start:end])

    def send_buffer(self, text: str) -> EvalResult:
        return self.send_code(text)

    def send_last_expression(self, text: str, point: int) -> EvalResult:
        """
        Send the expression that ends at ``point``.

        Raises:
            NoExpressionFound: If no expression ends there; nothing is sent.
        """
        start = boundary_of(text, point)
        return self.send_code(text[start:point])

    def load_file(self, path: str) -> EvalResult:
        """Read a JavaScript file and submit it like a buffer."""
        path = os.path.abspath(path)
        with open(path, encoding="utf-8") as f:
            content = f.read()
        log(f"loading {path}")
        return self.send_buffer(content)

    # =========================================================================
    # Completion and source helpers
    # =========================================================================

    def complete(self, token: str, in_module_path: bool = False) -> list[str]:
        return self.completion.complete(self.session, token, in_module_path)

    def complete_at_point(
        self, text: str, point: int
    ) -> tuple[CompletionContext, list[str]]:
        return self.completion.complete_at_point(self.session, text, point)

    def boundary(self, text: str, point: int) -> int:
        return boundary_of(text, point)

    def transform(self, code: str) -> str:
        return transform(code)

    # =========================================================================
    # Session control
    # =========================================================================

    def interrupt(self, wait: bool = True) -> str:
        """
        Abort the evaluation running in the REPL.

        Args:
            wait: Block until the REPL prints a fresh prompt.

        Returns:
            Output printed in response, or "" when not waiting or when no
            session is running.
        """
        session = self.registry.get(self.config.session_name)
        if session is None:
            return ""
        session.interrupt()
        if wait:
            return self.synchronizer.wait_for_prompt(session)
        return ""

    def clear(self) -> None:
        """Forget the session transcript."""
        session = self.registry.get(self.config.session_name)
        if session is not None:
            session.clear()

    def reset(self) -> Session:
        """Kill the REPL process and start a fresh one."""
        self.registry.remove(self.config.session_name)
        self.state.clear_history()
        return self.session

    def add_module_path(self, path: str) -> None:
        """Add a NODE_PATH entry; takes effect when the session is (re)started."""
        if path not in self.config.module_paths:
            self.config.module_paths.append(path)

    def remove_module_path(self, path: str) -> None:
        if path in self.config.module_paths:
            self.config.module_paths.remove(path)

    def close(self) -> None:
        self.registry.remove(self.config.session_name)


class ReplFrontend(ABC):
    """
    Abstract base class for REPL frontends.

    Subclasses should implement the run method to provide
    specific input/output behavior.
    """

    def __init__(self, backend: Optional[ReplBackend] = None):
        """
        Initialize the frontend.

        Args:
            backend: Optional ReplBackend to use. If None, creates a new one.
        """
        self.backend = backend or ReplBackend()

    @abstractmethod
    def run(self):
        """Run the REPL frontend."""
        pass

    def send(self, line: str) -> Optional[EvalResult]:
        """Send a line; Ctrl-C while waiting interrupts the evaluation instead."""
        try:
            return self.backend.send_line(line)
        except KeyboardInterrupt:
            print()
            self.backend.interrupt()
            return None


class TerminalRepl(ReplFrontend):
    """
    Terminal-based REPL frontend with readline support.
    """

    def __init__(
        self,
        backend: Optional[ReplBackend] = None,
        prompt: str = "js> ",
        history_file: str = ".jsrepl_history",
    ):
        """
        Initialize the terminal REPL.

        Args:
            backend: Optional ReplBackend to use.
            prompt: The local input prompt.
            history_file: Where readline history is kept.
        """
        super().__init__(backend)
        self.prompt = prompt
        self.history_file = history_file
        self.completions: list[str] = []
        self.setup_readline()

    def setup_readline(self):
        """Setup readline for line editing and completion."""
        try:
            import readline

            self.readline = readline

            readline.set_completer(self.complete)
            # Member chains (Math.ab) and $ names are completed as one token
            readline.set_completer_delims(" \t\n`~!@#%^&*()-=+[{]}\\|;:'\",<>/?")
            readline.parse_and_bind("tab: complete")

            try:
                readline.read_history_file(self.history_file)
            except FileNotFoundError:
                pass

            import atexit

            atexit.register(lambda: readline.write_history_file(self.history_file))

        except ImportError:
            self.readline = None

    def complete(self, text: str, state: int) -> Optional[str]:
        """Completion function for readline."""
        if state == 0:
            try:
                self.completions = self.backend.complete(text)
            except Exception as e:
                log(f"completion failed: {e}")
                self.completions = []

        try:
            return self.completions[state]
        except IndexError:
            return None

    def print_result(self, result: EvalResult):
        if result.output:
            print(result.output)

    def run(self):
        """Run the terminal REPL."""
        print("jsrepl - JavaScript REPL driver")
        print("Type .help for help, Ctrl-D or .exit to quit.")
        print()

        while True:
            try:
                line = input(self.prompt)
            except EOFError:
                print()
                break
            except KeyboardInterrupt:
                print()
                continue

            command = line.strip()
            if command == ".exit":
                break
            if command == ".help":
                self.show_help()
                continue
            if command == ".reset":
                self.backend.reset()
                print("Session restarted.")
                continue
            if command.startswith(".load "):
                try:
                    result = self.backend.load_file(command[6:].strip())
                except OSError as e:
                    print(f"Error: {e}", file=sys.stderr)
                    continue
                self.print_result(result)
                continue
            if not command:
                continue

            result = self.send(line)
            if result is not None:
                self.print_result(result)

        self.backend.close()

    def show_help(self):
        """Show help message."""
        print("""
jsrepl Commands:
  .help            - Show this help message
  .load FILE       - Send a JavaScript file (import/export rewritten)
  .reset           - Restart the JavaScript process
  .exit            - Exit
  Ctrl-C           - Interrupt a running evaluation
  Ctrl-D           - Exit

Static imports are rewritten to dynamic ones, so this works:
  import { readFile } from "node:fs/promises";
  await readFile("package.json", "utf8")
""")


class SimpleRepl(ReplFrontend):
    """
    Minimal REPL frontend without readline support.
    Useful for piping input or when readline is not available.
    """

    def __init__(self, backend: Optional[ReplBackend] = None, prompt: str = "js> "):
        super().__init__(backend)
        self.prompt = prompt

    def run(self):
        """Run the simple REPL."""
        while True:
            try:
                line = input(self.prompt)
            except EOFError:
                print()
                break

            if not line.strip():
                continue

            result = self.send(line)
            if result is not None and result.output:
                print(result.output)

        self.backend.close()


def create_repl(mode: str = "terminal", **kwargs: Any) -> ReplFrontend:
    """
    Factory function to create a REPL frontend.

    Args:
        mode: The mode of REPL to create ("terminal" or "simple").
        **kwargs: Additional arguments to pass to the frontend.

    Returns:
        A ReplFrontend instance.
    """
    if mode == "terminal":
        return TerminalRepl(**kwargs)
    elif mode == "simple":
        return SimpleRepl(**kwargs)
    else:
        raise ValueError(f"Unknown REPL mode: {mode}")


class NReplProtocol:
    """
    nREPL-style protocol for editor integration.

    Translates backend results into response dictionaries. Failures that
    abort an operation become ``"status": ["error"]`` responses.
    """

    def __init__(self, backend: Optional[ReplBackend] = None):
        """Initialize the nREPL protocol."""
        self.backend = backend or ReplBackend()

    def _result_response(self, result: EvalResult) -> dict[str, Any]:
        response: dict[str, Any] = {"status": ["done"]}
        if result.output:
            response["out"] = result.output
        if result.is_empty():
            response["status"] = ["done", "empty"]
        return response

    def _error_response(self, error: Exception) -> dict[str, Any]:
        return {
            "status": ["error"],
            "error": str(error),
            "error-type": type(error).__name__,
        }

    def handle_eval(self, code: str) -> dict[str, Any]:
        """
        Handle an eval request.

        Args:
            code: The code to evaluate.

        Returns:
            A response dictionary.
        """
        return self._result_response(self.backend.send_code(code))

    def handle_eval_region(self, text: str, start: int, end: int) -> dict[str, Any]:
        return self._result_response(self.backend.send_region(text, start, end))

    def handle_eval_last(self, text: str, point: int) -> dict[str, Any]:
        """Evaluate the expression ending at ``point``."""
        try:
            result = self.backend.send_last_expression(text, point)
        except (NoExpressionFound, ValueError) as e:
            return self._error_response(e)
        return self._result_response(result)

    def handle_load_file(self, path: str) -> dict[str, Any]:
        try:
            result = self.backend.load_file(path)
        except OSError as e:
            return self._error_response(e)
        return self._result_response(result)

    def handle_complete(self, prefix: str, in_module_path: bool = False) -> dict[str, Any]:
        """
        Handle a completion request.

        Args:
            prefix: The prefix to complete.
            in_module_path: The prefix is a partial module path.

        Returns:
            A response dictionary with completions.
        """
        completions = self.backend.complete(prefix, in_module_path)
        return {"completions": completions, "status": ["done"]}

    def handle_complete_at_point(self, text: str, point: int) -> dict[str, Any]:
        context, completions = self.backend.complete_at_point(text, point)
        return {
            "completions": completions,
            "token": context.token,
            "start": context.start,
            "end": context.end,
            "status": ["done"],
        }

    def handle_boundary(self, text: str, point: int) -> dict[str, Any]:
        try:
            start = self.backend.boundary(text, point)
        except (NoExpressionFound, ValueError) as e:
            return self._error_response(e)
        return {"start": start, "expression": text[start:point], "status": ["done"]}

    def handle_transform(self, code: str) -> dict[str, Any]:
        return {"code": self.backend.transform(code), "status": ["done"]}

    def handle_interrupt(self) -> dict[str, Any]:
        response: dict[str, Any] = {"status": ["done", "interrupted"]}
        output = self.backend.interrupt()
        if output:
            response["out"] = output
        return response

    def handle_clear(self) -> dict[str, Any]:
        self.backend.clear()
        return {"status": ["done"]}

    def handle_reset(self) -> dict[str, Any]:
        self.backend.reset()
        return {"status": ["done"]}
