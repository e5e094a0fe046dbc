"""
jsrepl nREPL Server - Network REPL for editor integration.

Editors that cannot drive a pty themselves connect here and send
newline-delimited JSON messages following nREPL conventions ("op", "id",
"session"). Every cloned session owns its own JavaScript process.
"""

import dataclasses
import json
import socket
import threading
import uuid
from typing import Any, Optional

from jsrepl import __version__
from jsrepl.config import ReplConfig, load_config
from jsrepl.debug import log
from jsrepl.errors import JsReplError
from jsrepl.process.session import SessionRegistry
from jsrepl.repl.backend import NReplProtocol, ReplBackend

PORT_FILE = ".nrepl-port"

OPS = (
    "clone",
    "close",
    "eval",
    "eval-region",
    "eval-last",
    "load-file",
    "complete",
    "boundary",
    "transform",
    "interrupt",
    "clear",
    "reset",
    "describe",
)


def _nlog(message: str) -> None:
    log(message, prefix="nREPL")


def _point(message: dict[str, Any]) -> int:
    """Cursor offset of a request, defaulting to the end of its text."""
    return int(message.get("point", len(message["text"])))


class NReplServer:
    """
    Network REPL server for editor integration.

    This server listens on a port and handles nREPL-style messages
    for evaluation, completion and source inspection.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 7888,
        config: Optional[ReplConfig] = None,
        registry: Optional[SessionRegistry] = None,
        port_file: Optional[str] = PORT_FILE,
    ):
        """
        Initialize the nREPL server.

        Args:
            host: The host to bind to.
            port: The port to listen on (0 picks a free port).
            config: Base settings for every cloned session.
            registry: Where the sessions' processes are kept.
            port_file: File the bound port is written to, or None.
        """
        self.host = host
        self.port = port
        self.config = config or load_config()
        self.registry = registry or SessionRegistry()
        self.port_file = port_file
        self.sessions: dict[str, ReplBackend] = {}
        self.lock = threading.Lock()
        self.socket: Optional[socket.socket] = None
        self.running = False

    def create_session(self) -> str:
        """
        Create a new REPL session.

        The JavaScript process is started lazily on the first request that
        needs it.

        Returns:
            The session ID.
        """
        session_id = str(uuid.uuid4())
        config = dataclasses.replace(
            self.config,
            session_name=f"{self.config.session_name}-{session_id}",
            module_paths=list(self.config.module_paths),
        )
        with self.lock:
            self.sessions[session_id] = ReplBackend(config, registry=self.registry)
        return session_id

    def get_or_create_session(
        self, session_id: Optional[str]
    ) -> tuple[str, ReplBackend]:
        """
        Get an existing session or create a new one.

        Args:
            session_id: Optional session ID.

        Returns:
            A tuple of (session_id, backend).
        """
        with self.lock:
            if session_id and session_id in self.sessions:
                return session_id, self.sessions[session_id]

        new_session_id = self.create_session()
        return new_session_id, self.sessions[new_session_id]

    def close_session(self, session_id: Optional[str]) -> None:
        with self.lock:
            backend = self.sessions.pop(session_id, None) if session_id else None
        if backend is not None:
            backend.close()

    def handle_message(self, message: dict[str, Any]) -> dict[str, Any]:
        """
        Handle an incoming nREPL message.

        Args:
            message: The message dictionary.

        Returns:
            A response dictionary.
        """
        op = message.get("op")
        msg_id = message.get("id")
        session = message.get("session")
        _nlog(f"Message: op={op}, session={session}, id={msg_id}")

        response: dict[str, Any] = {"id": msg_id}
        try:
            if op == "clone":
                new_session = self.create_session()
                _nlog(f"Created new session: {new_session}")
                response["new-session"] = new_session
                response["status"] = ["done"]

            elif op == "close":
                _nlog(f"Closing session: {session}")
                self.close_session(session)
                response["status"] = ["done", "session-closed"]

            elif op == "describe":
                response["versions"] = {"jsrepl": {"version-string": __version__}}
                response["ops"] = {name: {} for name in OPS}
                response["status"] = ["done"]

            elif op in OPS:
                session_id, backend = self.get_or_create_session(session)
                response["session"] = session_id
                response.update(self.dispatch(op, message, NReplProtocol(backend)))

            else:
                response["status"] = ["error", "unknown-op"]
                response["error"] = f"Unknown operation: {op}"

        except (JsReplError, KeyError, TypeError, ValueError) as e:
            _nlog(f"{op} failed: {e}")
            response["status"] = ["error"]
            response["error"] = str(e)
            response["error-type"] = type(e).__name__

        _nlog(f"Returning response: {response}")
        return response

    def dispatch(
        self, op: str, message: dict[str, Any], protocol: NReplProtocol
    ) -> dict[str, Any]:
        """Route a session operation to the protocol handler."""
        if op == "eval":
            return protocol.handle_eval(message.get("code", ""))
        if op == "eval-region":
            return protocol.handle_eval_region(
                message["text"], int(message["start"]), int(message["end"])
            )
        if op == "eval-last":
            return protocol.handle_eval_last(message["text"], _point(message))
        if op == "load-file":
            return protocol.handle_load_file(message["file-path"])
        if op == "complete":
            if "text" in message:
                return protocol.handle_complete_at_point(
                    message["text"], _point(message)
                )
            return protocol.handle_complete(
                message.get("prefix", ""), bool(message.get("module-path", False))
            )
        if op == "boundary":
            return protocol.handle_boundary(message["text"], _point(message))
        if op == "transform":
            return protocol.handle_transform(message.get("code", ""))
        if op == "interrupt":
            return protocol.handle_interrupt()
        if op == "clear":
            return protocol.handle_clear()
        if op == "reset":
            return protocol.handle_reset()
        raise ValueError(f"Unknown operation: {op}")

    def handle_client(self, client_socket: socket.socket, addr):
        """
        Handle a client connection.

        Args:
            client_socket: The client socket.
            addr: The client address.
        """
        _nlog(f"Client connected from {addr}")
        buffer = b""

        try:
            while self.running:
                data = client_socket.recv(4096)
                if not data:
                    break

                buffer += data

                # Process complete messages (newline-delimited JSON)
                while b"\n" in buffer:
                    line, buffer = buffer.split(b"\n", 1)

                    if not line.strip():
                        continue

                    try:
                        message = json.loads(line.decode("utf-8"))
                    except (json.JSONDecodeError, UnicodeDecodeError) as e:
                        response = {"status": ["error"], "error": f"Invalid JSON: {e}"}
                    else:
                        if isinstance(message, dict):
                            response = self.handle_message(message)
                        else:
                            response = {
                                "status": ["error"],
                                "error": "Message must be a JSON object",
                            }

                    client_socket.sendall((json.dumps(response) + "\n").encode("utf-8"))

        except OSError as e:
            _nlog(f"Error handling client {addr}: {e}")
        finally:
            client_socket.close()
            _nlog(f"Client disconnected from {addr}")

    def bind(self) -> int:
        """Open the listening socket and return the bound port."""
        self.socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.socket.bind((self.host, self.port))
        self.socket.listen(5)
        self.port = self.socket.getsockname()[1]
        self.running = True
        return self.port

    def start(self):
        """Start the nREPL server."""
        if self.socket is None:
            self.bind()
        server_socket = self.socket

        print(f"jsrepl nREPL server started on {self.host}:{self.port}")

        # Write port file for editors
        if self.port_file:
            with open(self.port_file, "w") as f:
                f.write(str(self.port))

        try:
            while self.running:
                try:
                    client_socket, addr = server_socket.accept()
                    client_thread = threading.Thread(
                        target=self.handle_client, args=(client_socket, addr)
                    )
                    client_thread.daemon = True
                    client_thread.start()
                except OSError:
                    if not self.running:
                        break
                    raise
        except KeyboardInterrupt:
            print("\nShutting down...")
        finally:
            self.stop()

    def stop(self):
        """Stop the nREPL server and every session it started."""
        self.running = False
        server_socket, self.socket = self.socket, None
        if server_socket:
            try:
                # Wakes a thread blocked in accept()
                server_socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            server_socket.close()
        for session_id in list(self.sessions):
            self.close_session(session_id)
        print("Server stopped.")


class SimpleNReplClient:
    """
    A simple nREPL client for testing and scripting.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 7888):
        """
        Initialize the client.

        Args:
            host: The host to connect to.
            port: The port to connect to.
        """
        self.host = host
        self.port = port
        self.socket: Optional[socket.socket] = None
        self.session: Optional[str] = None
        self.msg_counter = 0
        self.buffer = b""

    def connect(self):
        """Connect to the nREPL server and clone a session."""
        self.socket = socket.create_connection((self.host, self.port))

        response = self.send_message({"op": "clone"})
        self.session = response.get("new-session")
        print(f"Connected to {self.host}:{self.port}")
        print(f"Session: {self.session}")

    def send_message(self, message: dict[str, Any]) -> dict[str, Any]:
        """
        Send a message and receive the response.

        Args:
            message: The message to send.

        Returns:
            The response dictionary.
        """
        if not self.socket:
            raise RuntimeError("Not connected")

        self.msg_counter += 1
        message["id"] = str(self.msg_counter)

        if self.session and "session" not in message:
            message["session"] = self.session

        self.socket.sendall((json.dumps(message) + "\n").encode("utf-8"))

        while b"\n" not in self.buffer:
            data = self.socket.recv(4096)
            if not data:
                raise RuntimeError("Connection closed")
            self.buffer += data

        line, self.buffer = self.buffer.split(b"\n", 1)
        return json.loads(line.decode("utf-8"))

    def eval(self, code: str) -> dict[str, Any]:
        """
        Evaluate code on the server.

        Args:
            code: The code to evaluate.

        Returns:
            The response dictionary; printed output is under "out".
        """
        return self.send_message({"op": "eval", "code": code})

    def complete(self, prefix: str) -> list[str]:
        """
        Get completions for a prefix.

        Args:
            prefix: The prefix to complete.

        Returns:
            A list of completions.
        """
        response = self.send_message({"op": "complete", "prefix": prefix})
        return response.get("completions", [])

    def close(self):
        """Close the session and the connection."""
        if self.socket:
            try:
                self.send_message({"op": "close"})
            except (OSError, RuntimeError) as e:
                _nlog(f"close failed: {e}")
            self.socket.close()
            self.socket = None
            print("Disconnected.")
