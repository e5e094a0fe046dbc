"""
jsrepl.cli - jsrepl Command Line Interface

This module provides the main CLI entry point for jsrepl with subcommand support:

- jsrepl repl                 Start the interactive REPL
- jsrepl eval <code>          Evaluate code and print what it printed
- jsrepl load <file>          Send a JavaScript file as one evaluation
- jsrepl complete <text>      Print the REPL's completions for the text
- jsrepl boundary <text>      Print where the expression before the end starts
- jsrepl transform [file]     Print the import/export rewrite of a file
- jsrepl server               Start the nREPL server
- jsrepl client               Connect to an nREPL server as a test client

With no subcommand, the interactive REPL is started.
"""

import argparse
import sys
from typing import Optional

from jsrepl import debug
from jsrepl.config import ReplConfig, load_config
from jsrepl.errors import JsReplError


def _read_source(path: Optional[str]) -> str:
    """Read a file, or stdin when path is None or "-"."""
    if path is None or path == "-":
        return sys.stdin.read()
    with open(path, encoding="utf-8") as f:
        return f.read()


def _load_config(args: argparse.Namespace) -> Optional[ReplConfig]:
    """Load settings and apply command line overrides; None on error."""
    try:
        config = load_config(getattr(args, "config", None))
    except ValueError as e:
        print(f"Error in configuration: {e}", file=sys.stderr)
        return None

    if getattr(args, "program", None):
        config.program = args.program
    if getattr(args, "node_version", None):
        config.node_version = args.node_version
    if getattr(args, "strict", False):
        config.repl_mode = "strict"
    if getattr(args, "no_transform", False):
        config.transform_modules = False
    for path in getattr(args, "module_path", None) or []:
        if path not in config.module_paths:
            config.module_paths.append(path)
    if config.debug:
        debug.enable()
    return config


def _point(text: str, point: Optional[int]) -> int:
    return len(text) if point is None else point


def cmd_repl(args: argparse.Namespace) -> int:
    """Start the interactive REPL."""
    from jsrepl.repl import ReplBackend, create_repl

    config = _load_config(args)
    if config is None:
        return 1

    backend = ReplBackend(config)
    try:
        backend.session
    except JsReplError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    mode = "simple" if args.simple or not sys.stdin.isatty() else "terminal"
    repl_instance = create_repl(mode=mode, backend=backend)
    repl_instance.run()
    return 0


def cmd_eval(args: argparse.Namespace) -> int:
    """Evaluate code (or stdin with "-") and print the output."""
    from jsrepl.repl import ReplBackend

    config = _load_config(args)
    if config is None:
        return 1

    code = _read_source(None) if args.code == "-" else args.code
    backend = ReplBackend(config)
    try:
        result = backend.send_code(code)
    except JsReplError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        backend.close()

    if result.output:
        print(result.output)
    return 0


def cmd_load(args: argparse.Namespace) -> int:
    """Send a JavaScript file as one evaluation."""
    from jsrepl.repl import ReplBackend

    config = _load_config(args)
    if config is None:
        return 1

    backend = ReplBackend(config)
    try:
        result = backend.load_file(args.file)
    except OSError as e:
        print(f"Error reading {args.file}: {e}", file=sys.stderr)
        return 1
    except JsReplError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        backend.close()

    if result.output:
        print(result.output)
    return 0


def cmd_complete(args: argparse.Namespace) -> int:
    """Print one completion candidate per line."""
    from jsrepl.repl import ReplBackend

    config = _load_config(args)
    if config is None:
        return 1

    backend = ReplBackend(config)
    try:
        _, candidates = backend.complete_at_point(
            args.text, _point(args.text, args.point)
        )
    except JsReplError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        backend.close()

    for candidate in candidates:
        print(candidate)
    return 0


def cmd_boundary(args: argparse.Namespace) -> int:
    """Print the start offset and text of the expression ending at point."""
    from jsrepl.source import last_expression

    text = _read_source(args.file) if args.text is None else args.text
    try:
        start, expression = last_expression(text, _point(text, args.point))
    except (JsReplError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(start)
    print(expression)
    return 0


def cmd_transform(args: argparse.Namespace) -> int:
    """Print the REPL-evaluable rewrite of a file (or stdin)."""
    from jsrepl.source import transform

    try:
        source = _read_source(args.file)
    except OSError as e:
        print(f"Error reading {args.file}: {e}", file=sys.stderr)
        return 1

    sys.stdout.write(transform(source))
    return 0


def cmd_server(args: argparse.Namespace) -> int:
    """Start the nREPL server."""
    from jsrepl.repl.nrepl import NReplServer

    config = _load_config(args)
    if config is None:
        return 1

    if config.project_root:
        print(f"Starting nREPL server for project: {config.project_root}")
    else:
        print("Starting nREPL server (no project context)")

    server = NReplServer(args.host, args.port, config=config)
    server.start()
    return 0


def cmd_client(args: argparse.Namespace) -> int:
    """Connect to an nREPL server as a test client."""
    from jsrepl.repl.nrepl import SimpleNReplClient

    client = SimpleNReplClient(args.host, args.port)
    try:
        client.connect()
        print("\nSimple nREPL Client")
        print("Type code to evaluate, or :quit to exit\n")

        while True:
            try:
                code = input("client> ")
                if code.strip() == ":quit":
                    break
                if not code.strip():
                    continue

                response = client.eval(code)

                if "error" in response:
                    print(f"Error: {response['error']}")
                elif "out" in response:
                    print(response["out"])

            except EOFError:
                break
            except KeyboardInterrupt:
                print()
                continue
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        client.close()
    return 0


def _add_session_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to .jsrepl.json or a directory to search from",
    )
    parser.add_argument("--program", help="REPL executable (default: node)")
    parser.add_argument(
        "--node-version", metavar="VERSION", help="Resolve node through nvm"
    )
    parser.add_argument(
        "--module-path",
        "-I",
        action="append",
        metavar="DIR",
        help="Add a directory to NODE_PATH (repeatable)",
    )
    parser.add_argument(
        "--strict", action="store_true", help="Start the REPL in strict mode"
    )
    parser.add_argument(
        "--no-transform",
        action="store_true",
        help="Send code without rewriting import/export syntax",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="jsrepl",
        description="jsrepl - Drive a JavaScript REPL from editors and scripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  jsrepl                                  Start interactive REPL
  jsrepl eval "[1, 2, 3].map(x => x * 2)" Evaluate code
  jsrepl load script.mjs                  Send a file
  jsrepl complete "Math.ab"               List completions
  jsrepl boundary "x = foo.bar(1)"        Find the last expression
  jsrepl transform module.mjs             Show the import/export rewrite
  jsrepl server --port 7888               Start nREPL server
        """,
    )

    parser.add_argument(
        "--debug", action="store_true", help="Write diagnostics to stderr"
    )
    parser.add_argument(
        "--log", metavar="FILE", help="Also write diagnostics to FILE"
    )

    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    # repl subcommand
    repl_parser = subparsers.add_parser("repl", help="Start the interactive REPL")
    _add_session_options(repl_parser)
    repl_parser.add_argument(
        "--simple", action="store_true", help="Plain input without readline"
    )

    # eval subcommand
    eval_parser = subparsers.add_parser("eval", help="Evaluate code")
    _add_session_options(eval_parser)
    eval_parser.add_argument("code", help='JavaScript code, or "-" for stdin')

    # load subcommand
    load_parser = subparsers.add_parser("load", help="Send a JavaScript file")
    _add_session_options(load_parser)
    load_parser.add_argument("file", help="File to send")

    # complete subcommand
    complete_parser = subparsers.add_parser(
        "complete", help="Print completion candidates"
    )
    _add_session_options(complete_parser)
    complete_parser.add_argument("text", help="Text before (and around) the cursor")
    complete_parser.add_argument(
        "--point", type=int, help="Cursor offset (default: end of text)"
    )

    # boundary subcommand
    boundary_parser = subparsers.add_parser(
        "boundary", help="Find the start of the expression before the cursor"
    )
    boundary_parser.add_argument(
        "text", nargs="?", help="Source text (default: read --file or stdin)"
    )
    boundary_parser.add_argument("--file", "-f", help="Read the source from a file")
    boundary_parser.add_argument(
        "--point", type=int, help="Cursor offset (default: end of text)"
    )

    # transform subcommand
    transform_parser = subparsers.add_parser(
        "transform", help="Rewrite import/export syntax"
    )
    transform_parser.add_argument(
        "file", nargs="?", help="Source file (default: stdin)"
    )

    # server subcommand
    server_parser = subparsers.add_parser("server", help="Start the nREPL server")
    _add_session_options(server_parser)
    server_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    server_parser.add_argument(
        "--port", type=int, default=7888, help="Port to listen on (default: 7888)"
    )

    # client subcommand
    client_parser = subparsers.add_parser(
        "client", help="Connect to an nREPL server as a test client"
    )
    client_parser.add_argument("--host", default="127.0.0.1", help="Server host")
    client_parser.add_argument("--port", type=int, default=7888, help="Server port")

    return parser


COMMANDS = {
    "repl": cmd_repl,
    "eval": cmd_eval,
    "load": cmd_load,
    "complete": cmd_complete,
    "boundary": cmd_boundary,
    "transform": cmd_transform,
    "server": cmd_server,
    "client": cmd_client,
}


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the jsrepl CLI. Calls sys.exit with return code."""
    sys.exit(_main(argv))


def _main(argv: Optional[list[str]] = None) -> int:
    """Internal main that returns exit code."""
    if argv is None:
        argv = sys.argv[1:]

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.debug or args.log:
        debug.enable(args.log)

    if args.subcommand is None:
        args = parser.parse_args([*argv, "repl"])

    return COMMANDS[args.subcommand](args)


if __name__ == "__main__":
    main()
