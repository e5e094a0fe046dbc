"""
jsrepl.config - Configuration loader

This module handles parsing and loading .jsrepl.json configuration files.
It provides the ReplConfig class which holds everything needed to start
and talk to a JavaScript REPL session.

The .jsrepl.json file is a JSON object:
    {"program": "node",
     "program-arguments": ["--experimental-vm-modules"],
     "node-version": "20",
     "prompt": "> ",
     "repl-mode": "strict",
     "module-paths": ["lib", "node_modules"],
     "transform-modules": true,
     "poll-interval": 0.05,
     "session-name": "javascript",
     "debug": false}

Every field is optional. When "node-version" is given the executable is
resolved through nvm at session start instead of using "program".
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from jsrepl.process.session import (
    Executable,
    LiteralExecutable,
    ResolvedExecutable,
    default_repl_mode,
    nvm_resolver,
)

# Default configuration values
CONFIG_FILENAME = ".jsrepl.json"
DEFAULT_PROGRAM = "node"
DEFAULT_PROMPT = "> "
DEFAULT_POLL_INTERVAL = 0.05
DEFAULT_SESSION_NAME = "javascript"


def find_project_root(start_path: Optional[str] = None) -> Optional[str]:
    """
    Find the project root by walking up directory trees looking for .jsrepl.json.

    Args:
        start_path: Path to start searching from. If None, uses current working directory.
                   Can be a file or directory path.

    Returns:
        Absolute path to the directory containing .jsrepl.json, or None if not found.
    """
    if start_path is None:
        current = os.getcwd()
    elif os.path.isfile(start_path):
        current = os.path.dirname(os.path.abspath(start_path))
    else:
        current = os.path.abspath(start_path)

    while True:
        if os.path.isfile(os.path.join(current, CONFIG_FILENAME)):
            return current

        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


@dataclass
class ReplConfig:
    """
    Settings for one JavaScript REPL session.

    Fields:
        program: Executable to run when no node_version is set
        program_arguments: Extra arguments placed before the -e startup script
        node_version: Version to resolve through nvm at session start
        prompt: Prompt string given to repl.start(); also the end-of-reply marker
        repl_mode: REPL_MODE_* suffix ("sloppy" or "strict")
        module_paths: Directories exported to the child as NODE_PATH
        transform_modules: Rewrite import/export syntax before sending
        poll_interval: Seconds of silence the synchronizer waits for
        session_name: Registry key for the session
        debug: Write diagnostics to stderr

    Computed fields:
        project_root: Directory holding .jsrepl.json, if one was loaded
    """

    program: str = DEFAULT_PROGRAM
    program_arguments: list[str] = field(default_factory=list)
    node_version: Optional[str] = None
    prompt: str = DEFAULT_PROMPT
    repl_mode: str = field(default_factory=default_repl_mode)
    module_paths: list[str] = field(default_factory=list)
    transform_modules: bool = True
    poll_interval: float = DEFAULT_POLL_INTERVAL
    session_name: str = DEFAULT_SESSION_NAME
    debug: bool = False
    project_root: Optional[str] = None

    _raw: dict[str, Any] = field(default_factory=dict, repr=False)

    def executable(self) -> Executable:
        """Return how the REPL executable is found: a literal path or a resolver."""
        if self.node_version:
            return ResolvedExecutable(nvm_resolver(self.node_version))
        return LiteralExecutable(self.program)

    def get_absolute_module_paths(self) -> list[str]:
        """Module paths made absolute against the project root (or cwd)."""
        base = self.project_root or os.getcwd()
        return [os.path.normpath(os.path.join(base, p)) for p in self.module_paths]

    @classmethod
    def load(cls, path: Optional[str] = None) -> "ReplConfig":
        """
        Load a ReplConfig from a .jsrepl.json file.

        Args:
            path: Path to .jsrepl.json, directory containing it, or None to search
                  from current directory upward.

        Returns:
            Loaded ReplConfig instance.

        Raises:
            FileNotFoundError: If no .jsrepl.json file can be found.
            ValueError: If the file is invalid or a field has the wrong type.
        """
        if path is None:
            project_root = find_project_root()
            if project_root is None:
                raise FileNotFoundError(
                    f"Could not find {CONFIG_FILENAME} in current directory or any parent directory"
                )
        elif os.path.isfile(path):
            if os.path.basename(path) == CONFIG_FILENAME:
                project_root = os.path.dirname(os.path.abspath(path))
            else:
                project_root = find_project_root(path)
                if project_root is None:
                    raise FileNotFoundError(
                        f"Could not find {CONFIG_FILENAME} starting from {path}"
                    )
        elif os.path.isdir(path):
            project_root = find_project_root(path)
            if project_root is None:
                raise FileNotFoundError(
                    f"Could not find {CONFIG_FILENAME} in {path} or any parent directory"
                )
        else:
            raise FileNotFoundError(f"Path does not exist: {path}")

        config_file = os.path.join(project_root, CONFIG_FILENAME)

        with open(config_file, encoding="utf-8") as f:
            content = f.read()

        try:
            config_dict = json.loads(content) if content.strip() else {}
        except json.JSONDecodeError as e:
            raise ValueError(f"Failed to parse {config_file}: {e}") from e

        if not isinstance(config_dict, dict):
            raise ValueError(
                f"{config_file} must contain an object, got {type(config_dict).__name__}"
            )

        return cls.from_dict(config_dict, project_root=project_root, source=config_file)

    @classmethod
    def from_dict(
        cls,
        config_dict: dict[str, Any],
        project_root: Optional[str] = None,
        source: str = "configuration",
    ) -> "ReplConfig":
        """Build a ReplConfig from parsed settings, validating each field."""
        program = config_dict.get("program", DEFAULT_PROGRAM)
        program_arguments = config_dict.get("program-arguments", [])
        node_version = config_dict.get("node-version")
        prompt = config_dict.get("prompt", DEFAULT_PROMPT)
        repl_mode = config_dict.get("repl-mode", default_repl_mode())
        module_paths = config_dict.get("module-paths", [])
        transform_modules = config_dict.get("transform-modules", True)
        poll_interval = config_dict.get("poll-interval", DEFAULT_POLL_INTERVAL)
        session_name = config_dict.get("session-name", DEFAULT_SESSION_NAME)
        debug = config_dict.get("debug", False)

        if not isinstance(program, str) or not program:
            raise ValueError(f"{source}: program must be a non-empty string")
        if not isinstance(program_arguments, list) or not all(
            isinstance(a, str) for a in program_arguments
        ):
            raise ValueError(f"{source}: program-arguments must be a list of strings")
        if node_version is not None and not isinstance(node_version, str):
            raise ValueError(
                f"{source}: node-version must be a string, got {type(node_version).__name__}"
            )
        if not isinstance(prompt, str) or not prompt:
            raise ValueError(f"{source}: prompt must be a non-empty string")
        if repl_mode not in ("sloppy", "strict"):
            raise ValueError(
                f"{source}: repl-mode must be \"sloppy\" or \"strict\", got {repl_mode!r}"
            )
        if not isinstance(module_paths, list) or not all(
            isinstance(p, str) for p in module_paths
        ):
            raise ValueError(f"{source}: module-paths must be a list of strings")
        if not isinstance(transform_modules, bool):
            raise ValueError(f"{source}: transform-modules must be true or false")
        if (
            isinstance(poll_interval, bool)
            or not isinstance(poll_interval, (int, float))
            or poll_interval <= 0
        ):
            raise ValueError(f"{source}: poll-interval must be a positive number")
        if not isinstance(session_name, str) or not session_name:
            raise ValueError(f"{source}: session-name must be a non-empty string")
        if not isinstance(debug, bool):
            raise ValueError(f"{source}: debug must be true or false")

        return cls(
            program=program,
            program_arguments=list(program_arguments),
            node_version=node_version,
            prompt=prompt,
            repl_mode=repl_mode,
            module_paths=list(module_paths),
            transform_modules=transform_modules,
            poll_interval=float(poll_interval),
            session_name=session_name,
            debug=debug,
            project_root=project_root,
            _raw=config_dict,
        )


def load_config(path: Optional[str] = None) -> ReplConfig:
    """
    Load the nearest .jsrepl.json, or return defaults when there is none.

    Raises:
        ValueError: If a configuration file exists but is invalid.
    """
    try:
        return ReplConfig.load(path)
    except FileNotFoundError:
        return ReplConfig()
