"""The diff command: options, rate-limit defaults and the run sequence."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence, TextIO

DEFAULT_NAMESPACE = "crossplane-system"
DEFAULT_TIMEOUT = "1m"
DEFAULT_QPS = 20.0
DEFAULT_BURST = 30

HELP_TEXT = """\
This command returns a diff of the in-cluster resources that would be modified \
if the provided Crossplane resources were applied.

Similar to kubectl diff, it requires Crossplane to be operating in the live \
cluster found in your kubeconfig.

Examples:
  # Show the changes that would result from applying xr.yaml (via file) in the default 'crossplane-system' namespace.
  crossplane diff xr.yaml

  # Show the changes that would result from applying xr.yaml (via stdin) in the default 'crossplane-system' namespace.
  cat xr.yaml | crossplane diff --

  # Show the changes that would result from applying xr.yaml, xr1.yaml, and xr2.yaml in the default 'crossplane-system' namespace.
  cat xr.yaml | crossplane diff xr1.yaml xr2.yaml --

  # Show the changes that would result from applying xr.yaml (via file) in the 'foobar' namespace with no color output.
  crossplane diff xr.yaml -n foobar --no-color

  # Show the changes in a compact format with minimal context.
  crossplane diff xr.yaml --compact
"""

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class CommandError(Exception):
    """Raised when the diff command cannot complete."""


@dataclass
class RestConfig:
    """Client-side rate limits for talking to the API server."""

    qps: float = 0.0
    burst: int = 0


class _AppContext(Protocol):
    def initialize(self, deadline: float, logger: logging.Logger) -> None: ...


class _Processor(Protocol):
    def initialize(self, deadline: float) -> None: ...

    def perform_diff(self, deadline: float, stdout: TextIO, resources: list[Any]) -> None: ...


class _Loader(Protocol):
    def load(self) -> list[Any]: ...


def _parse_duration(text: str) -> float:
    """Parse a duration such as ``30s``, ``1m`` or ``1h30m`` into seconds."""
    text = text.strip()
    if text == "0":
        return 0.0
    position = 0
    total = 0.0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if not text:
        raise ValueError("invalid duration ''")
    return total


def _duration_argument(text: str) -> float:
    try:
        return _parse_duration(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


@dataclass
class DiffCommand:
    """Options of the diff command and the steps it runs."""

    namespace: str = DEFAULT_NAMESPACE
    files: list[str] = field(default_factory=list)
    no_color: bool = False
    compact: bool = False
    timeout: float = 60.0
    qps: float = 0.0
    burst: int = 0
    logger: Optional[logging.Logger] = field(default=None, repr=False, compare=False)

    @property
    def _log(self) -> logging.Logger:
        return self.logger or logging.getLogger(__name__)

    def init_rest_config(self, config: RestConfig) -> RestConfig:
        """Return the config with rate limits from the options, or defaults where unset."""
        if self.qps > 0:
            qps = self.qps
        elif config.qps == 0:
            qps = DEFAULT_QPS
        else:
            qps = config.qps

        if self.burst > 0:
            burst = self.burst
        elif config.burst == 0:
            burst = DEFAULT_BURST
        else:
            burst = config.burst

        self._log.debug(
            "Configured REST client rate limits original_qps=%s original_burst=%s "
            "options_qps=%s options_burst=%s final_qps=%s final_burst=%s",
            config.qps,
            config.burst,
            self.qps,
            self.burst,
            qps,
            burst,
        )
        return dataclasses.replace(config, qps=qps, burst=burst)

    def run(
        self,
        app_context: _AppContext,
        processor: _Processor,
        loader: _Loader,
        stdout: TextIO,
    ) -> None:
        """Initialise the clients, load resources and write their diff to ``stdout``.

        Collaborators receive a ``time.monotonic()`` deadline derived from the timeout.
        """
        deadline = time.monotonic() + self.timeout

        try:
            app_context.initialize(deadline, self._log)
        except Exception as exc:
            raise CommandError(f"cannot initialize client: {exc}") from exc

        try:
            resources = loader.load()
        except Exception as exc:
            raise CommandError(f"cannot load resources: {exc}") from exc

        try:
            processor.initialize(deadline)
        except Exception as exc:
            raise CommandError(f"cannot initialize diff processor: {exc}") from exc

        try:
            processor.perform_diff(deadline, stdout, resources)
        except Exception as exc:
            raise CommandError(f"unable to process one or more resources: {exc}") from exc


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser of the diff command."""
    parser = argparse.ArgumentParser(
        prog="crossplane diff",
        description="Diff the in-cluster resources against the provided Crossplane resources.",
        epilog=HELP_TEXT,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "files",
        nargs="*",
        help="YAML files containing Crossplane resources to diff.",
    )
    parser.add_argument(
        "-n",
        "--namespace",
        default=DEFAULT_NAMESPACE,
        help="Namespace to compare resources against.",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colorized output.")
    parser.add_argument(
        "--compact", action="store_true", help="Show compact diffs with minimal context."
    )
    parser.add_argument(
        "--timeout",
        type=_duration_argument,
        default=DEFAULT_TIMEOUT,
        help="How long to run before timing out.",
    )
    parser.add_argument("--qps", type=float, default=0.0, help="Maximum QPS to the API server.")
    parser.add_argument("--burst", type=int, default=0, help="Maximum burst for throttle.")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> DiffCommand:
    """Parse command-line arguments into a DiffCommand."""
    options = build_parser().parse_args(argv)
    return DiffCommand(
        namespace=options.namespace,
        files=list(options.files),
        no_color=options.no_color,
        compact=options.compact,
        timeout=options.timeout,
        qps=options.qps,
        burst=options.burst,
    )