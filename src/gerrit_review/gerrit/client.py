# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit SSH transport with bounded, polled waits.

This module runs Gerrit commands through the ``ssh`` binary with:
- A true argument vector end to end (no local shell)
- A bounded overall timeout, checked by periodic polling
- Cooperative cancellation through a ``threading.Event``
- Captured stderr on failure

There is no automatic retry; a failed call is reported to the caller.

Usage:
    from gerrit_review.gerrit.client import GerritSshClient

    client = GerritSshClient(timeout=30.0)
    for line in client.execute_streamed(argv):
        ...
"""

from __future__ import annotations

import logging
import queue
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import IO, Final, Iterator, Sequence

from gerrit_review.gerrit.errors import (
    TransportCancelledError,
    TransportError,
    TransportTimeoutError,
)

log = logging.getLogger("gerrit_review.gerrit.client")


DEFAULT_TIMEOUT: Final[float] = 60.0
DEFAULT_POLL_INTERVAL: Final[float] = 0.2

# Sentinel pushed by the reader thread at EOF
_EOF: Final[object] = object()


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a completed ssh command."""

    argv: tuple[str, ...]
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def output(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")


def _describe(argv: Sequence[str]) -> str:
    """Command summary for messages, without the ssh login."""
    try:
        idx = list(argv).index("gerrit")
    except ValueError:
        return " ".join(argv)
    return " ".join(argv[idx:idx + 2])


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace").strip()


class GerritSshClient:
    """
    Runs Gerrit SSH commands as subprocesses.

    Calls block the invoking thread until the subprocess exits, but never
    for longer than ``timeout`` seconds; the wait is split into
    ``poll_interval`` slices so a cancel request is noticed promptly.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """
        Initialize the transport.

        Args:
            timeout: Maximum seconds to wait for one command.
            poll_interval: Seconds between cancellation/deadline checks.
        """
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._timeout: float = float(timeout)
        self._poll_interval: float = max(0.01, float(poll_interval))

        log.debug(
            "GerritSshClient initialized: timeout=%.1fs, poll=%.2fs",
            self._timeout,
            self._poll_interval,
        )

    @property
    def timeout(self) -> float:
        return self._timeout

    def _spawn(self, argv: Sequence[str]) -> subprocess.Popen[bytes]:
        if not argv:
            raise ValueError("argv is required")
        log.debug("Running: %s", " ".join(argv))
        try:
            return subprocess.Popen(
                list(argv),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise TransportError(
                f"Failed to start {argv[0]}: {exc}"
            ) from exc

    def _kill(self, proc: subprocess.Popen[bytes]) -> bytes:
        proc.kill()
        try:
            _out, err = proc.communicate(timeout=self._poll_interval * 5)
        except subprocess.TimeoutExpired:
            return b""
        return err or b""

    def execute(
        self,
        argv: Sequence[str],
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        """
        Run a command and wait for it to exit.

        Args:
            argv: The full argument vector, starting with ``ssh``.
            cancel_event: Optional event; setting it aborts the command.

        Returns:
            The CommandResult of a zero exit.

        Raises:
            TransportError: On spawn failure or non-zero exit.
            TransportTimeoutError: If the command outlives the timeout.
            TransportCancelledError: If cancel_event was set.
        """
        proc = self._spawn(argv)
        deadline = time.monotonic() + self._timeout
        what = _describe(argv)

        while True:
            if cancel_event is not None and cancel_event.is_set():
                stderr = self._kill(proc)
                raise TransportCancelledError(
                    f"{what} cancelled", stderr=_decode(stderr)
                )
            try:
                stdout, stderr = proc.communicate(timeout=self._poll_interval)
                break
            except subprocess.TimeoutExpired:
                if time.monotonic() >= deadline:
                    stderr = self._kill(proc)
                    raise TransportTimeoutError(
                        f"{what} timed out after {self._timeout:.0f}s",
                        stderr=_decode(stderr),
                    ) from None

        result = CommandResult(
            argv=tuple(argv),
            returncode=proc.returncode,
            stdout=stdout or b"",
            stderr=stderr or b"",
        )
        if result.returncode != 0:
            err = _decode(result.stderr)
            log.debug("%s failed (exit %d): %s", what, result.returncode, err)
            raise TransportError(
                f"{what} failed with exit code {result.returncode}: {err}",
                returncode=result.returncode,
                stderr=err,
            )
        return result

    def execute_streamed(
        self,
        argv: Sequence[str],
        cancel_event: threading.Event | None = None,
    ) -> Iterator[str]:
        """
        Run a command and yield its stdout line by line.

        Lines are yielded as they arrive. Once stdout is exhausted the
        exit status is checked, so a failing command raises after any
        lines it produced.

        Raises:
            TransportError: On spawn failure or non-zero exit.
            TransportTimeoutError: If the command outlives the timeout.
            TransportCancelledError: If cancel_event was set.
        """
        proc = self._spawn(argv)
        deadline = time.monotonic() + self._timeout
        what = _describe(argv)
        lines: queue.Queue[object] = queue.Queue()
        stderr_chunks: list[bytes] = []

        def _read_stdout(stream: IO[bytes]) -> None:
            for raw in iter(stream.readline, b""):
                lines.put(raw)
            lines.put(_EOF)

        def _read_stderr(stream: IO[bytes]) -> None:
            stderr_chunks.append(stream.read())

        readers = [
            threading.Thread(target=_read_stdout, args=(proc.stdout,), daemon=True),
            threading.Thread(target=_read_stderr, args=(proc.stderr,), daemon=True),
        ]
        for reader in readers:
            reader.start()

        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    proc.kill()
                    raise TransportCancelledError(f"{what} cancelled")
                if time.monotonic() >= deadline:
                    proc.kill()
                    raise TransportTimeoutError(
                        f"{what} timed out after {self._timeout:.0f}s"
                    )
                try:
                    item = lines.get(timeout=self._poll_interval)
                except queue.Empty:
                    continue
                if item is _EOF:
                    break
                line = item.decode("utf-8", errors="replace")  # type: ignore[attr-defined]
                yield line.rstrip("\r\n")

            remaining = max(deadline - time.monotonic(), self._poll_interval)
            try:
                returncode = proc.wait(timeout=remaining)
            except subprocess.TimeoutExpired:
                proc.kill()
                raise TransportTimeoutError(
                    f"{what} timed out after {self._timeout:.0f}s"
                ) from None
            readers[1].join(timeout=self._poll_interval * 5)
            if returncode != 0:
                err = _decode(b"".join(stderr_chunks))
                raise TransportError(
                    f"{what} failed with exit code {returncode}: {err}",
                    returncode=returncode,
                    stderr=err,
                )
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()

    def __repr__(self) -> str:
        return f"GerritSshClient(timeout={self._timeout})"


def build_client(
    *,
    timeout: float | None = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> GerritSshClient:
    """
    Build a GerritSshClient.

    Args:
        timeout: Seconds to wait per command; defaults to DEFAULT_TIMEOUT.
        poll_interval: Seconds between deadline/cancel checks.

    Returns:
        A configured GerritSshClient instance.
    """
    return GerritSshClient(
        timeout=DEFAULT_TIMEOUT if timeout is None else timeout,
        poll_interval=poll_interval,
    )


__all__ = [
    "CommandResult",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_TIMEOUT",
    "GerritSshClient",
    "build_client",
]
