#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import itertools
import json
import subprocess
import sys
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional, Sequence


class RPCCallError(RuntimeError):
    """Error response received for a request."""

    def __init__(self, code: int, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


class MediatorClosed(RuntimeError):
    """The server process exited before answering."""


def default_server_argv() -> List[str]:
    return [sys.executable, "-m", "sops_context.server"]


class MediatorClient:
    """Editor-side client for the JSON-RPC server.

    Spawns the server, writes one request per line and resolves futures from a
    reader thread, matching responses by id, so several requests may be in
    flight at once.

    Args:
        argv (Sequence[str], optional): Server command line.
        logger (logging.Logger, optional): Logger instance.
    """

    def __init__(self, argv: Optional[Sequence[str]] = None, logger=None):
        self.argv = list(argv) if argv else default_server_argv()
        self.logger = logger
        self._ids = itertools.count(1)
        self._pending: Dict[Any, Future] = {}
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._proc: Optional[subprocess.Popen] = None
        self._reader: Optional[threading.Thread] = None

    def __enter__(self) -> "MediatorClient":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def start(self) -> None:
        if self._proc is not None:
            return
        if self.logger:
            self.logger.debug(f"Starting mediator: {self.argv}")
        self._proc = subprocess.Popen(
            self.argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            encoding="utf-8",
        )
        self._reader = threading.Thread(target=self._read_responses, name="sops-rpc-reader", daemon=True)
        self._reader.start()

    def request(self, method: str, params: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """Send a request and block until its response arrives."""
        request_id = next(self._ids)
        future: Future = Future()
        with self._lock:
            self._pending[request_id] = future
        try:
            self._send({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
        except (OSError, MediatorClosed):
            with self._lock:
                self._pending.pop(request_id, None)
            raise
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            with self._lock:
                self._pending.pop(request_id, None)
            raise

    def notify(self, method: str, params: Dict[str, Any]) -> None:
        self._send({"jsonrpc": "2.0", "method": method, "params": params})

    def close(self) -> int:
        """Close the server's stdin and wait for it to exit."""
        if self._proc is None:
            return 0
        proc = self._proc
        if proc.stdin and not proc.stdin.closed:
            try:
                proc.stdin.close()
            except OSError as e:
                if self.logger:
                    self.logger.warning(f"Closing mediator stdin failed: {e}")
        returncode = proc.wait()
        if self._reader is not None:
            self._reader.join()
        self._proc = None
        self._fail_pending(MediatorClosed(f"Mediator exited with code {returncode}"))
        return returncode

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _send(self, message: Dict[str, Any]) -> None:
        if self._proc is None:
            raise MediatorClosed("Mediator is not running")
        line = json.dumps(message, ensure_ascii=False, separators=(",", ":")) + "\n"
        with self._write_lock:
            self._proc.stdin.write(line)
            self._proc.stdin.flush()

    def _read_responses(self) -> None:
        for line in self._proc.stdout:
            try:
                response = json.loads(line)
            except json.JSONDecodeError:
                if self.logger:
                    self.logger.error(f"Invalid JSON from mediator: {line!r}")
                continue
            with self._lock:
                future = self._pending.pop(response.get("id"), None)
            if future is None:
                if self.logger:
                    self.logger.warning(f"Response for unknown id: {response.get('id')!r}")
                continue
            error = response.get("error")
            if error is not None:
                future.set_exception(RPCCallError(error.get("code", 0), error.get("message", ""), error.get("data")))
            else:
                future.set_result(response.get("result"))
        self._fail_pending(MediatorClosed("Mediator closed its output"))

    def _fail_pending(self, exc: Exception) -> None:
        with self._lock:
            pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(exc)
