#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, TextIO, Union

from pydantic import ValidationError

from sops_context.invoker import Operation, TransformFailure, TransformInvoker, TransformOutcome
from sops_context.rpc_schema import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_ERROR,
    METHOD_NOT_FOUND,
    MalformedRequest,
    RPCRequest,
    RPCResponse,
    TransformParams,
    TransformResult,
    failure,
    parse_request,
    success,
)

Handler = Callable[[Any], TransformOutcome]


def _decode(line: Union[str, bytes]) -> str:
    if isinstance(line, str):
        return line
    try:
        return line.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedRequest(f"invalid UTF-8 at byte {e.start}") from e


def transform_handler(invoker: TransformInvoker, operation: Operation) -> Handler:
    def handle(params: Any) -> TransformOutcome:
        parsed = TransformParams.model_validate(params if params is not None else {})
        return invoker.invoke(operation, parsed.text)

    handle.__name__ = operation.value
    return handle


def build_methods(invoker: TransformInvoker) -> Dict[str, Handler]:
    """Method registry of one session: ``decrypt`` and ``encrypt``."""
    return {op.value: transform_handler(invoker, op) for op in Operation}


class Mediator:
    """Line-delimited JSON-RPC 2.0 server loop.

    Lines are read and dispatched in arrival order; each request then runs on
    the worker pool, so a slow ``sops`` call never blocks intake of the next
    line. Responses are written as soon as they are ready, one compact JSON
    value per line, in completion order.

    Args:
        methods (Mapping[str, Handler]): Method name -> handler.
        output (TextIO): Response stream. Nothing else is written to it.
        logger (logging.Logger, optional): Operator side channel.
        max_workers (int, optional): Size of the worker pool.
    """

    def __init__(
        self,
        methods: Mapping[str, Handler],
        output: TextIO,
        logger: Optional[logging.Logger] = None,
        max_workers: Optional[int] = None,
    ):
        self.methods = dict(methods)
        self.output = output
        self.logger = logger or logging.getLogger("sops_context.mediator")
        self.max_workers = max_workers
        self._write_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def serve(self, lines: Iterable[Union[str, bytes]]) -> None:
        """Run until ``lines`` is exhausted, then wait for in-flight requests."""
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="sops-rpc")
        try:
            for line in lines:
                self.submit(line)
        finally:
            self._executor.shutdown(wait=True)
            self._executor = None

    def submit(self, line: Union[str, bytes]) -> Optional[Future]:
        if not line.strip():
            return None
        try:
            request = parse_request(_decode(line))
        except MalformedRequest as e:
            self.logger.warning(f"Dropping malformed request line {line.strip()[:200]!r}: {e}")
            return None

        self.logger.debug(f"Request id={request.id!r} method={request.method}")
        if self._executor is None:
            self._respond(request)
            return None
        return self._executor.submit(self._respond, request)

    # ------------------------------------------------------------------
    # Dispatching
    # ------------------------------------------------------------------

    def dispatch(self, request: RPCRequest) -> Optional[RPCResponse]:
        """Run the handler and build the response; None for notifications."""
        handler = self.methods.get(request.method)
        if handler is None:
            response = failure(request.id, METHOD_NOT_FOUND, "Method not found", {"method": request.method})
        else:
            try:
                outcome = handler(request.params)
            except ValidationError as e:
                response = failure(
                    request.id,
                    INVALID_PARAMS,
                    "Invalid params",
                    {"errors": json.loads(e.json(include_url=False))},
                )
            except Exception:  # noqa: BLE001
                self.logger.exception(f"Handler {request.method} crashed on request id={request.id!r}")
                response = failure(request.id, INTERNAL_ERROR, "Internal error")
            else:
                response = self._to_response(request, outcome)

        if not request.expects_response:
            return None
        return response

    def _to_response(self, request: RPCRequest, outcome: TransformOutcome) -> RPCResponse:
        if isinstance(outcome, TransformFailure):
            data = {"operation": outcome.operation.value, "reason": outcome.reason}
            if outcome.returncode is not None:
                data["returncode"] = outcome.returncode
            if outcome.detail is not None:
                data["detail"] = outcome.detail
            return failure(request.id, METHOD_ERROR, outcome.message, data)
        return success(request.id, TransformResult(text=outcome.text).model_dump())

    def _respond(self, request: RPCRequest) -> None:
        response = self.dispatch(request)
        if response is None:
            return
        try:
            self.write(response)
        except OSError as e:
            # Reader went away; the session ends when stdin closes.
            self.logger.error(f"Cannot write response id={request.id!r}: {e}")

    def write(self, response: RPCResponse) -> None:
        line = response.to_line()
        with self._write_lock:
            self.output.write(line)
            self.output.flush()
