#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Union


class Operation(str, Enum):
    DECRYPT = "decrypt"
    ENCRYPT = "encrypt"


SOPS_ARGS = {
    Operation.DECRYPT: ["-d", "--input-type", "binary"],
    Operation.ENCRYPT: ["-e", "--output-type", "binary"],
}

GENERIC_FAILURE = {
    Operation.DECRYPT: "sops decryption failed",
    Operation.ENCRYPT: "sops encryption failed",
}

REASON_LAUNCH = "launch"
REASON_EXIT = "exit"
REASON_TIMEOUT = "timeout"


@dataclass(frozen=True)
class TransformOutput:
    text: str


@dataclass(frozen=True)
class TransformFailure:
    operation: Operation
    message: str
    reason: str
    returncode: Optional[int] = None
    detail: Optional[str] = None


TransformOutcome = Union[TransformOutput, TransformFailure]


class TransformInvoker:
    """Запускает внешний ``sops`` один раз на каждый запрос.

    Текст документа подаётся целиком на stdin, результат читается из stdout.
    Состояния между вызовами нет, поэтому один экземпляр можно вызывать
    из нескольких потоков одновременно.

    Args:
        command (Sequence[str]): argv prefix of the tool, ``["sops"]`` by default.
        timeout (float, optional): Kill the child after this many seconds.
        logger (logging.Logger, optional): Logger instance.
    """

    def __init__(self, command: Sequence[str] = ("sops",), timeout: Optional[float] = None, logger=None):
        if not command:
            raise ValueError("Transform command must not be empty")
        self.command = list(command)
        self.timeout = timeout
        self.logger = logger

    def argv(self, operation: Operation) -> list:
        return self.command + SOPS_ARGS[Operation(operation)]

    def invoke(self, operation: Operation, text: str) -> TransformOutcome:
        """Выполняет преобразование, ошибки возвращаются значением, а не исключением."""
        operation = Operation(operation)
        cmd = self.argv(operation)
        if self.logger:
            self.logger.debug(f"Running {' '.join(cmd)} ({len(text)} chars on stdin)")

        # Binary pipes: no newline translation in either direction.
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            if self.logger:
                self.logger.error(f"Cannot start {cmd[0]}: {e}")
            return TransformFailure(
                operation=operation,
                message=GENERIC_FAILURE[operation],
                reason=REASON_LAUNCH,
                detail=str(e),
            )

        try:
            stdout, stderr = proc.communicate(text.encode("utf-8"), timeout=self.timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            if self.logger:
                self.logger.error(f"{cmd[0]} {operation.value} timed out after {self.timeout}s")
            return TransformFailure(
                operation=operation,
                message=f"{GENERIC_FAILURE[operation]}: timed out after {self.timeout}s",
                reason=REASON_TIMEOUT,
            )

        if proc.returncode != 0:
            diagnostics = stderr.decode("utf-8", errors="replace")
            if self.logger:
                self.logger.warning(
                    f"{cmd[0]} {operation.value} exited with code {proc.returncode}: {diagnostics.strip()}"
                )
            return TransformFailure(
                operation=operation,
                message=diagnostics or GENERIC_FAILURE[operation],
                reason=REASON_EXIT,
                returncode=proc.returncode,
            )

        if self.logger:
            self.logger.debug(f"{cmd[0]} {operation.value} succeeded ({len(stdout)} bytes)")
        return TransformOutput(text=stdout.decode("utf-8", errors="replace"))
