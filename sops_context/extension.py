#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import logging
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sops_context.classifier import should_handle
from sops_context.client import MediatorClient, MediatorClosed, RPCCallError
from sops_context.invoker import Operation

COMMAND_DECRYPT = "sops.decrypt"
COMMAND_ENCRYPT = "sops.encrypt"


@dataclass(frozen=True)
class TextEdit:
    range: Any
    text: str


class SopsExtension:
    """Editor hooks: decrypt on open, encrypt on save, two manual commands.

    Documents are duck-typed: ``uri``, ``get_text()``, ``replace_whole_text(text)``
    and ``full_range``. A save event has ``document`` and ``wait_until(edits)``.
    The workspace only needs ``get_active_text_document()``.

    Nothing is changed in a document unless the server answered with a result;
    errors go to ``notifier`` (a toast in the editor) and to the log.
    """

    def __init__(self, client: MediatorClient, workspace=None,
                 notifier: Optional[Callable[[str], None]] = None, logger=None):
        self.client = client
        self.workspace = workspace
        self.notifier = notifier
        self.logger = logger or logging.getLogger("sops_context.extension")

    @property
    def commands(self) -> Dict[str, Callable[[], bool]]:
        return {
            COMMAND_DECRYPT: lambda: self.run_command(COMMAND_DECRYPT),
            COMMAND_ENCRYPT: lambda: self.run_command(COMMAND_ENCRYPT),
        }

    def on_open(self, document) -> bool:
        if not should_handle(document.uri):
            return False
        text = self._transform(Operation.DECRYPT, document)
        if text is None:
            return False
        document.replace_whole_text(text)
        return True

    def on_will_save(self, event) -> Optional[List[TextEdit]]:
        document = event.document
        if not should_handle(document.uri):
            return None
        text = self._transform(Operation.ENCRYPT, document)
        if text is None:
            return None
        edits = [TextEdit(range=document.full_range, text=text)]
        event.wait_until(edits)
        return edits

    def run_command(self, name: str) -> bool:
        if name == COMMAND_DECRYPT:
            operation = Operation.DECRYPT
        elif name == COMMAND_ENCRYPT:
            operation = Operation.ENCRYPT
        else:
            raise KeyError(f"Unknown command: {name}")

        document = self.workspace.get_active_text_document() if self.workspace else None
        if document is None or not should_handle(document.uri):
            return False
        text = self._transform(operation, document)
        if text is None:
            return False
        document.replace_whole_text(text)
        return True

    def _transform(self, operation: Operation, document) -> Optional[str]:
        try:
            result = self.client.request(operation.value, {"text": document.get_text()})
        except RPCCallError as e:
            message = e.message
        except MediatorClosed as e:
            message = f"sops {operation.value} failed: {e}"
        except FutureTimeoutError:
            message = f"sops {operation.value} timed out"
        else:
            return result["text"]

        self.logger.warning(f"sops {operation.value} failed for {document.uri}: {message}")
        if self.notifier:
            self.notifier(message)
        return None


def activate(ctx, client: MediatorClient, notifier: Optional[Callable[[str], None]] = None) -> SopsExtension:
    """Subscribe the hooks on ``ctx.workspace`` and register both commands."""
    extension = SopsExtension(client, ctx.workspace, notifier=notifier)
    ctx.workspace.on_did_open_text_document(extension.on_open)
    ctx.workspace.on_will_save_text_document(extension.on_will_save)
    for name, handler in extension.commands.items():
        ctx.commands.register_command(name, handler)
    return extension
