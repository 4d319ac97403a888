#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import re

# JavaScript-style "$": end of string only, never before a trailing newline.
_ENV_SUFFIX = re.compile(r"\.env\Z")


def should_handle(uri: str) -> bool:
    """Return True when encryption of the document at ``uri`` is managed here.

    Only the identifier is looked at, never the file content:

    * contains ``sops`` and ends with ``.yaml``;
    * ends with ``.enc``;
    * ends with ``.env`` (no path-segment check, ``weird.env`` matches too).
    """
    return (
        ("sops" in uri and uri.endswith(".yaml"))
        or uri.endswith(".enc")
        or _ENV_SUFFIX.search(uri) is not None
    )
