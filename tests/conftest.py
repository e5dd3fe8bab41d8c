# Copyright (C) 2026 The Pole Chudes Dictionary Converter authors
#
# This library is free software; you can redistribute it and/or
# modify it under the terms of the GNU Lesser General Public
# License as published by the Free Software Foundation; either
# version 2.1 of the License, or (at your option) any later version.
"""Shared fixtures for building dictionary archives byte by byte."""

import pytest


def make_slot(payload: bytes, length=None) -> bytes:
    """A slot as the game stores it; length overrides the length byte."""
    if length is None:
        length = len(payload)
    return bytes([length]) + payload.ljust(20, b"\x00")


def make_archive(count: bytes, entries, marker: bytes = b"\x01", compact: bool = False) -> bytes:
    """Header followed by (word, key) slot pairs."""
    header = make_slot(count) if compact else marker + make_slot(count)
    body = b"".join(make_slot(word) + make_slot(key) for word, key in entries)
    return header + body


@pytest.fixture
def slot():
    return make_slot


@pytest.fixture
def archive():
    return make_archive


@pytest.fixture
def write_archive(tmp_path):
    """Write archive bytes to a file and return its path."""
    def _write(data: bytes, name: str = "POLE.OVL"):
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _write


@pytest.fixture
def write_text(tmp_path):
    """Write a text document and return its path."""
    def _write(text: str, name: str = "dict.txt"):
        path = tmp_path / name
        path.write_bytes(text.encode("utf-8"))
        return path
    return _write
