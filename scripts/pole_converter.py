#!/usr/bin/env python3
"""
Pole Chudes Dictionary Converter

Converts the POLE.OVL word dictionary of the MS-DOS game "Pole Chudes" to an
editable text file and back. The text form groups the words by their key
(the hint shown in the game):

    [Animal]
    giraffe
    hedgehog
    [Planet]
    saturn

Usage:
    python pole_converter.py unpack <POLE.OVL> <dict.txt>
    python pole_converter.py pack <dict.txt> <POLE.OVL>
    python pole_converter.py pack --compact-header <dict.txt> <POLE.OVL>
    python pole_converter.py info <POLE.OVL>

Using a .yaml/.yml file instead of .txt stores the same sections as YAML.

Archive layout:
- Header: count of entries as a decimal string in one slot
- Entries: word slot followed by key slot, repeated
- Slot: length byte + 20 payload bytes, zero-padded
- Text is CP866, except that the game stores bytes 0xE0-0xFF shifted
  down by 0x30

Copyright (C) 2026 The Pole Chudes Dictionary Converter authors

This library is free software; you can redistribute it and/or
modify it under the terms of the GNU Lesser General Public
License as published by the Free Software Foundation; either
version 2.1 of the License, or (at your option) any later version.

This library is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
Lesser General Public License for more details.

You should have received a copy of the GNU Lesser General Public
License along with this library; if not, write to the Free Software
Foundation, Inc., 51 Franklin Street, Fifth Floor, Boston, MA  02110-1301  USA
"""

import argparse
import io
import re
import sys
import yaml
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Optional, TextIO

# ============================================================================
# Constants
# ============================================================================

LEGACY_CODEPAGE = "cp866"

SLOT_PAYLOAD_SIZE = 20

# Smallest dictionary the game accepts
MIN_ENTRIES = 3

# The game keeps CP866 0xE0-0xFF at 0xB0-0xCF
SHIFT = 0x30
DECODE_SHIFT_FROM = 0xB0
ENCODE_SHIFT_FROM = 0xE0

ASCII_DIGITS = range(0x30, 0x3A)

YAML_SUFFIXES = {".yaml", ".yml"}
YAML_FORMAT = "Pole Chudes dictionary"


class HeaderLayout(IntEnum):
    """Header layouts, valued by their size in bytes."""
    COMPACT = 21  # length byte + payload, as written by the DOS-era tool
    MARKED = 22   # marker byte + length byte + payload


# ============================================================================
# Errors
# ============================================================================

class ConverterError(Exception):
    """Base class for dictionary conversion errors."""


class EncodingError(ConverterError):
    """Text could not be converted to or from the game's code page."""

    def __init__(self, message: str, context: Optional[str] = None):
        if context:
            message = f"{context}: {message}"
        super().__init__(message)
        self.context = context


class TruncatedRecordError(ConverterError):
    """The archive ended inside a slot.

    declared_len is the slot's length byte, or None when the archive ended
    before it (a clean end between two slots).
    """

    def __init__(self, message: str, declared_len: Optional[int] = None):
        super().__init__(message)
        self.declared_len = declared_len


class InsufficientEntriesError(ConverterError):
    """The text document holds fewer words than the game needs."""

    def __init__(self, count: int):
        super().__init__(f"need at least {MIN_ENTRIES} key-value pairs, found {count}")
        self.count = count


# ============================================================================
# Legacy Byte Codec
# ============================================================================

_DECODE_TABLE = bytes(
    (b + SHIFT) & 0xFF if b >= DECODE_SHIFT_FROM else b for b in range(256)
)
_ENCODE_TABLE = bytes(
    b - SHIFT if b >= ENCODE_SHIFT_FROM else b for b in range(256)
)


def decode(data: bytes, context: Optional[str] = None) -> str:
    """Decode game bytes to text.

    Every byte from 0xB0 up is moved up by 0x30 (wrapping) before the CP866
    lookup, undoing the shift the game applies. '@' reads as a space, and
    the text ends at the first NUL.
    """
    shifted = bytes(data).translate(_DECODE_TABLE)
    try:
        text = shifted.decode(LEGACY_CODEPAGE)
    except UnicodeDecodeError as e:
        raise EncodingError(
            f"byte 0x{shifted[e.start]:02X} is not valid {LEGACY_CODEPAGE}", context
        ) from e
    return text.split("\x00", 1)[0].replace("@", " ")


def encode(text: str, context: Optional[str] = None) -> bytes:
    """Encode text to game bytes.

    The CP866 bytes from 0xE0 up are moved down by 0x30 after the lookup.
    Characters CP866 keeps at 0xB0-0xDF (box drawing) are rejected: the game
    reads those bytes back as shifted letters.
    """
    try:
        raw = text.encode(LEGACY_CODEPAGE)
    except UnicodeEncodeError as e:
        raise EncodingError(
            f"character {text[e.start]!r} has no {LEGACY_CODEPAGE} representation", context
        ) from e
    # CP866 is single-byte, so raw[i] is the code of text[i]
    for i, b in enumerate(raw):
        if DECODE_SHIFT_FROM <= b < ENCODE_SHIFT_FROM:
            raise EncodingError(
                f"character {text[i]!r} cannot be stored in the game's code page", context
            )
    return raw.translate(_ENCODE_TABLE)


# ============================================================================
# Fixed Record Layer
# ============================================================================

def pack_slot(payload: bytes) -> bytes:
    """Frame payload as a slot, truncating it to 20 bytes."""
    payload = payload[:SLOT_PAYLOAD_SIZE]
    return bytes([len(payload)]) + payload.ljust(SLOT_PAYLOAD_SIZE, b"\x00")


def _read_payload(stream: BinaryIO, declared_len: Optional[int]) -> bytes:
    payload = stream.read(SLOT_PAYLOAD_SIZE)
    if len(payload) != SLOT_PAYLOAD_SIZE:
        raise TruncatedRecordError(
            f"slot cut short: need {SLOT_PAYLOAD_SIZE} payload bytes, have {len(payload)}",
            declared_len,
        )
    return payload


def read_slot(stream: BinaryIO) -> tuple[int, bytes]:
    """Read one slot, returning (declared length, 20-byte payload)."""
    length = stream.read(1)
    if not length:
        raise TruncatedRecordError("end of archive")
    return length[0], _read_payload(stream, length[0])


def slot_text(declared_len: int, payload: bytes, context: Optional[str] = None) -> str:
    """Decode the significant part of a slot payload.

    Declared lengths past the payload are clamped to 20.
    """
    return decode(payload[:min(declared_len, SLOT_PAYLOAD_SIZE)], context)


# ============================================================================
# Document Model
# ============================================================================

@dataclass
class Entry:
    word: str
    key: str


@dataclass
class Section:
    """A run of words sharing one key."""
    key: str
    words: list = field(default_factory=list)


def group_sections(entries: Iterable[Entry]) -> list[Section]:
    """Fold consecutive entries with the same key into sections."""
    sections: list[Section] = []
    for entry in entries:
        if not sections or sections[-1].key != entry.key:
            sections.append(Section(key=entry.key))
        sections[-1].words.append(entry.word)
    return sections


def is_section_line(line: str) -> bool:
    return len(line) >= 2 and line.startswith("[") and line.endswith("]")


def render_text_document(sections: Iterable[Section]) -> str:
    """Render sections as [key]/word lines."""
    lines = []
    for section in sections:
        lines.append(f"[{section.key}]")
        lines.extend(section.words)
    return "".join(f"{line}\n" for line in lines)


def export_to_yaml(sections: list[Section]) -> str:
    """Export sections to a YAML document."""
    output = {
        "_format": YAML_FORMAT,
        "sections": [{"key": s.key, "words": list(s.words)} for s in sections],
    }
    return yaml.dump(output, allow_unicode=True, sort_keys=False, default_flow_style=False, width=120)


def import_from_yaml(yaml_str: str) -> list[Section]:
    """Import sections from a YAML document."""
    try:
        data = yaml.safe_load(yaml_str)
    except yaml.YAMLError as e:
        raise ConverterError(f"invalid YAML: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("sections", []), list):
        raise ConverterError("YAML document has no 'sections' list")

    sections = []
    for item in data.get("sections", []):
        if not isinstance(item, dict):
            raise ConverterError(f"YAML section is not a mapping: {item!r}")
        words = [str(w) for w in item.get("words") or [] if w is not None]
        key = item.get("key")
        sections.append(Section(key="" if key is None else str(key), words=words))
    return sections


# ============================================================================
# Unpack Pipeline
# ============================================================================

def parse_count(text: str) -> int:
    """Parse the header count like C atoi: leading digits, 0 when there are none."""
    match = re.match(r"\s*([+-]?[0-9]+)", text)
    return int(match.group(1)) if match else 0


def read_header(stream: BinaryIO) -> tuple[HeaderLayout, int]:
    """Read the count header, returning its layout and the count it states.

    A compact header starts its payload at offset 1, so an ASCII digit there
    tells it from a marked header, whose offset 1 holds a length byte.
    """
    marker = stream.read(1)
    probe = stream.read(1)
    if not marker or not probe:
        raise TruncatedRecordError("archive is too small to hold a header")
    stream.seek(-1, io.SEEK_CUR)

    if probe[0] in ASCII_DIGITS:
        layout = HeaderLayout.COMPACT
        declared_len = marker[0]
        payload = _read_payload(stream, declared_len)
    else:
        layout = HeaderLayout.MARKED
        declared_len, payload = read_slot(stream)
        if declared_len > SLOT_PAYLOAD_SIZE:
            print(f"Warning: header length byte is {declared_len}, past the {SLOT_PAYLOAD_SIZE}-byte slot; "
                  f"the header layout may be misdetected and the entries misaligned", file=sys.stderr)

    return layout, parse_count(slot_text(declared_len, payload, "header"))


class ArchiveReader:
    """Reads the entries of an archive stream.

    The header is read on construction. Iterating yields entries until the
    archive ends, counting them in actual_count. A zero length byte or the
    end of the stream ends the archive; a cut-off record or an undecodable
    field ends it early with a warning. Entries whose word or key decodes
    to empty text are skipped with a warning and not counted.
    """

    def __init__(self, stream: BinaryIO):
        self.stream = stream
        self.layout, self.expected_count = read_header(stream)
        self.actual_count = 0
        self.position = 0

    def _read_field(self, name: str) -> Optional[str]:
        context = f"entry {self.position + 1} {name}"
        try:
            length, payload = read_slot(self.stream)
        except TruncatedRecordError as e:
            if e.declared_len:
                print(f"Warning: {context}: {e}", file=sys.stderr)
            return None
        if length == 0:
            return None
        try:
            return slot_text(length, payload, context)
        except EncodingError as e:
            print(f"Warning: {e}, stopping", file=sys.stderr)
            return None

    def __iter__(self) -> Iterator[Entry]:
        while True:
            word = self._read_field("word")
            if word is None:
                return
            key = self._read_field("key")
            if key is None:
                print(f"Warning: discarding word {word!r} without a key", file=sys.stderr)
                return
            self.position += 1
            if not word or not key:
                print(f"Warning: entry {self.position}: skipping empty "
                      f"{'word' if not word else 'key'} (word {word!r}, key {key!r})", file=sys.stderr)
                continue
            self.actual_count += 1
            yield Entry(word=word, key=key)


@dataclass
class UnpackReport:
    layout: HeaderLayout
    expected_count: int
    actual_count: int

    @property
    def count_matches(self) -> bool:
        return self.expected_count == self.actual_count


def write_text_document(entries: Iterable[Entry], out: TextIO):
    """Write entries as text, starting a [key] line whenever the key changes."""
    last_key = None
    for entry in entries:
        if entry.key != last_key:
            out.write(f"[{entry.key}]\n")
            last_key = entry.key
        out.write(f"{entry.word}\n")


def unpack(in_path, out_path) -> UnpackReport:
    """Unpack an archive to a text (or YAML) document."""
    out_path = Path(out_path)
    with open(in_path, "rb") as src:
        reader = ArchiveReader(src)
        with open(out_path, "w", encoding="utf-8", newline="\n") as dst:
            if out_path.suffix.lower() in YAML_SUFFIXES:
                dst.write(export_to_yaml(group_sections(reader)))
            else:
                write_text_document(reader, dst)

    return UnpackReport(
        layout=reader.layout,
        expected_count=reader.expected_count,
        actual_count=reader.actual_count,
    )


def read_archive(in_path) -> tuple[UnpackReport, list[Section]]:
    """Read a whole archive into sections."""
    with open(in_path, "rb") as src:
        reader = ArchiveReader(src)
        sections = group_sections(reader)
    report = UnpackReport(
        layout=reader.layout,
        expected_count=reader.expected_count,
        actual_count=reader.actual_count,
    )
    return report, sections


# ============================================================================
# Pack Pipeline
# ============================================================================

class ArchiveWriter:
    """Builds an archive in memory."""

    def __init__(self):
        self.data = bytearray()

    def write_u8(self, value: int):
        self.data.append(value & 0xFF)

    def write_slot(self, payload: bytes):
        self.data.extend(pack_slot(payload))

    def write_header(self, count: int, layout: HeaderLayout = HeaderLayout.MARKED):
        count_str = str(count)
        if layout == HeaderLayout.MARKED:
            self.write_u8(len(count_str))
        self.write_slot(encode(count_str, "header"))

    def write_entry(self, word: bytes, key: bytes):
        self.write_slot(word)
        self.write_slot(key)

    def get_bytes(self) -> bytes:
        return bytes(self.data)


@dataclass
class PackReport:
    layout: HeaderLayout = HeaderLayout.MARKED
    key_count: int = 0
    entry_count: int = 0
    size: int = 0


def _iter_lines(stream: TextIO) -> Iterator[tuple[int, str]]:
    for lineno, line in enumerate(stream, 1):
        yield lineno, line.rstrip("\r\n")


def count_entries(stream: TextIO) -> int:
    """Count word lines: non-empty lines not starting with '['."""
    return sum(1 for _, line in _iter_lines(stream) if line and not line.startswith("["))


def _encode_field(text: str, context: str) -> bytes:
    raw = encode(text, context)
    if len(raw) > SLOT_PAYLOAD_SIZE:
        print(f"Warning: {context}: {text!r} is {len(raw)} bytes, "
              f"truncated to {SLOT_PAYLOAD_SIZE}", file=sys.stderr)
    return raw


def build_archive(stream: TextIO, layout: HeaderLayout = HeaderLayout.MARKED) -> tuple[bytes, PackReport]:
    """Build an archive from a text document stream.

    The first pass counts the words for the header, the second encodes them.
    Every word is stored with the full key of the section above it.
    """
    total = count_entries(stream)
    if total < MIN_ENTRIES:
        raise InsufficientEntriesError(total)
    stream.seek(0)

    writer = ArchiveWriter()
    writer.write_header(total, layout)
    report = PackReport(layout=layout)

    current_key = b""
    for lineno, line in _iter_lines(stream):
        context = f"line {lineno}"
        if is_section_line(line):
            current_key = _encode_field(line[1:-1], context)
            report.key_count += 1
        elif line:
            if line.startswith("["):
                print(f"Warning: {context}: {line!r} is not a section header, "
                      f"packed as a word", file=sys.stderr)
            if report.key_count == 0 and report.entry_count == 0:
                print(f"Warning: {context}: word before the first [key] line gets an empty key, "
                      f"which ends the archive for the game", file=sys.stderr)
            writer.write_entry(_encode_field(line, context), current_key)
            report.entry_count += 1

    if report.entry_count != total:
        print(f"Warning: header count {total} does not match {report.entry_count} "
              f"entries written", file=sys.stderr)

    data = writer.get_bytes()
    report.size = len(data)
    return data, report


def pack(in_path, out_path, layout: HeaderLayout = HeaderLayout.MARKED) -> PackReport:
    """Pack a text (or YAML) document into an archive.

    The archive is only written once the whole document has been encoded, so
    a failed run leaves no output file behind.
    """
    in_path = Path(in_path)
    try:
        if in_path.suffix.lower() in YAML_SUFFIXES:
            with open(in_path, encoding="utf-8") as src:
                sections = import_from_yaml(src.read())
            data, report = build_archive(io.StringIO(render_text_document(sections)), layout)
        else:
            with open(in_path, encoding="utf-8-sig") as src:
                data, report = build_archive(src, layout)
    except UnicodeDecodeError as e:
        raise EncodingError(f"not valid UTF-8 ({e.reason} at byte {e.start})", str(in_path)) from e

    with open(out_path, "wb") as dst:
        dst.write(data)
    return report


# ============================================================================
# Reports
# ============================================================================

def print_unpack_summary(report: UnpackReport):
    print(f"TOTAL: {report.actual_count}")
    if report.count_matches:
        print("Database header count matches")
    else:
        print(f"MISMATCH: header count = {report.expected_count}, actual = {report.actual_count}")


def export_to_text(report: UnpackReport, sections: list[Section]) -> str:
    """Export archive information to human-readable text (summary only)."""
    lines = []
    lines.append("=" * 60)
    lines.append("Pole Chudes Dictionary")
    lines.append("=" * 60)
    lines.append("")

    lines.append("[Archive]")
    lines.append(f"  Header layout: {report.layout.name} ({report.layout.value} bytes)")
    lines.append(f"  Header count: {report.expected_count}")
    lines.append(f"  Entries: {report.actual_count}")
    lines.append(f"  Count matches: {'Yes' if report.count_matches else 'No'}")
    lines.append("")

    lines.append("[Sections]")
    if sections:
        for section in sections:
            noun = "word" if len(section.words) == 1 else "words"
            lines.append(f"  {section.key}: {len(section.words)} {noun}")
    else:
        lines.append("  (None)")

    return "\n".join(lines)


# ============================================================================
# CLI
# ============================================================================

def cmd_info(args):
    """Show archive information."""
    archive_path = Path(args.input)
    if not archive_path.exists():
        print(f"Error: File not found: {archive_path}", file=sys.stderr)
        return 1

    try:
        report, sections = read_archive(archive_path)
    except (ConverterError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(export_to_text(report, sections))
    return 0


def cmd_unpack(args):
    """Unpack archive to text."""
    archive_path = Path(args.input)
    output_path = Path(args.output)

    if not archive_path.exists():
        print(f"Error: File not found: {archive_path}", file=sys.stderr)
        return 1

    try:
        report = unpack(archive_path, output_path)
    except (ConverterError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print_unpack_summary(report)
    print(f"Unpacked to: {output_path}")
    return 0


def cmd_pack(args):
    """Pack text into archive."""
    text_path = Path(args.input)
    output_path = Path(args.output)

    if not text_path.exists():
        print(f"Error: File not found: {text_path}", file=sys.stderr)
        return 1

    layout = HeaderLayout.COMPACT if args.compact_header else HeaderLayout.MARKED
    try:
        report = pack(text_path, output_path, layout)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ConverterError as e:
        # Rejected documents are reported, not failed; no archive is written
        print(f"Error: {e}", file=sys.stderr)
        return 0
    print(f"Wrote {report.key_count} keys, {report.entry_count} key-value pairs")
    print(f"Packed to: {output_path}")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Pole Chudes Dictionary Converter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s info POLE.OVL                     Show dictionary information
  %(prog)s unpack POLE.OVL dict.txt          Unpack to editable text
  %(prog)s unpack POLE.OVL dict.yaml         Unpack to YAML
  %(prog)s pack dict.txt POLE.OVL            Pack text back to the game format
  %(prog)s pack --compact-header dict.txt POLE.OVL
                                             Write the 21-byte header of the DOS-era tool

Text files are UTF-8. Each [key] line starts a section; the lines below it
are the words for that key. Blank lines are ignored.
"""
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # info command
    info_parser = subparsers.add_parser("info", help="Show dictionary information")
    info_parser.add_argument("input", help="Input dictionary archive")
    info_parser.set_defaults(func=cmd_info)

    # unpack command
    unpack_parser = subparsers.add_parser("unpack", help="Unpack archive to text")
    unpack_parser.add_argument("input", help="Input dictionary archive")
    unpack_parser.add_argument("output", help="Output text or YAML file")
    unpack_parser.set_defaults(func=cmd_unpack)

    # pack command
    pack_parser = subparsers.add_parser("pack", help="Pack text into archive")
    pack_parser.add_argument("input", help="Input text or YAML file")
    pack_parser.add_argument("output", help="Output dictionary archive")
    pack_parser.add_argument("--compact-header", action="store_true",
                             help="Write the 21-byte header without a marker byte")
    pack_parser.set_defaults(func=cmd_pack)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
