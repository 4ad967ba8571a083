"""Compact binary encoding of fixed-layout records.

A record layout is described by a descriptor string built from:

* ``sNN`` - a character array of ``NN`` bytes (two decimal digits),
* ``i``   - a signed 32-bit integer,
* ``u``   - an unsigned 32-bit integer.

The encoded stream starts with one byte holding the number of records.
Each field is then written as a header byte followed by its payload:

* bit 7 (``0x80``) marks the last field of a record;
* strings set bit 6 (``0x40``) and keep their length in the low 6 bits,
  followed by the characters without a terminator;
* signed integers set bit 5 (``0x20``) and keep their byte count in the
  low 5 bits, followed by the smallest big-endian two's-complement form;
* unsigned integers keep their byte count in the low 5 bits, followed by
  the smallest big-endian form.
"""

from __future__ import annotations

import argparse
import io
import re
import sys
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Iterable, Sequence, TextIO, Union

LAST_FIELD = 0x80
STRING_FLAG = 0x40
INT_FLAG = 0x20
MAX_RECORDS = 0xFF
MAX_STRING_LENGTH = 0x3F
INT_SIZE = 4

_DESCRIPTOR_RE = re.compile(r"(?:s\d\d|i|u)+")
_FIELD_RE = re.compile(r"s(\d\d)|i|u")

Value = Union[int, str]


class RecordFormatError(ValueError):
    """Raised for invalid descriptors, values or encoded data."""


class FieldKind(Enum):
    """Kind of a record field, keyed by its descriptor letter."""

    STRING = "s"
    INT = "i"
    UNSIGNED = "u"


@dataclass(frozen=True)
class Field:
    """One field of a record layout; ``size`` is its size in bytes."""

    kind: FieldKind
    size: int = INT_SIZE


def parse_descriptor(descriptor: str) -> list[Field]:
    """Parse a descriptor such as ``"s04iius26"`` into its fields."""
    if not descriptor or not _DESCRIPTOR_RE.fullmatch(descriptor):
        raise RecordFormatError(f"invalid descriptor: {descriptor!r}")
    fields = []
    for match in _FIELD_RE.finditer(descriptor):
        if match.group(1) is not None:
            size = int(match.group(1))
            if size == 0:
                raise RecordFormatError("string field of size 0 in descriptor")
            fields.append(Field(FieldKind.STRING, size))
        else:
            fields.append(Field(FieldKind(match.group(0))))
    return fields


def _string_bytes(value: object, field: Field) -> bytes:
    if isinstance(value, str):
        try:
            raw = value.encode("latin-1")
        except UnicodeEncodeError as exc:
            raise RecordFormatError(f"string not representable as bytes: {value!r}") from exc
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        raise RecordFormatError(f"expected a string, got {value!r}")
    # A character array ends at its first NUL.
    raw = raw.split(b"\0", 1)[0]
    if len(raw) >= field.size:
        raise RecordFormatError(
            f"string of length {len(raw)} does not fit a {field.size}-byte field"
        )
    if len(raw) > MAX_STRING_LENGTH:
        raise RecordFormatError(f"string of length {len(raw)} is too long to encode")
    return raw


def _signed_size(value: int) -> int:
    for size in range(1, INT_SIZE):
        limit = 1 << (8 * size - 1)
        if -limit <= value < limit:
            return size
    return INT_SIZE


def _unsigned_size(value: int) -> int:
    for size in range(1, INT_SIZE):
        if value < 1 << (8 * size):
            return size
    return INT_SIZE


def _check_int(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecordFormatError(f"expected an integer, got {value!r}")
    return value


def _encode_field(field: Field, value: object, last: bool) -> bytes:
    flag = LAST_FIELD if last else 0
    if field.kind is FieldKind.STRING:
        raw = _string_bytes(value, field)
        return bytes([flag | STRING_FLAG | len(raw)]) + raw
    number = _check_int(value)
    if field.kind is FieldKind.INT:
        if not -(1 << 31) <= number < 1 << 31:
            raise RecordFormatError(f"{number} does not fit a signed 32-bit integer")
        size = _signed_size(number)
        return bytes([flag | INT_FLAG | size]) + number.to_bytes(size, "big", signed=True)
    if not 0 <= number < 1 << 32:
        raise RecordFormatError(f"{number} does not fit an unsigned 32-bit integer")
    size = _unsigned_size(number)
    return bytes([flag | size]) + number.to_bytes(size, "big")


def encode_records(records: Sequence[Sequence[object]], descriptor: str) -> bytes:
    """Encode ``records``, each a sequence of values laid out by ``descriptor``."""
    fields = parse_descriptor(descriptor)
    records = list(records)
    if len(records) > MAX_RECORDS:
        raise RecordFormatError(f"at most {MAX_RECORDS} records can be encoded")
    out = bytearray([len(records)])
    last = len(fields) - 1
    for record in records:
        values = tuple(record)
        if len(values) != len(fields):
            raise RecordFormatError(
                f"record has {len(values)} values, descriptor has {len(fields)} fields"
            )
        for position, (field, value) in enumerate(zip(fields, values)):
            out += _encode_field(field, value, position == last)
    return bytes(out)


def write_records(
    stream: BinaryIO, records: Sequence[Sequence[object]], descriptor: str
) -> None:
    """Encode ``records`` and write them to a binary stream."""
    stream.write(encode_records(records, descriptor))


def _take(buffer: io.BytesIO, count: int) -> bytes:
    chunk = buffer.read(count)
    if len(chunk) < count:
        raise RecordFormatError("unexpected end of encoded data")
    return chunk


def _int_length(header: int) -> int:
    size = header & 0x1F
    if not 1 <= size <= INT_SIZE:
        raise RecordFormatError(f"invalid integer size {size}")
    return size


def decode_records(data: bytes) -> list[list[tuple[FieldKind, Value]]]:
    """Decode encoded data into records of ``(kind, value)`` pairs."""
    buffer = io.BytesIO(bytes(data))
    count = _take(buffer, 1)[0]
    records = []
    for _ in range(count):
        record: list[tuple[FieldKind, Value]] = []
        header = 0
        while not header & LAST_FIELD:
            header = _take(buffer, 1)[0]
            if header & STRING_FLAG:
                text = _take(buffer, header & MAX_STRING_LENGTH).decode("latin-1")
                record.append((FieldKind.STRING, text))
            elif header & INT_FLAG:
                raw = _take(buffer, _int_length(header))
                record.append((FieldKind.INT, int.from_bytes(raw, "big", signed=True)))
            else:
                raw = _take(buffer, _int_length(header))
                record.append((FieldKind.UNSIGNED, int.from_bytes(raw, "big")))
        records.append(record)
    return records


def read_records(stream: BinaryIO) -> list[list[tuple[FieldKind, Value]]]:
    """Read and decode all records from a binary stream."""
    return decode_records(stream.read())


def _format_field(kind: FieldKind, value: Value) -> str:
    if kind is FieldKind.STRING:
        return f"(str) {value}"
    number = int(value)
    tag = "int" if kind is FieldKind.INT else "uns"
    return f"({tag}) {number:<11d} ({number & 0xFFFFFFFF:08x})"


def format_records(data: bytes) -> str:
    """Render encoded data as a human-readable listing."""
    records = decode_records(data)
    lines = [f"Estruturas: {len(records)}", ""]
    for record in records:
        lines.extend(_format_field(kind, value) for kind, value in record)
        lines.append("")
    return "\n".join(lines) + "\n"


def show_records(stream: BinaryIO, out: TextIO | None = None) -> None:
    """Print the records held in a binary stream."""
    target = sys.stdout if out is None else out
    target.write(format_records(stream.read()))


SAMPLE_DESCRIPTOR = "s04iius26"
SAMPLE_RECORDS: tuple[tuple[object, ...], ...] = (
    ("abe", -0x80000000, 5, 0xFFFFFFFF, "olaMun"),
    ("jh", 5, 23, 95, "ooMun"),
    ("abc", 5, 467, 27, "on"),
    ("abb", 25, 16, 5, "Mun"),
    ("a", 62, 2, 56, "on132973tasdgs"),
)


def main(argv: Iterable[str] | None = None) -> int:
    """Write the sample records to a file and print them back."""
    parser = argparse.ArgumentParser(description="Write and show compact records.")
    parser.add_argument("path", nargs="?", default="arquivo", help="file to use")
    parser.add_argument(
        "--show-only", action="store_true", help="only show an existing file"
    )
    args = parser.parse_args(None if argv is None else list(argv))
    try:
        if not args.show_only:
            with open(args.path, "wb") as stream:
                write_records(stream, SAMPLE_RECORDS, SAMPLE_DESCRIPTOR)
        with open(args.path, "rb") as stream:
            show_records(stream)
    except (OSError, RecordFormatError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())