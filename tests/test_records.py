import io

import pytest

from compactrec.records import (
    Field,
    FieldKind,
    RecordFormatError,
    decode_records,
    encode_records,
    format_records,
    main,
    parse_descriptor,
    read_records,
    show_records,
    write_records,
)

DESCRIPTOR = "s04iius26"
EXAMPLE = [
    ("abe", -0x80000000, 5, 0xFFFFFFFF, "olaMun"),
    ("jh", 5, 23, 95, "ooMun"),
    ("abc", 5, 467, 27, "on"),
    ("abb", 25, 16, 5, "Mun"),
    ("a", 62, 2, 56, "on132973tasdgs"),
]
KINDS = [FieldKind.STRING, FieldKind.INT, FieldKind.INT, FieldKind.UNSIGNED, FieldKind.STRING]


def _values(decoded):
    return [tuple(value for _, value in record) for record in decoded]


def test_parse_descriptor_example():
    fields = parse_descriptor(DESCRIPTOR)
    assert fields == [
        Field(FieldKind.STRING, 4),
        Field(FieldKind.INT),
        Field(FieldKind.INT),
        Field(FieldKind.UNSIGNED),
        Field(FieldKind.STRING, 26),
    ]


@pytest.mark.parametrize("descriptor", ["", "x", "s4", "s0a", "is", "i u", "s00"])
def test_parse_descriptor_rejects_invalid(descriptor):
    with pytest.raises(RecordFormatError):
        parse_descriptor(descriptor)


def test_first_record_bytes():
    data = encode_records(EXAMPLE[:1], DESCRIPTOR)
    assert data == (
        b"\x01"
        b"\x43abe"
        b"\x24\x80\x00\x00\x00"
        b"\x21\x05"
        b"\x04\xff\xff\xff\xff"
        b"\xc6olaMun"
    )


def test_count_byte_matches_number_of_records():
    data = encode_records(EXAMPLE, DESCRIPTOR)
    assert data[0] == len(EXAMPLE)


def test_round_trip_example():
    decoded = decode_records(encode_records(EXAMPLE, DESCRIPTOR))
    assert _values(decoded) == EXAMPLE
    for record in decoded:
        assert [kind for kind, _ in record] == KINDS


@pytest.mark.parametrize(
    "value", [0, 1, -1, 0x7F, -0x80, 0x80, -0x81, 0x7FFF, -0x8000, 0x7FFFFF, -0x800000,
              0x800000, 0x7FFFFFFF, -0x80000000]
)
def test_signed_round_trip_and_minimal_size(value):
    data = encode_records([(value,)], "i")
    assert decode_records(data) == [[(FieldKind.INT, value)]]
    size = data[1] & 0x1F
    assert len(data) == 2 + size
    assert value.bit_length() < 8 * size or value == -(1 << (8 * size - 1))


@pytest.mark.parametrize("value", [0, 0xFF, 0x100, 0xFFFF, 0x10000, 0xFFFFFF, 0x1000000, 0xFFFFFFFF])
def test_unsigned_round_trip_and_minimal_size(value):
    data = encode_records([(value,)], "u")
    assert decode_records(data) == [[(FieldKind.UNSIGNED, value)]]
    size = data[1] & 0x1F
    assert len(data) == 2 + size
    assert value < 1 << (8 * size)
    assert size == 1 or value >= 1 << (8 * (size - 1))


def test_last_field_flag_only_on_last_field():
    data = encode_records([(7, 8, "xy")], "iis03")
    headers = [data[1], data[3], data[5]]
    assert [h & 0x80 for h in headers] == [0, 0, 0x80]


def test_string_stops_at_nul():
    data = encode_records([("ab\0cd",)], "s06")
    assert decode_records(data) == [[(FieldKind.STRING, "ab")]]


def test_bytes_string_accepted():
    data = encode_records([(b"hey", 3)], "s04u")
    assert _values(decode_records(data)) == [("hey", 3)]


def test_empty_record_list():
    data = encode_records([], DESCRIPTOR)
    assert data == b"\x00"
    assert decode_records(data) == []


@pytest.mark.parametrize(
    "records, descriptor",
    [
        ([("abcd",)], "s04"),
        ([("x" * 64,)], "s99"),
        ([(1 << 31,)], "i"),
        ([(-(1 << 31) - 1,)], "i"),
        ([(-1,)], "u"),
        ([(1 << 32,)], "u"),
        ([("5",)], "i"),
        ([(True,)], "u"),
        ([(1, 2)], "i"),
        ([(1,)], "ii"),
        ([("\u20ac",)], "s04"),
    ],
)
def test_encode_rejects_bad_values(records, descriptor):
    with pytest.raises(RecordFormatError):
        encode_records(records, descriptor)


def test_too_many_records():
    with pytest.raises(RecordFormatError):
        encode_records([(1,)] * 256, "u")


def test_max_records_round_trip():
    records = [(n,) for n in range(255)]
    assert _values(decode_records(encode_records(records, "u"))) == records


@pytest.mark.parametrize("data", [b"", b"\x01", b"\x01\x43ab", b"\x01\xa4\x01", b"\x01\x85\x00"])
def test_decode_rejects_truncated_or_invalid(data):
    with pytest.raises(RecordFormatError):
        decode_records(data)


def test_write_and_read_stream():
    stream = io.BytesIO()
    write_records(stream, EXAMPLE, DESCRIPTOR)
    assert stream.getvalue() == encode_records(EXAMPLE, DESCRIPTOR)
    stream.seek(0)
    assert _values(read_records(stream)) == EXAMPLE


def test_format_records_example():
    text = format_records(encode_records(EXAMPLE, DESCRIPTOR))
    lines = text.split("\n")
    assert lines[0] == "Estruturas: 5"
    assert lines[1] == ""
    assert lines[2] == "(str) abe"
    assert lines[3] == "(int) -2147483648 (80000000)"
    assert lines[4].startswith("(int) 5 ")
    assert lines[5].startswith("(uns) 4294967295")
    assert lines[5].endswith("(ffffffff)")
    assert lines[6] == "(str) olaMun"
    assert lines[7] == ""
    assert text.count("(str) ") == 10
    assert text.endswith("\n\n")


def test_format_int_column_width():
    line = format_records(encode_records([(5,)], "i")).split("\n")[2]
    assert line == "(int) " + "5".ljust(11) + " (00000005)"


def test_show_records_writes_listing():
    data = encode_records(EXAMPLE, DESCRIPTOR)
    out = io.StringIO()
    show_records(io.BytesIO(data), out)
    assert out.getvalue() == format_records(data)


def test_main_writes_and_shows(tmp_path, capsys):
    path = tmp_path / "arquivo"
    assert main([str(path)]) == 0
    assert path.read_bytes() == encode_records(EXAMPLE, DESCRIPTOR)
    assert capsys.readouterr().out == format_records(path.read_bytes())


def test_main_show_only_missing_file(tmp_path):
    assert main([str(tmp_path / "missing"), "--show-only"]) == 1