# compactrec

Two small tools in one package:

- **`compactrec.records`** packs fixed-layout records into a compact binary
  form, and decodes and prints that form.
- **`compactrec.sbas`** parses SBas, a tiny language of integer statements.
  It compiles SBas programs to x86-64 machine code and evaluates them.

The package uses only the standard library. It needs Python 3.10 or later.

## Installing

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Compact records

A record layout is given by a descriptor string built from three field codes:

| code  | field                                        |
|-------|----------------------------------------------|
| `i`   | signed 32-bit integer                        |
| `u`   | unsigned 32-bit integer                      |
| `sNN` | string held in an `NN`-byte buffer (`s04`)   |

For example, `"s04iius26"` describes a 4-byte string, two signed integers,
one unsigned integer and a 26-byte string. `parse_descriptor(descriptor)`
returns the list of `Field` entries (`kind` is a `FieldKind`, `size` is in
bytes).

The encoded stream begins with one byte that gives the number of records
(at most 255). Each field then has a header byte followed by its payload:

- bit `0x80` is set on the last field of a record;
- bit `0x40` marks a string, and the low six bits give its length. The
  characters follow without a terminator;
- bit `0x20` marks a signed integer, and the low five bits give its size.
  The value follows in big-endian two's complement;
- when neither `0x40` nor `0x20` is set, the field is an unsigned integer.
  The low five bits give its size, and the value follows in big-endian form.

Integers are stored in the fewest bytes (1 to 4) that hold the value.

A string value may be a `str` (encoded as Latin-1) or `bytes`. It ends at
its first NUL. It must be shorter than its field size, to leave room for the
terminator, and at most 63 bytes long.

```python
from compactrec.records import encode_records, decode_records, format_records

records = [
    ("abe", -0x80000000, 5, 0xFFFFFFFF, "olaMun"),
    ("jh", 5, 23, 95, "ooMun"),
]
data = encode_records(records, "s04iius26")

print(decode_records(data))   # records as lists of (FieldKind, value) pairs
print(format_records(data))
```

`format_records` renders a listing like this:

```
Estruturas: 2

(str) abe
(int) -2147483648 (80000000)
...
```

`write_records(stream, records, descriptor)` writes to a binary stream.
`read_records(stream)` reads one back and decodes it.
`show_records(stream, out)` prints the listing to `out`, which defaults to
standard output.

Bad descriptors, values that do not fit their field, wrong field counts and
truncated or malformed encoded data all raise `RecordFormatError`, which is
a subclass of `ValueError`.

### Command

```
compactrec-records [path] [--show-only]
```

This command writes a fixed set of five sample records, laid out as
`s04iius26`, to `path` (by default `arquivo` in the current directory). It
then reads the file back and prints the listing. With `--show-only`, it
only prints an existing file.

## SBas

An SBas program has one statement per line. Lines are numbered from 1.
Variables are `v1` to `v8`, parameters are `p1` to `p3`, and constants are
written `$K`.

| statement           | meaning                                              |
|---------------------|------------------------------------------------------|
| `vN : $K`           | store the constant `K` in `vN`                       |
| `vN : vM`           | copy variable `vM` into `vN`                         |
| `vN : pK`           | copy parameter `pK` into `vN`                        |
| `vN = a op b`       | `a` and `b` are `vM` or `$K`; `op` is `+`, `-` or `*` |
| `iflez vN L`        | jump to line `L` if `vN` is less than or equal to 0  |
| `ret vN` / `ret $K` | return a value                                       |

Variables start at 0. Arithmetic wraps like 32-bit signed integers. Blank
lines are allowed only at the end of the program.

```python
from compactrec.sbas import compile_program, run_program

source = """\
v1 : p1
v2 : $1
v3 : $0
iflez v1 8
v2 = v2 * v1
v1 = v1 - $1
iflez v3 4
ret v2
"""

program = compile_program(source)
print(program.run(5))                          # 120
print(run_program("v1 = $2 + $3\nret v1\n"))   # 5
print(program.code.hex())                      # x86-64 machine code
```

`parse_program(source)` returns the list of `Statement` values.
`compile_program(source)` returns a `CompiledProgram`. It holds the
`statements`, the machine `code` (System V calling convention, with the
parameters in `edi`, `esi` and `edx`) and `line_offsets`, which gives the
offset in `code` of each line. `CompiledProgram.run(*args)` takes up to
three integer arguments; missing ones count as 0.

Malformed programs raise `SBasSyntaxError`, which is a `ValueError`. Its
`line` attribute gives the line number. Examples are unknown statements,
out-of-range variables, parameters or constants, and jumps to missing
lines. A program that runs past its last line without a `ret` raises
`RuntimeError`.

### Command

```
compactrec-sbas program.sbas 5
```

This command takes an SBas file and up to three integer arguments. It prints
the value the program returns.

## What the package does not do

The machine code in `CompiledProgram.code` is generated but never executed.
`run` and the `compactrec-sbas` command compute results by evaluating the
parsed statements in Python. The code bytes are there for inspection, or
for loading into an executable memory area by other means.