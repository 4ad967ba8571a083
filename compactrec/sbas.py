"""Compiler for SBas, a tiny language of integer statements.

An SBas program is a sequence of lines, numbered from 1:

* ``vN : X``        - assign ``X`` (``$const``, ``vM`` or ``pM``) to ``vN``;
* ``vN = A op B``   - store ``A op B`` in ``vN``, where ``A`` and ``B`` are
  ``$const`` or ``vM`` and ``op`` is ``+``, ``-`` or ``*``;
* ``iflez vN L``    - jump to line ``L`` when ``vN <= 0``;
* ``ret X``         - return ``X`` (``$const`` or ``vM``).

Variables ``v1`` to ``v8`` live in the stack frame and parameters ``p1``
to ``p3`` are the function's arguments.  Arithmetic is on signed 32-bit
integers.  Compiling produces x86-64 machine code for the function; running
a compiled program evaluates the same statements directly.
"""

from __future__ import annotations

import argparse
import re
import sys
from dataclasses import dataclass
from typing import Iterable

MAX_VARIABLE = 8
MAX_PARAMETER = 3
INT_MIN = -(1 << 31)
INT_MAX = (1 << 31) - 1

PROLOGUE = bytes([0x55, 0x48, 0x89, 0xE5, 0x48, 0x83, 0xEC, 0x20])
_PARAM_REGISTER = {1: 0x7D, 2: 0x75, 3: 0x55}
_OPERATOR_CODE = {
    "+": bytes([0x01, 0xC8]),
    "-": bytes([0x29, 0xC8]),
    "*": bytes([0x0F, 0xAF, 0xC1]),
}

_VALUE = r"\$-?\d+|v\d+"
_RET_RE = re.compile(rf"ret\s+({_VALUE})")
_ASSIGN_RE = re.compile(rf"v(\d+)\s*:\s*(\$-?\d+|[vp]\d+)")
_EXPR_RE = re.compile(rf"v(\d+)\s*=\s*({_VALUE})\s*([-+*])\s*({_VALUE})")
_IFLEZ_RE = re.compile(r"iflez\s+v(\d+)\s+(\d+)")


class SBasSyntaxError(ValueError):
    """Raised for malformed SBas programs."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        super().__init__(f"line {line}: {message}" if line is not None else message)


@dataclass(frozen=True)
class Operand:
    """A constant (``$``), a variable (``v``) or a parameter (``p``)."""

    kind: str
    value: int

    @property
    def is_constant(self) -> bool:
        return self.kind == "$"

    def __str__(self) -> str:
        return f"{self.kind}{self.value}"


@dataclass(frozen=True)
class Statement:
    """One SBas statement.

    ``op`` is one of ``"ret"``, ``"assign"``, ``"expr"`` or ``"iflez"``;
    ``target`` is the variable written or tested, ``jump`` the destination
    line of ``iflez`` and ``operator`` the arithmetic operator of ``expr``.
    """

    op: str
    line: int
    target: int = 0
    operands: tuple[Operand, ...] = ()
    operator: str | None = None
    jump: int | None = None


def _operand(text: str, line: int) -> Operand:
    kind, number = text[0], int(text[1:])
    if kind == "$":
        if not INT_MIN <= number <= INT_MAX:
            raise SBasSyntaxError(f"constant {number} out of 32-bit range", line)
    elif kind == "v":
        _check_variable(number, line)
    elif not 1 <= number <= MAX_PARAMETER:
        raise SBasSyntaxError(f"no parameter p{number}", line)
    return Operand(kind, number)


def _check_variable(number: int, line: int) -> int:
    if not 1 <= number <= MAX_VARIABLE:
        raise SBasSyntaxError(f"no variable v{number}", line)
    return number


def _parse_line(text: str, line: int) -> Statement:
    if match := _RET_RE.fullmatch(text):
        return Statement("ret", line, operands=(_operand(match.group(1), line),))
    if match := _ASSIGN_RE.fullmatch(text):
        target = _check_variable(int(match.group(1)), line)
        return Statement("assign", line, target, (_operand(match.group(2), line),))
    if match := _EXPR_RE.fullmatch(text):
        target = _check_variable(int(match.group(1)), line)
        left = _operand(match.group(2), line)
        right = _operand(match.group(4), line)
        return Statement("expr", line, target, (left, right), operator=match.group(3))
    if match := _IFLEZ_RE.fullmatch(text):
        target = _check_variable(int(match.group(1)), line)
        return Statement("iflez", line, target, jump=int(match.group(2)))
    raise SBasSyntaxError(f"cannot parse {text!r}", line)


def parse_program(source: str) -> list[Statement]:
    """Parse SBas source text into statements, one per line."""
    lines = source.splitlines()
    while lines and not lines[-1].strip():
        lines.pop()
    statements = []
    for number, text in enumerate(lines, start=1):
        text = text.strip()
        if not text:
            raise SBasSyntaxError("empty line", number)
        statements.append(_parse_line(text, number))
    for statement in statements:
        if statement.jump is not None and not 1 <= statement.jump <= len(statements):
            raise SBasSyntaxError(f"jump to missing line {statement.jump}", statement.line)
    return statements


def _disp(variable: int) -> int:
    return (-4 * variable) & 0xFF


def _imm(value: int) -> bytes:
    return (value & 0xFFFFFFFF).to_bytes(4, "little")


def _load(operand: Operand, constant_opcode: int, modrm: int) -> bytes:
    if operand.is_constant:
        return bytes([constant_opcode]) + _imm(operand.value)
    return bytes([0x8B, modrm, _disp(operand.value)])


def _emit(statement: Statement) -> tuple[bytes, int | None]:
    """Return the code of one statement and the offset of its jump field."""
    if statement.op == "ret":
        return _load(statement.operands[0], 0xB8, 0x45) + bytes([0xC9, 0xC3]), None
    if statement.op == "assign":
        source = statement.operands[0]
        dest = _disp(statement.target)
        if source.kind == "$":
            return bytes([0xC7, 0x45, dest]) + _imm(source.value), None
        if source.kind == "v":
            return bytes([0x8B, 0x45, _disp(source.value), 0x89, 0x45, dest]), None
        return bytes([0x89, _PARAM_REGISTER[source.value], dest]), None
    if statement.op == "expr":
        left, right = statement.operands
        code = (
            _load(left, 0xB8, 0x45)
            + _load(right, 0xB9, 0x4D)
            + _OPERATOR_CODE[statement.operator or "+"]
            + bytes([0x89, 0x45, _disp(statement.target)])
        )
        return code, None
    code = bytes([0x83, 0x7D, _disp(statement.target), 0x00, 0x0F, 0x8E])
    return code + bytes(4), len(code)


def _wrap32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value > INT_MAX else value


@dataclass(frozen=True)
class CompiledProgram:
    """A compiled SBas function: its statements and machine code.

    ``line_offsets[n]`` is the offset in ``code`` of line ``n + 1``.
    """

    statements: tuple[Statement, ...]
    code: bytes
    line_offsets: tuple[int, ...]

    def run(self, *args: int) -> int:
        """Evaluate the function with up to three integer arguments."""
        if len(args) > MAX_PARAMETER:
            raise TypeError(f"at most {MAX_PARAMETER} arguments, got {len(args)}")
        params = [_wrap32(int(arg)) for arg in args]
        params += [0] * (MAX_PARAMETER - len(params))
        variables = [0] * (MAX_VARIABLE + 1)

        def value(operand: Operand) -> int:
            if operand.kind == "$":
                return operand.value
            if operand.kind == "v":
                return variables[operand.value]
            return params[operand.value - 1]

        index = 0
        while index < len(self.statements):
            statement = self.statements[index]
            if statement.op == "ret":
                return value(statement.operands[0])
            if statement.op == "assign":
                variables[statement.target] = value(statement.operands[0])
            elif statement.op == "expr":
                left, right = (value(operand) for operand in statement.operands)
                if statement.operator == "+":
                    result = left + right
                elif statement.operator == "-":
                    result = left - right
                else:
                    result = left * right
                variables[statement.target] = _wrap32(result)
            elif variables[statement.target] <= 0 and statement.jump is not None:
                index = statement.jump - 1
                continue
            index += 1
        raise RuntimeError("program ended without a ret statement")


def compile_program(source: str) -> CompiledProgram:
    """Parse and compile SBas source text into machine code."""
    statements = parse_program(source)
    code = bytearray(PROLOGUE)
    offsets = []
    pending = []
    for statement in statements:
        offsets.append(len(code))
        chunk, jump_field = _emit(statement)
        if jump_field is not None:
            pending.append((len(code) + jump_field, statement.jump))
        code += chunk
    for field, line in pending:
        relative = offsets[line - 1] - (field + 4)
        code[field : field + 4] = _imm(relative)
    return CompiledProgram(tuple(statements), bytes(code), tuple(offsets))


def run_program(source: str, *args: int) -> int:
    """Compile SBas source text and run it with the given arguments."""
    return compile_program(source).run(*args)


def main(argv: Iterable[str] | None = None) -> int:
    """Compile an SBas file and print the result of calling it."""
    parser = argparse.ArgumentParser(description="Compile and run an SBas program.")
    parser.add_argument("path", help="SBas source file")
    parser.add_argument("args", nargs="*", type=int, help="up to three integer arguments")
    options = parser.parse_args(None if argv is None else list(argv))
    if len(options.args) > MAX_PARAMETER:
        parser.error(f"at most {MAX_PARAMETER} arguments")
    try:
        with open(options.path, encoding="utf-8") as stream:
            source = stream.read()
    except OSError as exc:
        print(f"Falha na abertura do arquivo fonte: {exc}", file=sys.stderr)
        return 1
    try:
        result = run_program(source, *options.args)
    except (SBasSyntaxError, RuntimeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())