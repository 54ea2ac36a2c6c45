"""Exact-arithmetic calculator for chat expressions.

Expressions are tokenized, converted to reverse Polish notation with the
shunting-yard algorithm and evaluated with :class:`fractions.Fraction`.
"""

from __future__ import annotations

import enum
import math
import re
import unicodedata
from dataclasses import dataclass
from fractions import Fraction
from typing import Iterable, List, Optional

__all__ = [
    "CalcErrorType",
    "CalcError",
    "TokenType",
    "Token",
    "tokenize",
    "shunting_yard",
    "eval_rpn",
    "evaluate",
    "fast_check",
]

_DIGIT_LIMIT = 8000
_POW_DIGIT_LIMIT = 3000


class CalcErrorType(enum.IntEnum):
    """Categories of calculator failures."""

    INVALID_NUMBER = 0
    UNKNOWN_CHARACTER = enum.auto()
    MISMATCHED_PARENTHESES = enum.auto()
    UNEXPECTED_TOKEN = enum.auto()
    STACK_UNDERFLOW = enum.auto()
    UNKNOWN_IDENTIFIER = enum.auto()
    DIVISION_BY_ZERO = enum.auto()
    INFINITE_RESULT = enum.auto()
    RESULT_TOO_BIG = enum.auto()
    INVALID_EXPRESSION = enum.auto()
    MODULO_REQUIRES_INT = enum.auto()
    MOD_BY_ZERO = enum.auto()
    PERMUTATION_REQUIRES_INT = enum.auto()
    INVALID_PERMUTATION = enum.auto()
    COMBINATION_REQUIRES_INT = enum.auto()
    INVALID_COMBINATION = enum.auto()
    FACTORIAL_REQUIRES_INT = enum.auto()
    FACTORIAL_NEGATIVE = enum.auto()


class CalcError(ValueError):
    """A calculator error with its category and input position (-1 if unknown)."""

    def __init__(self, typ: CalcErrorType, message: str, pos: int = -1) -> None:
        super().__init__(message)
        self.typ = typ
        self.pos = pos
        self.message = message

    def __str__(self) -> str:
        return self.message


class TokenType(enum.IntEnum):
    EOF = 0
    NUMBER = enum.auto()
    IDENT = enum.auto()
    PLUS = enum.auto()
    MINUS = enum.auto()
    MUL = enum.auto()
    DIV = enum.auto()
    POW = enum.auto()
    LPAREN = enum.auto()
    RPAREN = enum.auto()
    FLOORDIV = enum.auto()
    MOD = enum.auto()
    FACT = enum.auto()
    PERM = enum.auto()
    COMB = enum.auto()


@dataclass(frozen=True)
class Token:
    """A lexical token; ``num`` is set for numbers, ``text`` for everything else."""

    type: TokenType
    num: Optional[Fraction] = None
    text: str = ""


_TRANSLATION = str.maketrans(
    {
        "（": "(",
        "）": ")",
        "＋": "+",
        "－": "-",
        "×": "*",
        "＊": "*",
        "÷": "/",
        "／": "/",
        "！": "!",
        "Ａ": "A",
        "ａ": "a",
        "Ｃ": "C",
        "ｃ": "c",
        "Ｐ": "P",
        "ｐ": "p",
    }
)

_E = Fraction("2.718281828459")
_PI = Fraction("3.141592653589793")

_NUMBER_RE = re.compile(r"[0-9]+\.?[0-9]*|\.[0-9]+")

_SINGLE_OPS = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.MUL,
    "/": TokenType.DIV,
    "%": TokenType.MOD,
    "^": TokenType.POW,
    "!": TokenType.FACT,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
}

_DOUBLE_OPS = {"**": TokenType.POW, "//": TokenType.FLOORDIV}

_BINARY_OPS = frozenset(
    {
        TokenType.PLUS,
        TokenType.MINUS,
        TokenType.MUL,
        TokenType.DIV,
        TokenType.POW,
        TokenType.FLOORDIV,
        TokenType.MOD,
        TokenType.PERM,
        TokenType.COMB,
    }
)
_OPERATORS = _BINARY_OPS | {TokenType.FACT}

_PRECEDENCE = {
    TokenType.PLUS: 1,
    TokenType.MINUS: 1,
    TokenType.MUL: 2,
    TokenType.DIV: 2,
    TokenType.FLOORDIV: 2,
    TokenType.MOD: 2,
    TokenType.POW: 3,
    TokenType.FACT: 4,
    TokenType.PERM: 4,
    TokenType.COMB: 4,
}


def _is_digit(c: str) -> bool:
    return c.isdecimal()


def _parse_number(raw: str) -> Optional[Fraction]:
    if not _NUMBER_RE.fullmatch(raw):
        return None
    return Fraction(raw)


def tokenize(text: str) -> List[Token]:
    """Split an expression into tokens, ending with an EOF token."""
    chars = text.translate(_TRANSLATION)
    tokens: List[Token] = []
    i = 0
    n = len(chars)
    while i < n:
        c = chars[i]
        if c.isspace():
            i += 1
        elif _is_digit(c) or c == ".":
            start = i
            while i < n and (_is_digit(chars[i]) or chars[i] == "."):
                i += 1
            raw = chars[start:i]
            value = _parse_number(raw)
            if value is None:
                raise CalcError(
                    CalcErrorType.INVALID_NUMBER, f"invalid number: {raw}", start
                )
            tokens.append(Token(TokenType.NUMBER, num=value))
        elif c.isalpha():
            start = i
            while i < n and chars[i].isalpha():
                i += 1
            name = chars[start:i]
            lowered = name.lower()
            if len(name) == 1 and lowered in ("a", "p"):
                tokens.append(Token(TokenType.PERM, text=name))
            elif len(name) == 1 and lowered == "c":
                tokens.append(Token(TokenType.COMB, text=name))
            else:
                tokens.append(Token(TokenType.IDENT, text=name))
        else:
            two = chars[i : i + 2]
            if len(two) == 2 and two in _DOUBLE_OPS:
                tokens.append(Token(_DOUBLE_OPS[two], text=two))
                i += 2
                continue
            kind = _SINGLE_OPS.get(c)
            if kind is None:
                raise CalcError(
                    CalcErrorType.UNKNOWN_CHARACTER,
                    f"unknown character: {c!r} at {i}",
                    i,
                )
            tokens.append(Token(kind, text=c))
            i += 1
    tokens.append(Token(TokenType.EOF))
    return tokens


def _precedence(tok: Token) -> int:
    return _PRECEDENCE.get(tok.type, 0)


def shunting_yard(tokens: Iterable[Token]) -> List[Token]:
    """Convert infix tokens into postfix (reverse Polish) order."""
    output: List[Token] = []
    ops: List[Token] = []
    for tok in tokens:
        if tok.type in (TokenType.NUMBER, TokenType.IDENT):
            output.append(tok)
        elif tok.type in _OPERATORS:
            right_assoc = tok.type == TokenType.POW
            while ops:
                top = ops[-1]
                if top.type != TokenType.LPAREN and (
                    _precedence(top) > _precedence(tok)
                    or (_precedence(top) == _precedence(tok) and not right_assoc)
                ):
                    output.append(ops.pop())
                    continue
                break
            ops.append(tok)
        elif tok.type == TokenType.LPAREN:
            ops.append(tok)
        elif tok.type == TokenType.RPAREN:
            while ops:
                top = ops.pop()
                if top.type == TokenType.LPAREN:
                    break
                output.append(top)
            else:
                raise CalcError(
                    CalcErrorType.MISMATCHED_PARENTHESES, "mismatched parentheses"
                )
        elif tok.type == TokenType.EOF:
            continue
        else:
            raise CalcError(
                CalcErrorType.UNEXPECTED_TOKEN,
                f"unexpected token in shunting yard: {tok!r}",
            )
    while ops:
        top = ops.pop()
        if top.type in (TokenType.LPAREN, TokenType.RPAREN):
            raise CalcError(
                CalcErrorType.MISMATCHED_PARENTHESES, "mismatched parentheses"
            )
        output.append(top)
    return output


def _to_float(value) -> float:
    try:
        return float(value)
    except OverflowError:
        return math.copysign(math.inf, value)


def _log10(x: float) -> float:
    if math.isnan(x) or x < 0:
        return math.nan
    if x == 0:
        return -math.inf
    return math.log10(x)


def _lgamma(x: float) -> float:
    if math.isinf(x):
        return math.inf
    return math.lgamma(x)


def _is_int(value: Fraction) -> bool:
    return value.denominator == 1


def _euclid_div(n: int, d: int) -> int:
    m = n % abs(d)
    return (n - m) // d


def _power(left: Fraction, right: Fraction) -> Fraction:
    exp = _to_float(right)
    base = _to_float(left)
    if math.isinf(exp):
        raise CalcError(CalcErrorType.INFINITE_RESULT, "infinite exponent")
    if math.isinf(base):
        raise CalcError(CalcErrorType.INFINITE_RESULT, "infinite base number")
    if not _is_int(right):
        try:
            result = math.pow(base, exp)
        except ValueError:
            result = math.nan
        except OverflowError:
            result = math.inf
        if math.isinf(result) or math.isnan(result):
            raise CalcError(CalcErrorType.INFINITE_RESULT, "infinite float")
        return Fraction(result)
    if _log10(base) * exp > _POW_DIGIT_LIMIT:
        raise CalcError(CalcErrorType.RESULT_TOO_BIG, "result too big")
    n = int(exp)
    # Non-positive integer exponents leave the accumulator at one.
    return left**n if n > 0 else Fraction(1)


def _perm_or_comb(tok: Token, left: Fraction, right: Fraction) -> Fraction:
    is_perm = tok.type == TokenType.PERM
    label = "permutation" if is_perm else "combination"
    if not (_is_int(left) and _is_int(right)):
        kind = (
            CalcErrorType.PERMUTATION_REQUIRES_INT
            if is_perm
            else CalcErrorType.COMBINATION_REQUIRES_INT
        )
        raise CalcError(kind, f"{label} requires integers")
    n = left.numerator
    r = right.numerator
    if n < 0 or r < 0 or r > n:
        kind = (
            CalcErrorType.INVALID_PERMUTATION
            if is_perm
            else CalcErrorType.INVALID_COMBINATION
        )
        raise CalcError(kind, f"invalid {label}")
    lg_n = _lgamma(_to_float(n) + 1)
    lg_rest = _lgamma(_to_float(n - r) + 1)
    if is_perm:
        digits = (lg_n - lg_rest) / math.log(10)
    else:
        digits = (lg_n - _lgamma(_to_float(r) + 1) - lg_rest) / math.log(10)
    if digits > _DIGIT_LIMIT:
        raise CalcError(CalcErrorType.RESULT_TOO_BIG, "result too big")
    return Fraction(math.perm(n, r) if is_perm else math.comb(n, r))


def _binary(tok: Token, left: Fraction, right: Fraction) -> Fraction:
    kind = tok.type
    if kind == TokenType.PLUS:
        return left + right
    if kind == TokenType.MINUS:
        return left - right
    if kind == TokenType.MUL:
        return left * right
    if kind == TokenType.DIV:
        if right == 0:
            raise CalcError(CalcErrorType.DIVISION_BY_ZERO, "division by zero")
        return left / right
    if kind == TokenType.POW:
        return _power(left, right)
    if kind == TokenType.FLOORDIV:
        n = left.numerator * right.denominator
        d = left.denominator * right.numerator
        if d == 0:
            raise CalcError(CalcErrorType.DIVISION_BY_ZERO, "floor division by zero")
        return Fraction(_euclid_div(n, d))
    if kind == TokenType.MOD:
        if not (_is_int(left) and _is_int(right)):
            raise CalcError(
                CalcErrorType.MODULO_REQUIRES_INT, "modulo requires integers"
            )
        if right.numerator == 0:
            raise CalcError(CalcErrorType.MOD_BY_ZERO, "mod by zero")
        return Fraction(left.numerator % abs(right.numerator))
    if kind in (TokenType.PERM, TokenType.COMB):
        return _perm_or_comb(tok, left, right)
    raise CalcError(
        CalcErrorType.UNEXPECTED_TOKEN, f"unexpected token in shunting yard: {tok!r}"
    )


def _factorial(value: Fraction) -> Fraction:
    if not _is_int(value):
        raise CalcError(
            CalcErrorType.FACTORIAL_REQUIRES_INT, "factorial requires integer"
        )
    n = value.numerator
    if n < 0:
        raise CalcError(
            CalcErrorType.FACTORIAL_NEGATIVE, "factorial of negative number"
        )
    if _lgamma(_to_float(n) + 1) / math.log(10) > _DIGIT_LIMIT:
        raise CalcError(CalcErrorType.RESULT_TOO_BIG, "result too big")
    return Fraction(math.factorial(n))


def eval_rpn(rpn: Iterable[Token]) -> Fraction:
    """Evaluate postfix tokens to an exact rational result."""
    stack: List[Fraction] = []

    def pop() -> Fraction:
        if not stack:
            raise CalcError(CalcErrorType.STACK_UNDERFLOW, "stack underflow")
        return stack.pop()

    for tok in rpn:
        if tok.type == TokenType.NUMBER:
            stack.append(Fraction(tok.num))
        elif tok.type == TokenType.IDENT:
            name = tok.text.lower()
            if name == "pi":
                stack.append(_PI)
            elif name == "e":
                stack.append(_E)
            else:
                raise CalcError(
                    CalcErrorType.UNKNOWN_IDENTIFIER,
                    f"unknown identifier: {tok.text}",
                )
        elif tok.type in _BINARY_OPS:
            right = pop()
            left = pop()
            stack.append(_binary(tok, left, right))
        elif tok.type == TokenType.FACT:
            stack.append(_factorial(pop()))
        elif tok.type in (TokenType.LPAREN, TokenType.RPAREN, TokenType.EOF):
            continue
        else:
            raise CalcError(
                CalcErrorType.UNEXPECTED_TOKEN, f"unexpected token in eval: {tok!r}"
            )
    if len(stack) != 1:
        raise CalcError(
            CalcErrorType.INVALID_EXPRESSION,
            f"invalid expression, stack has {len(stack)} elements",
        )
    return stack[0]


def evaluate(expr: str) -> Fraction:
    """Tokenize, parse and evaluate an expression."""
    return eval_rpn(shunting_yard(tokenize(expr)))


_FAST_CHECK_RE = re.compile(r"[ 0-9epiacpACP（(）)＋+－\-×*＊÷/／.!]+")


def fast_check(expr: str) -> bool:
    """Cheaply decide whether text looks like an expression worth evaluating.

    Text made only of numeric characters is not considered an expression.
    """
    if all(unicodedata.category(c).startswith("N") for c in expr):
        return False
    return _FAST_CHECK_RE.fullmatch(expr) is not None