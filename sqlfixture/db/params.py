"""Typed statement parameters and positional placeholder binding.

Statements are written with positional ``?`` placeholders. Each parameter is
an :class:`SqlParam` carrying an explicit :class:`ParamKind`; binding looks
the kind up in a table of SQLAlchemy types, so every kind binds through the
same native type regardless of the Python value it wraps.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import bindparam, outparam, text
from sqlalchemy.sql.elements import TextClause
from sqlalchemy.types import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    NullType,
    String,
    TypeEngine,
)

from sqlfixture.exceptions import ParameterError


class ParamKind(str, Enum):
    """Parameter variants."""
    STRING = "string"
    INTEGER = "integer"
    LONG = "long"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"
    NULL = "null"
    OBJECT = "object"


@dataclass(frozen=True)
class SqlParam:
    """A statement parameter tagged with the kind it binds as."""

    kind: ParamKind
    value: Any = None

    def __post_init__(self) -> None:
        if self.kind == ParamKind.NULL and self.value is not None:
            raise ParameterError("NULL parameters cannot carry a value")
        if self.kind != ParamKind.NULL and self.value is None:
            raise ParameterError(f"{self.kind.value} parameter requires a value; use SqlParam.null()")

    @classmethod
    def string(cls, value: str) -> "SqlParam":
        return cls(ParamKind.STRING, str(value))

    @classmethod
    def integer(cls, value: int) -> "SqlParam":
        return cls(ParamKind.INTEGER, int(value))

    @classmethod
    def long(cls, value: int) -> "SqlParam":
        return cls(ParamKind.LONG, int(value))

    @classmethod
    def double(cls, value: float) -> "SqlParam":
        return cls(ParamKind.DOUBLE, float(value))

    @classmethod
    def boolean(cls, value: bool) -> "SqlParam":
        return cls(ParamKind.BOOLEAN, bool(value))

    @classmethod
    def date(cls, value: date) -> "SqlParam":
        if isinstance(value, datetime):
            value = value.date()
        return cls(ParamKind.DATE, value)

    @classmethod
    def timestamp(cls, value: datetime) -> "SqlParam":
        return cls(ParamKind.TIMESTAMP, value)

    @classmethod
    def null(cls) -> "SqlParam":
        return cls(ParamKind.NULL)

    @classmethod
    def object(cls, value: Any) -> "SqlParam":
        """Pass a value through to the driver without a bind type."""
        return cls(ParamKind.OBJECT, value)

    @classmethod
    def of(cls, value: Any) -> "SqlParam":
        """Tag a plain Python value.

        ``SqlParam`` instances are returned unchanged. Integers outside the
        32-bit range are tagged LONG.
        """
        if isinstance(value, SqlParam):
            return value
        for python_type, factory in _INFERENCE_ORDER:
            if isinstance(value, python_type):
                return factory(value)
        return cls.object(value)


_INT32_MIN, _INT32_MAX = -(2 ** 31), 2 ** 31 - 1


def _tag_int(value: int) -> SqlParam:
    if _INT32_MIN <= value <= _INT32_MAX:
        return SqlParam.integer(value)
    return SqlParam.long(value)


# bool before int and datetime before date: both are subclasses
_INFERENCE_ORDER: Tuple[Tuple[Any, Callable[[Any], SqlParam]], ...] = (
    (type(None), lambda _: SqlParam.null()),
    (bool, SqlParam.boolean),
    (int, _tag_int),
    (float, SqlParam.double),
    (str, SqlParam.string),
    (datetime, SqlParam.timestamp),
    (date, SqlParam.date),
    (Decimal, SqlParam.object),
)


_BIND_TYPES: Dict[ParamKind, Optional[Callable[[], TypeEngine]]] = {
    ParamKind.STRING: String,
    ParamKind.INTEGER: Integer,
    ParamKind.LONG: BigInteger,
    ParamKind.DOUBLE: Float,
    ParamKind.BOOLEAN: Boolean,
    ParamKind.DATE: Date,
    ParamKind.TIMESTAMP: DateTime,
    ParamKind.NULL: NullType,
    ParamKind.OBJECT: None,
}

_missing = set(ParamKind) - set(_BIND_TYPES)
if _missing:
    raise RuntimeError(f"No bind type registered for parameter kinds: {sorted(k.value for k in _missing)}")


def bind_type(kind: ParamKind) -> Optional[TypeEngine]:
    """SQLAlchemy type used to bind a parameter kind (None: driver decides)."""
    factory = _BIND_TYPES[kind]
    return factory() if factory is not None else None


def _spans(statement: str) -> Iterator[Tuple[int, int, bool]]:
    """Split a statement into ``(start, end, is_code)`` spans.

    Quoted literals, quoted identifiers and comments are the non-code spans.
    An unterminated quote or block comment runs to the end of the statement.
    """
    length = len(statement)
    code_start = 0
    i = 0

    while i < length:
        char = statement[i]

        if char in ("'", '"', '`'):
            end = i + 1
            while end < length:
                if statement[end] == char:
                    # doubled quote is an escaped quote inside the literal
                    if end + 1 < length and statement[end + 1] == char:
                        end += 2
                        continue
                    break
                end += 1
            end = min(end + 1, length)
        elif statement.startswith("--", i):
            end = statement.find("\n", i)
            end = length if end == -1 else end
        elif statement.startswith("/*", i):
            end = statement.find("*/", i + 2)
            end = length if end == -1 else end + 2
        else:
            i += 1
            continue

        if code_start < i:
            yield code_start, i, True
        yield i, end, False
        code_start = i = end

    if code_start < length:
        yield code_start, length, True


def rewrite_placeholders(statement: str) -> Tuple[str, int]:
    """Rewrite positional ``?`` placeholders into ``:p1, :p2, ...`` binds.

    Quoted literals, quoted identifiers and comments are copied verbatim.
    Colons that SQLAlchemy would read as named binds (``:name``) are escaped
    so they reach the database as written.

    Returns:
        The rewritten statement and the number of placeholders found.
    """
    out: List[str] = []
    count = 0

    for start, end, is_code in _spans(statement):
        if not is_code:
            out.append(_escape_colons(statement[start:end]))
            continue
        for char in statement[start:end]:
            if char == "?":
                count += 1
                out.append(f":p{count}")
            else:
                out.append(char)

    return _escape_colons("".join(out), keep_binds=True), count


_TOKEN = re.compile(r"[A-Za-z_][A-Za-z0-9_$#]*|[()]")


def find_keyword(statement: str, keyword: str) -> int:
    """Position of ``keyword`` as a bare word outside parentheses, or -1.

    Literals, quoted identifiers and comments are skipped, and a keyword
    embedded in a longer identifier (``is_returning_hire``) does not count.
    """
    wanted = keyword.upper()
    depth = 0
    for start, end, is_code in _spans(statement):
        if not is_code:
            continue
        for match in _TOKEN.finditer(statement, start, end):
            token = match.group()
            if token == "(":
                depth += 1
            elif token == ")":
                depth -= 1
            elif depth == 0 and token.upper() == wanted:
                return match.start()
    return -1


def _escape_colons(fragment: str, keep_binds: bool = False) -> str:
    """Escape ``:word`` so SQLAlchemy's text() leaves it alone.

    ``::`` casts and colons not followed by a word character are untouched.
    With ``keep_binds`` the generated ``:pN`` binds outside literals survive;
    fragments that were already escaped are not escaped twice.
    """
    out: List[str] = []
    length = len(fragment)
    for i, char in enumerate(fragment):
        if char == ":":
            prev = fragment[i - 1] if i > 0 else ""
            nxt = fragment[i + 1] if i + 1 < length else ""
            is_bind_like = (
                (nxt.isalnum() or nxt == "_")
                and prev != ":"
                and prev != "\\"
                and not (prev.isalnum() or prev == "_")
            )
            if is_bind_like and not (keep_binds and _is_generated_bind(fragment, i)):
                out.append("\\:")
                continue
        out.append(char)
    return "".join(out)


def _is_generated_bind(fragment: str, index: int) -> bool:
    end = index + 1
    if end >= len(fragment) or fragment[end] != "p":
        return False
    end += 1
    digits_start = end
    while end < len(fragment) and fragment[end].isdigit():
        end += 1
    if end == digits_start:
        return False
    return end == len(fragment) or not (fragment[end].isalnum() or fragment[end] == "_")


def build_statement(statement: str, params: Sequence[Any], out_params: int = 0) -> TextClause:
    """Build a SQLAlchemy text clause with typed bind parameters.

    Values are attached to their bind parameters; OBJECT parameters carry no
    bind type, so SQLAlchemy derives one from the value.

    Args:
        statement: SQL with positional ``?`` placeholders.
        params: Values for the leading placeholders.
        out_params: Number of trailing placeholders bound as numeric OUT
            parameters (``RETURNING ... INTO ?``); their values are read
            from the result's ``out_parameters``.

    Raises:
        ParameterError: If placeholder and parameter counts differ.
    """
    sql, placeholder_count = rewrite_placeholders(statement)
    tagged = [SqlParam.of(param) for param in params]

    if placeholder_count != len(tagged) + out_params:
        raise ParameterError(
            f"Statement has {placeholder_count} placeholder(s) but {len(tagged)} parameter(s) were given",
            details={'statement': statement},
        )

    clause = text(sql)
    binds = [
        bindparam(f"p{index}", param.value, type_=bind_type(param.kind))
        for index, param in enumerate(tagged, start=1)
    ]
    binds.extend(
        outparam(f"p{index}", type_=Integer())
        for index in range(len(tagged) + 1, placeholder_count + 1)
    )
    if binds:
        clause = clause.bindparams(*binds)
    return clause
