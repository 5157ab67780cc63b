"""Restricted expression language for ``custom`` hook conditions.

Rule authors write small boolean expressions such as::

    data.tool === 'Bash' && includes(data.parameters.command, 'git push')
    matches(data.filePath, '\\.tsx?$') or length(data.files) > 10

The expression is tokenized, parsed into a tiny tree and walked by an
evaluator that only knows about:

* literals: numbers, quoted strings, ``true``/``false``/``null``/``undefined``
  (and the Python spellings ``True``/``False``/``None``)
* the bindings passed in by the caller (``event``, ``data``, ``projectPath``,
  ``timestamp`` for hook conditions)
* member access on mappings and sequences (``a.b``, ``a['b']``, ``a[0]``,
  ``.length``), with ``a?.b`` yielding null when ``a`` is null
* comparisons ``== === != !== < <= > >= in``
* boolean operators ``&& || !`` and ``and or not``
* calls to the helpers ``includes``, ``matches`` and ``length``, and the
  string methods ``includes``, ``startsWith``, ``endsWith``,
  ``toLowerCase``, ``toUpperCase``

Nothing else is reachable: there is no attribute access on Python objects,
no arithmetic, no assignment and no way to name a builtin.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

MAX_EXPRESSION_LEN = 4096
MAX_REGEX_LEN = 1024
MAX_DEPTH = 64


class ExpressionError(Exception):
    """Raised for unparsable expressions and evaluation failures."""


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||\?\.|[<>!()\[\].,])
  | (?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}

_LITERAL_NAMES: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
    "True": True,
    "False": False,
    "None": None,
}


@dataclass(frozen=True, slots=True)
class _Token:
    kind: str  # number | string | op | name | end
    value: str
    pos: int


def _unquote(raw: str) -> str:
    body = raw[1:-1]
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append(_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _tokenize(source: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(source):
        m = _TOKEN_RE.match(source, pos)
        if m is None:
            raise ExpressionError(f"Unexpected character {source[pos]!r} at position {pos}")
        kind = m.lastgroup or ""
        if kind != "ws":
            tokens.append(_Token(kind, m.group(), pos))
        pos = m.end()
    tokens.append(_Token("end", "", pos))
    return tokens


# ---------------------------------------------------------------------------
# Syntax tree
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Literal:
    value: Any


@dataclass(frozen=True, slots=True)
class _Name:
    name: str


@dataclass(frozen=True, slots=True)
class _Member:
    obj: Any
    key: Any
    optional: bool = False  # a?.b yields null instead of failing when a is null


@dataclass(frozen=True, slots=True)
class _Call:
    func: Any
    args: tuple[Any, ...]


@dataclass(frozen=True, slots=True)
class _Not:
    operand: Any


@dataclass(frozen=True, slots=True)
class _Logical:
    op: str  # "and" | "or"
    left: Any
    right: Any


@dataclass(frozen=True, slots=True)
class _Compare:
    op: str
    left: Any
    right: Any


_COMPARE_OPS = {"==", "===", "!=", "!==", "<", "<=", ">", ">="}


class _Parser:
    """Recursive-descent parser; precedence: or < and < not < compare < postfix."""

    def __init__(self, tokens: list[_Token]) -> None:
        self._tokens = tokens
        self._i = 0
        self._depth = 0

    def parse(self) -> Any:
        node = self._or()
        tok = self._peek()
        if tok.kind != "end":
            raise ExpressionError(f"Unexpected {tok.value!r} at position {tok.pos}")
        return node

    # -- helpers ----------------------------------------------------------

    def _peek(self) -> _Token:
        return self._tokens[self._i]

    def _advance(self) -> _Token:
        tok = self._tokens[self._i]
        self._i += 1
        return tok

    def _is(self, *values: str) -> bool:
        tok = self._peek()
        return tok.kind in ("op", "name") and tok.value in values

    def _expect(self, value: str) -> None:
        tok = self._advance()
        if tok.value != value:
            raise ExpressionError(f"Expected {value!r} at position {tok.pos}, got {tok.value!r}")

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > MAX_DEPTH:
            raise ExpressionError("Expression nested too deeply")

    def _leave(self) -> None:
        self._depth -= 1

    # -- grammar ----------------------------------------------------------

    def _or(self) -> Any:
        node = self._and()
        while self._is("||", "or"):
            self._advance()
            node = _Logical("or", node, self._and())
        return node

    def _and(self) -> Any:
        node = self._not()
        while self._is("&&", "and"):
            self._advance()
            node = _Logical("and", node, self._not())
        return node

    def _not(self) -> Any:
        if self._is("!", "not"):
            self._advance()
            self._enter()
            try:
                return _Not(self._not())
            finally:
                self._leave()
        return self._compare()

    def _compare(self) -> Any:
        left = self._postfix()
        tok = self._peek()
        if tok.kind == "op" and tok.value in _COMPARE_OPS:
            self._advance()
            return _Compare(tok.value, left, self._postfix())
        if tok.kind == "name" and tok.value == "in":
            self._advance()
            return _Compare("in", left, self._postfix())
        return left

    def _postfix(self) -> Any:
        node = self._primary()
        while True:
            if self._is(".", "?."):
                optional = self._advance().value == "?."
                tok = self._advance()
                if tok.kind != "name":
                    raise ExpressionError(f"Expected property name at position {tok.pos}")
                node = _Member(node, _Literal(tok.value), optional)
            elif self._is("["):
                self._advance()
                self._enter()
                try:
                    key = self._or()
                finally:
                    self._leave()
                self._expect("]")
                node = _Member(node, key)
            elif self._is("("):
                self._advance()
                node = _Call(node, self._arguments())
            else:
                return node

    def _arguments(self) -> tuple[Any, ...]:
        args: list[Any] = []
        if self._is(")"):
            self._advance()
            return ()
        self._enter()
        try:
            while True:
                args.append(self._or())
                if self._is(","):
                    self._advance()
                    continue
                self._expect(")")
                return tuple(args)
        finally:
            self._leave()

    def _primary(self) -> Any:
        tok = self._advance()
        if tok.kind == "number":
            return _Literal(float(tok.value) if "." in tok.value else int(tok.value))
        if tok.kind == "string":
            return _Literal(_unquote(tok.value))
        if tok.kind == "name":
            if tok.value in _LITERAL_NAMES:
                return _Literal(_LITERAL_NAMES[tok.value])
            return _Name(tok.value)
        if tok.kind == "op" and tok.value == "(":
            self._enter()
            try:
                node = self._or()
            finally:
                self._leave()
            self._expect(")")
            return node
        if tok.kind == "end":
            raise ExpressionError("Unexpected end of expression")
        raise ExpressionError(f"Unexpected {tok.value!r} at position {tok.pos}")


# ---------------------------------------------------------------------------
# Helpers available to expressions
# ---------------------------------------------------------------------------


def truthy(value: Any) -> bool:
    """Truthiness as rule authors expect it: empty collections are truthy."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def _includes(haystack: Any, needle: Any) -> bool:
    if not truthy(haystack):
        return False
    if isinstance(haystack, str):
        return str(needle) in haystack
    if isinstance(haystack, (list, tuple)):
        return needle in haystack
    raise ExpressionError(f"includes() does not accept {type(haystack).__name__}")


def _matches(value: Any, pattern: Any) -> bool:
    if not truthy(value):
        return False
    pattern = str(pattern)
    if len(pattern) > MAX_REGEX_LEN:
        raise ExpressionError(f"matches() pattern exceeds {MAX_REGEX_LEN} chars")
    try:
        return re.search(pattern, str(value)) is not None
    except re.error as exc:
        raise ExpressionError(f"Invalid regex {pattern!r}: {exc}") from exc


def _length(value: Any) -> int:
    if isinstance(value, (str, list, tuple, Mapping)):
        return len(value)
    return 0


HELPERS: dict[str, Callable[..., Any]] = {
    "includes": _includes,
    "matches": _matches,
    "length": _length,
}

_STRING_METHODS: dict[str, Callable[..., Any]] = {
    "includes": lambda s, sub="": str(sub) in s,
    "startsWith": lambda s, prefix="": s.startswith(str(prefix)),
    "endsWith": lambda s, suffix="": s.endswith(str(suffix)),
    "toLowerCase": lambda s: s.lower(),
    "toUpperCase": lambda s: s.upper(),
}


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


class _Evaluator:
    def __init__(self, bindings: Mapping[str, Any]) -> None:
        self._bindings = bindings

    def eval(self, node: Any) -> Any:
        match node:
            case _Literal(value=value):
                return value
            case _Name(name=name):
                if name in self._bindings:
                    return self._bindings[name]
                raise ExpressionError(f"Unknown identifier {name!r}")
            case _Member(obj=obj, key=key, optional=optional):
                target = self.eval(obj)
                if target is None and optional:
                    return None
                return self._member(target, self.eval(key))
            case _Call(func=func, args=args):
                return self._call(func, [self.eval(a) for a in args])
            case _Not(operand=operand):
                return not truthy(self.eval(operand))
            case _Logical(op="and", left=left, right=right):
                value = self.eval(left)
                return self.eval(right) if truthy(value) else value
            case _Logical(op="or", left=left, right=right):
                value = self.eval(left)
                return value if truthy(value) else self.eval(right)
            case _Compare(op=op, left=left, right=right):
                return self._compare(op, self.eval(left), self.eval(right))
        raise ExpressionError(f"Unsupported expression node {type(node).__name__}")

    @staticmethod
    def _member(obj: Any, key: Any) -> Any:
        if obj is None:
            raise ExpressionError(f"Cannot read property {key!r} of null")
        if isinstance(obj, Mapping):
            return obj.get(key if isinstance(key, str) else str(key))
        if isinstance(obj, (str, list, tuple)):
            if key == "length":
                return len(obj)
            if isinstance(key, int) and not isinstance(key, bool):
                return obj[key] if -len(obj) <= key < len(obj) else None
        return None

    def _call(self, func: Any, args: list[Any]) -> Any:
        if isinstance(func, _Name) and func.name in HELPERS and func.name not in self._bindings:
            helper = HELPERS[func.name]
        elif isinstance(func, _Member) and isinstance(func.key, _Literal):
            target = self.eval(func.obj)
            if target is None and func.optional:
                return None
            method = _STRING_METHODS.get(str(func.key.value))
            if method is None:
                raise ExpressionError(f"Unknown method {func.key.value!r}")
            if isinstance(target, (list, tuple)) and func.key.value == "includes":
                return _includes(target, args[0] if args else None)
            if not isinstance(target, str):
                raise ExpressionError(f"Cannot call {func.key.value!r} on {type(target).__name__}")
            return self._apply(method, target, *args)
        else:
            raise ExpressionError("Only helper functions may be called")
        return self._apply(helper, *args)

    @staticmethod
    def _apply(fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except TypeError as exc:
            raise ExpressionError(f"Bad arguments: {exc}") from exc

    @staticmethod
    def _compare(op: str, left: Any, right: Any) -> bool:
        if op in ("==", "==="):
            return _equals(left, right)
        if op in ("!=", "!=="):
            return not _equals(left, right)
        if op == "in":
            if isinstance(right, str):
                return str(left) in right
            if isinstance(right, (list, tuple, Mapping)):
                return left in right
            raise ExpressionError(f"'in' needs a string, list or object, got {type(right).__name__}")
        if not ((_is_number(left) and _is_number(right)) or (isinstance(left, str) and isinstance(right, str))):
            raise ExpressionError(
                f"Cannot compare {type(left).__name__} with {type(right).__name__}"
            )
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Expression:
    """A parsed expression, ready to evaluate against bindings."""

    source: str
    tree: Any = field(compare=False)

    def evaluate(self, bindings: Mapping[str, Any]) -> Any:
        return _Evaluator(bindings).eval(self.tree)

    def test(self, bindings: Mapping[str, Any]) -> bool:
        return truthy(self.evaluate(bindings))

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"


@lru_cache(maxsize=256)
def compile_expression(source: str) -> Expression:
    """Parse *source*. Raises ``ExpressionError`` if it is not a valid expression."""
    if not isinstance(source, str) or not source.strip():
        raise ExpressionError("Expression is empty")
    if len(source) > MAX_EXPRESSION_LEN:
        raise ExpressionError(f"Expression exceeds {MAX_EXPRESSION_LEN} chars")
    return Expression(source, _Parser(_tokenize(source)).parse())


def evaluate_expression(source: str, bindings: Mapping[str, Any]) -> bool:
    """Compile (cached) and evaluate *source* to a boolean."""
    return compile_expression(source).test(bindings)
