from __future__ import annotations

import ast
import operator
import re
from typing import Union

Number = Union[int, float]

_CAST_RE = re.compile(
    r"\(\s*(?:const\s+)?(?:unsigned\s+|signed\s+)?"
    r"(?:long\s+long|long|int|short|char|float|double|NSInteger|NSUInteger|CGFloat|CFIndex|"
    r"u?int(?:8|16|32|64)_t|size_t)\s*\)"
)
_INT_SUFFIX_RE = re.compile(r"\b(0[xX][0-9a-fA-F]+|\d+)(?:[uU]?[lL]{1,2}|[lL]{1,2}[uU]?|[uU])\b")
_FLOAT_SUFFIX_RE = re.compile(r"\b(\d+\.\d*(?:[eE][-+]?\d+)?|\d*\.\d+(?:[eE][-+]?\d+)?|\d+[eE][-+]?\d+)[fFlL]\b")
_OCTAL_RE = re.compile(r"(?<![\w.])0([0-7]+)\b")
_CHAR_RE = re.compile(r"'([^'\\])'")

_BINARY = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.LShift: operator.lshift,
    ast.RShift: operator.rshift,
    ast.BitOr: operator.or_,
    ast.BitAnd: operator.and_,
    ast.BitXor: operator.xor,
}

_UNARY = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
    ast.Invert: operator.invert,
}


def _to_python(expr: str) -> str:
    expr = expr.strip().rstrip(";").strip()
    expr = _CAST_RE.sub("", expr)
    expr = _FLOAT_SUFFIX_RE.sub(r"\1", expr)
    expr = _INT_SUFFIX_RE.sub(r"\1", expr)
    expr = _OCTAL_RE.sub(r"0o\1", expr)
    expr = _CHAR_RE.sub(lambda m: str(ord(m.group(1))), expr)
    return expr


def _eval_node(node: ast.AST) -> Number:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY:
        operand = _eval_node(node.operand)
        if isinstance(node.op, ast.Invert) and not isinstance(operand, int):
            raise ValueError("'~' applied to a non-integer")
        return _UNARY[type(node.op)](operand)
    if isinstance(node, ast.BinOp):
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Div):
            if isinstance(left, int) and isinstance(right, int):
                if right == 0:
                    raise ValueError("division by zero")
                quotient = abs(left) // abs(right)
                return quotient if (left >= 0) == (right >= 0) else -quotient
            return left / right
        if isinstance(node.op, ast.Mod) and isinstance(left, int) and isinstance(right, int):
            if right == 0:
                raise ValueError("division by zero")
            # C keeps the sign of the dividend.
            remainder = abs(left) % abs(right)
            return remainder if left >= 0 else -remainder
        if type(node.op) in _BINARY:
            return _BINARY[type(node.op)](left, right)
    raise ValueError(f"unsupported expression element {type(node).__name__}")


def evaluate_c_constant(expr: str) -> str:
    """Evaluates a numeric C initializer and returns its value as text.

    Only literals, parentheses and arithmetic or bitwise operators are
    accepted. Anything else raises ValueError.
    """
    source = _to_python(expr)
    if not source:
        raise ValueError("empty expression")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise ValueError(f"cannot parse '{expr}'") from exc
    try:
        return str(_eval_node(tree))
    except (ZeroDivisionError, OverflowError) as exc:
        raise ValueError(f"cannot evaluate '{expr}': {exc}") from exc
