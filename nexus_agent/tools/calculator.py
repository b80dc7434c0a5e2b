"""受限的算术表达式求值。

字符白名单是唯一的安全边界：任何字母、赋值或语句分隔符都会在求值前被拒绝。
通过白名单的输入再用 ast 解析，只接受数字常量与 + - * / % ** ^ 运算。
"""

import ast
import math
import operator
import re
from typing import Callable, Dict, Type, Union

from .definitions import ToolOutcome

Number = Union[int, float]

INVALID_CHARACTERS = "Error: Invalid characters in expression"
CALCULATION_ERROR = "Error calculating expression"

_ALLOWED_PATTERN = re.compile(r"[0-9+\-*/().\s%^]+")
MAX_EXPONENT = 1024


def _truncated_mod(left: Number, right: Number) -> Number:
    """余数与被除数同号（-7 % 3 == -1）。"""
    if isinstance(left, int) and isinstance(right, int):
        remainder = abs(left) % abs(right)
        return -remainder if left < 0 else remainder
    return math.fmod(left, right)


_BINARY_OPS: Dict[Type[ast.operator], Callable[[Number, Number], Number]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: _truncated_mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS: Dict[Type[ast.unaryop], Callable[[Number], Number]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _eval_node(node: ast.AST) -> Number:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)
    if isinstance(node, ast.Constant):
        if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return node.value
        raise ValueError("Only numeric constants are allowed")
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError("Exponent too large")
        result = _BINARY_OPS[type(node.op)](left, right)
        if isinstance(result, complex):
            raise ValueError("Complex result")
        if isinstance(result, float) and not math.isfinite(result):
            raise ValueError("Result is not finite")
        return result
    raise ValueError("Unsupported math expression")


def _format_number(value: Number) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def evaluate_outcome(expression: str) -> ToolOutcome:
    """求值并保留成功/失败标记，供 ToolExecutor 使用。"""

    text = expression if isinstance(expression, str) else ""
    if not _ALLOWED_PATTERN.fullmatch(text):
        return ToolOutcome(content=INVALID_CHARACTERS, ok=False)
    # ^ 按乘方处理
    source = text.strip().replace("^", "**")
    try:
        tree = ast.parse(source, mode="eval")
        value = _eval_node(tree)
    except (SyntaxError, ValueError, ArithmeticError, TypeError):
        return ToolOutcome(content=CALCULATION_ERROR, ok=False)
    return ToolOutcome(content=_format_number(value))


def evaluate(expression: str) -> str:
    """对算术表达式求值，返回结果文本；失败时返回错误文本，从不抛异常。"""

    return evaluate_outcome(expression).content
