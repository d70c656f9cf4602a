"""kiln Compiler Core — main Compiler class.

The Compiler transforms the template AST into a Python ``ast.Module`` and
renders it back to source text with ``ast.unparse``. The source text is
the persistable artifact: caches store it, and activation compiles and
executes it into a module.

Design Principles:
1. **AST-to-AST**: Build `ast.Module`, never concatenate code strings
2. **StringBuilder**: Output via `buf.append()`, join at end
3. **Local caching**: `_append` and `_str` bound once per render
4. **Environment-free units**: Generated code reaches filters, tests,
   functions and variables only through the runtime argument ``rt``

Generated module:
    ```python
    # kiln template: 'hello.html'
    TEMPLATE_NAME = 'hello.html'

    def render(ctx, rt):
        buf = []
        _append = buf.append
        _str = rt.to_str
        _append('Hello, ')
        _append(_str(rt.call_filter('upper', rt.lookup(ctx, 'name', 1, False))))
        return ''.join(buf)
    ```

"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING

from kiln.nodes import Const, Data, Expr, Filter, FuncCall, Getattr, Name, Output, Test

if TYPE_CHECKING:
    from kiln.environment import Environment
    from kiln.nodes import Node
    from kiln.nodes import Template as TemplateNode

# Tests and filters whose operand is looked up without raising on undefined names
_SOFT_TESTS = frozenset({"defined", "undefined", "none"})
_SOFT_FILTERS = frozenset({"default", "d"})


def _load(name: str) -> ast.Name:
    return ast.Name(id=name, ctx=ast.Load())


def _rt_call(method: str, *args: ast.expr) -> ast.Call:
    return ast.Call(
        func=ast.Attribute(value=_load("rt"), attr=method, ctx=ast.Load()),
        args=list(args),
        keywords=[],
    )


class Compiler:
    """Compile a template AST to Python module source.

    Attributes:
        _env: Parent Environment (node visitors)

    Node Dispatch:
        O(1) dict lookup from node type to handler.

    Example:
            >>> env = Environment()
            >>> source = env.compile_source("Hi {{ name }}", "hi.html")
            >>> "def render(ctx, rt):" in source
            True

    """

    __slots__ = ("_env", "_expr_dispatch", "_node_dispatch")

    def __init__(self, env: Environment):
        self._env = env
        self._node_dispatch = {
            Data: self._compile_data,
            Output: self._compile_output,
        }
        self._expr_dispatch = {
            Const: self._compile_const,
            Name: self._compile_name,
            Getattr: self._compile_getattr,
            FuncCall: self._compile_func_call,
            Filter: self._compile_filter,
            Test: self._compile_test,
        }

    def compile(self, node: TemplateNode) -> str:
        """Run node visitors, then generate module source for ``node``."""
        for visitor in self._env.get_node_visitors():
            node = visitor.visit(node, self._env)

        module = self._compile_template(node)
        ast.fix_missing_locations(module)

        header = f"# kiln template: {node.name!r}\n"
        return header + ast.unparse(module) + "\n"

    def _compile_template(self, node: TemplateNode) -> ast.Module:
        body: list[ast.stmt] = [
            ast.Assign(
                targets=[ast.Name(id="buf", ctx=ast.Store())],
                value=ast.List(elts=[], ctx=ast.Load()),
            ),
            ast.Assign(
                targets=[ast.Name(id="_append", ctx=ast.Store())],
                value=ast.Attribute(value=_load("buf"), attr="append", ctx=ast.Load()),
            ),
            ast.Assign(
                targets=[ast.Name(id="_str", ctx=ast.Store())],
                value=ast.Attribute(value=_load("rt"), attr="to_str", ctx=ast.Load()),
            ),
        ]
        for child in node.body:
            body.append(self._compile_node(child))
        body.append(
            ast.Return(
                value=ast.Call(
                    func=ast.Attribute(value=ast.Constant(value=""), attr="join", ctx=ast.Load()),
                    args=[_load("buf")],
                    keywords=[],
                )
            )
        )

        render = ast.FunctionDef(
            name="render",
            args=ast.arguments(
                posonlyargs=[],
                args=[ast.arg(arg="ctx"), ast.arg(arg="rt")],
                kwonlyargs=[],
                kw_defaults=[],
                defaults=[],
            ),
            body=body,
            decorator_list=[],
            returns=None,
            type_params=[],
        )
        name_assign = ast.Assign(
            targets=[ast.Name(id="TEMPLATE_NAME", ctx=ast.Store())],
            value=ast.Constant(value=node.name),
        )
        return ast.Module(body=[name_assign, render], type_ignores=[])

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _compile_node(self, node: Node) -> ast.stmt:
        handler = self._node_dispatch.get(type(node))
        if handler is None:
            raise NotImplementedError(f"Cannot compile node {type(node).__name__}")
        return handler(node)

    def _emit_output(self, value_expr: ast.expr) -> ast.stmt:
        return ast.Expr(value=ast.Call(func=_load("_append"), args=[value_expr], keywords=[]))

    def _compile_data(self, node: Data) -> ast.stmt:
        return self._emit_output(ast.Constant(value=node.value))

    def _compile_output(self, node: Output) -> ast.stmt:
        value = self._compile_expr(node.expr)
        return self._emit_output(ast.Call(func=_load("_str"), args=[value], keywords=[]))

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _compile_expr(self, node: Expr, soft: bool = False) -> ast.expr:
        handler = self._expr_dispatch.get(type(node))
        if handler is None:
            raise NotImplementedError(f"Cannot compile expression {type(node).__name__}")
        return handler(node, soft)

    def _compile_const(self, node: Const, soft: bool) -> ast.expr:
        return ast.Constant(value=node.value)

    def _compile_name(self, node: Name, soft: bool) -> ast.expr:
        return _rt_call(
            "lookup",
            _load("ctx"),
            ast.Constant(value=node.name),
            ast.Constant(value=node.lineno),
            ast.Constant(value=soft),
        )

    def _compile_getattr(self, node: Getattr, soft: bool) -> ast.expr:
        return _rt_call(
            "getattr",
            self._compile_expr(node.obj, soft),
            ast.Constant(value=node.attr),
            ast.Constant(value=node.lineno),
            ast.Constant(value=soft),
        )

    def _compile_func_call(self, node: FuncCall, soft: bool) -> ast.expr:
        args = [self._compile_expr(arg) for arg in node.args]
        return _rt_call("call_function", ast.Constant(value=node.name), *args)

    def _compile_filter(self, node: Filter, soft: bool) -> ast.expr:
        args = [self._compile_expr(arg) for arg in node.args]
        return _rt_call(
            "call_filter",
            ast.Constant(value=node.name),
            self._compile_expr(node.value, soft or node.name in _SOFT_FILTERS),
            *args,
        )

    def _compile_test(self, node: Test, soft: bool) -> ast.expr:
        operand = self._compile_expr(node.value, soft or node.name in _SOFT_TESTS)
        args = [self._compile_expr(arg) for arg in node.args]
        result: ast.expr = _rt_call("call_test", ast.Constant(value=node.name), operand, *args)
        if node.negated:
            result = ast.UnaryOp(op=ast.Not(), operand=result)
        return result
