# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Override directives in patch source.

A directive marks the next function definition of the patch as an override of
an existing function of the target, and says what happens to the original:

    @override
    def f(a, b): ...                      # original f/2 is dropped

    @override(original={"rename_to": "f_v1"})
    def f(a, b):                          # original kept as f_v1/2
        return f_v1(a, b) * 2

    override(original=dict(rename_to="f_v1", exported=True))
    def f(a, b): ...                      # standalone marker, f_v1 exported

Directives are metadata: they are stripped before the patch is compiled.
"""

from __future__ import annotations

import ast
import copy
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Union

from hotpatch.core.signature import Signature, signature_of
from hotpatch.errors import InvalidDirective
from hotpatch.ir.nodes import literal_exports

logger = logging.getLogger(__name__)

DIRECTIVE_NAME = "override"
_TOP_LEVEL_OPTIONS = frozenset({"original"})
_ORIGINAL_OPTIONS = frozenset({"rename_to", "exported"})


@dataclass(frozen=True)
class OverrideDirective:
	"""Validated options of one directive: what happens to the overridden original."""

	rename_to: str | None = None
	exported: bool = False


@dataclass(frozen=True)
class DirectiveMarker:
	"""A directive occurrence in the flattened patch node sequence."""

	expr: ast.expr
	# Name of the class it decorates; directives only apply to functions.
	decorates: str | None = None

	@property
	def source(self) -> str:
		return ast.unparse(self.expr)


PatchNode = Union[ast.stmt, DirectiveMarker]
NameMapping = dict[Signature, OverrideDirective]
VisibilityMap = dict[Signature, bool]


def _is_directive(expr: ast.expr) -> bool:
	if isinstance(expr, ast.Call):
		expr = expr.func
	return isinstance(expr, ast.Name) and expr.id == DIRECTIVE_NAME


def flatten_nodes(body: Iterable[ast.stmt]) -> list[PatchNode]:
	"""
	Turn patch statements into the directive fold input.

	`@override` decorators on a function become markers placed before the
	function (which keeps its other decorators); a standalone `override(...)`
	expression statement is a marker on its own. A directive on a class
	becomes a marker that never resolves.
	"""
	out: list[PatchNode] = []
	for stmt in body:
		if isinstance(stmt, ast.Expr) and _is_directive(stmt.value):
			out.append(DirectiveMarker(stmt.value))
		elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)) and any(
			_is_directive(d) for d in stmt.decorator_list
		):
			fn = copy.copy(stmt)
			fn.decorator_list = [d for d in stmt.decorator_list if not _is_directive(d)]
			out.extend(DirectiveMarker(d) for d in stmt.decorator_list if _is_directive(d))
			out.append(fn)
		elif isinstance(stmt, ast.ClassDef) and any(_is_directive(d) for d in stmt.decorator_list):
			cls = copy.copy(stmt)
			cls.decorator_list = [d for d in stmt.decorator_list if not _is_directive(d)]
			out.extend(DirectiveMarker(d, decorates=stmt.name) for d in stmt.decorator_list if _is_directive(d))
			out.append(cls)
		else:
			out.append(stmt)
	return out


def _literal(expr: ast.expr, key: str) -> Any:
	try:
		return ast.literal_eval(expr)
	except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
		raise InvalidDirective("invalid_options", (key,), "option values must be literals") from None


def _option_pairs(expr: ast.expr, key: str) -> Iterator[tuple[str, ast.expr]]:
	"""Yield `(name, value_expr)` of a dict display or a `dict(...)` call."""
	if isinstance(expr, ast.Dict):
		for k, v in zip(expr.keys, expr.values):
			if k is None:
				raise InvalidDirective("invalid_options", (key,), "`**` unpacking is not allowed in options")
			name = _literal(k, key)
			if not isinstance(name, str):
				raise InvalidDirective("invalid_options", (key,), "option names must be strings")
			yield name, v
		return
	if isinstance(expr, ast.Call) and isinstance(expr.func, ast.Name) and expr.func.id == "dict" and not expr.args:
		for kw in expr.keywords:
			if kw.arg is None:
				raise InvalidDirective("invalid_options", (key,), "`**` unpacking is not allowed in options")
			yield kw.arg, kw.value
		return
	raise InvalidDirective("invalid_options", (key,), "expected a dict display or dict(...) call")


def _validate_original(expr: ast.expr) -> OverrideDirective:
	values: dict[str, Any] = {}
	unknown: list[str] = []
	for name, value in _option_pairs(expr, "original"):
		if name not in _ORIGINAL_OPTIONS:
			unknown.append(name)
			continue
		values[name] = _literal(value, name)
	if unknown:
		raise InvalidDirective("invalid_options", tuple(unknown))

	rename_to = values.get("rename_to")
	if rename_to is not None and not (isinstance(rename_to, str) and rename_to.isidentifier()):
		raise InvalidDirective("invalid_options", ("rename_to",), "rename_to must be an identifier or None")
	exported = values.get("exported", False)
	if not isinstance(exported, bool):
		raise InvalidDirective("invalid_options", ("exported",), "exported must be a bool")
	return OverrideDirective(rename_to=rename_to, exported=exported)


def validate_directive(marker: DirectiveMarker) -> OverrideDirective:
	"""
	Validate a directive's options against
	`{original: {rename_to: str | None = None, exported: bool = False}}`.
	"""
	expr = marker.expr
	if not isinstance(expr, ast.Call):
		return OverrideDirective()
	if expr.args:
		raise InvalidDirective("invalid_options", ("<positional>",), "options must be passed by keyword")
	unknown = [kw.arg or "**" for kw in expr.keywords if kw.arg not in _TOP_LEVEL_OPTIONS]
	if unknown:
		raise InvalidDirective("invalid_options", tuple(unknown))
	if not expr.keywords:
		return OverrideDirective()
	return _validate_original(expr.keywords[0].value)


def parse_override_mappings(nodes: Iterable[PatchNode]) -> NameMapping:
	"""
	Fold the flattened patch nodes into `signature -> directive`.

	A directive stays pending until the next function definition claims it;
	other statements pass through. A second directive while one is pending, or
	a directive left pending at the end, is an `unresolved_override`.
	"""
	mappings: NameMapping = {}
	pending: OverrideDirective | None = None
	for node in nodes:
		if isinstance(node, DirectiveMarker):
			if pending is not None:
				raise InvalidDirective(
					"unresolved_override",
					message=f"`{node.source}` found following an unresolved override",
				)
			if node.decorates is not None:
				raise InvalidDirective(
					"unresolved_override",
					message=f"`{node.source}` applied to class {node.decorates}, not a function",
				)
			pending = validate_directive(node)
		elif pending is not None and isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
			sig = signature_of(node)
			mappings[sig] = pending
			logger.debug("override %s: %s", sig, pending)
			pending = None
	if pending is not None:
		raise InvalidDirective("unresolved_override", message="override found without a function")
	return mappings


def strip_directives(nodes: Iterable[PatchNode]) -> list[ast.stmt]:
	"""Return the patch statements with every directive marker removed."""
	return [n for n in nodes if not isinstance(n, DirectiveMarker)]


def scan_visibility(stmts: Iterable[ast.stmt]) -> VisibilityMap:
	"""
	Record whether each function the patch defines is public.

	A literal `__all__` in the patch decides explicitly; without one, names
	with a leading underscore are private.
	"""
	stmts = list(stmts)
	explicit: set[str] | None = None
	for stmt in stmts:
		names = literal_exports(stmt)
		if names is not None:
			explicit = set(names)
	visibility: VisibilityMap = {}
	for stmt in stmts:
		if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
			if explicit is not None:
				visibility[signature_of(stmt)] = stmt.name in explicit
			else:
				visibility[signature_of(stmt)] = not stmt.name.startswith("_")
	return visibility


__all__ = [
	"DirectiveMarker",
	"NameMapping",
	"OverrideDirective",
	"VisibilityMap",
	"flatten_nodes",
	"parse_override_mappings",
	"scan_visibility",
	"strip_directives",
	"validate_directive",
]
