# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Declaration-level IR of a compiled unit.

A unit is an ordered list of declarations, one per top-level statement of the
module. `Declaration` is a closed variant:

- `Function`: a module-level `def`/`async def`, keyed by its `Signature`.
  Only the last def of a name is a `Function`; earlier ones are statements,
- `Attribute`: unit metadata (`doc`: the module docstring, `export`: a literal
  `__all__`),
- `Statement`: any other top-level statement (imports, assignments, classes,
  control flow). Python executes these in order, so their position matters.

Rewrites never mutate a declaration's AST in place; they build new
declarations over copied nodes.
"""

from __future__ import annotations

import ast
import copy
from dataclasses import dataclass, field

from hotpatch.core.signature import Signature, signature_of

EXPORT_NAME = "__all__"


class Declaration:
	"""Base class of the IR declaration variants."""

	node: ast.stmt


@dataclass(frozen=True, eq=False)
class Function(Declaration):
	name: str
	arity: int
	node: ast.FunctionDef | ast.AsyncFunctionDef

	@property
	def signature(self) -> Signature:
		return Signature(self.name, self.arity)

	def renamed(self, new_name: str) -> "Function":
		"""Return the same function (body and decorators preserved) under `new_name`."""
		node = copy.deepcopy(self.node)
		node.name = new_name
		return Function(name=new_name, arity=self.arity, node=node)


@dataclass(frozen=True, eq=False)
class Attribute(Declaration):
	name: str  # "doc" | "export"
	node: ast.stmt

	@property
	def value(self) -> str | list[str]:
		if self.name == "doc":
			return self.node.value.value  # type: ignore[attr-defined]
		return _literal_names(self.node.value)  # type: ignore[attr-defined, return-value]


@dataclass(frozen=True, eq=False)
class Statement(Declaration):
	node: ast.stmt


def _literal_names(value: ast.expr | None) -> list[str] | None:
	"""Return the names of a literal list/tuple of strings, else None."""
	if not isinstance(value, (ast.List, ast.Tuple)):
		return None
	names: list[str] = []
	for elt in value.elts:
		if not (isinstance(elt, ast.Constant) and isinstance(elt.value, str)):
			return None
		names.append(elt.value)
	return names


def literal_exports(stmt: ast.stmt) -> list[str] | None:
	"""Return the names of a literal `__all__ = [...]` statement, else None."""
	if isinstance(stmt, ast.Assign):
		if len(stmt.targets) != 1:
			return None
		target = stmt.targets[0]
	elif isinstance(stmt, ast.AnnAssign):
		target = stmt.target
	else:
		return None
	if not (isinstance(target, ast.Name) and target.id == EXPORT_NAME):
		return None
	return _literal_names(stmt.value)


def _is_overload(node: ast.FunctionDef | ast.AsyncFunctionDef) -> bool:
	for dec in node.decorator_list:
		if isinstance(dec, ast.Name) and dec.id == "overload":
			return True
		if isinstance(dec, ast.Attribute) and dec.attr == "overload":
			return True
	return False


def classify(stmt: ast.stmt, index: int) -> Declaration:
	"""Wrap one top-level statement in its declaration variant."""
	# `@overload` stubs only describe the real definition that follows them.
	if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)) and not _is_overload(stmt):
		sig = signature_of(stmt)
		return Function(name=sig.name, arity=sig.arity, node=stmt)
	if index == 0 and isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Constant) and isinstance(stmt.value.value, str):
		return Attribute(name="doc", node=stmt)
	if literal_exports(stmt) is not None:
		return Attribute(name="export", node=stmt)
	if isinstance(stmt, ast.stmt):
		return Statement(node=stmt)
	raise TypeError(f"not a statement: {type(stmt).__name__}")


def statement_bindings(stmt: ast.stmt) -> list[str]:
	"""
	Names a top-level statement binds in the module namespace.

	Nested function/class/lambda bodies are not entered; a `def`/`class` binds
	only its own name.
	"""
	out: list[str] = []

	def visit(node: ast.AST) -> None:
		if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
			out.append(node.name)
			return
		if isinstance(node, ast.Lambda):
			return
		if isinstance(node, (ast.Import, ast.ImportFrom)):
			for alias in node.names:
				if alias.name == "*":
					continue
				out.append(alias.asname or alias.name.split(".", 1)[0])
			return
		if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
			out.append(node.id)
		elif isinstance(node, ast.ExceptHandler) and node.name:
			out.append(node.name)
		elif isinstance(node, (ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)):
			# Comprehension targets are local; only the outermost iterable is evaluated here.
			visit(node.generators[0].iter)
			return
		for child in ast.iter_child_nodes(node):
			visit(child)

	visit(stmt)
	return out


def has_star_import(stmt: ast.stmt) -> bool:
	return any(
		isinstance(node, ast.ImportFrom) and any(alias.name == "*" for alias in node.names)
		for node in ast.walk(stmt)
	)


@dataclass
class Unit:
	"""
	An ordered declaration list for one module.

	Invariants (see `validate`): at most one function per name, at most one
	export attribute.
	"""

	name: str
	declarations: list[Declaration]
	type_ignores: list[ast.type_ignore] = field(default_factory=list)

	@classmethod
	def from_module(cls, name: str, module: ast.Module) -> "Unit":
		decls = [classify(stmt, i) for i, stmt in enumerate(module.body)]
		# The last literal `__all__` is the one in effect; earlier ones stay plain statements.
		export_idx = [i for i, d in enumerate(decls) if isinstance(d, Attribute) and d.name == "export"]
		for i in export_idx[:-1]:
			decls[i] = Statement(node=decls[i].node)
		# Likewise only the last def of a name binds it (`@fmt.register def _` chains).
		last = {d.name: i for i, d in enumerate(decls) if isinstance(d, Function)}
		for i, d in enumerate(decls):
			if isinstance(d, Function) and last[d.name] != i:
				decls[i] = Statement(node=d.node)
		return cls(name=name, declarations=decls, type_ignores=list(module.type_ignores))

	def to_module(self) -> ast.Module:
		return ast.Module(body=[d.node for d in self.declarations], type_ignores=list(self.type_ignores))

	def functions(self) -> list[Function]:
		return [d for d in self.declarations if isinstance(d, Function)]

	def signatures(self) -> list[Signature]:
		return [f.signature for f in self.functions()]

	def export_attribute(self) -> Attribute | None:
		for decl in self.declarations:
			if isinstance(decl, Attribute) and decl.name == "export":
				return decl
		return None

	def exports(self) -> list[str] | None:
		"""The literal `__all__` of the unit, or None if it has none."""
		attr = self.export_attribute()
		if attr is None:
			return None
		return list(attr.value)

	def bound_names(self) -> list[str]:
		"""
		Names bound by everything except module-level functions.

		This includes names that functions assign through a `global` statement.
		"""
		out: list[str] = []
		for decl in self.declarations:
			if isinstance(decl, Function):
				for node in ast.walk(decl.node):
					if isinstance(node, ast.Global):
						out.extend(node.names)
			elif isinstance(decl, Attribute):
				if decl.name == "export":
					out.append(EXPORT_NAME)
			elif isinstance(decl, Statement):
				out.extend(statement_bindings(decl.node))
			else:
				raise TypeError(f"unknown declaration kind {type(decl).__name__}")
		return list(dict.fromkeys(out))

	def implicit_exports(self) -> list[str]:
		"""Public names a star import would see if the unit had no `__all__`."""
		names: list[str] = []
		for decl in self.declarations:
			if isinstance(decl, Function):
				names.append(decl.name)
			elif isinstance(decl, Statement):
				names.extend(statement_bindings(decl.node))
			elif not isinstance(decl, Attribute):
				raise TypeError(f"unknown declaration kind {type(decl).__name__}")
		return [n for n in dict.fromkeys(names) if not n.startswith("_")]

	def has_star_import(self) -> bool:
		return any(isinstance(d, Statement) and has_star_import(d.node) for d in self.declarations)

	def first_function_index(self) -> int:
		"""Index of the first function declaration (len(declarations) if none)."""
		for i, decl in enumerate(self.declarations):
			if isinstance(decl, Function):
				return i
		return len(self.declarations)

	def with_exports(self, names: list[str]) -> "Unit":
		"""
		Return a copy whose export attribute lists exactly `names`.

		An existing export attribute is replaced in place; otherwise one is
		inserted before the first function.
		"""
		value = ast.List(elts=[ast.Constant(value=n) for n in names], ctx=ast.Load())
		target = ast.Name(id=EXPORT_NAME, ctx=ast.Store())
		decls = list(self.declarations)
		current = self.export_attribute()
		if current is not None:
			old = current.node
			if isinstance(old, ast.AnnAssign):
				new: ast.stmt = ast.AnnAssign(target=target, annotation=copy.deepcopy(old.annotation), value=value, simple=1)
			else:
				new = ast.Assign(targets=[target], value=value)
			ast.copy_location(new, old)
			decls[decls.index(current)] = Attribute(name="export", node=new)
		else:
			idx = self.first_function_index()
			new = ast.Assign(targets=[target], value=value)
			if idx < len(decls):
				ast.copy_location(new, decls[idx].node)
			decls.insert(idx, Attribute(name="export", node=new))
		return Unit(name=self.name, declarations=decls, type_ignores=list(self.type_ignores))

	def validate(self) -> list[str]:
		"""Return invariant violations (empty when the unit is well formed)."""
		problems: list[str] = []
		seen: dict[str, Signature] = {}
		for fn in self.functions():
			prev = seen.get(fn.name)
			if prev is not None:
				problems.append(f"function {fn.signature} redefined (previously {prev})")
			seen[fn.name] = fn.signature
		exports = [d for d in self.declarations if isinstance(d, Attribute) and d.name == "export"]
		if len(exports) > 1:
			problems.append(f"{EXPORT_NAME} defined {len(exports)} times")
		return problems


__all__ = [
	"Attribute",
	"Declaration",
	"Function",
	"Statement",
	"Unit",
	"classify",
	"literal_exports",
	"statement_bindings",
]
