# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Compiler facade: IR in, unit image (or diagnostics) out.

CPython's `compile()` does the real work. On top of it the facade adds the
unit-level checks a module compiler is expected to make:

- a module-level function name defined twice is an error,
- names that nothing binds are errors (`undefined function g/2` for bare
  calls, `undefined name 'x'` otherwise),
- `mod.attr` on an already-loaded module that lacks `attr` is a warning,
- with signature inference, bare calls whose positional count cannot match the
  callee are warnings.

Two entry points mirror the two ways a unit gets compiled:
`compile_source` builds a whole new unit (the patch synthesis path) and
`compile_forms` recompiles an already-formed declaration list with replayed
options (the final merge path).

Diagnostic capture relies on `warnings.catch_warnings`, which mutates
process-global state; every capture window is serialised behind one lock.
"""

from __future__ import annotations

import __future__
import ast
import builtins
import logging
import marshal
import symtable
import sys
import threading
import warnings
from dataclasses import dataclass
from types import CodeType
from typing import Any, Iterable, Iterator, Mapping

from hotpatch.container.unit_image import (
	CODE_CHUNK,
	COMPILE_INFO_CHUNK,
	IR_CHUNK,
	canonical_json_bytes,
	write_unit_image,
)
from hotpatch.core.diagnostics import Diagnostic, Span
from hotpatch.core.signature import Signature, signature_of
from hotpatch.ir.ast_codec import IR_FORMAT, encode_body, encode_node
from hotpatch.ir.nodes import Unit

logger = logging.getLogger(__name__)

DEBUG_INFO = "debug_info"
WARNINGS_AS_ERRORS = "warnings_as_errors"

_SWITCHES: dict[str, int] = {
	"only_ast": ast.PyCF_ONLY_AST,
	"type_comments": ast.PyCF_TYPE_COMMENTS,
	"allow_top_level_await": ast.PyCF_ALLOW_TOP_LEVEL_AWAIT,
}
# These switches change what compile() returns or only affect parsing text,
# so they are dropped when compiling an already-formed tree.
FORMS_INCOMPATIBLE_FLAGS = frozenset(_SWITCHES)
_OPTION_FLAGS = frozenset({DEBUG_INFO, WARNINGS_AS_ERRORS})

_MODULE_DUNDERS = frozenset(
	{
		"__name__",
		"__file__",
		"__doc__",
		"__spec__",
		"__loader__",
		"__package__",
		"__builtins__",
		"__cached__",
		"__path__",
		"__annotations__",
		"__all__",
	}
)

_CAPTURE_LOCK = threading.Lock()


@dataclass(frozen=True)
class CompileOptions:
	"""
	Options a unit was compiled with; replayed when the unit is recompiled.

	`flags` holds option names: `debug_info`, `warnings_as_errors`, compiler
	switches (`only_ast`, `type_comments`, `allow_top_level_await`) and
	`__future__` feature names.
	"""

	flags: tuple[str, ...] = ()
	optimize: int = -1

	@property
	def debug_info(self) -> bool:
		return DEBUG_INFO in self.flags

	@property
	def warnings_as_errors(self) -> bool:
		return WARNINGS_AS_ERRORS in self.flags

	def with_flags(self, *names: str) -> "CompileOptions":
		return CompileOptions(flags=tuple(dict.fromkeys(self.flags + names)), optimize=self.optimize)

	def without(self, names: Iterable[str]) -> "CompileOptions":
		drop = set(names)
		return CompileOptions(flags=tuple(f for f in self.flags if f not in drop), optimize=self.optimize)

	def to_json(self) -> dict[str, Any]:
		return {"flags": list(self.flags), "optimize": self.optimize}

	@classmethod
	def from_json(cls, obj: Mapping[str, Any]) -> "CompileOptions":
		if not isinstance(obj, Mapping):
			raise ValueError("compile options must be a JSON object")
		flags = obj.get("flags", [])
		optimize = obj.get("optimize", -1)
		if not isinstance(flags, list) or not all(isinstance(f, str) for f in flags):
			raise ValueError("compile options flags must be a list of strings")
		if not isinstance(optimize, int) or isinstance(optimize, bool):
			raise ValueError("compile options optimize must be an integer")
		return cls(flags=tuple(flags), optimize=optimize)

	def compiler_flags(self) -> tuple[int, list[str]]:
		"""Return the `compile()` flag bits and the option names we do not know."""
		bits = 0
		unknown: list[str] = []
		for name in self.flags:
			if name in _OPTION_FLAGS:
				continue
			if name in _SWITCHES:
				bits |= _SWITCHES[name]
			elif name in __future__.all_feature_names:
				bits |= getattr(__future__, name).compiler_flag
			else:
				unknown.append(name)
		return bits, unknown


@dataclass(frozen=True)
class CompileResult:
	"""Outcome of a compilation: an image on success, diagnostics either way."""

	image: bytes | None
	diagnostics: tuple[Diagnostic, ...] = ()
	module: ast.Module | None = None

	@property
	def ok(self) -> bool:
		return self.image is not None

	def errors(self) -> list[str]:
		return [d.message for d in self.diagnostics if d.is_error]

	def warnings(self) -> list[str]:
		return [d.message for d in self.diagnostics if not d.is_error]


def _compile_tree(module: ast.Module, filename: str, options: CompileOptions) -> tuple[CodeType | None, list[Diagnostic]]:
	bits, unknown = options.compiler_flags()
	diags = [
		Diagnostic(f"unknown compile option {name!r} ignored", severity="warning", span=Span(file=filename))
		for name in unknown
	]
	ast.fix_missing_locations(module)
	code: CodeType | None = None
	with _CAPTURE_LOCK:
		with warnings.catch_warnings(record=True) as caught:
			warnings.simplefilter("always")
			try:
				code = compile(module, filename, "exec", flags=bits, dont_inherit=True, optimize=options.optimize)
			except SyntaxError as err:
				diags.append(Diagnostic(err.msg, span=Span(file=filename, line=err.lineno, column=err.offset)))
			except (ValueError, TypeError) as err:
				# compile() rejects malformed trees with ValueError/TypeError.
				diags.append(Diagnostic(f"invalid IR: {err}", span=Span(file=filename)))
	for w in caught:
		diags.append(Diagnostic(str(w.message), severity="warning", span=Span(file=filename, line=w.lineno)))
	return code, diags


def _walk_tables(table: symtable.SymbolTable) -> Iterator[symtable.SymbolTable]:
	yield table
	for child in table.get_children():
		yield from _walk_tables(child)


def _undefined_names(module: ast.Module, filename: str, known_names: Iterable[str]) -> list[Diagnostic]:
	if Unit.from_module("", module).has_star_import():
		return []
	try:
		top = symtable.symtable(ast.unparse(module), filename, "exec")
	except SyntaxError:
		return []

	bound = set(known_names) | set(dir(builtins)) | _MODULE_DUNDERS
	referenced: set[str] = set()
	for table in _walk_tables(top):
		for sym in table.get_symbols():
			name = sym.get_name()
			if table is top:
				if sym.is_assigned() or sym.is_imported() or sym.is_namespace():
					bound.add(name)
				elif sym.is_referenced():
					referenced.add(name)
			elif sym.is_declared_global() and sym.is_assigned():
				bound.add(name)
			elif sym.is_global() and sym.is_referenced():
				referenced.add(name)

	missing = sorted(referenced - bound)
	if not missing:
		return []
	first_use: dict[str, ast.AST] = {}
	call_arity: dict[str, int] = {}
	for node in ast.walk(module):
		if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load):
			first_use.setdefault(node.id, node)
		elif isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
			if not any(isinstance(a, ast.Starred) for a in node.args):
				call_arity.setdefault(node.func.id, len(node.args))

	out: list[Diagnostic] = []
	for name in missing:
		if name in call_arity:
			msg = f"undefined function {name}/{call_arity[name]}"
		else:
			msg = f"undefined name {name!r}"
		out.append(Diagnostic(msg, code="undefined", span=Span.from_node(first_use.get(name), filename)))
	return out


def _unknown_module_attributes(module: ast.Module, filename: str) -> list[Diagnostic]:
	imported: dict[str, str] = {}
	for stmt in module.body:
		if isinstance(stmt, ast.Import):
			for alias in stmt.names:
				if alias.asname:
					imported[alias.asname] = alias.name
				elif "." not in alias.name:
					imported[alias.name] = alias.name

	out: list[Diagnostic] = []
	seen: set[str] = set()
	for node in ast.walk(module):
		if not (isinstance(node, ast.Attribute) and isinstance(node.ctx, ast.Load) and isinstance(node.value, ast.Name)):
			continue
		mod_name = imported.get(node.value.id)
		mod = sys.modules.get(mod_name) if mod_name else None
		# Modules with a PEP 562 `__getattr__` resolve attributes lazily.
		if mod is None or hasattr(mod, "__getattr__") or hasattr(mod, node.attr):
			continue
		qual = f"{mod_name}.{node.attr}"
		if qual in seen:
			continue
		seen.add(qual)
		out.append(Diagnostic(f"undefined attribute {qual}", severity="warning", code="undefined", span=Span.from_node(node, filename)))
	return out


def _call_arity_mismatches(module: ast.Module, filename: str) -> list[Diagnostic]:
	ranges = {}
	for fn in Unit.from_module("", module).functions():
		args = fn.node.args
		positional = len(args.posonlyargs) + len(args.args)
		upper = None if args.vararg is not None else positional
		ranges[fn.name] = (positional - len(args.defaults), upper, fn.signature)

	out: list[Diagnostic] = []
	for node in ast.walk(module):
		if not (isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id in ranges):
			continue
		if node.keywords or any(isinstance(a, ast.Starred) for a in node.args):
			continue
		lower, upper, sig = ranges[node.func.id]
		count = len(node.args)
		if count < lower or (upper is not None and count > upper):
			out.append(
				Diagnostic(
					f"call to {node.func.id}/{count} does not match {sig}",
					severity="warning",
					code="arity",
					span=Span.from_node(node, filename),
				)
			)
	return out


def _redefinitions(unit: Unit, filename: str) -> list[Diagnostic]:
	return [Diagnostic(problem, code="redefinition", span=Span(file=filename)) for problem in unit.validate()]


def _plain_redefinitions(module: ast.Module, filename: str) -> list[Diagnostic]:
	"""
	Report an undecorated top-level def replacing an earlier undecorated one.

	Decorated repeats (`@fmt.register def _`, `@overload`) are registrations,
	not mistakes.
	"""
	out: list[Diagnostic] = []
	seen: dict[str, Signature] = {}
	for stmt in module.body:
		if not isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)) or stmt.decorator_list:
			continue
		sig = signature_of(stmt)
		prev = seen.get(stmt.name)
		if prev is not None:
			out.append(
				Diagnostic(f"function {sig} redefined (previously {prev})", code="redefinition", span=Span.from_node(stmt, filename))
			)
		seen[stmt.name] = sig
	return out



def _finish(
	unit_name: str,
	module: ast.Module,
	filename: str,
	options: CompileOptions,
	code: CodeType | None,
	diags: list[Diagnostic],
) -> CompileResult:
	failed = code is None or any(d.is_error for d in diags)
	if not failed and options.warnings_as_errors and diags:
		failed = True
	for d in diags:
		logger.debug("%s: %s", unit_name, d.render())
	if failed:
		logger.debug("compilation of %s failed with %d diagnostic(s)", unit_name, len(diags))
		return CompileResult(image=None, diagnostics=tuple(diags), module=module)

	assert code is not None
	chunks = {
		CODE_CHUNK: marshal.dumps(code),
		COMPILE_INFO_CHUNK: canonical_json_bytes({"options": options.to_json(), "source": filename, "unit": unit_name}),
	}
	if options.debug_info:
		chunks[IR_CHUNK] = canonical_json_bytes(
			{
				"format": IR_FORMAT,
				"body": encode_body(module.body),
				"type_ignores": encode_node(module.type_ignores),
			}
		)
	return CompileResult(image=write_unit_image(chunks), diagnostics=tuple(diags), module=module)


def compile_source(
	unit_name: str,
	module: ast.Module,
	filename: str,
	*,
	debug_info: bool = True,
	ignore_module_conflict: bool = False,
	no_warn_undefined: bool = False,
	infer_signatures: bool = True,
	warnings_as_errors: bool = False,
	known_names: Iterable[str] | None = (),
) -> CompileResult:
	"""
	Compile a complete new unit named `unit_name`.

	`known_names` are treated as bound in the unit's namespace even though the
	unit does not bind them itself; pass None to skip undefined-name checking
	altogether (the namespace is not statically known).

	Nothing is imported, executed or registered: the result only carries the
	image bytes.
	"""
	flags: list[str] = []
	if debug_info:
		flags.append(DEBUG_INFO)
	if warnings_as_errors:
		flags.append(WARNINGS_AS_ERRORS)
	options = CompileOptions(flags=tuple(flags))

	if not ignore_module_conflict and unit_name in sys.modules:
		diag = Diagnostic(f"module {unit_name} is already loaded", code="conflict", span=Span(file=filename))
		return _finish(unit_name, module, filename, options, None, [diag])

	code, diags = _compile_tree(module, filename, options)
	if code is not None:
		diags.extend(_plain_redefinitions(module, filename))
		if known_names is not None:
			diags.extend(_undefined_names(module, filename, known_names))
		if not no_warn_undefined:
			diags.extend(_unknown_module_attributes(module, filename))
		if infer_signatures:
			diags.extend(_call_arity_mismatches(module, filename))
	return _finish(unit_name, module, filename, options, code, diags)


def compile_forms(unit: Unit, options: CompileOptions, source_tag: str) -> CompileResult:
	"""
	Compile an already-formed declaration list with `options` replayed.

	Flags incompatible with compiling a tree are filtered out first.
	"""
	options = options.without(FORMS_INCOMPATIBLE_FLAGS)
	diags = _redefinitions(unit, source_tag)
	module = unit.to_module()
	code, compile_diags = _compile_tree(module, source_tag, options)
	diags.extend(compile_diags)
	return _finish(unit.name, module, source_tag, options, code, diags)


__all__ = [
	"CompileOptions",
	"CompileResult",
	"DEBUG_INFO",
	"FORMS_INCOMPATIBLE_FLAGS",
	"WARNINGS_AS_ERRORS",
	"compile_forms",
	"compile_source",
]
