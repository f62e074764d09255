# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Compile the patch against the target's retained functions.

The patch is wrapped in a throwaway unit together with one placeholder stub per
retained function, so references such as `f_v1(a, b)` resolve. The stubs are
never kept: after compilation only the patch's own declarations are taken out
of the synthetic unit's IR.

The synthetic unit gets a fresh uuid-based name per call and is never imported,
executed, or recorded in the code store.
"""

from __future__ import annotations

import ast
import logging
import uuid

from hotpatch.compiler import compile_source
from hotpatch.core.signature import REFLECTION_SIGNATURES, Signature, signature_of
from hotpatch.errors import SynthesisError
from hotpatch.ir.nodes import Attribute, Declaration, Function, Statement, Unit
from hotpatch.ir.object_code import decode_unit

logger = logging.getLogger(__name__)

SYNTHETIC_PREFIX = "hotpatch._synthetic_"
STUB_MESSAGE = "hotpatch stub invoked"


def synthetic_unit_name() -> str:
	return f"{SYNTHETIC_PREFIX}{uuid.uuid4().hex}"


def existing_signatures(unit: Unit) -> list[Signature]:
	"""Signatures of the unit's functions, reflection hooks excluded."""
	return [sig for sig in unit.signatures() if sig not in REFLECTION_SIGNATURES]


def make_stub(sig: Signature) -> ast.FunctionDef:
	params = ", ".join(f"_{i}" for i in range(sig.arity))
	module = ast.parse(f"def {sig.name}({params}):\n\traise NotImplementedError({STUB_MESSAGE!r})\n")
	return module.body[0]  # type: ignore[return-value]


def stub_collisions(patch_stmts: list[ast.stmt], stub_sigs: list[Signature]) -> list[str]:
	"""Patch defs, decorated or not, that reuse the name of a retained function."""
	stubs = {sig.name: sig for sig in stub_sigs}
	out: list[str] = []
	for stmt in patch_stmts:
		if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)) and stmt.name in stubs:
			out.append(f"function {stubs[stmt.name]} redefined (previously {signature_of(stmt)})")
	return out


def compile_patch(patch_stmts: list[ast.stmt], unit: Unit, source_tag: str) -> list[Declaration]:
	"""
	Compile the patch statements next to stubs of `unit`'s functions.

	Returns the compiled declarations to inject: every function that is not a
	stub plus every other patch statement, in patch order. The patch's own
	unit attributes (docstring, `__all__`) are not injected.
	"""
	stub_sigs = existing_signatures(unit)
	collisions = stub_collisions(patch_stmts, stub_sigs)
	if collisions:
		raise SynthesisError("patch", collisions)
	module = ast.Module(body=list(patch_stmts) + [make_stub(s) for s in stub_sigs], type_ignores=[])
	name = synthetic_unit_name()
	known = None if unit.has_star_import() else unit.bound_names()
	logger.debug("synthesizing %s for %s with %d stub(s)", name, unit.name, len(stub_sigs))

	result = compile_source(
		name,
		module,
		source_tag,
		debug_info=True,
		ignore_module_conflict=True,
		no_warn_undefined=True,
		infer_signatures=False,
		known_names=known,
	)
	if not result.ok:
		raise SynthesisError("patch", result.errors() or result.warnings())

	compiled = decode_unit(name, result.image).unit
	stubs = set(stub_sigs)
	injected: list[Declaration] = []
	for decl in compiled.declarations:
		if isinstance(decl, Function):
			if decl.signature not in stubs:
				injected.append(decl)
		elif isinstance(decl, Statement):
			injected.append(decl)
		elif not isinstance(decl, Attribute):
			raise TypeError(f"unknown declaration kind {type(decl).__name__}")
	return injected


__all__ = ["STUB_MESSAGE", "SYNTHETIC_PREFIX", "compile_patch", "existing_signatures", "make_stub", "stub_collisions", "synthetic_unit_name"]
