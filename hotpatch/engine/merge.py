# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Merge the rewritten target with the compiled patch and recompile the result.

Export bookkeeping works on names (Python exports names, not signatures):

- an original export overridden without rename, or given an explicit
  visibility by the patch, is dropped,
- every function the patch marks public is added,
- rename targets whose directive asked for `exported` are added, unless the
  patch itself declared a visibility for that name.

A target without a literal `__all__` starts from the names its star import
would expose. It only gains an `__all__` when the recomputed list differs
from what the naming convention already produces.
"""

from __future__ import annotations

import ast
import logging

from hotpatch.compiler import CompileOptions
from hotpatch.engine.directives import NameMapping, VisibilityMap
from hotpatch.ir.nodes import Attribute, Declaration, Statement, Unit
from hotpatch.ir.object_code import encode_unit

logger = logging.getLogger(__name__)


def recompute_exports(original: list[str], mappings: NameMapping, visibility: VisibilityMap) -> list[str]:
	"""Return the export list of the merged unit, keeping the original order where possible."""
	declared = {sig.name for sig in visibility}
	public = [sig.name for sig, is_public in visibility.items() if is_public]
	# A dropped name the patch re-declares public keeps its original position.
	removed = (declared | {sig.name for sig, d in mappings.items() if d.rename_to is None}) - set(public)
	names = [n for n in original if n not in removed] + public
	for directive in mappings.values():
		if directive.rename_to is not None and directive.exported and directive.rename_to not in declared:
			names.append(directive.rename_to)
	return list(dict.fromkeys(names))


def _is_future_import(decl: Declaration) -> bool:
	return isinstance(decl, Statement) and isinstance(decl.node, ast.ImportFrom) and decl.node.module == "__future__"


def _future_block_end(decls: list[Declaration]) -> int:
	"""Index just past the docstring and the leading `__future__` imports."""
	idx = 1 if decls and isinstance(decls[0], Attribute) and decls[0].name == "doc" else 0
	while idx < len(decls) and _is_future_import(decls[idx]):
		idx += 1
	return idx


def splice(unit: Unit, injected: list[Declaration]) -> Unit:
	"""
	Insert `injected` at the position of the unit's first function.

	Injected `__future__` imports go to the unit's leading block instead, the
	only place Python accepts them.
	"""
	future = [d for d in injected if _is_future_import(d)]
	rest = [d for d in injected if not _is_future_import(d)]
	decls = list(unit.declarations)
	if future:
		at = _future_block_end(decls)
		decls = decls[:at] + future + decls[at:]
	idx = Unit(name=unit.name, declarations=decls).first_function_index()
	decls = decls[:idx] + rest + decls[idx:]
	return Unit(name=unit.name, declarations=decls, type_ignores=list(unit.type_ignores))


def merge_unit(
	original: Unit,
	rewritten: Unit,
	injected: list[Declaration],
	mappings: NameMapping,
	visibility: VisibilityMap,
) -> Unit:
	exports = original.exports()
	if exports is not None:
		merged = splice(rewritten.with_exports(recompute_exports(exports, mappings, visibility)), injected)
	else:
		merged = splice(rewritten, injected)
		implicit = merged.implicit_exports()
		hidden = {d.rename_to for d in mappings.values() if d.rename_to is not None and not d.exported}
		names = recompute_exports([n for n in implicit if n not in hidden], mappings, visibility)
		if set(names) != set(implicit):
			logger.debug("%s: adding explicit exports %s", original.name, names)
			merged = splice(rewritten.with_exports(names), injected)
	logger.debug(
		"%s: merged %d injected declaration(s), %d function(s) total",
		original.name,
		len(injected),
		len(merged.functions()),
	)
	return merged


def compile_final(unit: Unit, options: CompileOptions, source_tag: str) -> bytes:
	"""Compile the merged unit with the target's own options replayed."""
	return encode_unit(unit, options, source_tag)


__all__ = ["compile_final", "merge_unit", "recompute_exports", "splice"]
