# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import ast
import textwrap

import pytest

from hotpatch.compiler import CompileOptions
from hotpatch.core.signature import Signature
from hotpatch.engine.directives import OverrideDirective
from hotpatch.engine.merge import compile_final, merge_unit, recompute_exports, splice
from hotpatch.errors import SynthesisError
from hotpatch.ir.nodes import Unit


def _unit(src: str) -> Unit:
	return Unit.from_module("target", ast.parse(textwrap.dedent(src)))


def test_exports_drop_overridden_without_rename_and_keep_order() -> None:
	names = recompute_exports(
		["a", "f", "b"],
		{Signature("f", 2): OverrideDirective()},
		{Signature("f", 2): True, Signature("new", 0): True},
	)
	assert names == ["a", "f", "b", "new"]


def test_private_visibility_wins_over_original_membership() -> None:
	names = recompute_exports(["f", "g"], {Signature("g", 1): OverrideDirective()}, {Signature("g", 1): False})
	assert names == ["f"]


def test_exported_rename_target_is_added_unless_patch_declares_it() -> None:
	mappings = {Signature("f", 2): OverrideDirective(rename_to="f_v1", exported=True)}
	assert recompute_exports(["f"], mappings, {Signature("f", 2): True}) == ["f", "f_v1"]
	# The patch also defines f_v1 itself and keeps it private: its own visibility wins.
	visibility = {Signature("f", 2): True, Signature("f_v1", 2): False}
	assert recompute_exports(["f"], mappings, visibility) == ["f"]


def test_splice_inserts_at_first_function() -> None:
	unit = _unit('"""doc"""\nimport os\ndef a(): pass\ndef b(): pass\n')
	injected = _unit("def c(): pass\n").declarations
	out = splice(unit, injected)
	assert [getattr(d, "name", None) for d in out.declarations] == ["doc", None, "c", "a", "b"]


def test_splice_hoists_future_imports_to_the_leading_block() -> None:
	unit = _unit('"""doc"""\nfrom __future__ import division\nimport os\ndef a(): pass\n')
	injected = _unit("from __future__ import annotations\nimport sys\ndef c(x: Later): pass\n").declarations
	out = splice(unit, injected)
	assert out.declarations[0].name == "doc"
	assert [ast.unparse(d.node).splitlines()[0] for d in out.declarations[1:]] == [
		"from __future__ import division",
		"from __future__ import annotations",
		"import os",
		"import sys",
		"def c(x: Later):",
		"def a():",
	]
	assert compile_final(out, CompileOptions(), "<t>")


def test_merge_replaces_existing_all() -> None:
	original = _unit('__all__ = ["f"]\ndef f(a, b): return a + b\n')
	mappings = {Signature("f", 2): OverrideDirective(rename_to="f_v1")}
	rewritten = Unit(name="target", declarations=[original.declarations[0], original.functions()[0].renamed("f_v1")])
	injected = _unit("def f(a, b): return f_v1(a, b) * 2\n").declarations
	merged = merge_unit(original, rewritten, injected, mappings, {Signature("f", 2): True})
	assert merged.exports() == ["f"]
	assert [f.name for f in merged.functions()] == ["f", "f_v1"]


def test_merge_without_all_adds_one_only_when_needed() -> None:
	original = _unit("import json\ndef f(a): return a\n")
	injected = _unit("import math\ndef h(): return 1\n").declarations
	merged = merge_unit(original, original, injected, {}, {Signature("h", 0): True})
	assert merged.exports() is None

	mappings = {Signature("f", 1): OverrideDirective(rename_to="f_v1")}
	rewritten = Unit(name="target", declarations=[original.declarations[0], original.functions()[0].renamed("f_v1")])
	injected = _unit("def f(a): return f_v1(a)\n").declarations
	merged = merge_unit(original, rewritten, injected, mappings, {Signature("f", 1): True})
	assert merged.exports() == ["json", "f"]
	assert merged.declarations.index(merged.export_attribute()) < merged.first_function_index()


def test_compile_final_reports_final_stage() -> None:
	unit = _unit("def f(): pass\n")
	dup = Unit(name="target", declarations=unit.declarations + _unit("def f(x): pass\n").declarations)
	with pytest.raises(SynthesisError) as excinfo:
		compile_final(dup, CompileOptions(), "<t>")
	assert excinfo.value.stage == "final"
