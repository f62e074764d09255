# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import ast
import json
import marshal
import textwrap

from hotpatch.compiler import CompileOptions, compile_forms, compile_source
from hotpatch.container.unit_image import CODE_CHUNK, COMPILE_INFO_CHUNK, IR_CHUNK, list_chunks, read_chunks
from hotpatch.ir.nodes import Unit


def _module(src: str) -> ast.Module:
	return ast.parse(textwrap.dedent(src))


def test_successful_compile_embeds_code_info_and_ir() -> None:
	result = compile_source("hp_unit_ok", _module("def f(a):\n\treturn a + 1\n"), "<t>")
	assert result.ok, result.diagnostics
	assert [e.tag for e in list_chunks(result.image)] == [IR_CHUNK, COMPILE_INFO_CHUNK, CODE_CHUNK]
	info = json.loads(read_chunks(result.image, [COMPILE_INFO_CHUNK])[COMPILE_INFO_CHUNK])
	assert info == {"options": {"flags": ["debug_info"], "optimize": -1}, "source": "<t>", "unit": "hp_unit_ok"}

	namespace: dict = {}
	exec(marshal.loads(read_chunks(result.image, [CODE_CHUNK])[CODE_CHUNK]), namespace)
	assert namespace["f"](1) == 2


def test_without_debug_info_there_is_no_ir_chunk() -> None:
	result = compile_source("hp_unit_nodebug", _module("x = 1\n"), "<t>", debug_info=False)
	assert [e.tag for e in list_chunks(result.image)] == [COMPILE_INFO_CHUNK, CODE_CHUNK]


def test_loaded_unit_name_conflicts_unless_ignored() -> None:
	result = compile_source("sys", _module("x = 1\n"), "<t>")
	assert not result.ok
	assert result.errors() == ["module sys is already loaded"]
	assert compile_source("sys", _module("x = 1\n"), "<t>", ignore_module_conflict=True).ok


def test_redefined_function_is_an_error() -> None:
	result = compile_source("hp_unit_redef", _module("def f(): pass\ndef f(x): pass\n"), "<t>")
	assert result.errors() == ["function f/1 redefined (previously f/0)"]


def test_decorated_repeats_are_registrations() -> None:
	source = "import functools\n@functools.singledispatch\ndef fmt(v): return v\n@fmt.register\ndef _(v: int): return v\n@fmt.register\ndef _(v: str): return v\n"
	result = compile_source("hp_unit_dispatch", _module(source), "<t>")
	assert result.ok
	assert result.errors() == []



def test_undefined_names_are_errors_with_call_arity() -> None:
	result = compile_source(
		"hp_unit_undef",
		_module(
			"""
			def f(a):
				return g(a, 1) + missing
			"""
		),
		"<t>",
	)
	assert sorted(result.errors()) == ["undefined function g/2", "undefined name 'missing'"]


def test_known_names_and_function_globals_count_as_bound() -> None:
	src = _module(
		"""
		def f():
			global STATE
			STATE = helper()
		def g():
			return STATE
		"""
	)
	assert compile_source("hp_unit_known", src, "<t>", known_names=["helper"]).ok
	assert compile_source("hp_unit_unknown", src, "<t>", known_names=None).ok
	assert not compile_source("hp_unit_missing", src, "<t>").ok


def test_star_import_disables_undefined_name_check() -> None:
	assert compile_source("hp_unit_star", _module("from os.path import *\nx = join('a', 'b')\n"), "<t>").ok


def test_unknown_attribute_of_loaded_module_is_a_suppressible_warning() -> None:
	src = _module("import json\nx = json.no_such_thing\n")
	result = compile_source("hp_unit_attr", src, "<t>")
	assert result.ok
	assert result.warnings() == ["undefined attribute json.no_such_thing"]
	assert compile_source("hp_unit_attr2", src, "<t>", no_warn_undefined=True).warnings() == []
	assert not compile_source("hp_unit_attr3", src, "<t>", warnings_as_errors=True).ok


def test_call_arity_inference_warns_only_when_enabled() -> None:
	src = _module("def f(a, b=1): pass\nf(1, 2, 3)\nf(1)\nf(*[1])\n")
	assert compile_source("hp_unit_arity", src, "<t>").warnings() == ["call to f/3 does not match f/2"]
	assert compile_source("hp_unit_arity2", src, "<t>", infer_signatures=False).warnings() == []


def test_syntax_errors_from_compile_are_reported() -> None:
	bad = _module("def f():\n\tnonlocal x\n")
	failed = compile_source("hp_unit_syntax2", bad, "<t>", known_names=None)
	assert not failed.ok
	assert "nonlocal" in failed.errors()[0]


def test_compile_forms_replays_options_and_drops_tree_incompatible_flags() -> None:
	unit = Unit.from_module("hp_unit_forms", _module("def f(): return 1\n"))
	options = CompileOptions(flags=("debug_info", "only_ast", "annotations", "bogus"))
	result = compile_forms(unit, options, "<src>")
	assert result.ok
	assert result.warnings() == ["unknown compile option 'bogus' ignored"]
	info = json.loads(read_chunks(result.image, [COMPILE_INFO_CHUNK])[COMPILE_INFO_CHUNK])
	assert info["options"]["flags"] == ["debug_info", "annotations", "bogus"]


def test_compile_forms_rejects_redefinitions() -> None:
	a = Unit.from_module("u", _module("def f(a): pass\n"))
	b = Unit.from_module("u", _module("def f(a, b): pass\n"))
	merged = Unit(name="u", declarations=a.declarations + b.declarations)
	assert compile_forms(merged, CompileOptions(), "<t>").errors() == ["function f/2 redefined (previously f/1)"]


def test_compile_options_json_round_trip_validates() -> None:
	opts = CompileOptions(flags=("debug_info",), optimize=2)
	assert CompileOptions.from_json(opts.to_json()) == opts
	for bad in ({"flags": "x"}, {"optimize": True}, []):
		try:
			CompileOptions.from_json(bad)  # type: ignore[arg-type]
		except ValueError:
			continue
		raise AssertionError(f"accepted {bad!r}")
