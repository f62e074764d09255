# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import ast
import textwrap

import pytest

from hotpatch.core.signature import Signature
from hotpatch.ir.nodes import Attribute, Function, Statement, Unit


def _unit(src: str) -> Unit:
	return Unit.from_module("m", ast.parse(textwrap.dedent(src)))


def test_from_module_classifies_top_level_statements() -> None:
	unit = _unit(
		'''
		"""Module doc."""
		import os
		__all__ = ["f"]
		def f(a, b): return a
		async def g(): pass
		class C: pass
		'''
	)
	kinds = [type(d).__name__ for d in unit.declarations]
	assert kinds == ["Attribute", "Statement", "Attribute", "Function", "Function", "Statement"]
	assert [a.name for a in unit.declarations if isinstance(a, Attribute)] == ["doc", "export"]
	assert unit.signatures() == [Signature("f", 2), Signature("g", 0)]
	assert unit.exports() == ["f"]
	assert unit.first_function_index() == 3


def test_last_literal_all_is_the_export_attribute() -> None:
	unit = _unit(
		"""
		__all__ = ["a"]
		__all__ = ("b", "c")
		__all__ += ["d"]
		"""
	)
	assert unit.exports() == ["b", "c"]
	assert isinstance(unit.declarations[0], Statement)
	assert unit.validate() == []


def test_overload_stubs_are_statements() -> None:
	unit = _unit(
		"""
		from typing import overload
		@overload
		def f(a: int) -> int: ...
		@overload
		def f(a: str) -> str: ...
		def f(a): return a
		"""
	)
	assert unit.signatures() == [Signature("f", 1)]
	assert unit.validate() == []


def test_validate_reports_redefinition_with_previous_signature() -> None:
	first, second = ast.parse("def f(a, b, c): pass\ndef f(a, b): pass\n").body
	unit = Unit(
		name="m",
		declarations=[Function(name="f", arity=3, node=first), Function(name="f", arity=2, node=second)],
	)
	assert unit.validate() == ["function f/2 redefined (previously f/3)"]


def test_only_the_last_def_of_a_name_is_a_function() -> None:
	unit = _unit(
		"""
		import functools

		@functools.singledispatch
		def fmt(value): return str(value)

		@fmt.register
		def _(value: int): return f"int {value}"

		@fmt.register
		def _(value: str): return f"str {value}"

		def f(a, b): return a
		"""
	)
	kinds = [type(d).__name__ for d in unit.declarations]
	assert kinds == ["Statement", "Function", "Statement", "Function", "Function"]
	assert unit.signatures() == [Signature("fmt", 1), Signature("_", 1), Signature("f", 2)]
	assert unit.validate() == []
	assert "_" in unit.bound_names()


def test_with_exports_inserts_before_first_function_or_replaces() -> None:
	unit = _unit(
		'''
		"""doc"""
		import os
		def f(): pass
		'''
	)
	added = unit.with_exports(["f"])
	assert added.exports() == ["f"]
	assert added.declarations.index(added.export_attribute()) == 2
	assert unit.exports() is None

	annotated = _unit("__all__: list[str] = ['x']\ndef x(): pass\n")
	replaced = annotated.with_exports(["x", "y"])
	node = replaced.export_attribute().node
	assert isinstance(node, ast.AnnAssign)
	assert replaced.exports() == ["x", "y"]
	assert len(replaced.declarations) == len(annotated.declarations)


def test_bound_names_cover_statements_and_function_globals() -> None:
	unit = _unit(
		"""
		import os.path
		from collections import OrderedDict as OD
		X, (Y, Z) = 1, (2, 3)
		for I in range(3): pass
		_cache = [n for n in range(3)]
		def f():
			global COUNTER
			COUNTER = 1
		class K: pass
		"""
	)
	names = unit.bound_names()
	for expected in ("os", "OD", "X", "Y", "Z", "I", "_cache", "COUNTER", "K"):
		assert expected in names
	assert "f" not in names
	assert "n" not in names


def test_implicit_exports_skip_private_names() -> None:
	unit = _unit(
		"""
		import json
		_hidden = 1
		def f(): pass
		def _g(): pass
		"""
	)
	assert unit.implicit_exports() == ["json", "f"]


def test_function_renamed_copies_node() -> None:
	unit = _unit("@staticmethod\ndef f(a): return a\n")
	fn = unit.functions()[0]
	renamed = fn.renamed("f_v1")
	assert renamed.signature == Signature("f_v1", 1)
	assert fn.node.name == "f"
	assert ast.unparse(renamed.node.decorator_list[0]) == "staticmethod"


def test_has_star_import() -> None:
	assert _unit("from os.path import *\n").has_star_import()
	assert not _unit("from os.path import join\n").has_star_import()


def test_classify_rejects_non_statements() -> None:
	from hotpatch.ir.nodes import classify

	with pytest.raises(TypeError):
		classify(ast.Name(id="x", ctx=ast.Load()), 1)  # type: ignore[arg-type]
	assert isinstance(classify(ast.parse("def f(): pass").body[0], 0), Function)
