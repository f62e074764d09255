# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import ast
import json

import pytest

from hotpatch.ir.ast_codec import decode_body, decode_node, encode_body

_SOURCE = '''
"""doc"""
import math
RAW = b"\\x00\\xff"
Z = 2 + 3j
INF = float("inf"), 1e400
def f(a, /, b=..., *args, c, **kw) -> "T":
	return [x for x in a] if b else {k: v for k, v in kw.items()}
class C:
	x: int = 1
'''


def test_encoded_body_survives_json_and_unparses_identically() -> None:
	module = ast.parse(_SOURCE)
	payload = json.loads(json.dumps(encode_body(module.body)))
	body = decode_body(payload)
	assert ast.unparse(ast.Module(body=body, type_ignores=[])) == ast.unparse(module)
	assert encode_body(body) == payload


def test_non_json_constants_are_tagged() -> None:
	module = ast.parse("x = (b'\\x01', 1j, ..., 1e400)")
	elts = encode_body(module.body)[0]["value"]["elts"]
	assert [e["value"]["_const"] for e in elts] == ["bytes", "complex", "ellipsis", "float"]
	assert decode_node(elts[3]).value == float("inf")


def test_decode_body_rejects_unknown_node_types_and_non_statements() -> None:
	with pytest.raises(ValueError, match="unknown IR node type"):
		decode_body([{"_type": "NotANode"}])
	with pytest.raises(ValueError, match="not a statement"):
		decode_body([{"_type": "Name", "id": "x", "ctx": {"_type": "Load"}}])
	with pytest.raises(ValueError, match="must be a list"):
		decode_body({"_type": "Module"})
