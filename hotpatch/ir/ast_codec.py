# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Conversion between Python `ast` trees and the JSON-compatible IR payload.

Encoding (format `raw_ast_v1`):
- an AST node becomes `{"_type": ClassName, <field>: ..., <location attr>: ...}`;
  every field is written (missing optional fields as `null`),
- lists stay lists,
- constants JSON cannot carry (bytes, complex, Ellipsis, non-finite floats)
  become `{"_const": kind, "v": ...}`.

Decoding reverses this exactly, so encode(decode(x)) == x for any payload we
produce.
"""

from __future__ import annotations

import ast
import math
from typing import Any

IR_FORMAT = "raw_ast_v1"


def encode_node(node: Any) -> Any:
	"""Encode an AST node (or list/constant inside one) into JSON-compatible data."""
	if isinstance(node, ast.AST):
		out: dict[str, Any] = {"_type": type(node).__name__}
		for name in node._fields:
			out[name] = encode_node(getattr(node, name, None))
		for name in node._attributes:
			value = getattr(node, name, None)
			if value is not None:
				out[name] = value
		return out
	if isinstance(node, list):
		return [encode_node(n) for n in node]
	return _encode_constant(node)


def _encode_constant(value: Any) -> Any:
	if value is None or isinstance(value, (bool, int, str)):
		return value
	if isinstance(value, float):
		if math.isfinite(value):
			return value
		return {"_const": "float", "v": repr(value)}
	if isinstance(value, bytes):
		return {"_const": "bytes", "v": value.hex()}
	if isinstance(value, complex):
		return {"_const": "complex", "v": [_encode_constant(value.real), _encode_constant(value.imag)]}
	if value is Ellipsis:
		return {"_const": "ellipsis"}
	raise ValueError(f"cannot encode constant of type {type(value).__name__}")


def decode_node(data: Any) -> Any:
	"""Decode data produced by `encode_node` back into AST nodes."""
	if isinstance(data, list):
		return [decode_node(d) for d in data]
	if isinstance(data, dict):
		if "_const" in data:
			return _decode_constant(data)
		type_name = data.get("_type")
		cls = getattr(ast, type_name, None) if isinstance(type_name, str) else None
		if not (isinstance(cls, type) and issubclass(cls, ast.AST)):
			raise ValueError(f"unknown IR node type {type_name!r}")
		kwargs = {key: decode_node(value) for key, value in data.items() if key != "_type"}
		return cls(**kwargs)
	return data


def _decode_constant(data: dict[str, Any]) -> Any:
	kind = data["_const"]
	if kind == "float":
		return float(data["v"])
	if kind == "bytes":
		return bytes.fromhex(data["v"])
	if kind == "complex":
		real, imag = data["v"]
		return complex(_decode_constant_value(real), _decode_constant_value(imag))
	if kind == "ellipsis":
		return Ellipsis
	raise ValueError(f"unknown IR constant kind {kind!r}")


def _decode_constant_value(value: Any) -> Any:
	if isinstance(value, dict):
		return _decode_constant(value)
	return value


def encode_body(body: list[ast.stmt]) -> list[Any]:
	"""Encode a statement list (a module body)."""
	return [encode_node(stmt) for stmt in body]


def decode_body(data: Any) -> list[ast.stmt]:
	"""Decode a statement list; the payload must be a JSON array of statement nodes."""
	if not isinstance(data, list):
		raise ValueError("IR body must be a list")
	body = decode_node(data)
	for stmt in body:
		if not isinstance(stmt, ast.stmt):
			raise ValueError(f"IR body entry is not a statement: {type(stmt).__name__}")
	return body


__all__ = ["IR_FORMAT", "decode_body", "decode_node", "encode_body", "encode_node"]
