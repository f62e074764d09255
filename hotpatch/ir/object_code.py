# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Unit images <-> IR.

`decode_unit` is the only way the engine reads object code: it asks the
container for the IR and compile-info chunks and translates every container
failure into an `ObjectCodeError`. `encode_unit` goes the other way through
the compiler facade.
"""

from __future__ import annotations

import ast
import json
import logging
from dataclasses import dataclass

from hotpatch.compiler import CompileOptions, compile_forms
from hotpatch.container.unit_image import COMPILE_INFO_CHUNK, IR_CHUNK, ContainerError, read_chunks
from hotpatch.errors import ObjectCodeError, SynthesisError
from hotpatch.ir.ast_codec import IR_FORMAT, decode_body, decode_node
from hotpatch.ir.nodes import Unit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodedUnit:
	unit: Unit
	options: CompileOptions
	source_tag: str


def _read_chunk(target: str, image: bytes | None, tag: str, missing_reason: str) -> bytes:
	try:
		return read_chunks(image, [tag])[tag]
	except ContainerError as err:
		if err.kind == "missing":
			raise ObjectCodeError(target, "missing_object_code") from err
		if err.kind == "missing_chunk":
			raise ObjectCodeError(target, missing_reason) from err
		raise ObjectCodeError(target, "unknown_ir_format", detail=err.detail or err.kind) from err


def _load_json(target: str, data: bytes, reason: str) -> dict:
	try:
		obj = json.loads(data.decode("utf-8"))
	except (UnicodeDecodeError, json.JSONDecodeError) as err:
		raise ObjectCodeError(target, reason, detail="chunk is not JSON") from err
	if not isinstance(obj, dict):
		raise ObjectCodeError(target, reason, detail="chunk is not a JSON object")
	return obj


def decode_unit(target: str, image: bytes | None) -> DecodedUnit:
	"""
	Build the IR of `target` from its unit image.

	Raises `ObjectCodeError` with reason `missing_object_code`,
	`unknown_ir_format`, `missing_ir_chunk` or `missing_options_chunk`.
	"""
	ir_obj = _load_json(target, _read_chunk(target, image, IR_CHUNK, "missing_ir_chunk"), "unknown_ir_format")
	fmt = ir_obj.get("format")
	if fmt != IR_FORMAT:
		raise ObjectCodeError(target, "unknown_ir_format", detail=str(fmt))
	if ir_obj.get("body") is None:
		raise ObjectCodeError(target, "missing_ir_chunk")
	try:
		body = decode_body(ir_obj["body"])
		type_ignores = decode_node(ir_obj.get("type_ignores") or [])
	except (ValueError, TypeError) as err:
		raise ObjectCodeError(target, "unknown_ir_format", detail=str(err)) from err

	info = _load_json(target, _read_chunk(target, image, COMPILE_INFO_CHUNK, "missing_options_chunk"), "missing_options_chunk")
	try:
		options = CompileOptions.from_json(info.get("options", {}))
	except ValueError as err:
		raise ObjectCodeError(target, "missing_options_chunk", detail=str(err)) from err
	source_tag = info.get("source")
	if not isinstance(source_tag, str):
		source_tag = ""

	unit = Unit.from_module(target, ast.Module(body=body, type_ignores=type_ignores))
	logger.debug("decoded %s: %d declaration(s), options %s", target, len(unit.declarations), list(options.flags))
	return DecodedUnit(unit=unit, options=options, source_tag=source_tag)


def encode_unit(unit: Unit, options: CompileOptions, source_tag: str) -> bytes:
	"""Compile `unit` back into a unit image; failures are final-stage synthesis errors."""
	result = compile_forms(unit, options, source_tag)
	if not result.ok:
		raise SynthesisError("final", result.errors() or result.warnings())
	return result.image  # type: ignore[return-value]


__all__ = ["DecodedUnit", "decode_unit", "encode_unit"]
