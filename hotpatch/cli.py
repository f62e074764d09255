# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Command line front end.

    python -m hotpatch resolve MODULE PATCH_FILE [-o OUT] [--load] [--json]
    python -m hotpatch show IMAGE [--json]

`resolve` imports MODULE, resolves PATCH_FILE against it and optionally writes
the resulting unit image and/or installs it in this process (useful only as a
smoke test: the process exits right after). `show` lists an image's chunks and
declarations.
"""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from pathlib import Path

from hotpatch.container.unit_image import ContainerError, list_chunks
from hotpatch.engine.pipeline import load_patch, resolve_patch
from hotpatch.errors import HotpatchError, ObjectCodeError
from hotpatch.ir.nodes import Attribute, Function, Statement
from hotpatch.ir.object_code import decode_unit

logger = logging.getLogger(__name__)


def _report(err: HotpatchError, as_json: bool) -> int:
	if as_json:
		print(json.dumps({"exit_code": 1, "error": err.to_dict()}))
	else:
		print(f"error: {err.format_human()}", file=sys.stderr)
	return 1


def _cmd_resolve(args: argparse.Namespace) -> int:
	try:
		importlib.import_module(args.module)
	except ImportError as err:
		print(f"error: cannot import {args.module}: {err}", file=sys.stderr)
		return 2
	source = args.patch.read_text(encoding="utf-8")
	try:
		patch = resolve_patch(args.module, source)
		if args.load:
			load_patch(patch)
	except HotpatchError as err:
		return _report(err, args.json)
	if args.output is not None:
		args.output.write_bytes(patch.image)
	if args.json:
		payload = {
			"exit_code": 0,
			"target": patch.target,
			"source": patch.source_tag,
			"size": len(patch.image),
			"output": str(args.output) if args.output is not None else None,
			"loaded": bool(args.load),
		}
		print(json.dumps(payload))
	else:
		print(f"resolved patch for {patch.target} ({len(patch.image)} bytes)")
	return 0


def _describe(decl: object) -> dict[str, object]:
	if isinstance(decl, Function):
		return {"kind": "function", "signature": str(decl.signature)}
	if isinstance(decl, Attribute):
		return {"kind": "attribute", "name": decl.name}
	if isinstance(decl, Statement):
		return {"kind": "statement", "line": getattr(decl.node, "lineno", None), "type": type(decl.node).__name__}
	raise TypeError(f"unknown declaration kind {type(decl).__name__}")


def _cmd_show(args: argparse.Namespace) -> int:
	data = args.image.read_bytes()
	target = args.image.stem
	try:
		chunks = list_chunks(data)
	except ContainerError as err:
		return _report(ObjectCodeError(target, "unknown_ir_format", detail=str(err)), args.json)
	declarations: list[dict[str, object]] | None = None
	try:
		decoded = decode_unit(target, data)
		declarations = [_describe(d) for d in decoded.unit.declarations]
	except ObjectCodeError as err:
		logger.debug("no IR in %s: %s", args.image, err)

	if args.json:
		print(
			json.dumps(
				{
					"chunks": [{"tag": c.tag, "length": c.length, "sha256": c.sha256} for c in chunks],
					"declarations": declarations,
				}
			)
		)
		return 0
	for c in chunks:
		print(f"{c.tag}  {c.length:>8}  {c.sha256[:16]}")
	if declarations is None:
		print("(no IR)")
	for d in declarations or []:
		print("  " + " ".join(f"{k}={v}" for k, v in d.items()))
	return 0


def main(argv: list[str] | None = None) -> int:
	"""Entry point for the hotpatch CLI."""
	parser = argparse.ArgumentParser(prog="hotpatch", description="Resolve and inspect module hot patches")
	parser.add_argument("-v", "--verbose", action="store_true", help="Log pipeline steps to stderr")
	sub = parser.add_subparsers(dest="command", required=True)

	p_resolve = sub.add_parser("resolve", help="Resolve a patch file against an importable module")
	p_resolve.add_argument("module", help="Dotted name of the module to patch")
	p_resolve.add_argument("patch", type=Path, help="Path to the patch source")
	p_resolve.add_argument("-o", "--output", type=Path, help="Write the resolved unit image to this path")
	p_resolve.add_argument("--load", action="store_true", help="Also install the patch in this process")
	p_resolve.add_argument("--json", action="store_true", help="Emit machine-readable output")
	p_resolve.set_defaults(func=_cmd_resolve)

	p_show = sub.add_parser("show", help="List the chunks and declarations of a unit image")
	p_show.add_argument("image", type=Path, help="Path to a .pyunit image")
	p_show.add_argument("--json", action="store_true", help="Emit machine-readable output")
	p_show.set_defaults(func=_cmd_show)

	args = parser.parse_args(argv)
	logging.basicConfig(
		level=logging.DEBUG if args.verbose else logging.WARNING,
		format="%(levelname)s %(name)s: %(message)s",
	)
	return args.func(args)


__all__ = ["main"]
