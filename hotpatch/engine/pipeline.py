# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Caller-facing patch operations.

`resolve_patch` runs the whole engine and returns a `Patch` without touching
the running interpreter; `load_patch` installs one. The `try_*` variants
return a `PatchResult` instead of raising.

Any exception that is not a `HotpatchError` is a bug or an abnormal
environment; it is wrapped in `InternalError` with the original chained.
"""

from __future__ import annotations

import ast
import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

from hotpatch import code_store
from hotpatch.engine.directives import flatten_nodes, parse_override_mappings, scan_visibility, strip_directives
from hotpatch.engine.merge import compile_final, merge_unit
from hotpatch.engine.rewriter import map_overridden_functions
from hotpatch.engine.synthesis import compile_patch
from hotpatch.errors import HotpatchError, InternalError, LoadError, SynthesisError
from hotpatch.ir.object_code import decode_unit

logger = logging.getLogger(__name__)

T = TypeVar("T")
PatchSource = Union[str, ast.Module, None]


@dataclass(frozen=True)
class Patch:
	"""A resolved patch: install `image` as module `target` with `load_patch`."""

	target: str
	source_tag: str
	image: bytes


@dataclass(frozen=True)
class PatchResult(Generic[T]):
	value: T | None = None
	error: HotpatchError | None = None

	@property
	def ok(self) -> bool:
		return self.error is None


def patch_tag(target: str) -> str:
	return f"<hotpatch:{target}>"


def _parse_patch(target: str, source: PatchSource) -> ast.Module:
	if source is None:
		return ast.Module(body=[], type_ignores=[])
	if isinstance(source, ast.Module):
		return copy.deepcopy(source)
	if isinstance(source, str):
		try:
			return ast.parse(source, filename=patch_tag(target))
		except SyntaxError as err:
			raise SynthesisError("patch", [f"{err.msg} (line {err.lineno})"]) from err
	raise TypeError(f"patch source must be str or ast.Module, not {type(source).__name__}")


def _guarded(fn: Callable[..., T], *args: Any) -> T:
	try:
		return fn(*args)
	except HotpatchError:
		raise
	except Exception as err:
		logger.exception("unexpected failure in %s", fn.__name__)
		raise InternalError(err) from err


def _resolve(target: str, source: PatchSource) -> Patch:
	tree = _parse_patch(target, source)
	decoded = decode_unit(target, code_store.get_object_code(target))

	nodes = flatten_nodes(tree.body)
	mappings = parse_override_mappings(nodes)
	stmts = strip_directives(nodes)
	visibility = scan_visibility(stmts)
	logger.debug("%s: %d override(s), %d patch function(s)", target, len(mappings), len(visibility))

	rewritten = map_overridden_functions(decoded.unit, mappings)
	injected = compile_patch(stmts, rewritten, patch_tag(target))
	merged = merge_unit(decoded.unit, rewritten, injected, mappings, visibility)
	image = compile_final(merged, decoded.options, decoded.source_tag)
	logger.debug("%s: resolved patch (%d bytes)", target, len(image))
	return Patch(target=target, source_tag=decoded.source_tag, image=image)


def _load(patch: Patch) -> None:
	try:
		code_store.load_binary(patch.target, patch.source_tag, patch.image)
	except code_store.LoadFailure as err:
		raise LoadError(patch.target, err.reason) from err


def resolve_patch(target: str, source: PatchSource) -> Patch:
	"""
	Build a patched image of module `target`.

	`source` is patch source text, an already parsed `ast.Module` (never
	mutated), or None for an empty patch. Nothing is installed.
	"""
	return _guarded(_resolve, target, source)


def load_patch(patch: Patch) -> None:
	"""Install `patch`; on failure the previously loaded code stays in place."""
	_guarded(_load, patch)


def resolve_and_load(target: str, source: PatchSource) -> Patch:
	patch = resolve_patch(target, source)
	load_patch(patch)
	return patch


def _try(fn: Callable[..., T], *args: Any) -> PatchResult[T]:
	try:
		return PatchResult(value=fn(*args))
	except HotpatchError as err:
		return PatchResult(error=err)


def try_resolve_patch(target: str, source: PatchSource) -> PatchResult[Patch]:
	return _try(resolve_patch, target, source)


def try_load_patch(patch: Patch) -> PatchResult[None]:
	return _try(load_patch, patch)


def try_resolve_and_load(target: str, source: PatchSource) -> PatchResult[Patch]:
	return _try(resolve_and_load, target, source)


__all__ = [
	"Patch",
	"PatchResult",
	"PatchSource",
	"load_patch",
	"resolve_and_load",
	"resolve_patch",
	"try_load_patch",
	"try_resolve_and_load",
	"try_resolve_patch",
]
