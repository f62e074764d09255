# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Object code of live modules, and the loader that swaps it in.

Lookup order for `get_object_code(target)`:
1. the image last installed by `load_binary` (or registered explicitly), as
   long as the module still has the `__spec__` it had then,
2. `<target>.pyunit` in one of the configured unit paths,
3. an image built on the fly from the module's source, with debug info.

`load_binary` executes an image's code object in the target module's own
namespace, the way `importlib.reload` does, so every `import target` holder
sees the new functions. A failing module body restores the namespace from a
snapshot before the error is reported.

`importlib.reload` (or a fresh import after removing the module from
`sys.modules`) gives the module a new `__spec__`, which retires its recorded
image: the next patch starts again from the reloaded source.
"""

from __future__ import annotations

import ast
import importlib.util
import logging
import marshal
import sys
import threading
import types
from pathlib import Path

from hotpatch.compiler import DEBUG_INFO, CompileOptions, compile_forms
from hotpatch.config import get_config
from hotpatch.container.unit_image import CODE_CHUNK, ContainerError, read_chunks
from hotpatch.ir.nodes import Unit

logger = logging.getLogger(__name__)

IMAGE_SUFFIX = ".pyunit"

_lock = threading.RLock()
# target -> (image, `__spec__` of the module when the image was recorded)
_images: dict[str, tuple[bytes, object]] = {}


class LoadFailure(ImportError):
	"""The loader refused an image; `reason` says why."""

	def __init__(self, target: str, reason: str) -> None:
		super().__init__(f"cannot load {target}: {reason}", name=target)
		self.target = target
		self.reason = reason


def _current_spec(target: str) -> object:
	return getattr(sys.modules.get(target), "__spec__", None)


def _recorded_image(target: str) -> bytes | None:
	with _lock:
		entry = _images.get(target)
		if entry is None:
			return None
		image, spec = entry
		if spec is not None and _current_spec(target) is not spec:
			logger.info("%s was reloaded since its last patch; dropping the recorded image", target)
			del _images[target]
			return None
		return image


def register_image(target: str, image: bytes) -> None:
	"""Record `image` as the current object code of `target`."""
	with _lock:
		_images[target] = (image, _current_spec(target))


def forget(target: str | None = None) -> None:
	"""
	Drop recorded images for `target` (all targets when None).

	Needed after editing a module's source without reloading it; a reload
	retires the recorded image by itself.
	"""
	with _lock:
		if target is None:
			_images.clear()
		else:
			_images.pop(target, None)


def _find_image_file(target: str, unit_paths: tuple[Path, ...]) -> Path | None:
	for root in unit_paths:
		candidate = root / f"{target}{IMAGE_SUFFIX}"
		if candidate.is_file():
			return candidate
	return None


def _module_source(target: str) -> tuple[str, str] | None:
	module = sys.modules.get(target)
	spec = getattr(module, "__spec__", None) if module is not None else None
	if spec is None and module is None:
		try:
			spec = importlib.util.find_spec(target)
		except (ImportError, ValueError):
			return None
	loader = getattr(spec, "loader", None)
	get_source = getattr(loader, "get_source", None)
	if get_source is None:
		return None
	try:
		source = get_source(target)
	except (ImportError, OSError):
		return None
	if source is None:
		return None
	filename = getattr(spec, "origin", None) or getattr(module, "__file__", None) or f"<{target}>"
	return source, filename


def build_image_from_source(target: str) -> bytes | None:
	"""Compile `target`'s source into an image with debug info; None if impossible."""
	found = _module_source(target)
	if found is None:
		return None
	source, filename = found
	try:
		tree = ast.parse(source, filename=filename)
	except (SyntaxError, ValueError) as err:
		logger.warning("cannot parse source of %s: %s", target, err)
		return None
	result = compile_forms(Unit.from_module(target, tree), CompileOptions(flags=(DEBUG_INFO,)), filename)
	if not result.ok:
		logger.warning("cannot build object code for %s: %s", target, "; ".join(result.errors()))
		return None
	logger.debug("built object code for %s from %s", target, filename)
	return result.image


def get_object_code(target: str) -> bytes | None:
	"""Return the current unit image of `target`, or None when there is none."""
	image = _recorded_image(target)
	if image is not None:
		return image
	path = _find_image_file(target, get_config().unit_paths)
	if path is not None:
		logger.debug("using unit image %s for %s", path, target)
		return path.read_bytes()
	return build_image_from_source(target)


def _is_protected(target: str) -> bool:
	if target in sys.builtin_module_names or target in get_config().protected_modules:
		return True
	spec = getattr(sys.modules.get(target), "__spec__", None)
	return getattr(spec, "origin", None) in ("built-in", "frozen")


def _decode_code(target: str, image: bytes) -> types.CodeType:
	try:
		data = read_chunks(image, [CODE_CHUNK])[CODE_CHUNK]
		code = marshal.loads(data)
	except (ContainerError, EOFError, ValueError, TypeError) as err:
		raise LoadFailure(target, "badfile") from err
	if not isinstance(code, types.CodeType):
		raise LoadFailure(target, "badfile")
	return code


def load_binary(target: str, source_tag: str, image: bytes) -> types.ModuleType:
	"""
	Install `image` as the code of module `target`.

	Raises `LoadFailure` with reason `sticky` (protected module), `badfile`
	(undecodable image) or `exec_failed: ...` (the module body raised).
	"""
	if _is_protected(target):
		raise LoadFailure(target, "sticky")
	code = _decode_code(target, image)

	with _lock:
		module = sys.modules.get(target)
		created = module is None
		if module is None:
			module = types.ModuleType(target)
		namespace = module.__dict__
		snapshot = dict(namespace)
		if source_tag:
			namespace["__file__"] = source_tag
		try:
			exec(code, namespace)
		except Exception as err:
			namespace.clear()
			namespace.update(snapshot)
			raise LoadFailure(target, f"exec_failed: {type(err).__name__}: {err}") from err
		if created:
			sys.modules[target] = module
		_images[target] = (image, getattr(module, "__spec__", None))
	logger.info("loaded new code for %s", target)
	return module


__all__ = [
	"IMAGE_SUFFIX",
	"LoadFailure",
	"build_image_from_source",
	"forget",
	"get_object_code",
	"load_binary",
	"register_image",
]
