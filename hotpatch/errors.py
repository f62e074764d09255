# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Structured errors raised by hotpatch.

Every failure surfaced to a caller is a `HotpatchError` subclass carrying a
stable `reason_code` plus enough context to diagnose it. `try_*` entry points
return these as values instead of raising them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# Exceptions are not frozen: the interpreter and contextlib assign
# `__traceback__`/`__cause__` through normal attribute access.
@dataclass(eq=False)
class HotpatchError(Exception):
	"""Base class of all errors hotpatch raises on purpose."""

	reason_code: ClassVar[str] = "HOTPATCH_ERROR"

	def __str__(self) -> str:
		return self.format_human()

	def to_dict(self) -> dict[str, Any]:
		return {"reason_code": self.reason_code, "message": self.format_human()}

	def format_human(self) -> str:
		return f"[{self.reason_code}]"


@dataclass(eq=False)
class ObjectCodeError(HotpatchError):
	"""
	The target's stored object code is unusable.

	`reason` is one of:
	- `missing_object_code`: no image (and no source to build one) exists,
	- `unknown_ir_format`: the IR chunk (or the container) has a format we do not read,
	- `missing_ir_chunk`: the image was compiled without debug info,
	- `missing_options_chunk`: the image carries no compile info.
	"""

	reason_code: ClassVar[str] = "OBJECT_CODE"

	target: str
	reason: str
	detail: str | None = None

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"target": self.target,
			"reason": self.reason,
			"detail": self.detail,
		}

	def format_human(self) -> str:
		msg = f"error loading IR for module {self.target!r}: {self.reason}"
		if self.detail:
			msg += f" ({self.detail})"
		return msg


@dataclass(eq=False)
class InvalidDirective(HotpatchError):
	"""
	An `override` directive is used in an invalid way.

	`reason` is one of:
	- `unresolved_override`: a directive is not followed by a function definition,
	- `invalid_options`: `items` lists the rejected option keys,
	- `no_base_implementation`: `items` lists signatures absent from the target.
	"""

	reason_code: ClassVar[str] = "INVALID_DIRECTIVE"

	reason: str
	items: tuple[str, ...] = ()
	message: str | None = None

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"reason": self.reason,
			"items": list(self.items),
			"message": self.message,
		}

	def format_human(self) -> str:
		msg = f"invalid override: {self.reason}"
		if self.items:
			msg += f" {list(self.items)}"
		if self.message:
			msg += f": {self.message}"
		return msg


@dataclass(eq=False)
class SynthesisError(HotpatchError):
	"""The compiler rejected the patch (`stage="patch"`) or the merged unit (`stage="final"`)."""

	reason_code: ClassVar[str] = "SYNTHESIS"

	stage: str
	diagnostics: list[str] = field(default_factory=list)

	def to_dict(self) -> dict[str, Any]:
		return {"reason_code": self.reason_code, "stage": self.stage, "diagnostics": list(self.diagnostics)}

	def format_human(self) -> str:
		lines = [f"{self.stage} compilation error:"]
		lines.extend(f"  - {d}" for d in self.diagnostics)
		return "\n".join(lines)


@dataclass(eq=False)
class LoadError(HotpatchError):
	"""The loader refused to install a patch; the previously loaded code is intact."""

	reason_code: ClassVar[str] = "LOAD"

	target: str
	reason: str

	def to_dict(self) -> dict[str, Any]:
		return {"reason_code": self.reason_code, "target": self.target, "reason": self.reason}

	def format_human(self) -> str:
		return f"error loading module {self.target!r}: {self.reason}"


@dataclass(eq=False)
class InternalError(HotpatchError):
	"""
	An unexpected failure inside hotpatch.

	This means an abnormal environment or a bug. The original exception is kept
	in `wrapped` (and chained as `__cause__`).
	"""

	reason_code: ClassVar[str] = "INTERNAL"

	wrapped: BaseException

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"wrapped_type": type(self.wrapped).__name__,
			"message": str(self.wrapped),
		}

	def format_human(self) -> str:
		return f"internal error: ({type(self.wrapped).__name__}) {self.wrapped}"


__all__ = [
	"HotpatchError",
	"ObjectCodeError",
	"InvalidDirective",
	"SynthesisError",
	"LoadError",
	"InternalError",
]
