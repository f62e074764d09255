# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Diagnostics produced by the compiler facade.

A diagnostic is a message plus severity and a best-effort source location.
Only the message text crosses into `SynthesisError`; the location is kept for
logs and the CLI.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Span:
	"""Best-effort file/line/column of a diagnostic."""

	file: Optional[str] = None
	line: Optional[int] = None
	column: Optional[int] = None

	@classmethod
	def from_node(cls, node: ast.AST | None, file: str | None = None) -> "Span":
		if node is None:
			return cls(file=file)
		return cls(file=file, line=getattr(node, "lineno", None), column=getattr(node, "col_offset", None))


@dataclass
class Diagnostic:
	"""Represents a compiler diagnostic (error/warning)."""

	message: str
	severity: str = "error"
	code: str | None = None
	span: Span = field(default_factory=Span)

	def __post_init__(self) -> None:
		if self.span is None:  # type: ignore[unreachable]
			self.span = Span()

	@property
	def is_error(self) -> bool:
		return self.severity == "error"

	def render(self) -> str:
		"""Render as `file:line:col: severity: message` (unknown parts omitted)."""
		loc = [str(p) for p in (self.span.file, self.span.line, self.span.column) if p is not None]
		prefix = ":".join(loc)
		if prefix:
			return f"{prefix}: {self.severity}: {self.message}"
		return f"{self.severity}: {self.message}"

	def to_dict(self) -> dict[str, object]:
		return {
			"message": self.message,
			"severity": self.severity,
			"code": self.code,
			"file": self.span.file,
			"line": self.span.line,
			"column": self.span.column,
		}


__all__ = ["Diagnostic", "Span"]
