# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import ast
from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class Signature:
	"""
Identity of a callable declaration within a unit: `name/arity`.

`arity` counts positional parameters (positional-only plus
positional-or-keyword); `*args`, keyword-only and `**kwargs` do not count.
"""

	name: str
	arity: int

	def __str__(self) -> str:
		return f"{self.name}/{self.arity}"


def signature_of(node: ast.FunctionDef | ast.AsyncFunctionDef) -> Signature:
	"""Return the signature of a function definition node."""
	args = node.args
	return Signature(name=node.name, arity=len(args.posonlyargs) + len(args.args))


# Module reflection hooks (PEP 562). They change how the module resolves
# attributes, so no placeholder is ever generated for them.
REFLECTION_SIGNATURES = frozenset({Signature("__getattr__", 1), Signature("__dir__", 0)})


__all__ = ["Signature", "signature_of", "REFLECTION_SIGNATURES"]
