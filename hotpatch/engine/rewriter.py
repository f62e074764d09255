# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Rewrite the target's IR according to the patch's override directives.

Every overridden function is either renamed (so the patch can keep calling
the prior implementation) or dropped (the patch redefines its name). A
directive naming a function the target does not have is an error.
"""

from __future__ import annotations

import logging

from hotpatch.engine.directives import NameMapping
from hotpatch.errors import InvalidDirective
from hotpatch.ir.nodes import Attribute, Declaration, Function, Statement, Unit

logger = logging.getLogger(__name__)


def map_overridden_functions(unit: Unit, mappings: NameMapping) -> Unit:
	"""Return a new unit with the mapped functions renamed or removed."""
	remaining = dict(mappings)
	out: list[Declaration] = []
	for decl in unit.declarations:
		if isinstance(decl, Function):
			directive = remaining.pop(decl.signature, None)
			if directive is None:
				out.append(decl)
			elif directive.rename_to is not None:
				logger.debug("%s: renaming %s to %s", unit.name, decl.signature, directive.rename_to)
				out.append(decl.renamed(directive.rename_to))
			else:
				logger.debug("%s: dropping %s", unit.name, decl.signature)
		elif isinstance(decl, (Attribute, Statement)):
			out.append(decl)
		else:
			raise TypeError(f"unknown declaration kind {type(decl).__name__}")

	if remaining:
		raise InvalidDirective("no_base_implementation", tuple(str(sig) for sig in sorted(remaining)))
	return Unit(name=unit.name, declarations=out, type_ignores=list(unit.type_ignores))


__all__ = ["map_overridden_functions"]
