# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
hotpatch: replace or extend the functions of an already-imported module.

    patch = hotpatch.resolve_patch("pkg.mod", '''
    @override(original={"rename_to": "f_v1"})
    def f(a, b):
        return f_v1(a, b) * 2
    ''')
    hotpatch.load_patch(patch)

`resolve_patch` builds a new unit image for the module from its current object
code plus the patch; `load_patch` swaps it into the running interpreter.
"""

from hotpatch.engine.pipeline import (
	Patch,
	PatchResult,
	load_patch,
	resolve_and_load,
	resolve_patch,
	try_load_patch,
	try_resolve_and_load,
	try_resolve_patch,
)
from hotpatch.errors import (
	HotpatchError,
	InternalError,
	InvalidDirective,
	LoadError,
	ObjectCodeError,
	SynthesisError,
)

__version__ = "0.1.0"

__all__ = [
	"HotpatchError",
	"InternalError",
	"InvalidDirective",
	"LoadError",
	"ObjectCodeError",
	"Patch",
	"PatchResult",
	"SynthesisError",
	"load_patch",
	"resolve_and_load",
	"resolve_patch",
	"try_load_patch",
	"try_resolve_and_load",
	"try_resolve_patch",
]
