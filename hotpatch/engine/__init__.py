# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Patch resolution engine.

Pipeline placement (one call, strictly in order):
  directives -> rewriter -> synthesis -> merge -> pipeline (load)

Each step consumes the previous step's IR and either produces the next IR or
raises a `HotpatchError` that aborts the call.
"""

__all__ = ["directives", "merge", "pipeline", "rewriter", "synthesis"]
