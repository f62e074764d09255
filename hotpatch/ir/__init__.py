# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Declaration-level IR of compiled units.

Pipeline placement:
  unit image (container) -> Unit (this package) -> engine rewrites -> Unit -> unit image

`nodes` holds the declaration variants and `Unit`; `ast_codec` the IR payload
encoding; `object_code` the translation between images and units.
"""

__all__ = ["ast_codec", "nodes", "object_code"]
