# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Object-code container for compiled units.

The container is the only place that knows the byte layout of a unit image;
everything else asks it for chunks by tag.
"""

from __future__ import annotations

__all__ = [
	"unit_image",
]
