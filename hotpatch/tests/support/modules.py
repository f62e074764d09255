# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import textwrap
import uuid
from pathlib import Path


def unique_module_name(prefix: str = "hp_target") -> str:
	"""Return a module name no other test (or thread) will use."""
	return f"{prefix}_{uuid.uuid4().hex[:12]}"


def write_module(directory: Path, source: str, prefix: str = "hp_target") -> str:
	"""
	Write `source` (dedented) as a fresh top-level module under `directory`.

	Returns the module name; the caller is responsible for importing it.
	"""
	name = unique_module_name(prefix)
	(directory / f"{name}.py").write_text(textwrap.dedent(source), encoding="utf-8")
	return name
