# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Process-wide hotpatch configuration.

Values come from the environment the first time they are needed:

- `HOTPATCH_UNIT_PATH`: `os.pathsep`-separated directories searched for
  prebuilt `<module>.pyunit` images,
- `HOTPATCH_PROTECTED`: comma-separated module names the loader refuses to
  replace (in addition to builtin and frozen modules).
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

ENV_UNIT_PATH = "HOTPATCH_UNIT_PATH"
ENV_PROTECTED = "HOTPATCH_PROTECTED"


@dataclass(frozen=True)
class HotpatchConfig:
	unit_paths: tuple[Path, ...] = ()
	protected_modules: frozenset[str] = frozenset()

	@classmethod
	def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HotpatchConfig":
		env = os.environ if environ is None else environ
		paths: list[Path] = []
		for part in (env.get(ENV_UNIT_PATH) or "").split(os.pathsep):
			part = part.strip()
			if part:
				paths.append(Path(part).expanduser())
		protected = {p.strip() for p in (env.get(ENV_PROTECTED) or "").split(",") if p.strip()}
		return cls(unit_paths=tuple(paths), protected_modules=frozenset(protected))


_lock = threading.Lock()
_config: HotpatchConfig | None = None


def get_config() -> HotpatchConfig:
	global _config
	with _lock:
		if _config is None:
			_config = HotpatchConfig.from_env()
		return _config


def set_config(config: HotpatchConfig | None) -> HotpatchConfig | None:
	"""
	Install `config` (None re-reads the environment on next use).

	Returns the previously installed configuration.
	"""
	global _config
	with _lock:
		prev = _config
		_config = config
		return prev


__all__ = ["ENV_PROTECTED", "ENV_UNIT_PATH", "HotpatchConfig", "get_config", "set_config"]
