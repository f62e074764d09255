# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import importlib
import sys
import types
from typing import Callable, Iterator

import pytest

from hotpatch import code_store
from hotpatch.config import HotpatchConfig, set_config
from hotpatch.tests.support.modules import write_module


@pytest.fixture(autouse=True)
def _isolated_config() -> Iterator[None]:
	"""Tests never see HOTPATCH_* variables from the developer's environment."""
	prev = set_config(HotpatchConfig())
	yield
	set_config(prev)


@pytest.fixture
def make_module(tmp_path, monkeypatch) -> Iterator[Callable[..., types.ModuleType]]:
	"""
	Factory importing throwaway modules written from source text.

	Modules and their recorded images are removed again after the test.
	"""
	monkeypatch.syspath_prepend(str(tmp_path))
	created: list[str] = []

	def factory(source: str, prefix: str = "hp_target") -> types.ModuleType:
		name = write_module(tmp_path, source, prefix)
		created.append(name)
		importlib.invalidate_caches()
		return importlib.import_module(name)

	yield factory
	for name in created:
		sys.modules.pop(name, None)
		code_store.forget(name)
