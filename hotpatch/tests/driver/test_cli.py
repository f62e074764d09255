# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import json

from hotpatch.cli import main

SOURCE = """
def f(a, b):
	return a + b
"""


def test_resolve_writes_image_and_show_lists_it(make_module, tmp_path, capsys) -> None:
	mod = make_module(SOURCE)
	patch_file = tmp_path / "patch.py"
	patch_file.write_text('@override(original={"rename_to": "f_v1"})\ndef f(a, b):\n\treturn f_v1(a, b) * 2\n')
	out = tmp_path / "out.pyunit"

	assert main(["resolve", mod.__name__, str(patch_file), "-o", str(out), "--json"]) == 0
	payload = json.loads(capsys.readouterr().out)
	assert payload["exit_code"] == 0
	assert payload["loaded"] is False
	assert out.read_bytes()
	assert mod.f(1, 2) == 3

	assert main(["show", str(out), "--json"]) == 0
	shown = json.loads(capsys.readouterr().out)
	assert [c["tag"] for c in shown["chunks"]] == ["Abst", "CInf", "Code"]
	assert {"kind": "function", "signature": "f_v1/2"} in shown["declarations"]


def test_resolve_and_load_from_cli(make_module, tmp_path, capsys) -> None:
	mod = make_module(SOURCE)
	patch_file = tmp_path / "patch.py"
	patch_file.write_text("@override\ndef f(a, b):\n\treturn a * b\n")
	assert main(["resolve", mod.__name__, str(patch_file), "--load"]) == 0
	assert "resolved patch" in capsys.readouterr().out
	assert mod.f(3, 4) == 12


def test_errors_exit_non_zero(make_module, tmp_path, capsys) -> None:
	mod = make_module(SOURCE)
	patch_file = tmp_path / "patch.py"
	patch_file.write_text("override()\n")
	assert main(["resolve", mod.__name__, str(patch_file), "--json"]) == 1
	payload = json.loads(capsys.readouterr().out)
	assert payload["error"]["reason_code"] == "INVALID_DIRECTIVE"

	assert main(["resolve", mod.__name__, str(patch_file)]) == 1
	assert "unresolved_override" in capsys.readouterr().err

	bad = tmp_path / "bad.pyunit"
	bad.write_bytes(b"junk")
	assert main(["show", str(bad)]) == 1
	assert main(["resolve", "hp_no_such_module_xyz", str(patch_file)]) == 2
