# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Unit image container (v0).

A unit image is the "object code" of one module: a tiny, deterministic
container of tagged chunks.

- `Code`: the marshalled module code object,
- `Abst`: the module IR (canonical JSON, see `hotpatch.ir.ast_codec`),
- `CInf`: compile info (canonical JSON: options, source-file tag, unit name).

Chunks are content-addressed by sha256 so a reader can reject damaged images
before trusting any bytes.
"""

from __future__ import annotations

import hashlib
import json
import struct
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

MAGIC = b"PYUNIT\0\0"
VERSION = 0

CODE_CHUNK = "Code"
IR_CHUNK = "Abst"
COMPILE_INFO_CHUNK = "CInf"

# Header layout:
# magic(8), version(u16), flags(u16), header_size(u32), toc_len(u32), toc_sha256(32)
_HEADER_STRUCT = struct.Struct("<8sHHII32s")
HEADER_SIZE_V0 = _HEADER_STRUCT.size

# TOC entry layout: tag(4), offset(u64), length(u64), chunk_sha256(32)
_TOC_ENTRY_STRUCT = struct.Struct("<4sQQ32s")
TOC_ENTRY_SIZE_V0 = _TOC_ENTRY_STRUCT.size


class ContainerError(ValueError):
	"""
	A unit image cannot be read.

	`kind` is `missing` (no bytes at all), `unknown_format` (not a v0 image or
	damaged), or `missing_chunk` (a requested chunk is absent; `detail` is its tag).
	"""

	def __init__(self, kind: str, detail: str = "") -> None:
		self.kind = kind
		self.detail = detail
		super().__init__(f"{kind}: {detail}" if detail else kind)


@dataclass(frozen=True)
class ChunkEntry:
	"""A table-of-contents entry describing one chunk."""

	tag: str
	offset: int
	length: int
	sha256: str


def sha256_hex(data: bytes) -> str:
	"""Return sha256 hex digest for `data`."""
	return hashlib.sha256(data).hexdigest()


def canonical_json_bytes(obj: Any) -> bytes:
	"""
	Render JSON deterministically.

Rules:
	- ASCII (lone surrogates in string constants stay representable)
	- no insignificant whitespace
	- stable key ordering
	"""
	return json.dumps(obj, sort_keys=True, ensure_ascii=True, separators=(",", ":")).encode("ascii")


def _encode_tag(tag: str) -> bytes:
	data = tag.encode("ascii")
	if len(data) != 4:
		raise ValueError(f"chunk tag must be 4 ASCII characters: {tag!r}")
	return data


def write_unit_image(chunks: Mapping[str, bytes]) -> bytes:
	"""
	Build a unit image from `chunks` (tag -> payload).

	The output is byte-for-byte stable for equal inputs: chunks are laid out in
	tag order.
	"""
	tags = sorted(chunks.keys())
	cur = HEADER_SIZE_V0 + len(tags) * TOC_ENTRY_SIZE_V0
	toc: list[bytes] = []
	for tag in tags:
		data = chunks[tag]
		toc.append(_TOC_ENTRY_STRUCT.pack(_encode_tag(tag), cur, len(data), hashlib.sha256(data).digest()))
		cur += len(data)
	toc_bytes = b"".join(toc)
	header = _HEADER_STRUCT.pack(
		MAGIC,
		VERSION,
		0,
		HEADER_SIZE_V0,
		len(tags),
		hashlib.sha256(toc_bytes).digest(),
	)
	return header + toc_bytes + b"".join(chunks[tag] for tag in tags)


def list_chunks(data: bytes | None) -> list[ChunkEntry]:
	"""
	Parse and verify the image header and table of contents.

Verification steps:
	- header magic/version/flags/size
	- toc sha256 matches header
	- chunk offsets are in-range and non-overlapping
	- each chunk sha256 matches its TOC entry
	"""
	if not data:
		raise ContainerError("missing")
	if len(data) < HEADER_SIZE_V0:
		raise ContainerError("unknown_format", "truncated header")
	magic, version, flags, header_size, toc_len, toc_sha = _HEADER_STRUCT.unpack_from(data, 0)
	if magic != MAGIC:
		raise ContainerError("unknown_format", "invalid image magic")
	if version != VERSION:
		raise ContainerError("unknown_format", f"unsupported image version {version}")
	if flags != 0 or header_size != HEADER_SIZE_V0:
		raise ContainerError("unknown_format", "unsupported image header")

	toc_end = HEADER_SIZE_V0 + toc_len * TOC_ENTRY_SIZE_V0
	if toc_end > len(data):
		raise ContainerError("unknown_format", "truncated table of contents")
	toc_bytes = data[HEADER_SIZE_V0:toc_end]
	if hashlib.sha256(toc_bytes).digest() != toc_sha:
		raise ContainerError("unknown_format", "toc sha256 mismatch")

	entries: list[ChunkEntry] = []
	prev_end = toc_end
	for i in range(toc_len):
		raw_tag, offset, length, chunk_sha = _TOC_ENTRY_STRUCT.unpack_from(toc_bytes, i * TOC_ENTRY_SIZE_V0)
		try:
			tag = raw_tag.decode("ascii")
		except UnicodeDecodeError:
			raise ContainerError("unknown_format", "non-ASCII chunk tag") from None
		if offset < prev_end or offset + length > len(data):
			raise ContainerError("unknown_format", f"chunk {tag} out of range")
		prev_end = offset + length
		if hashlib.sha256(data[offset : offset + length]).digest() != chunk_sha:
			raise ContainerError("unknown_format", f"chunk {tag} sha256 mismatch")
		entries.append(ChunkEntry(tag=tag, offset=offset, length=length, sha256=chunk_sha.hex()))
	return entries


def read_chunks(data: bytes | None, tags: Iterable[str]) -> dict[str, bytes]:
	"""
	Return the payloads of the requested chunks.

	Raises `ContainerError("missing_chunk", tag)` for the first requested tag
	not present in the image.
	"""
	entries = {e.tag: e for e in list_chunks(data)}
	assert data is not None
	out: dict[str, bytes] = {}
	for tag in tags:
		entry = entries.get(tag)
		if entry is None:
			raise ContainerError("missing_chunk", tag)
		out[tag] = data[entry.offset : entry.offset + entry.length]
	return out


__all__ = [
	"CODE_CHUNK",
	"COMPILE_INFO_CHUNK",
	"IR_CHUNK",
	"ChunkEntry",
	"ContainerError",
	"canonical_json_bytes",
	"list_chunks",
	"read_chunks",
	"sha256_hex",
	"write_unit_image",
]
