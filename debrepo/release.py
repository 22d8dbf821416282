# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Release descriptor builder.

Checksums are always computed from the files as they sit on disk under
`dists/<suite>`, after compression, so the descriptor attests to the bytes
that get published.
"""

from __future__ import annotations

import email.utils
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from debrepo.config_v0 import RepoConfig
from debrepo.control import format_paragraph, get_field, parse_paragraph
from debrepo.crypto import digest_file
from debrepo.errors import InconsistentIndexError
from debrepo.model import DIGEST_ALGORITHMS, RELEASE_DIGEST_SECTIONS, ChecksumEntry, ReleaseDescriptor

RELEASE = "Release"
INDEX_PREFIX = "Packages"


def format_date(when: datetime) -> str:
	return email.utils.format_datetime(when.astimezone(timezone.utc))


def collect_index_files(dists_dir: Path) -> list[str]:
	"""Every `Packages*` file under dists/<suite>, as sorted POSIX relative paths."""
	if not dists_dir.is_dir():
		return []
	return sorted(
		p.relative_to(dists_dir).as_posix()
		for p in dists_dir.rglob(f"{INDEX_PREFIX}*")
		if p.is_file()
	)


def build_release(
	dists_dir: Path,
	*,
	config: RepoConfig,
	expected: Iterable[str] | None = None,
	now: datetime | None = None,
) -> ReleaseDescriptor:
	on_disk = collect_index_files(dists_dir)
	if expected is not None:
		missing = sorted(set(expected) - set(on_disk))
		if missing:
			raise InconsistentIndexError(
				f"expected index file is missing: {missing[0]}",
				stage="release",
				artifact_path=str(dists_dir / missing[0]),
			)
	if not on_disk:
		raise InconsistentIndexError("no index files under dists tree", stage="release", artifact_path=str(dists_dir))
	checksums: list[ChecksumEntry] = []
	for rel in on_disk:
		size, digests = digest_file(dists_dir / rel)
		checksums.append(ChecksumEntry(path=rel, size=size, digests=digests))
	return ReleaseDescriptor(
		origin=config.origin,
		label=config.label,
		suite=config.suite,
		codename=config.codename,
		version=config.version,
		description=config.description,
		date=format_date(now or datetime.now(timezone.utc)),
		architectures=tuple(config.architectures),
		components=tuple(config.components),
		checksums=tuple(checksums),
	)


def render_release(desc: ReleaseDescriptor) -> bytes:
	fields: list[tuple[str, str]] = [
		("Origin", desc.origin),
		("Label", desc.label),
		("Suite", desc.suite),
		("Version", desc.version),
		("Codename", desc.codename),
		("Date", desc.date),
		("Architectures", " ".join(desc.architectures)),
		("Components", " ".join(desc.components)),
		("Description", desc.description),
	]
	for algo in DIGEST_ALGORITHMS:
		lines = [f" {e.digests[algo]} {e.size:>16} {e.path}" for e in desc.checksums]
		fields.append((RELEASE_DIGEST_SECTIONS[algo], "\n" + "\n".join(lines)))
	return format_paragraph(fields).encode("utf-8")


def parse_release(text: str) -> ReleaseDescriptor:
	para = parse_paragraph(text)
	sizes: dict[str, int] = {}
	digests: dict[str, dict[str, str]] = {}
	order: list[str] = []
	for algo in DIGEST_ALGORITHMS:
		section = get_field(para, RELEASE_DIGEST_SECTIONS[algo])
		if section is None:
			raise ValueError(f"Release has no {RELEASE_DIGEST_SECTIONS[algo]} section")
		for line in section.splitlines():
			if not line.strip():
				continue
			parts = line.split()
			if len(parts) != 3:
				raise ValueError(f"malformed checksum line: {line!r}")
			digest, size_s, path = parts
			size = int(size_s)
			if path not in sizes:
				order.append(path)
				sizes[path] = size
				digests[path] = {}
			elif sizes[path] != size:
				raise ValueError(f"conflicting sizes for {path}")
			digests[path][algo] = digest
	return ReleaseDescriptor(
		origin=get_field(para, "Origin") or "",
		label=get_field(para, "Label") or "",
		suite=get_field(para, "Suite") or "",
		codename=get_field(para, "Codename") or "",
		version=get_field(para, "Version") or "",
		description=get_field(para, "Description") or "",
		date=get_field(para, "Date") or "",
		architectures=tuple((get_field(para, "Architectures") or "").split()),
		components=tuple((get_field(para, "Components") or "").split()),
		checksums=tuple(ChecksumEntry(path=p, size=sizes[p], digests=digests[p]) for p in order),
	)


def write_release(desc: ReleaseDescriptor, dists_dir: Path) -> Path:
	path = dists_dir / RELEASE
	tmp = path.with_name(path.name + f".tmp.{os.getpid()}")
	tmp.write_bytes(render_release(desc))
	os.replace(tmp, path)
	return path


def check_release_consistency(dists_dir: Path, *, stage: str = "sign") -> ReleaseDescriptor:
	"""
	Re-hash every file listed in Release and compare with the recorded values.

	Raises InconsistentIndexError on the first mismatch (or a missing file).
	"""
	release_path = dists_dir / RELEASE
	if not release_path.exists():
		raise InconsistentIndexError("Release file not found", stage=stage, artifact_path=str(release_path))
	try:
		desc = parse_release(release_path.read_text(encoding="utf-8"))
	except ValueError as err:
		raise InconsistentIndexError(f"Release is malformed: {err}", stage=stage, artifact_path=str(release_path)) from err
	unlisted = sorted(set(collect_index_files(dists_dir)) - {e.path for e in desc.checksums})
	if unlisted:
		raise InconsistentIndexError(
			"index file is not listed in Release", stage=stage, artifact_path=str(dists_dir / unlisted[0])
		)
	for entry in desc.checksums:
		path = dists_dir / entry.path
		if not path.is_file():
			raise InconsistentIndexError("index file listed in Release is missing", stage=stage, artifact_path=str(path))
		size, digests = digest_file(path)
		if size != entry.size:
			raise InconsistentIndexError(
				"index file size does not match Release",
				stage=stage,
				artifact_path=str(path),
				expected=str(entry.size),
				got=str(size),
			)
		for algo in DIGEST_ALGORITHMS:
			if digests[algo] != entry.digests.get(algo):
				raise InconsistentIndexError(
					f"index file {algo} does not match Release",
					stage=stage,
					artifact_path=str(path),
					expected=entry.digests.get(algo),
					got=digests[algo],
				)
	return desc
