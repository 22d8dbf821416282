# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Package index builder.

Inclusion rule (pinned repository convention):
- a package with a concrete architecture `A` is listed only in `binary-A`;
- an `all` package is listed in `binary-all` and in the index of the default
  architecture (the first declared concrete one), and nowhere else.

A package belongs to the component named by the prefix of its `Section` field
(`contrib/net` -> `contrib`) when that component is declared, otherwise to the
first declared component.
"""

from __future__ import annotations

import gzip
import io
import os
import shutil
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Sequence

try:
	import bz2
except ImportError:  # Python built without libbz2: the .bz2 variant is optional.
	bz2 = None

from debrepo.control import format_paragraph, get_field
from debrepo.errors import EmptyPoolError
from debrepo.model import ARCH_ALL, DIGEST_ALGORITHMS, PACKAGES_DIGEST_FIELDS, Package, PackageIndex
from debrepo.pool import package_sort_key

_LEADING_FIELDS = ("Package", "Version", "Architecture")
_GENERATED_FIELDS = {"filename", "size", "md5sum", "sha1", "sha256", "sha512"}


def component_for(pkg: Package, components: Sequence[str]) -> str:
	section = get_field(pkg.control, "Section") or ""
	if "/" in section:
		prefix = section.split("/", 1)[0]
		if prefix in components:
			return prefix
	return components[0]


def includes(pkg: Package, architecture: str, default_architecture: str | None) -> bool:
	if pkg.architecture == architecture:
		return True
	return pkg.architecture == ARCH_ALL and architecture == default_architecture


def render_record(pkg: Package) -> str:
	fields: list[tuple[str, str]] = [("Package", pkg.name), ("Version", pkg.version), ("Architecture", pkg.architecture)]
	skip = {f.lower() for f in _LEADING_FIELDS} | _GENERATED_FIELDS
	for name, value in pkg.control:
		if name.lower() in skip:
			continue
		fields.append((name, value))
	fields.append(("Filename", pkg.filename))
	fields.append(("Size", str(pkg.size)))
	for algo in DIGEST_ALGORITHMS:
		fields.append((PACKAGES_DIGEST_FIELDS[algo], pkg.digests[algo]))
	return format_paragraph(fields)


def render_index(packages: Sequence[Package]) -> bytes:
	"""Packages file text: one record per package, each followed by a blank line."""
	return "".join(render_record(p) + "\n" for p in sorted(packages, key=package_sort_key)).encode("utf-8")


def gzip_bytes(data: bytes) -> bytes:
	buf = io.BytesIO()
	# mtime=0 and an empty name keep the output byte-identical across runs.
	with gzip.GzipFile(filename="", mode="wb", compresslevel=9, fileobj=buf, mtime=0) as gz:
		gz.write(data)
	return buf.getvalue()


def compress(text: bytes) -> dict[str, bytes]:
	out = {".gz": gzip_bytes(text)}
	if bz2 is not None:
		out[".bz2"] = bz2.compress(text, 9)
	return out


def build_indices(
	packages: Sequence[Package],
	*,
	architectures: Sequence[str],
	components: Sequence[str] = ("main",),
	jobs: int = 4,
) -> list[PackageIndex]:
	"""One PackageIndex per (component, declared architecture), in declared order."""
	if not packages:
		raise EmptyPoolError("no packages to index", stage="index")
	default_arch = next((a for a in architectures if a != ARCH_ALL), None)
	by_component: dict[str, list[Package]] = {c: [] for c in components}
	for pkg in packages:
		by_component[component_for(pkg, components)].append(pkg)

	def _one(component: str, arch: str) -> PackageIndex:
		selected = tuple(sorted((p for p in by_component[component] if includes(p, arch, default_arch)), key=package_sort_key))
		text = render_index(selected)
		return PackageIndex(component=component, architecture=arch, packages=selected, text=text, encodings=compress(text))

	with ThreadPoolExecutor(max_workers=jobs) as pool:
		futures = [pool.submit(_one, c, a) for c in components for a in architectures]
		return [f.result() for f in futures]


def index_file_paths(indices: Sequence[PackageIndex]) -> list[str]:
	"""Every index file path (plain + encodings) relative to dists/<suite>."""
	out: list[str] = []
	for idx in indices:
		out.append(idx.path)
		out.extend(idx.path + suffix for suffix in sorted(idx.encodings))
	return sorted(out)


def write_indices(indices: Sequence[PackageIndex], dists_dir: Path) -> list[str]:
	"""
	Replace `dists_dir` with a tree holding exactly these indices.

	The tree is rendered next to `dists_dir` and swapped in, so prior content
	(stale indices, Release, signatures) is cleared and a half-written tree is
	never in place.
	"""
	dists_dir.parent.mkdir(parents=True, exist_ok=True)
	tmp = dists_dir.with_name(f".{dists_dir.name}.tmp.{os.getpid()}")
	old = dists_dir.with_name(f".{dists_dir.name}.old.{os.getpid()}")
	shutil.rmtree(tmp, ignore_errors=True)
	try:
		for idx in indices:
			plain = tmp / idx.path
			plain.parent.mkdir(parents=True, exist_ok=True)
			plain.write_bytes(idx.text)
			for suffix, blob in idx.encodings.items():
				plain.with_name(plain.name + suffix).write_bytes(blob)
		if dists_dir.exists():
			os.replace(dists_dir, old)
		os.replace(tmp, dists_dir)
	finally:
		shutil.rmtree(tmp, ignore_errors=True)
		shutil.rmtree(old, ignore_errors=True)
	return index_file_paths(indices)
