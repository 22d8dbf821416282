# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Pool scanning.

The pool is a flat directory of `.deb` artifacts. Scanning extracts each
artifact's control paragraph and hashes its bytes; results are returned in a
deterministic order regardless of worker completion order.
"""

from __future__ import annotations

import shutil
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from debrepo.control import Paragraph, get_field
from debrepo.crypto import digest_file
from debrepo.debversion import parse_version, version_key
from debrepo.errors import EmptyPoolError, MetadataExtractionError
from debrepo.extract import MetadataExtractor
from debrepo.model import Package

DEB_SUFFIX = ".deb"


def list_pool(pool_dir: Path) -> list[Path]:
	if not pool_dir.is_dir():
		return []
	return sorted(p for p in pool_dir.iterdir() if p.is_file() and p.name.endswith(DEB_SUFFIX))


def import_packages(source_dir: Path, pool_dir: Path) -> list[Path]:
	"""
	Copy every `*.deb` from `source_dir` into the pool.

	Raises EmptyPoolError before creating anything when there is nothing to import.
	"""
	debs = list_pool(source_dir)
	if not debs:
		raise EmptyPoolError("no .deb packages found to import", stage="index", artifact_path=str(source_dir))
	pool_dir.mkdir(parents=True, exist_ok=True)
	copied: list[Path] = []
	for deb in debs:
		dst = pool_dir / deb.name
		shutil.copyfile(deb, dst)
		copied.append(dst)
	return copied


def package_sort_key(pkg: Package):
	return (pkg.name, version_key(pkg.version), pkg.filename)


def _required(paragraph: Paragraph, name: str) -> str:
	value = get_field(paragraph, name)
	if not value:
		raise ValueError(f"control field '{name}' is missing")
	return value


def read_package(path: Path, *, repo_dir: Path, extractor: MetadataExtractor) -> Package:
	paragraph = extractor.extract(path)
	size, digests = digest_file(path)
	name = _required(paragraph, "Package")
	version = _required(paragraph, "Version")
	parse_version(version)
	architecture = _required(paragraph, "Architecture")
	return Package(
		name=name,
		version=version,
		architecture=architecture,
		size=size,
		digests=digests,
		description=get_field(paragraph, "Description") or "",
		filename=path.relative_to(repo_dir).as_posix(),
		control=paragraph,
	)


def scan_pool(
	pool_dir: Path,
	*,
	repo_dir: Path,
	extractor: MetadataExtractor,
	architectures: tuple[str, ...],
	jobs: int = 4,
) -> list[Package]:
	"""
	Discover and describe every artifact in the pool.

	Any failure aborts the whole scan with MetadataExtractionError naming the
	artifact; there is no partial result.
	"""
	paths = list_pool(pool_dir)
	if not paths:
		raise EmptyPoolError("no .deb packages found in pool", stage="index", artifact_path=str(pool_dir))

	def _one(path: Path) -> Package:
		try:
			pkg = read_package(path, repo_dir=repo_dir, extractor=extractor)
		except Exception as err:
			raise MetadataExtractionError(
				f"cannot read package metadata: {err}", stage="index", artifact_path=str(path)
			) from err
		if pkg.architecture not in architectures:
			raise MetadataExtractionError(
				f"architecture '{pkg.architecture}' is not declared ({' '.join(architectures)})",
				stage="index",
				artifact_path=str(path),
			)
		return pkg

	with ThreadPoolExecutor(max_workers=jobs) as pool:
		futures = [pool.submit(_one, p) for p in paths]
		packages = [f.result() for f in futures]
	return sorted(packages, key=package_sort_key)
