# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Metadata extraction for `.deb` artifacts.

The repository builder only needs a package's control paragraph; digests and
sizes are computed by `pool.py` from the artifact bytes. Two extractors:

- `DebArchiveExtractor` reads the control member in-process with
  `debian.debfile` (no system tools needed).
- `DpkgDebExtractor` asks `dpkg-deb -f`, which also handles `control.tar.zst`.
"""

from __future__ import annotations

import shutil
import subprocess
import tarfile
from pathlib import Path
from typing import Callable, Protocol

from debian import arfile, debfile

from debrepo.control import Paragraph, from_deb822, parse_paragraph


class MetadataExtractor(Protocol):
	def extract(self, path: Path) -> Paragraph:
		"""Return the control paragraph of the artifact at `path`."""
		...


class DebArchiveExtractor:
	def extract(self, path: Path) -> Paragraph:
		try:
			deb = debfile.DebFile(filename=str(path))
			try:
				control = deb.debcontrol()
			finally:
				deb.close()
		except (arfile.ArError, tarfile.TarError, EOFError, OSError) as err:
			raise ValueError(f"unreadable .deb archive: {err}") from err
		if not control:
			raise ValueError("control member has no control file")
		return from_deb822(control)


class DpkgDebExtractor:
	def __init__(self, *, dpkg_deb: str = "dpkg-deb", runner: Callable[..., subprocess.CompletedProcess] = subprocess.run) -> None:
		self.dpkg_deb = dpkg_deb
		self.runner = runner

	def is_available(self) -> bool:
		return shutil.which(self.dpkg_deb) is not None

	def extract(self, path: Path) -> Paragraph:
		cp = self.runner([self.dpkg_deb, "-f", str(path)], capture_output=True, check=False)
		if cp.returncode != 0:
			raise ValueError(f"dpkg-deb -f failed: {cp.stderr.decode('utf-8', errors='replace').strip()}")
		return parse_paragraph(cp.stdout.decode("utf-8"))


def make_extractor(name: str) -> MetadataExtractor:
	if name == "python":
		return DebArchiveExtractor()
	if name == "dpkg-deb":
		return DpkgDebExtractor()
	raise ValueError(f"unknown metadata extractor '{name}'")
