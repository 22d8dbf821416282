# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Debian version ordering (dpkg semantics) on top of `debian.debian_support`.
"""

from __future__ import annotations

from debian.debian_support import Version, version_compare


def parse_version(version: str) -> tuple[int, str, str]:
	"""Split `[epoch:]upstream[-revision]`; the upstream part must start with a digit."""
	parsed = Version(version.strip())
	upstream = parsed.upstream_version or ""
	if not upstream[:1].isdigit():
		raise ValueError(f"version does not start with a digit: {version!r}")
	return int(parsed.epoch or 0), upstream, parsed.debian_revision or ""


def compare_versions(a: str, b: str) -> int:
	"""Return -1, 0 or 1 as `a` sorts before, equal to, or after `b`."""
	c = version_compare(a, b)
	return (c > 0) - (c < 0)


def version_key(version: str) -> Version:
	return Version(version)
