# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Repository data model.

These are plain immutable records. The builders in `index.py`, `release.py`,
`sign.py` and `verify.py` produce and consume them; nothing here touches disk.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

# Architecture-independent marker.
ARCH_ALL = "all"

# Digest algorithms in the order the Release file lists them, paired with the
# field name each one gets in a Packages record and the section name it gets in
# Release.
DIGEST_ALGORITHMS: tuple[str, ...] = ("md5", "sha1", "sha256")
PACKAGES_DIGEST_FIELDS: dict[str, str] = {"md5": "MD5sum", "sha1": "SHA1", "sha256": "SHA256"}
RELEASE_DIGEST_SECTIONS: dict[str, str] = {"md5": "MD5Sum", "sha1": "SHA1", "sha256": "SHA256"}


@dataclass(frozen=True)
class Package:
	"""One binary artifact in the pool."""

	name: str
	version: str
	architecture: str
	size: int
	digests: Mapping[str, str]
	description: str
	filename: str  # pool-relative, e.g. "pool/hello_1.0_amd64.deb"
	control: tuple[tuple[str, str], ...] = ()

	def to_dict(self) -> dict[str, Any]:
		return {
			"name": self.name,
			"version": self.version,
			"architecture": self.architecture,
			"size": self.size,
			"digests": dict(self.digests),
			"filename": self.filename,
		}


@dataclass(frozen=True)
class PackageIndex:
	component: str
	architecture: str
	packages: tuple[Package, ...]
	text: bytes
	encodings: Mapping[str, bytes] = field(default_factory=dict)  # suffix -> bytes

	@property
	def path(self) -> str:
		"""Plain index path relative to dists/<suite>."""
		return f"{self.component}/binary-{self.architecture}/Packages"

	def to_dict(self) -> dict[str, Any]:
		return {
			"component": self.component,
			"architecture": self.architecture,
			"path": self.path,
			"packages": [p.filename for p in self.packages],
			"encodings": sorted(self.encodings.keys()),
		}


@dataclass(frozen=True)
class ChecksumEntry:
	path: str  # relative to dists/<suite>
	size: int
	digests: Mapping[str, str]


@dataclass(frozen=True)
class ReleaseDescriptor:
	origin: str
	label: str
	suite: str
	codename: str
	version: str
	description: str
	date: str
	architectures: tuple[str, ...]
	components: tuple[str, ...]
	checksums: tuple[ChecksumEntry, ...]


class SignatureKind(str, Enum):
	DETACHED_ARMORED = "detached-armored"
	INLINE = "inline"


@dataclass(frozen=True)
class SigningIdentity:
	identifier: str
	label: str
	fingerprint: str

	def to_dict(self) -> dict[str, Any]:
		return {"identifier": self.identifier, "label": self.label, "fingerprint": self.fingerprint}


@dataclass(frozen=True)
class Signature:
	target: str
	identity: str  # fingerprint
	kind: SignatureKind
	path: str
	verified: bool | None = None

	def to_dict(self) -> dict[str, Any]:
		return {
			"target": self.target,
			"identity": self.identity,
			"kind": self.kind.value,
			"path": self.path,
			"verified": self.verified,
		}
