# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Signing capability interface.

The signing and verification services only talk to a `SigningBackend`. Two
implementations ship with the package: `GpgBackend` (shells out to `gpg`, which
is what package managers consume) and `Ed25519Backend` (local keyring, signs
with `cryptography`).
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from debrepo.errors import ConfigError
from debrepo.model import SigningIdentity


@runtime_checkable
class SigningBackend(Protocol):
	name: str

	def is_available(self) -> bool:
		...

	def list_identities(self) -> list[SigningIdentity]:
		"""Secret-key identities usable for signing, in a stable order."""
		...

	def find_identities(self, identifier: str) -> list[SigningIdentity]:
		"""All secret-key identities matching `identifier`."""
		...

	def public_identities(self, identifier: str) -> list[SigningIdentity]:
		"""Public-key identities matching `identifier`; no secret material needed."""
		...

	def sign(self, identity: SigningIdentity, data: bytes) -> bytes:
		"""Return an armored detached signature over `data`."""
		...

	def clearsign(self, identity: SigningIdentity, data: bytes) -> bytes:
		"""Return an inline (clear-signed) document embedding `data`."""
		...

	def verify(self, identity: SigningIdentity, data: bytes, signature: bytes) -> bool:
		...

	def verify_inline(self, identity: SigningIdentity, document: bytes) -> bytes | None:
		"""Return the signed text on success, None when the signature does not verify."""
		...

	def export_public_key(self, identity: SigningIdentity) -> bytes:
		...


def make_backend(name: str, *, gnupg_home: str | None = None, keyring_dir: str | None = None) -> SigningBackend:
	if name == "gpg":
		from debrepo.gpg_backend import GpgBackend

		return GpgBackend(gnupg_home=gnupg_home)
	if name == "ed25519":
		from debrepo.ed25519_backend import Ed25519Backend

		if not keyring_dir:
			raise ConfigError("the ed25519 backend needs keyring_dir", stage="config")
		return Ed25519Backend(Path(keyring_dir))
	raise ConfigError(f"unknown signing backend '{name}'", stage="config")
