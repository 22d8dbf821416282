# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Ed25519 signing backend backed by a local keyring directory.

Keyring layout (pinned):
- `<name>.key`: base64 of the raw 32-byte Ed25519 private seed (whitespace allowed).
- `<name>.pub`: base64 of the raw 32-byte public key.

Verification only reads `.pub` files, so a keyring holding public keys alone is
enough to check a published repository.
"""

from __future__ import annotations

from pathlib import Path

from debrepo.armor import armor, canonical_text, dearmor, decode_cleartext, encode_cleartext
from debrepo.crypto import (
	b64_decode,
	compute_ed25519_kid,
	ed25519_public_from_seed,
	ed25519_sign_from_seed,
	verify_ed25519,
)
from debrepo.errors import SigningIdentityError
from debrepo.model import SigningIdentity

ARMOR_LABEL = "ED25519"
SIGNATURE_LABEL = f"{ARMOR_LABEL} SIGNATURE"
PUBLIC_KEY_LABEL = f"{ARMOR_LABEL} PUBLIC KEY"


def _load_b64_32(path: Path, *, what: str) -> bytes:
	try:
		text = path.read_text(encoding="utf-8").strip()
	except (OSError, UnicodeDecodeError) as err:
		raise SigningIdentityError(f"cannot read {what} file: {err}", artifact_path=str(path)) from err
	try:
		raw = b64_decode(text)
	except Exception as err:
		raise SigningIdentityError(f"invalid base64 in {what} file", artifact_path=str(path)) from err
	if len(raw) != 32:
		raise SigningIdentityError(f"{what} must decode to 32 bytes", artifact_path=str(path), got=str(len(raw)))
	return raw


def _matches(ident: SigningIdentity, identifier: str) -> bool:
	"""Key name, full kid, or a hex suffix of the kid (like a short key id)."""
	want = identifier.strip().lower()
	if not want:
		return False
	fpr = ident.fingerprint.lower()
	return ident.identifier.lower() == want or fpr == want or fpr.split(":", 1)[-1].endswith(want)


class Ed25519Backend:
	name = "ed25519"

	def __init__(self, keyring_dir: Path) -> None:
		self.keyring_dir = keyring_dir

	def is_available(self) -> bool:
		return self.keyring_dir.is_dir()

	def _identity(self, key_name: str) -> SigningIdentity:
		pub_path = self.keyring_dir / f"{key_name}.pub"
		if pub_path.exists():
			pub_raw = _load_b64_32(pub_path, what="public key")
		else:
			pub_raw = ed25519_public_from_seed(_load_b64_32(self.keyring_dir / f"{key_name}.key", what="key seed"))
		return SigningIdentity(identifier=key_name, label=key_name, fingerprint=compute_ed25519_kid(pub_raw))

	def list_identities(self) -> list[SigningIdentity]:
		if not self.is_available():
			return []
		return [self._identity(p.stem) for p in sorted(self.keyring_dir.glob("*.key"))]

	def find_identities(self, identifier: str) -> list[SigningIdentity]:
		return [i for i in self.list_identities() if _matches(i, identifier)]

	def public_identities(self, identifier: str) -> list[SigningIdentity]:
		if not self.is_available():
			return []
		out: list[SigningIdentity] = []
		for pub_path in sorted(self.keyring_dir.glob("*.pub")):
			pub_raw = _load_b64_32(pub_path, what="public key")
			ident = SigningIdentity(identifier=pub_path.stem, label=pub_path.stem, fingerprint=compute_ed25519_kid(pub_raw))
			if _matches(ident, identifier):
				out.append(ident)
		return out

	def _seed(self, identity: SigningIdentity) -> bytes:
		return _load_b64_32(self.keyring_dir / f"{identity.identifier}.key", what="key seed")

	def _public(self, identity: SigningIdentity) -> bytes:
		pub_path = self.keyring_dir / f"{identity.identifier}.pub"
		if not pub_path.exists():
			raise ValueError(f"no public key for '{identity.identifier}' in {self.keyring_dir}")
		pub_raw = _load_b64_32(pub_path, what="public key")
		if compute_ed25519_kid(pub_raw) != identity.fingerprint:
			raise ValueError(f"public key for '{identity.identifier}' does not match fingerprint {identity.fingerprint}")
		return pub_raw

	def _signature_block(self, identity: SigningIdentity, message: bytes) -> bytes:
		sig_raw, pub_raw = ed25519_sign_from_seed(priv_seed32=self._seed(identity), message=message)
		if compute_ed25519_kid(pub_raw) != identity.fingerprint:
			raise ValueError(f"key seed for '{identity.identifier}' does not match fingerprint {identity.fingerprint}")
		return armor(SIGNATURE_LABEL, sig_raw, {"Key-Id": identity.fingerprint})

	def sign(self, identity: SigningIdentity, data: bytes) -> bytes:
		return self._signature_block(identity, data)

	def clearsign(self, identity: SigningIdentity, data: bytes) -> bytes:
		block = self._signature_block(identity, canonical_text(data))
		return encode_cleartext(ARMOR_LABEL, data, block, {"Key-Id": identity.fingerprint})

	def _check_block(self, identity: SigningIdentity, message: bytes, block: bytes) -> bool:
		headers, sig_raw = dearmor(block, SIGNATURE_LABEL)
		if headers.get("Key-Id") != identity.fingerprint:
			return False
		if len(sig_raw) != 64:
			return False
		return verify_ed25519(pubkey_raw=self._public(identity), message=message, signature_raw=sig_raw)

	def verify(self, identity: SigningIdentity, data: bytes, signature: bytes) -> bool:
		return self._check_block(identity, data, signature)

	def verify_inline(self, identity: SigningIdentity, document: bytes) -> bytes | None:
		doc = decode_cleartext(document, ARMOR_LABEL)
		if not self._check_block(identity, doc.text, doc.signature_block):
			return None
		return doc.text

	def export_public_key(self, identity: SigningIdentity) -> bytes:
		return armor(PUBLIC_KEY_LABEL, self._public(identity), {"Key-Id": identity.fingerprint, "Comment": identity.label})

