# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import base64
import hashlib
import json
from pathlib import Path
from typing import Any, Iterable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from debrepo.model import DIGEST_ALGORITHMS

_CHUNK = 1 << 16


def canonical_json_bytes(obj: Any) -> bytes:
	"""
	Render JSON deterministically.

	Rules:
	- UTF-8
	- no insignificant whitespace
	- stable key ordering
	"""
	return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def digest_file(path: Path, algorithms: Iterable[str] = DIGEST_ALGORITHMS) -> tuple[int, dict[str, str]]:
	"""
	Hash a file from its on-disk bytes.

	Returns:
	  (size, {algorithm: hex digest})
	"""
	hashers = {algo: hashlib.new(algo) for algo in algorithms}
	size = 0
	with path.open("rb") as fh:
		while True:
			chunk = fh.read(_CHUNK)
			if not chunk:
				break
			size += len(chunk)
			for h in hashers.values():
				h.update(chunk)
	return size, {algo: h.hexdigest() for algo, h in hashers.items()}


def b64_decode(text: str) -> bytes:
	return base64.b64decode(text.encode("ascii"), validate=True)


def compute_ed25519_kid(pubkey_raw: bytes) -> str:
	"""
	Compute key id (kid) for an Ed25519 public key.

	Pinned scheme:
	  kid = "ed25519:" + hex(sha256(pubkey_raw))[:40]
	"""
	return "ed25519:" + hashlib.sha256(pubkey_raw).hexdigest()[:40]


def ed25519_public_from_seed(priv_seed32: bytes) -> bytes:
	if len(priv_seed32) != 32:
		raise ValueError("ed25519 private key seed must be 32 bytes")
	return Ed25519PrivateKey.from_private_bytes(priv_seed32).public_key().public_bytes_raw()


def ed25519_sign_from_seed(*, priv_seed32: bytes, message: bytes) -> tuple[bytes, bytes]:
	"""
	Sign `message` with an Ed25519 private key seed.

	Returns:
	  (sig_raw_64, pubkey_raw_32)
	"""
	if len(priv_seed32) != 32:
		raise ValueError("ed25519 private key seed must be 32 bytes")
	priv = Ed25519PrivateKey.from_private_bytes(priv_seed32)
	sig = priv.sign(message)
	pub = priv.public_key().public_bytes_raw()
	return sig, pub


def verify_ed25519(*, pubkey_raw: bytes, message: bytes, signature_raw: bytes) -> bool:
	"""
	Verify an Ed25519 signature.

	Returns True on success, False on verification failure.
	Raises on internal decoding/usage errors.
	"""
	try:
		key = Ed25519PublicKey.from_public_bytes(pubkey_raw)
	except Exception as err:
		raise ValueError("invalid ed25519 public key bytes") from err
	try:
		key.verify(signature_raw, message)
		return True
	except InvalidSignature:
		return False
