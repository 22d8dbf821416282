# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from pathlib import Path

import pytest

from debrepo.backend import SigningBackend, make_backend
from debrepo.ed25519_backend import Ed25519Backend
from debrepo.errors import SigningIdentityError


def test_backend_satisfies_protocol(keyring: Path) -> None:
	backend = make_backend("ed25519", keyring_dir=str(keyring))
	assert isinstance(backend, Ed25519Backend)
	assert isinstance(backend, SigningBackend)
	assert backend.is_available()


def test_identities_are_sorted_and_matchable(tmp_path: Path, add_key) -> None:
	ring = tmp_path / "ring"
	kid_b = add_key(ring, "bravo")
	kid_a = add_key(ring, "alpha")
	backend = Ed25519Backend(ring)
	assert [i.identifier for i in backend.list_identities()] == ["alpha", "bravo"]
	assert [i.fingerprint for i in backend.find_identities("bravo")] == [kid_b]
	assert [i.fingerprint for i in backend.find_identities(kid_a)] == [kid_a]
	assert [i.fingerprint for i in backend.find_identities(kid_a[-16:])] == [kid_a]
	assert backend.find_identities("charlie") == []


def test_public_only_keyring_cannot_sign(tmp_path: Path, add_key) -> None:
	ring = tmp_path / "ring"
	kid = add_key(ring, "pubonly", with_secret=False)
	backend = Ed25519Backend(ring)
	assert backend.list_identities() == []
	assert [i.fingerprint for i in backend.public_identities("pubonly")] == [kid]


def test_detached_signature_verifies_and_detects_tamper(keyring: Path) -> None:
	backend = Ed25519Backend(keyring)
	(ident,) = backend.list_identities()
	data = b"Origin: test\nSuite: stable\n"
	sig = backend.sign(ident, data)
	assert sig.startswith(b"-----BEGIN ED25519 SIGNATURE-----\n")
	assert backend.verify(ident, data, sig)
	assert not backend.verify(ident, data.replace(b"test", b"tesT"), sig)


def test_detached_signature_from_other_key_fails(tmp_path: Path, add_key) -> None:
	ring = tmp_path / "ring"
	add_key(ring, "one")
	add_key(ring, "two")
	backend = Ed25519Backend(ring)
	one, two = backend.list_identities()
	sig = backend.sign(one, b"data")
	assert not backend.verify(two, b"data", sig)


def test_clearsign_round_trip(keyring: Path) -> None:
	backend = Ed25519Backend(keyring)
	(ident,) = backend.list_identities()
	data = b"Origin: test\n-odd line\nSHA256:\n abc 12 main/Packages\n"
	doc = backend.clearsign(ident, data)
	assert doc.startswith(b"-----BEGIN ED25519 SIGNED MESSAGE-----\n")
	assert backend.verify_inline(ident, doc) == data.rstrip(b"\n")
	tampered = doc.replace(b"abc 12", b"abd 12")
	assert backend.verify_inline(ident, tampered) is None


def test_export_public_key_carries_kid(keyring: Path) -> None:
	backend = Ed25519Backend(keyring)
	(ident,) = backend.list_identities()
	exported = backend.export_public_key(ident).decode("ascii")
	assert exported.startswith("-----BEGIN ED25519 PUBLIC KEY-----\n")
	assert f"Key-Id: {ident.fingerprint}" in exported


def test_missing_keyring_is_unavailable(tmp_path: Path) -> None:
	backend = Ed25519Backend(tmp_path / "absent")
	assert not backend.is_available()
	assert backend.list_identities() == []


def test_malformed_key_file_names_the_file(tmp_path: Path) -> None:
	keyring = tmp_path / "keyring"
	keyring.mkdir()
	(keyring / "broken.key").write_text("not base64!!\n", encoding="utf-8")
	with pytest.raises(SigningIdentityError) as exc:
		Ed25519Backend(keyring).list_identities()
	assert exc.value.reason_code == "SIGNING_IDENTITY"
	assert exc.value.artifact_path == str(keyring / "broken.key")


def test_short_public_key_is_rejected(tmp_path: Path) -> None:
	keyring = tmp_path / "keyring"
	keyring.mkdir()
	(keyring / "short.pub").write_text("AAAA\n", encoding="utf-8")
	with pytest.raises(SigningIdentityError) as exc:
		Ed25519Backend(keyring).public_identities("short")
	assert exc.value.got == "3"
