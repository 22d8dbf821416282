# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import shutil
from datetime import datetime, timezone
from pathlib import Path

import pytest

from debrepo.config_v0 import RepoConfig
from debrepo.ed25519_backend import Ed25519Backend
from debrepo.errors import SigningIdentityError, VerificationFailedError
from debrepo.pipeline import run_pipeline, run_verify
from debrepo.release import RELEASE
from debrepo.sign import IN_RELEASE, RELEASE_GPG
from debrepo.verify import resolve_verification_identity, verify_repository

NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _signed(repo: Path, keyring: Path) -> RepoConfig:
	config = RepoConfig(repo_dir=repo, backend="ed25519", keyring_dir=str(keyring), require_confirmation=False)
	report = run_pipeline(config, Ed25519Backend(keyring), stages=("index", "release", "sign"), now=NOW)
	assert report.ok, report.error
	return config


def _verify(config: RepoConfig, keyring: Path, **kw):
	backend = Ed25519Backend(keyring)
	(ident,) = backend.list_identities()
	return verify_repository(
		backend, ident, repo_dir=config.repo_dir, dists_dir=config.dists_dir, pool_dir=config.pool_dir, **kw
	)


def test_fresh_signatures_verify(repo_with_pool: Path, keyring: Path) -> None:
	config = _signed(repo_with_pool, keyring)
	report = _verify(config, keyring, verify_packages=True)
	assert report.ok
	kinds = sorted((c.path, c.kind.value) for c in report.checked)
	assert ("dists/stable/InRelease", "inline") in kinds
	assert ("dists/stable/Release.gpg", "detached-armored") in kinds
	assert len(report.checked) == 2 + 3
	assert all(c.verified for c in report.checked)


def test_single_byte_change_in_release_fails(repo_with_pool: Path, keyring: Path) -> None:
	config = _signed(repo_with_pool, keyring)
	release = config.dists_dir / RELEASE
	data = bytearray(release.read_bytes())
	data[0] ^= 0x01
	release.write_bytes(bytes(data))
	with pytest.raises(VerificationFailedError) as exc:
		_verify(config, keyring)
	assert exc.value.stage == "verify"
	assert exc.value.artifact_path == str(config.dists_dir / RELEASE_GPG)


def test_inline_document_not_matching_release_fails(repo_with_pool: Path, keyring: Path) -> None:
	config = _signed(repo_with_pool, keyring)
	backend = Ed25519Backend(keyring)
	(ident,) = backend.list_identities()
	# A valid inline signature over different content.
	(config.dists_dir / IN_RELEASE).write_bytes(backend.clearsign(ident, b"Origin: elsewhere\n"))
	with pytest.raises(VerificationFailedError, match="does not embed"):
		_verify(config, keyring)


def test_missing_detached_signature_fails(repo_with_pool: Path, keyring: Path) -> None:
	config = _signed(repo_with_pool, keyring)
	(config.dists_dir / RELEASE_GPG).unlink()
	with pytest.raises(VerificationFailedError, match="not found"):
		_verify(config, keyring)


def test_tampered_package_fails_only_when_packages_are_checked(repo_with_pool: Path, keyring: Path) -> None:
	config = _signed(repo_with_pool, keyring)
	deb = repo_with_pool / "pool" / "hello_1.0-1_amd64.deb"
	deb.write_bytes(deb.read_bytes() + b"\0")
	assert _verify(config, keyring).ok
	with pytest.raises(VerificationFailedError) as exc:
		_verify(config, keyring, verify_packages=True)
	assert exc.value.artifact_path == str(deb.with_name(deb.name + ".asc"))


def test_run_verify_with_public_keys_only(repo_with_pool: Path, keyring: Path, tmp_path: Path) -> None:
	config = _signed(repo_with_pool, keyring)
	public_ring = tmp_path / "public"
	public_ring.mkdir()
	for pub in keyring.glob("*.pub"):
		shutil.copyfile(pub, public_ring / pub.name)
	report = run_verify(RepoConfig(repo_dir=repo_with_pool, backend="ed25519", keyring_dir=str(public_ring)), Ed25519Backend(public_ring))
	assert report.ok
	assert report.identity.identifier == "repo"


def test_verification_identity_needs_a_source(tmp_path: Path, keyring: Path) -> None:
	backend = Ed25519Backend(keyring)
	with pytest.raises(SigningIdentityError):
		resolve_verification_identity(backend, key_id=None, alt_key_id=None, summary_path=tmp_path / "absent.json")
	with pytest.raises(SigningIdentityError, match="not found"):
		resolve_verification_identity(backend, key_id="nobody", alt_key_id=None)
	assert resolve_verification_identity(backend, key_id="repo", alt_key_id=None).identifier == "repo"
