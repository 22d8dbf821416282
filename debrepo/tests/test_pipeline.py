# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import bz2
import gzip
import json
from datetime import datetime, timezone
from pathlib import Path

from debrepo.config_v0 import RepoConfig
from debrepo.crypto import canonical_json_bytes
from debrepo.ed25519_backend import Ed25519Backend
from debrepo.model import SigningIdentity
from debrepo.pipeline import run_pipeline
from debrepo.release import RELEASE, collect_index_files, parse_release
from debrepo.sign import SUMMARY_NAME

NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
LATER = datetime(2026, 1, 3, 0, 0, 0, tzinfo=timezone.utc)


def _config(repo: Path, keyring: Path, **kw) -> RepoConfig:
	return RepoConfig(repo_dir=repo, backend="ed25519", keyring_dir=str(keyring), require_confirmation=False, **kw)


def _snapshot(dists: Path) -> dict[str, bytes]:
	return {rel: (dists / rel).read_bytes() for rel in collect_index_files(dists)}


def test_full_pipeline_produces_a_verified_repository(repo_with_pool: Path, keyring: Path) -> None:
	config = _config(repo_with_pool, keyring)
	report = run_pipeline(config, Ed25519Backend(keyring), now=NOW)
	assert report.ok, report.error
	assert report.completed == ["index", "release", "sign", "verify"]
	assert report.index is not None and report.index.package_count == 3
	dists = repo_with_pool / "dists" / "stable"
	for name in ("Release", "Release.gpg", "InRelease"):
		assert (dists / name).is_file()
	obj = report.to_dict()
	assert obj["ok"] is True
	assert obj["error"] is None
	assert obj["sign"]["signed_packages"] == 3
	json.loads(canonical_json_bytes(obj))


def test_rebuild_from_unchanged_pool_is_byte_identical(repo_with_pool: Path, keyring: Path) -> None:
	config = _config(repo_with_pool, keyring)
	backend = Ed25519Backend(keyring)
	assert run_pipeline(config, backend, now=NOW).ok
	first = _snapshot(config.dists_dir)
	first_release = parse_release((config.dists_dir / RELEASE).read_text(encoding="utf-8"))
	assert run_pipeline(config, backend, now=LATER).ok
	second = _snapshot(config.dists_dir)
	second_release = parse_release((config.dists_dir / RELEASE).read_text(encoding="utf-8"))
	assert first == second
	assert first_release.checksums == second_release.checksums
	assert first_release.date != second_release.date


def test_rebuild_drops_removed_packages(repo_with_pool: Path, keyring: Path) -> None:
	config = _config(repo_with_pool, keyring, architectures=("amd64", "arm64", "all"))
	backend = Ed25519Backend(keyring)
	assert run_pipeline(config, backend, now=NOW).ok
	(repo_with_pool / "pool" / "hello_1.0-1_arm64.deb").unlink()
	report = run_pipeline(config, backend, now=NOW)
	assert report.ok, report.error
	arm = (config.dists_dir / "main" / "binary-arm64" / "Packages").read_bytes()
	assert arm == b""
	assert not (repo_with_pool / "pool" / "hello_1.0-1_arm64.deb.asc").exists()


def test_empty_pool_fails_without_output_tree(tmp_path: Path, keyring: Path) -> None:
	repo = tmp_path / "apt"
	(repo / "pool").mkdir(parents=True)
	report = run_pipeline(_config(repo, keyring), Ed25519Backend(keyring), now=NOW)
	assert not report.ok
	assert report.completed == []
	assert report.error is not None
	assert report.error.reason_code == "EMPTY_POOL"
	assert report.error.stage == "index"
	assert not (repo / "dists").exists()


def test_index_only_stages_need_no_backend(repo_with_pool: Path, keyring: Path) -> None:
	report = run_pipeline(_config(repo_with_pool, keyring), None, stages=("index", "release"), now=NOW)
	assert report.ok, report.error
	assert report.sign is None
	assert not (repo_with_pool / "dists" / "stable" / "InRelease").exists()


def test_signing_stage_without_backend_is_reported(repo_with_pool: Path, keyring: Path) -> None:
	report = run_pipeline(_config(repo_with_pool, keyring), None, now=NOW)
	assert not report.ok
	assert report.error is not None
	assert report.error.reason_code == "SIGNING_UNAVAILABLE"


class _RejectingBackend(Ed25519Backend):
	"""Signs normally but never accepts a detached signature."""

	def verify(self, identity: SigningIdentity, data: bytes, signature: bytes) -> bool:
		return False


def test_failed_verification_leaves_no_signing_summary(repo_with_pool: Path, keyring: Path) -> None:
	config = _config(repo_with_pool, keyring)
	assert run_pipeline(config, Ed25519Backend(keyring), now=NOW).ok
	assert (repo_with_pool / SUMMARY_NAME).is_file()
	report = run_pipeline(config, _RejectingBackend(keyring), now=LATER)
	assert not report.ok
	assert report.completed == ["index", "release", "sign"]
	assert report.error is not None
	assert report.error.reason_code == "VERIFICATION_FAILED"
	assert not (repo_with_pool / SUMMARY_NAME).exists()


def test_signing_summary_written_after_verification(repo_with_pool: Path, keyring: Path) -> None:
	report = run_pipeline(_config(repo_with_pool, keyring), Ed25519Backend(keyring), now=NOW)
	assert report.ok, report.error
	assert report.sign is not None
	assert report.sign.summary_path == str(repo_with_pool / SUMMARY_NAME)
	summary = json.loads((repo_with_pool / SUMMARY_NAME).read_text(encoding="utf-8"))
	assert summary["fingerprint"] == report.sign.identity.fingerprint


def test_malformed_key_file_is_reported_not_raised(repo_with_pool: Path, keyring: Path) -> None:
	(keyring / "broken.key").write_text("not base64!!\n", encoding="utf-8")
	report = run_pipeline(_config(repo_with_pool, keyring), Ed25519Backend(keyring), now=NOW)
	assert not report.ok
	assert report.completed == ["index", "release"]
	assert report.error is not None
	assert report.error.reason_code == "SIGNING_IDENTITY"
	assert report.error.stage == "sign"
	assert report.error.artifact_path == str(keyring / "broken.key")


def test_io_error_is_reported_with_stage_and_path(repo_with_pool: Path, keyring: Path) -> None:
	(repo_with_pool / "dists").write_text("not a directory\n", encoding="utf-8")
	report = run_pipeline(_config(repo_with_pool, keyring), Ed25519Backend(keyring), now=NOW)
	assert not report.ok
	assert report.completed == []
	assert report.error is not None
	assert report.error.stage == "index"
	assert report.error.reason_code == "INCONSISTENT_INDEX"
	assert report.error.artifact_path is not None
	assert report.error.artifact_path.startswith(str(repo_with_pool / "dists"))


def test_compressed_indices_on_disk_match_plain_index(repo_with_pool: Path, keyring: Path) -> None:
	config = _config(repo_with_pool, keyring)
	assert run_pipeline(config, None, stages=("index", "release"), now=NOW).ok
	for arch in ("amd64", "arm64", "all"):
		plain = config.dists_dir / "main" / f"binary-{arch}" / "Packages"
		text = plain.read_bytes()
		assert text
		assert gzip.decompress(plain.with_name("Packages.gz").read_bytes()) == text
		bz = plain.with_name("Packages.bz2")
		if bz.exists():
			assert bz2.decompress(bz.read_bytes()) == text
