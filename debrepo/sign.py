# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from debrepo.backend import SigningBackend
from debrepo.config_v0 import RepoConfig
from debrepo.crypto import canonical_json_bytes
from debrepo.errors import (
	SigningAborted,
	SigningFailure,
	SigningIdentityError,
	SigningUnavailableError,
)
from debrepo.model import Signature, SignatureKind, SigningIdentity
from debrepo.pool import list_pool
from debrepo.release import RELEASE, check_release_consistency, format_date

RELEASE_GPG = "Release.gpg"
IN_RELEASE = "InRelease"
PACKAGE_SIG_SUFFIX = ".asc"
SUMMARY_NAME = "SIGNED.json"


class Decision(str, Enum):
	PROCEED = "proceed"
	ABORT = "abort"


ConfirmFn = Callable[[SigningIdentity], Decision]


@dataclass(frozen=True)
class SignReport:
	identity: SigningIdentity
	signatures: list[Signature]
	signed_packages: int
	total_packages: int
	failures: list[SigningFailure]
	summary_path: str | None

	def to_dict(self) -> dict[str, Any]:
		return {
			"identity": self.identity.to_dict(),
			"signatures": [s.to_dict() for s in sorted(self.signatures, key=lambda s: s.path)],
			"signed_packages": self.signed_packages,
			"total_packages": self.total_packages,
			"failures": [f.to_dict() for f in sorted(self.failures, key=lambda f: f.artifact_path or "")],
			"summary_path": self.summary_path,
		}


def _dedupe(identities: list[SigningIdentity]) -> list[SigningIdentity]:
	seen: set[str] = set()
	out: list[SigningIdentity] = []
	for ident in identities:
		if ident.fingerprint in seen:
			continue
		seen.add(ident.fingerprint)
		out.append(ident)
	return out


def resolve_identity(backend: SigningBackend, *, key_id: str | None, alt_key_id: str | None) -> SigningIdentity:
	"""
	Pick the signing identity.

	Policy: `key_id` if set, else `alt_key_id` if set, else the first identity
	the backend lists. An explicit identifier must match exactly one key.
	"""
	explicit = key_id or alt_key_id
	if explicit:
		what = "key_id" if key_id else "alt_key_id"
		matches = _dedupe(backend.find_identities(explicit))
		if not matches:
			raise SigningIdentityError(f"signing key '{explicit}' ({what}) not found or not usable", stage="sign", identity=explicit)
		if len(matches) > 1:
			fprs = ", ".join(m.fingerprint for m in matches)
			raise SigningIdentityError(f"signing key '{explicit}' ({what}) is ambiguous: {fprs}", stage="sign", identity=explicit)
		return matches[0]
	candidates = _dedupe(backend.list_identities())
	if not candidates:
		raise SigningIdentityError(f"no secret signing keys available via {backend.name}", stage="sign")
	return candidates[0]


def _write_atomic(path: Path, data: bytes) -> None:
	tmp = path.with_name(path.name + f".tmp.{os.getpid()}")
	tmp.write_bytes(data)
	os.replace(tmp, path)


def _remove_stale_package_signatures(pool_dir: Path, keep: set[str]) -> None:
	if not pool_dir.is_dir():
		return
	for sig in pool_dir.glob(f"*{PACKAGE_SIG_SUFFIX}"):
		if sig.name not in keep:
			sig.unlink()


def sign_package(backend: SigningBackend, identity: SigningIdentity, deb: Path, *, repo_dir: Path) -> Signature:
	"""Write `<deb>.asc`, replacing any previous signature first."""
	sig_path = deb.with_name(deb.name + PACKAGE_SIG_SUFFIX)
	sig_path.unlink(missing_ok=True)
	try:
		sig = backend.sign(identity, deb.read_bytes())
		_write_atomic(sig_path, sig)
	except Exception as err:
		sig_path.unlink(missing_ok=True)
		raise SigningFailure(
			f"cannot sign package: {err}", stage="sign", artifact_path=str(deb), identity=identity.fingerprint
		) from err
	return Signature(
		target=deb.relative_to(repo_dir).as_posix(),
		identity=identity.fingerprint,
		kind=SignatureKind.DETACHED_ARMORED,
		path=sig_path.relative_to(repo_dir).as_posix(),
	)


def sign_packages(
	backend: SigningBackend,
	identity: SigningIdentity,
	debs: list[Path],
	*,
	repo_dir: Path,
	jobs: int = 4,
) -> tuple[list[Signature], list[SigningFailure]]:
	"""Sign every package; a failure is recorded and the rest continue."""

	def _one(deb: Path) -> Signature | SigningFailure:
		try:
			return sign_package(backend, identity, deb, repo_dir=repo_dir)
		except SigningFailure as failure:
			return failure

	with ThreadPoolExecutor(max_workers=jobs) as pool:
		results = list(pool.map(_one, debs))
	signatures = [r for r in results if isinstance(r, Signature)]
	failures = [r for r in results if isinstance(r, SigningFailure)]
	return signatures, failures


def sign_release(backend: SigningBackend, identity: SigningIdentity, *, dists_dir: Path, repo_dir: Path) -> list[Signature]:
	"""
	Write `Release.gpg` and `InRelease` for `dists_dir/Release`.

	Old signatures are removed first. Any failure is fatal: the caller must not
	publish the tree.
	"""
	release_path = dists_dir / RELEASE
	gpg_path = dists_dir / RELEASE_GPG
	inrelease_path = dists_dir / IN_RELEASE
	gpg_path.unlink(missing_ok=True)
	inrelease_path.unlink(missing_ok=True)
	data = release_path.read_bytes()
	out: list[Signature] = []
	for path, kind, produce in (
		(gpg_path, SignatureKind.DETACHED_ARMORED, backend.sign),
		(inrelease_path, SignatureKind.INLINE, backend.clearsign),
	):
		try:
			_write_atomic(path, produce(identity, data))
		except Exception as err:
			gpg_path.unlink(missing_ok=True)
			inrelease_path.unlink(missing_ok=True)
			raise SigningFailure(
				f"cannot create {path.name}: {err}", stage="sign", artifact_path=str(path), identity=identity.fingerprint
			) from err
		out.append(
			Signature(
				target=release_path.relative_to(repo_dir).as_posix(),
				identity=identity.fingerprint,
				kind=kind,
				path=path.relative_to(repo_dir).as_posix(),
			)
		)
	return out


def write_summary(
	path: Path,
	*,
	identity: SigningIdentity,
	signed_packages: int,
	total_packages: int,
	failures: list[SigningFailure],
	now: datetime | None = None,
) -> None:
	obj = {
		"format": "debrepo-signed",
		"version": 0,
		"signed_at": format_date(now or datetime.now(timezone.utc)),
		"key_id": identity.identifier,
		"key_label": identity.label,
		"fingerprint": identity.fingerprint,
		"signed_packages": signed_packages,
		"total_packages": total_packages,
		"failures": [f.to_dict() for f in sorted(failures, key=lambda f: f.artifact_path or "")],
	}
	_write_atomic(path, canonical_json_bytes(obj) + b"\n")


def record_summary(config: RepoConfig, report: SignReport, *, now: datetime | None = None) -> SignReport:
	path = config.repo_dir / SUMMARY_NAME
	write_summary(
		path,
		identity=report.identity,
		signed_packages=report.signed_packages,
		total_packages=report.total_packages,
		failures=report.failures,
		now=now,
	)
	return replace(report, summary_path=str(path))


def sign_repository(
	config: RepoConfig,
	backend: SigningBackend,
	*,
	confirm: ConfirmFn | None = None,
	now: datetime | None = None,
	summary: bool = True,
) -> SignReport:
	"""
	Sign a built repository.

	Order: identity, Release consistency, confirmation, package signatures,
	Release signatures, public key export, summary. Nothing is written before
	the confirmation decision, and a previous summary is removed right after it.
	With `summary=False` the caller records the summary (via `record_summary`)
	once the signatures have been verified.
	"""
	if not backend.is_available():
		raise SigningUnavailableError(f"signing backend '{backend.name}' is not available", stage="sign")
	identity = resolve_identity(backend, key_id=config.key_id, alt_key_id=config.alt_key_id)
	check_release_consistency(config.dists_dir, stage="sign")

	if config.require_confirmation:
		decision = confirm(identity) if confirm is not None else Decision.ABORT
		if decision is not Decision.PROCEED:
			raise SigningAborted("signing cancelled", stage="sign", identity=identity.fingerprint)

	repo_dir = config.repo_dir
	(repo_dir / SUMMARY_NAME).unlink(missing_ok=True)
	debs = list_pool(config.pool_dir)
	signatures: list[Signature] = []
	failures: list[SigningFailure] = []
	if config.sign_packages:
		_remove_stale_package_signatures(config.pool_dir, {d.name + PACKAGE_SIG_SUFFIX for d in debs})
		signatures, failures = sign_packages(backend, identity, debs, repo_dir=repo_dir, jobs=config.jobs)
	else:
		_remove_stale_package_signatures(config.pool_dir, set())
	signed_count = len(signatures)

	signatures.extend(sign_release(backend, identity, dists_dir=config.dists_dir, repo_dir=repo_dir))

	try:
		_write_atomic(repo_dir / config.public_key_name, backend.export_public_key(identity))
	except Exception as err:
		raise SigningFailure(
			f"cannot export public key: {err}",
			stage="sign",
			artifact_path=str(repo_dir / config.public_key_name),
			identity=identity.fingerprint,
		) from err

	report = SignReport(
		identity=identity,
		signatures=signatures,
		signed_packages=signed_count,
		total_packages=len(debs),
		failures=failures,
		summary_path=None,
	)
	return record_summary(config, report, now=now) if summary else report
