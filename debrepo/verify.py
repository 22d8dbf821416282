# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Verification of a signed repository.

Only public-key operations are used. The detached and inline Release
signatures are checked independently and both must pass; package signatures
are checked only when asked to. Any failure raises VerificationFailedError.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from debrepo.backend import SigningBackend
from debrepo.errors import SigningIdentityError, VerificationFailedError
from debrepo.model import Signature, SignatureKind, SigningIdentity
from debrepo.pool import list_pool
from debrepo.release import RELEASE
from debrepo.sign import IN_RELEASE, PACKAGE_SIG_SUFFIX, RELEASE_GPG


@dataclass(frozen=True)
class VerificationReport:
	ok: bool
	identity: SigningIdentity
	checked: list[Signature]

	def to_dict(self) -> dict[str, Any]:
		return {
			"ok": self.ok,
			"identity": self.identity.to_dict(),
			"checked": [s.to_dict() for s in sorted(self.checked, key=lambda s: s.path)],
		}


def resolve_verification_identity(
	backend: SigningBackend,
	*,
	key_id: str | None,
	alt_key_id: str | None,
	summary_path: Path | None = None,
) -> SigningIdentity:
	"""
	Find the public identity to verify against.

	Uses `key_id`, then `alt_key_id`, then the fingerprint recorded in the
	signing summary. Only public keys are consulted.
	"""
	wanted = key_id or alt_key_id
	if not wanted and summary_path is not None and summary_path.is_file():
		try:
			summary = json.loads(summary_path.read_text(encoding="utf-8"))
		except json.JSONDecodeError as err:
			raise SigningIdentityError(
				"signing summary is not valid JSON", stage="verify", artifact_path=str(summary_path)
			) from err
		if isinstance(summary, dict) and isinstance(summary.get("fingerprint"), str):
			wanted = summary["fingerprint"]
	if not wanted:
		raise SigningIdentityError("no identity to verify against; set a key id or sign the repository first", stage="verify")
	matches: list[SigningIdentity] = []
	for ident in backend.public_identities(wanted):
		if all(m.fingerprint != ident.fingerprint for m in matches):
			matches.append(ident)
	if len(matches) != 1:
		what = "not found" if not matches else "ambiguous"
		raise SigningIdentityError(f"public key '{wanted}' is {what}", stage="verify", identity=wanted)
	return matches[0]


def _fail(message: str, path: Path, identity: SigningIdentity) -> VerificationFailedError:
	return VerificationFailedError(message, stage="verify", artifact_path=str(path), identity=identity.fingerprint)


def _read(path: Path, identity: SigningIdentity) -> bytes:
	if not path.is_file():
		raise _fail(f"{path.name} not found", path, identity)
	return path.read_bytes()


def verify_detached(backend: SigningBackend, identity: SigningIdentity, target: Path, sig_path: Path, *, repo_dir: Path) -> Signature:
	data = _read(target, identity)
	signature = _read(sig_path, identity)
	try:
		ok = backend.verify(identity, data, signature)
	except Exception as err:
		raise _fail(f"{sig_path.name} cannot be checked: {err}", sig_path, identity) from err
	if not ok:
		raise _fail(f"{sig_path.name} signature verification failed", sig_path, identity)
	return Signature(
		target=target.relative_to(repo_dir).as_posix(),
		identity=identity.fingerprint,
		kind=SignatureKind.DETACHED_ARMORED,
		path=sig_path.relative_to(repo_dir).as_posix(),
		verified=True,
	)


def verify_inline(backend: SigningBackend, identity: SigningIdentity, target: Path, doc_path: Path, *, repo_dir: Path) -> Signature:
	"""Check the inline document's signature and that it embeds `target`'s content."""
	expected = _read(target, identity)
	document = _read(doc_path, identity)
	try:
		text = backend.verify_inline(identity, document)
	except Exception as err:
		raise _fail(f"{doc_path.name} cannot be checked: {err}", doc_path, identity) from err
	if text is None:
		raise _fail(f"{doc_path.name} signature verification failed", doc_path, identity)
	if text.replace(b"\r\n", b"\n").rstrip(b"\n") != expected.replace(b"\r\n", b"\n").rstrip(b"\n"):
		raise _fail(f"{doc_path.name} does not embed the current {target.name}", doc_path, identity)
	return Signature(
		target=target.relative_to(repo_dir).as_posix(),
		identity=identity.fingerprint,
		kind=SignatureKind.INLINE,
		path=doc_path.relative_to(repo_dir).as_posix(),
		verified=True,
	)


def verify_repository(
	backend: SigningBackend,
	identity: SigningIdentity,
	*,
	repo_dir: Path,
	dists_dir: Path,
	pool_dir: Path,
	verify_packages: bool = False,
) -> VerificationReport:
	release = dists_dir / RELEASE
	checked = [
		verify_detached(backend, identity, release, dists_dir / RELEASE_GPG, repo_dir=repo_dir),
		verify_inline(backend, identity, release, dists_dir / IN_RELEASE, repo_dir=repo_dir),
	]
	if verify_packages:
		for deb in list_pool(pool_dir):
			sig = deb.with_name(deb.name + PACKAGE_SIG_SUFFIX)
			if not sig.exists():
				continue
			checked.append(verify_detached(backend, identity, deb, sig, repo_dir=repo_dir))
	return VerificationReport(ok=True, identity=identity, checked=checked)
