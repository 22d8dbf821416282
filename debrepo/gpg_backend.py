# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
GnuPG signing backend.

Shells out to `gpg` (batch mode, colon listings, status-fd parsing). The
signatures it writes are OpenPGP, which is what apt verifies `Release.gpg` and
`InRelease` with.
"""

from __future__ import annotations

import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Sequence

from debrepo.model import SigningIdentity

Runner = Callable[..., subprocess.CompletedProcess]


def parse_colon_listing(text: str) -> list[SigningIdentity]:
	"""
	Parse `gpg --with-colons --list-secret-keys` output.

	One identity per `sec` record: long key id from field 5, fingerprint from the
	first following `fpr` record, label from the first following `uid` record.
	"""
	out: list[SigningIdentity] = []
	key_id: str | None = None
	fpr: str | None = None
	uid: str | None = None

	def _flush() -> None:
		if key_id is not None and fpr is not None:
			out.append(SigningIdentity(identifier=key_id, label=uid or "", fingerprint=fpr))

	for line in text.splitlines():
		fields = line.split(":")
		kind = fields[0]
		if kind in ("sec", "pub"):
			_flush()
			key_id = fields[4] if len(fields) > 4 else None
			fpr = None
			uid = None
		elif kind == "fpr" and fpr is None and len(fields) > 9:
			fpr = fields[9]
		elif kind == "uid" and uid is None and len(fields) > 9:
			uid = fields[9]
	_flush()
	return [i for i in out if i.fingerprint]


def parse_validsig(status: str) -> set[str]:
	"""Fingerprints reported by `[GNUPG:] VALIDSIG` lines (signing key and primary key)."""
	fprs: set[str] = set()
	for line in status.splitlines():
		parts = line.split()
		if len(parts) >= 3 and parts[0] == "[GNUPG:]" and parts[1] == "VALIDSIG":
			fprs.add(parts[2].upper())
			if len(parts) >= 12:
				fprs.add(parts[-1].upper())
	return fprs


class GpgBackend:
	name = "gpg"

	def __init__(self, *, gnupg_home: str | None = None, gpg_binary: str = "gpg", runner: Runner = subprocess.run) -> None:
		self.gnupg_home = gnupg_home
		self.gpg_binary = gpg_binary
		self.runner = runner

	def _cmd(self, *args: str) -> list[str]:
		cmd = [self.gpg_binary, "--batch", "--no-tty"]
		if self.gnupg_home:
			cmd.extend(["--homedir", self.gnupg_home])
		cmd.extend(args)
		return cmd

	def _run(self, args: Sequence[str], *, input_bytes: bytes | None = None) -> subprocess.CompletedProcess:
		return self.runner(self._cmd(*args), input=input_bytes, capture_output=True, check=False)

	def is_available(self) -> bool:
		return shutil.which(self.gpg_binary) is not None

	def list_identities(self) -> list[SigningIdentity]:
		cp = self._run(["--with-colons", "--list-secret-keys"])
		if cp.returncode != 0:
			return []
		return parse_colon_listing(cp.stdout.decode("utf-8", errors="replace"))

	def find_identities(self, identifier: str) -> list[SigningIdentity]:
		cp = self._run(["--with-colons", "--list-secret-keys", identifier])
		if cp.returncode != 0:
			return []
		return parse_colon_listing(cp.stdout.decode("utf-8", errors="replace"))

	def public_identities(self, identifier: str) -> list[SigningIdentity]:
		cp = self._run(["--with-colons", "--list-keys", identifier])
		if cp.returncode != 0:
			return []
		return parse_colon_listing(cp.stdout.decode("utf-8", errors="replace"))

	def _sign(self, mode: str, identity: SigningIdentity, data: bytes) -> bytes:
		cp = self._run(
			["--yes", "--armor", mode, "--local-user", identity.fingerprint, "--output", "-"],
			input_bytes=data,
		)
		if cp.returncode != 0 or not cp.stdout:
			raise RuntimeError(f"gpg {mode} failed: {cp.stderr.decode('utf-8', errors='replace').strip()}")
		return cp.stdout

	def sign(self, identity: SigningIdentity, data: bytes) -> bytes:
		return self._sign("--detach-sign", identity, data)

	def clearsign(self, identity: SigningIdentity, data: bytes) -> bytes:
		return self._sign("--clearsign", identity, data)

	def _signed_by(self, identity: SigningIdentity, cp: subprocess.CompletedProcess) -> bool:
		if cp.returncode != 0:
			return False
		return identity.fingerprint.upper() in parse_validsig(cp.stdout.decode("utf-8", errors="replace"))

	def verify(self, identity: SigningIdentity, data: bytes, signature: bytes) -> bool:
		with tempfile.TemporaryDirectory(prefix="debrepo-gpg-") as tmp:
			sig_path = Path(tmp) / "sig.asc"
			sig_path.write_bytes(signature)
			cp = self._run(["--status-fd", "1", "--verify", str(sig_path), "-"], input_bytes=data)
		return self._signed_by(identity, cp)

	def verify_inline(self, identity: SigningIdentity, document: bytes) -> bytes | None:
		with tempfile.TemporaryDirectory(prefix="debrepo-gpg-") as tmp:
			out_path = Path(tmp) / "signed.txt"
			cp = self._run(["--status-fd", "1", "--output", str(out_path), "--decrypt", "-"], input_bytes=document)
			if not self._signed_by(identity, cp):
				return None
			return out_path.read_bytes()

	def export_public_key(self, identity: SigningIdentity) -> bytes:
		cp = self._run(["--armor", "--export", identity.fingerprint])
		if cp.returncode != 0 or not cp.stdout:
			raise RuntimeError(f"gpg --export failed for {identity.fingerprint}")
		return cp.stdout
