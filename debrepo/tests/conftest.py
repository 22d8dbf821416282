# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import base64
import io
import os
import tarfile
from pathlib import Path
from typing import Callable

import pytest

from debrepo.crypto import compute_ed25519_kid, ed25519_public_from_seed


def _ar_member(name: str, data: bytes) -> bytes:
	header = f"{name + '/':<16}{0:<12}{0:<6}{0:<6}{'100644':<8}{len(data):<10}`\n".encode("ascii")
	assert len(header) == 60
	pad = b"\n" if len(data) % 2 else b""
	return header + data + pad


def _tar_gz(files: dict[str, bytes]) -> bytes:
	buf = io.BytesIO()
	with tarfile.open(fileobj=buf, mode="w:gz") as tf:
		for name, data in files.items():
			info = tarfile.TarInfo(name)
			info.size = len(data)
			info.mtime = 0
			tf.addfile(info, io.BytesIO(data))
	return buf.getvalue()


def build_deb(
	path: Path,
	*,
	package: str,
	version: str,
	architecture: str,
	section: str | None = None,
	description: str = "test package",
	extra: str = "",
) -> Path:
	"""Write a minimal binary package (debian-binary, control.tar.gz, data.tar.gz)."""
	control = f"Package: {package}\nVersion: {version}\nArchitecture: {architecture}\nMaintainer: Test <test@example.invalid>\n"
	if section is not None:
		control += f"Section: {section}\n"
	control += f"Description: {description}\n"
	control += extra
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_bytes(
		b"!<arch>\n"
		+ _ar_member("debian-binary", b"2.0\n")
		+ _ar_member("control.tar.gz", _tar_gz({"./control": control.encode("utf-8")}))
		+ _ar_member("data.tar.gz", _tar_gz({f"./usr/share/doc/{package}/README": f"{package} {version}\n".encode("utf-8")}))
	)
	return path


@pytest.fixture
def make_deb() -> Callable[..., Path]:
	return build_deb


def write_ed25519_key(keyring: Path, name: str, *, seed: bytes | None = None, with_secret: bool = True) -> str:
	"""Add `<name>.pub` (and `<name>.key`) to a keyring directory. Returns the kid."""
	seed = seed if seed is not None else os.urandom(32)
	pub = ed25519_public_from_seed(seed)
	keyring.mkdir(parents=True, exist_ok=True)
	if with_secret:
		(keyring / f"{name}.key").write_text(base64.b64encode(seed).decode("ascii") + "\n", encoding="utf-8")
	(keyring / f"{name}.pub").write_text(base64.b64encode(pub).decode("ascii") + "\n", encoding="utf-8")
	return compute_ed25519_kid(pub)


@pytest.fixture
def keyring(tmp_path: Path) -> Path:
	"""An Ed25519 keyring with a single key named `repo`."""
	path = tmp_path / "keyring"
	write_ed25519_key(path, "repo")
	return path


@pytest.fixture
def repo_with_pool(tmp_path: Path) -> Path:
	"""A repository root whose pool holds one amd64, one arm64 and one `all` package."""
	repo = tmp_path / "apt"
	build_deb(repo / "pool" / "hello_1.0-1_amd64.deb", package="hello", version="1.0-1", architecture="amd64")
	build_deb(repo / "pool" / "hello_1.0-1_arm64.deb", package="hello", version="1.0-1", architecture="arm64")
	build_deb(repo / "pool" / "hello-doc_1.0-1_all.deb", package="hello-doc", version="1.0-1", architecture="all", section="doc")
	return repo


@pytest.fixture
def add_key() -> Callable[..., str]:
	return write_ed25519_key
