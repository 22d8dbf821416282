# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Repository configuration (v0).

The pipeline takes an explicit `RepoConfig`; nothing below the CLI reads the
process environment. Precedence when the CLI assembles one:

	command-line flags > environment > config file > defaults

Config file format (pinned):

	{"format": "debrepo-config", "version": 0, "suite": "stable", ...}

Unknown top-level fields are rejected; `"x"` is reserved for extensions.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from debrepo.errors import ConfigError
from debrepo.model import ARCH_ALL


@dataclass(frozen=True)
class RepoConfig:
	repo_dir: Path = Path("docs") / "apt"
	suite: str = "stable"
	codename: str = "stable"
	origin: str = "GH-Repos"
	label: str = "GH-Repos APT Repository"
	version: str = "1.0"
	description: str = "APT repository hosted on GitHub Pages"
	architectures: tuple[str, ...] = ("amd64", "arm64", ARCH_ALL)
	components: tuple[str, ...] = ("main",)
	key_id: str | None = None
	alt_key_id: str | None = None
	require_confirmation: bool = True
	confirm_timeout: float = 60.0
	sign_packages: bool = True
	verify_packages: bool = False
	jobs: int = 4
	backend: str = "gpg"
	gnupg_home: str | None = None
	keyring_dir: str | None = None
	extractor: str = "python"
	public_key_name: str = "repo-pubkey.asc"
	import_dir: Path | None = None

	@property
	def pool_dir(self) -> Path:
		return self.repo_dir / "pool"

	@property
	def dists_dir(self) -> Path:
		return self.repo_dir / "dists" / self.suite

	@property
	def default_architecture(self) -> str | None:
		"""First declared concrete architecture; receives `all` packages too."""
		for arch in self.architectures:
			if arch != ARCH_ALL:
				return arch
		return None

	def validate(self) -> RepoConfig:
		if not self.architectures:
			raise ConfigError("at least one architecture must be declared", stage="config")
		if len(set(self.architectures)) != len(self.architectures):
			raise ConfigError("architectures must be unique", stage="config")
		if not self.components or len(set(self.components)) != len(self.components):
			raise ConfigError("components must be a non-empty list of unique names", stage="config")
		for name in (*self.architectures, *self.components, self.suite):
			if not name or "/" in name or name in (".", "..") or any(c.isspace() for c in name):
				raise ConfigError(f"invalid name '{name}' (no whitespace, '/', '.' or '..')", stage="config")
		if self.jobs < 1:
			raise ConfigError("jobs must be >= 1", stage="config")
		if self.confirm_timeout <= 0:
			raise ConfigError("confirm_timeout must be > 0", stage="config")
		if self.backend not in ("gpg", "ed25519"):
			raise ConfigError(f"unknown signing backend '{self.backend}'", stage="config")
		if self.extractor not in ("python", "dpkg-deb"):
			raise ConfigError(f"unknown metadata extractor '{self.extractor}'", stage="config")
		return self


_STR_FIELDS = {"suite", "codename", "origin", "label", "version", "description", "backend", "extractor", "public_key_name"}
_OPT_STR_FIELDS = {"key_id", "alt_key_id", "gnupg_home", "keyring_dir"}
_BOOL_FIELDS = {"require_confirmation", "sign_packages", "verify_packages"}
_LIST_FIELDS = {"architectures", "components"}
_PATH_FIELDS = {"repo_dir", "import_dir"}


def _coerce(name: str, value: Any, *, where: str) -> Any:
	if name in _STR_FIELDS:
		if not isinstance(value, str) or not value:
			raise ConfigError(f"{where}: '{name}' must be a non-empty string", stage="config")
		return value
	if name in _OPT_STR_FIELDS:
		if value is not None and not isinstance(value, str):
			raise ConfigError(f"{where}: '{name}' must be a string or null", stage="config")
		return value or None
	if name in _BOOL_FIELDS:
		if not isinstance(value, bool):
			raise ConfigError(f"{where}: '{name}' must be a boolean", stage="config")
		return value
	if name in _LIST_FIELDS:
		if isinstance(value, str):
			value = value.split()
		if not isinstance(value, (list, tuple)) or any(not isinstance(v, str) or not v for v in value):
			raise ConfigError(f"{where}: '{name}' must be a list of strings", stage="config")
		return tuple(value)
	if name in _PATH_FIELDS:
		if value is None and name == "import_dir":
			return None
		if not isinstance(value, (str, Path)) or not str(value):
			raise ConfigError(f"{where}: '{name}' must be a path string", stage="config")
		return Path(value)
	if name == "jobs":
		if isinstance(value, bool) or not isinstance(value, int):
			raise ConfigError(f"{where}: 'jobs' must be an integer", stage="config")
		return value
	if name == "confirm_timeout":
		if isinstance(value, bool) or not isinstance(value, (int, float)):
			raise ConfigError(f"{where}: 'confirm_timeout' must be a number", stage="config")
		return float(value)
	raise ConfigError(f"{where}: unknown field '{name}'", stage="config")


_FIELD_NAMES = {f.name for f in fields(RepoConfig)}


def load_config_v0(path: Path) -> dict[str, Any]:
	"""Load a config file and return its validated field overrides."""
	try:
		data = json.loads(path.read_text(encoding="utf-8"))
	except FileNotFoundError as err:
		raise ConfigError("config file not found", stage="config", artifact_path=str(path)) from err
	except json.JSONDecodeError as err:
		raise ConfigError(f"config file is not valid JSON: {err}", stage="config", artifact_path=str(path)) from err
	if not isinstance(data, dict):
		raise ConfigError("config file must be a JSON object", stage="config", artifact_path=str(path))
	if data.get("format") != "debrepo-config" or data.get("version") != 0:
		raise ConfigError("unsupported config format/version", stage="config", artifact_path=str(path))
	if "x" in data and not isinstance(data.get("x"), dict):
		raise ConfigError("config top-level 'x' must be an object", stage="config", artifact_path=str(path))
	unknown = sorted(set(data.keys()) - _FIELD_NAMES - {"format", "version", "x"})
	if unknown:
		raise ConfigError(
			f"config has unknown top-level fields: {', '.join(unknown)}", stage="config", artifact_path=str(path)
		)
	out: dict[str, Any] = {}
	for name, value in data.items():
		if name in ("format", "version", "x"):
			continue
		out[name] = _coerce(name, value, where=str(path))
	repo_dir = out.get("repo_dir")
	if isinstance(repo_dir, Path) and not repo_dir.is_absolute():
		out["repo_dir"] = path.parent / repo_dir
	import_dir = out.get("import_dir")
	if isinstance(import_dir, Path) and not import_dir.is_absolute():
		out["import_dir"] = path.parent / import_dir
	return out


def config_from_env(env: Mapping[str, str]) -> dict[str, Any]:
	"""
	Overrides taken from the environment.

	GPG_KEY_ID (primary identity), GPG_SIGNING_KEY (alternate identity) and
	GPG_SIGN_CONFIRM ("true" requires confirmation, anything else disables it).
	"""
	out: dict[str, Any] = {}
	if env.get("GPG_KEY_ID"):
		out["key_id"] = env["GPG_KEY_ID"]
	if env.get("GPG_SIGNING_KEY"):
		out["alt_key_id"] = env["GPG_SIGNING_KEY"]
	if "GPG_SIGN_CONFIRM" in env:
		out["require_confirmation"] = env["GPG_SIGN_CONFIRM"].strip().lower() == "true"
	if env.get("GNUPGHOME"):
		out["gnupg_home"] = env["GNUPGHOME"]
	return out


def resolve_config(
	*,
	config_path: Path | None = None,
	env: Mapping[str, str] | None = None,
	overrides: Mapping[str, Any] | None = None,
) -> RepoConfig:
	merged: dict[str, Any] = {}
	if config_path is not None:
		merged.update(load_config_v0(config_path))
	if env is not None:
		merged.update(config_from_env(env))
	for name, value in (overrides or {}).items():
		if value is None:
			continue
		merged[name] = _coerce(name, value, where="override")
	return replace(RepoConfig(), **merged).validate()
