# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

from debrepo.backend import SigningBackend, make_backend
from debrepo.config_v0 import RepoConfig, resolve_config
from debrepo.errors import RepoError
from debrepo.pipeline import PipelineReport, run_pipeline
from debrepo.prompt import always_proceed, terminal_confirm
from debrepo.sign import ConfirmFn

_STAGES_BY_CMD: dict[str, tuple[str, ...]] = {
	"build": ("index", "release", "sign", "verify"),
	"index": ("index", "release"),
	"sign": ("sign", "verify"),
	"verify": ("verify",),
}


def _add_common(p: argparse.ArgumentParser) -> None:
	p.add_argument("--config", type=Path, default=None, help="Path to a debrepo-config JSON file")
	p.add_argument("--repo-dir", type=Path, default=None, help="Repository root (default: ./docs/apt)")
	p.add_argument("--suite", type=str, default=None, help="Suite name (default: stable)")
	p.add_argument("--architectures", type=str, default=None, help="Space-separated architectures (default: 'amd64 arm64 all')")
	p.add_argument("--components", type=str, default=None, help="Space-separated components (default: main)")
	p.add_argument(
		"--backend",
		choices=["gpg", "ed25519"],
		default=None,
		help="Signing backend (default: gpg). ed25519 writes non-OpenPGP signatures that apt cannot verify",
	)
	p.add_argument("--gnupg-home", type=str, default=None, help="GnuPG home directory (default: $GNUPGHOME)")
	p.add_argument("--keyring-dir", type=str, default=None, help="Keyring directory for the ed25519 backend")
	p.add_argument("--key-id", type=str, default=None, help="Signing identity (default: $GPG_KEY_ID)")
	p.add_argument("--alt-key-id", type=str, default=None, help="Alternate signing identity (default: $GPG_SIGNING_KEY)")
	p.add_argument("--jobs", type=int, default=None, help="Worker threads for extraction, indexing and signing (default: 4)")
	p.add_argument("--json", action="store_true", help="Emit machine-readable JSON report")


def _add_index_opts(p: argparse.ArgumentParser) -> None:
	p.add_argument("--import-dir", type=Path, default=None, help="Copy *.deb from this directory into the pool first")
	p.add_argument("--extractor", choices=["python", "dpkg-deb"], default=None, help="Control metadata extractor")


def _add_sign_opts(p: argparse.ArgumentParser) -> None:
	p.add_argument("--yes", action="store_true", help="Answer the signing confirmation with yes")
	p.add_argument("--no-confirm", action="store_true", help="Do not require signing confirmation")
	p.add_argument("--confirm-timeout", type=float, default=None, help="Seconds to wait for confirmation (default: 60)")
	p.add_argument("--no-sign-packages", action="store_true", help="Sign Release only; remove package signatures")


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(prog="debrepo", description="Debian APT repository builder (index, release, sign, verify)")
	sub = p.add_subparsers(dest="cmd", required=True)

	build = sub.add_parser("build", help="Run the full pipeline: index, release, sign, verify")
	_add_common(build)
	_add_index_opts(build)
	_add_sign_opts(build)
	build.add_argument("--verify-packages", action="store_true", help="Also verify package signatures")

	index = sub.add_parser("index", help="Build the package indices and the Release file")
	_add_common(index)
	_add_index_opts(index)

	sign = sub.add_parser("sign", help="Sign an indexed repository and verify the result")
	_add_common(sign)
	_add_sign_opts(sign)
	sign.add_argument("--verify-packages", action="store_true", help="Also verify package signatures")

	verify = sub.add_parser("verify", help="Verify Release.gpg, InRelease and (optionally) package signatures")
	_add_common(verify)
	verify.add_argument("--verify-packages", action="store_true", help="Also verify package signatures")

	identities = sub.add_parser("identities", help="List signing identities available to the backend")
	_add_common(identities)
	return p


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
	out: dict[str, Any] = {
		"repo_dir": args.repo_dir,
		"suite": args.suite,
		"architectures": args.architectures,
		"components": args.components,
		"backend": args.backend,
		"gnupg_home": args.gnupg_home,
		"keyring_dir": args.keyring_dir,
		"key_id": args.key_id,
		"alt_key_id": args.alt_key_id,
		"jobs": args.jobs,
		"import_dir": getattr(args, "import_dir", None),
		"extractor": getattr(args, "extractor", None),
		"confirm_timeout": getattr(args, "confirm_timeout", None),
	}
	if args.suite is not None:
		out["codename"] = args.suite
	if getattr(args, "no_confirm", False):
		out["require_confirmation"] = False
	if getattr(args, "no_sign_packages", False):
		out["sign_packages"] = False
	if getattr(args, "verify_packages", False):
		out["verify_packages"] = True
	return out


def _emit_json(obj: dict[str, Any]) -> None:
	print(json.dumps(obj, sort_keys=True, separators=(",", ":")))


def _report_error(args: argparse.Namespace, err: RepoError) -> None:
	if args.json:
		_emit_json({"ok": False, "error": err.to_dict()})
	else:
		print(err.format_human(), file=sys.stderr)


def _print_progress(report: PipelineReport) -> None:
	if report.index is not None:
		print(
			f"debrepo: index: {report.index.package_count} package(s), {len(report.index.indices)} index(es)",
			file=sys.stderr,
		)
	if report.release is not None:
		print(f"debrepo: release: {len(report.release.checksums)} file(s) listed", file=sys.stderr)
	if report.sign is not None:
		s = report.sign
		print(
			f"debrepo: sign: {s.signed_packages}/{s.total_packages} package(s) signed with {s.identity.fingerprint}",
			file=sys.stderr,
		)
		for failure in sorted(s.failures, key=lambda f: f.artifact_path or ""):
			print(f"  - {failure.format_human()}", file=sys.stderr)
	if report.verify is not None:
		print(f"debrepo: verify: ok ({len(report.verify.checked)} signature(s))", file=sys.stderr)


def _confirm_fn(args: argparse.Namespace, config: RepoConfig) -> ConfirmFn | None:
	if getattr(args, "yes", False):
		return always_proceed
	return terminal_confirm(timeout=config.confirm_timeout)


def _backend_for(config: RepoConfig) -> SigningBackend:
	return make_backend(config.backend, gnupg_home=config.gnupg_home, keyring_dir=config.keyring_dir)


def main(argv: list[str] | None = None) -> int:
	p = _build_parser()
	args = p.parse_args(argv)

	try:
		config = resolve_config(config_path=args.config, env=os.environ, overrides=_overrides(args))
		stages = _STAGES_BY_CMD.get(args.cmd, ())
		needs_backend = args.cmd == "identities" or "sign" in stages or "verify" in stages
		backend = _backend_for(config) if needs_backend else None
	except RepoError as err:
		_report_error(args, err)
		return 2

	if args.cmd == "identities":
		if backend is None:
			return 2
		try:
			idents = backend.list_identities() if backend.is_available() else []
		except RepoError as err:
			_report_error(args, err)
			return 2
		if args.json:
			_emit_json({"backend": backend.name, "identities": [i.to_dict() for i in idents]})
		else:
			for ident in idents:
				print(f"{ident.fingerprint} {ident.identifier} {ident.label}".rstrip())
		return 0

	if args.cmd in _STAGES_BY_CMD:
		confirm = _confirm_fn(args, config) if "sign" in stages else None
		report = run_pipeline(config, backend, stages=stages, confirm=confirm)
		if args.json:
			_emit_json(report.to_dict())
			return 0 if report.ok else 2
		_print_progress(report)
		if report.error is not None:
			print(report.error.format_human(), file=sys.stderr)
		return 0 if report.ok else 2

	p.error(f"unknown command '{args.cmd}'")
	return 2
