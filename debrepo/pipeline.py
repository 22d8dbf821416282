# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
The four-stage repository pipeline: index -> release -> sign -> verify.

Each stage reads the previous stage's committed output from disk. The first
fatal error stops the run; `run_pipeline` never raises for stage failures, it
returns a report whose `ok` is False and whose `error` names stage and artifact.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from debrepo.backend import SigningBackend
from debrepo.config_v0 import RepoConfig
from debrepo.errors import (
	InconsistentIndexError,
	RepoError,
	SigningFailure,
	SigningUnavailableError,
	VerificationFailedError,
)
from debrepo.extract import MetadataExtractor, make_extractor
from debrepo.index import build_indices, write_indices
from debrepo.model import PackageIndex, ReleaseDescriptor
from debrepo.pool import import_packages, scan_pool
from debrepo.release import build_release, write_release
from debrepo.sign import SUMMARY_NAME, ConfirmFn, SignReport, record_summary, sign_repository
from debrepo.verify import VerificationReport, resolve_verification_identity, verify_repository

STAGES = ("index", "release", "sign", "verify")


@dataclass(frozen=True)
class IndexResult:
	package_count: int
	indices: list[PackageIndex]
	index_files: list[str]

	def to_dict(self) -> dict[str, Any]:
		return {
			"package_count": self.package_count,
			"indices": [i.to_dict() for i in self.indices],
			"index_files": list(self.index_files),
		}


@dataclass
class PipelineReport:
	ok: bool = False
	completed: list[str] = field(default_factory=list)
	index: IndexResult | None = None
	release: ReleaseDescriptor | None = None
	sign: SignReport | None = None
	verify: VerificationReport | None = None
	error: RepoError | None = None

	def to_dict(self) -> dict[str, Any]:
		return {
			"ok": self.ok,
			"completed": list(self.completed),
			"index": self.index.to_dict() if self.index is not None else None,
			"release": (
				{"date": self.release.date, "files": [c.path for c in self.release.checksums]}
				if self.release is not None
				else None
			),
			"sign": self.sign.to_dict() if self.sign is not None else None,
			"verify": self.verify.to_dict() if self.verify is not None else None,
			"error": self.error.to_dict() if self.error is not None else None,
		}


def run_index(config: RepoConfig, *, extractor: MetadataExtractor | None = None) -> IndexResult:
	if config.import_dir is not None:
		import_packages(config.import_dir, config.pool_dir)
	packages = scan_pool(
		config.pool_dir,
		repo_dir=config.repo_dir,
		extractor=extractor or make_extractor(config.extractor),
		architectures=config.architectures,
		jobs=config.jobs,
	)
	indices = build_indices(packages, architectures=config.architectures, components=config.components, jobs=config.jobs)
	files = write_indices(indices, config.dists_dir)
	return IndexResult(package_count=len(packages), indices=indices, index_files=files)


def run_release(config: RepoConfig, *, expected: list[str] | None = None, now: datetime | None = None) -> ReleaseDescriptor:
	desc = build_release(config.dists_dir, config=config, expected=expected, now=now)
	write_release(desc, config.dists_dir)
	return desc


def run_verify(config: RepoConfig, backend: SigningBackend) -> VerificationReport:
	identity = resolve_verification_identity(
		backend,
		key_id=config.key_id,
		alt_key_id=config.alt_key_id,
		summary_path=config.repo_dir / SUMMARY_NAME,
	)
	return verify_repository(
		backend,
		identity,
		repo_dir=config.repo_dir,
		dists_dir=config.dists_dir,
		pool_dir=config.pool_dir,
		verify_packages=config.verify_packages,
	)


_STAGE_ERRORS: dict[str, type[RepoError]] = {
	"index": InconsistentIndexError,
	"release": InconsistentIndexError,
	"sign": SigningFailure,
	"verify": VerificationFailedError,
}


def _stage_error(stage: str, err: Exception) -> RepoError:
	"""Turn an unexpected error (I/O, malformed input) into the failing stage's RepoError."""
	path = getattr(err, "filename", None)
	return _STAGE_ERRORS[stage](str(err), stage=stage, artifact_path=str(path) if path is not None else None)


def run_pipeline(
	config: RepoConfig,
	backend: SigningBackend | None,
	*,
	stages: tuple[str, ...] = STAGES,
	confirm: ConfirmFn | None = None,
	extractor: MetadataExtractor | None = None,
	now: datetime | None = None,
) -> PipelineReport:
	"""
	Run `stages` in order. When both sign and verify run, `SIGNED.json` is
	only written once verification has passed.
	"""
	report = PipelineReport()
	stage = stages[0] if stages else "index"
	try:
		if backend is None and ("sign" in stages or "verify" in stages):
			raise SigningUnavailableError("no signing backend configured", stage="sign" if "sign" in stages else "verify")
		if "index" in stages:
			stage = "index"
			report.index = run_index(config, extractor=extractor)
			report.completed.append("index")
		if "release" in stages:
			stage = "release"
			expected = report.index.index_files if report.index is not None else None
			report.release = run_release(config, expected=expected, now=now)
			report.completed.append("release")
		if "sign" in stages:
			stage = "sign"
			report.sign = sign_repository(config, backend, confirm=confirm, now=now, summary="verify" not in stages)
			report.completed.append("sign")
		if "verify" in stages:
			stage = "verify"
			identity = report.sign.identity if report.sign is not None else None
			if identity is None:
				report.verify = run_verify(config, backend)
			else:
				report.verify = verify_repository(
					backend,
					identity,
					repo_dir=config.repo_dir,
					dists_dir=config.dists_dir,
					pool_dir=config.pool_dir,
					verify_packages=config.verify_packages,
				)
				stage = "sign"
				report.sign = record_summary(config, report.sign, now=now)
			report.completed.append("verify")
	except RepoError as err:
		report.error = err if err.stage is not None else replace(err, stage=stage)
		return report
	except (OSError, ValueError) as err:
		report.error = _stage_error(stage, err)
		return report
	report.ok = True
	return report
