# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True)
class RepoError(Exception):
	"""
	A structured, serializable error for repository tooling.

	Every subclass pins a stable `reason_code`. `stage` names the pipeline stage
	that failed ("index" | "release" | "sign" | "verify" | "config") and
	`artifact_path` the file it was working on, when there is one.
	"""

	message: str
	stage: str | None = None
	artifact_path: str | None = None
	identity: str | None = None
	expected: str | None = None
	got: str | None = None

	reason_code: ClassVar[str] = "REPO_ERROR"

	def __str__(self) -> str:
		return self.format_human()

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"message": self.message,
			"stage": self.stage,
			"artifact_path": self.artifact_path,
			"identity": self.identity,
			"expected": self.expected,
			"got": self.got,
		}

	def format_human(self) -> str:
		parts: list[str] = [f"[{self.reason_code}] {self.message}"]
		if self.stage:
			parts.append(f"stage={self.stage}")
		if self.artifact_path:
			parts.append(f"artifact_path={self.artifact_path}")
		if self.identity:
			parts.append(f"identity={self.identity}")
		if self.expected or self.got:
			parts.append(f"expected={self.expected}")
			parts.append(f"got={self.got}")
		return " ".join(parts)


class ConfigError(RepoError):
	reason_code = "CONFIG_INVALID"


class EmptyPoolError(RepoError):
	reason_code = "EMPTY_POOL"


class MetadataExtractionError(RepoError):
	reason_code = "METADATA_EXTRACTION_FAILED"


class InconsistentIndexError(RepoError):
	reason_code = "INCONSISTENT_INDEX"


class SigningUnavailableError(RepoError):
	reason_code = "SIGNING_UNAVAILABLE"


class SigningIdentityError(RepoError):
	reason_code = "SIGNING_IDENTITY"


class SigningFailure(RepoError):
	"""Signing one artifact failed. Recorded for packages, fatal for Release."""

	reason_code = "SIGNING_FAILED"


class SigningAborted(RepoError):
	reason_code = "SIGNING_ABORTED"


class VerificationFailedError(RepoError):
	reason_code = "VERIFICATION_FAILED"
