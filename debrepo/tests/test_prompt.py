# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import io
import os

from debrepo.model import SigningIdentity
from debrepo.prompt import terminal_confirm
from debrepo.sign import Decision

IDENT = SigningIdentity(identifier="repo", label="Repo Key", fingerprint="ed25519:abcd")


def _ask(answer: str) -> tuple[Decision, str]:
	err = io.StringIO()
	decision = terminal_confirm(timeout=1, stdin=io.StringIO(answer), stderr=err)(IDENT)
	return decision, err.getvalue()


def test_yes_proceeds() -> None:
	assert _ask("y\n")[0] is Decision.PROCEED
	assert _ask("YES\n")[0] is Decision.PROCEED


def test_anything_else_aborts() -> None:
	assert _ask("n\n")[0] is Decision.ABORT
	assert _ask("\n")[0] is Decision.ABORT
	assert _ask("")[0] is Decision.ABORT


def test_prompt_names_the_key() -> None:
	_, text = _ask("n\n")
	assert "ed25519:abcd" in text
	assert "Repo Key" in text


def test_timeout_aborts() -> None:
	r, w = os.pipe()
	try:
		with os.fdopen(r, "r") as stdin:
			err = io.StringIO()
			decision = terminal_confirm(timeout=0.05, stdin=stdin, stderr=err)(IDENT)
	finally:
		os.close(w)
	assert decision is Decision.ABORT
	assert "no answer before timeout" in err.getvalue()
