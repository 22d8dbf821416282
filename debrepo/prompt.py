# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Interactive signing confirmation for the CLI.

The signing service never prompts; it calls a `ConfirmFn`. This module builds
one that asks on a terminal and treats anything but an explicit yes (including
a timeout or end of input) as ABORT.
"""

from __future__ import annotations

import select
import sys
from typing import TextIO

from debrepo.model import SigningIdentity
from debrepo.sign import ConfirmFn, Decision


def _readline(stream: TextIO, timeout: float) -> str | None:
	try:
		ready, _, _ = select.select([stream], [], [], timeout)
	except (OSError, ValueError, TypeError):
		# Not a selectable stream (e.g. an in-memory buffer): read without a deadline.
		return stream.readline()
	if not ready:
		return None
	return stream.readline()


def terminal_confirm(
	*,
	timeout: float = 60.0,
	stdin: TextIO | None = None,
	stderr: TextIO | None = None,
) -> ConfirmFn:
	def _confirm(identity: SigningIdentity) -> Decision:
		inp = stdin if stdin is not None else sys.stdin
		out = stderr if stderr is not None else sys.stderr
		print(f"debrepo: signing key {identity.fingerprint} ({identity.label or identity.identifier})", file=out)
		print(f"debrepo: sign repository with this key? [y/N] (timeout {timeout:g}s): ", end="", file=out, flush=True)
		answer = _readline(inp, timeout)
		if answer is None:
			print("", file=out)
			print("debrepo: no answer before timeout", file=out)
			return Decision.ABORT
		return Decision.PROCEED if answer.strip().lower() in ("y", "yes") else Decision.ABORT

	return _confirm


def always_proceed(identity: SigningIdentity) -> Decision:
	return Decision.PROCEED
