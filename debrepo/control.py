# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
deb822 control paragraphs, parsed and rendered with python-debian.

A paragraph is kept as an ordered tuple of `(field, value)` pairs so it can sit
inside frozen dataclasses. Multi-line values keep their continuation lines
verbatim (each starting with a space), so a paragraph parsed from a control
file renders back byte-for-byte.
"""

from __future__ import annotations

from typing import Iterable

from debian import deb822

Paragraph = tuple[tuple[str, str], ...]


def from_deb822(para: deb822.Deb822) -> Paragraph:
	return tuple((str(key), str(value)) for key, value in para.items())


def parse_paragraphs(text: str) -> list[Paragraph]:
	return [from_deb822(p) for p in deb822.Deb822.iter_paragraphs(text.splitlines(), use_apt_pkg=False)]


def parse_paragraph(text: str) -> Paragraph:
	paragraphs = parse_paragraphs(text)
	if len(paragraphs) != 1:
		raise ValueError(f"expected exactly one control paragraph, got {len(paragraphs)}")
	return paragraphs[0]


def get_field(paragraph: Paragraph, name: str) -> str | None:
	want = name.lower()
	for key, value in paragraph:
		if key.lower() == want:
			return value
	return None


def format_paragraph(fields: Iterable[tuple[str, str]]) -> str:
	"""Render fields as a paragraph (no trailing blank line)."""
	para = deb822.Deb822()
	for name, value in fields:
		para[name] = value
	return para.dump()
