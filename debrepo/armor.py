# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
ASCII armor and the cleartext signature framework.

Pinned layout (modelled on RFC 4880 §6.2 and §7):

	-----BEGIN <LABEL>-----
	Header: value
	<blank line>
	<base64, 64 columns>
	-----END <LABEL>-----

A cleartext document is `-----BEGIN <LABEL> SIGNED MESSAGE-----`, its headers,
a blank line, the dash-escaped text and a `<LABEL> SIGNATURE` armored block. The signed
bytes are the text lines joined with "\\n", without the line ending that
precedes the signature block.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass

_B64_COLUMNS = 64


def _begin(label: str) -> str:
	return f"-----BEGIN {label}-----"


def _end(label: str) -> str:
	return f"-----END {label}-----"


def armor(label: str, payload: bytes, headers: dict[str, str] | None = None) -> bytes:
	lines = [_begin(label)]
	for key, value in (headers or {}).items():
		lines.append(f"{key}: {value}")
	lines.append("")
	b64 = base64.b64encode(payload).decode("ascii")
	lines.extend(b64[i : i + _B64_COLUMNS] for i in range(0, len(b64), _B64_COLUMNS))
	lines.append(_end(label))
	return ("\n".join(lines) + "\n").encode("ascii")


def _parse_headers(lines: list[str], start: int) -> tuple[dict[str, str], int]:
	headers: dict[str, str] = {}
	i = start
	while i < len(lines) and lines[i].strip():
		key, sep, value = lines[i].partition(":")
		if not sep:
			raise ValueError(f"malformed armor header: {lines[i]!r}")
		headers[key.strip()] = value.strip()
		i += 1
	if i >= len(lines):
		raise ValueError("armor headers are not terminated by a blank line")
	return headers, i + 1


def dearmor(data: bytes, label: str) -> tuple[dict[str, str], bytes]:
	"""Decode one armored block. Returns (headers, payload)."""
	try:
		text = data.decode("ascii")
	except UnicodeDecodeError as err:
		raise ValueError("armored data is not ASCII") from err
	lines = text.splitlines()
	try:
		start = lines.index(_begin(label))
		end = lines.index(_end(label), start)
	except ValueError as err:
		raise ValueError(f"no '{label}' armor block found") from err
	headers, body_start = _parse_headers(lines[:end], start + 1)
	body = "".join(line.strip() for line in lines[body_start:end])
	try:
		payload = base64.b64decode(body.encode("ascii"), validate=True)
	except Exception as err:
		raise ValueError("armored payload is not valid base64") from err
	return headers, payload


def canonical_text(content: bytes) -> bytes:
	"""The bytes a cleartext signature covers for `content`."""
	text = content.replace(b"\r\n", b"\n")
	if text.endswith(b"\n"):
		text = text[:-1]
	return text


@dataclass(frozen=True)
class Cleartext:
	headers: dict[str, str]
	text: bytes
	signature_block: bytes


def encode_cleartext(label: str, content: bytes, signature_block: bytes, headers: dict[str, str] | None = None) -> bytes:
	out: list[bytes] = [_begin(f"{label} SIGNED MESSAGE").encode("ascii")]
	for key, value in (headers or {}).items():
		out.append(f"{key}: {value}".encode("utf-8"))
	out.append(b"")
	for line in canonical_text(content).split(b"\n"):
		out.append(b"- " + line if line.startswith(b"-") else line)
	return b"\n".join(out) + b"\n" + signature_block


def decode_cleartext(document: bytes, label: str) -> Cleartext:
	lines = document.split(b"\n")
	begin = _begin(f"{label} SIGNED MESSAGE").encode("ascii")
	sig_begin = _begin(f"{label} SIGNATURE").encode("ascii")
	if not lines or lines[0].rstrip(b"\r") != begin:
		raise ValueError("document does not start with a signed message header")
	headers: dict[str, str] = {}
	i = 1
	while i < len(lines) and lines[i].strip():
		key, sep, value = lines[i].decode("utf-8").partition(":")
		if not sep:
			raise ValueError("malformed signed message header")
		headers[key.strip()] = value.strip()
		i += 1
	i += 1
	body: list[bytes] = []
	while i < len(lines) and lines[i].rstrip(b"\r") != sig_begin:
		line = lines[i]
		if line.startswith(b"- "):
			line = line[2:]
		body.append(line)
		i += 1
	if i >= len(lines):
		raise ValueError("signed message has no signature block")
	return Cleartext(headers=headers, text=b"\n".join(body), signature_block=b"\n".join(lines[i:]))
