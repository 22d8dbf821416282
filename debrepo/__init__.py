# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
debrepo: Debian APT repository builder.

Stages:
  index:   scan pool/*.deb, write dists/<suite>/<component>/binary-<arch>/Packages{,.gz,.bz2}
  release: hash the index files into dists/<suite>/Release
  sign:    Release.gpg, InRelease and pool/*.deb.asc via a signing backend
  verify:  check every signature against the public identity

The CLI entrypoint is `debrepo.cli:main`.
"""

__all__ = []
