"""
Repository Identity

Every vector indexed for a repository is partitioned under one opaque key,
and retrieval filters on the same key. Both sides MUST derive it through
`repository_key()`; a mismatch silently yields empty context.

Architecture
------------
- A repository is identified as "owner/name" (e.g. "acme/widgets")
- Owner and name are validated against the host's naming rules
- Record ids are "<repository key>-<escaped path>", so re-indexing a file
  overwrites its previous record instead of duplicating it
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

OWNER_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")
NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,100}$")

_SAFE_PATH_CHARS = re.compile(r"[A-Za-z0-9]")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class InvalidRepositoryError(ValueError):
    """Raised when an owner or repository name is missing or malformed."""


# ---------------------------------------------------------------------
# Identity Model
# ---------------------------------------------------------------------

class RepositoryIdentity(BaseModel):
    """
    An (owner, name) pair naming one repository on the source host.
    """

    owner: str = Field(..., min_length=1, max_length=39)
    name: str = Field(..., min_length=1, max_length=100)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("owner", mode="before")
    @classmethod
    def validate_owner(cls, v: str) -> str:
        if not v or not isinstance(v, str):
            raise InvalidRepositoryError("owner is required")
        v = v.strip()
        if not OWNER_PATTERN.match(v):
            raise InvalidRepositoryError(f"Invalid repository owner '{v}'")
        return v

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not isinstance(v, str):
            raise InvalidRepositoryError("repository name is required")
        v = v.strip()
        if not NAME_PATTERN.match(v) or v in (".", ".."):
            raise InvalidRepositoryError(f"Invalid repository name '{v}'")
        return v

    @property
    def key(self) -> str:
        return repository_key(self.owner, self.name)


# ---------------------------------------------------------------------
# Key Derivation
# ---------------------------------------------------------------------

def repository_key(owner: str, name: str) -> str:
    """
    Return the partition key shared by indexing and retrieval.

    Owner and name are compared case-insensitively by the host, so the key is
    lower-cased to keep "Acme/Widgets" and "acme/widgets" in one partition.
    """
    return f"{owner.strip().lower()}/{name.strip().lower()}"


def sanitize_path(path: str) -> str:
    """
    Escape a file path into an id-safe token.

    ASCII letters and digits pass through; every other byte of the UTF-8
    encoding (including "_" itself) becomes "_" followed by two lowercase hex
    digits. The mapping is injective, so distinct paths never share an id.

    >>> sanitize_path("src/app.py")
    'src_2fapp_2epy'
    """
    out = []
    for ch in path:
        if ch.isascii() and _SAFE_PATH_CHARS.match(ch):
            out.append(ch)
        else:
            out.extend(f"_{byte:02x}" for byte in ch.encode("utf-8"))
    return "".join(out)


def record_id(repository_id: str, path: str) -> str:
    """Deterministic vector record id for one file of one repository."""
    return f"{repository_id}-{sanitize_path(path)}"


def pull_request_url(web_base_url: str, owner: str, name: str, pr_number: int) -> str:
    return f"{web_base_url.rstrip('/')}/{owner}/{name}/pull/{pr_number}"
