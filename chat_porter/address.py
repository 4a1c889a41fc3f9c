"""Parsing of editor workspace addresses (`workspace.json` folder URIs).

The editor identifies a workspace by a URI-like string, for example:

  file:///c%3A/dev/app
  vscode-remote://wsl%2Bubuntu/home/user/app
  vscode-remote://ssh-remote%2Bbuildbox/srv/app

The raw string is what the editor compares; the parsed descriptor is only used
for display and similarity heuristics.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote, unquote


class ConnectionKind(str, Enum):
    LOCAL = "local"
    WSL = "wsl"
    SSH = "ssh"
    DEV_CONTAINER = "dev-container"
    CLOUD_NOTEBOOK = "cloud-notebook"


_REMOTE_PREFIX = "vscode-remote://"
_FILE_PREFIX = "file://"

# * Order matters: first match wins.
_REMOTE_PATTERNS: tuple[tuple[ConnectionKind, re.Pattern[str], str | None], ...] = (
    (ConnectionKind.WSL, re.compile(r"^vscode-remote://wsl\+([^/]*)(.*)$"), None),
    (ConnectionKind.SSH, re.compile(r"^vscode-remote://ssh-remote\+([^/]*)(.*)$"), None),
    (ConnectionKind.DEV_CONTAINER, re.compile(r"^vscode-remote://dev-container\+([^/]*)(.*)$"), "container"),
)

_DRIVE_PATH = re.compile(r"^/[A-Za-z]:")


@dataclass(frozen=True, slots=True)
class AddressDescriptor:
    """Parsed view of a raw workspace address."""

    kind: ConnectionKind
    host: str
    normalized_path: str
    project_name: str | None
    group_name: str | None

    @property
    def label(self) -> str:
        """Short connection label, e.g. `WSL: ubuntu`."""
        if self.kind is ConnectionKind.LOCAL:
            return "Local"
        if self.kind is ConnectionKind.WSL:
            return f"WSL: {self.host}"
        if self.kind is ConnectionKind.SSH:
            return f"SSH: {self.host}"
        if self.kind is ConnectionKind.DEV_CONTAINER:
            return "Dev Container"
        return "Cloud"


def decode_address(raw: str) -> str:
    """Returns the percent-decoded form of an address."""
    return unquote(raw, errors="surrogateescape")


def encode_address(raw: str) -> str:
    """Returns the address percent-encoded the way the editor writes it.

    Everything after the scheme is encoded except `/`, so `wsl+ubuntu` becomes
    `wsl%2Bubuntu` and `c:` becomes `c%3A`. The input may be raw or decoded.
    """
    decoded = decode_address(raw)
    scheme, sep, rest = decoded.partition("://")
    if not sep or not re.fullmatch(r"[A-Za-z][A-Za-z0-9+.-]*", scheme):
        return quote(decoded, safe="/", errors="surrogateescape")
    return scheme + sep + quote(rest, safe="/", errors="surrogateescape")


def parse_address(raw: str) -> AddressDescriptor:
    """Parses a raw workspace address into an `AddressDescriptor`.

    Never raises: anything that is not a recognized remote or `file://` address
    is treated as a local path.
    """
    # * Descriptor fields are printed, so invalid escapes decode to U+FFFD here.
    decoded = unquote(raw)

    for kind, pattern, fixed_host in _REMOTE_PATTERNS:
        m = pattern.match(decoded)
        if m is None:
            continue
        host = fixed_host if fixed_host is not None else m.group(1)
        return _descriptor(kind, host, _strip_trailing_separators(m.group(2)))

    if decoded.startswith(_REMOTE_PREFIX + "amlext+"):
        # ! Cloud notebook paths are address-specific; pass them through as-is.
        return _descriptor(ConnectionKind.CLOUD_NOTEBOOK, "cloud", decoded[len(_REMOTE_PREFIX):])

    if decoded.startswith(_FILE_PREFIX + "/"):
        path = decoded[len(_FILE_PREFIX):]
        if _DRIVE_PATH.match(path):
            # * /c:/dev/app -> c:/dev/app
            path = path[1:]
        return _descriptor(ConnectionKind.LOCAL, "", _strip_trailing_separators(path))

    return _descriptor(ConnectionKind.LOCAL, "", _strip_trailing_separators(decoded))


def _descriptor(kind: ConnectionKind, host: str, path: str) -> AddressDescriptor:
    segments = [s for s in re.split(r"[/\\]", path) if s]
    return AddressDescriptor(
        kind=kind,
        host=host,
        normalized_path=path,
        project_name=segments[-1] if segments else None,
        group_name=segments[-2] if len(segments) >= 2 else None,
    )


def _strip_trailing_separators(path: str) -> str:
    stripped = path.rstrip("/\\")
    if not stripped and path:
        # * Root path stays a root path.
        return path[0]
    return stripped
