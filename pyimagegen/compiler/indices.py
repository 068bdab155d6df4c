"""Package index argument rendering.

Plain credentials are URI-escaped into the index URL at compile time.
Secret credentials become a shell expression that reads the mounted
build secret and URI-escapes it when the RUN step executes, so secret
values never appear in the script.
"""

from __future__ import annotations

import shlex
from collections.abc import Callable, Iterable
from urllib.parse import quote, urlsplit, urlunsplit

from pyimagegen.resolver.models import (
    Credential,
    PackageIndex,
    PlainCredential,
    SecretCredential,
)

SECRETS_DIR = "/run/secrets"
PIP_RETRIES = 2


def secret_mount(secret_id: str) -> str:
    return f"--mount=type=secret,id={secret_id},required=true"


def secret_expression(secret_id: str) -> str:
    """Return a shell expression yielding the URI-escaped secret value."""
    return f"$(printf '%s' \"$(cat {SECRETS_DIR}/{secret_id})\" | jq -sRr @uri)"


def _escape_double_quoted(text: str) -> str:
    for ch in ("\\", '"', "$", "`"):
        text = text.replace(ch, "\\" + ch)
    return text


def _plain_text(credential: Credential) -> str:
    if isinstance(credential, PlainCredential):
        return quote(credential.value.get_secret_value(), safe="")
    raise TypeError(f"Expected a plain credential, got {credential.kind}")


def _shell_text(credential: Credential) -> str:
    if isinstance(credential, SecretCredential):
        return secret_expression(credential.secret_id)
    return _escape_double_quoted(_plain_text(credential))


def _userinfo(index: PackageIndex, render: Callable[[Credential], str]) -> str:
    if index.username is None:
        return ""
    userinfo = render(index.username)
    if index.password is not None:
        userinfo += ":" + render(index.password)
    return userinfo + "@"


def index_host(index: PackageIndex) -> str:
    """Return the host (and port) of an index URL."""
    return urlsplit(index.url).netloc.rpartition("@")[2]


def _plain_netloc(index: PackageIndex) -> str:
    # Credentials written into the URL are kept unless username is declared
    if index.username is None:
        return urlsplit(index.url).netloc
    return _userinfo(index, _plain_text) + index_host(index)


def index_url(index: PackageIndex) -> str:
    """Render the index URL with credentials, quoted for the shell.

    URLs without secret credentials are single-quoted. URLs carrying
    secret expressions are double-quoted so the expressions run.
    """
    parts = urlsplit(index.url)
    host = index_host(index)

    if not index.secret_ids():
        return shlex.quote(urlunsplit(parts._replace(netloc=_plain_netloc(index))))

    rest = urlunsplit(parts._replace(scheme="", netloc=""))
    userinfo = _userinfo(index, _shell_text)
    return f'"{parts.scheme}://{userinfo}{_escape_double_quoted(host + rest)}"'


def index_args(indices: Iterable[PackageIndex]) -> list[str]:
    """Return pip arguments for the extra indices.

    Args:
        indices: Resolved package indices.

    Returns:
        Arguments in index order, starting with the retry count.
    """
    args = ["--retries", str(PIP_RETRIES)]
    for index in indices:
        args += ["--extra-index-url", index_url(index)]
        if index.trust:
            args += ["--trusted-host", shlex.quote(index_host(index))]
    return args


def secret_mounts(indices: Iterable[PackageIndex]) -> list[str]:
    """Return the secret mounts needed by the indices, without duplicates."""
    ids = dict.fromkeys(s for index in indices for s in index.secret_ids())
    return [secret_mount(s) for s in ids]


__all__ = [
    "PIP_RETRIES",
    "SECRETS_DIR",
    "index_args",
    "index_host",
    "index_url",
    "secret_expression",
    "secret_mount",
    "secret_mounts",
]
