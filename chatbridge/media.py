"""Storing message attachments on a media server or in a local directory."""

from __future__ import annotations

import hashlib
import logging
import re
import urllib.error
import urllib.request
from dataclasses import replace
from pathlib import Path

from chatbridge.config import FileInfo, GeneralSettings, Message

_log = logging.getLogger("chatbridge.gateway")

_UNSAFE = re.compile(r"[^a-zA-Z0-9]+")
_UPLOAD_TIMEOUT = 5.0


def short_sha(data: bytes | None) -> str:
    """First eight hex digits of the SHA-1 of ``data``."""
    return hashlib.sha1(data or b"", usedforsecurity=False).hexdigest()[:8]


def _extension(name: str) -> str:
    base = name.rsplit("/", 1)[-1]
    dot = base.rfind(".")
    return base[dot:] if dot >= 0 else ""


def sanitize_filename(name: str) -> str:
    """Replace every run of non-alphanumerics before the extension with an underscore."""
    ext = _extension(name)
    stem = name[: len(name) - len(ext)]
    return _UNSAFE.sub("_", stem) + ext


def upload_file(info: FileInfo, upload_url: str) -> None:
    """PUT the file to ``<upload_url>/<sha>/<name>``; raises OSError if the request fails."""
    data = info.data or b""
    url = f"{upload_url}/{short_sha(data)}/{info.name}"
    try:
        request = urllib.request.Request(
            url,
            data=data,
            method="PUT",
            headers={"Content-Type": "binary/octet-stream"},
        )
    except ValueError as exc:
        raise OSError(f"mediaserver upload failed, could not create request: {exc!r}") from exc
    _log.debug("mediaserver upload url: %s", url)
    try:
        with urllib.request.urlopen(request, timeout=_UPLOAD_TIMEOUT) as response:
            response.read()
    except urllib.error.HTTPError as exc:
        exc.close()
    except (urllib.error.URLError, OSError) as exc:
        raise OSError(f"mediaserver upload failed, could not Do request: {exc!r}") from exc


def place_file(info: FileInfo, download_path: str | Path) -> Path:
    """Write the file to ``<download_path>/<sha>/<name>`` and return its path."""
    data = info.data or b""
    directory = Path(download_path) / short_sha(data)
    try:
        directory.mkdir(exist_ok=True)
    except OSError as exc:
        raise OSError(f"mediaserver path failed, could not mkdir: {exc}") from exc
    path = directory / info.name
    _log.debug("mediaserver path placing file: %s", path)
    try:
        path.write_bytes(data)
    except OSError as exc:
        raise OSError(f"mediaserver path failed, could not writefile: {exc}") from exc
    return path


def store_files(msg: Message, general: GeneralSettings) -> None:
    """Upload or place every attached file and record its download URL and SHA on the message."""
    if not msg.extra or (not general.media_server_upload and not general.media_download_path):
        return
    files = msg.extra.get("file") or []
    for index, original in enumerate(files):
        if not isinstance(original, FileInfo):
            _log.error("unexpected file entry %r", original)
            continue
        info = replace(original, name=sanitize_filename(original.name))
        sha = short_sha(info.data)
        try:
            if general.media_server_upload:
                upload_file(info, general.media_server_upload)
            else:
                place_file(info, general.media_download_path)
        except OSError as exc:
            _log.error("%s", exc)
            continue
        url = f"{general.media_server_download}/{sha}/{info.name}"
        _log.debug("mediaserver download URL = %s", url)
        files[index] = replace(original, url=url, sha=sha)