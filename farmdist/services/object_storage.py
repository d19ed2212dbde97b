# farmdist/services/object_storage.py
from __future__ import annotations

import base64
import hashlib
import os
from dataclasses import dataclass

import requests
from flask import current_app

from farmdist.errors import Internal, InvalidArgument

MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png"}

GITHUB_API = "https://api.github.com"


# =========================================================
# Types
# =========================================================
@dataclass(frozen=True)
class StoredFile:
    storage_key: str
    sha256: str
    url: str


# =========================================================
# Helpers
# =========================================================
def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def upload_dir() -> str:
    """
    Priority:
      1) Flask config UPLOAD_DIR
      2) <instance_path>/uploads
    """
    base = current_app.config.get("UPLOAD_DIR") or os.path.join(current_app.instance_path, "uploads")
    os.makedirs(base, exist_ok=True)
    return base


def read_image(file_storage) -> tuple[bytes, str]:
    """
    Validate an uploaded image (werkzeug FileStorage) and return (content, ext).
    Only .jpg/.jpeg/.png up to 5MB.
    """
    if file_storage is None or not (file_storage.filename or "").strip():
        raise InvalidArgument("Error retrieving file from form data.")

    _, ext = os.path.splitext(file_storage.filename)
    ext = ext.lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise InvalidArgument("Only .jpg, .jpeg, and .png are allowed.", error="Unsupported file format")

    # one byte past the limit is enough to reject
    content = file_storage.read(MAX_IMAGE_BYTES + 1)
    if len(content) > MAX_IMAGE_BYTES:
        raise InvalidArgument("File size exceeds 5MB.")
    if not content:
        raise InvalidArgument("Uploaded file is empty.")
    return content, ext


# =========================================================
# Backends
# =========================================================
def _store_local(content: bytes, key: str) -> str:
    abs_path = os.path.join(upload_dir(), key)
    os.makedirs(os.path.dirname(abs_path), exist_ok=True)
    with open(abs_path, "wb") as f:
        f.write(content)

    base = (current_app.config.get("PUBLIC_BASE_URL") or "").rstrip("/")
    return f"{base}/files/{key}"


def _store_github(content: bytes, key: str) -> str:
    """
    Commit the file into <GITHUB_ORG>/<repo> through the contents API, where the
    repo is the first path segment of the key. Existing files are replaced.
    """
    token = current_app.config.get("GITHUB_ACCESS_TOKEN")
    org = current_app.config.get("GITHUB_ORG")
    if not token or not org:
        raise Internal("Object storage is not configured.", error="Upload error")

    repo, _, path = key.partition("/")
    url = f"{GITHUB_API}/repos/{org}/{repo}/contents/{path}"
    headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
    }
    body = {
        "message": f"Upload {path}",
        "content": base64.b64encode(content).decode("ascii"),
        "committer": {
            "name": current_app.config.get("GITHUB_AUTHOR_NAME"),
            "email": current_app.config.get("GITHUB_AUTHOR_EMAIL"),
        },
    }

    try:
        existing = requests.get(url, headers=headers, timeout=10)
        if existing.status_code == 200:
            body["sha"] = existing.json().get("sha")

        r = requests.put(url, json=body, headers=headers, timeout=30)
        r.raise_for_status()
        return r.json()["content"]["html_url"]
    except (requests.RequestException, KeyError, ValueError) as exc:
        current_app.logger.exception("GitHub upload failed for %s", key)
        raise Internal("Failed to upload image.", error="Upload error") from exc


_BACKENDS = {
    "local": _store_local,
    "github": _store_github,
}


def upload_image(content: bytes, *, folder: str, ext: str) -> StoredFile:
    """
    Store image bytes under <folder>/<sha256><ext> and return where it lives.
    Content-addressed names make re-uploads of the same file idempotent.
    """
    digest = sha256_hex(content)
    key = f"{folder.strip('/')}/{digest}{ext}"

    backend_name = (current_app.config.get("OBJECT_STORAGE") or "local").lower()
    backend = _BACKENDS.get(backend_name)
    if backend is None:
        raise Internal(f"Unknown object storage backend: {backend_name}", error="Upload error")

    try:
        url = backend(content, key)
    except OSError as exc:
        current_app.logger.exception("Storing %s failed", key)
        raise Internal("Failed to store image.", error="Upload error") from exc

    current_app.logger.info("Stored %s (%d bytes) via %s", key, len(content), backend_name)
    return StoredFile(storage_key=key, sha256=digest, url=url)
