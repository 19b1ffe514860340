from __future__ import annotations

import logging
import os
import tempfile
from typing import Iterator, NamedTuple

logger = logging.getLogger("certengine.storage")


def ensure_dir(path: str) -> None:
    """Create directory if missing (mkdir -p equivalent)."""
    os.makedirs(path, exist_ok=True)


def write_atomic(path: str, data: bytes) -> None:
    """Write data to a temporary file then atomically rename to target path."""
    dir_path = os.path.dirname(path)
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


class StoredObject(NamedTuple):
    ref: str
    uses_fallback: bool


def split_ref(ref: str) -> tuple[str, str]:
    backend, sep, key = (ref or "").partition(":")
    if not sep or not backend or not key:
        raise FileNotFoundError(f"Malformed storage reference: {ref!r}")
    return backend, key


class LocalStorage:
    """Filesystem-backed store; references look like ``<name>:<relative key>``."""

    def __init__(self, root: str, name: str = "local"):
        self.root = root
        self.name = name

    def _path_for(self, key: str) -> str:
        root_real = os.path.realpath(self.root)
        resolved = os.path.realpath(os.path.join(root_real, key))
        if resolved == root_real or not resolved.startswith(f"{root_real}{os.sep}"):
            raise FileNotFoundError(f"Storage key escapes root: {key!r}")
        return resolved

    def _key_for(self, ref: str) -> str:
        backend, key = split_ref(ref)
        if backend != self.name:
            raise FileNotFoundError(f"Reference {ref!r} does not belong to {self.name!r}")
        return key

    def put(self, key: str, data: bytes) -> StoredObject:
        path = self._path_for(key)
        write_atomic(path, data)
        os.chmod(path, 0o644)
        return StoredObject(ref=f"{self.name}:{key}", uses_fallback=False)

    def read(self, ref: str) -> bytes:
        with open(self._path_for(self._key_for(ref)), "rb") as handle:
            return handle.read()

    def exists(self, ref: str) -> bool:
        try:
            return os.path.isfile(self._path_for(self._key_for(ref)))
        except FileNotFoundError:
            return False

    def delete(self, ref: str) -> bool:
        try:
            os.remove(self._path_for(self._key_for(ref)))
        except FileNotFoundError:
            return False
        return True

    def iter_refs(self, prefix: str = "") -> Iterator[str]:
        base = self._path_for(prefix) if prefix else os.path.realpath(self.root)
        if not os.path.isdir(base):
            return
        root_real = os.path.realpath(self.root)
        for dirpath, _, filenames in os.walk(base):
            for filename in sorted(filenames):
                rel = os.path.relpath(os.path.join(dirpath, filename), root_real)
                yield f"{self.name}:{rel.replace(os.sep, '/')}"


class FallbackStorage:
    """Write to ``primary``; on I/O failure write to ``secondary`` instead."""

    def __init__(self, primary: LocalStorage, secondary: LocalStorage):
        if primary.name == secondary.name:
            raise ValueError("primary and secondary storage need distinct names")
        self.primary = primary
        self.secondary = secondary

    def _backend_for(self, ref: str) -> LocalStorage:
        backend, _ = split_ref(ref)
        if backend == self.secondary.name:
            return self.secondary
        return self.primary

    def put(self, key: str, data: bytes) -> StoredObject:
        try:
            return self.primary.put(key, data)
        except OSError as exc:
            logger.warning(
                "[CERT-STORAGE] primary write failed key=%s error=%s; using %s",
                key,
                exc,
                self.secondary.name,
            )
        stored = self.secondary.put(key, data)
        return StoredObject(ref=stored.ref, uses_fallback=True)

    def read(self, ref: str) -> bytes:
        return self._backend_for(ref).read(ref)

    def exists(self, ref: str) -> bool:
        return self._backend_for(ref).exists(ref)

    def delete(self, ref: str) -> bool:
        return self._backend_for(ref).delete(ref)

    def iter_refs(self, prefix: str = "") -> Iterator[str]:
        yield from self.primary.iter_refs(prefix)
        yield from self.secondary.iter_refs(prefix)
