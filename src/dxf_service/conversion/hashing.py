import hashlib
from pathlib import Path

from .errors import HashError

CHUNK = 1024 * 1024


def hash_file(path: Path) -> str:
    """Return the hex SHA-256 digest of the file's bytes.

    The digest depends on content only, so byte-identical uploads share a cache key.
    """
    sha256 = hashlib.sha256()
    try:
        with Path(path).open("rb") as f:
            while True:
                chunk = f.read(CHUNK)
                if not chunk:
                    break
                sha256.update(chunk)
    except OSError as e:
        raise HashError(f"Unable to read {Path(path).name} for hashing") from e
    return sha256.hexdigest()
