"""
Bucket key derivation.

Cooperating processes must agree on a bucket key without talking to each
other. The default strategy names the bucket after the host and the entry
script, so every worker running the same program on the same machine shares
one bucket.
"""

import hashlib
import os
import platform
import sys
from pathlib import Path
from typing import Callable, Optional, Union

KEY_PREFIX = "global_token_bucket_"
MACHINE_ID_PATH = Path("/etc/machine-id")

BucketKeyStrategy = Callable[[], str]


def machine_salt(machine_id_path: Union[str, Path] = MACHINE_ID_PATH) -> str:
    """Return the machine id, or a platform fingerprint when it is unreadable."""
    try:
        salt = Path(machine_id_path).read_text().strip()
    except (OSError, UnicodeDecodeError):
        salt = ""
    if salt:
        return salt
    return " ".join(platform.uname()) + platform.python_version()


def script_path() -> str:
    """Absolute path of the running entry script."""
    argv0 = sys.argv[0] if sys.argv and sys.argv[0] else ""
    return os.path.abspath(argv0) if argv0 else ""


class ScriptBucketKey:
    """Derive ``global_token_bucket_<sha256(salt + script)>``."""

    def __init__(
        self,
        script: Optional[str] = None,
        machine_id_path: Union[str, Path] = MACHINE_ID_PATH,
        prefix: str = KEY_PREFIX,
    ):
        self.script = script
        self.machine_id_path = machine_id_path
        self.prefix = prefix

    def __call__(self) -> str:
        script = self.script if self.script is not None else script_path()
        digest = hashlib.sha256((machine_salt(self.machine_id_path) + script).encode("utf-8")).hexdigest()
        return f"{self.prefix}{digest}"


class StaticBucketKey:
    """Use a pre-agreed key verbatim."""

    def __init__(self, key: str):
        self.key = key

    def __call__(self) -> str:
        return self.key


def resolve_bucket_key(bucket_key: Optional[str], strategy: Optional[BucketKeyStrategy] = None) -> str:
    """Return the explicit key if given, otherwise ask the strategy."""
    if bucket_key is not None:
        return bucket_key
    return (strategy or ScriptBucketKey())()
