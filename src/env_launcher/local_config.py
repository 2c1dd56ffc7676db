"""User-specific overrides stored in ``local.env``.

The file holds ``KEY="value"`` lines for a small set of recognised keys. It
is written by ``configure``/``install`` and only read at launch time.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path

from .atomic import write_bytes_atomic
from .envfile import read_dotenv
from .errors import CacheWriteFailed
from .types import EnvMap

ITEM_REFERENCE_PREFIX = "op://"


def read_local_config(path: str | Path, keys: Iterable[str]) -> EnvMap:
    """Return the recognised keys from ``path``; a missing file yields ``{}``."""
    path = Path(path)
    if not path.is_file():
        return {}
    wanted = set(keys)
    return {k: v for k, v in read_dotenv(path).items() if k in wanted}


def render_local_config(values: Mapping[str, str]) -> str:
    lines = [
        "# local.env - user-specific overrides",
        "# Written by env-launcher; values here override the remote config",
    ]
    for key, value in values.items():
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        lines.append(f'{key}="{escaped}"')
    return "\n".join(lines) + "\n"


def write_local_config(path: str | Path, values: Mapping[str, str]) -> None:
    """Atomically write ``values`` to ``path`` with owner-only permissions."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CacheWriteFailed(str(path.parent), e.strerror or str(e)) from e
    write_bytes_atomic(path, render_local_config(values).encode("utf-8"), mode=0o600)


def validate_item_reference(value: str) -> str:
    """Check that a secret-manager item reference looks like ``op://...``."""
    value = value.strip()
    if not value.startswith(ITEM_REFERENCE_PREFIX) or value == ITEM_REFERENCE_PREFIX:
        raise ValueError(f"Must start with {ITEM_REFERENCE_PREFIX}")
    return value
