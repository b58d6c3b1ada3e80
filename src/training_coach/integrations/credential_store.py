"""
File-backed credential store.

Keeps the live access/refresh token pair for each provider in memory and
persists every change to a flat ``KEY=VALUE`` file (the ``.env`` shape).

Writes re-read the file and merge into it, so unrelated keys, comments
and blank lines survive. The merged text is written to a temporary file
in the same directory and moved over the existing file with ``os.replace``.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import dotenv_values

from .base import Credential, CredentialPersistenceError, Provider


logger = logging.getLogger(__name__)


def _keys_for(provider: Provider) -> Dict[str, str]:
    """
    Env keys holding a provider's credential.

    Args:
        provider: Provider whose keys to build

    Returns:
        Credential field name -> ``<PROVIDER>_...`` key
    """
    prefix = provider.value.upper()
    return {
        "access_token": f"{prefix}_ACCESS_TOKEN",
        "refresh_token": f"{prefix}_REFRESH_TOKEN",
        "expires_in": f"{prefix}_TOKEN_EXPIRES_IN",
    }


def _line_key(line: str) -> Optional[str]:
    """Return the key assigned on a ``KEY=VALUE`` line, if any."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#") or "=" not in stripped:
        return None
    key = stripped.split("=", 1)[0].strip()
    if key.startswith("export "):
        key = key[len("export "):].strip()
    return key or None


def merge_env_lines(lines: List[str], values: Dict[str, str]) -> List[str]:
    """
    Replace the assignments for ``values`` in ``lines`` and append missing keys.

    Lines for other keys are returned untouched.
    """
    pending = dict(values)
    merged = []
    for line in lines:
        key = _line_key(line)
        if key is not None and key in values:
            if key in pending:
                merged.append(f"{key}={pending.pop(key)}")
            # duplicate assignments of a replaced key are dropped
            continue
        merged.append(line)
    for key, value in pending.items():
        merged.append(f"{key}={value}")
    return merged


class CredentialStore:
    """
    Single writer of provider credentials.

    Usage:
        store = CredentialStore(Path(".env"))
        credential = store.get(Provider.STRAVA)
        store.update(Provider.STRAVA, "new_access", "new_refresh")
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._credentials: Dict[Provider, Credential] = {}
        self.reload()

    def reload(self) -> None:
        """Load every provider's credential from the persisted file."""
        values = dotenv_values(self.path) if self.path.exists() else {}
        credentials = {}
        for provider in Provider:
            keys = _keys_for(provider)
            access_token = values.get(keys["access_token"])
            refresh_token = values.get(keys["refresh_token"])
            if not access_token and not refresh_token:
                continue
            credentials[provider] = Credential(
                provider=provider,
                access_token=access_token or "",
                refresh_token=refresh_token or "",
                expires_in=_parse_int(values.get(keys["expires_in"])),
            )
        self._credentials = credentials
        logger.debug(f"Loaded credentials for {sorted(p.value for p in credentials)} from {self.path}")

    def get(self, provider: Provider) -> Optional[Credential]:
        """Get the current credential, or None if the provider was never authorized."""
        return self._credentials.get(provider)

    def update(
        self,
        provider: Provider,
        access_token: str,
        refresh_token: str,
        expires_in: Optional[int] = None,
    ) -> Credential:
        """
        Replace the stored pair for ``provider`` and persist it.

        The file is written before the new pair becomes visible in memory.
        Calling this again with the current pair is a no-op.

        Raises:
            CredentialPersistenceError: If the file could not be written.
        """
        if not access_token or not refresh_token:
            raise ValueError("access_token and refresh_token are required")

        current = self._credentials.get(provider)
        if current is not None and current.same_pair(access_token, refresh_token):
            if expires_in is None or expires_in == current.expires_in:
                return current

        keys = _keys_for(provider)
        values = {
            keys["access_token"]: access_token,
            keys["refresh_token"]: refresh_token,
        }
        if expires_in is not None:
            values[keys["expires_in"]] = str(expires_in)

        self._persist(provider, values)

        credential = Credential(
            provider=provider,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
        )
        self._credentials[provider] = credential
        logger.info(f"Stored new {provider.value} credentials in {self.path}")
        return credential

    def _persist(self, provider: Provider, values: Dict[str, str]) -> None:
        tmp_name = None
        try:
            existing = self.path.read_text(encoding="utf-8").splitlines() if self.path.exists() else []
            content = "\n".join(merge_env_lines(existing, values)) + "\n"

            directory = self.path.parent
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            if self.path.exists():
                os.chmod(tmp_name, self.path.stat().st_mode & 0o777)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise CredentialPersistenceError(
                f"Could not persist {provider.value} credentials to {self.path}: {e}",
                provider.value,
            ) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None
