"""Local SSH keypair handler.

The private key is the only state this tool keeps on disk. It is generated
once with ``ssh-keygen`` and written with owner-only permissions; later runs
find the existing file and reuse it.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from hetzner_provisioner.engine.errors import AdapterError
from hetzner_provisioner.engine.handlers import ResourceHandler

if TYPE_CHECKING:
    from hetzner_provisioner.engine.handlers import EngineContext

logger = logging.getLogger(__name__)

KEY_FILE_MODE = 0o600


class KeypairInputs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: Path
    comment: str = ""


def _public_key_path(path: Path) -> Path:
    return path.with_name(path.name + ".pub")


def _write_once(path: Path, data: bytes, mode: int) -> None:
    """Create *path* with *mode*; fail if it already exists."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    with os.fdopen(fd, "wb") as f:
        f.write(data)


def _ssh_keygen(args: list[str]) -> bytes:
    """Run ssh-keygen with *args* and return its stdout."""
    try:
        proc = subprocess.run(["ssh-keygen", *args], capture_output=True, check=False)
    except FileNotFoundError as exc:
        raise AdapterError("'ssh-keygen' not found. Is OpenSSH installed?") from exc
    if proc.returncode != 0:
        raise AdapterError(f"ssh-keygen failed: {proc.stderr.decode(errors='replace').strip()}")
    return proc.stdout


class KeypairHandler(ResourceHandler[KeypairInputs]):
    """ED25519 keypair generated locally, persisted to ``inputs.path``."""

    inputs_model = KeypairInputs

    def _outputs(self, path: Path) -> dict[str, Any]:
        public_key = _public_key_path(path).read_text(encoding="utf-8").strip()
        return {"private_key_path": str(path), "public_key_openssh": public_key}

    def read(self, ctx: EngineContext, inputs: KeypairInputs) -> dict[str, Any] | None:
        _ = ctx
        path = inputs.path
        if not path.is_file():
            return None
        if path.stat().st_mode & 0o777 != KEY_FILE_MODE:
            path.chmod(KEY_FILE_MODE)
        public_path = _public_key_path(path)
        if not public_path.is_file():
            logger.info("Rebuilding missing public key %s from %s", public_path, path)
            public_path.write_bytes(_ssh_keygen(["-y", "-f", str(path)]))
        return self._outputs(path)

    def create(self, ctx: EngineContext, inputs: KeypairInputs) -> dict[str, Any]:
        _ = ctx
        path = inputs.path
        path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory() as tmp:
            key_file = Path(tmp) / "id_ed25519"
            _ssh_keygen(
                ["-q", "-t", "ed25519", "-N", "", "-C", inputs.comment, "-f", str(key_file)]
            )

            try:
                _write_once(path, key_file.read_bytes(), KEY_FILE_MODE)
            except FileExistsError as exc:
                raise AdapterError(f"Refusing to overwrite existing key file {path}") from exc
            _public_key_path(path).write_bytes(_public_key_path(key_file).read_bytes())

        logger.info("Wrote SSH private key to %s", path)
        return self._outputs(path)
