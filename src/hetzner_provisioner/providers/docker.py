"""Docker handlers driving the daemon on the server over SSH.

Networks and volumes are looked up by name. Images and containers carry a
digest label of their build context or configuration; a matching label
means the object is current and nothing is rebuilt or restarted.
"""

from __future__ import annotations

import fnmatch
import hashlib
import io
import logging
import shlex
import tarfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from hetzner_provisioner.engine.errors import AdapterError
from hetzner_provisioner.providers.remote import RemoteHandler, RemoteInputs, compute_digest

if TYPE_CHECKING:
    from hetzner_provisioner.engine.handlers import EngineContext

logger = logging.getLogger(__name__)

LABEL_PREFIX = "hetzner-provisioner"
CONTEXT_DIGEST_LABEL = f"{LABEL_PREFIX}.context-digest"
CONFIG_DIGEST_LABEL = f"{LABEL_PREFIX}.config-digest"


def _label_format(label: str) -> str:
    return f'{{{{index .Config.Labels "{label}"}}}}'


# ── Networks and volumes ────────────────────────────────────────────


class NetworkInputs(RemoteInputs):
    name: str
    driver: str = "bridge"


class DockerNetworkHandler(RemoteHandler):
    """User-defined network; containers on it resolve each other by name."""

    inputs_model = NetworkInputs

    def read(self, ctx: EngineContext, inputs: NetworkInputs) -> dict[str, Any] | None:
        result = self.run(
            ctx, inputs, f"docker network inspect --format '{{{{.Id}}}}' {shlex.quote(inputs.name)}"
        )
        if not result.ok:
            return None
        return {"id": result.stdout.strip(), "name": inputs.name}

    def create(self, ctx: EngineContext, inputs: NetworkInputs) -> dict[str, Any]:
        result = self.run_checked(
            ctx,
            inputs,
            f"docker network create --driver {shlex.quote(inputs.driver)} {shlex.quote(inputs.name)}",
        )
        logger.info("Created docker network %s", inputs.name)
        return {"id": result.stdout.strip(), "name": inputs.name}


class VolumeInputs(RemoteInputs):
    name: str


class DockerVolumeHandler(RemoteHandler):
    inputs_model = VolumeInputs

    def read(self, ctx: EngineContext, inputs: VolumeInputs) -> dict[str, Any] | None:
        result = self.run(
            ctx,
            inputs,
            f"docker volume inspect --format '{{{{.Mountpoint}}}}' {shlex.quote(inputs.name)}",
        )
        if not result.ok:
            return None
        return {"name": inputs.name, "mountpoint": result.stdout.strip()}

    def create(self, ctx: EngineContext, inputs: VolumeInputs) -> dict[str, Any]:
        self.run_checked(ctx, inputs, f"docker volume create {shlex.quote(inputs.name)}")
        logger.info("Created docker volume %s", inputs.name)
        return self.read(ctx, inputs) or {"name": inputs.name, "mountpoint": ""}


# ── Images ──────────────────────────────────────────────────────────


def _ignore_patterns(context: Path) -> list[str]:
    ignore_file = context / ".dockerignore"
    if not ignore_file.is_file():
        return []
    patterns = []
    for line in ignore_file.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            patterns.append(line.rstrip("/"))
    return patterns


def _is_ignored(relative: str, patterns: list[str]) -> bool:
    """Apply .dockerignore patterns in order; ``!pattern`` re-includes."""
    ignored = False
    parts = relative.split("/")
    prefixes = ["/".join(parts[: i + 1]) for i in range(len(parts))]
    for pattern in patterns:
        negate = pattern.startswith("!")
        body = pattern[1:] if negate else pattern
        body = body.lstrip("/")
        if any(fnmatch.fnmatchcase(prefix, body) for prefix in prefixes):
            ignored = not negate
    return ignored


def build_context_archive(context: Path) -> bytes:
    """Pack *context* into a reproducible tar archive.

    Entries are sorted and carry no ownership or timestamps, so the same
    tree always yields the same bytes. Paths matched by
    ``.dockerignore`` are left out.
    """
    if not context.is_dir():
        raise AdapterError(f"Build context {context} is not a directory", kind="docker_image")
    patterns = _ignore_patterns(context)
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for path in sorted(context.rglob("*")):
            relative = path.relative_to(context).as_posix()
            if path.is_dir() or _is_ignored(relative, patterns):
                continue
            info = tarfile.TarInfo(relative)
            info.size = path.stat().st_size
            info.mode = 0o755 if path.stat().st_mode & 0o111 else 0o644
            info.mtime = 0
            with path.open("rb") as fh:
                tar.addfile(info, fh)
    return buffer.getvalue()


class ImageInputs(RemoteInputs):
    tag: str
    context: Path
    dockerfile: str = "Dockerfile"
    platform: str | None = None
    build_args: dict[str, str] = Field(default_factory=dict)


class DockerImageHandler(RemoteHandler):
    """Image built on the server from a local build context.

    The context is streamed to ``docker build`` on stdin, so nothing is
    copied to the server's filesystem and no registry is involved.
    """

    inputs_model = ImageInputs

    @staticmethod
    def _context(inputs: ImageInputs) -> tuple[bytes, str]:
        archive = build_context_archive(inputs.context)
        digest = hashlib.sha256(archive).hexdigest()
        if inputs.build_args or inputs.platform:
            digest = compute_digest([digest, inputs.platform, inputs.build_args])
        return archive, digest

    def read(self, ctx: EngineContext, inputs: ImageInputs) -> dict[str, Any] | None:
        _, digest = self._context(inputs)
        result = self.run(
            ctx,
            inputs,
            f"docker image inspect --format '{{{{.Id}}}} {_label_format(CONTEXT_DIGEST_LABEL)}' "
            f"{shlex.quote(inputs.tag)}",
        )
        if not result.ok:
            return None
        image_id, _, current = result.stdout.strip().partition(" ")
        if current != digest:
            logger.info("Build context of %s changed; rebuilding", inputs.tag)
            return None
        return {"id": image_id, "tag": inputs.tag, "context_digest": digest}

    def create(self, ctx: EngineContext, inputs: ImageInputs) -> dict[str, Any]:
        archive, digest = self._context(inputs)
        args = ["docker", "build", "--quiet", "-t", inputs.tag, "-f", inputs.dockerfile]
        if inputs.platform:
            args += ["--platform", inputs.platform]
        for key, value in sorted(inputs.build_args.items()):
            args += ["--build-arg", f"{key}={value}"]
        args += ["--label", f"{CONTEXT_DIGEST_LABEL}={digest}", "-"]
        logger.info("Building image %s (%d bytes of context)", inputs.tag, len(archive))
        result = self.run_checked(ctx, inputs, shlex.join(args), stdin=archive)
        return {"id": result.stdout.strip(), "tag": inputs.tag, "context_digest": digest}


# ── Containers ──────────────────────────────────────────────────────


class ContainerHealthcheck(BaseModel):
    model_config = ConfigDict(extra="forbid")

    test: list[str]
    interval: str | None = None
    timeout: str | None = None
    retries: int | None = None
    start_period: str | None = None

    def flags(self) -> list[str]:
        kind, *rest = self.test
        if kind == "CMD":
            command = shlex.join(rest)
        elif kind == "CMD-SHELL":
            command = " ".join(rest)
        else:
            command = shlex.join(self.test)
        args = ["--health-cmd", command]
        for flag, value in (
            ("--health-interval", self.interval),
            ("--health-timeout", self.timeout),
            ("--health-retries", self.retries),
            ("--health-start-period", self.start_period),
        ):
            if value is not None:
                args += [flag, str(value)]
        return args


class ContainerInputs(RemoteInputs):
    name: str
    image: str
    networks: list[str] = Field(default_factory=list)
    ports: list[str] = Field(default_factory=list)
    volumes: list[str] = Field(default_factory=list)
    environment: dict[str, str] = Field(default_factory=dict)
    restart: str = "always"
    healthcheck: ContainerHealthcheck | None = None
    # Values whose change replaces the container, e.g. the image id.
    triggers: list[str] = Field(default_factory=list)

    @property
    def env_file(self) -> str:
        return f"/root/.{self.name}.env"


class DockerContainerHandler(RemoteHandler):
    """Long-running container, replaced whenever its configuration changes.

    Environment values are uploaded to an env file readable only by root
    and passed with ``--env-file``; they never appear on a command line.
    """

    inputs_model = ContainerInputs

    @staticmethod
    def _digest(inputs: ContainerInputs) -> str:
        return compute_digest(inputs.settings())

    def read(self, ctx: EngineContext, inputs: ContainerInputs) -> dict[str, Any] | None:
        result = self.run(
            ctx,
            inputs,
            f"docker container inspect --format "
            f"'{{{{.Id}}}} {{{{.State.Running}}}} {_label_format(CONFIG_DIGEST_LABEL)}' "
            f"{shlex.quote(inputs.name)}",
        )
        if not result.ok:
            return None
        container_id, running, digest = (result.stdout.strip().split(" ", 2) + ["", ""])[:3]
        if running != "true" or digest != self._digest(inputs):
            logger.info("Container %s is stale or stopped; replacing", inputs.name)
            return None
        return {"id": container_id, "name": inputs.name}

    def run_args(self, inputs: ContainerInputs) -> list[str]:
        args = ["docker", "run", "--detach", "--name", inputs.name, "--restart", inputs.restart]
        args += ["--label", f"{CONFIG_DIGEST_LABEL}={self._digest(inputs)}"]
        if inputs.networks:
            args += ["--network", inputs.networks[0]]
        for port in inputs.ports:
            args += ["--publish", port]
        for volume in inputs.volumes:
            args += ["--volume", volume]
        if inputs.environment:
            args += ["--env-file", inputs.env_file]
        if inputs.healthcheck is not None:
            args += inputs.healthcheck.flags()
        args.append(inputs.image)
        return args

    def create(self, ctx: EngineContext, inputs: ContainerInputs) -> dict[str, Any]:
        connection = inputs.connection()
        if inputs.environment:
            env_lines = "".join(f"{k}={v}\n" for k, v in sorted(inputs.environment.items()))
            ctx.executor.upload(connection, inputs.env_file, env_lines)

        # Missing container is fine here.
        self.run(ctx, inputs, f"docker rm --force {shlex.quote(inputs.name)}")
        result = self.run_checked(ctx, inputs, shlex.join(self.run_args(inputs)))
        container_id = result.stdout.strip()

        for network in inputs.networks[1:]:
            self.run_checked(
                ctx,
                inputs,
                f"docker network connect {shlex.quote(network)} {shlex.quote(inputs.name)}",
            )
        logger.info("Started container %s from %s", inputs.name, inputs.image)
        return {"id": container_id, "name": inputs.name}
