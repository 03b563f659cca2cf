################################################################################
# HUBVAULT
#
# @file:        service_manager.py
# @module:      hubvault.cores.service_manager
# @description: Controls the hub's docker compose service group.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Lifecycle calls go through the `docker compose` CLI (stop/up/down/pull)
# - Image update detection uses the docker SDK (image ids, no text parsing)
# - Health polling is bounded: it returns after the attempt cap
################################################################################

"""
Service group controller.

Wraps `docker compose` for the installation at HUB_DIR. Missing compose files
are treated as "no service group": lifecycle calls become no-ops.
"""

from __future__ import annotations

import json
import subprocess
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import docker
import httpx
from docker.errors import DockerException

from ..helpers.config import HubConfig
from ..helpers.constants import COMPOSE_TIMEOUT, HEALTH_HTTP_TIMEOUT
from ..helpers.errors import ServiceError
from ..helpers.logging import get_logger
from ..helpers.ui_utils import SubprocessError, run_command
from ..types import HealthStatus, ImageUpdate, ServiceState

logger = get_logger(__name__)


class ComposeServiceController:
    """Start, stop and probe the compose project of one installation."""

    def __init__(self, config: HubConfig, sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.install_root = Path(config.install_root)
        self._sleep = sleep
        self._docker_client = None

    # ------------------------------------------------------------------
    # Basics
    # ------------------------------------------------------------------

    @property
    def compose_file(self) -> Path:
        return self.install_root / self.config.compose_file.name

    def is_present(self) -> bool:
        return self.compose_file.is_file()

    def _compose(self, args: List[str], description: str, check: bool = True,
                 timeout: Optional[float] = COMPOSE_TIMEOUT) -> subprocess.CompletedProcess:
        cmd = [
            "docker", "compose",
            "-f", str(self.compose_file),
            "--project-directory", str(self.install_root),
            *args,
        ]
        try:
            return run_command(cmd, description, timeout=timeout, check=check,
                               cwd=str(self.install_root))
        except SubprocessError as e:
            raise ServiceError(f"{description} failed: {e.stderr.strip() or e}") from e
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise ServiceError(f"{description} failed: {e}") from e

    def _skip_without_compose(self, action: str) -> bool:
        if self.is_present():
            return False
        logger.warning(f"No compose file at {self.compose_file}, skipping {action}")
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def stop_all(self) -> None:
        """Stop all services (containers are kept)."""
        if self._skip_without_compose("stop"):
            return
        logger.info("Stopping services...")
        self._compose(["stop"], "Stopping services")
        logger.info("Services stopped")

    def start_all(self, pull: bool = False) -> None:
        """Start all services detached; optionally pull images first."""
        if self._skip_without_compose("start"):
            return
        if pull:
            self.pull()
        logger.info("Starting services...")
        self._compose(["up", "-d"], "Starting services")
        logger.info("Services started")

    def down(self) -> None:
        if self._skip_without_compose("down"):
            return
        logger.info("Taking service group down...")
        self._compose(["down"], "Stopping and removing services")

    def pull(self) -> None:
        if self._skip_without_compose("pull"):
            return
        logger.info("Pulling images...")
        self._compose(["pull"], "Pulling images")

    def recreate(self) -> None:
        """Recreate all containers from the current images."""
        if self._skip_without_compose("recreate"):
            return
        logger.info("Recreating containers...")
        self._compose(["up", "-d", "--force-recreate"], "Recreating containers")

    def restart(self, service_name: str) -> None:
        if self._skip_without_compose(f"restart of {service_name}"):
            return
        logger.info(f"Restarting {service_name}", extra={"service": service_name})
        self._compose(["restart", service_name], f"Restarting {service_name}")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def services(self) -> List[str]:
        """Service names declared in the compose file."""
        if not self.is_present():
            return []
        result = self._compose(["config", "--services"], "Listing services", timeout=60)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def service_states(self) -> List[ServiceState]:
        """Current container state per service (`docker compose ps`)."""
        if not self.is_present():
            return []
        result = self._compose(["ps", "--all", "--format", "json"], "Reading service state",
                               timeout=60)
        return [ServiceState.from_compose(item) for item in _parse_ps_output(result.stdout)]

    def capture_state(self, path: Path) -> Path:
        """Write the current service state as JSON to `path`."""
        try:
            states = self.service_states()
        except ServiceError as e:
            logger.warning(f"Could not read service state: {e}")
            states = []
        payload = {
            "captured_at": datetime.now().isoformat(),
            "services": [s.__dict__ for s in states],
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return path

    def tool_versions(self) -> Dict[str, str]:
        """Version strings of docker and docker compose."""
        versions = {}
        for key, cmd in (
            ("docker", ["docker", "--version"]),
            ("compose", ["docker", "compose", "version"]),
        ):
            try:
                result = run_command(cmd, f"Reading {key} version", timeout=30, check=False)
                versions[key] = (result.stdout or result.stderr).strip() or "unknown"
            except (FileNotFoundError, subprocess.TimeoutExpired):
                versions[key] = "unavailable"
        return versions

    def logs(self, service_name: str, tail: int = 50) -> str:
        result = self._compose(["logs", "--tail", str(tail), service_name],
                               f"Reading logs of {service_name}", check=False, timeout=60)
        return result.stdout

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health_check(self, timeout: Optional[float] = None) -> Dict[str, HealthStatus]:
        """
        Poll service health until every service is healthy or the cap is hit.

        Args:
            timeout: Overall budget in seconds; defaults to
                attempts * interval from the configuration

        Returns:
            Mapping service -> HealthStatus from the last poll
        """
        if not self.is_present():
            logger.warning("No service group present, nothing to check")
            return {}

        interval = self.config.health_interval
        attempts = self.config.health_attempts
        if timeout is not None:
            attempts = max(1, int(timeout // interval) if interval else 1)

        expected = self.services()
        statuses: Dict[str, HealthStatus] = {}
        for attempt in range(1, attempts + 1):
            statuses = self._probe(expected)
            unhealthy = [name for name, s in statuses.items() if s != HealthStatus.HEALTHY]
            if not unhealthy:
                logger.info("All services healthy", extra={"attempt": attempt})
                return statuses
            logger.debug(f"Waiting for services ({attempt}/{attempts}): {', '.join(unhealthy)}")
            if attempt < attempts:
                self._sleep(interval)

        bad = sorted(name for name, s in statuses.items() if s != HealthStatus.HEALTHY)
        logger.warning(f"Services not healthy after {attempts} checks: {', '.join(bad)}")
        return statuses

    def _probe(self, expected: List[str]) -> Dict[str, HealthStatus]:
        try:
            states = {s.service: s for s in self.service_states()}
        except ServiceError as e:
            logger.debug(f"State probe failed: {e}")
            states = {}

        names = list(expected) or list(states)
        result: Dict[str, HealthStatus] = {}
        for name in names:
            state = states.get(name)
            healthy = state is not None and self._is_live(name, state)
            result[name] = HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY
        return result

    def _is_live(self, name: str, state: ServiceState) -> bool:
        if not state.is_running:
            return False
        endpoint = self.config.health_endpoints.get(name)
        if endpoint:
            return self._endpoint_ok(endpoint)
        if state.health:
            return state.health.lower() == "healthy"
        return True

    @staticmethod
    def _endpoint_ok(url: str) -> bool:
        try:
            response = httpx.get(url, timeout=HEALTH_HTTP_TIMEOUT, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.debug(f"Health endpoint {url} unreachable: {e}")
            return False
        return response.is_success

    # ------------------------------------------------------------------
    # Images & cleanup
    # ------------------------------------------------------------------

    def _client(self):
        if self._docker_client is None:
            try:
                self._docker_client = docker.from_env()
            except DockerException as e:
                raise ServiceError(f"Docker daemon not reachable: {e}") from e
        return self._docker_client

    def _image_refs(self) -> Dict[str, str]:
        result = self._compose(["config", "--format", "json"], "Reading compose config", timeout=60)
        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ServiceError(f"Unexpected compose config output: {e}") from e
        return {
            name: definition["image"]
            for name, definition in (data.get("services") or {}).items()
            if isinstance(definition, dict) and definition.get("image")
        }

    def check_image_updates(self) -> List[ImageUpdate]:
        """
        Pull every configured image and compare its id with the running one.

        Services built locally (no `image:`) are skipped.
        """
        if not self.is_present():
            return []

        client = self._client()
        running = {s.service: s for s in self.service_states()}
        updates: List[ImageUpdate] = []
        for service, ref in self._image_refs().items():
            current_id = self._current_image_id(client, running.get(service), ref)
            try:
                latest_id = client.images.pull(ref).id
            except DockerException as e:
                logger.warning(f"Could not pull {ref}: {e}", extra={"service": service})
                latest_id = None
            update = ImageUpdate(service=service, image=ref, current_id=current_id,
                                 latest_id=latest_id)
            if update.update_available:
                logger.info(f"Update available for {service}", extra={"image": ref})
            updates.append(update)
        return updates

    @staticmethod
    def _current_image_id(client, state: Optional[ServiceState], ref: str) -> Optional[str]:
        try:
            if state and state.container_id:
                return client.containers.get(state.container_id).image.id
            return client.images.get(ref).id
        except DockerException:
            return None

    def prune_resources(self, volumes: bool = False) -> Dict[str, int]:
        """Remove dangling images, unused networks and, if asked, unused volumes."""
        client = self._client()
        counts = {}
        try:
            images = client.images.prune(filters={"dangling": True}) or {}
            counts["images"] = len(images.get("ImagesDeleted") or [])
            networks = client.networks.prune() or {}
            counts["networks"] = len(networks.get("NetworksDeleted") or [])
            if volumes:
                pruned = client.volumes.prune() or {}
                counts["volumes"] = len(pruned.get("VolumesDeleted") or [])
        except DockerException as e:
            raise ServiceError(f"Docker cleanup failed: {e}") from e
        logger.info("Docker cleanup done", extra=counts)
        return counts


def _parse_ps_output(stdout: str) -> List[dict]:
    """`docker compose ps --format json` prints an array or one object per line."""
    text = (stdout or "").strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return []
        return [item for item in data if isinstance(item, dict)]
    items = []
    for line in text.splitlines():
        try:
            item = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(item, dict):
            items.append(item)
    return items
