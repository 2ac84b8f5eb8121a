#!/usr/bin/env python3
"""kube-node-sync - Kubernetes node address synchronization

Watches the set of node addresses in a Kubernetes cluster and regenerates a
local config artifact whenever that set changes, then reloads the service
that consumes it.

Supported artifacts:
    - ufw: UFW user.rules file (generated region between marker lines)
    - nginx: nginx upstream blocks, one per configured upstream group

Environment variables:

    Artifact Selection:
        ARTIFACT_KIND          Artifact type: "ufw" or "nginx" (default: ufw)
        ARTIFACT_PATH          File to regenerate
                               (default: /etc/ufw/user.rules for ufw,
                                /etc/nginx/upstreams/upstreams.conf for nginx)
        RELOAD_COMMAND         Executable used to reload the consumer
                               (default: /usr/sbin/ufw for ufw, invoked as "ufw reload";
                                /bin/systemctl for nginx, invoked as "systemctl reload nginx")

    Kubernetes:
        KUBECONFIG                    Path to a kubeconfig file. When unset the in-cluster
                                      config is used, falling back to ~/.kube/config.
        NODE_ADDRESS_ANNOTATION       Node annotation holding the node address
                                      (default: projectcalico.org/IPv4Address)
        KUBE_REQUEST_TIMEOUT_SECONDS  Timeout for the node list request (default: 10)

    UFW:
        UFW_TARGET_PORT        TCP port opened to every node address (default: 27017)

    nginx:
        NGINX_UPSTREAMS_PATH   Path to YAML file with upstream groups.
                               Example config file:
                                 upstreams:
                                   - name: "api"
                                     port: 9090
                                   - name: "monitor"
                                     port: 32699
        NGINX_UPSTREAMS        Comma-separated "name:port" list (used if no YAML file).
                               Example: "api:9090,monitor:32699"
        NGINX_SERVER_WEIGHT    Weight of every generated server entry (default: 100)

    Runtime:
        SYNC_MODE              "once" or "watch" (polling loop) (default: watch)
        POLL_INTERVAL_SECONDS  Delay between two reconciliation cycles (default: 5)
        RELOAD_DELAY_SECONDS   Delay between writing the artifact and reloading (default: 0)
        RELOAD_TIMEOUT_SECONDS Kill the reload command after this many seconds
                               (default: 0, no timeout)
        LOG_LEVEL              DEBUG, INFO, WARNING, ERROR (default: INFO)

Command-line flags override the matching environment variables, see --help.
"""

from __future__ import annotations

import argparse
import contextlib
import ipaddress
import logging
import os
import shutil
import signal
import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union

import urllib3
import yaml
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

# =============================================================================
# Configuration
# =============================================================================

DEFAULT_ARTIFACT_PATHS = {
    "ufw": "/etc/ufw/user.rules",
    "nginx": "/etc/nginx/upstreams/upstreams.conf",
}

DEFAULT_RELOAD_COMMANDS = {
    "ufw": "/usr/sbin/ufw",
    "nginx": "/bin/systemctl",
}

RELOAD_ARGS = {
    "ufw": ("reload",),
    "nginx": ("reload", "nginx"),
}

# Artifact selection
ARTIFACT_KIND = os.getenv("ARTIFACT_KIND", "ufw").lower().strip()
ARTIFACT_PATH = os.getenv("ARTIFACT_PATH", "")
RELOAD_COMMAND = os.getenv("RELOAD_COMMAND", "")

# Kubernetes configuration
KUBECONFIG = os.getenv("KUBECONFIG", "")
NODE_ADDRESS_ANNOTATION = os.getenv("NODE_ADDRESS_ANNOTATION", "projectcalico.org/IPv4Address")
KUBE_REQUEST_TIMEOUT_SECONDS = float(os.getenv("KUBE_REQUEST_TIMEOUT_SECONDS", "10"))

# UFW configuration
UFW_TARGET_PORT = int(os.getenv("UFW_TARGET_PORT", "27017"))

# nginx configuration
NGINX_UPSTREAMS_PATH = os.getenv("NGINX_UPSTREAMS_PATH", "")
NGINX_UPSTREAMS = os.getenv("NGINX_UPSTREAMS", "")
NGINX_SERVER_WEIGHT = int(os.getenv("NGINX_SERVER_WEIGHT", "100"))

# Runtime configuration
SYNC_MODE = os.getenv("SYNC_MODE", "watch")
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "5"))
RELOAD_DELAY_SECONDS = float(os.getenv("RELOAD_DELAY_SECONDS", "0"))
RELOAD_TIMEOUT_SECONDS = float(os.getenv("RELOAD_TIMEOUT_SECONDS", "0"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

SHUTDOWN_TIMEOUT_SECONDS = 10.0

# =============================================================================
# Logging Setup
# =============================================================================

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# =============================================================================
# Exceptions
# =============================================================================


class NodeSyncError(Exception):
    """Base class for errors raised by kube-node-sync."""


class AddressSourceError(NodeSyncError):
    """The address inventory could not be queried."""


class ReloadError(NodeSyncError):
    """The reload command could not be run or exited with a failure."""


# =============================================================================
# Data Classes
# =============================================================================

Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
AddressSet = Tuple[Address, ...]


@dataclass(frozen=True)
class UpstreamGroup:
    """A named nginx upstream served by every node on a fixed port."""

    name: str
    port: int


@dataclass(frozen=True)
class ReloadCommand:
    """External command that makes the consumer pick up a new artifact."""

    path: str
    args: Tuple[str, ...] = ()

    @property
    def argv(self) -> List[str]:
        return [self.path, *self.args]


DEFAULT_UPSTREAM_GROUPS: Tuple[UpstreamGroup, ...] = (
    UpstreamGroup(name="diy", port=32016),
    UpstreamGroup(name="dockerui", port=32018),
    UpstreamGroup(name="tryingadventure", port=32020),
    UpstreamGroup(name="devops", port=32021),
    UpstreamGroup(name="monitor", port=32699),
)


def parse_address(value: str) -> Address:
    """Parse an annotation value such as "10.0.0.5" or "10.0.0.5/24".

    Raises ValueError when the value is not an IP address.
    """
    return ipaddress.ip_address(value.split("/", 1)[0].strip())


def make_address_set(addresses: Sequence[Address]) -> AddressSet:
    """Collapse duplicates, keeping the first occurrence of each address."""
    return tuple(dict.fromkeys(addresses))


# =============================================================================
# Address Source Interface and Implementations
# =============================================================================


class AddressSource(ABC):
    """Abstract base class for address inventories."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the source name for logging."""
        pass

    @abstractmethod
    def fetch(self) -> AddressSet:
        """Return the current member addresses.

        Raises AddressSourceError when the inventory cannot be queried.
        """
        pass


class KubernetesNodeAddressSource(AddressSource):
    """Reads node addresses from an annotation on every Kubernetes node."""

    def __init__(
        self,
        core_v1: Any,
        annotation: str = NODE_ADDRESS_ANNOTATION,
        timeout_seconds: float = KUBE_REQUEST_TIMEOUT_SECONDS,
    ):
        self._core_v1 = core_v1
        self._annotation = annotation
        self._timeout = timeout_seconds

    @property
    def name(self) -> str:
        return "Kubernetes nodes"

    def fetch(self) -> AddressSet:
        logger.debug("Querying Kubernetes for node list")
        try:
            nodes = self._core_v1.list_node(_request_timeout=self._timeout).items or []
        except (ApiException, urllib3.exceptions.HTTPError, OSError) as e:
            raise AddressSourceError(f"Failed to list nodes: {e}") from e

        addresses: List[Address] = []
        for node in nodes:
            metadata = getattr(node, "metadata", None)
            node_name = getattr(metadata, "name", None) or "<unnamed>"
            annotations = getattr(metadata, "annotations", None) or {}

            raw = annotations.get(self._annotation)
            if not raw:
                logger.debug(f"Node {node_name} has no '{self._annotation}' annotation, skipping")
                continue

            try:
                address = parse_address(str(raw))
            except ValueError:
                logger.warning(f"Node {node_name} has invalid address '{raw}', skipping")
                continue

            logger.debug(f"Found node {node_name}: {address}")
            addresses.append(address)

        logger.info(
            f"There are {len(nodes)} nodes in the cluster, of which {len(addresses)} have an address"
        )
        return make_address_set(addresses)


def load_core_v1_api(kubeconfig: str = "") -> client.CoreV1Api:
    """Build a CoreV1Api client.

    An explicit kubeconfig path wins. Otherwise the in-cluster service account
    is used, falling back to the default kubeconfig for local runs.
    """
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig)
        logger.info(f"Using kubeconfig {kubeconfig}")
    else:
        try:
            config.load_incluster_config()
            logger.info("Using in-cluster config")
        except config.ConfigException:
            config.load_kube_config()
            logger.info("Using default kubeconfig")
    return client.CoreV1Api()


# =============================================================================
# Change Detection
# =============================================================================


def addresses_changed(previous: Sequence[Address], current: Sequence[Address]) -> bool:
    """Return True when the two address collections differ as sets."""
    previous_set = set(previous)
    current_set = set(current)

    if len(previous_set) != len(current_set):
        logger.info(f"Node count changed from {len(previous_set)} to {len(current_set)}")
        return True

    missing = current_set - previous_set
    if missing:
        logger.info(
            f"Node addresses changed: {', '.join(sorted(str(a) for a in missing))} not seen before"
        )
        return True

    return False


# =============================================================================
# Config Renderer Interface and Implementations
# =============================================================================

RULES_START_MARKER = "### RULES ###"
RULES_END_MARKER = "### END RULES ###"

DEFAULT_UFW_CHAIN = "ufw-user-input"

# Always present, whatever nodes are in the cluster.
DEFAULT_STATIC_RULES: Tuple[str, ...] = (
    "",
    "### tuple ### allow any 22 0.0.0.0/0 any 0.0.0.0/0 in",
    "-A ufw-user-input -p tcp --dport 22 -j ACCEPT",
    "-A ufw-user-input -p udp --dport 22 -j ACCEPT",
    "",
)


class ConfigRenderer(ABC):
    """Abstract base class for artifact renderers.

    Renderers are pure: the same addresses and existing lines always give the
    same output.
    """

    # Whether render() needs the current artifact content.
    preserves_existing: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the renderer name for logging."""
        pass

    @abstractmethod
    def render(self, addresses: Sequence[Address], existing_lines: Sequence[str] = ()) -> List[str]:
        """Return the artifact lines for the given addresses."""
        pass


def split_rules_file(lines: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Split a rules file into its preserved prefix and suffix.

    The prefix is every line strictly before the start marker. The suffix is
    every line from the end marker onward, so it always starts with the end
    marker. Without a start marker the whole content becomes the prefix.
    """
    start = next((i for i, line in enumerate(lines) if line.strip() == RULES_START_MARKER), None)
    if start is None:
        return list(lines), [RULES_END_MARKER]

    end = next(
        (i for i in range(start + 1, len(lines)) if lines[i].strip() == RULES_END_MARKER),
        None,
    )
    if end is None:
        return list(lines[:start]), [RULES_END_MARKER]

    return list(lines[:start]), list(lines[end:])


class UFWRulesRenderer(ConfigRenderer):
    """Regenerates the region between the marker lines of a UFW user.rules file."""

    preserves_existing = True

    def __init__(
        self,
        target_port: int = UFW_TARGET_PORT,
        static_rules: Sequence[str] = DEFAULT_STATIC_RULES,
        chain: str = DEFAULT_UFW_CHAIN,
    ):
        self._target_port = target_port
        self._static_rules = tuple(static_rules)
        self._chain = chain

    @property
    def name(self) -> str:
        return "UFW"

    def render(self, addresses: Sequence[Address], existing_lines: Sequence[str] = ()) -> List[str]:
        prefix, suffix = split_rules_file(existing_lines)

        lines = list(prefix)
        lines.append(RULES_START_MARKER)
        lines.extend(self._static_rules)
        for address in addresses:
            lines.extend(self._address_rules(address))
        lines.extend(suffix)
        return lines

    def _address_rules(self, address: Address) -> List[str]:
        anywhere = "::/0" if address.version == 6 else "0.0.0.0/0"
        port = self._target_port
        return [
            f"### tuple ### allow tcp {port} {anywhere} any {address} in",
            f"-A {self._chain} -p tcp --dport {port} -s {address} -j ACCEPT",
            "",
        ]


class NginxUpstreamRenderer(ConfigRenderer):
    """Renders one nginx upstream block per upstream group."""

    def __init__(
        self,
        upstream_groups: Sequence[UpstreamGroup] = DEFAULT_UPSTREAM_GROUPS,
        weight: int = NGINX_SERVER_WEIGHT,
    ):
        self._upstream_groups = tuple(upstream_groups)
        self._weight = weight

    @property
    def name(self) -> str:
        return "nginx"

    def render(self, addresses: Sequence[Address], existing_lines: Sequence[str] = ()) -> List[str]:
        lines: List[str] = []
        for group in self._upstream_groups:
            lines.append(f"upstream {group.name} {{")
            for address in addresses:
                host = f"[{address}]" if address.version == 6 else str(address)
                lines.append(f"server {host}:{group.port} weight={self._weight};")
            lines.append("}")
        return lines


# =============================================================================
# Artifact Persistence
# =============================================================================


def read_artifact_lines(path: str) -> List[str]:
    """Read the current artifact, returning no lines if it cannot be read.

    Lines are split on LF only. Other line break characters such as CR or
    form feed stay inside the line, so preserved content is written back
    unchanged.
    """
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            content = f.read()
    except FileNotFoundError:
        logger.info(f"Artifact {path} does not exist yet")
        return []
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to read artifact {path}: {e}")
        return []

    lines = content.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


class ArtifactWriter:
    """Writes artifacts through a temporary file and an atomic rename."""

    def write(self, path: str, lines: Sequence[str]) -> None:
        target = Path(path)
        tmp_path = target.with_name(target.name + ".tmp")
        content = "".join(f"{line}\n" for line in lines)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(content, "utf-8")
            if target.exists():
                shutil.copymode(target, tmp_path)
            tmp_path.replace(target)
        except OSError:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise


# =============================================================================
# Reload
# =============================================================================


class ReloadTrigger:
    """Runs the reload command synchronously and captures its output."""

    def __init__(self, command: ReloadCommand, timeout_seconds: float = RELOAD_TIMEOUT_SECONDS):
        self.command = command
        self._timeout = timeout_seconds if timeout_seconds > 0 else None

    def fire(self) -> str:
        argv = self.command.argv
        logger.info(f"Reloading using command: {' '.join(argv)}")
        try:
            result = subprocess.run(
                argv,
                check=True,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self._timeout,
            )
        except subprocess.CalledProcessError as e:
            output = (e.stderr or e.stdout or "").strip()
            raise ReloadError(f"{argv[0]} exited with status {e.returncode}: {output}") from e
        except subprocess.TimeoutExpired as e:
            raise ReloadError(f"{argv[0]} did not finish within {e.timeout}s") from e
        except OSError as e:
            raise ReloadError(f"Failed to run {argv[0]}: {e}") from e

        output = result.stdout.strip()
        logger.info(f"Reload completed with: {output}")
        return output


# =============================================================================
# Core Reconciler
# =============================================================================


class NodeSyncReconciler:
    def __init__(
        self,
        *,
        address_source: AddressSource,
        renderer: ConfigRenderer,
        writer: ArtifactWriter,
        reload_trigger: ReloadTrigger,
        artifact_path: str,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        reload_delay: float = RELOAD_DELAY_SECONDS,
    ):
        self.address_source = address_source
        self.renderer = renderer
        self.writer = writer
        self.reload_trigger = reload_trigger
        self.artifact_path = artifact_path
        self.poll_interval = poll_interval
        self.reload_delay = reload_delay

    def sync_once(
        self,
        previous: AddressSet = (),
        stop_event: Optional[threading.Event] = None,
    ) -> AddressSet:
        """Run one reconciliation cycle.

        Returns the snapshot the next cycle should compare against: the fresh
        snapshot once the artifact is on disk, otherwise ``previous`` so the
        whole cycle is retried on the next tick.
        """
        if stop_event is None:
            stop_event = threading.Event()

        try:
            current = self.address_source.fetch()
        except AddressSourceError as e:
            logger.warning(f"{self.address_source.name} unreachable, keeping previous snapshot: {e}")
            return previous

        if not addresses_changed(previous, current):
            logger.debug("No changes detected in node addresses")
            return current

        existing_lines = (
            read_artifact_lines(self.artifact_path) if self.renderer.preserves_existing else []
        )
        lines = self.renderer.render(current, existing_lines)
        logger.info(
            f"Rendered {self.renderer.name} artifact for {len(current)} address(es): "
            f"{', '.join(str(a) for a in current) or '-'}"
        )

        try:
            self.writer.write(self.artifact_path, lines)
        except OSError as e:
            logger.error(f"Failed to write {self.artifact_path}, skipping reload: {e}")
            return previous
        logger.info(f"Wrote {len(lines)} lines to {self.artifact_path}")

        if self.reload_delay > 0:
            stop_event.wait(self.reload_delay)
        if stop_event.is_set():
            logger.info("Shutdown requested, skipping reload")
            return current

        try:
            self.reload_trigger.fire()
        except ReloadError as e:
            logger.error(f"Reload failed, artifact is written but not yet live: {e}")

        return current

    def run(self, stop_event: threading.Event, previous: AddressSet = ()) -> None:
        """Reconcile every ``poll_interval`` seconds until ``stop_event`` is set."""
        logger.info(f"Reconciliation loop started (poll interval {self.poll_interval}s)")
        while not stop_event.is_set():
            try:
                previous = self.sync_once(previous, stop_event)
            except Exception as e:
                logger.error(f"Reconciliation cycle failed: {e}", exc_info=True)
            stop_event.wait(self.poll_interval)
        logger.info("Reconciliation loop stopped")


# =============================================================================
# Factories
# =============================================================================


def load_upstream_groups(config_path: str = "", groups_spec: str = "") -> List[UpstreamGroup]:
    """Load upstream groups from a YAML file, a "name:port" list or the defaults."""
    if config_path:
        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load upstreams from {config_path}: {e}")
        else:
            if not isinstance(config_data, dict) or "upstreams" not in config_data:
                logger.warning(f"Config file {config_path} missing 'upstreams' key")
            else:
                groups: List[UpstreamGroup] = []
                for item in config_data["upstreams"] or []:
                    if not isinstance(item, dict):
                        logger.warning(f"Skipping malformed upstream entry: {item}")
                        continue
                    group = _make_upstream_group(item.get("name"), item.get("port"))
                    if group:
                        groups.append(group)
                if groups:
                    logger.info(f"Loaded {len(groups)} upstream group(s) from {config_path}")
                    return groups

    if groups_spec:
        groups = []
        for raw_item in groups_spec.split(","):
            item = raw_item.strip()
            if not item:
                continue
            name, _, port = item.partition(":")
            group = _make_upstream_group(name, port)
            if group:
                groups.append(group)
        if groups:
            return groups

    return list(DEFAULT_UPSTREAM_GROUPS)


def _make_upstream_group(name: Any, port: Any) -> Optional[UpstreamGroup]:
    name = str(name or "").strip()
    port_number = _parse_port(port)
    if not name or port_number is None:
        logger.warning(f"Skipping invalid upstream group: name={name!r} port={port!r}")
        return None
    return UpstreamGroup(name=name, port=port_number)


def _parse_port(value: Any) -> Optional[int]:
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    if not 0 < port < 65536:
        return None
    return port


def create_renderer(kind: str, upstream_groups: Sequence[UpstreamGroup] = ()) -> ConfigRenderer:
    """Factory function to create the renderer for an artifact kind."""
    if kind == "ufw":
        return UFWRulesRenderer(target_port=UFW_TARGET_PORT)
    elif kind == "nginx":
        return NginxUpstreamRenderer(
            upstream_groups=upstream_groups or DEFAULT_UPSTREAM_GROUPS,
            weight=NGINX_SERVER_WEIGHT,
        )
    else:
        raise ValueError(f"Unsupported artifact kind: '{kind}'. Supported kinds: ufw, nginx")


def create_reload_trigger(kind: str, command_path: str = "") -> ReloadTrigger:
    """Factory function to create the reload trigger for an artifact kind."""
    if kind not in RELOAD_ARGS:
        raise ValueError(f"Unsupported artifact kind: '{kind}'. Supported kinds: ufw, nginx")
    command = ReloadCommand(
        path=command_path or DEFAULT_RELOAD_COMMANDS[kind],
        args=RELOAD_ARGS[kind],
    )
    return ReloadTrigger(command, timeout_seconds=RELOAD_TIMEOUT_SECONDS)


# =============================================================================
# Main
# =============================================================================


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="kube-node-sync",
        description="Regenerate a UFW or nginx config from Kubernetes node addresses",
    )
    parser.add_argument(
        "--kind",
        default=ARTIFACT_KIND,
        help="artifact type: ufw or nginx (default: %(default)s)",
    )
    parser.add_argument(
        "--kubeconfig",
        default=KUBECONFIG,
        help="path to the kubeconfig file (default: in-cluster, then ~/.kube/config)",
    )
    parser.add_argument(
        "--artifact",
        "--rules",
        "--config",
        dest="artifact_path",
        default=ARTIFACT_PATH,
        help="file to regenerate (default depends on --kind)",
    )
    parser.add_argument(
        "--reload-command",
        "--ufw",
        "--systemctl",
        dest="reload_command",
        default=RELOAD_COMMAND,
        help="executable used to reload the consumer (default depends on --kind)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        default=SYNC_MODE == "once",
        help="run a single reconciliation cycle and exit",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=POLL_INTERVAL_SECONDS,
        help="seconds between reconciliation cycles (default: %(default)s)",
    )

    args = parser.parse_args(argv)
    args.kind = args.kind.lower().strip()
    if args.kind in DEFAULT_ARTIFACT_PATHS:
        args.artifact_path = args.artifact_path or DEFAULT_ARTIFACT_PATHS[args.kind]
        args.reload_command = args.reload_command or DEFAULT_RELOAD_COMMANDS[args.kind]
    return args


def validate_config(args: argparse.Namespace) -> bool:
    """Validate configuration."""
    errors = []

    if args.kind not in DEFAULT_ARTIFACT_PATHS:
        errors.append(f"Unsupported ARTIFACT_KIND: {args.kind}. Supported: ufw, nginx")

    if SYNC_MODE not in {"once", "watch"}:
        errors.append(f"Invalid SYNC_MODE: {SYNC_MODE}. Use 'once' or 'watch'")

    if args.interval <= 0:
        errors.append(f"Poll interval must be positive, got {args.interval}")

    if RELOAD_DELAY_SECONDS < 0:
        errors.append(f"RELOAD_DELAY_SECONDS must not be negative, got {RELOAD_DELAY_SECONDS}")

    if _parse_port(UFW_TARGET_PORT) is None:
        errors.append(f"UFW_TARGET_PORT must be a valid port, got {UFW_TARGET_PORT}")

    if NGINX_SERVER_WEIGHT < 1:
        errors.append(f"NGINX_SERVER_WEIGHT must be at least 1, got {NGINX_SERVER_WEIGHT}")

    if args.kubeconfig and not os.path.exists(args.kubeconfig):
        errors.append(f"Kubeconfig file not found: {args.kubeconfig}")

    if errors:
        for error in errors:
            logger.error(error)
        return False

    return True


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    logger.info(f"kube-node-sync: {NODE_ADDRESS_ANNOTATION} -> {args.kind}")

    if not validate_config(args):
        logger.error("Configuration validation failed")
        sys.exit(1)

    upstream_groups: List[UpstreamGroup] = []
    if args.kind == "nginx":
        upstream_groups = load_upstream_groups(NGINX_UPSTREAMS_PATH, NGINX_UPSTREAMS)
        logger.info(
            f"Upstream groups: {', '.join(f'{g.name}:{g.port}' for g in upstream_groups)}"
        )

    try:
        core_v1 = load_core_v1_api(args.kubeconfig)
    except Exception as e:
        logger.error(f"Cannot build Kubernetes client: {e}")
        sys.exit(1)

    reconciler = NodeSyncReconciler(
        address_source=KubernetesNodeAddressSource(core_v1),
        renderer=create_renderer(args.kind, upstream_groups),
        writer=ArtifactWriter(),
        reload_trigger=create_reload_trigger(args.kind, args.reload_command),
        artifact_path=args.artifact_path,
        poll_interval=args.interval,
    )

    logger.info(f"Artifact: {args.artifact_path}")
    logger.info(f"Reload command: {' '.join(reconciler.reload_trigger.command.argv)}")
    logger.info(f"Sync mode: {'once' if args.once else 'watch'}")

    if args.once:
        reconciler.sync_once()
        return

    stop_event = threading.Event()

    def _handle_signal(signum: int, frame: Any) -> None:
        logger.info(f"Got signal {signal.Signals(signum).name}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    worker = threading.Thread(
        target=reconciler.run,
        args=(stop_event,),
        name="reconciler",
        daemon=True,
    )
    worker.start()

    # The main thread only waits for a shutdown signal.
    while worker.is_alive() and not stop_event.wait(timeout=1.0):
        pass

    worker.join(timeout=SHUTDOWN_TIMEOUT_SECONDS)
    if worker.is_alive():
        logger.warning("Reconciliation cycle still running, exiting without waiting for it")


if __name__ == "__main__":
    main()
