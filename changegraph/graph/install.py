"""
Package Install Engine.

Merges externally authored graph packages into the tenant graph:

- checksum idempotency: re-installing identical content is a no-op
- version guard: a strictly lower version than the installed one is refused
- the incoming package is vetted on its own (field types, inheritance
  cycles, duplicate fields) and the current graph must be healthy before
  anything is written
- record types are written base-first, inside one storage transaction
  together with the append-only install audit row

Each call returns an ``InstallResult`` instead of raising for domain
failures. ``install_packages`` is best-effort per package.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from itertools import zip_longest
from typing import Any, Dict, Iterable, List, Optional, Set, Union

import structlog
from pydantic import ValidationError

from ..config import get_settings
from ..enums import VALID_FIELD_TYPES
from ..errors import ServiceError
from ..events import DomainEvent, DomainEventType, EventBus
from ..storage.port import SchemaStorage
from .contracts import GraphPackage, RecordTypeNode
from .registry import build_graph_snapshot
from .validation import (
    detect_cycles,
    detect_field_uniqueness,
    snapshot_from_package,
    validate_graph,
)

logger = structlog.get_logger()

ALREADY_INSTALLED = "Already installed with same checksum"
DOWNGRADE_NOT_ALLOWED = "Downgrade not allowed"


@dataclass
class InstallResult:
    """Outcome of installing one package."""

    installed: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"installed": self.installed}
        if self.reason is not None:
            data["reason"] = self.reason
        return data


@dataclass
class BatchInstallResult:
    """Per-package outcomes of a batch install, in submission order."""

    results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def installed_keys(self) -> List[str]:
        return [r["key"] for r in self.results if r["installed"]]

    def to_dict(self) -> Dict[str, Any]:
        return {"results": list(self.results)}


def canonical_json(data: Any) -> str:
    """Deterministic JSON: sorted keys, no insignificant whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_checksum(pkg: GraphPackage) -> str:
    """SHA-256 over the structural content of a package."""
    content = {
        "key": pkg.key,
        "version": pkg.version,
        "recordTypes": [rt.to_wire() for rt in pkg.record_types],
        "workflows": [wf.to_wire() for wf in pkg.workflows],
    }
    return hashlib.sha256(canonical_json(content).encode("utf-8")).hexdigest()


def _segments(part: str) -> List[Union[int, str]]:
    return [int(s) if s.isdigit() else s for s in part.split(".")] if part else []


def _compare_segments(a: List[Union[int, str]], b: List[Union[int, str]]) -> int:
    for x, y in zip_longest(a, b, fillvalue=0):
        if x == y:
            continue
        if isinstance(x, int) and isinstance(y, int):
            return -1 if x < y else 1
        # numeric identifiers sort before alphanumeric ones
        if isinstance(x, int):
            return -1
        if isinstance(y, int):
            return 1
        return -1 if x < y else 1
    return 0


def compare_versions(a: str, b: str) -> int:
    """Ordinal comparison of two version strings: -1, 0 or 1.

    Dot-separated numeric segments compare numerically (``1.10.0`` is newer
    than ``1.9.0``), missing segments count as zero, a pre-release sorts
    before its release (``1.0.0-rc.1`` < ``1.0.0``) and build metadata is
    ignored. Non-numeric segments fall back to string comparison.
    """
    a_release, _, a_pre = a.strip().lstrip("vV").split("+", 1)[0].partition("-")
    b_release, _, b_pre = b.strip().lstrip("vV").split("+", 1)[0].partition("-")

    result = _compare_segments(_segments(a_release), _segments(b_release))
    if result:
        return result
    if a_pre == b_pre:
        return 0
    if not a_pre:
        return 1
    if not b_pre:
        return -1
    return _compare_segments(_segments(a_pre), _segments(b_pre))


def _raw_key(raw: Any) -> Optional[str]:
    key = raw.get("key") if isinstance(raw, dict) else None
    return key if isinstance(key, str) else None


def topological_sort(record_types: Iterable[RecordTypeNode]) -> List[RecordTypeNode]:
    """Order record types so a base type precedes every subtype of it.

    Only base types present in the same package constrain the order; other
    record types keep their order of first visit.
    """
    items = list(record_types)
    by_key = {rt.key: rt for rt in items}
    visited: Set[str] = set()
    ordered: List[RecordTypeNode] = []

    for rt in items:
        chain: List[RecordTypeNode] = []
        key: Optional[str] = rt.key
        while key in by_key and key not in visited:
            visited.add(key)
            chain.append(by_key[key])
            key = by_key[key].base_type
        ordered.extend(reversed(chain))
    return ordered


class PackageRejected(Exception):
    """The package cannot be installed; nothing has been written."""

    def __init__(self, reason: str, detail: Optional[str] = None):
        self.reason = reason
        self.detail = detail or reason
        super().__init__(reason)


class PackageInstaller:
    """Installs graph packages into one tenant's graph."""

    def __init__(self, storage: SchemaStorage, bus: Optional[EventBus] = None):
        self.storage = storage
        self.bus = bus

    def install_package(
        self, pkg: Union[GraphPackage, Dict[str, Any]], project_id: str
    ) -> InstallResult:
        """Install or upgrade ``pkg`` into ``project_id``."""
        if not isinstance(pkg, GraphPackage):
            try:
                pkg = GraphPackage.model_validate(pkg)
            except ValidationError as exc:
                return self._reject(
                    _raw_key(pkg),
                    f"Package is malformed ({exc.error_count()} error(s))",
                    "; ".join(
                        f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}"
                        for e in exc.errors()
                    ),
                )

        log = logger.bind(
            tenant_id=self.storage.ctx.tenant_id,
            package_key=pkg.key,
            package_version=pkg.version,
        )
        checksum = compute_checksum(pkg)

        existing = self.storage.get_graph_package_install_by_key(pkg.key)
        if existing and existing.checksum == checksum:
            self._emit(DomainEvent(DomainEventType.PACKAGE_INSTALL_NOOP, "noop", pkg.key))
            log.info("package_install_noop")
            return InstallResult(installed=False, reason=ALREADY_INSTALLED)

        try:
            if existing and compare_versions(pkg.version, existing.package_version) < 0:
                raise PackageRejected(DOWNGRADE_NOT_ALLOWED)
            self._check_package(pkg)
            self._check_graph()
            self._check_name_conflicts(pkg, project_id)
            self._write(pkg, project_id, checksum)
        except PackageRejected as exc:
            return self._reject(pkg.key, exc.reason, exc.detail)
        except ServiceError as exc:
            return self._reject(pkg.key, exc.message, exc.message)

        self._emit(
            DomainEvent(
                DomainEventType.PACKAGE_INSTALLED,
                "installed",
                pkg.key,
                metadata={"version": pkg.version, "checksum": checksum},
            )
        )
        log.info("package_installed", record_type_count=len(pkg.record_types))
        return InstallResult(installed=True)

    def install_packages(
        self, pkgs: Iterable[Union[GraphPackage, Dict[str, Any]]], project_id: str
    ) -> BatchInstallResult:
        """Install packages in order; a rejection does not stop the batch."""
        batch = BatchInstallResult()
        for pkg in pkgs:
            key = pkg.key if isinstance(pkg, GraphPackage) else _raw_key(pkg)
            result = self.install_package(pkg, project_id)
            batch.results.append({"key": key, **result.to_dict()})
        return batch

    # ------------------------------------------------------------------

    def _check_package(self, pkg: GraphPackage) -> None:
        for rt in pkg.record_types:
            for f in rt.fields:
                if f.type not in VALID_FIELD_TYPES:
                    raise PackageRejected(
                        f'Invalid field type "{f.type}" on record type "{rt.key}"'
                    )

        snapshot = snapshot_from_package(pkg)
        errors = detect_cycles(snapshot) + detect_field_uniqueness(snapshot)
        if errors:
            raise PackageRejected(
                f"Package validation failed: {errors[0].message}",
                "; ".join(e.message for e in errors),
            )

    def _check_graph(self) -> None:
        if not get_settings().install_requires_healthy_graph:
            return
        errors = validate_graph(build_graph_snapshot(self.storage))
        if errors:
            raise PackageRejected(
                f"Graph validation failed: {errors[0].message}",
                "; ".join(e.message for e in errors),
            )

    def _check_name_conflicts(self, pkg: GraphPackage, project_id: str) -> None:
        for rt in pkg.record_types:
            if self.storage.get_record_type_by_key_and_project(rt.key, project_id):
                continue
            other = self.storage.get_record_type_by_name(rt.name)
            if other:
                raise PackageRejected(
                    f'Record type with name "{rt.name}" already exists '
                    f'(key "{other.key}")'
                )

    def _write(self, pkg: GraphPackage, project_id: str, checksum: str) -> None:
        installed_by = self.storage.ctx.actor_id

        with self.storage.transaction():
            for rt in topological_sort(pkg.record_types):
                schema = {"fields": [f.to_wire() for f in rt.fields]}
                current = self.storage.get_record_type_by_key_and_project(rt.key, project_id)
                if current:
                    self.storage.update_record_type_schema(
                        current.id, schema, expected_version=current.version
                    )
                else:
                    self.storage.create_record_type(
                        key=rt.key,
                        name=rt.name,
                        project_id=project_id,
                        schema=schema,
                        base_type=rt.base_type,
                        description=None,
                    )

            self.storage.create_graph_package_install(
                package_key=pkg.key,
                package_version=pkg.version,
                checksum=checksum,
                installed_by=installed_by,
                manifest=pkg.to_wire(),
                project_id=project_id,
            )

    def _reject(self, key: Optional[str], reason: str, detail: str) -> InstallResult:
        self._emit(
            DomainEvent(
                DomainEventType.PACKAGE_INSTALL_REJECTED,
                "rejected",
                key or "",
                error={"message": detail},
            )
        )
        logger.info(
            "package_install_rejected",
            tenant_id=self.storage.ctx.tenant_id,
            package_key=key,
            reason=reason,
        )
        return InstallResult(installed=False, reason=reason)

    def _emit(self, event: DomainEvent) -> None:
        if self.bus is not None:
            self.bus.emit(self.storage, event)


def install_package(
    storage: SchemaStorage,
    pkg: Union[GraphPackage, Dict[str, Any]],
    project_id: str,
    bus: Optional[EventBus] = None,
) -> InstallResult:
    """Install engine entry point."""
    return PackageInstaller(storage, bus).install_package(pkg, project_id)


def install_packages(
    storage: SchemaStorage,
    pkgs: Iterable[Union[GraphPackage, Dict[str, Any]]],
    project_id: str,
    bus: Optional[EventBus] = None,
) -> BatchInstallResult:
    """Batch install engine entry point."""
    return PackageInstaller(storage, bus).install_packages(pkgs, project_id)
