"""
Data models for pkrkit.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from .constants import (
    ALL_PROVIDERS,
    DEFAULT_BUILDER_TAG_KEY,
    DEFAULT_BUILDER_TAG_VALUE,
    DEFAULT_IMAGE_PREFIX,
)
from .utils import generate_run_id, get_timestamp


class Provider(str, Enum):
    """Cloud providers the kit builds images for."""

    AWS = "aws"
    GCP = "gcp"
    AZURE = "azure"


class ResourceKind(str, Enum):
    """Kinds of cloud resources the sweeper can delete."""

    INSTANCE = "instance"
    IMAGE = "image"
    SNAPSHOT = "snapshot"
    SECURITY_GROUP = "security_group"
    KEY_PAIR = "key_pair"


# Deletion order inside one provider's batch. Instances go first so the
# security groups and key pairs they hold are released; snapshots follow
# the images that reference them.
KIND_ORDER: Tuple[ResourceKind, ...] = (
    ResourceKind.INSTANCE,
    ResourceKind.IMAGE,
    ResourceKind.SNAPSHOT,
    ResourceKind.SECURITY_GROUP,
    ResourceKind.KEY_PAIR,
)

PROVIDER_ORDER: Tuple[Provider, ...] = (Provider.AWS, Provider.GCP, Provider.AZURE)


@dataclass(frozen=True)
class CloudResource:
    """
    A resource as returned by one provider listing.

    Built fresh on every enumeration and never cached between runs.
    """
    provider: Provider
    kind: ResourceKind
    resource_id: str
    name: str = ""
    created_at: Optional[datetime] = None
    parent_refs: FrozenSet[str] = frozenset()
    region: Optional[str] = None
    state: Optional[str] = None
    builder_owned: bool = False

    tags: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    # Provider-specific coordinates needed to issue the delete call
    # (GCP zone, Azure resource group, ...)
    location: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    def tag(self, key: str) -> Optional[str]:
        """Return a tag value, or None when the tag is absent."""
        return self.tags.get(key)

    @property
    def label(self) -> str:
        """Short human readable reference used in messages."""
        if self.name and self.name != self.resource_id:
            return f"{self.resource_id} ({self.name})"
        return self.resource_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'provider': self.provider.value,
            'kind': self.kind.value,
            'resource_id': self.resource_id,
            'name': self.name,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'parent_refs': sorted(self.parent_refs),
            'region': self.region,
            'state': self.state,
            'builder_owned': self.builder_owned,
            'tags': dict(self.tags),
        }


@dataclass(frozen=True)
class RunConfig:
    """
    Settings for one cleanup invocation.

    Built once from the merged configuration and passed to every component.
    """
    prefix: str = DEFAULT_IMAGE_PREFIX
    dry_run: bool = False
    force_confirm: bool = False
    providers: Tuple[str, ...] = ALL_PROVIDERS
    required_providers: Tuple[str, ...] = ()
    builder_tag_key: str = DEFAULT_BUILDER_TAG_KEY
    builder_tag_value: str = DEFAULT_BUILDER_TAG_VALUE
    aws_region: Optional[str] = None
    gcp_project: Optional[str] = None
    azure_subscription: Optional[str] = None


@dataclass(frozen=True)
class CleanupPlan:
    """Ordered resources scheduled for deletion, grouped by provider then kind."""
    items: Tuple[CloudResource, ...] = ()

    def __iter__(self) -> Iterator[CloudResource]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def is_empty(self) -> bool:
        return not self.items

    def resource_ids(self) -> List[str]:
        return [r.resource_id for r in self.items]

    def for_provider(self, provider: Provider) -> "CleanupPlan":
        return CleanupPlan(tuple(r for r in self.items if r.provider == provider))

    def count_by_kind(self) -> Dict[ResourceKind, int]:
        counts: Dict[ResourceKind, int] = {}
        for resource in self.items:
            counts[resource.kind] = counts.get(resource.kind, 0) + 1
        return counts


@dataclass
class DeleteOutcome:
    """Result of one delete call."""
    resource: CloudResource
    success: bool
    error_kind: Optional[str] = None
    message: str = ""

    @property
    def resource_id(self) -> str:
        return self.resource.resource_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resource_id': self.resource_id,
            'provider': self.resource.provider.value,
            'kind': self.resource.kind.value,
            'success': self.success,
            'error_kind': self.error_kind,
            'message': self.message,
        }


class ProviderStatus(str, Enum):
    UNAVAILABLE = "unavailable"
    ENUMERATION_FAILED = "enumeration_failed"
    DRY_RUN = "dry_run"
    DECLINED = "declined"
    COMPLETED = "completed"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    ABORTED = "aborted"


@dataclass
class KindCounts:
    """Aggregated outcome counts for one provider and kind."""
    provider: Provider
    kind: ResourceKind
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'provider': self.provider.value,
            'kind': self.kind.value,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'skipped': self.skipped,
        }


@dataclass
class ProviderReport:
    """What happened to one provider's batch."""
    provider: Provider
    status: ProviderStatus
    plan: CleanupPlan = field(default_factory=CleanupPlan)
    outcomes: List[DeleteOutcome] = field(default_factory=list)
    message: str = ""

    @property
    def failures(self) -> List[DeleteOutcome]:
        return [o for o in self.outcomes if not o.success]

    def counts(self) -> List[KindCounts]:
        """
        Count outcomes per kind. Planned resources without an outcome
        (dry run, declined batch) are counted as skipped.
        """
        by_kind: Dict[ResourceKind, KindCounts] = {}
        attempted = set()

        for outcome in self.outcomes:
            kind = outcome.resource.kind
            entry = by_kind.setdefault(kind, KindCounts(self.provider, kind))
            if outcome.success:
                entry.succeeded += 1
            else:
                entry.failed += 1
            attempted.add(outcome.resource_id)

        for resource in self.plan:
            if resource.resource_id in attempted:
                continue
            entry = by_kind.setdefault(resource.kind, KindCounts(self.provider, resource.kind))
            entry.skipped += 1

        return [by_kind[k] for k in KIND_ORDER if k in by_kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'provider': self.provider.value,
            'status': self.status.value,
            'message': self.message,
            'plan': [r.to_dict() for r in self.plan],
            'outcomes': [o.to_dict() for o in self.outcomes],
            'counts': [c.to_dict() for c in self.counts()],
        }


@dataclass
class RunReport:
    """Aggregated result of one sweep across providers."""
    reports: List[ProviderReport] = field(default_factory=list)
    dry_run: bool = False
    run_id: str = field(default_factory=generate_run_id)
    started_at: str = field(default_factory=get_timestamp)

    def get(self, provider: Provider) -> Optional[ProviderReport]:
        for report in self.reports:
            if report.provider == provider:
                return report
        return None

    @property
    def plan(self) -> CleanupPlan:
        items: List[CloudResource] = []
        for report in self.reports:
            items.extend(report.plan)
        return CleanupPlan(tuple(items))

    @property
    def status(self) -> RunStatus:
        reached = [
            r for r in self.reports
            if r.status not in (ProviderStatus.UNAVAILABLE, ProviderStatus.ENUMERATION_FAILED)
        ]
        if not reached:
            return RunStatus.ABORTED
        if any(r.status == ProviderStatus.ENUMERATION_FAILED for r in self.reports):
            return RunStatus.COMPLETED_WITH_FAILURES
        if any(r.failures for r in self.reports):
            return RunStatus.COMPLETED_WITH_FAILURES
        return RunStatus.COMPLETED

    def unavailable(self) -> List[Provider]:
        return [r.provider for r in self.reports if r.status == ProviderStatus.UNAVAILABLE]

    def unprocessed(self, required: Iterable[str]) -> List[str]:
        """Providers from required that were skipped or could not be listed."""
        wanted = set(required)
        return [
            r.provider.value for r in self.reports
            if r.provider.value in wanted
            and r.status in (ProviderStatus.UNAVAILABLE, ProviderStatus.ENUMERATION_FAILED)
        ]

    def counts(self) -> List[KindCounts]:
        rows: List[KindCounts] = []
        for report in self.reports:
            rows.extend(report.counts())
        return rows

    def to_dict(self) -> Dict[str, Any]:
        return {
            'run_id': self.run_id,
            'started_at': self.started_at,
            'status': self.status.value,
            'dry_run': self.dry_run,
            'providers': [r.to_dict() for r in self.reports],
        }
