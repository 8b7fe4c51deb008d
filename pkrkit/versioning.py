"""
Duplicate image detection and version bumping.

One image version is shared by all providers of a build, so a version is
free only when no provider already has an image named
{name}-{provider}-v{version}. GCP images carry the version with dashes
(foo-gcp-v1-0-0) because GCE names cannot contain dots.
"""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .constants import DASHED_VERSION_PROVIDERS, IMAGE_NAME_TEMPLATE, MAX_VERSION_BUMPS
from .errors import AuthenticationMissing, InvalidArgument, ValidationFailure
from .providers.base import ProviderClient
from .utils import is_auth_error, mask_account_id

logger = logging.getLogger(__name__)

VERSION_PATTERN = re.compile(r'^\d+(\.\d+)*$')


class VersionPolicy(str, Enum):
    """What to do when the image about to be built already exists."""

    FAIL = "fail"
    SKIP = "skip"
    OVERWRITE = "overwrite"
    AUTO_INCREMENT = "auto-increment"

    @classmethod
    def values(cls) -> List[str]:
        return [policy.value for policy in cls]


def format_image_name(name: str, provider: str, version: str) -> str:
    return IMAGE_NAME_TEMPLATE.format(name=name, provider=provider, version=version)


def provider_image_name(name: str, provider: str, version: str) -> str:
    """Image name as the provider's Packer builder writes it."""
    if provider in DASHED_VERSION_PROVIDERS:
        version = version.replace('.', '-')
    return format_image_name(name, provider, version)


def validate_version(version: str) -> str:
    if not version or not VERSION_PATTERN.match(version):
        raise InvalidArgument(f"Invalid version '{version}': expected dotted numbers such as 1.0.0")
    return version


def bump_version(version: str) -> str:
    """Increment the last component: 1.0.0 -> 1.0.1, 1.9 -> 1.10."""
    parts = validate_version(version).split('.')
    parts[-1] = str(int(parts[-1]) + 1)
    return '.'.join(parts)


@dataclass
class VersionCheck:
    """Result of checking one name/version pair against every reachable provider."""
    name: str
    requested_version: str
    resolved_version: str
    policy: VersionPolicy
    conflicts: Dict[str, str] = field(default_factory=dict)
    checked_providers: List[str] = field(default_factory=list)
    skipped_providers: List[str] = field(default_factory=list)
    attempts: List[str] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)

    @property
    def should_build(self) -> bool:
        return not (self.has_conflict and self.policy == VersionPolicy.SKIP)

    @property
    def force(self) -> bool:
        return self.has_conflict and self.policy == VersionPolicy.OVERWRITE

    @property
    def version_changed(self) -> bool:
        return self.resolved_version != self.requested_version

    def image_names(self) -> Dict[str, str]:
        return {
            provider: provider_image_name(self.name, provider, self.resolved_version)
            for provider in self.checked_providers
        }


def available_clients(clients: Sequence[ProviderClient]) -> List[ProviderClient]:
    """Clients whose credentials resolve; the others are skipped with a warning."""
    usable = []
    for client in clients:
        try:
            client.check_available()
        except AuthenticationMissing as e:
            logger.warning(f"{client.display_name} unavailable, skipping duplicate check: {e}")
            continue
        usable.append(client)
    return usable


def find_conflicts(
    clients: Sequence[ProviderClient],
    name: str,
    version: str,
    skipped: Optional[List[str]] = None,
) -> Dict[str, str]:
    """
    Map provider -> existing image name for every provider that already has the version.

    A provider whose lookup is refused for lack of permission is appended to
    skipped and left out. Any other lookup error raises ValidationFailure.
    """
    conflicts = {}
    for client in clients:
        provider = client.provider.value
        if skipped is not None and provider in skipped:
            continue
        image_name = provider_image_name(name, provider, version)
        try:
            exists = client.image_exists(image_name)
        except Exception as e:
            if skipped is not None and is_auth_error(e):
                logger.warning(f"{client.display_name} image lookup denied, skipping duplicate check: "
                               f"{mask_account_id(str(e))}")
                skipped.append(provider)
                continue
            raise ValidationFailure(
                f"{client.display_name} image lookup failed for {image_name}: {mask_account_id(str(e))}"
            ) from e
        if exists:
            logger.info(f"{client.display_name} image {image_name} already exists")
            conflicts[provider] = image_name
        else:
            logger.debug(f"{client.display_name} image {image_name} is free")
    return conflicts


def resolve_version(
    clients: Sequence[ProviderClient],
    name: str,
    version: str,
    policy: VersionPolicy = VersionPolicy.FAIL,
    max_bumps: int = MAX_VERSION_BUMPS,
    skipped: Optional[List[str]] = None,
) -> VersionCheck:
    """
    Check name/version on every client and apply the policy.

    Under FAIL a conflict raises ValidationFailure. Under AUTO_INCREMENT the
    version is bumped and re-checked until every provider is free. Providers
    that refuse the lookup end up in skipped_providers.
    """
    if not name:
        raise InvalidArgument("Image name must not be empty")
    validate_version(version)

    check = VersionCheck(
        name=name,
        requested_version=version,
        resolved_version=version,
        policy=policy,
        skipped_providers=list(skipped or []),
        attempts=[version],
    )
    check.conflicts = find_conflicts(clients, name, version, check.skipped_providers)
    check.checked_providers = [
        c.provider.value for c in clients if c.provider.value not in check.skipped_providers
    ]

    if not check.conflicts:
        return check

    if policy == VersionPolicy.FAIL:
        existing = ", ".join(sorted(check.conflicts.values()))
        raise ValidationFailure(f"Image already exists: {existing}")

    if policy != VersionPolicy.AUTO_INCREMENT:
        return check

    candidate = version
    for _ in range(max_bumps):
        candidate = bump_version(candidate)
        check.attempts.append(candidate)
        proposed = ", ".join(provider_image_name(name, p, candidate) for p in check.checked_providers)
        logger.info(f"Trying version {candidate} ({proposed})")
        if not find_conflicts(clients, name, candidate, check.skipped_providers):
            check.checked_providers = [
                p for p in check.checked_providers if p not in check.skipped_providers
            ]
            check.resolved_version = candidate
            return check

    raise ValidationFailure(
        f"No free version found for '{name}' after {max_bumps} increments from {version}"
    )
