"""Duplicate a record's assets into another tenant's namespace.

When a catalog item (a beverage, an event) is copied from one restaurant
to another, its files must be re-homed under the receiving restaurant's
prefix so that each tenant owns and can delete its own objects. A file
that cannot be copied only costs the record that one reference.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from geoassets.services import asset_store

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class CopyResult:
    """Record with re-homed asset URLs.

    Attributes:
        record: Copy of the input record; asset fields point at the
            target tenant's objects.
        failed: Source URLs that could not be copied.
    """

    record: dict[str, object]
    failed: list[str] = dataclasses.field(default_factory=list)


class CrossTenantCopier:
    """Copy every asset referenced by a record to a target tenant."""

    def __init__(self, assets: asset_store.AssetStore) -> None:
        self._assets = assets

    def copy_url(
        self,
        source_url: str,
        target_tenant_id: str,
        category: str | None = None,
    ) -> str | None:
        reference = self._assets.copy_across_tenant(
            source_url,
            target_tenant_id,
            category,
        )
        return reference.public_url if reference is not None else None

    def copy_record(
        self,
        record: Mapping[str, object],
        target_tenant_id: str,
        fields: Sequence[str],
    ) -> CopyResult:
        """Copy the assets named by ``fields`` and rewrite their URLs.

        A string field is a single slot: a failed copy leaves it None. A
        list field is a collection: failed members are left out and the
        order of the others is kept. Other fields are copied unchanged.
        The source record and source objects are not modified.

        Args:
            record: Source record, e.g. a beverage row.
            target_tenant_id: Tenant receiving the copies.
            fields: Names of the asset fields to re-home.

        Returns:
            The rewritten record and the source URLs that failed.
        """
        result = CopyResult(record=dict(record))
        for name in fields:
            value = record.get(name)
            if isinstance(value, str) and value:
                copied = self.copy_url(value, target_tenant_id)
                if copied is None:
                    result.failed.append(value)
                result.record[name] = copied
            elif isinstance(value, list):
                members: list[str] = []
                for url in value:
                    copied = self.copy_url(str(url), target_tenant_id)
                    if copied is None:
                        result.failed.append(str(url))
                    else:
                        members.append(copied)
                result.record[name] = members

        if result.failed:
            logger.warning(
                "Copied record to %s without %d asset(s)",
                target_tenant_id,
                len(result.failed),
            )
        return result
