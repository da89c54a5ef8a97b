"""Reconcile uploaded assets into the owning entity's fields.

Single-slot fields (logo, cover, item photo) hold one URL. A submission
holds exactly one file and either fills an empty slot or replaces the
current file. Collection fields (gallery, menu documents, certificates)
hold an ordered list that uploads append to; members are removed one at a
time with an explicit delete.

Slot transitions::

    Empty    -> Uploading -> Occupied
    Occupied -> Replacing -> Occupied
    Occupied -> Deleting  -> Empty

Only terminal states are written to the entity. When a replace fails after
the old file was deleted, the slot is written back as empty before the
error reaches the caller, who has to ask for a new file.

Writes to one slot are not serialized. Concurrent submissions race and the
last entity update wins.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from typing import TYPE_CHECKING

from geoassets.core import errors

if TYPE_CHECKING:
    from collections.abc import Sequence

    from geoassets.db import database
    from geoassets.db import models as db_models
    from geoassets.services import asset_store

logger = logging.getLogger(__name__)


class SlotState(enum.StrEnum):
    EMPTY = "empty"
    UPLOADING = "uploading"
    OCCUPIED = "occupied"
    REPLACING = "replacing"
    DELETING = "deleting"


@dataclasses.dataclass(frozen=True)
class FieldUpdate:
    """Terminal result of an operation on one entity field.

    Attributes:
        field_name: Entity column that was written.
        state: Terminal slot state after the operation.
        value: New column value, a URL, a list of URLs or None.
        references: Assets stored by the operation.
    """

    field_name: str
    state: SlotState
    value: str | list[str] | None
    references: tuple[db_models.AssetReference, ...] = ()


def _collection(entity: database.Entity, field_name: str) -> list[str]:
    value = entity.get(field_name)
    if not value:
        return []
    return [str(url) for url in value]  # type: ignore[attr-defined]


class UploadOrchestrator:
    """Apply file submissions to restaurant entity fields."""

    def __init__(
        self,
        assets: asset_store.AssetStore,
        entities: database.RestaurantRepositoryProtocol,
    ) -> None:
        self._assets = assets
        self._entities = entities

    def _load(self, entity_id: str) -> database.Entity:
        entity = self._entities.get(entity_id)
        if entity is None:
            raise errors.NotFoundError(f"Restaurant not found: {entity_id}")
        return entity

    def _transition(
        self,
        entity_id: str,
        field_name: str,
        source: SlotState,
        target: SlotState,
    ) -> None:
        logger.debug(
            "Slot %s.%s: %s -> %s",
            entity_id,
            field_name,
            source,
            target,
        )

    def is_single_slot(self, category: str) -> bool:
        return self._assets.category(category).is_single

    def slot_state(self, entity_id: str, category: str) -> SlotState:
        """Return the committed state of a field: empty or occupied."""
        policy = self._assets.category(category)
        value = self._load(entity_id).get(policy.field_name)
        return SlotState.OCCUPIED if value else SlotState.EMPTY

    def submit(
        self,
        tenant_id: str,
        entity_id: str,
        category: str,
        files: Sequence[db_models.UploadedFile],
    ) -> FieldUpdate:
        """Store submitted files and record them on the entity.

        Args:
            tenant_id: Tenant whose prefix the files are stored under.
            entity_id: Restaurant row owning the field.
            category: Asset category selecting the field.
            files: Submitted files.

        Returns:
            The terminal field update.

        Raises:
            ValidationError: On a policy violation, or more than one file
                for a single-slot field.
            NotFoundError: If the entity does not exist.
            PartialBatchFailure: For collections, after appending the
                files that were stored.
            ReplaceInterruptedError: After the slot was written back empty.
            TransientIOError: If nothing could be stored.
        """
        policy = self._assets.category(category)
        entity = self._load(entity_id)
        if policy.is_single:
            if len(files) != 1:
                raise errors.ValidationError(
                    f"{category} accepts exactly one file, got {len(files)}"
                )
            current = entity.get(policy.field_name)
            return self._fill_slot(
                tenant_id,
                entity_id,
                policy,
                str(current) if current else None,
                files[0],
            )
        return self._append(tenant_id, entity_id, policy, entity, files)

    def _fill_slot(
        self,
        tenant_id: str,
        entity_id: str,
        policy: db_models.AssetCategory,
        current: str | None,
        file: db_models.UploadedFile,
    ) -> FieldUpdate:
        field_name = policy.field_name
        if current is None:
            working = SlotState.UPLOADING
            self._transition(entity_id, field_name, SlotState.EMPTY, working)
            [reference] = self._assets.upload(tenant_id, [file], policy.name)
        else:
            working = SlotState.REPLACING
            self._transition(entity_id, field_name, SlotState.OCCUPIED, working)
            reference = self._replace(tenant_id, entity_id, policy, current, file)

        self._entities.update_entity(
            entity_id, {field_name: reference.public_url}
        )
        self._transition(entity_id, field_name, working, SlotState.OCCUPIED)
        return FieldUpdate(
            field_name=field_name,
            state=SlotState.OCCUPIED,
            value=reference.public_url,
            references=(reference,),
        )

    def _replace(
        self,
        tenant_id: str,
        entity_id: str,
        policy: db_models.AssetCategory,
        current: str,
        file: db_models.UploadedFile,
    ) -> db_models.AssetReference:
        try:
            return self._assets.replace(current, file, tenant_id, policy.name)
        except (errors.NotFoundError, errors.InvalidReferenceError) as exc:
            # the slot points at nothing we can delete; store the file anyway
            logger.warning(
                "Not deleting %s from %s.%s: %s",
                current,
                entity_id,
                policy.field_name,
                exc,
            )
            [reference] = self._assets.upload(tenant_id, [file], policy.name)
            return reference
        except errors.ReplaceInterruptedError:
            self._entities.update_entity(entity_id, {policy.field_name: None})
            self._transition(
                entity_id,
                policy.field_name,
                SlotState.REPLACING,
                SlotState.EMPTY,
            )
            raise

    def _append(
        self,
        tenant_id: str,
        entity_id: str,
        policy: db_models.AssetCategory,
        entity: database.Entity,
        files: Sequence[db_models.UploadedFile],
    ) -> FieldUpdate:
        existing = _collection(entity, policy.field_name)
        try:
            references = self._assets.upload(tenant_id, files, policy.name)
        except errors.PartialBatchFailure as failure:
            stored = [
                item.reference
                for item in failure.succeeded
                if item.reference is not None
            ]
            self._entities.update_entity(
                entity_id,
                {
                    policy.field_name: existing
                    + [reference.public_url for reference in stored]
                },
            )
            raise

        value = existing + [reference.public_url for reference in references]
        self._entities.update_entity(entity_id, {policy.field_name: value})
        return FieldUpdate(
            field_name=policy.field_name,
            state=SlotState.OCCUPIED,
            value=value,
            references=tuple(references),
        )

    def remove_from_collection(
        self,
        entity_id: str,
        category: str,
        url: str,
    ) -> FieldUpdate:
        """Delete one member of a collection field and drop it from the list.

        A member whose object is already gone from the store is still
        dropped from the list.

        Raises:
            ValidationError: If the category is a single slot.
            NotFoundError: If the entity does not exist or the URL is not a
                member of the collection.
            InvalidReferenceError: If the URL is outside the bucket.
        """
        policy = self._assets.category(category)
        if policy.is_single:
            raise errors.ValidationError(f"{category} is not a collection")

        members = _collection(self._load(entity_id), policy.field_name)
        if url not in members:
            raise errors.NotFoundError(
                f"{url} is not in {policy.field_name} of {entity_id}"
            )

        try:
            self._assets.delete(url)
        except errors.NotFoundError:
            logger.warning("Dropping dangling reference %s", url)

        remaining = [member for member in members if member != url]
        self._entities.update_entity(entity_id, {policy.field_name: remaining})
        return FieldUpdate(
            field_name=policy.field_name,
            state=SlotState.OCCUPIED if remaining else SlotState.EMPTY,
            value=remaining,
        )

    def clear_slot(self, entity_id: str, category: str) -> FieldUpdate:
        """Delete the file held by a single-slot field and empty it.

        Raises:
            ValidationError: If the category is a collection.
            NotFoundError: If the entity does not exist or the slot is
                already empty.
            InvalidReferenceError: If the slot holds a URL outside the
                bucket.
        """
        policy = self._assets.category(category)
        if not policy.is_single:
            raise errors.ValidationError(f"{category} is not a single slot")

        current = self._load(entity_id).get(policy.field_name)
        if not current:
            raise errors.NotFoundError(f"{policy.field_name} is already empty")

        self._transition(
            entity_id, policy.field_name, SlotState.OCCUPIED, SlotState.DELETING
        )
        try:
            self._assets.delete(str(current))
        except errors.NotFoundError:
            logger.warning("Dropping dangling reference %s", current)
        self._entities.update_entity(entity_id, {policy.field_name: None})
        self._transition(
            entity_id, policy.field_name, SlotState.DELETING, SlotState.EMPTY
        )
        return FieldUpdate(
            field_name=policy.field_name,
            state=SlotState.EMPTY,
            value=None,
        )

    def purge_entity_assets(self, entity_id: str) -> list[str]:
        """Delete every asset referenced by an entity, best effort.

        Used before a restaurant row is removed. The entity itself is not
        modified.

        Returns:
            URLs that could not be deleted, in field order.
        """
        entity = self._load(entity_id)
        urls: list[str] = []
        for policy in self._assets.categories.values():
            if policy.is_single:
                value = entity.get(policy.field_name)
                if value:
                    urls.append(str(value))
            else:
                urls.extend(_collection(entity, policy.field_name))

        failed: list[str] = []
        for url in urls:
            try:
                self._assets.delete(url)
            except errors.AssetError as exc:
                logger.warning("Could not purge %s: %s", url, exc)
                failed.append(url)
        return failed
