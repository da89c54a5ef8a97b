"""Tests for reconciling uploads into restaurant fields.

Covers:
    - Filling and replacing single-slot fields,
    - Appending to collections, including partial failures,
    - The compensating write when a replace is interrupted,
    - Removing collection members, clearing slots and purging an entity.
"""

from __future__ import annotations

import pytest

from geoassets.core import config, errors
from geoassets.db import blob_store, database
from geoassets.db import models as db_models
from geoassets.services import asset_store, upload_orchestrator

SETTINGS = config.Settings(supabase_url="https://h", storage_bucket="assets")
PREFIX = SETTINGS.public_object_prefix


class FlakyBlobStore(blob_store.InMemoryBlobStore):
    """In-memory store whose n-th put calls can be made to fail."""

    def __init__(self, public_prefix: str) -> None:
        super().__init__(public_prefix)
        self.puts = 0
        self.failing_puts: set[int] = set()

    def put(self, path: str, data: bytes, content_type: str) -> str:
        self.puts += 1
        if self.puts in self.failing_puts:
            raise errors.TransientIOError("Storage unavailable")
        return super().put(path, data, content_type)


def _image(name: str = "photo.jpg") -> db_models.UploadedFile:
    return db_models.UploadedFile(name, b"img", "image/jpeg")


@pytest.fixture
def blobs() -> FlakyBlobStore:
    return FlakyBlobStore(PREFIX)


@pytest.fixture
def repo() -> database.InMemoryRestaurantRepository:
    repo = database.InMemoryRestaurantRepository()
    repo.add({"id": "r1", "logoImage": None, "gallery": []})
    return repo


@pytest.fixture
def orchestrator(
    blobs: FlakyBlobStore,
    repo: database.InMemoryRestaurantRepository,
) -> upload_orchestrator.UploadOrchestrator:
    assets = asset_store.AssetStore(blobs, SETTINGS)
    return upload_orchestrator.UploadOrchestrator(assets, repo)


def test_submit_fills_empty_slot(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    update = orchestrator.submit("r1", "r1", "logo", [_image("logo.png")])
    assert update.field_name == "logoImage"
    assert update.state == upload_orchestrator.SlotState.OCCUPIED
    assert isinstance(update.value, str)
    assert update.value.startswith(PREFIX + "restaurants/r1/logo/")
    assert repo.get("r1")["logoImage"] == update.value  # type: ignore[index]
    assert orchestrator.slot_state("r1", "logo") == (
        upload_orchestrator.SlotState.OCCUPIED
    )


def test_submit_replaces_occupied_slot(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    blobs: FlakyBlobStore,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    first = orchestrator.submit("r1", "r1", "logo", [_image()])
    second = orchestrator.submit("r1", "r1", "logo", [_image()])
    assert first.value != second.value
    assert len(blobs.objects) == 1
    assert repo.get("r1")["logoImage"] == second.value  # type: ignore[index]


def test_submit_single_slot_requires_one_file(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    blobs: FlakyBlobStore,
) -> None:
    with pytest.raises(errors.ValidationError):
        orchestrator.submit("r1", "r1", "cover", [_image(), _image()])
    assert blobs.objects == {}


def test_submit_replaces_dangling_reference(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    repo.update_entity("r1", {"logoImage": PREFIX + "restaurants/r1/logo/gone.png"})
    update = orchestrator.submit("r1", "r1", "logo", [_image()])
    assert repo.get("r1")["logoImage"] == update.value  # type: ignore[index]


def test_submit_replaces_external_url_without_deleting(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    repo.update_entity("r1", {"logoImage": "https://cdn.example/logo.png"})
    update = orchestrator.submit("r1", "r1", "logo", [_image()])
    assert isinstance(update.value, str)
    assert update.value.startswith(PREFIX)


def test_interrupted_replace_empties_slot(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    blobs: FlakyBlobStore,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    first = orchestrator.submit("r1", "r1", "logo", [_image()])
    blobs.failing_puts = {2}
    with pytest.raises(errors.ReplaceInterruptedError) as excinfo:
        orchestrator.submit("r1", "r1", "logo", [_image()])
    assert excinfo.value.deleted_url == first.value
    assert repo.get("r1")["logoImage"] is None  # type: ignore[index]
    assert orchestrator.slot_state("r1", "logo") == (
        upload_orchestrator.SlotState.EMPTY
    )


def test_collection_appends_in_order(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    first = orchestrator.submit("r1", "r1", "gallery", [_image("a.jpg")])
    second = orchestrator.submit(
        "r1", "r1", "gallery", [_image("b.jpg"), _image("c.jpg")]
    )
    assert isinstance(first.value, list)
    assert isinstance(second.value, list)
    assert len(second.value) == 3
    assert second.value[0] == first.value[0]
    assert repo.get("r1")["gallery"] == second.value  # type: ignore[index]


def test_collection_field_missing_on_entity(
    orchestrator: upload_orchestrator.UploadOrchestrator,
) -> None:
    update = orchestrator.submit(
        "r1", "r1", "menu", [db_models.UploadedFile("m.pdf", b"%", "application/pdf")]
    )
    assert update.field_name == "foodMenuPics"
    assert isinstance(update.value, list)
    assert len(update.value) == 1


def test_collection_partial_failure_keeps_successes(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    blobs: FlakyBlobStore,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    existing = orchestrator.submit("r1", "r1", "gallery", [_image("a.jpg")])
    blobs.failing_puts = {3}
    with pytest.raises(errors.PartialBatchFailure) as excinfo:
        orchestrator.submit(
            "r1", "r1", "gallery", [_image("b.jpg"), _image("c.jpg")]
        )
    assert [item.filename for item in excinfo.value.failed] == ["c.jpg"]
    gallery = repo.get("r1")["gallery"]  # type: ignore[index]
    assert isinstance(existing.value, list)
    assert len(gallery) == 2  # type: ignore[arg-type]
    assert gallery[0] == existing.value[0]  # type: ignore[index]


def test_collection_total_failure_leaves_collection(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    blobs: FlakyBlobStore,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    blobs.failing_puts = {1}
    with pytest.raises(errors.TransientIOError):
        orchestrator.submit("r1", "r1", "gallery", [_image()])
    assert repo.get("r1")["gallery"] == []  # type: ignore[index]


def test_submit_unknown_restaurant(
    orchestrator: upload_orchestrator.UploadOrchestrator,
) -> None:
    with pytest.raises(errors.NotFoundError):
        orchestrator.submit("r9", "r9", "logo", [_image()])


def test_remove_from_collection(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    blobs: FlakyBlobStore,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    update = orchestrator.submit(
        "r1", "r1", "gallery", [_image("a.jpg"), _image("b.jpg")]
    )
    assert isinstance(update.value, list)
    first, second = update.value
    result = orchestrator.remove_from_collection("r1", "gallery", first)
    assert result.value == [second]
    assert repo.get("r1")["gallery"] == [second]  # type: ignore[index]
    assert len(blobs.objects) == 1


def test_remove_non_member(
    orchestrator: upload_orchestrator.UploadOrchestrator,
) -> None:
    with pytest.raises(errors.NotFoundError):
        orchestrator.remove_from_collection(
            "r1", "gallery", PREFIX + "restaurants/r1/gallery/x.jpg"
        )


def test_remove_dangling_member(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    url = PREFIX + "restaurants/r1/gallery/gone.jpg"
    repo.update_entity("r1", {"gallery": [url]})
    result = orchestrator.remove_from_collection("r1", "gallery", url)
    assert result.value == []
    assert result.state == upload_orchestrator.SlotState.EMPTY


def test_remove_from_single_slot_is_rejected(
    orchestrator: upload_orchestrator.UploadOrchestrator,
) -> None:
    with pytest.raises(errors.ValidationError):
        orchestrator.remove_from_collection("r1", "logo", "x")


def test_clear_slot(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    blobs: FlakyBlobStore,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    orchestrator.submit("r1", "r1", "logo", [_image()])
    update = orchestrator.clear_slot("r1", "logo")
    assert update.state == upload_orchestrator.SlotState.EMPTY
    assert repo.get("r1")["logoImage"] is None  # type: ignore[index]
    assert blobs.objects == {}
    with pytest.raises(errors.NotFoundError):
        orchestrator.clear_slot("r1", "logo")


def test_purge_entity_assets(
    orchestrator: upload_orchestrator.UploadOrchestrator,
    blobs: FlakyBlobStore,
    repo: database.InMemoryRestaurantRepository,
) -> None:
    orchestrator.submit("r1", "r1", "logo", [_image()])
    orchestrator.submit("r1", "r1", "gallery", [_image(), _image()])
    foreign = "https://cdn.example/menu.pdf"
    repo.update_entity("r1", {"foodMenuPics": [foreign]})
    failed = orchestrator.purge_entity_assets("r1")
    assert failed == [foreign]
    assert blobs.objects == {}
