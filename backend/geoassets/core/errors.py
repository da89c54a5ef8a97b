"""Error taxonomy shared by the location codec and the asset lifecycle.

Services raise these exceptions; the HTTP layer maps each of them to a
status code in ``geoassets.main``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from geoassets.db import models as db_models


class AssetError(RuntimeError):
    """Base class for every error raised by the asset services."""


class ValidationError(AssetError):
    """Bad coordinates or a file batch violating the category policy.

    Always raised before any storage write happens.
    """


class InvalidReferenceError(AssetError):
    """URL that does not point into the managed bucket.

    Destructive operations refuse to act on such URLs.
    """


class NotFoundError(AssetError):
    """Object or entity absent at delete, download or update time."""


class TransientIOError(AssetError):
    """Network or storage failure.

    Not retried by the services; retry policy belongs to the caller.
    """


class ReplaceInterruptedError(TransientIOError):
    """The old asset was deleted but its replacement could not be stored.

    The slot is left empty and the caller has to ask for a new file.

    Attributes:
        deleted_url: Public URL of the asset that was already removed.
    """

    def __init__(self, message: str, deleted_url: str) -> None:
        super().__init__(message)
        self.deleted_url = deleted_url


class PartialBatchFailure(AssetError):
    """Some, but not all, files of a batch were stored.

    Files that were written stay persisted. The caller decides whether to
    retry the failed subset.

    Attributes:
        items: Per-file results in submission order.
    """

    def __init__(self, items: Sequence[db_models.BatchItemResult]) -> None:
        self.items = list(items)
        failed = ", ".join(item.filename for item in self.failed)
        super().__init__(
            f"{len(self.failed)} of {len(self.items)} files failed: {failed}"
        )

    @property
    def succeeded(self) -> list[db_models.BatchItemResult]:
        return [item for item in self.items if item.status == "stored"]

    @property
    def failed(self) -> list[db_models.BatchItemResult]:
        return [item for item in self.items if item.status == "failed"]
