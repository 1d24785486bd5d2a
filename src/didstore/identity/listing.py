# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Read-only listing of stored identifiers, grouped by area and status."""

from __future__ import annotations

import logging

from ..core.exceptions import DeserializationError
from ..storage.collection import StoreLayout
from ..storage.properties import PropertyBag
from .models import ListingEntry, RecordListing, RecordStatus

logger = logging.getLogger(__name__)


class RecordIndex:
    """Enumerates the ``<method>-<mode>`` areas of a store layout."""

    def __init__(self, layout: StoreLayout) -> None:
        self._layout = layout

    async def list_records(
        self,
        method: str | None = None,
        mode: str | None = None,
        with_metadata: bool = False,
    ) -> RecordListing:
        """List identifiers, optionally filtered by method and mode.

        A metadata file that cannot be parsed is reported in
        ``listing.errors`` and the record is listed without metadata.
        """
        listing = RecordListing()
        meta = self._layout.meta()
        for area in self._layout.areas():
            if method is not None and area.method != method:
                continue
            if mode is not None and area.mode != mode:
                continue
            for status in RecordStatus:
                collection = self._layout.documents(area.method, area.mode, status.value)
                for did in await collection.list():
                    entry = ListingEntry(did=did)
                    if with_metadata:
                        try:
                            entry.metadata = PropertyBag.from_json(await meta.get_object(did))
                        except DeserializationError as e:
                            logger.warning(f"Skipping metadata for {did}: {e}")
                            listing.errors[did] = e.message
                    listing.add(area.method, area.mode, status, entry)
        return listing
