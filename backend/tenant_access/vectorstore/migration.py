"""
TenantMigration — batched copy of one tenant's points to another tenant

Flow per batch:
  scroll(source, tenantId == source, offset=cursor)
      → rewrite payload.tenantId = target
      → upsert(target, wait=True)
      → advance cursor, add to `migrated`

Point ids are preserved, so re-running a batch overwrites rather than
duplicates. When a run fails, `cursor` still points at the first batch that
was not committed; calling `run()` again resumes from there.

The source points are removed only after the final batch, and only when
`delete_source=True`. Nothing here is transactional: a crash between the
last upsert and the delete leaves both copies in place.
"""

from __future__ import annotations

import logging
from typing import Any

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.models import FilterSelector, PointStruct

from tenant_access.core.deadline import bounded
from tenant_access.vectorstore.base import TENANT_ID_FIELD
from tenant_access.vectorstore.filters import tenant_filter
from tenant_access.vectorstore.naming import collection_name_for

logger = logging.getLogger(__name__)


class TenantMigration:

    def __init__(
        self,
        client:            AsyncQdrantClient,
        source_tenant_id:  str,
        target_tenant_id:  str,
        batch_size:        int = 256,
        operation_timeout: float | None = None,
    ) -> None:
        self._client   = client
        self._timeout  = operation_timeout
        self.source_tenant_id  = source_tenant_id
        self.target_tenant_id  = target_tenant_id
        self.source_collection = collection_name_for(source_tenant_id)
        self.target_collection = collection_name_for(target_tenant_id)
        self.batch_size = batch_size

        self.cursor:   Any = None     # next_page_offset of the last committed batch
        self.migrated: int = 0
        self.done:     bool = False

    async def run(self, delete_source: bool = False) -> int:
        """
        Copy every remaining batch, then optionally delete the source points.

        Backend errors propagate; the cursor stays at the last committed batch.
        Returns the total number of points migrated by this job.
        """
        scope = tenant_filter(self.source_tenant_id)

        while not self.done:
            records, next_offset = await bounded(
                self._client.scroll(
                    collection_name=self.source_collection,
                    scroll_filter=scope,
                    limit=self.batch_size,
                    offset=self.cursor,
                    with_payload=True,
                    with_vectors=True,
                ),
                self._timeout,
            )

            if records:
                points = [
                    PointStruct(
                        id=record.id,
                        vector=record.vector,
                        payload={**(record.payload or {}), TENANT_ID_FIELD: self.target_tenant_id},
                    )
                    for record in records
                ]
                await bounded(
                    self._client.upsert(
                        collection_name=self.target_collection,
                        points=points,
                        wait=True,
                    ),
                    self._timeout,
                )
                self.migrated += len(points)
                logger.debug(
                    "Migration batch committed | source=%s target=%s batch=%d total=%d",
                    self.source_tenant_id, self.target_tenant_id, len(points), self.migrated,
                )

            self.cursor = next_offset
            self.done = next_offset is None

        if delete_source:
            await bounded(
                self._client.delete(
                    collection_name=self.source_collection,
                    points_selector=FilterSelector(filter=scope),
                    wait=True,
                ),
                self._timeout,
            )
            logger.info(
                "Migration source points deleted | source=%s count=%d",
                self.source_tenant_id, self.migrated,
            )

        return self.migrated
