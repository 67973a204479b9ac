from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import Any, Protocol, runtime_checkable

from ecms.services.media.types import BlobContent, BlobInfo


@runtime_checkable
class BlobStore(Protocol):
    """Durable binary storage addressed by store-assigned ids.

    Every ``put`` yields a fresh id, even for identical bytes. ``delete``
    of an unknown id returns ``False`` instead of raising. ``list`` is a
    finite async iterator that can be restarted by calling it again.
    """

    backend_name: str

    async def put(
        self,
        data: bytes,
        *,
        filename: str,
        content_type: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> str: ...

    async def get(self, blob_id: str) -> BlobContent: ...

    async def delete(self, blob_id: str) -> bool: ...

    def list(self) -> AsyncIterator[BlobInfo]: ...

    async def close(self) -> None: ...


async def read_all(content: BlobContent) -> bytes:
    return b"".join([chunk async for chunk in content.chunks])
