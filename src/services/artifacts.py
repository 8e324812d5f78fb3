"""
Blob storage for call audio and transcripts.

Uploads return a shareable link that is written into the report log. File
names are deterministic per report, so a retried upload replaces the earlier
file rather than adding a second copy.
"""

import asyncio
import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    async def upload_audio(self, data: bytes, filename: str) -> str: ...

    async def upload_transcript(self, text: str, filename: str) -> str: ...


class LocalBlobStore:
    """Writes artifacts under a local directory for development."""

    def __init__(self, root: Path, base_url: str = "/uploads"):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    async def upload_audio(self, data: bytes, filename: str) -> str:
        return await asyncio.to_thread(self._write, "audio", filename, data)

    async def upload_transcript(self, text: str, filename: str) -> str:
        return await asyncio.to_thread(self._write, "transcripts", filename, text.encode("utf-8"))

    def _write(self, folder: str, filename: str, data: bytes) -> str:
        path = self.root / folder / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("Saved %s (%d bytes)", path, len(data))
        return f"{self.base_url}/{folder}/{quote(filename)}"


class GraphDriveBlobStore:
    """
    Uploads artifacts into OneDrive/SharePoint folders through MS Graph.

    Files are addressed by folder path, so an upload with an existing name
    replaces the file. Each file gets an anonymous view link.
    """

    def __init__(self, graph, drive_id: str, audio_folder_id: str, transcripts_folder_id: str):
        self._graph = graph
        self._drive_id = drive_id
        self._audio_folder_id = audio_folder_id
        self._transcripts_folder_id = transcripts_folder_id

    async def upload_audio(self, data: bytes, filename: str) -> str:
        return await self._upload(self._audio_folder_id, filename, data)

    async def upload_transcript(self, text: str, filename: str) -> str:
        return await self._upload(self._transcripts_folder_id, filename, text.encode("utf-8"))

    async def _upload(self, folder_id: str, filename: str, data: bytes) -> str:
        from msgraph.generated.drives.item.items.item.create_link.create_link_post_request_body import (
            CreateLinkPostRequestBody,
        )

        items = self._graph.drives.by_drive_id(self._drive_id).items
        item = await items.by_drive_item_id(f"{folder_id}:/{filename}:").content.put(data)
        if item is None or item.id is None:
            raise RuntimeError(f"Upload of {filename} returned no drive item")

        permission = await items.by_drive_item_id(item.id).create_link.post(
            CreateLinkPostRequestBody(type="view", scope="anonymous")
        )
        logger.info("Uploaded %s (%d bytes)", filename, len(data))

        if permission and permission.link and permission.link.web_url:
            return permission.link.web_url
        return item.web_url or f"https://graph.microsoft.com/v1.0/drives/{self._drive_id}/items/{item.id}"
