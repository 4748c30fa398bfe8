"""
DocumentStore adapters for the autosave controller.

``ServiceDocumentStore`` runs the synchronous document service in a worker
thread; ``HttpDocumentStore`` talks to the Flask JSON API.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx


class ServiceDocumentStore:
    """In-process store over a DocumentService, acting as one user."""

    def __init__(self, service, user_id: str):
        self.service = service
        self.user_id = user_id

    async def fetch(self, doc_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self.service.get_document, self.user_id, doc_id)

    async def update_title(self, doc_id: str, title: str) -> None:
        await asyncio.to_thread(self.service.update_title, self.user_id, doc_id, title)

    async def update_content(self, doc_id: str, content: Dict[str, Any]) -> None:
        await asyncio.to_thread(self.service.update_content, self.user_id, doc_id, content)

    async def update_metadata(self, doc_id: str, fields: Dict[str, Optional[str]]) -> None:
        await asyncio.to_thread(self.service.update_metadata, self.user_id, doc_id, **fields)


class HttpDocumentStore:
    """
    Store backed by the web API.

    Args:
        base_url: Root of the Flask app, e.g. "http://localhost:5000"
        client: Optional shared httpx.AsyncClient (carries the session cookie)
        timeout: Per-request timeout in seconds
    """

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _url(self, doc_id: str, suffix: str = "") -> str:
        return f"{self.base_url}/api/documents/{doc_id}{suffix}"

    async def fetch(self, doc_id: str) -> Dict[str, Any]:
        response = await self.client.get(self._url(doc_id))
        response.raise_for_status()
        return response.json()["document"]

    async def update_title(self, doc_id: str, title: str) -> None:
        response = await self.client.put(self._url(doc_id, "/title"), json={"title": title})
        response.raise_for_status()

    async def update_content(self, doc_id: str, content: Dict[str, Any]) -> None:
        response = await self.client.put(self._url(doc_id, "/content"), json={"content": content})
        response.raise_for_status()

    async def update_metadata(self, doc_id: str, fields: Dict[str, Optional[str]]) -> None:
        response = await self.client.put(self._url(doc_id, "/meta"), json=fields)
        response.raise_for_status()

    async def aclose(self) -> None:
        await self.client.aclose()
