"""
Data store collaborators for StakeMap.

The map core never owns its data.  It talks to a ``DataStore`` — an async
create/read/update/delete API over four tables (companies, stakeholders,
relationships, map_layouts).  Two implementations ship:

  - ``InMemoryStore``  — a dict-backed store enforcing the same constraints
                         as the relational schema; used for seed files,
                         demos and tests.
  - ``PostgrestStore`` — an aiohttp client for a PostgREST / Supabase REST
                         endpoint (``/rest/v1/<table>``).

Every method either returns its result or raises ``StoreError``.  There is no
retry; callers surface the failure and the user repeats the action.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import aiohttp

from .errors import StoreError
from .models import (
    Company,
    Dataset,
    LayoutEntry,
    Relationship,
    Stakeholder,
    StakeholderStatus,
)

logger = logging.getLogger(__name__)

RELATIONSHIP_FIELDS = {
    "from_stakeholder_id",
    "to_stakeholder_id",
    "relation_type",
    "directionality",
    "strength",
    "notes",
}


class DataStore(ABC):
    """Async data collaborator consumed by the map core."""

    @abstractmethod
    async def list_companies(self) -> list[Company]:
        ...

    @abstractmethod
    async def list_active_stakeholders(
        self, company_ids: Optional[Iterable[str]] = None
    ) -> list[Stakeholder]:
        """Active stakeholders joined with their company display name."""

    @abstractmethod
    async def list_relationships(self) -> list[Relationship]:
        ...

    @abstractmethod
    async def list_layout_entries(self, map_id: str) -> list[LayoutEntry]:
        ...

    @abstractmethod
    async def upsert_layout_entry(
        self, map_id: str, stakeholder_id: str, x: float, y: float
    ) -> LayoutEntry:
        """Create or overwrite the entry for (map_id, stakeholder_id)."""

    @abstractmethod
    async def batch_upsert_layout_entries(self, entries: list[LayoutEntry]) -> None:
        """Upsert every entry in one all-or-nothing request."""

    @abstractmethod
    async def archive_stakeholder(self, stakeholder_id: str) -> None:
        ...

    @abstractmethod
    async def create_relationship(self, fields: dict[str, Any]) -> Relationship:
        ...

    @abstractmethod
    async def update_relationship(self, relationship_id: str, fields: dict[str, Any]) -> Relationship:
        ...

    @abstractmethod
    async def delete_relationship(self, relationship_id: str) -> None:
        ...


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class InMemoryStore(DataStore):
    """Dict-backed store with the relational schema's constraints.

    Constraints enforced (violations raise ``StoreError`` with status 409):
      - relationships: from != to, unique (from, to, relation_type), both
        endpoints exist
      - map_layouts: one row per (map_id, stakeholder_id), stakeholder exists
      - batch upserts are validated in full before anything is written
    """

    def __init__(self, dataset: Optional[Dataset] = None):
        dataset = dataset or Dataset()
        self.companies: dict[str, Company] = {c.id: c for c in dataset.companies}
        self.stakeholders: dict[str, Stakeholder] = {s.id: s for s in dataset.stakeholders}
        self.relationships: dict[str, Relationship] = {r.id: r for r in dataset.relationships}
        self.layouts: dict[tuple[str, str], LayoutEntry] = {}
        for entry in dataset.layouts:
            self.layouts[entry.key] = self._with_id(entry)

    @staticmethod
    def _with_id(entry: LayoutEntry) -> LayoutEntry:
        if entry.id:
            return entry.model_copy()
        return entry.model_copy(update={"id": str(uuid.uuid4())})

    def _joined(self, stakeholder: Stakeholder) -> Stakeholder:
        company = self.companies.get(stakeholder.company_id or "")
        name = company.name if company else stakeholder.company_name
        return stakeholder.model_copy(update={"company_name": name})

    async def list_companies(self) -> list[Company]:
        return [c.model_copy() for c in self.companies.values()]

    async def list_active_stakeholders(
        self, company_ids: Optional[Iterable[str]] = None
    ) -> list[Stakeholder]:
        wanted = set(company_ids) if company_ids is not None else None
        result = []
        for s in self.stakeholders.values():
            if not s.is_active:
                continue
            if wanted is not None and s.company_id not in wanted:
                continue
            result.append(self._joined(s))
        return result

    async def list_relationships(self) -> list[Relationship]:
        return [r.model_copy() for r in self.relationships.values()]

    async def list_layout_entries(self, map_id: str) -> list[LayoutEntry]:
        return [e.model_copy() for key, e in self.layouts.items() if key[0] == map_id]

    def _check_layout(self, entry: LayoutEntry) -> None:
        if entry.stakeholder_id not in self.stakeholders:
            raise StoreError(
                f"map_layouts: unknown stakeholder {entry.stakeholder_id}", status=409
            )

    def _write_layout(self, entry: LayoutEntry) -> LayoutEntry:
        existing = self.layouts.get(entry.key)
        entry_id = existing.id if existing else (entry.id or str(uuid.uuid4()))
        stored = entry.model_copy(update={"id": entry_id})
        self.layouts[entry.key] = stored
        return stored.model_copy()

    async def upsert_layout_entry(
        self, map_id: str, stakeholder_id: str, x: float, y: float
    ) -> LayoutEntry:
        entry = LayoutEntry(map_id=map_id, stakeholder_id=stakeholder_id, x=x, y=y)
        self._check_layout(entry)
        return self._write_layout(entry)

    async def batch_upsert_layout_entries(self, entries: list[LayoutEntry]) -> None:
        for entry in entries:
            self._check_layout(entry)
        for entry in entries:
            self._write_layout(entry)

    async def archive_stakeholder(self, stakeholder_id: str) -> None:
        stakeholder = self.stakeholders.get(stakeholder_id)
        if stakeholder is None:
            raise StoreError(f"stakeholders: {stakeholder_id} not found", status=404)
        self.stakeholders[stakeholder_id] = stakeholder.model_copy(
            update={"status": StakeholderStatus.ARCHIVED}
        )

    def _check_relationship(self, rel: Relationship) -> None:
        for sid in (rel.from_stakeholder_id, rel.to_stakeholder_id):
            if sid not in self.stakeholders:
                raise StoreError(f"relationships: unknown stakeholder {sid}", status=409)
        for other in self.relationships.values():
            if other.id == rel.id:
                continue
            if (
                other.from_stakeholder_id == rel.from_stakeholder_id
                and other.to_stakeholder_id == rel.to_stakeholder_id
                and other.relation_type == rel.relation_type
            ):
                raise StoreError("relationships: duplicate (from, to, relation_type)", status=409)

    def _build_relationship(self, data: dict[str, Any]) -> Relationship:
        try:
            return Relationship(**data)
        except ValueError as e:
            raise StoreError(f"relationships: {e}", status=409) from e

    async def create_relationship(self, fields: dict[str, Any]) -> Relationship:
        data = {k: v for k, v in fields.items() if k in RELATIONSHIP_FIELDS and v is not None}
        rel = self._build_relationship({"id": str(uuid.uuid4()), **data})
        self._check_relationship(rel)
        self.relationships[rel.id] = rel
        return rel.model_copy()

    async def update_relationship(self, relationship_id: str, fields: dict[str, Any]) -> Relationship:
        current = self.relationships.get(relationship_id)
        if current is None:
            raise StoreError(f"relationships: {relationship_id} not found", status=404)
        data = current.model_dump()
        data.update({k: v for k, v in fields.items() if k in RELATIONSHIP_FIELDS})
        rel = self._build_relationship(data)
        self._check_relationship(rel)
        self.relationships[rel.id] = rel
        return rel.model_copy()

    async def delete_relationship(self, relationship_id: str) -> None:
        if self.relationships.pop(relationship_id, None) is None:
            raise StoreError(f"relationships: {relationship_id} not found", status=404)


# ---------------------------------------------------------------------------
# PostgREST / Supabase REST store
# ---------------------------------------------------------------------------

def _stakeholder_from_row(row: dict) -> Stakeholder:
    """Flatten the ``companies(name)`` embed into ``company_name``."""
    row = dict(row)
    company = row.pop("companies", None)
    if isinstance(company, dict):
        row["company_name"] = company.get("name")
    return Stakeholder(**row)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PostgrestStore(DataStore):
    """``DataStore`` over a PostgREST endpoint, e.g. Supabase's ``/rest/v1``.

    Usage::

        async with PostgrestStore(url, key, timeout=10) as store:
            stakeholders = await store.list_active_stakeholders()

    Every request uses a total timeout of ``timeout`` seconds.  A timeout,
    connection error or non-2xx response raises ``StoreError``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "PostgrestStore":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    def _headers(self, prefer: Optional[str] = None) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[dict[str, str]] = None,
        body: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        url = f"{self.base_url}/rest/v1/{table}"
        session = self._get_session()
        logger.debug(f"{method} {url} params={params}")
        try:
            async with session.request(
                method,
                url,
                params=params,
                json=body,
                headers=self._headers(prefer),
                timeout=self.timeout,
            ) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise StoreError(f"{method} {table} failed: {resp.status} {text}", status=resp.status)
                if resp.status == 204:
                    return None
                text = await resp.text()
                if not text:
                    return None
                return await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            logger.warning(f"{method} {table} timed out after {self.timeout.total}s")
            raise StoreError(f"{method} {table} timed out after {self.timeout.total}s") from e
        except aiohttp.ClientError as e:
            raise StoreError(f"{method} {table} failed: {e}") from e

    async def list_companies(self) -> list[Company]:
        rows = await self._request("GET", "companies", params={"select": "*", "order": "name"})
        return [Company(**row) for row in rows or []]

    async def list_active_stakeholders(
        self, company_ids: Optional[Iterable[str]] = None
    ) -> list[Stakeholder]:
        params = {"select": "*,companies(name)", "status": "eq.active"}
        if company_ids is not None:
            params["company_id"] = "in.(" + ",".join(company_ids) + ")"
        rows = await self._request("GET", "stakeholders", params=params)
        return [_stakeholder_from_row(row) for row in rows or []]

    async def list_relationships(self) -> list[Relationship]:
        rows = await self._request("GET", "relationships", params={"select": "*"})
        return [Relationship(**row) for row in rows or []]

    async def list_layout_entries(self, map_id: str) -> list[LayoutEntry]:
        rows = await self._request(
            "GET", "map_layouts", params={"select": "*", "map_id": f"eq.{map_id}"}
        )
        return [LayoutEntry(**row) for row in rows or []]

    def _layout_row(self, entry: LayoutEntry) -> dict[str, Any]:
        return {
            "map_id": entry.map_id,
            "stakeholder_id": entry.stakeholder_id,
            "x": entry.x,
            "y": entry.y,
            "updated_at": _now(),
        }

    async def upsert_layout_entry(
        self, map_id: str, stakeholder_id: str, x: float, y: float
    ) -> LayoutEntry:
        entry = LayoutEntry(map_id=map_id, stakeholder_id=stakeholder_id, x=x, y=y)
        rows = await self._request(
            "POST",
            "map_layouts",
            params={"on_conflict": "map_id,stakeholder_id"},
            body=self._layout_row(entry),
            prefer="resolution=merge-duplicates,return=representation",
        )
        if rows:
            return LayoutEntry(**rows[0])
        return entry

    async def batch_upsert_layout_entries(self, entries: list[LayoutEntry]) -> None:
        if not entries:
            return
        # One request is one statement on the server side: all rows or none
        await self._request(
            "POST",
            "map_layouts",
            params={"on_conflict": "map_id,stakeholder_id"},
            body=[self._layout_row(e) for e in entries],
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def archive_stakeholder(self, stakeholder_id: str) -> None:
        rows = await self._request(
            "PATCH",
            "stakeholders",
            params={"id": f"eq.{stakeholder_id}"},
            body={"status": StakeholderStatus.ARCHIVED.value},
            prefer="return=representation",
        )
        if not rows:
            raise StoreError(f"stakeholders: {stakeholder_id} not found", status=404)

    async def create_relationship(self, fields: dict[str, Any]) -> Relationship:
        body = {k: v for k, v in fields.items() if k in RELATIONSHIP_FIELDS and v is not None}
        rows = await self._request(
            "POST", "relationships", body=body, prefer="return=representation"
        )
        if not rows:
            raise StoreError("relationships: insert returned no row")
        return Relationship(**rows[0])

    async def update_relationship(self, relationship_id: str, fields: dict[str, Any]) -> Relationship:
        body = {k: v for k, v in fields.items() if k in RELATIONSHIP_FIELDS}
        body["updated_at"] = _now()
        rows = await self._request(
            "PATCH",
            "relationships",
            params={"id": f"eq.{relationship_id}"},
            body=body,
            prefer="return=representation",
        )
        if not rows:
            raise StoreError(f"relationships: {relationship_id} not found", status=404)
        return Relationship(**rows[0])

    async def delete_relationship(self, relationship_id: str) -> None:
        await self._request(
            "DELETE", "relationships", params={"id": f"eq.{relationship_id}"}
        )


def create_store(settings, seed_path: Optional[str] = None) -> DataStore:
    """Pick a store from settings: PostgREST when configured, else in-memory.

    ``seed_path`` loads a YAML dataset into the in-memory store.
    """
    if settings.supabase_url and settings.supabase_key:
        logger.info(f"Using PostgREST store at {settings.supabase_url}")
        return PostgrestStore(
            settings.supabase_url,
            settings.supabase_key,
            timeout=settings.request_timeout,
        )
    if seed_path:
        from .parser import parse_file

        logger.info(f"Using in-memory store seeded from {seed_path}")
        return InMemoryStore(parse_file(seed_path))
    logger.info("Using empty in-memory store")
    return InMemoryStore()
