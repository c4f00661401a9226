"""Text search over approved places and active stores."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.errors import ValidationFailed
from src.infrastructure.models import SearchQueryModel, UserModel
from src.infrastructure.repositories import (
    PlaceRepository,
    SearchQueryRepository,
    StoreRepository,
)

SEARCH_TYPES = ("all", "places", "stores")


class SearchService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.places = PlaceRepository(session)
        self.stores = StoreRepository(session)
        self.queries = SearchQueryRepository(session)

    async def search(
        self,
        query: str,
        search_type: str = "all",
        limit: int = 20,
        user: Optional[UserModel] = None,
    ) -> dict[str, Any]:
        text = (query or "").strip()
        if len(text) < 2:
            raise ValidationFailed("Search query must be at least 2 characters")
        if search_type not in SEARCH_TYPES:
            raise ValidationFailed(f"type must be one of {', '.join(SEARCH_TYPES)}")

        places = await self.places.search(text, limit) if search_type != "stores" else []
        stores = await self.stores.search(text, limit) if search_type != "places" else []
        total = len(places) + len(stores)

        # Anonymous searches are not recorded
        if user is not None:
            await self.queries.add(
                SearchQueryModel(
                    user_id=user.id,
                    query=text.lower(),
                    search_type=search_type,
                    results_count=total,
                )
            )
        return {"query": text, "places": places, "stores": stores, "total": total}

    async def suggestions(self, prefix: str, limit: int = 5) -> list[str]:
        prefix = (prefix or "").strip()
        if not prefix:
            return []
        names = await self.places.names_starting_with(prefix, limit)
        names += await self.stores.names_starting_with(prefix, limit)
        seen: list[str] = []
        for name in names:
            if name not in seen:
                seen.append(name)
        return seen[:limit]

    async def popular(self, limit: int = 10) -> list[dict[str, Any]]:
        return [
            {"query": query, "count": count}
            for query, count in await self.queries.popular(limit)
        ]
