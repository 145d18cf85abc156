from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

import httpx

from .model import MatchedJob

logger = logging.getLogger(__name__)

DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"
TRAVEL_MODES = ("transit", "bicycling", "driving", "walking")


class CommuteAugmenter:
    """Fills commute distance and time for the final page of results."""

    def __init__(
        self, client: httpx.AsyncClient, api_key: Optional[str], country_name: str, batch_size: int = 25
    ):
        self._client = client
        self._api_key = api_key
        self._country = country_name
        self._batch_size = batch_size

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    def _destination(self, job: MatchedJob) -> Optional[str]:
        listing = job.listing
        if listing.lat is not None and listing.lng is not None:
            return f"{listing.lat},{listing.lng}"
        if listing.city:
            return f"{listing.city}, {self._country}"
        return None

    async def augment(self, jobs: Sequence[MatchedJob], origin: Optional[str], mode: str = "transit") -> int:
        if not self.enabled or not origin:
            return 0
        travel_mode = mode if mode in TRAVEL_MODES else "transit"
        located = [(job, dest) for job in jobs if (dest := self._destination(job))]
        batches = [located[i : i + self._batch_size] for i in range(0, len(located), self._batch_size)]
        counts = await asyncio.gather(*(self._run_batch(batch, origin, travel_mode) for batch in batches))
        computed = sum(counts)
        logger.info("Computed commute for %d of %d jobs", computed, len(jobs))
        return computed

    async def _run_batch(self, batch: List[tuple], origin: str, mode: str) -> int:
        params = {
            "origins": f"{origin}, {self._country}",
            "destinations": "|".join(dest for _, dest in batch),
            "mode": mode,
            "key": self._api_key or "",
        }
        try:
            response = await self._client.get(DISTANCE_MATRIX_URL, params=params)
            response.raise_for_status()
            data = response.json()
            elements = data["rows"][0]["elements"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            logger.warning("Commute batch of %d failed (%s)", len(batch), exc)
            return 0

        computed = 0
        for (job, _), element in zip(batch, elements):
            if not isinstance(element, dict) or element.get("status") != "OK":
                continue
            distance = (element.get("distance") or {}).get("value") or 0
            duration = element.get("duration") or {}
            job.commute_distance_km = round(distance / 1000, 1)
            job.commute_time_min = round((duration.get("value") or 0) / 60)
            job.commute_time_text = duration.get("text")
            job.commute_mode = mode
            computed += 1
        return computed
