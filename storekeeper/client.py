"""
Async client for the storekeeper API.

Used by feeders (which push state) and by apps (which read metadata and state
and join them into ParkingLot views):

    async with StorekeeperClient("https://storekeeper.example", token) as client:
        await client.update_states({"lot-1": ParkingLotState(available_spots={"CAR": 5})})
        lots = await client.parking_lots()
"""

from typing import Any, Mapping

import httpx

from storekeeper.models import (
    MetadataMap,
    ParkingLot,
    ParkingLotMetadata,
    ParkingLotState,
    StateMap,
    compose_parking_lots,
    parse_metadatas,
    parse_states,
    to_wire_map,
)


class StorekeeperError(Exception):
    """The server answered with a non-success status."""

    def __init__(self, message: str, status_code: int):
        self.message = message
        self.status_code = status_code
        super().__init__(f"{status_code}: {message}")


class StorekeeperClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "StorekeeperClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        response = await self._client.request(method, path, json=json)
        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            detail = body.get("detail", response.text) if isinstance(body, dict) else response.text
            raise StorekeeperError(detail, response.status_code)
        return response.json()

    async def metadatas(self) -> MetadataMap:
        return parse_metadatas(await self._request("GET", "/parking-lot/metadata"))

    async def states(self) -> StateMap:
        return parse_states(await self._request("GET", "/parking-lot/state"))

    async def parking_lots(self) -> dict[str, ParkingLot]:
        """Fetch both maps and join them. Needs metadata:read and state:read."""
        return compose_parking_lots(await self.metadatas(), await self.states())

    async def update_metadatas(self, updates: Mapping[str, ParkingLotMetadata]) -> int:
        """Upsert metadata entries; returns the number the server accepted."""
        body = await self._request("POST", "/parking-lot/metadata", json=to_wire_map(updates))
        return body["updated"]

    async def update_states(self, updates: Mapping[str, ParkingLotState]) -> int:
        body = await self._request("POST", "/parking-lot/state", json=to_wire_map(updates))
        return body["updated"]

    async def health(self) -> bool:
        response = await self._client.get("/health-check")
        return response.status_code == 200
