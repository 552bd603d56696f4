"""Place-directory client: text search, place details, and photo media."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from placematch.common.http import HttpClient, RetryConfig, TimeoutConfig
from placematch.common.models import Coordinates, MatchCandidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionBounds:
    low_lat: float
    low_lng: float
    high_lat: float
    high_lng: float

    @classmethod
    def from_config(cls, cfg: dict) -> "RegionBounds":
        return cls(
            low_lat=float(cfg["low_lat"]),
            low_lng=float(cfg["low_lng"]),
            high_lat=float(cfg["high_lat"]),
            high_lng=float(cfg["high_lng"]),
        )

    def contains(self, point: Coordinates) -> bool:
        return self.low_lat <= point.lat <= self.high_lat and self.low_lng <= point.lng <= self.high_lng

    def to_restriction(self) -> dict[str, Any]:
        return {
            "rectangle": {
                "low": {"latitude": self.low_lat, "longitude": self.low_lng},
                "high": {"latitude": self.high_lat, "longitude": self.high_lng},
            }
        }


def build_http_client(http_cfg: dict, *, sleep: Callable[[float], None] = time.sleep) -> HttpClient:
    return HttpClient(
        requests_per_second=float(http_cfg["requests_per_second"]),
        timeout=TimeoutConfig(
            connect=float(http_cfg["timeout"]["connect"]),
            read=float(http_cfg["timeout"]["read"]),
        ),
        retry=RetryConfig(
            max_retries=int(http_cfg["max_retries"]),
            backoff_seconds=tuple(float(v) for v in http_cfg["backoff_seconds"]),
        ),
        sleep=sleep,
    )


class DirectoryClient:
    def __init__(self, api_key: str, directory_config: dict, http_client: HttpClient) -> None:
        self.api_key = api_key
        self.cfg = directory_config
        self.base_url = directory_config["base_url"].rstrip("/")
        self.region = RegionBounds.from_config(directory_config["region_bbox"])
        self.http = http_client

    @classmethod
    def from_config(
        cls,
        enrichment_cfg: dict,
        api_key: str,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "DirectoryClient":
        return cls(api_key, enrichment_cfg["directory"], build_http_client(enrichment_cfg["http"], sleep=sleep))

    def close(self) -> None:
        self.http.close()

    @property
    def call_counts(self) -> dict[str, int]:
        return dict(self.http.request_counts)

    def _auth_headers(self, field_mask: list[str] | None = None) -> dict[str, str]:
        headers = {"X-Goog-Api-Key": self.api_key}
        if field_mask:
            headers["X-Goog-FieldMask"] = ",".join(field_mask)
        return headers

    def search_text(
        self,
        query: str,
        *,
        location_bias: Coordinates | None = None,
        region: RegionBounds | None = None,
        radius_m: float | None = None,
    ) -> list[MatchCandidate]:
        """Ranked candidates for a free-text query.

        At most one of ``location_bias`` and ``region`` may be given; with
        neither, the configured region restricts the search.
        """
        if location_bias is not None and region is not None:
            raise ValueError("location_bias and region are mutually exclusive")

        body: dict[str, Any] = {
            "textQuery": query,
            "languageCode": self.cfg["language_code"],
            "maxResultCount": int(self.cfg["max_results"]),
        }
        if location_bias is not None:
            body["locationBias"] = {
                "circle": {
                    "center": {"latitude": location_bias.lat, "longitude": location_bias.lng},
                    "radius": float(radius_m or self.cfg["search_radius_m"]),
                }
            }
        else:
            body["locationRestriction"] = (region or self.region).to_restriction()

        logger.debug("searching directory for %r", query, extra={"event": "DIRECTORY_SEARCH"})
        payload = self.http.post_json(
            f"{self.base_url}/places:searchText",
            kind="search",
            json_body=body,
            headers=self._auth_headers(self.cfg["search_field_mask"]),
        )
        return [MatchCandidate.from_directory(place) for place in payload.get("places") or []]

    def get_details(self, external_id: str) -> dict[str, Any]:
        logger.debug("fetching directory details for %s", external_id, extra={"event": "DIRECTORY_DETAILS"})
        return self.http.get_json(
            f"{self.base_url}/places/{external_id}",
            kind="details",
            headers=self._auth_headers(self.cfg["details_field_mask"]),
        )

    def photo_url(self, reference: str) -> str:
        # The key is sent as a header at fetch time and never stored in URLs.
        return (
            f"{self.base_url}/{reference}/media"
            f"?maxWidthPx={int(self.cfg['photo_max_width'])}&maxHeightPx={int(self.cfg['photo_max_height'])}"
        )

    def resolve_photo(self, reference: str) -> str | None:
        payload = self.http.get_json(
            self.photo_url(reference),
            kind="photo",
            params={"skipHttpRedirect": "true"},
            headers=self._auth_headers(),
        )
        return payload.get("photoUri")
