"""Looks up the caller's location from a GeoIP web service."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

GEO_API_URL = "https://ipapi.co/json/"
REQUEST_TIMEOUT = 10.0


@dataclass(frozen=True)
class GeoLocation:
    """The location fields reported by the service."""

    ip: str
    city: str
    region: str
    country: str

    def __str__(self) -> str:
        return f"IP: {self.ip}, City: {self.city}, Region: {self.region}, Country: {self.country}"


def _string_field(document: dict, key: str) -> str:
    if key not in document:
        logger.warning("field %r missing from geo response", key)
        return ""
    value = document[key]
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def parse_geo_response(text: str) -> GeoLocation:
    """Read the service's JSON reply; raises ValueError if it is not a JSON object."""
    try:
        document: Any = json.loads(text)
    except ValueError as exc:
        raise ValueError("failed to parse JSON from geo API response") from exc
    if not isinstance(document, dict):
        raise ValueError("failed to parse JSON from geo API response")
    return GeoLocation(
        ip=_string_field(document, "ip"),
        city=_string_field(document, "city"),
        region=_string_field(document, "region"),
        country=_string_field(document, "country_name"),
    )


class GeoService:
    """Calls the GeoIP endpoint, with an optional bearer token."""

    def __init__(self, session: Optional[Any] = None, token: str = "") -> None:
        self.session = session if session is not None else requests.Session()
        self.token = token or ""

    def call_geo_api(self) -> GeoLocation:
        """Fetch and parse the location; network errors propagate from requests."""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
            logger.debug("bearer token added to header")
        response = self.session.get(GEO_API_URL, headers=headers, timeout=REQUEST_TIMEOUT)
        logger.debug("raw geo API response: %s", response.text)
        return parse_geo_response(response.text)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Show the location of this machine's public IP.")
    parser.add_argument("--token", default="", help="bearer token sent with the request")
    args = parser.parse_args(argv)
    service = GeoService(token=args.token)
    try:
        location = service.call_geo_api()
    except requests.RequestException as exc:
        print(f"geo API call failed: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(location)
    return 0