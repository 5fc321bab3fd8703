"""
Google Places wrapper and competitor discovery

Covers place details lookup, nearby/text search, the med spa keyword
filter, haversine distance and the concurrent detail enrichment of a
competitor candidate list.
"""

import asyncio
import logging
import math
import os
from typing import Any, Dict, List, Optional

import aiohttp
from aiohttp import ClientTimeout

from .exceptions import ConfigurationError, PlacesAPIError
from .models import CompetitorWithSEO, PlaceDetails

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3959

PLACES_TIMEOUT_SECONDS = float(os.getenv('PLACES_TIMEOUT_SECONDS', '30'))
# 8047 m is ~5 miles. Older call sites used 16093 m (10 miles); see DESIGN.md.
COMPETITOR_SEARCH_RADIUS_METERS = int(os.getenv('COMPETITOR_SEARCH_RADIUS_METERS', '8047'))
MAX_COMPETITORS = int(os.getenv('MAX_COMPETITORS', '5'))

TARGET_DETAIL_FIELDS = [
    'name', 'formatted_address', 'rating', 'user_ratings_total', 'website',
    'formatted_phone_number', 'geometry', 'reviews', 'photos'
]
COMPETITOR_DETAIL_FIELDS = [
    'name', 'formatted_address', 'rating', 'user_ratings_total', 'website',
    'formatted_phone_number', 'geometry'
]

COMPETITOR_NAME_KEYWORDS = [
    'med spa', 'medical spa', 'aesthetic', 'dermatology', 'cosmetic',
    'laser', 'botox', 'filler'
]
COMPETITOR_PLACE_TYPES = {'spa', 'health', 'beauty_salon'}


class GooglePlacesAPI:
    """Async Google Places API wrapper with guaranteed timeouts"""

    def __init__(self, api_key: str, session: aiohttp.ClientSession,
                 timeout: float = PLACES_TIMEOUT_SECONDS):
        if not api_key:
            raise ConfigurationError('Google Places API key not configured')
        self.api_key = api_key
        self.session = session
        self.base_url = "https://maps.googleapis.com/maps/api"
        self.timeout = timeout

    async def _make_request(self, endpoint: str, params: dict) -> dict:
        """
        Make a single API request. No retries: a failing call fails the
        caller's request.

        Args:
            endpoint: API endpoint (e.g., '/place/nearbysearch/json')
            params: Query parameters

        Returns:
            API response as dict
        """
        url = f"{self.base_url}{endpoint}"
        query = dict(params)
        query['key'] = self.api_key

        try:
            async with self.session.get(url, params=query,
                                        timeout=ClientTimeout(total=self.timeout)) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    logger.error(f"Places API HTTP {response.status} on {endpoint}: response body is not JSON")
                    raise PlacesAPIError(f"Places API returned HTTP {response.status}",
                                         status_code=response.status)
                if response.status >= 400:
                    message = (data or {}).get('error_message', 'Unknown error')
                    logger.error(f"Places API HTTP {response.status} on {endpoint}: {message}")
                    raise PlacesAPIError(f"Places API returned HTTP {response.status}",
                                         status_code=response.status)
        except asyncio.TimeoutError:
            logger.error(f"Places API request timed out after {self.timeout}s: {endpoint}")
            raise PlacesAPIError("Places API request timed out")
        except aiohttp.ClientError as e:
            logger.error(f"Places API request failed: {endpoint}: {e}")
            raise PlacesAPIError(f"Places API request failed: {e}")

        data = data or {}
        status = data.get('status')
        if status in ('OK', 'ZERO_RESULTS'):
            return data
        elif status == 'OVER_QUERY_LIMIT':
            logger.error("Google API quota exceeded")
            raise PlacesAPIError("API quota exceeded")
        elif status == 'REQUEST_DENIED':
            logger.error("Google API request denied - check API key")
            raise PlacesAPIError("Invalid API key or permissions")
        elif status == 'INVALID_REQUEST':
            logger.error(f"Invalid API request: {data.get('error_message', 'Unknown error')}")
            raise PlacesAPIError(f"Invalid request: {data.get('error_message')}")
        else:
            logger.warning(f"API returned status: {status}")
            return data

    async def place_details(self, place_id: str, fields: List[str]) -> Optional[dict]:
        """Get the detail record for a place, or None when Places has no result"""
        data = await self._make_request('/place/details/json', {
            'place_id': place_id,
            'fields': ','.join(fields)
        })
        return data.get('result') or None

    async def places_nearby(self, lat: float, lng: float, radius: int,
                            place_type: str = 'beauty_salon|spa') -> List[dict]:
        """Single page of nearby results; pagination is not followed"""
        data = await self._make_request('/place/nearbysearch/json', {
            'location': f"{lat},{lng}",
            'radius': radius,
            'type': place_type
        })
        results = data.get('results', [])
        logger.info(f"📊 Found places: {len(results)}")
        return results

    async def text_search(self, query: str, place_type: Optional[str] = None,
                          location: Optional[Dict[str, float]] = None,
                          radius: Optional[int] = None) -> List[dict]:
        params = {'query': query}
        if place_type:
            params['type'] = place_type
        if location:
            params['location'] = f"{location['lat']},{location['lng']}"
            params['radius'] = radius or 50000
        data = await self._make_request('/place/textsearch/json', params)
        return data.get('results', [])

    async def details_with_fallback(self, place: Dict[str, Any], fields: List[str]) -> Dict[str, Any]:
        """
        Fetch details for a search result, degrading to the search result
        itself if the lookup fails. Never raises.
        """
        try:
            details = await self.place_details(place.get('place_id'), fields)
        except Exception as e:
            logger.warning(f"⚠️ Details lookup failed for {place.get('name')}: {e}")
            return place
        if not details:
            logger.warning(f"⚠️ No details returned for {place.get('name')}, using search result")
            return place
        details.setdefault('place_id', place.get('place_id'))
        return details


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle (haversine) distance in miles, rounded to one decimal.
    This is straight-line distance, not driving distance.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (math.sin(d_lat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(d_lng / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_MILES * c, 1)


def _coordinates(place: Dict[str, Any]) -> Optional[tuple]:
    location = (place.get('geometry') or {}).get('location') or {}
    lat, lng = location.get('lat'), location.get('lng')
    if lat is None or lng is None:
        return None
    return lat, lng


def is_relevant_competitor(place: Dict[str, Any]) -> bool:
    """Keyword allow-list shared by every med spa search"""
    name = (place.get('name') or '').lower()
    types = place.get('types') or []
    if any(keyword in name for keyword in COMPETITOR_NAME_KEYWORDS):
        return True
    return any(place_type in COMPETITOR_PLACE_TYPES for place_type in types)


def _build_competitor(details: Dict[str, Any], candidate: Dict[str, Any],
                      lat: float, lng: float) -> CompetitorWithSEO:
    coords = _coordinates(details) or _coordinates(candidate)
    distance = calculate_distance(lat, lng, *coords) if coords else None

    return CompetitorWithSEO.from_places({
        'place_id': candidate.get('place_id') or details.get('place_id'),
        'name': details.get('name') or candidate.get('name', ''),
        'formatted_address': details.get('formatted_address') or candidate.get('vicinity'),
        'rating': details.get('rating'),
        'user_ratings_total': details.get('user_ratings_total'),
        'website': details.get('website'),
        'formatted_phone_number': details.get('formatted_phone_number'),
        'geometry': details.get('geometry') or candidate.get('geometry'),
        'distance_miles': distance,
    })


def _bare_competitor(candidate: Dict[str, Any]) -> CompetitorWithSEO:
    place_id = candidate.get('place_id')
    return CompetitorWithSEO(
        place_id=place_id if isinstance(place_id, str) else None,
        name=str(candidate.get('name') or ''),
        distance_miles=None,
    )


async def get_med_spa_details(selected: PlaceDetails, places: GooglePlacesAPI) -> PlaceDetails:
    """Resolve coordinates (and reviews/photos) for the business being scanned"""
    if not selected.place_id:
        raise PlacesAPIError('No place ID found for med spa')

    logger.info('📍 Step 1: Getting med spa details...')
    if selected.location is not None:
        logger.info(f"✅ Using existing coordinates: {selected.location.lat}, {selected.location.lng}")
        return selected

    logger.info('🔍 Need to fetch coordinates for med spa')
    try:
        details = await places.place_details(selected.place_id, TARGET_DETAIL_FIELDS)
    except PlacesAPIError as e:
        logger.error(f"❌ Failed to get med spa details: {e}")
        raise PlacesAPIError('Failed to get med spa details', status_code=e.status_code)
    if not details:
        logger.error('❌ Failed to get med spa details: empty result')
        raise PlacesAPIError('Failed to get med spa details')

    details.setdefault('place_id', selected.place_id)
    medspa = PlaceDetails.from_places(details)
    logger.info(f"✅ Got med spa details for {medspa.name}: "
                f"{len(medspa.reviews or [])} reviews, {len(medspa.photos or [])} photos")
    return medspa


async def find_nearby_competitors(target: PlaceDetails, places: GooglePlacesAPI,
                                  radius: int = COMPETITOR_SEARCH_RADIUS_METERS,
                                  limit: int = MAX_COMPETITORS) -> List[Dict[str, Any]]:
    """Nearby med spa candidates around the target, excluding the target itself"""
    if target.location is None:
        raise PlacesAPIError('No coordinates found for med spa')

    logger.info('🔍 Step 2: Finding nearby competitors...')
    try:
        results = await places.places_nearby(target.location.lat, target.location.lng, radius)
    except PlacesAPIError as e:
        logger.error(f"❌ Places Nearby API error: {e}")
        raise PlacesAPIError('Failed to find nearby competitors', status_code=e.status_code)

    competitors = [
        place for place in results
        if place.get('place_id') != target.place_id and is_relevant_competitor(place)
    ][:limit]
    logger.info(f"🏢 Filtered to {len(competitors)} relevant competitors")
    return competitors


async def get_detailed_competitors(candidates: List[Dict[str, Any]], lat: float, lng: float,
                                   places: GooglePlacesAPI,
                                   max_concurrency: Optional[int] = None) -> List[CompetitorWithSEO]:
    """
    Fetch details for every candidate concurrently and attach distance.
    Output order matches input order.
    """
    logger.info('📍 Step 3: Getting detailed competitor information in parallel...')
    semaphore = asyncio.Semaphore(max_concurrency or max(len(candidates), 1))

    async def enrich(index: int, candidate: Dict[str, Any]) -> CompetitorWithSEO:
        async with semaphore:
            details = await places.details_with_fallback(candidate, COMPETITOR_DETAIL_FIELDS)

        try:
            competitor = _build_competitor(details, candidate, lat, lng)
        except Exception as e:
            logger.warning(f"⚠️ Malformed details for {candidate.get('name')}, using search result: {e}")
            try:
                competitor = _build_competitor(candidate, candidate, lat, lng)
            except Exception as fallback_error:
                logger.warning(f"⚠️ Malformed search result for {candidate.get('name')}, "
                               f"keeping name only: {fallback_error}")
                competitor = _bare_competitor(candidate)
        logger.info(f"✅ Competitor {index + 1} processed: {competitor.name} "
                    f"({competitor.distance_miles} miles, website: {bool(competitor.website)})")
        return competitor

    detailed = await asyncio.gather(*(enrich(i, c) for i, c in enumerate(candidates)))
    logger.info(f"🌐 Found {sum(1 for c in detailed if c.website)} competitors with websites")
    return list(detailed)
