"""
Competitor discovery and SEO scoring pipeline

One reusable flow shared by every endpoint that needs competitor data:

    Lookup -> Finder -> Enricher -> PageSpeed -> (website parse) -> Scoring

HTTP clients are injected so the whole pipeline can run against fakes.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .exceptions import PlacesAPIError
from .google_places import (COMPETITOR_SEARCH_RADIUS_METERS, MAX_COMPETITORS,
                            GooglePlacesAPI, find_nearby_competitors,
                            get_detailed_competitors, get_med_spa_details,
                            is_relevant_competitor)
from .models import CompetitorWithSEO, PageSpeedResult, PlaceDetails, WebsiteParseResult, dump
from .pagespeed import PageSpeedAnalyzer
from .seo_scoring import (calculate_competitive_score, calculate_seo_rankings,
                          determine_position, generate_seo_recommendations)

logger = logging.getLogger(__name__)

# Text-search flows keep their own, larger limits
COMPETITOR_ANALYSIS_LIMIT = 8
SEARCH_DETAIL_LIMIT = 5
SEARCH_BIAS_RADIUS_METERS = 50000

COMPETITOR_ANALYSIS_FIELDS = [
    'name', 'formatted_address', 'rating', 'user_ratings_total', 'website', 'formatted_phone_number'
]
SEARCH_DETAIL_FIELDS = COMPETITOR_ANALYSIS_FIELDS + ['opening_hours']

WebsiteParser = Callable[..., Awaitable[WebsiteParseResult]]


async def _with_pagespeed(competitor: CompetitorWithSEO, pagespeed: PageSpeedAnalyzer) -> CompetitorWithSEO:
    if not competitor.website:
        logger.info(f"⏭️ Skipping PageSpeed for {competitor.name} (no website)")
        return competitor

    logger.info(f"⚡ Analyzing PageSpeed for {competitor.name}: {competitor.website}")
    result = await pagespeed.analyze_with_retry(competitor.website)
    logger.info(f"✅ PageSpeed for {competitor.name}: {'FAILED' if result.error else 'SUCCESS'}")
    return competitor.model_copy(update={'pagespeed_data': result})


async def _target_pagespeed(medspa: PlaceDetails, pagespeed: PageSpeedAnalyzer) -> Optional[PageSpeedResult]:
    if not medspa.website:
        logger.info('⏭️ Selected med spa has no website, skipping PageSpeed analysis')
        return None
    return await pagespeed.analyze_with_retry(medspa.website)


async def _target_website(medspa: PlaceDetails, parser: Optional[WebsiteParser]) -> Optional[WebsiteParseResult]:
    if parser is None or not medspa.website:
        return None
    return await parser(medspa.website, business_location=medspa.formatted_address,
                        business_name=medspa.name)


def _ordered_competitors(enriched: List[CompetitorWithSEO],
                         ranked: List[CompetitorWithSEO]) -> List[CompetitorWithSEO]:
    """Ranked competitors first (best score first), then the unranked ones in discovery order"""
    unranked = [c for c in enriched if c.pagespeed_data is None or not c.pagespeed_data.is_usable]
    return list(ranked) + unranked


async def run_seo_analysis(selected: PlaceDetails, places: GooglePlacesAPI,
                           pagespeed: PageSpeedAnalyzer,
                           parser: Optional[WebsiteParser] = None,
                           radius: int = COMPETITOR_SEARCH_RADIUS_METERS,
                           limit: int = MAX_COMPETITORS) -> Dict[str, Any]:
    """
    Full competitor scan for one business.

    Args:
        selected: The business being scanned (search result or full details)
        places: Places client
        pagespeed: PageSpeed client
        parser: Optional coroutine used to parse the target's website
        radius: Nearby search radius in meters
        limit: Maximum number of competitors to analyze

    Returns:
        ``{selectedMedspa, competitors, analysis}`` ready to serialize
    """
    start_time = time.monotonic()

    medspa = await get_med_spa_details(selected, places)
    location = medspa.location
    logger.info(f"🗺️ Med spa location: {location.lat}, {location.lng}")

    candidates = await find_nearby_competitors(medspa, places, radius=radius, limit=limit)
    detailed = await get_detailed_competitors(candidates, location.lat, location.lng, places)

    logger.info('⚡ Step 4: Running PageSpeed analysis for target and competitors...')
    competitors_task = asyncio.gather(*(_with_pagespeed(c, pagespeed) for c in detailed))
    enriched, selected_pagespeed, website_data = await asyncio.gather(
        competitors_task,
        _target_pagespeed(medspa, pagespeed),
        _target_website(medspa, parser),
    )
    enriched = list(enriched)

    logger.info('📊 Step 5: Calculating SEO rankings...')
    rankings = calculate_seo_rankings(enriched, selected_pagespeed)
    recommendations = generate_seo_recommendations(rankings, selected_pagespeed)

    selected_out = dump(medspa)
    if selected_pagespeed is not None:
        selected_out['pagespeed_data'] = dump(selected_pagespeed)
    if website_data is not None:
        selected_out['website_data'] = dump(website_data)

    logger.info(f"🎉 SEO analysis completed in {time.monotonic() - start_time:.1f}s. "
                f"Your position: #{rankings.your_position}")

    return {
        'selectedMedspa': selected_out,
        'competitors': [dump(c) for c in _ordered_competitors(enriched, rankings.competitors)],
        'analysis': {
            'totalCompetitors': len(enriched),
            'competitorsWithWebsites': sum(1 for c in enriched if c.website),
            'rankedCompetitors': len(rankings.competitors),
            'yourSEOPosition': rankings.your_position,
            'averagePerformanceScore': rankings.average_performance_score,
            'averageSEOScore': rankings.average_seo_score,
            'topPerformer': dump(rankings.top_performer) if rankings.top_performer else None,
            'recommendations': recommendations,
        }
    }


def _is_same_business(place: Dict[str, Any], medspa: Dict[str, Any]) -> bool:
    name = (place.get('name') or '').lower()
    selected_name = (medspa.get('name') or '').lower()
    if selected_name and name == selected_name:
        return True
    return bool(medspa.get('place_id')) and place.get('place_id') == medspa.get('place_id')


def _summary(place_id: Optional[str], details: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'place_id': place_id,
        'name': details.get('name'),
        'formatted_address': details.get('formatted_address'),
        'rating': details.get('rating'),
        'user_ratings_total': details.get('user_ratings_total'),
        'website': details.get('website'),
        'phone': details.get('formatted_phone_number') or details.get('phone'),
    }


async def run_competitor_analysis(medspa: Dict[str, Any], location: Optional[str],
                                  places: GooglePlacesAPI) -> Dict[str, Any]:
    """Rating-based overview of the top text-search competitors"""
    area = medspa.get('formatted_address') or location
    query = f"medical spa OR med spa OR aesthetic clinic OR dermatology near {area}"

    try:
        results = await places.text_search(query, place_type='spa')
    except PlacesAPIError as e:
        logger.error(f"❌ Competitor search failed: {e}")
        raise PlacesAPIError('Failed to search competitors', status_code=e.status_code)

    competitors = [p for p in results if not _is_same_business(p, medspa) and is_relevant_competitor(p)]
    competitors.sort(key=lambda p: p.get('rating') or 0, reverse=True)
    competitors = competitors[:COMPETITOR_ANALYSIS_LIMIT]
    logger.info(f"🏢 {len(competitors)} competitors selected for analysis")

    async def describe(index: int, candidate: Dict[str, Any]) -> Dict[str, Any]:
        details = await places.details_with_fallback(candidate, COMPETITOR_ANALYSIS_FIELDS)
        entry = _summary(candidate.get('place_id'), details)
        entry['position'] = index + 1
        entry['competitiveScore'] = calculate_competitive_score(details, medspa)
        return entry

    detailed = await asyncio.gather(*(describe(i, c) for i, c in enumerate(competitors)))
    detailed = list(detailed)

    ratings = [c.get('rating') or 0 for c in detailed]
    return {
        'competitors': detailed,
        'selectedMedspa': medspa,
        'analysisMetrics': {
            'averageRating': sum(ratings) / len(ratings) if ratings else 0,
            'totalCompetitors': len(detailed),
            'yourPosition': determine_position(medspa, detailed),
        }
    }


async def search_medspas(query: str, location: Optional[str], user_location: Optional[Dict[str, float]],
                         places: GooglePlacesAPI) -> Dict[str, Any]:
    """Text search for med spas, with details for the first few matches"""
    search_query = f"{query} med spa OR medical spa OR aesthetic clinic"
    if location and location.strip():
        search_query += f" in {location}"

    bias = None
    if user_location and user_location.get('lat') and user_location.get('lng'):
        bias = user_location

    try:
        results = await places.text_search(search_query, place_type='spa', location=bias,
                                           radius=SEARCH_BIAS_RADIUS_METERS if bias else None)
    except PlacesAPIError as e:
        logger.error(f"❌ Med spa search failed: {e}")
        raise PlacesAPIError('Failed to search places', status_code=e.status_code)

    filtered = [p for p in results if is_relevant_competitor(p)]
    logger.info(f"🔍 Search '{query}' matched {len(filtered)} med spas")

    async def describe(place: Dict[str, Any]) -> Dict[str, Any]:
        details = await places.details_with_fallback(place, SEARCH_DETAIL_FIELDS)
        entry = _summary(place.get('place_id'), details)
        if details.get('opening_hours'):
            entry['opening_hours'] = details['opening_hours']
        if details.get('geometry'):
            entry['geometry'] = details['geometry']
        return {k: v for k, v in entry.items() if v is not None}

    detailed = await asyncio.gather(*(describe(p) for p in filtered[:SEARCH_DETAIL_LIMIT]))
    return {'results': list(detailed), 'total': len(filtered)}
