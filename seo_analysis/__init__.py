"""
MedSpa SEO Scanner Package

Competitor discovery, PageSpeed scoring and website analysis for medical spas.
"""

__version__ = '1.0.0'

from .exceptions import (AIServiceError, ConfigurationError, PlacesAPIError,
                         SEOAnalysisError, WebsiteFetchError)
from .google_places import GooglePlacesAPI, calculate_distance
from .models import CompetitorWithSEO, PageSpeedResult, PlaceDetails, WebsiteParseResult
from .pagespeed import PageSpeedAnalyzer, normalize_url
from .pipeline import run_competitor_analysis, run_seo_analysis, search_medspas
from .result_cache import ResultCache
from .seo_scoring import calculate_overall_seo_score, calculate_seo_rankings

__all__ = [
    'AIServiceError',
    'ConfigurationError',
    'PlacesAPIError',
    'SEOAnalysisError',
    'WebsiteFetchError',
    'GooglePlacesAPI',
    'calculate_distance',
    'CompetitorWithSEO',
    'PageSpeedResult',
    'PlaceDetails',
    'WebsiteParseResult',
    'PageSpeedAnalyzer',
    'normalize_url',
    'run_competitor_analysis',
    'run_seo_analysis',
    'search_medspas',
    'ResultCache',
    'calculate_overall_seo_score',
    'calculate_seo_rankings',
]
