"""
Google PageSpeed Insights wrapper

Results never raise: every failure is returned as a PageSpeedResult
carrying an ``error`` string, which downstream scoring treats as
"no score available".
"""

import asyncio
import logging
import os
import time
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import aiohttp
from aiohttp import ClientTimeout

from .exceptions import ConfigurationError
from .models import PageSpeedResult
from .seo_scoring import round_half_up

logger = logging.getLogger(__name__)

PAGESPEED_API_URL = 'https://www.googleapis.com/pagespeedonline/v5/runPagespeed'
PAGESPEED_TIMEOUT_SECONDS = float(os.getenv('PAGESPEED_TIMEOUT_SECONDS', '60'))
PAGESPEED_MAX_RETRIES = int(os.getenv('PAGESPEED_MAX_RETRIES', '2'))
RETRY_BACKOFF_SECONDS = 2

TIMEOUT_ERROR = 'Analysis timed out - site may be very slow or unresponsive'


def normalize_url(url: str) -> str:
    """
    Prepare a business URL for analysis: force a scheme, drop utm_*
    parameters and the fragment, and collapse store-locator pages to the
    site origin.
    """
    clean_url = url if url.startswith('http') else f"https://{url}"

    parts = urlsplit(clean_url)
    if not parts.netloc:
        logger.warning(f"⚠️ URL parsing failed, using original: {clean_url}")
        return clean_url

    path = parts.path or '/'
    if 'locator' in path or 'locations' in path:
        return f"{parts.scheme}://{parts.netloc}"

    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
             if not k.startswith('utm_')]
    return urlunsplit((parts.scheme, parts.netloc, path, urlencode(query), ''))


def _category_score(categories: dict, key: str) -> Optional[int]:
    score = (categories.get(key) or {}).get('score')
    if score is None:
        return None
    return round_half_up(score * 100)


def _audit_value(audits: dict, key: str) -> Optional[float]:
    return (audits.get(key) or {}).get('numericValue')


class PageSpeedAnalyzer:
    """Runs Lighthouse audits through the PageSpeed Insights API"""

    def __init__(self, api_key: str, session: aiohttp.ClientSession,
                 timeout: float = PAGESPEED_TIMEOUT_SECONDS,
                 categories: Iterable[str] = ('performance', 'seo'),
                 strategy: str = 'mobile',
                 sleep=asyncio.sleep):
        if not api_key:
            raise ConfigurationError('PageSpeed Insights API key not configured')
        self.api_key = api_key
        self.session = session
        self.timeout = timeout
        self.categories = list(categories)
        self.strategy = strategy
        self._sleep = sleep

    def _params(self, url: str) -> list:
        params = [('url', url), ('strategy', self.strategy)]
        params.extend(('category', category) for category in self.categories)
        params.append(('key', self.api_key))
        return params

    @staticmethod
    def parse_response(url: str, data: dict) -> PageSpeedResult:
        lighthouse = data.get('lighthouseResult') or {}
        categories = lighthouse.get('categories') or {}
        audits = lighthouse.get('audits') or {}

        return PageSpeedResult(
            url=url,
            performance_score=_category_score(categories, 'performance'),
            seo_score=_category_score(categories, 'seo'),
            accessibility_score=_category_score(categories, 'accessibility'),
            best_practices_score=_category_score(categories, 'best-practices'),
            loading_experience=(data.get('loadingExperience') or {}).get('overall_category'),
            largest_contentful_paint=_audit_value(audits, 'largest-contentful-paint'),
            first_input_delay=_audit_value(audits, 'max-potential-fid'),
            cumulative_layout_shift=_audit_value(audits, 'cumulative-layout-shift'),
        )

    async def analyze_fast(self, url: str) -> PageSpeedResult:
        """Single PageSpeed run bounded by the analyzer timeout"""
        start_time = time.monotonic()
        logger.info(f"⚡ Starting PageSpeed analysis for: {url}")

        try:
            clean_url = normalize_url(url)
            async with self.session.get(PAGESPEED_API_URL, params=self._params(clean_url),
                                        timeout=ClientTimeout(total=self.timeout)) as response:
                data = await response.json(content_type=None) or {}
                elapsed = time.monotonic() - start_time
                logger.info(f"📊 PageSpeed API response in {elapsed:.1f}s, status: {response.status}")

                if response.status >= 400:
                    message = (data.get('error') or {}).get('message') or 'PageSpeed analysis failed'
                    logger.warning(f"❌ PageSpeed API error: {message}")
                    return PageSpeedResult(url=clean_url, error=message)

            result = self.parse_response(clean_url, data)
            logger.info(f"✅ PageSpeed analysis completed for {clean_url}. "
                        f"Scores: P:{result.performance_score} S:{result.seo_score}")
            return result

        except asyncio.TimeoutError:
            elapsed = time.monotonic() - start_time
            logger.error(f"⏱️ PageSpeed analysis timed out after {elapsed:.1f}s for: {url}")
            return PageSpeedResult(url=url, error=TIMEOUT_ERROR)
        except Exception as e:
            logger.error(f"❌ PageSpeed analysis failed for {url}: {e}")
            return PageSpeedResult(url=url, error=f"Analysis failed: {e}")

    async def analyze_with_retry(self, url: str, max_retries: int = PAGESPEED_MAX_RETRIES) -> PageSpeedResult:
        """
        Retry only on timeouts, waiting attempt * 2 seconds between tries.
        Returns the last result once retries are exhausted.
        """
        result = None
        for attempt in range(1, max_retries + 1):
            logger.info(f"🔄 PageSpeed analysis attempt {attempt}/{max_retries} for: {url}")
            result = await self.analyze_fast(url)

            if not result.error or 'timed out' not in result.error:
                return result
            if attempt == max_retries:
                return result

            delay = attempt * RETRY_BACKOFF_SECONDS
            logger.info(f"⏳ Waiting {delay}s before retry...")
            await self._sleep(delay)

        return result or PageSpeedResult(url=url, error=f"All {max_retries} attempts failed")
