"""
Website content parser

Fetches a business homepage and extracts the content signals used by the
report: meta tags, headings, images, links, social profiles, contact
details and structural flags.
"""

import logging
import os
import re
import time
from typing import List, Optional

import aiohttp
from aiohttp import ClientTimeout
from bs4 import BeautifulSoup

from .exceptions import WebsiteFetchError
from .heuristics import classify_structure, extract_med_spa_services
from .http_session import DESKTOP_USER_AGENT
from .models import (ContactInfo, Headings, ImageInfo, LinkInfo, SocialLink,
                     WebsiteParseResult, WebsiteStructure)
from .onpage_audit import perform_seo_analysis

logger = logging.getLogger(__name__)

WEBSITE_TIMEOUT_SECONDS = float(os.getenv('WEBSITE_TIMEOUT_SECONDS', '10'))
MAX_IMAGES = 10
MAX_LINKS = 20

SOCIAL_PLATFORMS = ['facebook', 'instagram', 'twitter', 'linkedin', 'youtube', 'tiktok']

EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
PHONE_PATTERN = re.compile(r'(\(?\d{3}\)?[-.\s]?)?\d{3}[-.\s]?\d{4}')


def clean_website_url(url: str) -> str:
    return url if url.startswith('http') else f"https://{url}"


async def fetch_html(session: aiohttp.ClientSession, url: str,
                     timeout: float = WEBSITE_TIMEOUT_SECONDS) -> str:
    """GET a page with a desktop browser User-Agent; non-2xx raises WebsiteFetchError"""
    async with session.get(url, headers={'User-Agent': DESKTOP_USER_AGENT},
                           timeout=ClientTimeout(total=timeout)) as response:
        if not 200 <= response.status < 300:
            raise WebsiteFetchError(f"HTTP {response.status}: {response.reason}")
        return await response.text(errors='replace')


def _meta_content(soup: BeautifulSoup, **attrs) -> str:
    tag = soup.find('meta', attrs=attrs)
    if tag is None:
        return ''
    return tag.get('content') or ''


def _social_platform(link: LinkInfo) -> Optional[str]:
    href, text = link.href.lower(), link.text.lower()
    for platform in SOCIAL_PLATFORMS:
        if platform in href or platform in text:
            return platform
    return None


def parse_website(html: str, url: str, business_location: Optional[str] = None,
                  business_name: Optional[str] = None) -> WebsiteParseResult:
    """Extract content signals from already-fetched markup"""
    soup = BeautifulSoup(html, 'html.parser')

    title = (soup.title.get_text() if soup.title else '') or _meta_content(soup, property='og:title')
    description = (_meta_content(soup, name='description') or
                   _meta_content(soup, property='og:description'))
    keywords = _meta_content(soup, name='keywords')

    headings = Headings(
        h1=[h.get_text().strip() for h in soup.find_all('h1')],
        h2=[h.get_text().strip() for h in soup.find_all('h2')],
        h3=[h.get_text().strip() for h in soup.find_all('h3')],
    )

    images = [ImageInfo(src=img.get('src'), alt=img.get('alt') or '')
              for img in soup.find_all('img') if img.get('src')]

    links: List[LinkInfo] = []
    for anchor in soup.find_all('a', href=True):
        href, text = anchor.get('href', ''), anchor.get_text().strip()
        if href and text:
            links.append(LinkInfo(href=href, text=text))

    social_links = []
    for link in links:
        platform = _social_platform(link)
        if platform:
            social_links.append(SocialLink(platform=platform, url=link.href))

    body_text = (soup.body or soup).get_text()
    email = EMAIL_PATTERN.search(body_text)
    phone = PHONE_PATTERN.search(body_text)

    structure = classify_structure(soup)
    services = extract_med_spa_services(soup)
    logger.info(f"🔍 Extracted {len(services.value)} med spa services from {url}")

    return WebsiteParseResult(
        url=url,
        title=title,
        description=description,
        keywords=keywords,
        headings=headings,
        images=images[:MAX_IMAGES],
        links=links[:MAX_LINKS],
        social_links=social_links,
        contact_info=ContactInfo(
            email=email.group(0) if email else None,
            phone=phone.group(0).strip() if phone else None,
        ),
        structure=WebsiteStructure(**{key: inferred.value for key, inferred in structure.items()}),
        structure_signals={key: inferred.signals for key, inferred in structure.items()},
        services=services.value,
        seo_analysis=perform_seo_analysis(title, description, headings, images,
                                          business_location, business_name),
    )


def error_result(message: str) -> WebsiteParseResult:
    """Zero-valued result carrying the failure reason"""
    return WebsiteParseResult(url='', error=f"Parsing failed: {message}")


async def parse_website_url(session: aiohttp.ClientSession, url: str,
                            business_location: Optional[str] = None,
                            business_name: Optional[str] = None) -> WebsiteParseResult:
    """Fetch and parse a site. Never raises; failures come back in ``error``."""
    start_time = time.monotonic()
    clean_url = clean_website_url(url)
    logger.info(f"🔍 Parsing website: {clean_url}")

    try:
        html = await fetch_html(session, clean_url)
        result = parse_website(html, clean_url, business_location, business_name)
    except Exception as e:
        elapsed = time.monotonic() - start_time
        reason = str(e) or type(e).__name__
        logger.error(f"❌ Website parsing error after {elapsed:.1f}s for {clean_url}: {reason}")
        return error_result(reason)

    logger.info(f"✅ Website parsing completed in {time.monotonic() - start_time:.1f}s")
    return result
