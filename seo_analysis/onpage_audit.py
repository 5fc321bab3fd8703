"""
On-page SEO checks

Two audits live here: the checklist attached to a website parse
(headlines + metadata, local service-area aware) and the flat SEO fact
sheet and 0-100 score used by the website builder's analyzer.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from .heuristics import extract_services_for_builder
from .models import Headings, ImageInfo, OnPageSEOAnalysis, SEOCheck
from .seo_scoring import round_half_up

logger = logging.getLogger(__name__)

MED_SPA_KEYWORDS = [
    'botox', 'filler', 'laser', 'facial', 'med spa', 'medical spa', 'aesthetics', 'beauty', 'skin care',
    'dermal filler', 'chemical peel', 'microneedling', 'coolsculpting', 'laser hair removal',
    'hydrafacial', 'lip filler', 'wrinkle', 'anti-aging', 'cosmetic', 'treatment', 'injection',
    'rejuvenation', 'skin tightening', 'body contouring'
]

LOCATION_KEYWORDS = [
    'near me', 'local', 'city', 'area', 'location', 'address', 'neighborhood', 'town', 'region'
]

EMAIL_PATTERN = re.compile(r'[\w.-]+@[\w.-]+\.\w+')
PHONE_PATTERN = re.compile(r'(\+\d{1,3}[-.\s]?)?(\(?\d{3}\)?[-.\s]?)?\d{3}[-.\s]?\d{4}')


def _passed_or_failed(name: str, passed: bool, passed_text: str, failed_text: str,
                      recommendation: str) -> SEOCheck:
    return SEOCheck(
        name=name,
        status='passed' if passed else 'failed',
        score=100 if passed else 0,
        description=passed_text if passed else failed_text,
        recommendation=None if passed else recommendation,
    )


def extract_location_info(business_location: str) -> Dict[str, Any]:
    if not business_location:
        return {'city': '', 'state': '', 'areas': []}
    parts = [part.strip() for part in business_location.split(',')]
    return {
        'city': parts[0] if parts else '',
        'state': parts[1] if len(parts) > 1 else '',
        'areas': parts,
    }


def find_service_area_terms(content: str, location_info: Dict[str, Any]) -> List[str]:
    content_lower = (content or '').lower()
    found = []
    for key in ('city', 'state'):
        term = location_info.get(key)
        if term and term.lower() in content_lower:
            found.append(term)
    found.extend(keyword for keyword in LOCATION_KEYWORDS if keyword in content_lower)
    return list(dict.fromkeys(found))


def find_med_spa_keywords(content: str) -> List[str]:
    content_lower = (content or '').lower()
    return [keyword for keyword in MED_SPA_KEYWORDS if keyword in content_lower]


def check_image_alt_tags(images: List[ImageInfo]) -> SEOCheck:
    name = 'Images have "alt tags"'
    if not images:
        return SEOCheck(name=name, status='warning', score=50,
                        description='No images found on the page',
                        recommendation='Add relevant images with descriptive alt tags')

    with_alt = [img for img in images if img.alt and img.alt.strip()]
    percentage = round_half_up(len(with_alt) / len(images) * 100)

    if percentage == 100:
        return SEOCheck(name=name, status='passed', score=100,
                        description=f'All {len(images)} images have alt tags')
    if percentage >= 80:
        return SEOCheck(name=name, status='warning', score=80,
                        description=f'{len(with_alt)} of {len(images)} images have alt tags ({percentage}%)',
                        recommendation='Add alt tags to remaining images for better accessibility and SEO')
    return SEOCheck(name=name, status='failed', score=percentage,
                    description=f'Only {len(with_alt)} of {len(images)} images have alt tags ({percentage}%)',
                    recommendation='Add descriptive alt tags to all images describing the content '
                                   'and including relevant keywords')


def check_meta_description(description: str) -> SEOCheck:
    name = 'Description length'
    if not description or not description.strip():
        return SEOCheck(name=name, status='failed', score=0, description='Missing meta description',
                        recommendation='Add a meta description between 120-160 characters describing '
                                       'your med spa services')
    length = len(description)
    if 120 <= length <= 160:
        return SEOCheck(name=name, status='passed', score=100,
                        description=f'Meta description length is optimal ({length} characters)')
    if length < 120:
        return SEOCheck(name=name, status='warning', score=70,
                        description=f'Meta description is too short ({length} characters)',
                        recommendation='Expand your meta description to 120-160 characters for better '
                                       'search visibility')
    return SEOCheck(name=name, status='warning', score=70,
                    description=f'Meta description is too long ({length} characters)',
                    recommendation='Shorten your meta description to 120-160 characters to avoid '
                                   'truncation in search results')


def check_business_name_in_title(title: str, business_name: str) -> SEOCheck:
    name = 'Page title matches Google Business Profile'
    title_lower = (title or '').lower()
    if business_name.lower() in title_lower:
        return SEOCheck(name=name, status='passed', score=100,
                        description='Page title includes your business name')

    words = [word for word in business_name.split() if len(word) > 2]
    if any(word.lower() in title_lower for word in words):
        return SEOCheck(name=name, status='warning', score=70,
                        description='Page title partially matches your business name',
                        recommendation='Include your full business name in the page title for brand consistency')
    return SEOCheck(name=name, status='warning', score=70,
                    description='Page title does not include your business name',
                    recommendation='Add your business name to the page title to match your '
                                   'Google Business Profile')


def perform_seo_analysis(title: str, description: str, headings: Headings, images: List[ImageInfo],
                         business_location: Optional[str] = None,
                         business_name: Optional[str] = None) -> OnPageSEOAnalysis:
    """Checklist of headline and metadata checks; overall score is the mean check score"""
    location_info = extract_location_info(business_location or '')
    h1_text = ' '.join(headings.h1)
    headlines: List[SEOCheck] = []
    metadata: List[SEOCheck] = []

    headlines.append(_passed_or_failed(
        'Exists', bool(headings.h1),
        'Page has H1 heading tag', 'Missing H1 heading tag',
        'Add an H1 tag to clearly define the main topic of your page'))

    terms = find_service_area_terms(h1_text, location_info)
    headlines.append(_passed_or_failed(
        'Includes the service area', bool(terms),
        f"H1 mentions location: {', '.join(terms)}", 'H1 heading does not mention your service area',
        'Include your city/location in the H1 to improve local SEO'))

    keywords = find_med_spa_keywords(h1_text)
    headlines.append(_passed_or_failed(
        'Includes relevant keywords', bool(keywords),
        f"H1 includes relevant terms: {', '.join(keywords)}", 'H1 heading lacks relevant med spa keywords',
        'Include relevant med spa services (botox, facial, laser, etc.) in your H1'))

    metadata.append(check_image_alt_tags(images))
    metadata.append(check_meta_description(description))

    terms = find_service_area_terms(description, location_info)
    metadata.append(_passed_or_failed(
        'Description includes the service area', bool(terms),
        f"Meta description mentions location: {', '.join(terms)}",
        'Meta description does not mention your service area',
        'Include your city/location in the meta description for better local search visibility'))

    keywords = find_med_spa_keywords(description)
    metadata.append(_passed_or_failed(
        'Description includes relevant keywords', bool(keywords),
        f"Meta description includes: {', '.join(keywords)}",
        'Meta description lacks relevant med spa keywords',
        'Include key services and treatments in your meta description'))

    if business_name:
        metadata.append(check_business_name_in_title(title, business_name))

    terms = find_service_area_terms(title, location_info)
    metadata.append(_passed_or_failed(
        'Page title includes the service area', bool(terms),
        f"Page title mentions location: {', '.join(terms)}", 'Page title does not mention your service area',
        'Include your city/location in the page title for better local SEO'))

    keywords = find_med_spa_keywords(title)
    metadata.append(_passed_or_failed(
        'Page title includes a relevant keyword', bool(keywords),
        f"Page title includes: {', '.join(keywords)}", 'Page title lacks relevant med spa keywords',
        'Include primary services or "med spa" in your page title'))

    checks = headlines + metadata
    return OnPageSEOAnalysis(
        overall_score=round_half_up(sum(c.score for c in checks) / len(checks)) if checks else 0,
        total_checks=len(checks),
        passed_checks=sum(1 for c in checks if c.status == 'passed'),
        headlines=headlines,
        metadata=metadata,
        technical_seo=[],
    )


def calculate_seo_score(factors: Dict[str, Any]) -> int:
    """Additive 0-100 score from basic on-page facts"""
    score = 0

    if factors['has_title']:
        score += 10
    if 30 <= factors['title_length'] <= 60:
        score += 10
    elif factors['title_length'] > 0:
        score += 5

    if factors['has_description']:
        score += 10
    if 120 <= factors['description_length'] <= 160:
        score += 10
    elif factors['description_length'] > 0:
        score += 5

    if factors['has_keywords']:
        score += 5
    if factors['has_h1']:
        score += 10
    if factors['images_with_alt'] > 0:
        score += 10
    if factors['word_count'] >= 300:
        score += 10
    elif factors['word_count'] >= 100:
        score += 5

    if factors['has_ssl']:
        score += 10
    if factors['has_mobile_viewport']:
        score += 10

    return min(max(score, 0), 100)


def extract_address(soup: BeautifulSoup) -> str:
    element = soup.select_one('address, .address, [itemprop="address"]')
    if element is not None:
        return element.get_text().strip() or 'No address found'

    script = soup.find('script', attrs={'type': 'application/ld+json'})
    if script is not None and script.string:
        try:
            schema = json.loads(script.string)
        except ValueError as e:
            logger.warning(f"Error parsing schema data: {e}")
            return 'No address found'
        address = schema.get('address') if isinstance(schema, dict) else None
        if isinstance(address, dict):
            return (f"{address.get('streetAddress', '')}, {address.get('addressLocality', '')}, "
                    f"{address.get('addressRegion', '')} {address.get('postalCode', '')}")
    return 'No address found'


def analyze_page(html: str, url: str) -> Dict[str, Any]:
    """SEO fact sheet, heuristic service list and score for one page"""
    soup = BeautifulSoup(html, 'html.parser')

    title_text = soup.title.get_text().strip() if soup.title else ''
    desc_tag = soup.find('meta', attrs={'name': 'description'})
    desc_text = (desc_tag.get('content') or '').strip() if desc_tag else ''
    keywords_tag = soup.find('meta', attrs={'name': 'keywords'})
    keywords_text = (keywords_tag.get('content') or '').strip() if keywords_tag else ''

    headings = {level: [h.get_text().strip() for h in soup.find_all(level)] for level in ('h1', 'h2', 'h3')}
    paragraphs = [p.get_text().strip() for p in soup.find_all('p')][:10]
    images = [{'src': img.get('src') or 'No source', 'alt': img.get('alt') or 'No alt text'}
              for img in soup.find_all('img')]
    links = [{'href': a.get('href') or '#', 'text': a.get_text().strip() or 'No text'}
             for a in soup.find_all('a')]

    services = extract_services_for_builder(soup)
    address = extract_address(soup)

    for tag in soup(['script', 'style']):
        tag.decompose()
    page_text = soup.get_text(' ')
    word_count = len(page_text.split())

    email = EMAIL_PATTERN.search(page_text)
    phone = PHONE_PATTERN.search(page_text)
    has_ssl = url.startswith('https')
    has_viewport = soup.find('meta', attrs={'name': 'viewport'}) is not None
    images_with_alt = sum(1 for img in images if img['alt'] != 'No alt text')

    return {
        'url': url,
        'title': title_text or 'No title found',
        'description': desc_text or 'No description found',
        'keywords': keywords_text or 'No keywords found',
        'headings': headings,
        'paragraphs': paragraphs,
        'images': images[:10],
        'links': links[:10],
        'contactInfo': {
            'email': email.group(0) if email else 'No email found',
            'phone': phone.group(0).strip() if phone else 'No phone found',
            'address': address,
        },
        'services': [s.model_dump(exclude_none=True) for s in services.value],
        'servicesInferredFrom': services.signals,
        'analysis': {
            'wordCount': word_count,
            'imageCount': len(images),
            'hasSSL': has_ssl,
            'hasMobileViewport': has_viewport,
            'titleLength': len(title_text),
            'descriptionLength': len(desc_text),
        },
        'seoScore': calculate_seo_score({
            'has_title': bool(title_text),
            'has_description': bool(desc_text),
            'has_keywords': bool(keywords_text),
            'title_length': len(title_text),
            'description_length': len(desc_text),
            'has_h1': bool(headings['h1']),
            'images_with_alt': images_with_alt,
            'word_count': word_count,
            'has_ssl': has_ssl,
            'has_mobile_viewport': has_viewport,
        }),
    }
