"""
Heuristic classifiers for arbitrary third-party HTML

Everything here is best-effort inference from markup with no guaranteed
structure. Results are wrapped in ``Inferred`` together with the signals
that produced them so callers cannot mistake them for verified data.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Generic, List, TypeVar

from bs4 import BeautifulSoup, Tag

from .models import ServiceInfo

T = TypeVar('T')


@dataclass(frozen=True)
class Inferred(Generic[T]):
    """A heuristic guess plus the evidence it was based on"""
    value: T
    signals: List[str] = field(default_factory=list)


NAVIGATION_SELECTOR = 'nav, .nav, .navbar, .navigation'
FOOTER_SELECTOR = 'footer, .footer'
BOOKING_SELECTOR = 'form, .booking, .appointment, .schedule'

CONTACT_FORM_TERMS = ('contact', 'email', 'message')
BOOKING_TERMS = ('book', 'appointment', 'schedule')

MED_SPA_SERVICES = [
    ('Botox', ['botox', 'botulinum toxin', 'anti-wrinkle injection']),
    ('Dermal Fillers', ['filler', 'dermal filler', 'lip filler', 'cheek filler', 'injectable']),
    ('Laser Hair Removal', ['laser hair', 'hair removal', 'laser treatment for hair']),
    ('Chemical Peels', ['chemical peel', 'skin peel', 'facial peel']),
    ('Microdermabrasion', ['microdermabrasion', 'skin resurfacing']),
    ('Microneedling', ['microneedling', 'collagen induction therapy', 'skin needling']),
    ('HydraFacial', ['hydrafacial', 'hydra facial', 'hydradermabrasion']),
    ('CoolSculpting', ['coolsculpting', 'fat freezing', 'cryolipolysis']),
    ('Body Contouring', ['body contouring', 'body sculpting', 'fat reduction']),
    ('Skin Rejuvenation', ['skin rejuvenation', 'skin revitalization', 'anti-aging treatment']),
    ('Laser Skin Resurfacing', ['laser resurfacing', 'skin resurfacing', 'laser treatment skin']),
    ('IPL Therapy', ['ipl', 'intense pulsed light', 'photofacial']),
    ('RF Skin Tightening', ['rf skin', 'radiofrequency', 'skin tightening', 'thermage']),
    ('Vampire Facial', ['vampire facial', 'prp facial', 'platelet-rich plasma']),
    ('Thread Lift', ['thread lift', 'pdo threads', 'non-surgical facelift']),
]

SERVICE_TERMS = [
    'botox', 'filler', 'juvederm', 'restylane', 'dysport', 'xeomin',
    'laser', 'facial', 'hydrafacial', 'chemical peel', 'microdermabrasion',
    'coolsculpt', 'sculpt', 'contour', 'body', 'cellulite', 'fat reduction',
    'skin', 'rejuvenation', 'tightening', 'resurfacing', 'hair removal',
    'micro', 'needling', 'dermabrasion', 'injection', 'wrinkle', 'anti-aging',
    'face', 'lift', 'massage', 'therapy', 'treatment', 'service'
]

DEFAULT_SERVICES = [
    ServiceInfo(name='Botox & Fillers', description='Premium anti-aging injectable treatments',
                price='From $299'),
    ServiceInfo(name='Laser Skin Rejuvenation', description='Advanced laser therapy for youthful skin',
                price='From $199'),
    ServiceInfo(name='HydraFacial', description='Deep cleansing facial treatment', price='From $149'),
]

PRICE_PATTERN = re.compile(r'\$\s*(\d+(?:\.\d{2})?)')
PRICE_PHRASE_PATTERN = re.compile(r'(?:price|cost|starting at)[\s:]*(\$\s*\d+(?:\.\d{2})?)', re.I)
CARD_CLASS_PATTERN = re.compile(r'card|service-item|service-box')


def _describe(element: Tag) -> str:
    classes = element.get('class') or []
    return element.name + ''.join(f'.{c}' for c in classes)


def _text(element: Tag) -> str:
    return re.sub(r'\s+', ' ', element.get_text(' ')).strip()


def classify_structure(soup: BeautifulSoup) -> Dict[str, Inferred]:
    """
    Guess the page's structural features from selectors and visible text.
    Keys match the WebsiteStructure aliases.
    """
    navigation = soup.select(NAVIGATION_SELECTOR)
    footer = soup.select(FOOTER_SELECTOR)
    contact_forms = [form for form in soup.find_all('form')
                     if any(term in form.get_text().lower() for term in CONTACT_FORM_TERMS)]
    booking = [el for el in soup.select(BOOKING_SELECTOR)
               if any(term in el.get_text().lower() for term in BOOKING_TERMS)]

    return {
        'hasNavigation': Inferred(bool(navigation), [_describe(el) for el in navigation[:3]]),
        'hasFooter': Inferred(bool(footer), [_describe(el) for el in footer[:3]]),
        'hasContactForm': Inferred(bool(contact_forms), [_describe(el) for el in contact_forms[:3]]),
        'hasBookingForm': Inferred(bool(booking), [_describe(el) for el in booking[:3]]),
    }


def extract_med_spa_services(soup: BeautifulSoup) -> Inferred:
    """Known-service keyword scan plus service/treatment blocks, de-duplicated by name"""
    services: List[ServiceInfo] = []
    signals: List[str] = []
    body = soup.body or soup
    page_text = body.get_text().lower()
    paragraphs = soup.find_all('p')

    for name, keywords in MED_SPA_SERVICES:
        if not any(keyword in page_text for keyword in keywords):
            continue
        signals.append(f'keyword:{name}')
        description = None
        for paragraph in paragraphs:
            text = paragraph.get_text().lower()
            if any(keyword in text for keyword in keywords):
                description = paragraph.get_text().strip() or None
                break
        lowered = name.lower()
        if not any(s.name.lower() == lowered or lowered in s.name.lower() for s in services):
            services.append(ServiceInfo(name=name, description=description))

    for element in soup.select('.service, .treatment, [class*="service"], [class*="treatment"]'):
        title_el = element.select_one('h3, h4, .title, .heading, strong')
        title = title_el.get_text().strip() if title_el else ''
        if not title:
            continue
        desc_el = element.select_one('p, .description')
        desc = desc_el.get_text().strip() if desc_el else ''
        signals.append(f'block:{_describe(element)}')
        services.append(ServiceInfo(name=title, description=desc or None))

    unique: List[ServiceInfo] = []
    seen = set()
    for service in services:
        key = service.name.lower()
        if key not in seen:
            seen.add(key)
            unique.append(service)
    return Inferred(unique, signals)


def is_med_spa_service(text: str) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(term in lowered for term in SERVICE_TERMS)


def _card_price(text: str) -> str:
    match = PRICE_PATTERN.search(text) or PRICE_PHRASE_PATTERN.search(text)
    if not match:
        return 'Contact for pricing'
    return f"From ${match.group(1).replace('$', '').strip()}"


def _services_from_cards(soup: BeautifulSoup) -> List[ServiceInfo]:
    services = []
    for index, card in enumerate(soup.find_all('div', class_=CARD_CLASS_PATTERN)):
        heading = card.find(['h2', 'h3', 'h4']) or card.find(['strong', 'b'])
        name = _text(heading) if heading else f'Service {index + 1}'
        if not is_med_spa_service(name):
            continue
        paragraph = card.find('p')
        description = _text(paragraph) if paragraph else 'Premium treatment with proven results'
        services.append(ServiceInfo(name=name, description=description, price=_card_price(card.get_text())))
    return services


def _services_from_lists(soup: BeautifulSoup) -> List[ServiceInfo]:
    return [
        ServiceInfo(name=_text(item), description='Professional treatment with proven results',
                    price='Contact for pricing')
        for item in soup.select('ul li')
        if is_med_spa_service(_text(item))
    ]


def _services_from_tables(soup: BeautifulSoup) -> List[ServiceInfo]:
    services = []
    for row in soup.select('table tr'):
        cells = row.find_all('td')
        if len(cells) < 2:
            continue
        name = _text(cells[0])
        if not is_med_spa_service(name):
            continue
        price_cell = _text(cells[1])
        services.append(ServiceInfo(name=name, description='Professional treatment with excellent results',
                                    price=price_cell if '$' in price_cell else 'Contact for pricing'))
    return services


def _services_from_keywords(page_text: str) -> List[ServiceInfo]:
    text = page_text.lower()
    services = []
    if 'botox' in text:
        services.append(ServiceInfo(name='Botox Treatments',
                                    description='Premium Botox treatments for wrinkle reduction',
                                    price='From $299'))
    if 'filler' in text or 'juvederm' in text:
        services.append(ServiceInfo(name='Dermal Fillers',
                                    description='Restore volume and youthfulness with premium fillers',
                                    price='From $399'))
    if 'laser' in text:
        services.append(ServiceInfo(name='Laser Treatments',
                                    description='Advanced laser therapy for skin rejuvenation',
                                    price='From $199'))
    if 'facial' in text:
        services.append(ServiceInfo(name='HydraFacial', description='Deep cleansing facial for radiant skin',
                                    price='From $149'))
    if 'body' in text and any(term in text for term in ('sculpting', 'contouring', 'coolsculpt')):
        services.append(ServiceInfo(name='Body Contouring',
                                    description='Non-invasive fat reduction and body sculpting',
                                    price='From $399'))
    return services


def extract_services_for_builder(soup: BeautifulSoup) -> Inferred:
    """
    Service list for the website builder. Tries cards, then lists, then
    tables, then page keywords; always returns at least the default set.
    """
    strategies = [
        ('cards', _services_from_cards),
        ('list', _services_from_lists),
        ('table', _services_from_tables),
    ]
    for signal, strategy in strategies:
        services = strategy(soup)
        if services:
            return Inferred(services, [signal])

    services = _services_from_keywords(soup.get_text())
    if services:
        return Inferred(services, ['keywords'])
    return Inferred([s.model_copy() for s in DEFAULT_SERVICES], ['defaults'])
