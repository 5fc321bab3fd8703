"""
Data model for the SEO scanner

Places records are kept close to the Google payload (unknown keys are
retained) so they can be echoed back to the client untouched.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LatLng(BaseModel):
    lat: float
    lng: float


class Geometry(BaseModel):
    model_config = ConfigDict(extra='allow')

    location: Optional[LatLng] = None


class PlaceDetails(BaseModel):
    """A Google Places business record"""

    model_config = ConfigDict(extra='allow', populate_by_name=True)

    place_id: Optional[str] = None
    name: str = ''
    formatted_address: Optional[str] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    geometry: Optional[Geometry] = None
    types: Optional[List[str]] = None
    reviews: Optional[List[Dict[str, Any]]] = None
    photos: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def from_places(cls, data: Dict[str, Any]) -> 'PlaceDetails':
        """Build from a raw Places payload, mapping formatted_phone_number to phone"""
        data = dict(data or {})
        if 'formatted_phone_number' in data and not data.get('phone'):
            data['phone'] = data.pop('formatted_phone_number')
        return cls.model_validate(data)

    @property
    def location(self) -> Optional[LatLng]:
        if self.geometry is None:
            return None
        return self.geometry.location


class PageSpeedResult(BaseModel):
    url: str
    performance_score: Optional[int] = None
    seo_score: Optional[int] = None
    accessibility_score: Optional[int] = None
    best_practices_score: Optional[int] = None
    loading_experience: Optional[str] = None
    largest_contentful_paint: Optional[float] = None
    first_input_delay: Optional[float] = None
    cumulative_layout_shift: Optional[float] = None
    error: Optional[str] = None

    @property
    def is_usable(self) -> bool:
        return self.error is None


class ImageInfo(BaseModel):
    src: str
    alt: str = ''


class LinkInfo(BaseModel):
    href: str
    text: str


class SocialLink(BaseModel):
    platform: str
    url: str


class ContactInfo(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None


class Headings(BaseModel):
    h1: List[str] = Field(default_factory=list)
    h2: List[str] = Field(default_factory=list)
    h3: List[str] = Field(default_factory=list)


class WebsiteStructure(BaseModel):
    """Structural flags; every value is a heuristic guess, not verified data"""

    model_config = ConfigDict(populate_by_name=True)

    has_navigation: bool = Field(False, alias='hasNavigation')
    has_footer: bool = Field(False, alias='hasFooter')
    has_contact_form: bool = Field(False, alias='hasContactForm')
    has_booking_form: bool = Field(False, alias='hasBookingForm')


class ServiceInfo(BaseModel):
    name: str
    description: Optional[str] = None
    price: Optional[str] = None


class SEOCheck(BaseModel):
    name: str
    status: str  # passed | failed | warning
    score: int
    description: str
    recommendation: Optional[str] = None


class OnPageSEOAnalysis(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    overall_score: int = Field(0, alias='overallScore')
    total_checks: int = Field(0, alias='totalChecks')
    passed_checks: int = Field(0, alias='passedChecks')
    headlines: List[SEOCheck] = Field(default_factory=list)
    metadata: List[SEOCheck] = Field(default_factory=list)
    technical_seo: List[SEOCheck] = Field(default_factory=list, alias='technicalSEO')


class WebsiteParseResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = ''
    title: Optional[str] = None
    description: Optional[str] = None
    keywords: Optional[str] = None
    headings: Headings = Field(default_factory=Headings)
    images: List[ImageInfo] = Field(default_factory=list)
    links: List[LinkInfo] = Field(default_factory=list)
    social_links: List[SocialLink] = Field(default_factory=list, alias='socialLinks')
    contact_info: ContactInfo = Field(default_factory=ContactInfo, alias='contactInfo')
    structure: WebsiteStructure = Field(default_factory=WebsiteStructure)
    structure_signals: Dict[str, List[str]] = Field(default_factory=dict, alias='structureSignals')
    services: List[ServiceInfo] = Field(default_factory=list)
    seo_analysis: OnPageSEOAnalysis = Field(default_factory=OnPageSEOAnalysis, alias='seoAnalysis')
    error: Optional[str] = None


class CompetitorWithSEO(PlaceDetails):
    distance_miles: Optional[float] = None
    pagespeed_data: Optional[PageSpeedResult] = None
    website_data: Optional[WebsiteParseResult] = None
    seo_rank: Optional[int] = None


class SEOAnalysisResult(BaseModel):
    competitors: List[CompetitorWithSEO] = Field(default_factory=list)
    your_position: int = 1
    average_performance_score: int = 0
    average_seo_score: int = 0
    top_performer: Optional[CompetitorWithSEO] = None


def dump(model: BaseModel) -> Dict[str, Any]:
    """Serialize a model the way the client expects it (camelCase aliases, no nulls)"""
    return model.model_dump(by_alias=True, exclude_none=True)
