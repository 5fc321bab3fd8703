class SEOAnalysisError(Exception):
    """Base class for scanner errors surfaced to API callers"""


class ConfigurationError(SEOAnalysisError):
    """A required API key or setting is missing"""


class PlacesAPIError(SEOAnalysisError):
    """Google Places returned a non-2xx response or a failing status"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class WebsiteFetchError(SEOAnalysisError):
    """The business website answered with a non-2xx status"""


class AIServiceError(SEOAnalysisError):
    """The LLM call failed or produced no content"""
