"""
MedSpa SEO Scanner - Python API Server
FastAPI service behind the MedSpaGPT web app

Features:
- Competitor discovery + PageSpeed SEO ranking
- Website content parsing and on-page SEO audit
- LLM-written SEO reports and generated landing pages
- Rate limiting per IP
- Short-lived result cache and request metrics
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Any, Dict, Optional
from functools import partial
import os
from datetime import datetime
import logging
from dotenv import load_dotenv
import asyncio
from concurrent.futures import ThreadPoolExecutor
import threading
from collections import defaultdict
import time
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

# Load environment variables from .env file
load_dotenv()

# Setup logging FIRST (before importing the analysis package)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

from seo_analysis import __version__
from seo_analysis.ai_service import AIService
from seo_analysis.exceptions import AIServiceError, ConfigurationError, PlacesAPIError
from seo_analysis.google_places import GooglePlacesAPI
from seo_analysis.heuristics import DEFAULT_SERVICES
from seo_analysis.http_session import create_session
from seo_analysis.models import PlaceDetails, dump
from seo_analysis.onpage_audit import analyze_page
from seo_analysis.pagespeed import PageSpeedAnalyzer
from seo_analysis.pipeline import run_competitor_analysis, run_seo_analysis, search_medspas
from seo_analysis.result_cache import ResultCache
from seo_analysis.website_parser import clean_website_url, fetch_html, parse_website_url

app = FastAPI(title="MedSpa SEO Scanner API", version=__version__)

# Rate limiter setup
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS - Allow requests from the web app
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Thread pool for blocking OpenAI calls
# This prevents blocking the asyncio event loop
AI_THREAD_POOL_SIZE = 10
executor = ThreadPoolExecutor(max_workers=AI_THREAD_POOL_SIZE, thread_name_prefix="ai_worker")

# Finished analyses, fetchable by analysisId
result_cache = ResultCache()

# Request metrics
metrics = {
    "total_requests": 0,
    "successful_requests": 0,
    "failed_requests": 0,
    "total_analysis_time": 0.0,
    "avg_analysis_time": 0.0,
    "requests_by_route": defaultdict(int),
    "errors_by_type": defaultdict(int)
}
metrics_lock = threading.Lock()


def update_metrics(event: str, **kwargs):
    """Update request metrics"""
    with metrics_lock:
        if event == "request_started":
            metrics["total_requests"] += 1
            metrics["requests_by_route"][kwargs.get("route", "unknown")] += 1

        elif event == "request_completed":
            metrics["successful_requests"] += 1
            metrics["total_analysis_time"] += kwargs.get("duration", 0)
            metrics["avg_analysis_time"] = metrics["total_analysis_time"] / metrics["successful_requests"]

        elif event == "request_failed":
            metrics["failed_requests"] += 1
            metrics["errors_by_type"][kwargs.get("error_type", "unknown")] += 1


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    """Error body the web client expects: {"error": "..."}"""
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def api_key_status() -> Dict[str, bool]:
    """Which API keys are configured (values are never reported)"""
    return {
        "google_places": bool(os.getenv("GOOGLE_PLACES_API_KEY")),
        "pagespeed_insights": bool(os.getenv("PAGESPEED_INSIGHTS_API_KEY")),
        "openai": bool(os.getenv("OPENAI_API_KEY")),
        "vercel": bool(os.getenv("VERCEL_API_KEY")),
        "public_maps": bool(os.getenv("NEXT_PUBLIC_GOOGLE_MAPS_API_KEY") or
                            os.getenv("NEXT_PUBLIC_GOOGLE_PLACES_API_KEY")),
    }

# ============================================================================

class SEOAnalysisRequest(BaseModel):
    selectedMedspa: Optional[Dict[str, Any]] = None
    generate_llm_report: bool = False
    include_website_data: bool = False

class CompetitorAnalysisRequest(BaseModel):
    medspa: Optional[Dict[str, Any]] = None
    location: Optional[str] = None

class SearchRequest(BaseModel):
    query: Any = None
    location: Optional[str] = None
    userLocation: Optional[Dict[str, float]] = None

class WebsiteParseRequest(BaseModel):
    url: Optional[str] = None
    businessLocation: Optional[str] = None
    businessName: Optional[str] = None

class SEOAnalyzerRequest(BaseModel):
    url: Optional[str] = None

class GenerateWebsiteRequest(BaseModel):
    prompt: Optional[str] = None
    medSpaData: Optional[Dict[str, Any]] = None

class LLMSEOAnalysisRequest(BaseModel):
    seoData: Optional[Dict[str, Any]] = None

# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "service": "MedSpa SEO Scanner API",
        "status": "operational",
        "version": __version__,
        "timestamp": datetime.now().isoformat()
    }

@app.get("/health")
async def health_check():
    """Detailed health check with metrics"""
    checks = api_key_status()
    required = ("google_places", "pagespeed_insights", "openai")

    with metrics_lock:
        current_metrics = {
            "total_requests": metrics["total_requests"],
            "successful_requests": metrics["successful_requests"],
            "failed_requests": metrics["failed_requests"],
            "success_rate": (metrics["successful_requests"] / metrics["total_requests"] * 100) if metrics["total_requests"] > 0 else 0,
            "avg_analysis_time": round(metrics["avg_analysis_time"], 2),
            "requests_by_route": dict(metrics["requests_by_route"]),
            "errors_by_type": dict(metrics["errors_by_type"]),
            "cached_analyses": len(result_cache)
        }

    return {
        "status": "healthy" if all(checks[key] for key in required) else "degraded",
        "checks": checks,
        "metrics": current_metrics,
        "timestamp": datetime.now().isoformat()
    }

@app.post("/api/seo-analysis")
@limiter.limit("10/minute")  # Each scan fans out to Places + PageSpeed
async def seo_analysis(request: Request, body: SEOAnalysisRequest):
    """
    Scan a med spa against its nearby competitors

    Expects request body:
    {
        "selectedMedspa": {"place_id": "...", "name": "...", "geometry": {...}, ...},
        "generate_llm_report": false,
        "include_website_data": false
    }
    """
    logger.info(f"🚀 SEO Analysis API called for: {(body.selectedMedspa or {}).get('name')}")
    if not body.selectedMedspa:
        logger.warning("❌ No selected medspa provided")
        return error_response(400, "Selected med spa information is required")

    update_metrics("request_started", route="seo-analysis")
    start_time = time.time()

    try:
        selected = PlaceDetails.from_places(body.selectedMedspa)
        async with create_session() as session:
            places = GooglePlacesAPI(os.getenv("GOOGLE_PLACES_API_KEY"), session)
            pagespeed = PageSpeedAnalyzer(os.getenv("PAGESPEED_INSIGHTS_API_KEY"), session)
            logger.info("✅ API keys validated")

            parser = partial(parse_website_url, session) if body.include_website_data else None
            result = await run_seo_analysis(selected, places, pagespeed, parser=parser)

        if body.generate_llm_report:
            result["llmReport"] = await _llm_report_or_error(result)

        result["analysisId"] = result_cache.put(result)

    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        update_metrics("request_failed", error_type="configuration")
        return error_response(500, str(e))
    except PlacesAPIError as e:
        logger.error(f"❌ Places API failure: {e}")
        update_metrics("request_failed", error_type="places_api")
        return error_response(500, str(e))
    except Exception:
        logger.exception(f"💥 SEO analysis API error after {time.time() - start_time:.1f}s")
        update_metrics("request_failed", error_type="internal")
        return error_response(500, "Internal server error")

    duration = time.time() - start_time
    update_metrics("request_completed", duration=duration)
    logger.info(f"🎉 SEO Analysis completed successfully in {duration:.1f}s")
    return result

async def _llm_report_or_error(seo_data: Dict[str, Any]) -> Dict[str, Any]:
    """Optional report attached to a scan; its failure must not fail the scan"""
    try:
        service = AIService(os.getenv("OPENAI_API_KEY"))
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, service.generate_seo_report, seo_data)
    except (ConfigurationError, AIServiceError) as e:
        logger.warning(f"⚠️ LLM report skipped: {e}")
        return {"error": str(e)}

@app.get("/api/seo-analysis/{analysis_id}")
async def get_seo_analysis(analysis_id: str):
    """Fetch a previously computed analysis"""
    result = result_cache.get(analysis_id)
    if result is None:
        return error_response(404, "Analysis not found or expired")
    return result

@app.post("/api/competitor-analysis")
@limiter.limit("20/minute")
async def competitor_analysis(request: Request, body: CompetitorAnalysisRequest):
    """Rating-based competitor overview for a med spa"""
    if not body.medspa:
        return error_response(400, "Medspa information is required")

    update_metrics("request_started", route="competitor-analysis")
    start_time = time.time()

    try:
        async with create_session() as session:
            places = GooglePlacesAPI(os.getenv("GOOGLE_PLACES_API_KEY"), session)
            result = await run_competitor_analysis(body.medspa, body.location, places)
    except (ConfigurationError, PlacesAPIError) as e:
        logger.error(f"❌ Competitor analysis failed: {e}")
        update_metrics("request_failed", error_type=type(e).__name__)
        return error_response(500, str(e))
    except Exception:
        logger.exception("💥 Competitor analysis API error")
        update_metrics("request_failed", error_type="internal")
        return error_response(500, "Internal server error")

    update_metrics("request_completed", duration=time.time() - start_time)
    return result

@app.post("/api/search-medspas")
@limiter.limit("30/minute")
async def search(request: Request, body: SearchRequest):
    """Find med spas by free-text query"""
    if not body.query or not isinstance(body.query, str):
        return error_response(400, "Query is required and must be a string")

    update_metrics("request_started", route="search-medspas")
    start_time = time.time()

    try:
        async with create_session() as session:
            places = GooglePlacesAPI(os.getenv("GOOGLE_PLACES_API_KEY"), session)
            result = await search_medspas(body.query, body.location, body.userLocation, places)
    except (ConfigurationError, PlacesAPIError) as e:
        logger.error(f"❌ Search failed: {e}")
        update_metrics("request_failed", error_type=type(e).__name__)
        return error_response(500, str(e))
    except Exception:
        logger.exception("💥 Search API error")
        update_metrics("request_failed", error_type="internal")
        return error_response(500, "Internal server error")

    update_metrics("request_completed", duration=time.time() - start_time)
    return result

@app.post("/api/website-parse")
@limiter.limit("30/minute")
async def website_parse(request: Request, body: WebsiteParseRequest):
    """
    Parse a business website. Parse failures are returned inside the
    result with HTTP 200.
    """
    if not body.url:
        return error_response(400, "URL is required")

    update_metrics("request_started", route="website-parse")
    start_time = time.time()

    async with create_session() as session:
        result = await parse_website_url(session, body.url, business_location=body.businessLocation,
                                         business_name=body.businessName)

    if result.error:
        update_metrics("request_failed", error_type="website_parse")
    else:
        update_metrics("request_completed", duration=time.time() - start_time)
    return dump(result)

@app.post("/api/seo-analyzer")
@limiter.limit("30/minute")
async def seo_analyzer(request: Request, body: SEOAnalyzerRequest):
    """SEO facts, heuristic service list and score for a single page"""
    if not body.url:
        return error_response(400, "URL is required")

    update_metrics("request_started", route="seo-analyzer")
    start_time = time.time()
    logger.info(f"📊 Analyzing website: {body.url}")

    try:
        url = clean_website_url(body.url)
        async with create_session() as session:
            html = await fetch_html(session, url)
        result = analyze_page(html, url)
    except Exception as e:
        logger.error(f"❌ Error analyzing website {body.url}: {e}")
        update_metrics("request_failed", error_type="seo_analyzer")
        return error_response(
            500, "Failed to analyze website",
            details=str(e) or type(e).__name__,
            services=[s.model_dump() for s in DEFAULT_SERVICES],
        )

    update_metrics("request_completed", duration=time.time() - start_time)
    logger.info("✅ SEO analysis completed")
    return result

@app.post("/api/generate-website")
@limiter.limit("5/minute")  # LLM generation is slow and expensive
async def generate_website(request: Request, body: GenerateWebsiteRequest):
    """Generate a replacement landing page for a med spa"""
    if not body.prompt:
        logger.error("❌ No prompt provided")
        return error_response(400, "Prompt is required")

    update_metrics("request_started", route="generate-website")
    start_time = time.time()

    try:
        service = AIService(os.getenv("OPENAI_API_KEY"))
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(executor, service.generate_website, body.prompt, body.medSpaData)
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        update_metrics("request_failed", error_type="configuration")
        return error_response(500, str(e))
    except AIServiceError as e:
        logger.error(f"💥 Website generation error: {e}")
        update_metrics("request_failed", error_type="ai_service")
        return error_response(500, f"Failed to generate website with AI: {e}")
    except Exception:
        logger.exception("💥 Generate website API error")
        update_metrics("request_failed", error_type="internal")
        return error_response(500, "Internal server error")

    duration = time.time() - start_time
    update_metrics("request_completed", duration=duration)
    logger.info(f"✅ Website generation completed in {duration:.1f}s ({result['type']})")
    return result

@app.post("/api/llm-seo-analysis")
@limiter.limit("5/minute")
async def llm_seo_analysis(request: Request, body: LLMSEOAnalysisRequest):
    """Written SEO report for a finished analysis"""
    if not body.seoData:
        return error_response(400, "SEO analysis data is required")

    update_metrics("request_started", route="llm-seo-analysis")
    start_time = time.time()

    try:
        service = AIService(os.getenv("OPENAI_API_KEY"))
        loop = asyncio.get_running_loop()
        report = await loop.run_in_executor(executor, service.generate_seo_report, body.seoData)
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        update_metrics("request_failed", error_type="configuration")
        return error_response(500, str(e))
    except AIServiceError as e:
        logger.error(f"❌ LLM SEO analysis error after {time.time() - start_time:.1f}s: {e}")
        update_metrics("request_failed", error_type="ai_service")
        return error_response(500, f"Analysis failed: {e}", success=False)
    except Exception:
        logger.exception("💥 LLM SEO analysis API error")
        update_metrics("request_failed", error_type="internal")
        return error_response(500, "Internal server error", success=False)

    update_metrics("request_completed", duration=time.time() - start_time)
    return {
        "success": True,
        "report": report,
        "generatedAt": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    workers = int(os.getenv("WORKERS", "1"))  # Result cache is per process

    print("=" * 80)
    print(f"MedSpa SEO Scanner API v{__version__}")
    print(f"API Docs: http://localhost:{port}/docs")
    print(f"Health Check: http://localhost:{port}/health")
    print("=" * 80)
    print("CONFIGURATION:")
    print(f"  • Workers: {workers}")
    print(f"  • AI Thread Pool Workers: {AI_THREAD_POOL_SIZE}")
    print(f"  • Rate Limiting: {'enabled' if RATE_LIMIT_ENABLED else 'disabled'}")
    print(f"  • CORS Origins: {', '.join(CORS_ORIGINS)}")
    for name, configured in api_key_status().items():
        print(f"  • {name}: {'configured' if configured else 'MISSING'}")
    print("=" * 80)

    uvicorn.run(
        "api_server:app",
        host="0.0.0.0",
        port=port,
        workers=workers,
        log_level=LOG_LEVEL.lower(),
        timeout_keep_alive=30,
        limit_concurrency=100
    )
