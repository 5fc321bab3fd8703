"""
SEO scoring, ranking and recommendations

The competitive score is this system's own metric (60% PageSpeed
performance, 40% PageSpeed SEO), not an official Google ranking signal.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from .models import CompetitorWithSEO, PageSpeedResult, SEOAnalysisResult

logger = logging.getLogger(__name__)

PERFORMANCE_WEIGHT = 0.6
SEO_WEIGHT = 0.4

CRITICAL_PERFORMANCE_THRESHOLD = 50
AVERAGE_PERFORMANCE_THRESHOLD = 80
SEO_SCORE_THRESHOLD = 80
TOP_POSITIONS = 3
LCP_THRESHOLD_MS = 2500

RECOMMEND_ADD_WEBSITE = "Add a website to your Google Business Profile to compete effectively"
RECOMMEND_FIX_ACCESSIBILITY = "Fix website accessibility issues to enable proper SEO analysis"
RECOMMEND_CRITICAL_SPEED = ("Critical: Improve website loading speed - your performance score "
                            "is significantly below average")
RECOMMEND_AVERAGE_SPEED = "Average: Website performance is average, consider improvements."
RECOMMEND_ONPAGE_SEO = "Improve on-page SEO elements (meta tags, headings, structured data)"
RECOMMEND_TECHNICAL_SEO = "Focus on technical SEO improvements to outrank local competitors"
RECOMMEND_LCP = "Optimize largest contentful paint (reduce image sizes, improve hosting)"

AESTHETIC_NAME_TERMS = ('med spa', 'medical spa', 'aesthetic')


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (builtin round() is banker's rounding)"""
    return int(math.floor(value + 0.5))


def calculate_overall_seo_score(pagespeed: PageSpeedResult) -> int:
    performance = pagespeed.performance_score or 0
    seo = pagespeed.seo_score or 0
    return round_half_up(performance * PERFORMANCE_WEIGHT + seo * SEO_WEIGHT)


def _average(values: List[int]) -> int:
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def calculate_seo_rankings(competitors: List[CompetitorWithSEO],
                           selected_pagespeed: Optional[PageSpeedResult] = None) -> SEOAnalysisResult:
    """
    Rank competitors that have usable PageSpeed data and place the target
    among them. A competitor must strictly beat the target's score to
    outrank it.
    """
    ranked = [
        competitor.model_copy(update={'seo_rank': calculate_overall_seo_score(competitor.pagespeed_data)})
        for competitor in competitors
        if competitor.pagespeed_data is not None and competitor.pagespeed_data.is_usable
    ]
    ranked.sort(key=lambda c: c.seo_rank or 0, reverse=True)

    your_score = calculate_overall_seo_score(selected_pagespeed) if selected_pagespeed else 0
    your_position = sum(1 for c in ranked if (c.seo_rank or 0) > your_score) + 1

    performance_scores = [c.pagespeed_data.performance_score for c in ranked
                          if c.pagespeed_data.performance_score is not None]
    seo_scores = [c.pagespeed_data.seo_score for c in ranked
                  if c.pagespeed_data.seo_score is not None]

    logger.info(f"📊 Ranked {len(ranked)}/{len(competitors)} competitors, your score {your_score}, "
                f"position #{your_position}")

    return SEOAnalysisResult(
        competitors=ranked,
        your_position=your_position,
        average_performance_score=_average(performance_scores),
        average_seo_score=_average(seo_scores),
        top_performer=ranked[0] if ranked else None,
    )


def generate_seo_recommendations(analysis: SEOAnalysisResult,
                                 selected_pagespeed: Optional[PageSpeedResult] = None) -> List[str]:
    """Fixed decision table; checks append independently in this order"""
    if selected_pagespeed is None:
        return [RECOMMEND_ADD_WEBSITE]

    if selected_pagespeed.error:
        return [RECOMMEND_FIX_ACCESSIBILITY]

    recommendations = []
    performance = selected_pagespeed.performance_score or 0
    seo = selected_pagespeed.seo_score or 0

    if performance < CRITICAL_PERFORMANCE_THRESHOLD:
        recommendations.append(RECOMMEND_CRITICAL_SPEED)
    elif performance < AVERAGE_PERFORMANCE_THRESHOLD:
        recommendations.append(RECOMMEND_AVERAGE_SPEED)

    if seo < SEO_SCORE_THRESHOLD:
        recommendations.append(RECOMMEND_ONPAGE_SEO)

    if analysis.your_position > TOP_POSITIONS:
        recommendations.append(RECOMMEND_TECHNICAL_SEO)

    lcp = selected_pagespeed.largest_contentful_paint
    if lcp and lcp > LCP_THRESHOLD_MS:
        recommendations.append(RECOMMEND_LCP)

    return recommendations


def calculate_competitive_score(competitor: Dict[str, Any], selected: Dict[str, Any]) -> int:
    """
    Rating-based score used by the competitor overview:
    rating 40%, review volume 30%, website 20%, aesthetic name 10%.
    """
    score = 0.0

    rating = competitor.get('rating') or 0
    score += (rating / 5) * 40

    review_count = competitor.get('user_ratings_total') or 0
    selected_reviews = selected.get('user_ratings_total') or 0
    score += min(review_count / max(selected_reviews, 100), 1) * 30

    if competitor.get('website'):
        score += 20

    name = (competitor.get('name') or '').lower()
    if any(term in name for term in AESTHETIC_NAME_TERMS):
        score += 10

    return round_half_up(score)


def determine_position(selected: Dict[str, Any], competitors: List[Dict[str, Any]]) -> int:
    """1-based position of the target by Google rating"""
    selected_rating = selected.get('rating') or 0
    return sum(1 for c in competitors if (c.get('rating') or 0) > selected_rating) + 1
