"""
OpenAI-backed report and website generation

Both calls are blocking and are meant to run in the API server's thread
pool executor.
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from openai import OpenAI

from .exceptions import AIServiceError, ConfigurationError

logger = logging.getLogger(__name__)

OPENAI_REPORT_MODEL = os.getenv('OPENAI_REPORT_MODEL', 'gpt-4')
OPENAI_WEBSITE_MODEL = os.getenv('OPENAI_WEBSITE_MODEL', 'gpt-4-turbo-preview')
OPENAI_TIMEOUT_SECONDS = float(os.getenv('OPENAI_TIMEOUT_SECONDS', '60'))

REPORT_MAX_TOKENS = 2000
WEBSITE_MAX_TOKENS = 4000
MIN_COMPONENT_LENGTH = 100

REPORT_SYSTEM_MESSAGE = (
    "You are an expert SEO consultant specializing in medical spa and healthcare marketing. "
    "You provide detailed, actionable SEO analysis reports with specific recommendations "
    "based on comprehensive data analysis."
)

PHOTO_URL_TEMPLATE = ("https://maps.googleapis.com/maps/api/place/photo?maxwidth=800"
                      "&photo_reference={reference}&key=YOUR_API_KEY")

SECTION_PATTERNS = {
    'component': re.compile(r'REACT_COMPONENT:\s*([\s\S]*?)(?=STYLES:|TYPES:|$)', re.I),
    'styles': re.compile(r'STYLES:\s*([\s\S]*?)(?=REACT_COMPONENT:|TYPES:|$)', re.I),
    'types': re.compile(r'TYPES:\s*([\s\S]*?)(?=REACT_COMPONENT:|STYLES:|$)', re.I),
}

PAGE_IMPORTS = """'use client'

import React, { useState, useEffect } from 'react'
import { motion } from 'framer-motion'
import { Button } from '@/components/ui/button'
import { Card, CardContent, CardDescription, CardHeader, CardTitle } from '@/components/ui/card'
import { Badge } from '@/components/ui/badge'
import { Input } from '@/components/ui/input'
import { Textarea } from '@/components/ui/textarea'
import { Label } from '@/components/ui/label'
import { Separator } from '@/components/ui/separator'
import { Tabs, TabsContent, TabsList, TabsTrigger } from '@/components/ui/tabs'
import { Alert, AlertDescription, AlertTitle } from '@/components/ui/alert'
"""


def _yes_no(value: Any) -> str:
    return 'Yes' if value else 'No'


def _seconds(ms: Optional[float]) -> str:
    return f"{ms / 1000:.2f}s" if ms else 'N/A'


def build_report_prompt(seo_data: Dict[str, Any]) -> str:
    """Summarize a finished SEO analysis for the report model"""
    medspa = seo_data.get('selectedMedspa') or {}
    competitors = seo_data.get('competitors') or []
    analysis = seo_data.get('analysis') or {}
    pagespeed = medspa.get('pagespeed_data') or {}
    website = medspa.get('website_data') or {}

    lines = [
        "You are an expert SEO consultant analyzing a medical spa's digital presence. Generate a "
        "comprehensive, professional SEO analysis report based on the following data:",
        "",
        "**BUSINESS BEING ANALYZED:**",
        f"Business Name: {medspa.get('name')}",
        f"Address: {medspa.get('formatted_address')}",
        f"Google Rating: {medspa.get('rating')}/5 ({medspa.get('user_ratings_total') or 0} reviews)",
        f"Website: {medspa.get('website') or 'No website listed'}",
        f"Phone: {medspa.get('phone') or 'Not available'}",
        "",
        "**CURRENT SEO PERFORMANCE:**",
    ]

    if pagespeed and not pagespeed.get('error'):
        lines += [
            f"Performance Score: {pagespeed.get('performance_score')}/100",
            f"SEO Score: {pagespeed.get('seo_score')}/100",
            f"Accessibility Score: {pagespeed.get('accessibility_score') or 'N/A'}/100",
            f"Best Practices Score: {pagespeed.get('best_practices_score') or 'N/A'}/100",
            f"Loading Experience: {pagespeed.get('loading_experience') or 'Unknown'}",
            f"Largest Contentful Paint: {_seconds(pagespeed.get('largest_contentful_paint'))}",
            f"Cumulative Layout Shift: {pagespeed.get('cumulative_layout_shift') or 'N/A'}",
        ]
    else:
        lines.append('No performance data available (likely no website)')

    lines += ["", "**WEBSITE CONTENT ANALYSIS:**"]
    if website and not website.get('error'):
        headings = website.get('headings') or {}
        contact = website.get('contactInfo') or {}
        structure = website.get('structure') or {}
        lines += [
            f"Page Title: {website.get('title') or 'Missing'}",
            f"Meta Description: {website.get('description') or 'Missing'}",
            f"H1 Headings: {len(headings.get('h1') or [])} found",
            f"H2 Headings: {len(headings.get('h2') or [])} found",
            f"Images: {len(website.get('images') or [])} found",
            f"Internal Links: {len(website.get('links') or [])} found",
            f"Social Media Links: {len(website.get('socialLinks') or [])} found",
            f"Contact Info Found: Email: {_yes_no(contact.get('email'))}, Phone: {_yes_no(contact.get('phone'))}",
            "Website Structure (inferred):",
            f"- Navigation: {_yes_no(structure.get('hasNavigation'))}",
            f"- Footer: {_yes_no(structure.get('hasFooter'))}",
            f"- Contact Form: {_yes_no(structure.get('hasContactForm'))}",
            f"- Booking Form: {_yes_no(structure.get('hasBookingForm'))}",
        ]
    else:
        lines.append('No website content data available')

    total = analysis.get('totalCompetitors', len(competitors))
    lines += [
        "",
        "**COMPETITIVE ANALYSIS:**",
        f"Your Current SEO Position: #{analysis.get('yourSEOPosition')} out of {total} local competitors",
        f"Competitors with Websites: {analysis.get('competitorsWithWebsites')}/{total}",
        f"Average Competitor Performance Score: {analysis.get('averagePerformanceScore')}/100",
        f"Average Competitor SEO Score: {analysis.get('averageSEOScore')}/100",
        "",
        "**TOP COMPETITORS ANALYSIS:**",
    ]

    scored = [c for c in competitors
              if c.get('website') and c.get('pagespeed_data') and not c['pagespeed_data'].get('error')]
    for index, comp in enumerate(scored[:5], start=1):
        comp_pagespeed = comp['pagespeed_data']
        lines += [
            f"{index}. {comp.get('name')}",
            f"   - Distance: {comp.get('distance_miles')} miles away",
            f"   - Google Rating: {comp.get('rating')}/5 ({comp.get('user_ratings_total') or 0} reviews)",
            f"   - Performance Score: {comp_pagespeed.get('performance_score')}/100",
            f"   - SEO Score: {comp_pagespeed.get('seo_score')}/100",
            f"   - Overall SEO Rank: {comp.get('seo_rank')}",
            f"   - Website: {comp.get('website')}",
        ]

    recommendations = analysis.get('recommendations') or []
    lines += ["", "**CURRENT RECOMMENDATIONS:**"]
    lines += [f"- {rec}" for rec in recommendations] or ['No specific recommendations generated']

    lines += [
        "",
        "**REPORT REQUIREMENTS:**",
        "Generate a comprehensive, professional SEO analysis report with the following sections:",
        "1. **Executive Summary** (2-3 sentences)",
        "2. **Current Digital Position** (strengths and weaknesses)",
        "3. **Competitive Landscape Analysis** (how you compare to competitors)",
        "4. **Technical SEO Audit** (performance issues and opportunities)",
        "5. **Content & User Experience Analysis** (if website exists)",
        "6. **Priority Action Items** (specific, actionable recommendations ranked by impact)",
        "7. **Expected Impact** (potential improvements from implementing recommendations)",
        "",
        "Use a professional but conversational tone with specific numbers from the data above. "
        "Format the response as clean, structured text with clear headings and bullet points.",
    ]
    return '\n'.join(lines)


def build_website_system_prompt(med_spa_data: Optional[Dict[str, Any]]) -> str:
    data = med_spa_data or {}
    name = data.get('name') or 'Medical Spa'

    requirements = [
        f"- Create a landing page for: {name}",
        "- Use Next.js 13+ with TypeScript",
        "- Use SHADCN/UI components (Button, Card, Badge, Input, Textarea, etc.)",
        "- Use Tailwind CSS for styling",
        "- Make it responsive and professional",
        "- Include hero section, services, testimonials, contact form",
        f'- Use the business name "{name}" throughout',
    ]
    if data.get('formatted_address'):
        requirements.append(f"- Include address: {data['formatted_address']}")
    if data.get('phone'):
        requirements.append(f"- Include phone: {data['phone']}")
    if data.get('rating'):
        requirements.append(f"- Reference {data['rating']} star rating")

    photos = [p for p in (data.get('photos') or []) if p.get('photo_reference')]
    image_context = ''
    if photos:
        image_lines = [
            f"{i}. {p['photo_reference']} - Use this URL: "
            f"{PHOTO_URL_TEMPLATE.format(reference=p['photo_reference'])}"
            for i, p in enumerate(photos, start=1)
        ]
        image_context = ("AVAILABLE BUSINESS IMAGES TO USE:\n" + '\n'.join(image_lines) +
                         "\n\nIMPORTANT: Use these REAL business images instead of placeholders.")

    return f"""You are a React developer. Create a complete landing page React component.

CRITICAL: You MUST respond EXACTLY in this format:

REACT_COMPONENT:
[Complete React component code here]

STYLES:
[Any additional CSS styles if needed]

TYPES:
[TypeScript interfaces if needed]

DO NOT include any other text, explanations, or markdown.

Requirements:
{chr(10).join(requirements)}

{image_context}

Generate a complete, functional React component now:"""


def clean_code_response(code: str) -> str:
    """Strip markdown code fences"""
    code = re.sub(r'^```[\w]*\n', '', code)
    code = re.sub(r'\n```$', '', code)
    code = re.sub(r'^```', '', code)
    code = re.sub(r'```$', '', code)
    return code.strip()


def parse_website_sections(response: str) -> Dict[str, str]:
    sections = {}
    for key, pattern in SECTION_PATTERNS.items():
        match = pattern.search(response)
        sections[key] = match.group(1).strip() if match else ''

    if not SECTION_PATTERNS['component'].search(response):
        logger.warning('⚠️ No REACT_COMPONENT section found, using entire response as component')
        sections['component'] = clean_code_response(response)
    return sections


def generate_fallback_website(med_spa_data: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    """Static landing page used when generation produces nothing usable"""
    data = med_spa_data or {}
    business_name = data.get('name') or 'Premium Medical Spa'
    address = data.get('formatted_address') or 'Your Location'
    phone = data.get('phone') or '(555) 123-4567'
    rating = data.get('rating') or 4.8

    html = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{business_name}</title>
    <script src="https://cdn.tailwindcss.com"></script>
</head>
<body class="bg-white">
    <header class="bg-white shadow-sm border-b border-gray-200">
        <div class="max-w-7xl mx-auto px-4 py-6 flex justify-between items-center">
            <h1 class="text-2xl font-bold text-gray-900">{business_name}</h1>
            <nav class="hidden md:flex space-x-8">
                <a href="#services" class="text-gray-500 hover:text-gray-900">Services</a>
                <a href="#about" class="text-gray-500 hover:text-gray-900">About</a>
                <a href="#contact" class="text-gray-500 hover:text-gray-900">Contact</a>
            </nav>
            <a href="#contact" class="bg-blue-600 text-white px-4 py-2 rounded">Book Consultation</a>
        </div>
    </header>
    <section class="bg-gradient-to-r from-blue-50 to-indigo-100 py-20 text-center">
        <h2 class="text-4xl font-extrabold text-gray-900">Reveal Your Natural Beauty</h2>
        <p class="mt-4 text-xl text-gray-600">Rated {rating} stars by our clients</p>
    </section>
    <section id="services" class="py-16 max-w-7xl mx-auto px-4 grid md:grid-cols-3 gap-8">
        <div class="p-6 rounded shadow"><h3 class="font-bold">Botox &amp; Fillers</h3>
            <p class="text-gray-600">Premium anti-aging injectable treatments</p></div>
        <div class="p-6 rounded shadow"><h3 class="font-bold">Laser Skin Rejuvenation</h3>
            <p class="text-gray-600">Advanced laser therapy for youthful skin</p></div>
        <div class="p-6 rounded shadow"><h3 class="font-bold">HydraFacial</h3>
            <p class="text-gray-600">Deep cleansing facial treatment</p></div>
    </section>
    <footer id="contact" class="bg-gray-900 text-white py-8 text-center">
        <h3 class="text-xl font-bold">{business_name}</h3>
        <p class="mt-2 text-gray-400">Premium Medical Spa Services</p>
        <p class="mt-2 text-gray-400">{address}</p>
        <p class="text-gray-400">{phone}</p>
    </footer>
</body>
</html>"""

    return {'html': html, 'css': '', 'js': '', 'preview': html, 'type': 'html'}


class AIService:
    """Thin wrapper over the OpenAI chat completions API"""

    def __init__(self, api_key: Optional[str] = None, client: Optional[OpenAI] = None,
                 report_model: str = OPENAI_REPORT_MODEL,
                 website_model: str = OPENAI_WEBSITE_MODEL,
                 timeout: float = OPENAI_TIMEOUT_SECONDS):
        if client is None:
            if not api_key:
                raise ConfigurationError('OpenAI API key not configured')
            client = OpenAI(api_key=api_key, timeout=timeout)
        self.client = client
        self.report_model = report_model
        self.website_model = website_model

    def _complete(self, model: str, messages: List[Dict[str, str]], max_tokens: int,
                  temperature: float = 0.7):
        try:
            return self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as e:
            logger.error(f"❌ OpenAI API error: {e}")
            raise AIServiceError(str(e)) from e

    def generate_seo_report(self, seo_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Ask the report model for a written SEO analysis.

        Returns:
            ``{content, generatedAt, model, tokensUsed}``
        """
        medspa = seo_data.get('selectedMedspa') or {}
        logger.info(f"🤖 Sending SEO data for {medspa.get('name')} to OpenAI for analysis...")

        completion = self._complete(self.report_model, [
            {'role': 'system', 'content': REPORT_SYSTEM_MESSAGE},
            {'role': 'user', 'content': build_report_prompt(seo_data)},
        ], max_tokens=REPORT_MAX_TOKENS)

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise AIServiceError('No report generated by OpenAI')

        usage = getattr(completion, 'usage', None)
        logger.info(f"✅ LLM analysis report generated ({len(content)} characters)")
        return {
            'content': content,
            'generatedAt': datetime.now(timezone.utc).isoformat(),
            'model': self.report_model,
            'tokensUsed': getattr(usage, 'total_tokens', 0) or 0,
        }

    def generate_website(self, prompt: str, med_spa_data: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
        """Generate a landing page component, falling back to a static page"""
        logger.info(f"🎨 Generating website for {(med_spa_data or {}).get('name', 'Medical Spa')}")

        completion = self._complete(self.website_model, [
            {'role': 'system', 'content': build_website_system_prompt(med_spa_data)},
            {'role': 'user', 'content': prompt},
        ], max_tokens=WEBSITE_MAX_TOKENS)

        response = completion.choices[0].message.content if completion.choices else None
        if not response:
            raise AIServiceError('No response generated from OpenAI')

        sections = parse_website_sections(response)
        if len(sections['component']) < MIN_COMPONENT_LENGTH:
            logger.warning('⚠️ Component too short or missing, generating fallback')
            return generate_fallback_website(med_spa_data)

        code = f"{PAGE_IMPORTS}\n{sections['types']}\n\n{sections['component']}\n\nexport default MedSpaLandingPage"
        return {'html': code, 'css': sections['styles'], 'js': '', 'preview': code, 'type': 'react'}
