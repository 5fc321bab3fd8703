import unittest
import sys
import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

import api_server
from seo_analysis.exceptions import AIServiceError, PlacesAPIError, WebsiteFetchError
from seo_analysis.heuristics import DEFAULT_SERVICES
from seo_analysis.models import WebsiteParseResult

API_KEYS = {
    'GOOGLE_PLACES_API_KEY': 'places-key',
    'PAGESPEED_INSIGHTS_API_KEY': 'pagespeed-key',
    'OPENAI_API_KEY': 'openai-key',
}

SELECTED = {
    'place_id': 'P1', 'name': 'Glow Med Spa', 'website': 'https://glow.example',
    'geometry': {'location': {'lat': 40.7, 'lng': -74.0}},
}


def fake_session_factory():
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=MagicMock())
    context.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=context)


def scan_result(*args, **kwargs):
    return {
        'selectedMedspa': dict(SELECTED),
        'competitors': [],
        'analysis': {'totalCompetitors': 0, 'yourSEOPosition': 1, 'recommendations': []},
    }


class APITestCase(unittest.TestCase):
    def setUp(self):
        api_server.limiter.enabled = False
        self.client = TestClient(api_server.app)

        env = patch.dict(os.environ, API_KEYS)
        env.start()
        self.addCleanup(env.stop)

        session = patch('api_server.create_session', fake_session_factory())
        session.start()
        self.addCleanup(session.stop)


class TestHealth(APITestCase):
    def test_root(self):
        response = self.client.get('/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'operational')

    def test_healthy_when_keys_configured(self):
        data = self.client.get('/health').json()
        self.assertEqual(data['status'], 'healthy')
        self.assertTrue(data['checks']['google_places'])
        self.assertIn('cached_analyses', data['metrics'])

    def test_degraded_without_openai_key(self):
        with patch.dict(os.environ, {'OPENAI_API_KEY': ''}):
            data = self.client.get('/health').json()
        self.assertEqual(data['status'], 'degraded')
        self.assertFalse(data['checks']['openai'])


class TestSEOAnalysisEndpoint(APITestCase):
    def test_missing_medspa(self):
        response = self.client.post('/api/seo-analysis', json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'Selected med spa information is required'})

    def test_missing_places_key_fails_before_scan(self):
        with patch.dict(os.environ, {'GOOGLE_PLACES_API_KEY': ''}), \
                patch('api_server.run_seo_analysis', AsyncMock()) as scan:
            response = self.client.post('/api/seo-analysis', json={'selectedMedspa': SELECTED})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()['error'], 'Google Places API key not configured')
        scan.assert_not_awaited()

    def test_missing_pagespeed_key_fails_before_scan(self):
        with patch.dict(os.environ, {'PAGESPEED_INSIGHTS_API_KEY': ''}), \
                patch('api_server.run_seo_analysis', AsyncMock()) as scan:
            response = self.client.post('/api/seo-analysis', json={'selectedMedspa': SELECTED})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'error': 'PageSpeed Insights API key not configured'})
        scan.assert_not_awaited()

    def test_upstream_failure(self):
        failure = PlacesAPIError('Failed to find nearby competitors')
        with patch('api_server.run_seo_analysis', AsyncMock(side_effect=failure)):
            response = self.client.post('/api/seo-analysis', json={'selectedMedspa': SELECTED})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'error': 'Failed to find nearby competitors'})

    def test_unexpected_failure(self):
        with patch('api_server.run_seo_analysis', AsyncMock(side_effect=KeyError('lat'))):
            response = self.client.post('/api/seo-analysis', json={'selectedMedspa': SELECTED})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'error': 'Internal server error'})

    def test_result_is_cached(self):
        with patch('api_server.run_seo_analysis', AsyncMock(side_effect=scan_result)) as scan:
            response = self.client.post('/api/seo-analysis', json={'selectedMedspa': SELECTED})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['selectedMedspa']['name'], 'Glow Med Spa')
        self.assertNotIn('llmReport', data)
        self.assertIsNone(scan.await_args.kwargs['parser'])

        cached = self.client.get(f"/api/seo-analysis/{data['analysisId']}")
        self.assertEqual(cached.status_code, 200)
        self.assertEqual(cached.json()['analysisId'], data['analysisId'])

    def test_unknown_analysis_id(self):
        response = self.client.get('/api/seo-analysis/does-not-exist')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {'error': 'Analysis not found or expired'})

    def test_website_parse_requested(self):
        with patch('api_server.run_seo_analysis', AsyncMock(side_effect=scan_result)) as scan:
            self.client.post('/api/seo-analysis',
                             json={'selectedMedspa': SELECTED, 'include_website_data': True})
        self.assertIsNotNone(scan.await_args.kwargs['parser'])

    def test_llm_report_failure_does_not_fail_scan(self):
        with patch.dict(os.environ, {'OPENAI_API_KEY': ''}), \
                patch('api_server.run_seo_analysis', AsyncMock(side_effect=scan_result)):
            response = self.client.post('/api/seo-analysis',
                                        json={'selectedMedspa': SELECTED, 'generate_llm_report': True})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['llmReport'], {'error': 'OpenAI API key not configured'})


class TestPlacesEndpoints(APITestCase):
    def test_competitor_analysis_requires_medspa(self):
        response = self.client.post('/api/competitor-analysis', json={'location': 'Austin'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'Medspa information is required'})

    def test_competitor_analysis_search_failure(self):
        failure = PlacesAPIError('Failed to search competitors')
        with patch('api_server.run_competitor_analysis', AsyncMock(side_effect=failure)):
            response = self.client.post('/api/competitor-analysis', json={'medspa': SELECTED})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'error': 'Failed to search competitors'})

    def test_search_requires_string_query(self):
        for body in ({}, {'query': ''}, {'query': 123}):
            response = self.client.post('/api/search-medspas', json=body)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {'error': 'Query is required and must be a string'})

    def test_search(self):
        found = {'results': [{'place_id': 'S1', 'name': 'Glow Aesthetics'}], 'total': 1}
        with patch('api_server.search_medspas', AsyncMock(return_value=found)) as search:
            response = self.client.post('/api/search-medspas', json={
                'query': 'glow', 'location': 'Austin, TX', 'userLocation': {'lat': 30.27, 'lng': -97.74}})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), found)
        args = search.await_args.args
        self.assertEqual(args[:3], ('glow', 'Austin, TX', {'lat': 30.27, 'lng': -97.74}))


class TestWebsiteEndpoints(APITestCase):
    def test_website_parse_requires_url(self):
        response = self.client.post('/api/website-parse', json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'URL is required'})

    def test_website_parse_failure_is_200(self):
        failed = WebsiteParseResult(error='Parsing failed: HTTP 404: Not Found')
        with patch('api_server.parse_website_url', AsyncMock(return_value=failed)) as parse:
            response = self.client.post('/api/website-parse', json={
                'url': 'glow.example', 'businessName': 'Glow Med Spa'})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['error'], 'Parsing failed: HTTP 404: Not Found')
        self.assertEqual(data['url'], '')
        self.assertEqual(data['structure']['hasNavigation'], False)
        self.assertEqual(parse.await_args.kwargs['business_name'], 'Glow Med Spa')

    def test_seo_analyzer_failure_returns_default_services(self):
        failure = WebsiteFetchError('HTTP 500: Internal Server Error')
        with patch('api_server.fetch_html', AsyncMock(side_effect=failure)):
            response = self.client.post('/api/seo-analyzer', json={'url': 'glow.example'})

        self.assertEqual(response.status_code, 500)
        data = response.json()
        self.assertEqual(data['error'], 'Failed to analyze website')
        self.assertEqual(data['details'], 'HTTP 500: Internal Server Error')
        self.assertEqual(len(data['services']), len(DEFAULT_SERVICES))

    def test_seo_analyzer(self):
        html = '<html><head><title>Glow Med Spa</title></head><body><h1>Botox</h1></body></html>'
        with patch('api_server.fetch_html', AsyncMock(return_value=html)) as fetch:
            response = self.client.post('/api/seo-analyzer', json={'url': 'glow.example'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['title'], 'Glow Med Spa')
        self.assertEqual(fetch.await_args.args[1], 'https://glow.example')


class TestAIEndpoints(APITestCase):
    def test_generate_website_requires_prompt(self):
        response = self.client.post('/api/generate-website', json={'medSpaData': {'name': 'Glow'}})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'Prompt is required'})

    def test_generate_website_without_key(self):
        with patch.dict(os.environ, {'OPENAI_API_KEY': ''}):
            response = self.client.post('/api/generate-website', json={'prompt': 'Modern spa page'})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'error': 'OpenAI API key not configured'})

    def test_generate_website(self):
        generated = {'html': '<div/>', 'css': '', 'js': '', 'preview': '<div/>', 'type': 'react'}
        with patch('api_server.AIService') as service_class:
            service_class.return_value.generate_website.return_value = generated
            response = self.client.post('/api/generate-website', json={
                'prompt': 'Modern spa page', 'medSpaData': {'name': 'Glow'}})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), generated)
        service_class.return_value.generate_website.assert_called_once_with('Modern spa page', {'name': 'Glow'})

    def test_generate_website_failure(self):
        with patch('api_server.AIService') as service_class:
            service_class.return_value.generate_website.side_effect = AIServiceError('rate limited')
            response = self.client.post('/api/generate-website', json={'prompt': 'Modern spa page'})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'error': 'Failed to generate website with AI: rate limited'})

    def test_generate_website_malformed_business_data(self):
        response = self.client.post('/api/generate-website', json={
            'prompt': 'Modern spa page', 'medSpaData': {'name': 'Glow', 'photos': ['abc']}})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.headers['content-type'], 'application/json')
        self.assertEqual(response.json(), {'error': 'Internal server error'})

    def test_generate_website_empty_completion_message(self):
        with patch('api_server.AIService') as service_class:
            service_class.return_value.generate_website.side_effect = AIServiceError(
                'No response generated from OpenAI')
            response = self.client.post('/api/generate-website', json={'prompt': 'Modern spa page'})
        self.assertEqual(response.json(),
                         {'error': 'Failed to generate website with AI: No response generated from OpenAI'})

    def test_llm_analysis_malformed_seo_data(self):
        response = self.client.post('/api/llm-seo-analysis', json={'seoData': {'selectedMedspa': 'Glow'}})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'error': 'Internal server error', 'success': False})

    def test_llm_analysis_requires_data(self):
        response = self.client.post('/api/llm-seo-analysis', json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'SEO analysis data is required'})

    def test_llm_analysis_failure_shape(self):
        with patch('api_server.AIService') as service_class:
            service_class.return_value.generate_seo_report.side_effect = AIServiceError('timeout')
            response = self.client.post('/api/llm-seo-analysis', json={'seoData': scan_result()})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'error': 'Analysis failed: timeout', 'success': False})

    def test_llm_analysis(self):
        report = {'content': 'Executive Summary', 'generatedAt': '2024-01-01T00:00:00+00:00',
                  'model': 'gpt-4', 'tokensUsed': 900}
        with patch('api_server.AIService') as service_class:
            service_class.return_value.generate_seo_report.return_value = report
            response = self.client.post('/api/llm-seo-analysis', json={'seoData': scan_result()})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data['success'])
        self.assertEqual(data['report'], report)
        self.assertIn('generatedAt', data)


if __name__ == '__main__':
    unittest.main()
