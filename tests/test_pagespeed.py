import unittest
import sys
import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from seo_analysis.exceptions import ConfigurationError
from seo_analysis.models import PageSpeedResult
from seo_analysis.pagespeed import PAGESPEED_API_URL, TIMEOUT_ERROR, PageSpeedAnalyzer, normalize_url


def fake_response(status=200, payload=None):
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    return response


def fake_session(response=None, error=None):
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response, side_effect=error)
    context.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.get = MagicMock(return_value=context)
    return session


LIGHTHOUSE_PAYLOAD = {
    'loadingExperience': {'overall_category': 'AVERAGE'},
    'lighthouseResult': {
        'categories': {
            'performance': {'score': 0.87},
            'seo': {'score': 0.92},
            'accessibility': {'score': 0},
        },
        'audits': {
            'largest-contentful-paint': {'numericValue': 3120.5},
            'cumulative-layout-shift': {'numericValue': 0.12},
            'max-potential-fid': {'numericValue': 180},
        }
    }
}


class TestNormalizeUrl(unittest.TestCase):
    def test_locator_paths_collapse_to_origin(self):
        self.assertEqual(normalize_url('example.com/locations/nyc?utm_source=x'), 'https://example.com')
        self.assertEqual(normalize_url('https://spa.example.com/store-locator'), 'https://spa.example.com')

    def test_utm_and_fragment_removed(self):
        self.assertEqual(normalize_url('https://example.com/?utm_campaign=y#frag'), 'https://example.com/')

    def test_other_parameters_kept(self):
        self.assertEqual(normalize_url('https://example.com/spa?ref=a&utm_medium=b'),
                         'https://example.com/spa?ref=a')

    def test_scheme_and_root_path_added(self):
        self.assertEqual(normalize_url('glowmedspa.com'), 'https://glowmedspa.com/')
        self.assertEqual(normalize_url('http://glowmedspa.com/about'), 'http://glowmedspa.com/about')


class TestParseResponse(unittest.TestCase):
    def test_scores_and_metrics(self):
        result = PageSpeedAnalyzer.parse_response('https://example.com/', LIGHTHOUSE_PAYLOAD)
        self.assertEqual(result.performance_score, 87)
        self.assertEqual(result.seo_score, 92)
        self.assertEqual(result.largest_contentful_paint, 3120.5)
        self.assertEqual(result.cumulative_layout_shift, 0.12)
        self.assertEqual(result.first_input_delay, 180)
        self.assertEqual(result.loading_experience, 'AVERAGE')
        self.assertIsNone(result.error)

    def test_zero_score_is_kept(self):
        result = PageSpeedAnalyzer.parse_response('https://example.com/', LIGHTHOUSE_PAYLOAD)
        self.assertEqual(result.accessibility_score, 0)
        self.assertIsNone(result.best_practices_score)

    def test_empty_payload(self):
        result = PageSpeedAnalyzer.parse_response('https://example.com/', {})
        self.assertIsNone(result.performance_score)
        self.assertIsNone(result.largest_contentful_paint)


class TestAnalyzeFast(unittest.IsolatedAsyncioTestCase):
    def test_missing_key(self):
        with self.assertRaises(ConfigurationError):
            PageSpeedAnalyzer('', MagicMock())

    async def test_success(self):
        session = fake_session(fake_response(payload=LIGHTHOUSE_PAYLOAD))
        analyzer = PageSpeedAnalyzer('key', session)
        result = await analyzer.analyze_fast('glowmedspa.com/?utm_source=google')

        self.assertEqual(result.url, 'https://glowmedspa.com/')
        self.assertEqual(result.performance_score, 87)

        args, kwargs = session.get.call_args
        self.assertEqual(args[0], PAGESPEED_API_URL)
        params = kwargs['params']
        self.assertIn(('strategy', 'mobile'), params)
        self.assertIn(('category', 'performance'), params)
        self.assertIn(('category', 'seo'), params)
        self.assertIn(('url', 'https://glowmedspa.com/'), params)
        self.assertEqual(kwargs['timeout'].total, 60)

    async def test_api_error_is_embedded(self):
        payload = {'error': {'message': 'Lighthouse returned error: NO_FCP'}}
        analyzer = PageSpeedAnalyzer('key', fake_session(fake_response(status=500, payload=payload)))
        result = await analyzer.analyze_fast('https://example.com')
        self.assertEqual(result.error, 'Lighthouse returned error: NO_FCP')
        self.assertIsNone(result.performance_score)

    async def test_timeout_is_embedded(self):
        analyzer = PageSpeedAnalyzer('key', fake_session(error=asyncio.TimeoutError()))
        result = await analyzer.analyze_fast('https://example.com')
        self.assertEqual(result.error, TIMEOUT_ERROR)
        self.assertFalse(result.is_usable)

    async def test_unexpected_failure_is_embedded(self):
        analyzer = PageSpeedAnalyzer('key', fake_session(error=ValueError('bad json')))
        result = await analyzer.analyze_fast('https://example.com')
        self.assertEqual(result.error, 'Analysis failed: bad json')


class TestRetry(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.sleep = AsyncMock()
        self.analyzer = PageSpeedAnalyzer('key', MagicMock(), sleep=self.sleep)
        self.timed_out = PageSpeedResult(url='https://example.com', error=TIMEOUT_ERROR)
        self.success = PageSpeedResult(url='https://example.com/', performance_score=90, seo_score=95)

    async def test_timeout_then_success(self):
        self.analyzer.analyze_fast = AsyncMock(side_effect=[self.timed_out, self.success])
        result = await self.analyzer.analyze_with_retry('https://example.com', max_retries=2)

        self.assertIs(result, self.success)
        self.assertEqual(self.analyzer.analyze_fast.await_count, 2)
        # attempt * 2 seconds before attempt 2
        self.sleep.assert_awaited_once_with(2)

    async def test_other_errors_are_not_retried(self):
        failed = PageSpeedResult(url='https://example.com', error='Analysis failed: connection reset')
        self.analyzer.analyze_fast = AsyncMock(return_value=failed)
        result = await self.analyzer.analyze_with_retry('https://example.com', max_retries=2)

        self.assertIs(result, failed)
        self.analyzer.analyze_fast.assert_awaited_once()
        self.sleep.assert_not_awaited()

    async def test_exhausted_retries_return_error_result(self):
        self.analyzer.analyze_fast = AsyncMock(return_value=self.timed_out)
        result = await self.analyzer.analyze_with_retry('https://example.com', max_retries=3)

        self.assertEqual(result.error, TIMEOUT_ERROR)
        self.assertEqual(self.analyzer.analyze_fast.await_count, 3)
        self.assertEqual([c.args[0] for c in self.sleep.await_args_list], [2, 4])


if __name__ == '__main__':
    unittest.main()
