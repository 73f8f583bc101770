"""
Unit tests for the Redis cache service (Redis client mocked).
"""

from unittest import mock

from redis.exceptions import ConnectionError, WatchError

from delivery_notes.services.cache_service import CacheService


def _service(client):
    service = CacheService()
    service._enabled = True
    service._prefix = 'notes'
    service.client = client
    return service


def _watched_pipeline(client, generation=None):
    """Pipeline used by memoize, reporting the given module generation."""
    pipe = client.pipeline.return_value.__enter__.return_value
    pipe.get.return_value = generation
    return pipe


def test_disabled_cache_always_loads():
    service = CacheService()
    loader = mock.Mock(return_value=3)

    assert service.memoize('notes', 'count:1', loader) == 3
    assert service.memoize('notes', 'count:1', loader) == 3
    assert loader.call_count == 2


def test_memoize_returns_cached_value():
    client = mock.MagicMock()
    client.get.return_value = '7'
    service = _service(client)
    loader = mock.Mock()

    assert service.memoize('notes', 'count:2', loader) == 7
    loader.assert_not_called()
    client.get.assert_called_once_with('notes:notes:count:2')


def test_memoize_caches_falsy_values():
    client = mock.MagicMock()
    client.get.return_value = None
    pipe = _watched_pipeline(client)
    service = _service(client)

    assert service.memoize('notes', 'any:3-4', lambda: False, ttl=30) is False
    pipe.watch.assert_called_once_with('notes:__gen__:notes')
    pipe.setex.assert_called_once_with('notes:notes:any:3-4', 30, 'false')
    pipe.execute.assert_called_once()


def test_memoize_skips_store_when_invalidated_during_load():
    client = mock.MagicMock()
    client.get.return_value = None
    # an invalidation bumped the generation while the loader ran
    pipe = _watched_pipeline(client, generation='1')
    service = _service(client)

    assert service.memoize('notes', 'count:1', lambda: 4, ttl=30) == 4
    pipe.setex.assert_not_called()
    pipe.execute.assert_not_called()


def test_memoize_skips_store_when_invalidated_during_store():
    client = mock.MagicMock()
    client.get.return_value = None
    pipe = _watched_pipeline(client)
    pipe.execute.side_effect = WatchError('generation changed')
    service = _service(client)

    assert service.memoize('notes', 'count:1', lambda: 4, ttl=30) == 4


def test_invalidate_module_bumps_generation_then_deletes_keys():
    client = mock.MagicMock()
    client.scan.return_value = (0, ['notes:notes:count:1', 'notes:notes:any:3-4'])
    pipeline = client.pipeline.return_value
    service = _service(client)

    assert service.invalidate_module('notes') == 2
    client.incr.assert_called_once_with('notes:__gen__:notes')
    client.scan.assert_called_once_with(0, match='notes:notes:*', count=100)
    assert pipeline.delete.call_count == 2
    pipeline.execute.assert_called_once()

    call_names = [name for name, _, _ in client.mock_calls if name in ('incr', 'scan')]
    assert call_names == ['incr', 'scan']


def test_unreachable_redis_degrades_to_loader():
    client = mock.MagicMock()
    client.ping.side_effect = ConnectionError('down')
    service = _service(client)

    assert service.is_available() is False
    assert service.memoize('notes', 'count:1', lambda: 5) == 5
    client.get.assert_not_called()
    client.pipeline.assert_not_called()
