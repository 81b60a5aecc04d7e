import asyncio

import pytest

from errors import StorageError
from storage import NEWS_CACHE_KEY, NewsStore


@pytest.mark.asyncio
async def test_key_value_round_trip(tmp_path):
    async with NewsStore(str(tmp_path / "news.db")) as store:
        assert await store.execute('get_value', key=NEWS_CACHE_KEY) is None

        await store.execute('set_value', key=NEWS_CACHE_KEY, value=[{'id': 'a', 'title': 'বাংলা শিরোনাম'}])
        assert await store.execute('get_value', key=NEWS_CACHE_KEY) == [{'id': 'a', 'title': 'বাংলা শিরোনাম'}]

        await store.execute('set_value', key=NEWS_CACHE_KEY, value=[])
        assert await store.execute('get_value', key=NEWS_CACHE_KEY) == []

        assert await store.execute('remove_value', key=NEWS_CACHE_KEY) is True
        assert await store.execute('remove_value', key=NEWS_CACHE_KEY) is False
        assert await store.execute('get_value', key=NEWS_CACHE_KEY) is None


@pytest.mark.asyncio
async def test_values_survive_reopening(tmp_path):
    db_path = str(tmp_path / "news.db")
    async with NewsStore(db_path) as store:
        await store.execute('set_value', key='read_ids', value=['a', 'b'])

    async with NewsStore(db_path) as store:
        assert await store.execute('get_value', key='read_ids') == ['a', 'b']


@pytest.mark.asyncio
async def test_corrupt_value_reads_as_missing(tmp_path):
    async with NewsStore(str(tmp_path / "news.db")) as store:
        store.conn.execute("INSERT INTO kv (key, value, updated_at) VALUES ('broken', '{not json', 0)")
        store.conn.commit()

        assert await store.execute('get_value', key='broken') is None


@pytest.mark.asyncio
async def test_offline_articles_most_recent_first(tmp_path):
    async with NewsStore(str(tmp_path / "news.db")) as store:
        await store.execute('save_offline', article={'id': 'first', 'title': 'one'})
        await store.execute('save_offline', article={'id': 'second', 'title': 'two'})

        saved = await store.execute('get_offline_articles')
        assert [a['id'] for a in saved] == ['second', 'first']
        assert all('saved_at' in a for a in saved)

        assert await store.execute('is_offline_saved', article_id='first') is True
        assert await store.execute('remove_offline', article_id='first') is True
        assert await store.execute('is_offline_saved', article_id='first') is False

        # Saving again replaces rather than duplicates
        await store.execute('save_offline', article={'id': 'second', 'title': 'two again'})
        saved = await store.execute('get_offline_articles')
        assert [a['title'] for a in saved] == ['two again']


@pytest.mark.asyncio
async def test_operation_errors_raise_storage_error(tmp_path):
    async with NewsStore(str(tmp_path / "news.db")) as store:
        with pytest.raises(StorageError) as excinfo:
            await store.execute('drop_everything')
        assert excinfo.value.operation == 'drop_everything'

        with pytest.raises(StorageError):
            await store.execute('save_offline', article={'title': 'no id'})

        with pytest.raises(StorageError):
            await store.execute('_worker')

        # The worker keeps serving after a failure
        assert await store.execute('get_value', key='missing') is None


@pytest.mark.asyncio
async def test_execute_requires_running_store(tmp_path):
    store = NewsStore(str(tmp_path / "news.db"))

    with pytest.raises(StorageError):
        await store.execute('get_value', key='x')


@pytest.mark.asyncio
async def test_unopenable_database_raises_storage_error(tmp_path):
    store = NewsStore(str(tmp_path / "missing-dir" / "news.db"))

    with pytest.raises(StorageError):
        await store.start()
    assert store.running is False


@pytest.mark.asyncio
async def test_failed_operation_leaves_worker_running(tmp_path):
    async with NewsStore(str(tmp_path / "news.db")) as store:
        with pytest.raises(StorageError):
            await store.execute('save_offline', article=None)

        assert not store.worker_task.done()
        await store.execute('set_value', key='after', value=1)
        assert await asyncio.wait_for(store.execute('get_value', key='after'), timeout=3) == 1
