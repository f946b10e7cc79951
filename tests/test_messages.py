from allyhub.core.metrics import metrics
from allyhub.services.messages import check_messages


def test_only_unseen_ids_are_returned(run_db):
    async def scenario(session):
        first = await check_messages(session, [11, 12, 13])
        second = await check_messages(session, [13, 14, 11, 15])
        return first, second

    first, second = run_db(scenario)
    assert first == [11, 12, 13]
    assert second == [14, 15]
    assert metrics.event_count("ingest.messages.new") == 5


def test_duplicates_within_a_batch_count_once(run_db):
    async def scenario(session):
        return await check_messages(session, [7, 7, 8, 7])

    assert run_db(scenario) == [7, 8]


def test_empty_batch(run_db):
    async def scenario(session):
        return await check_messages(session, [])

    assert run_db(scenario) == []
