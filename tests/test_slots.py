import sqlite3
from dataclasses import replace

import pytest
from conftest import FakeAPIError, run, settle

from survey_analytics.app.errors import DataNotSufficient
from survey_analytics.workflows.history import latest_for
from survey_analytics.workflows.slots import AnalysisSession, SlotStatus, slot_status
from survey_analytics.workflows.state import AnalysisMethod, AnalysisStatus


COMP = AnalysisMethod.COMPREHENSIVE
IPA = AnalysisMethod.IMPORTANCE_PERFORMANCE
DEMO = AnalysisMethod.DEMOGRAPHIC
VISION = AnalysisMethod.VISION_ALIGNMENT


def methods_in(survey, method):
    return [r for r in survey.analysis_history if r.method is method]


def test_invoke_without_responses_writes_nothing(repo, survey, dispatcher, fake_client):
    repo.update_survey(survey)
    session = AnalysisSession("s1", repo, dispatcher)

    async def scenario():
        with pytest.raises(DataNotSufficient, match="No responses to analyze"):
            session.invoke(COMP)
        await session.wait_idle()

    run(scenario())

    assert repo.require_survey("s1").analysis_history == ()
    assert fake_client.calls == []


def test_invoke_writes_pending_before_completion(stored, dispatcher, fake_client):
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        gate = fake_client.hold("comprehensive_diagnosis")
        record = session.invoke(COMP)
        assert record.is_pending
        assert slot_status(stored.require_survey("s1"), COMP) is SlotStatus.PENDING
        assert session.view().status is AnalysisStatus.PENDING
        assert not session.view().can_export
        assert not session.view().can_regenerate
        gate.set()
        await session.wait_idle()
        return record

    record = run(scenario())

    stored_record = latest_for(stored.require_survey("s1"), COMP)
    assert stored_record.result_id == record.result_id
    assert stored_record.created_at == record.created_at
    assert stored_record.is_completed
    assert session.view().can_export
    assert session.view().can_regenerate


def test_invoke_is_idempotent_for_completed_record(stored, dispatcher, fake_client):
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        first = session.invoke(DEMO)
        await session.wait_idle()
        again = session.invoke(DEMO)
        await session.wait_idle()
        return first, again

    first, again = run(scenario())

    assert again.result_id == first.result_id
    assert again.is_completed
    assert len(fake_client.calls) == 1
    assert len(methods_in(stored.require_survey("s1"), DEMO)) == 1
    assert session.displayed_id == first.result_id


def test_invoke_does_not_duplicate_pending_request(stored, dispatcher, fake_client):
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        gate = fake_client.hold("demographic_insights")
        first = session.invoke(DEMO)
        second = session.invoke(DEMO)
        gate.set()
        await session.wait_idle()
        return first, second

    first, second = run(scenario())

    assert first.result_id == second.result_id
    assert len(fake_client.calls) == 1


def test_invoke_after_failure_starts_new_request(stored, dispatcher, fake_client):
    fake_client.fail("demographic_insights", FakeAPIError(400))
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        failed = session.invoke(DEMO)
        await session.wait_idle()
        assert latest_for(stored.require_survey("s1"), DEMO).is_failed
        fresh = session.invoke(DEMO)
        await session.wait_idle()
        return failed, fresh

    failed, fresh = run(scenario())

    assert fresh.result_id != failed.result_id
    records = methods_in(stored.require_survey("s1"), DEMO)
    assert [r.result_id for r in records] == [fresh.result_id]
    assert records[0].is_completed


def test_retry_replaces_completed_record(stored, dispatcher, fake_client):
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        done = session.invoke(IPA)
        await session.wait_idle()

        gate = fake_client.hold("ipa_data")
        regenerated = session.retry()
        records = methods_in(stored.require_survey("s1"), IPA)
        assert [r.result_id for r in records] == [regenerated.result_id]
        assert records[0].is_pending
        assert session.displayed_id == regenerated.result_id

        gate.set()
        await session.wait_idle()
        return done, regenerated

    done, regenerated = run(scenario())

    records = methods_in(stored.require_survey("s1"), IPA)
    assert [r.result_id for r in records] == [regenerated.result_id]
    assert records[0].is_completed
    assert regenerated.result_id != done.result_id
    assert len(fake_client.calls) == 2


def test_repeated_requests_leave_one_record_per_method(stored, dispatcher, fake_client):
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        gates = [fake_client.hold("ipa_data") for _ in range(3)]
        first = session.invoke(IPA)
        session.retry(first)
        last = session.retry(first)
        records = methods_in(stored.require_survey("s1"), IPA)
        assert [r.result_id for r in records] == [last.result_id]
        assert stored.require_survey("s1").analysis_history[0].result_id == last.result_id
        for g in gates:
            g.set()
        await session.wait_idle()
        return last

    last = run(scenario())

    records = methods_in(stored.require_survey("s1"), IPA)
    assert [r.result_id for r in records] == [last.result_id]


def test_late_result_of_superseded_request_is_dropped(stored, dispatcher, fake_client):
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        slow = fake_client.hold("comprehensive_diagnosis")
        newer_gate = fake_client.hold("comprehensive_diagnosis")
        r1 = session.invoke(COMP)
        await settle()
        r2 = session.retry(r1)
        await settle()

        # R1 resolves while R2 is still pending.
        slow.set()
        await settle()
        current = latest_for(stored.require_survey("s1"), COMP)
        assert current.result_id == r2.result_id
        assert current.is_pending

        # The session still knows what R1 turned into.
        view = session.select(r1.result_id)
        assert view.detached
        assert view.status is AnalysisStatus.COMPLETED

        newer_gate.set()
        await session.wait_idle()
        return r1, r2

    r1, r2 = run(scenario())

    records = methods_in(stored.require_survey("s1"), COMP)
    assert [r.result_id for r in records] == [r2.result_id]
    assert records[0].is_completed


def test_concurrent_methods_resolve_independently(stored, dispatcher, fake_client):
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        comp_gate = fake_client.hold("comprehensive_diagnosis")
        demo_gate = fake_client.hold("demographic_insights")
        comp = session.invoke(COMP)
        demo = session.invoke(DEMO)
        await settle()
        assert session.in_flight == 2

        comp_gate.set()
        await settle()
        survey = stored.require_survey("s1")
        assert slot_status(survey, COMP) is SlotStatus.COMPLETED
        assert slot_status(survey, DEMO) is SlotStatus.PENDING
        assert latest_for(survey, DEMO).result_id == demo.result_id

        demo_gate.set()
        await session.wait_idle()
        return comp, demo

    comp, demo = run(scenario())

    survey = stored.require_survey("s1")
    assert latest_for(survey, COMP).result_id == comp.result_id
    assert latest_for(survey, DEMO).result_id == demo.result_id
    assert slot_status(survey, COMP) is SlotStatus.COMPLETED
    assert slot_status(survey, DEMO) is SlotStatus.COMPLETED
    assert [r.method for r in survey.analysis_history] == [DEMO, COMP]


def test_vision_without_statement_fails_synchronously(stored, dispatcher, fake_client, university):
    stored.upsert_university(replace(university, vision=None))
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        record = session.invoke(VISION)
        assert session.in_flight == 0
        return record

    record = run(scenario())

    assert record.status is AnalysisStatus.FAILED
    assert "vision" in record.summary.lower()
    assert latest_for(stored.require_survey("s1"), VISION) == record
    assert fake_client.calls == []


def test_vision_with_statement_runs(stored, dispatcher):
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        session.invoke(VISION)
        await session.wait_idle()

    run(scenario())

    assert slot_status(stored.require_survey("s1"), VISION) is SlotStatus.COMPLETED


def test_open_auto_runs_comprehensive_once(stored, dispatcher, fake_client):
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        view = session.open()
        assert view.method is COMP
        assert view.status is AnalysisStatus.PENDING
        session.open()
        await session.wait_idle()
        session.open()

    run(scenario())

    assert len(fake_client.calls) == 1
    assert slot_status(stored.require_survey("s1"), COMP) is SlotStatus.COMPLETED


def test_open_without_responses_stays_empty(repo, survey, dispatcher, fake_client):
    repo.update_survey(survey)
    session = AnalysisSession("s1", repo, dispatcher)

    async def scenario():
        return session.open()

    view = run(scenario())

    assert view.record is None
    assert not view.can_export
    assert fake_client.calls == []


def test_open_with_history_shows_most_recent_record(stored, dispatcher, fake_client):
    first = AnalysisSession("s1", stored, dispatcher)

    async def populate():
        first.invoke(DEMO)
        first.invoke(IPA)
        await first.wait_idle()

    run(populate())
    calls = len(fake_client.calls)

    second = AnalysisSession("s1", stored, dispatcher)

    async def reopen():
        return second.open()

    view = run(reopen())

    assert view.method is IPA
    assert view.status is AnalysisStatus.COMPLETED
    assert len(fake_client.calls) == calls


def test_retry_without_displayed_record_is_rejected(stored, dispatcher):
    session = AnalysisSession("s1", stored, dispatcher)

    with pytest.raises(ValueError):
        session.retry()


def test_slot_status_empty(survey):
    assert slot_status(survey, COMP) is SlotStatus.EMPTY


def test_invoke_outside_event_loop_writes_nothing(stored, dispatcher, fake_client):
    session = AnalysisSession("s1", stored, dispatcher)

    with pytest.raises(RuntimeError):
        session.invoke(COMP)
    with pytest.raises(RuntimeError):
        session.open()

    assert stored.require_survey("s1").analysis_history == ()
    assert fake_client.calls == []

    async def scenario():
        view = session.open()
        assert view.status is AnalysisStatus.PENDING
        await session.wait_idle()

    run(scenario())

    assert slot_status(stored.require_survey("s1"), COMP) is SlotStatus.COMPLETED
    assert len(fake_client.calls) == 1


def test_failed_result_write_resolves_the_slot_locally(stored, dispatcher, fake_client):
    session = AnalysisSession("s1", stored, dispatcher)

    def locked(survey_id):
        raise sqlite3.OperationalError("database is locked")

    async def scenario():
        gate = fake_client.hold("demographic_insights")
        record = session.invoke(DEMO)
        await settle()
        stored.get_survey = locked
        try:
            gate.set()
            await session.wait_idle()
        finally:
            del stored.get_survey
        return record

    record = run(scenario())

    assert latest_for(stored.require_survey("s1"), DEMO).is_pending
    view = session.view()
    assert view.record.result_id == record.result_id
    assert view.status is AnalysisStatus.FAILED
    assert view.detached
    assert "database is locked" in view.record.summary
    assert view.can_regenerate

    async def again():
        fresh = session.invoke(DEMO)
        await session.wait_idle()
        return fresh

    fresh = run(again())

    assert fresh.result_id != record.result_id
    assert latest_for(stored.require_survey("s1"), DEMO).is_completed
    assert len(fake_client.calls) == 2


def test_session_forgets_records_once_stored(stored, dispatcher):
    session = AnalysisSession("s1", stored, dispatcher)

    async def scenario():
        comp = session.invoke(COMP)
        await session.wait_idle()
        demo = session.invoke(DEMO)
        await session.wait_idle()
        return comp, demo

    comp, demo = run(scenario())

    assert set(session._local) == {demo.result_id}

    view = session.select(comp.result_id)

    assert view.status is AnalysisStatus.COMPLETED
    assert not view.detached
    assert session._local == {}
