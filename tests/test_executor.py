"""Tests for document generation execution."""

from datetime import date, datetime

import pytest

from care_docs.schemas import MonitoringScheduleSchema, ScheduleAction
from care_docs.services.executor import ScheduleExecutor
from care_docs.services.schedule_checker import (
    check_document_schedules,
    ensure_client_schedules,
    sync_schedule_statuses,
)

NOW = datetime(2025, 2, 20, 10, 0)


@pytest.fixture
def executor(repository, generator) -> ScheduleExecutor:
    return ScheduleExecutor(repository, generator, clock=lambda: NOW)


def _action(repository, client, doc_type: str, action_type: str = "generate_plan") -> ScheduleAction:
    schedule = repository.get_schedule(client.id, doc_type)
    return ScheduleAction(
        type=action_type,
        client_id=client.id,
        client_name=client.name,
        doc_type=doc_type,
        schedule=schedule,
        due_date=NOW.date(),
        days_until_due=0,
    )


def _overdue_plan_actions(repository, clients, today):
    schedules = ensure_client_schedules(repository, clients)
    result = check_document_schedules(schedules, clients, today)
    sync_schedule_statuses(repository, result)
    return [a for a in result.actions if a.doc_type == "care_plan"]


def test_first_plan_issuance_generates_plan_and_procedure(repository, generator, executor, add_client):
    client = add_client(contract_start=date(2025, 3, 1))
    ensure_client_schedules(repository, [client])
    progress = []

    result = executor.execute_schedule_action(
        _action(repository, client, "care_plan"), client, on_progress=progress.append, force=True
    )

    assert result.success is True
    assert [c[0] for c in generator.calls] == ["care_plan", "tejunsho"]
    assert progress[-1] == "계획서·수순서 생성 완료"

    plan = repository.get_schedule(client.id, "care_plan")
    procedure = repository.get_schedule(client.id, "tejunsho")
    monitoring = repository.get_schedule(client.id, "monitoring")

    assert plan.status == "active"
    assert plan.last_generated_at == NOW
    assert plan.last_document_id == "care_plan-1"
    assert plan.plan_creation_date == date(2025, 2, 20)
    assert plan.next_due_date == date(2025, 8, 20)
    assert plan.alert_date == date(2025, 7, 21)
    assert plan.expiry_date == date(2025, 9, 3)
    assert plan.period_end == date(2025, 8, 20)

    assert procedure.generation_batch_id == plan.generation_batch_id is not None
    assert procedure.linked_plan_schedule_id == plan.id
    assert procedure.last_file_url.endswith("/tejunsho.pdf")

    assert monitoring.period_start == date(2025, 2, 20)
    assert monitoring.next_due_date == date(2025, 8, 20)
    assert monitoring.status == "active"

    assert [v.care_client_id for v in repository.load_validations()] == [client.id]


def test_context_carries_office_and_monthly_records(repository, generator, executor, add_client, add_helper, add_billing):
    client = add_client()
    other = add_client(name="佐藤 一郎")
    add_helper("田中", date(2024, 1, 1))
    add_billing(client, "田中", date(2025, 2, 3))
    add_billing(other, "田中", date(2025, 2, 4))
    add_billing(client, "田中", date(2025, 1, 30))
    ensure_client_schedules(repository, [client])

    executor.execute_schedule_action(_action(repository, client, "tejunsho"), client, render_target="pdf", force=True)

    context = generator.calls[0][2]
    assert context["render_target"] == "pdf"
    assert context["office_info"]["name"]
    assert [h["name"] for h in context["helpers"]] == ["田中"]
    assert [r["service_date"] for r in context["billing_records"]] == ["2025-02-03"]


def test_failed_generation_reverts_status_and_batch_continues(repository, generator, executor, add_client):
    failing = add_client(name="失敗 太郎", contract_start=date(2025, 1, 1))
    healthy = add_client(name="成功 花子", contract_start=date(2025, 1, 1))
    generator.fail_client_ids.add(failing.id)

    actions = _overdue_plan_actions(repository, [failing, healthy], NOW.date())
    assert [a.client_id for a in actions] == [failing.id, healthy.id]
    assert repository.get_schedule(failing.id, "care_plan").status == "overdue"

    result = executor.execute_bulk(actions, [failing, healthy])

    assert result.success_count == 1
    assert result.error_count == 1
    assert result.skipped_count == 0
    assert result.results[0].success is False
    assert result.results[0].error
    assert repository.get_schedule(failing.id, "care_plan").status == "overdue"
    assert repository.get_schedule(failing.id, "tejunsho").last_generated_at is None
    assert repository.get_schedule(healthy.id, "care_plan").status == "active"


def test_bulk_skips_actions_for_unknown_clients(repository, executor, add_client):
    client = add_client(contract_start=date(2025, 1, 1))
    actions = _overdue_plan_actions(repository, [client], NOW.date())

    result = executor.execute_bulk(actions, [])

    assert result.skipped_count == 1
    assert result.results == []


def test_execution_on_generating_schedule_is_conflict(repository, generator, executor, add_client):
    client = add_client()
    ensure_client_schedules(repository, [client])
    plan = repository.get_schedule(client.id, "care_plan")
    assert repository.update_schedule_status(plan, "generating")

    result = executor.execute_schedule_action(_action(repository, client, "care_plan"), client)

    assert result.success is False
    assert result.conflict is True
    assert generator.calls == []
    assert repository.get_schedule(client.id, "care_plan").status == "generating"


def test_plan_batch_conflicts_when_procedure_is_generating(repository, generator, executor, add_client):
    client = add_client()
    ensure_client_schedules(repository, [client])
    procedure = repository.get_schedule(client.id, "tejunsho")
    assert repository.update_schedule_status(procedure, "generating")

    result = executor.execute_schedule_action(_action(repository, client, "care_plan"), client, force=True)

    assert result.conflict is True
    assert generator.calls == []
    assert repository.get_schedule(client.id, "care_plan").status == "pending"


def test_plan_batch_does_not_overwrite_procedure_locked_during_generation(
    repository, generator, executor, add_client
):
    client = add_client()
    ensure_client_schedules(repository, [client])
    generate = generator.generate

    def generate_while_procedure_is_taken(doc_type, target, context):
        if doc_type == "care_plan":
            # 다른 실행이 생성 호출 도중 수순서를 잠금
            procedure = repository.get_schedule(client.id, "tejunsho")
            assert repository.update_schedule_status(procedure, "generating")
        return generate(doc_type, target, context)

    generator.generate = generate_while_procedure_is_taken

    result = executor.execute_schedule_action(_action(repository, client, "care_plan"), client, force=True)

    assert result.success is False
    assert result.conflict is True
    assert repository.get_schedule(client.id, "tejunsho").status == "generating"
    plan = repository.get_schedule(client.id, "care_plan")
    assert plan.status == "pending"
    assert plan.last_generated_at is None
    assert repository.get_schedule(client.id, "monitoring").period_start is None


def test_bulk_run_generates_each_document_once(repository, generator, executor, add_client):
    client = add_client(contract_start=date(2025, 1, 1))
    schedules = ensure_client_schedules(repository, [client])
    check = check_document_schedules(schedules, [client], NOW.date())
    sync_schedule_statuses(repository, check)
    assert [a.doc_type for a in check.actions] == ["care_plan", "tejunsho", "monitoring"]

    result = executor.execute_bulk(check.actions, [client])

    assert [c[0] for c in generator.calls] == ["care_plan", "tejunsho"]
    assert result.success_count == 1
    assert result.skipped_count == 2
    assert result.error_count == 0
    assert [r.skipped for r in result.results] == [False, True, True]
    assert {s.status for s in repository.load_schedules(client.id)} == {"active"}


def test_retrying_current_document_is_a_no_op(repository, generator, executor, add_client):
    client = add_client(contract_start=date(2025, 1, 1))
    ensure_client_schedules(repository, [client])
    first = executor.execute_schedule_action(_action(repository, client, "care_plan"), client)
    issued = repository.get_schedule(client.id, "care_plan")

    retry = executor.execute_schedule_action(_action(repository, client, "care_plan"), client)

    assert first.success is True and first.skipped is False
    assert retry.success is True
    assert retry.skipped is True
    assert len(generator.calls) == 2
    assert repository.get_schedule(client.id, "care_plan").version == issued.version

    forced = executor.execute_schedule_action(_action(repository, client, "care_plan"), client, force=True)
    assert forced.skipped is False
    assert len(generator.calls) == 4


def test_monitoring_report_requesting_revision_flags_plan(repository, generator, executor, add_client):
    client = add_client(contract_start=date(2025, 1, 1))
    ensure_client_schedules(repository, [client])
    executor.execute_schedule_action(_action(repository, client, "care_plan"), client, force=True)
    generator.plan_revision_needed = True
    generator.plan_revision_reason = "ADL 저하"

    result = executor.execute_schedule_action(
        _action(repository, client, "monitoring", "generate_monitoring"), client, force=True
    )

    assert result.success is True
    assert result.plan_revision_needed is True
    plan = repository.get_schedule(client.id, "care_plan")
    assert plan.plan_revision_needed is True
    assert plan.plan_revision_reason == "ADL 저하"
    assert plan.status == "overdue"

    check = check_document_schedules(repository.load_schedules(client.id), [client], NOW.date())
    assert [(a.doc_type, a.type) for a in check.actions] == [("care_plan", "plan_revision")]


def test_plan_renewal_clears_revision_flag(repository, generator, executor, add_client):
    client = add_client(contract_start=date(2025, 1, 1))
    ensure_client_schedules(repository, [client])
    executor.execute_schedule_action(_action(repository, client, "care_plan"), client, force=True)
    generator.plan_revision_needed = True
    executor.execute_schedule_action(_action(repository, client, "monitoring", "generate_monitoring"), client, force=True)

    result = executor.execute_schedule_action(_action(repository, client, "care_plan", "plan_revision"), client)

    assert result.success is True
    plan = repository.get_schedule(client.id, "care_plan")
    assert plan.plan_revision_needed is None
    assert plan.status == "active"
    assert generator.calls[-1][2]["is_revision"] is True


def _monitoring_item(repository, client, status: str = "scheduled") -> MonitoringScheduleSchema:
    return repository.save_monitoring_schedule(MonitoringScheduleSchema(
        care_client_id=client.id, monitoring_type="emergency", status=status,
        due_date=date(2025, 2, 25), trigger_event="입원",
    ))


def test_monitoring_item_execution_completes_item(repository, generator, executor, add_client):
    client = add_client()
    item = _monitoring_item(repository, client)

    result = executor.execute_monitoring_schedule_action(item, client)

    assert result.success is True
    stored = repository.get_monitoring_schedule(item.id)
    assert stored.status == "completed"
    assert stored.completed_at == NOW
    assert stored.plan_revision_needed is False
    assert repository.get_schedule(client.id, "monitoring").last_generated_at == NOW

    again = executor.execute_monitoring_schedule_action(stored, client)
    assert again.success is False
    assert len(generator.calls) == 1


def test_monitoring_item_failure_restores_status(repository, generator, executor, add_client):
    client = add_client()
    item = _monitoring_item(repository, client)
    generator.fail_doc_types.add("monitoring")

    result = executor.execute_monitoring_schedule_action(item, client)

    assert result.success is False
    assert repository.get_monitoring_schedule(item.id).status == "scheduled"


def test_monitoring_item_revision_flags_plan(repository, generator, executor, add_client):
    client = add_client()
    ensure_client_schedules(repository, [client])
    item = _monitoring_item(repository, client)
    generator.plan_revision_needed = True

    result = executor.execute_monitoring_schedule_action(item, client)

    assert result.plan_revision_needed is True
    assert repository.get_monitoring_schedule(item.id).plan_revision_needed is True
    assert repository.get_schedule(client.id, "care_plan").plan_revision_needed is True
