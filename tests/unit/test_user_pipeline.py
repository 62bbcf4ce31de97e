from __future__ import annotations

import dataclasses
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date

from src.client.memory import InMemoryDirectoryClient
from src.models.import_job import ImportJob, RawRow
from src.models.outcome import OutcomeKind
from src.models.row import Row, RowContext
from src.services.context import ImportContext
from src.services.identity_cache import normalize_email
from src.services.scheduler import Scheduler
from src.services.user_pipeline import import_user

ADULT = {"first_name": "Ann", "last_name": "Lee", "gender": "F", "birthdate": "1980-05-02"}
TODAY = date(2024, 6, 1)


def test_adult_with_email_is_created(ictx, client, make_row):
    row, rctx = make_row(email_address="Ann@Example.com", **ADULT)

    outcome = import_user(ictx, row, rctx)

    assert outcome.kind is OutcomeKind.CREATED
    assert client.call_count("user_create") == 1
    assert client.users[outcome.identifier]["email"] == "Ann@Example.com"
    assert ictx.identities.get(normalize_email("ann@example.com")) == outcome.identifier
    assert ictx.stats.snapshot() == {"Users": 1}


def test_existing_email_is_already_exists(ictx, client, make_row, caplog):
    existing = client.add_user("ann@example.com", "Ann", "Lee")
    row, rctx = make_row(email_address="ann@example.com", **ADULT)

    outcome = import_user(ictx, row, rctx)

    assert outcome.kind is OutcomeKind.ALREADY_EXISTS
    assert outcome.identifier == existing["uuid"]
    assert client.call_count("user_create") == 0
    assert ictx.stats.snapshot() == {"Users": 1}
    assert "already exists" in caplog.text


def test_missing_birthdate_makes_no_remote_call(ictx, client, make_row):
    row, rctx = make_row(email_address="ann@example.com", first_name="Ann", last_name="Lee", gender="F")

    outcome = import_user(ictx, row, rctx)

    assert outcome.kind is OutcomeKind.VALIDATION_FAILED
    assert "No Birth Date" in outcome.reason
    assert client.calls == []


def test_invalid_birthdate(ictx, make_row):
    row, rctx = make_row(**{**ADULT, "birthdate": "someday"})
    outcome = import_user(ictx, row, rctx)
    assert outcome.kind is OutcomeKind.VALIDATION_FAILED
    assert "Invalid Birth Date" in outcome.reason


def test_minor_without_parent_never_commits(ictx, client, make_row):
    row, rctx = make_row(email_address="kid@example.com", **{**ADULT, "birthdate": "2015-01-01"})

    outcome = import_user(ictx, row, rctx)

    assert outcome.kind is OutcomeKind.VALIDATION_FAILED
    assert "Missing parents" in outcome.reason
    assert client.call_count("user_create") == 0
    assert client.call_count("user_create_child") == 0


def test_exactly_fourteen_is_not_a_minor(ictx, client, make_row):
    # import date is 2024-06-01
    row, rctx = make_row(email_address="teen@example.com", **{**ADULT, "birthdate": "2010-06-01"})
    assert import_user(ictx, row, rctx).kind is OutcomeKind.CREATED


def test_one_day_short_of_fourteen_is_a_minor(ictx, make_row):
    row, rctx = make_row(email_address="teen@example.com", **{**ADULT, "birthdate": "2010-06-02"})
    assert import_user(ictx, row, rctx).kind is OutcomeKind.VALIDATION_FAILED


def test_minor_threshold_comes_from_config(client, import_config, make_row):
    ictx = ImportContext(
        client=client,
        config=dataclasses.replace(import_config, minor_age_threshold=10),
        today=TODAY,
    )
    row, rctx = make_row(email_address="kid@example.com", **{**ADULT, "birthdate": "2012-01-01"})
    assert import_user(ictx, row, rctx).kind is OutcomeKind.CREATED


def test_child_without_email_is_created_under_parent(ictx, client, make_row):
    mom = client.add_user("mom@example.com", "Mary", "Lee")
    row, rctx = make_row(
        parent_1_email_address="mom@example.com",
        first_name="Kid",
        last_name="Lee",
        gender="M",
        birthdate="2015-03-03",
    )

    outcome = import_user(ictx, row, rctx)

    assert outcome.kind is OutcomeKind.CREATED
    (args, _), = client.calls_to("user_create_child")
    assert args[0] == mom["uuid"]
    assert args[-1] == {"email_alternative": 1}
    assert client.children[mom["uuid"]] == [outcome.identifier]
    assert client.call_count("user_create") == 0


def test_child_without_email_or_parent_fails(ictx, make_row):
    row, rctx = make_row(first_name="Kid", last_name="Lee", gender="M", birthdate="1990-03-03")
    outcome = import_user(ictx, row, rctx)
    assert outcome.kind is OutcomeKind.VALIDATION_FAILED
    assert "without email address" in outcome.reason


def test_second_parent_is_linked_after_creation(ictx, client, make_row):
    mom = client.add_user("mom@example.com")
    dad = client.add_user("dad@example.com")
    row, rctx = make_row(
        parent_1_email_address="mom@example.com",
        parent_2_email_address="dad@example.com",
        first_name="Kid",
        last_name="Lee",
        gender="M",
        birthdate="2015-03-03",
    )

    outcome = import_user(ictx, row, rctx)

    assert outcome.kind is OutcomeKind.CREATED
    assert client.children[mom["uuid"]] == [outcome.identifier]
    assert client.children[dad["uuid"]] == [outcome.identifier]
    link_args, _ = client.calls_to("user_create_child")[1]
    assert link_args[0] == dad["uuid"]
    assert link_args[-1] == {"child_uuid": outcome.identifier}


def test_unknown_parent_is_a_warning_not_a_failure(ictx, client, make_row, caplog):
    client.add_user("mom@example.com")
    row, rctx = make_row(
        parent_1_email_address="mom@example.com",
        parent_2_email_address="ghost@example.com",
        first_name="Kid",
        last_name="Lee",
        gender="M",
        birthdate="2015-03-03",
    )
    assert import_user(ictx, row, rctx).kind is OutcomeKind.CREATED
    assert "Can't find account for Parent 2" in caplog.text


def test_same_named_child_of_same_parents_is_reused_and_linked(ictx, client, make_row):
    mom = client.add_user("mom@example.com")
    dad = client.add_user("dad@example.com")
    kid = client.add_user(None, "Kid", "Lee", parents=[mom["uuid"]])
    row, rctx = make_row(
        parent_1_email_address="mom@example.com",
        parent_2_email_address="dad@example.com",
        first_name="KID",
        last_name="lee",
        gender="M",
        birthdate="2015-03-03",
    )

    outcome = import_user(ictx, row, rctx)

    assert outcome.kind is OutcomeKind.ALREADY_EXISTS
    assert outcome.identifier == kid["uuid"]
    assert client.children[dad["uuid"]] == [kid["uuid"]]
    assert client.children[mom["uuid"]] == [kid["uuid"]]
    assert client.call_count("user_create") == 0


def test_invalid_email_syntax(ictx, client, make_row):
    row, rctx = make_row(email_address="not-an-email", **ADULT)
    outcome = import_user(ictx, row, rctx)
    assert outcome.kind is OutcomeKind.VALIDATION_FAILED
    assert "invalid email address" in outcome.reason
    assert client.call_count("user_create") == 0


def test_inactive_email_domain(client, import_config, make_row):
    ictx = ImportContext(
        client=client,
        config=dataclasses.replace(import_config, check_email_domains=True),
        today=TODAY,
        domain_check=lambda email: False,
    )
    row, rctx = make_row(email_address="ann@dead-domain.example", **ADULT)
    outcome = import_user(ictx, row, rctx)
    assert outcome.kind is OutcomeKind.VALIDATION_FAILED
    assert "inactive domain" in outcome.reason


def test_ambiguous_email_is_duplicate_identity(ictx, client, make_row):
    client.add_user("ann@example.com")
    client.add_user("ANN@example.com")
    row, rctx = make_row(email_address="ann@example.com", **ADULT)
    outcome = import_user(ictx, row, rctx)
    assert outcome.kind is OutcomeKind.DUPLICATE_IDENTITY
    assert ictx.identities.get("ann@example.com") is None


def test_missing_required_fields_are_listed(ictx, make_row):
    row, rctx = make_row(email_address="ann@example.com", first_name="Ann", birthdate="1980-01-01")
    outcome = import_user(ictx, row, rctx)
    assert outcome.kind is OutcomeKind.VALIDATION_FAILED
    assert outcome.reason.endswith("last_name, gender")


def test_remote_failure_is_contained(import_config, make_row):
    client = InMemoryDirectoryClient(failures={"user_create": "503 Service Unavailable"})
    ictx = ImportContext(client=client, config=import_config, today=TODAY)
    row, rctx = make_row(email_address="ann@example.com", **ADULT)

    outcome = import_user(ictx, row, rctx)

    assert outcome.kind is OutcomeKind.REMOTE_FAILURE
    assert "503" in outcome.reason
    assert ictx.stats.snapshot() == {}


def test_role_statistic_uses_description(ictx, make_row):
    row, rctx = make_row(email_address="ann@example.com", **ADULT)
    import_user(ictx, row, rctx, description="Parent 1")
    assert ictx.stats.snapshot() == {"Parent 1s": 1, "Users": 1}


def test_concurrent_rows_with_same_email_create_once(import_config, make_row):
    client = InMemoryDirectoryClient(latency=0.01)
    ictx = ImportContext(client=client, config=import_config, today=TODAY)
    barrier = threading.Barrier(2)

    def run(index: int):
        row = Row(index=index, values={"email_address": "a@x.com", **ADULT})
        barrier.wait()
        return import_user(ictx, row, RowContext(sheet="Users", row=index))

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = [f.result() for f in [pool.submit(run, 3), pool.submit(run, 4)]]

    assert client.call_count("user_create") == 1
    assert sorted(o.kind.value for o in outcomes) == ["already_exists", "created"]
    assert outcomes[0].identifier == outcomes[1].identifier
    assert ictx.stats.snapshot() == {"Users": 2}


def test_stats_match_succeeded_rows_on_worker_pool(import_config):
    client = InMemoryDirectoryClient(latency=0.01)
    ictx = ImportContext(client=client, config=import_config, today=TODAY)
    columns = ["email_address", "first_name", "last_name", "gender", "birthdate"]
    cells = ["a@x.com", "Ann", "Lee", "F", "1980-05-02"]
    job = ImportJob.from_rows(
        "Users", columns, [RawRow(index=3, cells=cells), RawRow(index=4, cells=list(cells))]
    )

    result = Scheduler(ictx, import_user, workers=2).run(job, "users")

    assert client.call_count("user_create") == 1
    assert result.succeeded == 2
    assert sum(ictx.stats.snapshot().values()) == result.succeeded
