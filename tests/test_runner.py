from types import SimpleNamespace

import pytest

from callsheet_keeper.rules import RuleTable, default_rules
from callsheet_keeper.runner import (
    STATUS_ERROR,
    STATUS_LOCKED,
    STATUS_OK,
    RunCoordinator,
    resolve_root_folder,
    unique_threads,
)
from callsheet_keeper.state import LAST_RUN_DATE_KEY, SEQUENCE_COUNTER_KEY
from tests.fakes import (
    ROOT,
    FakeClock,
    FakeFileStore,
    FakeLock,
    FakeMailStore,
    MemoryPropertyStore,
    message,
    pdf,
    thread,
)

YESTERDAY = "2026-10-18"
TODAY = "2026-10-19"


class RecordingNotifier:
    enabled = True

    def __init__(self):
        self.calls = []

    def notify(self, **kwargs):
        self.calls.append(kwargs)
        return True


@pytest.fixture
def env():
    files = FakeFileStore()
    mail = FakeMailStore()
    props = MemoryPropertyStore(**{LAST_RUN_DATE_KEY: TODAY, SEQUENCE_COUNTER_KEY: "0"})
    lock = FakeLock()
    clock = FakeClock()
    notifier = RecordingNotifier()

    def coordinator(run_lock=None):
        return RunCoordinator(
            mail=mail,
            files=files,
            props=props,
            lock=run_lock or lock,
            rules=RuleTable(default_rules()),
            exclusion_terms=["prelim"],
            query="is:unread has:attachment filename:pdf",
            root_folder_id=ROOT,
            notifier=notifier,
            clock=clock,
        )

    return SimpleNamespace(
        files=files, mail=mail, props=props, lock=lock, clock=clock, notifier=notifier, coordinator=coordinator
    )


def test_run_files_documents_and_marks_thread_read(env):
    env.mail.threads = [thread(message(pdf("callsheet.pdf"), pdf("unit list.pdf")))]
    report = env.coordinator().run()
    assert report.status == STATUS_OK
    assert env.files.names_in(ROOT) == ["callsheet1.pdf", "unitlist.pdf"]
    assert report.threads_marked_read == ["t1"] == env.mail.marked_read
    assert env.lock.releases == 1 and not env.lock.held
    assert env.mail.queries == ["is:unread has:attachment filename:pdf"]


def test_thread_with_nothing_filed_stays_unread(env):
    env.mail.threads = [
        thread(message(pdf("prelim callsheet.pdf"), id="a", thread_id="t1")),
        thread(message(pdf("invoice.pdf"), id="b", thread_id="t2")),
        thread(message(pdf("schedule.pdf"), id="c", thread_id="t3")),
    ]
    report = env.coordinator().run()
    assert env.mail.marked_read == ["t3"]
    assert [p.filename for p in report.placed] == ["schedule.pdf"]


def test_messages_processed_oldest_first(env):
    older = message(pdf("callsheet v1.pdf", b"old"), id="m1")
    newer = message(pdf("callsheet v2.pdf", b"new"), id="m2")
    env.mail.threads = [thread(older, newer)]
    report = env.coordinator().run()
    assert [(p.message_id, p.filename) for p in report.placed] == [
        ("m1", "callsheet1.pdf"),
        ("m2", "callsheet2.pdf"),
    ]
    assert env.files.content("callsheet2.pdf") == [b"new"]


def test_read_messages_in_thread_are_skipped(env):
    env.mail.threads = [
        thread(message(pdf("callsheet.pdf"), id="m1", unread=False), message(pdf("sides.pdf"), id="m2"))
    ]
    report = env.coordinator().run()
    assert [p.filename for p in report.placed] == ["sides.pdf"]


def test_duplicate_threads_processed_once(env):
    t = thread(message(pdf("callsheet.pdf")))
    env.mail.threads = [t, t]
    report = env.coordinator().run()
    assert [p.filename for p in report.placed] == ["callsheet1.pdf"]
    assert env.mail.marked_read == ["t1"]


def test_new_day_without_driver_sweeps_nothing(env):
    env.props.data[LAST_RUN_DATE_KEY] = YESTERDAY
    env.props.data[SEQUENCE_COUNTER_KEY] = "3"
    for name in ("callsheet1.pdf", "callsheet2.pdf", "callsheet3.pdf", "sides3.pdf", "unitlist.pdf"):
        env.files.add(name)
    env.mail.threads = [thread(message(pdf("schedule.pdf")))]

    report = env.coordinator().run()

    assert report.swept == 0
    assert env.files.names_in(ROOT) == [
        "callsheet1.pdf", "callsheet2.pdf", "callsheet3.pdf", "schedule.pdf", "sides3.pdf", "unitlist.pdf",
    ]
    assert env.props.data[LAST_RUN_DATE_KEY] == YESTERDAY
    assert env.props.data[SEQUENCE_COUNTER_KEY] == "3"


def test_first_driver_of_new_day_sweeps_once(env):
    env.props.data[LAST_RUN_DATE_KEY] = YESTERDAY
    env.props.data[SEQUENCE_COUNTER_KEY] = "2"
    for name in ("callsheet1.pdf", "callsheet2.pdf", "sides2.pdf", "unitlist.pdf"):
        env.files.add(name)
    env.mail.threads = [
        thread(message(pdf("callsheet am.pdf"), id="a", thread_id="t1")),
        thread(message(pdf("callsheet pm.pdf"), id="b", thread_id="t2")),
    ]

    report = env.coordinator().run()

    assert report.swept == 4
    assert env.files.names_in(ROOT) == ["callsheet1.pdf", "callsheet2.pdf"]
    assert len(env.files.archived("Old Callsheets")) == 2
    assert len(env.files.archived("Old Sides")) == 1
    assert len(env.files.archived("Old Unit Lists")) == 1
    assert env.props.data[LAST_RUN_DATE_KEY] == TODAY
    assert env.props.data[SEQUENCE_COUNTER_KEY] == "2"
    date_write = env.props.writes.index((LAST_RUN_DATE_KEY, TODAY))
    assert env.props.writes[date_write + 1] == (SEQUENCE_COUNTER_KEY, "1")


def test_first_run_ever_starts_at_one(env):
    env.props.data.clear()
    env.mail.threads = [thread(message(pdf("CS.pdf")))]
    env.coordinator().run()
    assert env.files.names_in(ROOT) == ["callsheet1.pdf"]
    assert env.props.data == {LAST_RUN_DATE_KEY: TODAY, SEQUENCE_COUNTER_KEY: "1"}


def test_same_day_missing_first_slot_resets_counter(env):
    env.props.data[SEQUENCE_COUNTER_KEY] = "4"
    env.files.add("callsheet4.pdf")
    env.mail.threads = [thread(message(pdf("callsheet.pdf")))]

    env.coordinator().run()

    assert "callsheet1.pdf" in env.files.names_in(ROOT)
    assert "callsheet5.pdf" not in env.files.names_in(ROOT)
    assert (SEQUENCE_COUNTER_KEY, "0") in env.props.writes


def test_same_day_counter_behind_existing_files_is_raised(env):
    env.props.data[SEQUENCE_COUNTER_KEY] = "0"
    env.files.add("callsheet1.pdf")
    env.files.add("callsheet2.pdf")
    env.mail.threads = [thread(message(pdf("callsheet.pdf")))]

    env.coordinator().run()

    assert env.files.names_in(ROOT) == ["callsheet1.pdf", "callsheet2.pdf", "callsheet3.pdf"]


def test_lock_timeout_is_a_silent_no_op(env):
    env.lock.available = False
    env.mail.threads = [thread(message(pdf("callsheet.pdf")))]
    report = env.coordinator().run()
    assert report.status == STATUS_LOCKED
    assert env.mail.queries == []
    assert env.files.names_in(ROOT) == []
    assert env.lock.releases == 0


def test_upstream_fault_keeps_only_unfinished_threads_unread(env):
    env.mail.threads = [
        thread(message(pdf("callsheet.pdf"), id="a", thread_id="t1")),
        thread(message(pdf("unitlist.pdf"), id="b", thread_id="t2")),
    ]
    env.files.add("unitlist.pdf")
    env.files.fail_on.add("move_file")

    report = env.coordinator().run()

    assert report.status == STATUS_ERROR
    assert "move_file failed" in report.error
    assert env.lock.releases == 1 and not env.lock.held
    # t1 was fully filed before the fault, t2 stays unread for the next run
    assert env.mail.marked_read == ["t1"]
    assert "callsheet1.pdf" in env.files.names_in(ROOT)

    env.files.fail_on.clear()
    second = env.coordinator().run()

    assert second.status == STATUS_OK
    assert [p.filename for p in second.placed] == ["unitlist.pdf"]
    assert env.files.names_in(ROOT) == ["callsheet1.pdf", "unitlist.pdf"]
    assert env.mail.marked_read == ["t1", "t2"]


def test_search_fault_reported(env):
    env.mail.fail_search = True
    report = env.coordinator().run()
    assert report.status == STATUS_ERROR
    assert env.lock.releases == 1


def test_driver_placement_notifies(env):
    env.mail.threads = [thread(message(pdf("callsheet.pdf"), pdf("sides.pdf"), subject="Day 12 call sheet"))]
    env.coordinator().run()
    assert len(env.notifier.calls) == 1
    call = env.notifier.calls[0]
    assert call["text"] == "Day 12 call sheet"
    assert call["primary_url"].startswith("https://drive.test/")


def test_notifier_link_failure_does_not_abort_run(env):
    env.files.fail_on.add("share_link")
    env.mail.threads = [thread(message(pdf("callsheet.pdf")))]
    report = env.coordinator().run()
    assert report.status == STATUS_OK


def test_resolve_root_folder_finds_or_creates():
    files = FakeFileStore()
    assert resolve_root_folder(files, folder_id="given", folder_name="X") == "given"
    created = resolve_root_folder(files, folder_id=None, folder_name="Paperwork")
    assert resolve_root_folder(files, folder_id=None, folder_name="Paperwork") == created
    assert files.created_folders == ["Paperwork"]


def test_unique_threads_limit():
    ts = [thread(message(id=str(i), thread_id=f"t{i}")) for i in range(5)]
    assert [t.id for t in unique_threads(ts + ts, limit=3)] == ["t0", "t1", "t2"]


class HandOffLock(FakeLock):
    """Starts another run the moment it is released, like the next scheduled trigger would."""

    def __init__(self):
        super().__init__()
        self.on_release = None

    def release(self):
        super().release()
        if self.on_release is not None:
            start, self.on_release = self.on_release, None
            start()


def test_threads_are_read_before_the_lock_is_released(env):
    lock = HandOffLock()
    second_runs = []
    lock.on_release = lambda: second_runs.append(env.coordinator(lock).run())
    env.mail.threads = [thread(message(pdf("callsheet.pdf")))]

    report = env.coordinator(lock).run()

    assert report.threads_marked_read == ["t1"]
    assert second_runs[0].placed == []
    assert env.files.names_in(ROOT) == ["callsheet1.pdf"]
    assert len(env.notifier.calls) == 1


def test_mark_read_failure_is_an_error_and_releases_lock(env):
    env.mail.fail_mark_read = True
    env.mail.threads = [
        thread(message(pdf("callsheet.pdf"), id="a", thread_id="t1")),
        thread(message(pdf("unitlist.pdf"), id="b", thread_id="t2")),
    ]

    report = env.coordinator().run()

    assert report.status == STATUS_ERROR
    assert report.error == "mark read failed"
    assert report.threads_marked_read == []
    assert [p.filename for p in report.placed] == ["callsheet1.pdf"]
    assert env.lock.releases == 1 and not env.lock.held


class ExplodingNotifier:
    enabled = True

    def notify(self, **kwargs):
        raise RuntimeError("boom")


def test_any_notifier_exception_is_isolated(env):
    env.mail.threads = [thread(message(pdf("callsheet.pdf"), pdf("sides.pdf")))]
    coordinator = env.coordinator()
    coordinator.notifier = ExplodingNotifier()

    report = coordinator.run()

    assert report.status == STATUS_OK
    assert env.files.names_in(ROOT) == ["callsheet1.pdf", "sides1.pdf"]
    assert env.mail.marked_read == ["t1"]
