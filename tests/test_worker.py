from __future__ import annotations

import sys

import pytest
from loguru import logger

from mailnotifier.application.use_cases.detect_new_mail import ChangeDetector
from mailnotifier.application.use_cases.notify import NotificationDispatcher
from mailnotifier.cli import worker as worker_module
from mailnotifier.cli.worker import NotifierWorker
from mailnotifier.domain.errors import ConnectionErrorKind, MailConnectionError
from mailnotifier.domain.models import ConnectionState, WorkerState
from mailnotifier.infrastructure.email.providers.imap.session import ImapSessionManager
from mailnotifier.infrastructure.stores import JsonCursorStore
from tests.helpers import FakeChat, FakeMailbox


class MailboxFactory:
    """Reconnects always land on the same mailbox; queued errors are raised first."""

    def __init__(self, mailbox: FakeMailbox):
        self.mailbox = mailbox
        self.errors: list[Exception] = []
        self.connects = 0

    def __call__(self) -> FakeMailbox:
        if self.errors:
            raise self.errors.pop(0)
        self.connects += 1
        self.mailbox.logged_out = False
        return self.mailbox


def make_worker(mailbox, chat, **kwargs):
    factory = MailboxFactory(mailbox)
    worker = NotifierWorker(
        sessions=ImapSessionManager(factory),
        detector=ChangeDetector(),
        dispatcher=NotificationDispatcher(chat, "1234"),
        account="me@example.com",
        poll_interval=30,
        backoff_initial=5,
        backoff_max=20,
        sleep=lambda seconds: None,
        **kwargs,
    )
    return worker, factory


def sent_subjects(chat: FakeChat) -> list[str]:
    return [text.split("**Subject:** ")[1].split("\n")[0] for _, text in chat.sent]


def test_first_cycle_only_baselines(chat) -> None:
    mailbox = FakeMailbox(existing=5)
    worker, _ = make_worker(mailbox, chat)

    assert worker.run_cycle() == 30
    assert chat.sent == []
    assert worker.cursor.last_uid == 5


def test_new_mail_is_notified_once_in_order(chat) -> None:
    mailbox = FakeMailbox(existing=2)
    worker, _ = make_worker(mailbox, chat)
    worker.run_cycle()

    for subject in ("one", "two", "three"):
        mailbox.deliver(subject=subject)
    worker.run_cycle()
    worker.run_cycle()

    assert sent_subjects(chat) == ["one", "two", "three"]
    assert worker.stats.notified == 3


def test_delivery_failure_does_not_block_other_messages(chat) -> None:
    mailbox = FakeMailbox(existing=1)
    worker, _ = make_worker(mailbox, chat)
    worker.run_cycle()
    chat.fail_subjects.add("message A")

    mailbox.deliver(subject="message A")
    mailbox.deliver(subject="message B")
    assert worker.run_cycle() == 30
    mailbox.deliver(subject="message C")
    worker.run_cycle()

    assert sent_subjects(chat) == ["message B", "message C"]
    assert worker.stats.delivery_failures == 1
    assert worker.failures == 0


def test_connection_failures_back_off_and_cap(chat, log_records) -> None:
    mailbox = FakeMailbox(existing=1)
    worker, factory = make_worker(mailbox, chat)
    factory.errors = [MailConnectionError("timed out", operation="connect") for _ in range(4)]

    delays = [worker.run_cycle() for _ in range(4)]

    assert delays[0] < delays[1] < delays[2] <= 20
    assert delays[3] == 20
    assert worker.sessions.state is ConnectionState.FAULTED
    assert any("Retrying in 20s" in r["message"] for r in log_records)

    assert worker.run_cycle() == 30
    assert worker.failures == 0


def test_rejected_credentials_are_retried_and_logged_as_error(chat, log_records) -> None:
    mailbox = FakeMailbox(existing=1)
    worker, factory = make_worker(mailbox, chat)
    factory.errors = [
        MailConnectionError("bad password", kind=ConnectionErrorKind.CREDENTIAL_REJECTED, operation="login")
    ]

    assert worker.run_cycle() == 5
    assert any(r["level"].name == "ERROR" and "credentials rejected" in r["message"] for r in log_records)
    assert worker.run_cycle() == 30


def test_protocol_error_forces_reconnect_without_losing_mail(chat) -> None:
    mailbox = FakeMailbox(existing=1)
    worker, factory = make_worker(mailbox, chat)
    worker.run_cycle()

    mailbox.deliver(subject="late")
    mailbox.fail_fetch = 1
    assert worker.run_cycle() == 5
    assert mailbox.logged_out
    assert worker.sessions.state is ConnectionState.FAULTED
    assert chat.sent == []

    assert worker.run_cycle() == 30
    assert factory.connects == 2
    assert sent_subjects(chat) == ["late"]


def test_cursor_is_checkpointed_and_resumed(chat, tmp_path) -> None:
    store = JsonCursorStore(tmp_path / "cursor.json")
    mailbox = FakeMailbox(existing=3)
    worker, _ = make_worker(mailbox, chat, cursor_store=store)
    worker.run_cycle()
    mailbox.deliver(subject="while running")
    worker.run_cycle()
    assert store.load("me@example.com", "INBOX").last_uid == 4

    # Restart: mail that arrived while down is still notified
    mailbox.deliver(subject="while down")
    restarted, _ = make_worker(mailbox, chat, cursor_store=store)
    restarted.load_cursor()
    restarted.run_cycle()

    assert sent_subjects(chat) == ["while running", "while down"]


def test_run_stops_on_signal_and_closes_session(chat, monkeypatch) -> None:
    monkeypatch.setattr(worker_module.signal, "signal", lambda *args: None)
    mailbox = FakeMailbox(existing=1)
    worker, _ = make_worker(mailbox, chat)
    sleeps: list[float] = []

    def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        worker._handle_shutdown(15, None)

    worker._sleep_fn = fake_sleep

    assert worker.run() == 0
    assert worker.state is WorkerState.STOPPED
    assert worker.stats.polls_completed == 1
    assert sleeps == [1.0]
    assert mailbox.logged_out
    assert worker.sessions.state is ConnectionState.DISCONNECTED


def test_run_survives_unexpected_errors(chat, monkeypatch) -> None:
    monkeypatch.setattr(worker_module.signal, "signal", lambda *args: None)
    mailbox = FakeMailbox(existing=1)
    worker, _ = make_worker(mailbox, chat)
    calls = {"n": 0}
    real_poll = worker.detector.poll_new

    def flaky_poll(session, cursor):
        calls["n"] += 1
        if calls["n"] == 1:
            raise KeyError("unexpected")
        worker.stop()
        return real_poll(session, cursor)

    monkeypatch.setattr(worker.detector, "poll_new", flaky_poll)

    assert worker.run() == 0
    assert calls["n"] == 2
    assert worker.stats.faults == 1
    assert worker.failures == 0


def test_main_exits_non_zero_without_configuration(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("GMAIL_EMAIL", "GMAIL_APP_PASSWORD", "DISCORD_TOKEN", "DISCORD_USER_ID"):
        monkeypatch.delenv(name, raising=False)

    try:
        assert worker_module.main() == 1
    finally:
        # main() swaps loguru sinks; put back a plain one
        logger.remove()
        logger.add(sys.stderr)


def test_lowercase_log_level_still_reports_missing_configuration(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOG_LEVEL", "info")
    for name in ("GMAIL_EMAIL", "GMAIL_APP_PASSWORD", "DISCORD_TOKEN", "DISCORD_USER_ID"):
        monkeypatch.delenv(name, raising=False)

    try:
        assert worker_module.main() == 1
    finally:
        logger.remove()
        logger.add(sys.stderr)


def test_bad_log_level_in_env_file_exits_non_zero(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("LOG_LEVEL=loud\n", encoding="utf-8")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setenv("GMAIL_EMAIL", "me@gmail.com")
    monkeypatch.setenv("GMAIL_APP_PASSWORD", "app-secret")
    monkeypatch.setenv("DISCORD_TOKEN", "bot-token")
    monkeypatch.setenv("DISCORD_USER_ID", "1234")

    try:
        assert worker_module.main() == 1
    finally:
        logger.remove()
        logger.add(sys.stderr)


@pytest.mark.parametrize(
    "name, expected",
    [("info", "INFO"), (" Warning ", "WARNING"), ("loud", "INFO")],
)
def test_startup_log_level(name, expected) -> None:
    assert worker_module._startup_log_level(name) == expected


@pytest.mark.parametrize("interval", [0.5, 2.5])
def test_sleep_is_sliced_for_prompt_shutdown(chat, interval) -> None:
    worker, _ = make_worker(FakeMailbox(), chat)
    slices: list[float] = []
    worker._sleep_fn = slices.append
    worker.running = True

    worker._sleep(interval)

    assert sum(slices) == pytest.approx(interval)
    assert max(slices) <= 1.0
