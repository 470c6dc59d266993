from __future__ import annotations

from datetime import datetime

from attendance_engine.notifications.model import NotificationType
from attendance_engine.notifications.service import Notifier

from fakes import Clock, FailingLog, InMemoryNotificationLog, RecordingChannel


class BrokenChannel:
    def deliver(self, *, recipient_id, type, message):
        raise ConnectionError("smtp down")


def test_send_logs_and_delivers():
    log, channel = InMemoryNotificationLog(), RecordingChannel()
    notifier = Notifier(log, channel, clock=Clock(datetime(2026, 10, 12, 8)))

    entry = notifier.send(7, NotificationType.SHORT_TIME, "Short day", reference="record:1")

    assert entry.notification_id == 1
    assert channel.delivered == [(7, "SHORT_TIME", "Short day")]
    assert notifier.already_sent(NotificationType.SHORT_TIME, reference="record:1") is True


def test_delivery_failures_are_swallowed():
    assert Notifier(InMemoryNotificationLog(), BrokenChannel()).send(7, "X", "hello") is None
    assert Notifier(FailingLog(), RecordingChannel()).send(7, "X", "hello") is None


def test_missing_recipient_is_dropped():
    log = InMemoryNotificationLog()

    assert Notifier(log).send(None, "X", "hello") is None
    assert log.entries == []


def test_retract_only_touches_the_referenced_entity():
    log = InMemoryNotificationLog()
    clock = Clock(datetime(2026, 10, 11, 8))
    notifier = Notifier(log, RecordingChannel(), clock=clock)
    notifier.send(7, NotificationType.SHORT_TIME, "old", reference="record:1")
    clock.now = datetime(2026, 10, 12, 8)
    notifier.send(7, NotificationType.SHORT_TIME, "new", reference="record:1")
    notifier.send(7, NotificationType.SHORT_TIME, "other day", reference="record:2")

    assert notifier.retract(NotificationType.SHORT_TIME, recipient_id=7, reference="record:1", since=datetime(2026, 10, 12)) == 1
    assert [n.message for n in log.entries] == ["old", "other day"]

    assert notifier.retract(NotificationType.SHORT_TIME, recipient_id=7, reference="record:1") == 1
    assert [n.message for n in log.entries] == ["other day"]
