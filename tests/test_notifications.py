from jira_task_viewer.notifications import Level, NotificationQueue


def test_push_and_expire_fifo(clock):
    q = NotificationQueue(ttl=5.0, clock=clock)
    q.success("first")
    clock.advance(2)
    q.error("second")
    clock.advance(3.5)
    assert q.expire() == 1
    assert [n.message for n in q] == ["second"]
    clock.advance(2)
    assert q.expire() == 1
    assert len(q) == 0


def test_expire_respects_explicit_now(clock):
    q = NotificationQueue(ttl=5.0, clock=clock)
    note = q.success("saved")
    assert q.expire(now=note.created_at + 5.0) == 0
    assert q.expire(now=note.created_at + 5.01) == 1


def test_visible_is_capped_to_oldest_three(clock):
    q = NotificationQueue(clock=clock)
    for i in range(5):
        q.push(Level.ERROR, f"n{i}")
    assert [n.message for n in q.visible()] == ["n0", "n1", "n2"]
    assert len(q) == 5


def test_dismiss_by_id(clock):
    q = NotificationQueue(clock=clock)
    a = q.success("a")
    b = q.success("b")
    assert q.dismiss(a.id) is True
    assert q.dismiss(a.id) is False
    assert [n.id for n in q] == [b.id]
    assert b.level is Level.SUCCESS
