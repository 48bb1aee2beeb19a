from services.timing import QuestionClock, SessionClock, format_clock


def test_format_clock():
    assert format_clock(0) == "00:00"
    assert format_clock(65) == "01:05"
    assert format_clock(900) == "15:00"
    assert format_clock(-3) == "00:00"


def test_question_clock_counts_only_while_running():
    clock = QuestionClock(60)
    clock.tick()
    assert clock.elapsed == 0

    clock.start()
    clock.tick()
    clock.tick()
    assert clock.elapsed == 2

    clock.stop()
    clock.tick()
    assert clock.elapsed == 2


def test_question_clock_percent_floors_at_zero():
    clock = QuestionClock(10)
    clock.start()
    assert clock.percent_remaining == 100
    for _ in range(5):
        clock.tick()
    assert clock.percent_remaining == 50
    for _ in range(20):
        clock.tick()
    assert clock.percent_remaining == 0


def test_question_clock_reset():
    clock = QuestionClock(60)
    clock.start()
    clock.tick()
    clock.reset()
    assert clock.elapsed == 0
    assert clock.running is True


def test_session_clock_expires_once():
    clock = SessionClock(2)
    clock.start()

    assert clock.tick() is False
    assert clock.expired is False
    assert clock.tick() is True
    assert clock.expired is True
    assert clock.running is False
    assert clock.tick() is False
    assert clock.remaining == 0


def test_session_clock_restart_restores_budget():
    clock = SessionClock(5)
    clock.start()
    clock.tick()
    clock.stop()
    assert clock.remaining == 4

    clock.start()
    assert clock.remaining == 5
