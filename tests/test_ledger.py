from services.ledger import AnswerLedger


def test_last_write_wins():
    ledger = AnswerLedger()
    ledger.record(1, "A", 4)
    ledger.record(1, "SKIPPED", 9, skipped=True)

    record = ledger.get(1)
    assert record.answer == "SKIPPED"
    assert record.time_spent == 9
    assert record.skipped is True
    assert len(ledger) == 1


def test_skips_count_as_answered():
    ledger = AnswerLedger()
    ledger.record(1, "A", 1)
    ledger.record(2, "SKIPPED", 0, skipped=True)

    assert ledger.count_answered() == 2
    assert 2 in ledger
    assert 3 not in ledger
    assert ledger.get(3) is None


def test_clear_and_iterate():
    ledger = AnswerLedger()
    ledger.record(1, "A", 1)
    ledger.record(2, "B", 2)
    assert [r.question_id for r in ledger] == [1, 2]

    ledger.clear()
    assert ledger.count_answered() == 0
    assert list(ledger) == []
