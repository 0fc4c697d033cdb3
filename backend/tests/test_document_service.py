from datetime import datetime

import pytest

from stockcore.errors import InvalidArgument
from stockcore.models import DocumentSequence
from stockcore.services.document_service import next_document_number


def test_numbers_are_sequential_per_prefix_and_day(db_session):
    day = datetime(2026, 1, 18, 9, 30)

    assert next_document_number(prefix="INV", on=day) == "INV-260118-0001"
    assert next_document_number(prefix="INV", on=day) == "INV-260118-0002"
    assert next_document_number(prefix="PO", on=day) == "PO-260118-0001"
    assert next_document_number(prefix="INV", on=datetime(2026, 1, 19)) == "INV-260119-0001"
    db_session.commit()

    assert db_session.query(DocumentSequence).count() == 3


def test_sequence_widens_past_four_digits(db_session):
    day = datetime(2026, 1, 18)
    db_session.add(DocumentSequence(prefix="INV", date_key="260118", next_number=10000))
    db_session.commit()

    assert next_document_number(prefix="INV", on=day) == "INV-260118-10000"


def test_counter_rolls_back_with_the_caller(db_session):
    day = datetime(2026, 1, 18)
    next_document_number(prefix="INV", on=day)
    db_session.rollback()

    assert next_document_number(prefix="INV", on=day) == "INV-260118-0001"


def test_prefix_required(db_session):
    with pytest.raises(InvalidArgument):
        next_document_number(prefix="")
