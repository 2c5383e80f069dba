import pytest

from drill_engine.core.exceptions import ValidationError
from drill_engine.models import User
from drill_engine.utils.ref_utils import resolve_id
from drill_engine.utils.score_utils import percentage, round_half_up


def test_round_half_up():
    assert round_half_up(62.5) == 63
    assert round_half_up(66.666) == 67
    assert round_half_up(62.4) == 62
    assert round_half_up(0) == 0


def test_percentage():
    assert percentage(3, 4) == 75
    assert percentage(2, 3) == 67
    assert percentage(5, 8) == 63
    assert percentage(0, 0) == 0


def test_resolve_id_accepts_objects_and_raw_ids():
    assert resolve_id(5) == 5
    assert resolve_id("12") == 12
    assert resolve_id({"id": 3}) == 3
    assert resolve_id(User(id=8, email="a@example.com")) == 8


@pytest.mark.parametrize("ref", [None, "abc", True, {"name": "no id"}, 1.5])
def test_resolve_id_rejects_garbage(ref):
    with pytest.raises(ValidationError):
        resolve_id(ref)
