import pytest

from tracker.utils.exceptions import BadTagError
from tracker.utils.tags import encode_tag, is_valid_tag, normalize_tag


@pytest.mark.parametrize("raw, expected", [
    ('#2PP', '#2PP'),
    ('2pp', '#2PP'),
    ('  #2pp  ', '#2PP'),
    ('##2PP', '#2PP'),
    ('#9lq0gr8', '#9LQ0GR8'),
])
def test_normalize_tag(raw, expected):
    assert normalize_tag(raw) == expected


@pytest.mark.parametrize("raw", ['', '   ', '#', '2P-P', '2P P', '#ÄÖ', None])
def test_invalid_tags_are_rejected(raw):
    with pytest.raises(BadTagError):
        normalize_tag(raw)
    assert not is_valid_tag(raw)


def test_encode_tag_escapes_hash():
    assert encode_tag('2pp') == '%232PP'
