import pytest

from spgateway.indicator import Color, RgbIndicator


def test_starts_dark():
    indicator = RgbIndicator()
    assert indicator.state == (False, False, False)


@pytest.mark.parametrize(
    "method, expected",
    [
        ("on", (True, True, True)),
        ("red", (True, False, False)),
        ("green", (False, True, False)),
        ("blue", (False, False, True)),
        ("off", (False, False, False)),
    ],
)
def test_patterns(method, expected):
    indicator = RgbIndicator()
    indicator.on()
    getattr(indicator, method)()
    assert indicator.state == expected


def test_toggle_inverts_only_one_channel():
    indicator = RgbIndicator()
    indicator.blue()
    indicator.toggle(Color.RED)
    assert indicator.level(Color.RED) is True
    assert indicator.level(Color.BLUE) is True
    assert indicator.level(Color.GREEN) is False
    indicator.toggle(Color.RED)
    assert indicator.level(Color.RED) is False


def test_double_toggle_restores_state():
    indicator = RgbIndicator()
    indicator.green()
    before = indicator.state
    for color in Color:
        indicator.toggle(color)
        indicator.toggle(color)
    assert indicator.state == before


def test_on_change_receives_every_write():
    events = []
    indicator = RgbIndicator(on_change=lambda color, level: events.append((color, level)))
    assert events == [(Color.RED, False), (Color.GREEN, False), (Color.BLUE, False)]
    events.clear()
    indicator.red()
    indicator.toggle(Color.GREEN)
    assert events == [
        (Color.RED, True),
        (Color.GREEN, False),
        (Color.BLUE, False),
        (Color.GREEN, True),
    ]