import pytest

from srr.mode import resolve_mode
from srr.models import Mode


@pytest.mark.parametrize(
    "declared,ready_own,ready_proxy,expected_mode,expected_found",
    [
        (Mode.SERVE, 0, 5, Mode.PROXY, False),
        (Mode.PROXY, 3, 0, Mode.SERVE, True),
        (Mode.PROXY, 0, 0, Mode.SERVE, False),
        (Mode.SERVE, 0, 0, Mode.SERVE, False),
        (Mode.SERVE, 2, 5, Mode.SERVE, True),
        (Mode.PROXY, 2, 5, Mode.PROXY, True),
    ],
)
def test_mode_table(declared, ready_own, ready_proxy, expected_mode, expected_found):
    decision = resolve_mode(declared, ready_own, ready_proxy)
    assert decision.mode is expected_mode
    assert decision.own_backends_found is expected_found
