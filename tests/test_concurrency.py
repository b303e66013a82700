import pytest

from martin_relay.errors import ConcurrencyBusy
from martin_relay.services.concurrency import ConcurrencyGate
from martin_relay.services.store import InMemoryStore
from tests.conftest import SENDER


@pytest.fixture
def gate():
    return ConcurrencyGate(InMemoryStore())


class TestConcurrencyGate:
    def test_enter_and_leave(self, gate):
        assert gate.try_enter(SENDER) is True
        assert gate.is_busy(SENDER) is True
        assert gate.try_enter(SENDER) is False
        gate.leave(SENDER)
        assert gate.is_busy(SENDER) is False
        assert gate.try_enter(SENDER) is True

    def test_leave_is_idempotent(self, gate):
        gate.leave(SENDER)
        gate.try_enter(SENDER)
        gate.leave(SENDER)
        gate.leave(SENDER)
        assert gate.is_busy(SENDER) is False

    def test_senders_are_independent(self, gate):
        assert gate.try_enter(SENDER)
        assert gate.try_enter("5521988887777")

    def test_claim_rejects_second_holder(self, gate):
        with gate.claim(SENDER):
            with pytest.raises(ConcurrencyBusy) as exc:
                with gate.claim(SENDER):
                    pass
            assert exc.value.sender_key == SENDER
            assert gate.is_busy(SENDER)
        assert not gate.is_busy(SENDER)

    def test_claim_releases_on_exception(self, gate):
        with pytest.raises(RuntimeError):
            with gate.claim(SENDER):
                raise RuntimeError("backend exploded")
        assert not gate.is_busy(SENDER)
