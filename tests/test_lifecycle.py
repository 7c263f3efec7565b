import pytest

from stockledger.core.lifecycle import apply_transition, set_terminal_amount
from stockledger.errors import InvalidStateTransitionError

from factories import make_sale


def test_forward_path_to_delivered():
    sale = make_sale(1)
    assert apply_transition(sale, "sent").changes == {"parcel_status": "sent"}
    result = apply_transition(make_sale(1, status="sent"), "delivered", amount=60)
    assert result.changes == {"parcel_status": "delivered", "sold_amount": 60.0}


@pytest.mark.parametrize("status", ["processing", "sent"])
def test_returned_is_reachable_before_delivery(status):
    result = apply_transition(make_sale(1, status=status), "returned", amount=15)
    assert result.changes == {"parcel_status": "returned", "return_cost": 15.0}


def test_same_state_is_a_no_op():
    result = apply_transition(make_sale(1, status="sent"), "sent")
    assert not result.changed
    assert result.changes == {}


@pytest.mark.parametrize(
    "current,target",
    [("sent", "processing"), ("delivered", "sent"), ("returned", "processing"), ("processing", "delivered"), ("delivered", "returned")],
)
def test_disallowed_transitions(current, target):
    with pytest.raises(InvalidStateTransitionError) as exc:
        apply_transition(make_sale(1, status=current), target, amount=10)
    assert exc.value.reason == "state"


@pytest.mark.parametrize("amount", [None, 0, -5])
def test_terminal_states_need_a_positive_amount(amount):
    with pytest.raises(InvalidStateTransitionError):
        apply_transition(make_sale(1, status="sent"), "delivered", amount=amount)


def test_amount_on_non_terminal_target_is_rejected():
    with pytest.raises(InvalidStateTransitionError):
        apply_transition(make_sale(1), "sent", amount=10)


def test_unknown_status_is_rejected():
    with pytest.raises(InvalidStateTransitionError):
        apply_transition(make_sale(1), "lost")


def test_staff_cannot_rewrite_a_recorded_amount():
    sale = make_sale(1, status="delivered", sold_amount=50)
    with pytest.raises(InvalidStateTransitionError) as exc:
        apply_transition(sale, "delivered", amount=70, role="staff")
    assert exc.value.reason == "permission"


def test_admin_can_correct_a_recorded_amount():
    sale = make_sale(1, status="returned", return_cost=10)
    assert set_terminal_amount(sale, 12, role="admin").changes == {"return_cost": 12.0}
    assert not set_terminal_amount(sale, 10, role="admin").changed


def test_no_amount_to_record_outside_terminal_states():
    with pytest.raises(InvalidStateTransitionError):
        set_terminal_amount(make_sale(1, status="sent"), 10, role="admin")


@pytest.mark.parametrize("status", ["processing", "sent"])
def test_amount_on_same_non_terminal_state_is_rejected(status):
    with pytest.raises(InvalidStateTransitionError) as exc:
        apply_transition(make_sale(1, status=status), status, amount=40)
    assert exc.value.reason == "state"
