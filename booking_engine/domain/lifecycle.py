"""
booking_engine/domain/lifecycle.py

预订生命周期状态机

draft -> reserved -> confirmed -> checked_in -> checked_out
reserved | confirmed -> cancelled
reserved -> no_show
cancelled / no_show / checked_out 为终态；入住之后不可取消。
"""
from booking_engine.engine.state_machine import StateMachine, StateMachineConfig, StateTransition
from booking_engine.exceptions import InvalidStatusTransition
from booking_engine.models.ontology import BookingStatus


class BookingTrigger:
    """生命周期触发动作"""
    RESERVE = "reserve"
    CONFIRM = "confirm"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    CANCEL = "cancel"
    MARK_NO_SHOW = "mark_no_show"


TERMINAL_STATUSES = frozenset({
    BookingStatus.CANCELLED, BookingStatus.NO_SHOW, BookingStatus.CHECKED_OUT,
})

CANCELLABLE_STATUSES = frozenset({BookingStatus.RESERVED, BookingStatus.CONFIRMED})


BOOKING_LIFECYCLE = StateMachineConfig(
    name="Booking",
    states=[s.value for s in BookingStatus],
    transitions=[
        StateTransition(BookingStatus.DRAFT.value, BookingStatus.RESERVED.value, BookingTrigger.RESERVE),
        StateTransition(BookingStatus.RESERVED.value, BookingStatus.CONFIRMED.value, BookingTrigger.CONFIRM),
        StateTransition(BookingStatus.CONFIRMED.value, BookingStatus.CHECKED_IN.value, BookingTrigger.CHECK_IN),
        StateTransition(BookingStatus.CHECKED_IN.value, BookingStatus.CHECKED_OUT.value, BookingTrigger.CHECK_OUT),
        StateTransition(BookingStatus.RESERVED.value, BookingStatus.CANCELLED.value, BookingTrigger.CANCEL),
        StateTransition(BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value, BookingTrigger.CANCEL),
        StateTransition(BookingStatus.RESERVED.value, BookingStatus.NO_SHOW.value, BookingTrigger.MARK_NO_SHOW),
    ],
    initial_state=BookingStatus.DRAFT.value,
    terminal_states=[s.value for s in TERMINAL_STATUSES],
)


def booking_state_machine(status: BookingStatus) -> StateMachine:
    """以当前状态创建预订状态机"""
    return StateMachine(BOOKING_LIFECYCLE, current_state=BookingStatus(status).value)


def next_status(status: BookingStatus, trigger: str) -> BookingStatus:
    """
    计算触发动作后的新状态

    Raises:
        InvalidStatusTransition: 当前状态不允许该动作
    """
    machine = booking_state_machine(status)
    target = machine.target_of(trigger)
    if target is None:
        raise InvalidStatusTransition(
            f"状态为 {BookingStatus(status).value} 的预订不允许 {trigger}",
            status=BookingStatus(status).value, trigger=trigger,
        )
    return BookingStatus(target)
