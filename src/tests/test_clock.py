import pytest
from clock import LamportClock


def test_init():
    """Test that a new LamportClock initializes with the correct owner and a zero value."""
    clock = LamportClock("process1")
    assert clock.owner == "process1"
    assert clock.value == 0


def test_negative_counter_rejected():
    with pytest.raises(ValueError):
        LamportClock("process1", -1)


def test_increment_returns_new_clock():
    """Test that increment returns a new clock one higher and leaves the original alone."""
    clock = LamportClock("process1")

    ticked = clock.increment()
    assert ticked.value == 1
    assert ticked.owner == "process1"
    assert clock.value == 0

    assert ticked.increment().value == 2


def test_clock_is_immutable():
    clock = LamportClock("process1")
    with pytest.raises(AttributeError):
        clock.value = 5


def test_merge_with_smaller_value():
    """max(5, 3) + 1 = 6"""
    clock = LamportClock("process1", 5)
    assert clock.merge_on_receive(3).value == 6


def test_merge_with_larger_value():
    """max(5, 10) + 1 = 11"""
    clock = LamportClock("process1", 5)
    assert clock.merge_on_receive(10).value == 11


def test_merge_with_equal_value():
    """max(5, 5) + 1 = 6"""
    clock = LamportClock("process1", 5)
    assert clock.merge_on_receive(5).value == 6


def test_merge_keeps_owner():
    assert LamportClock("process1", 2).merge_on_receive(7).owner == "process1"


def test_merge_rejects_negative_counter():
    with pytest.raises(ValueError):
        LamportClock("process1").merge_on_receive(-3)


@pytest.mark.parametrize("local", [0, 1, 4, 9])
@pytest.mark.parametrize("received", [0, 1, 4, 9])
def test_merge_is_past_both_clocks(local, received):
    merged = LamportClock("p", local).merge_on_receive(received)
    assert merged.value == max(local, received) + 1
    assert merged.value >= local + 1
    assert merged.value >= received + 1


def test_str_representation():
    """Test that the string representation is formatted correctly."""
    clock = LamportClock("process1", 42)
    assert str(clock) == "process1: 42"


def test_multiple_operations():
    """Test a sequence of operations to ensure correct behavior."""
    clock1 = LamportClock("process1")
    clock2 = LamportClock("process2")

    # Process 1 does some work
    clock1 = clock1.increment()
    assert clock1.value == 1

    # Process 2 does some work
    clock2 = clock2.increment().increment()
    assert clock2.value == 2

    # Process 1 receives a message from Process 2 with clock value 2
    clock1 = clock1.merge_on_receive(clock2.value)
    assert clock1.value == 3  # max(1, 2) + 1 = 3

    # Process 2 does more work
    clock2 = clock2.increment()
    assert clock2.value == 3

    # Process 2 receives a message from Process 1 with clock value 3
    clock2 = clock2.merge_on_receive(clock1.value)
    assert clock2.value == 4  # max(3, 3) + 1 = 4
