import pytest

from rvkern.errors import ErrorCode, KernelError, Panic, panic


def test_kernel_error_converts_number_to_code():
    err = KernelError(4, "missing device")
    assert err.code is ErrorCode.ENODEV
    assert str(err) == "missing device"


def test_kernel_error_default_message_is_code_name():
    err = KernelError(ErrorCode.ENOENT)
    assert err.message == "ENOENT"
    assert str(err) == "ENOENT"


def test_kernel_error_rejects_unknown_number():
    with pytest.raises(ValueError):
        KernelError(99)


@pytest.mark.parametrize("code", list(ErrorCode))
def test_codes_round_trip_through_error(code):
    assert KernelError(int(code)).code is code


def test_panic_raises_with_message():
    with pytest.raises(Panic) as info:
        panic("Too many devices")
    assert info.value.message == "Too many devices"


def test_panic_without_message():
    with pytest.raises(Panic) as info:
        panic(None)
    assert info.value.message == ""