import pytest

from app.services.saga import Saga


def recorder(log, name, result=None, error=None):
    async def action():
        log.append(name)
        if error:
            raise error
        return result

    return action


def compensator(log, name, error=None):
    async def compensation(result):
        log.append((name, result))
        if error:
            raise error

    return compensation


@pytest.mark.asyncio
async def test_runs_steps_in_order_and_returns_results():
    log = []
    saga = Saga("test")
    saga.step("a", recorder(log, "a", result=1)).step("b", recorder(log, "b", result=2))

    results = await saga.run()

    assert log == ["a", "b"]
    assert results == {"a": 1, "b": 2}


@pytest.mark.asyncio
async def test_compensates_completed_steps_in_reverse_order():
    log = []
    saga = Saga("test")
    saga.step("a", recorder(log, "a", result="ra"), compensator(log, "undo a"))
    saga.step("b", recorder(log, "b", result="rb"), compensator(log, "undo b"))
    saga.step("c", recorder(log, "c", error=RuntimeError("boom")), compensator(log, "undo c"))

    with pytest.raises(RuntimeError, match="boom"):
        await saga.run()

    assert log == ["a", "b", "c", ("undo b", "rb"), ("undo a", "ra")]


@pytest.mark.asyncio
async def test_failing_compensation_does_not_mask_original_error():
    log = []
    saga = Saga("test")
    saga.step("a", recorder(log, "a"), compensator(log, "undo a"))
    saga.step("b", recorder(log, "b"), compensator(log, "undo b", error=ValueError("undo failed")))
    saga.step("c", recorder(log, "c", error=RuntimeError("boom")))

    with pytest.raises(RuntimeError, match="boom"):
        await saga.run()

    # Remaining compensations still run
    assert ("undo a", None) in log
    assert saga.compensation_failures == ["b"]


@pytest.mark.asyncio
async def test_steps_without_compensation_are_skipped_on_unwind():
    log = []
    saga = Saga("test")
    saga.step("a", recorder(log, "a"))
    saga.step("b", recorder(log, "b", error=RuntimeError("boom")))

    with pytest.raises(RuntimeError):
        await saga.run()

    assert log == ["a", "b"]
