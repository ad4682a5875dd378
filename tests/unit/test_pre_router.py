import random
from datetime import datetime

import pytest

from companion_core.routing.pre_router import (
    ACKNOWLEDGEMENT_RESPONSE,
    GREETING_RESPONSES,
    PreRouter,
)


def _router() -> PreRouter:
    return PreRouter(clock=lambda: datetime(2025, 3, 7, 14, 5, 9), rng=random.Random(7))


@pytest.mark.parametrize("utterance", ["hi", "Hello!", "good morning", "how are you?", "what's up"])
def test_greetings_short_circuit_with_fixed_reply(utterance: str) -> None:
    result = _router().classify(utterance)

    assert result.should_route is False
    assert result.response in GREETING_RESPONSES
    assert result.reason == "greeting"


def test_arithmetic_is_evaluated_exactly() -> None:
    router = _router()

    assert router.classify("2 + 2").response == "2 + 2 = 4"
    assert router.classify("what is 7 * 6?").response == "7 * 6 = 42"
    assert router.classify("calculate 10 / 4").response == "10 / 4 = 2.5"
    assert router.classify("1.5 - 0.5").response == "1.5 - 0.5 = 1"


def test_arithmetic_echoes_operands_as_written() -> None:
    router = _router()

    assert router.classify("2.50 * 2").response == "2.50 * 2 = 5"
    assert router.classify("compute 3. + 1.0").response == "3. + 1.0 = 4"


def test_division_by_zero_yields_nan_instead_of_raising() -> None:
    result = _router().classify("5 / 0")

    assert result.should_route is False
    assert result.response == "5 / 0 = NaN"


def test_external_data_answers_use_injected_clock() -> None:
    router = _router()

    assert router.classify("what time is it").response == "Current time: 2:05:09 PM"
    assert router.classify("what's the date").response == "Today is Friday, March 7, 2025"

    weather = router.classify("what's the weather in Austin")
    assert weather.should_route is False
    assert "austin" in weather.response
    assert weather.reason == "external_data:weather"

    politics = router.classify("who is the president")
    assert "real-time political information" in politics.response


@pytest.mark.parametrize("utterance", ["ok", "thanks", "thank you", "got it", "Yep"])
def test_acknowledgements(utterance: str) -> None:
    result = _router().classify(utterance)

    assert result.should_route is False
    assert result.response == ACKNOWLEDGEMENT_RESPONSE


@pytest.mark.parametrize(
    "utterance",
    [
        "hi, can you explain the benefits of unit testing",
        "what are the pros and cons of remote work",
        "how does photosynthesis work",
        "thanks for the summary of my notes",
        "summarize my notes about gardening",
    ],
)
def test_everything_else_is_routed(utterance: str) -> None:
    result = _router().classify(utterance)

    assert result.should_route is True
    assert result.response is None
