from nexus_agent.tools.calculator import (
    CALCULATION_ERROR,
    INVALID_CHARACTERS,
    evaluate,
    evaluate_outcome,
)


def test_calculator_basic_arithmetic():
    assert evaluate("12 * 7") == "84"
    assert evaluate("10 / 4") == "2.5"
    assert evaluate("10/2") == "5"
    assert evaluate("7 % 3") == "1"
    assert evaluate("-3 + 1") == "-2"
    assert evaluate("  (500 + 200) / 12 ").startswith("58.333")


def test_calculator_caret_is_power():
    assert evaluate("2^10") == "1024"
    assert evaluate("2**3") == "8"


def test_calculator_rejects_non_arithmetic_before_evaluation():
    assert evaluate("1; deleteAll()") == INVALID_CHARACTERS
    assert evaluate("__import__('os').system('ls')") == INVALID_CHARACTERS
    assert evaluate("x = 1") == INVALID_CHARACTERS
    assert evaluate("") == INVALID_CHARACTERS
    outcome = evaluate_outcome("abc")
    assert outcome.ok is False


def test_calculator_failures_become_error_text():
    assert evaluate("1/0") == CALCULATION_ERROR
    assert evaluate("(1 + ") == CALCULATION_ERROR
    assert evaluate("1.5.2") == CALCULATION_ERROR
    assert evaluate("()") == CALCULATION_ERROR
    assert evaluate("9**9**9") == CALCULATION_ERROR
    assert evaluate_outcome("5 % 0").ok is False


def test_calculator_large_results_are_returned():
    assert evaluate("1000000 * 10000000000") == "10000000000000000"
    assert evaluate("10^16") == "10000000000000000"
    assert evaluate("2^100") == "1267650600228229401496703205376"


def test_calculator_non_finite_float_is_error():
    assert evaluate("(10^308 * 1.5) * 10") == CALCULATION_ERROR


def test_calculator_remainder_takes_sign_of_dividend():
    assert evaluate("-7 % 3") == "-1"
    assert evaluate("7 % -3") == "1"
    assert evaluate("-7 % -3") == "-1"
    assert evaluate("-7.5 % 2") == "-1.5"
    assert evaluate("6 % 3") == "0"
