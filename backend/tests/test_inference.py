import pytest

from nova.inference import DATE, NUMERIC, TEXT, infer_data_type, is_date, is_numeric, sample_column


@pytest.mark.parametrize(
    "samples",
    [
        ["1", "2.5", "-3", "0", "10"],
        ["30", "25"],
        ["1e3", ".5", "+7"],
    ],
)
def testInferNumeric(samples):
    assert infer_data_type(samples) == NUMERIC


def testInferDate():
    assert infer_data_type(["2024-01-01", "2024-02-15"]) == DATE
    assert infer_data_type(["Jan 5, 2024", "2024/03/01"]) == DATE


def testInferTextWhenAnyValueIsNeitherNumberNorDate():
    """目的: 1件でも数値でも日付でもない値があれば text になることを確認する。"""
    assert infer_data_type(["1", "2", "abc"]) == TEXT
    assert infer_data_type(["Alice", "Bob"]) == TEXT


def testInferMixedNumberAndDateFallsBackToDateCheck():
    # 数値でない値が1件あれば日付判定に進む
    assert infer_data_type(["2024-01-01", "2024-02-15", "hello"]) == TEXT


def testInferEmptySamplesIsText():
    assert infer_data_type([]) == TEXT


def testIsNumericRules():
    assert is_numeric(" 42 ")
    assert is_numeric("-0.25")
    assert not is_numeric("")
    assert not is_numeric("   ")
    assert not is_numeric("nan")
    assert not is_numeric("1_000")
    assert not is_numeric("12abc")


def testIsDateRules():
    assert is_date("2024-01-01")
    assert is_date("2024-01-01T10:00:00Z")
    assert not is_date("")
    assert not is_date("hello world")


def testSampleColumnTakesFirstFiveNonEmptyTrimmedValuesInRowOrder():
    """目的: 空値を飛ばしつつ、行順で最大5件をtrimして集めることを確認する。"""
    rows = [[" 1 "], [""], ["  "], ["2"], ["3"], ["4"], ["5"], ["6"]]

    assert sample_column(rows, 0) == ["1", "2", "3", "4", "5"]


def testSampleColumnSkipsShortRows():
    rows = [["a", "1"], ["b"], ["c", "3"]]

    assert sample_column(rows, 1) == ["1", "3"]
    assert sample_column(rows, 5) == []
