import pytest

from bamgroupstats.divergence import parse_md, score
from bamgroupstats.errors import TagParseError

M, I, D = 0, 1, 2


@pytest.mark.parametrize(
    "md,expected",
    [
        ("20", (20, 0)),
        ("10A9", (19, 1)),
        ("0A0C18", (18, 2)),
        ("8^AG3T8", (19, 2)),
        ("5^ACGT5", (10, 1)),
        ("3^A0C4", (7, 2)),
        ("100", (100, 0)),
    ],
)
def test_parse_md(md, expected):
    assert parse_md(md) == expected


@pytest.mark.parametrize("md", ["", "10-5", "5^", "5^3", "12 3"])
def test_parse_md_rejects_malformed(md):
    with pytest.raises(TagParseError):
        parse_md(md)


def test_missing_md_scores_zero():
    result = score(None, [(M, 20)])
    assert result.fraction == 0.0
    assert result.mismatch_bases == 0


def test_score_plain_mismatches():
    result = score("0A0C18", [(M, 20)])
    assert result.mismatch_bases == 2
    assert result.fraction == pytest.approx(2 / 20)


def test_score_deletion_counts_once():
    # 8M2D12M: 19 matches + 1 mismatch + 1 deletion run - 1 deletion op
    result = score("8^AG3T8", [(M, 8), (D, 2), (M, 12)])
    assert result.mismatch_bases == 2
    assert result.fraction == pytest.approx(2 / 20)


def test_score_insertions_add_to_numerator():
    result = score("18A0", [(M, 3), (I, 1), (M, 16)])
    assert result.mismatch_bases == 1
    assert result.fraction == pytest.approx(2 / 19)


def test_score_malformed_md_recovers_to_zero():
    result = score("10-5", [(M, 15)])
    assert result.fraction == 0.0
    assert result.mismatch_bases == 0


def test_score_zero_aligned_total_is_zero_fraction():
    result = score("^AC", [(D, 2)])
    assert result.fraction == 0.0
    assert result.mismatch_bases == 1

    assert score("0", []).fraction == 0.0
