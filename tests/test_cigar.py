from bamgroupstats.cigar import deletion_count, insertion_count, mapped_base_count, query_consumed

S, M, I, D, N, H, EQ, X = 4, 0, 1, 2, 3, 5, 7, 8


def test_mapped_base_count_excludes_clips():
    assert mapped_base_count([(S, 5), (M, 10), (S, 5)]) == 10
    assert mapped_base_count([(M, 20)]) == 20


def test_mapped_base_count_ignores_indels_and_skips():
    ops = [(H, 3), (M, 8), (I, 2), (M, 5), (D, 4), (M, 3), (N, 1000), (EQ, 6), (X, 1)]
    assert mapped_base_count(ops) == 8 + 5 + 3 + 6 + 1


def test_indel_operation_counts():
    ops = [(M, 5), (I, 3), (M, 5), (D, 10), (M, 2), (I, 1), (D, 1)]
    assert insertion_count(ops) == 2
    assert deletion_count(ops) == 2


def test_query_consumed():
    assert query_consumed([(H, 5), (S, 2), (M, 10), (I, 3), (D, 4), (M, 5)]) == 20


def test_missing_cigar_counts_zero():
    assert mapped_base_count(None) == 0
    assert insertion_count([]) == 0
    assert deletion_count(None) == 0
    assert query_consumed(None) == 0
