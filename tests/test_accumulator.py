import logging

import pytest

from bamgroupstats.accumulator import StatsAccumulator


def test_buckets_are_created_lazily():
    acc = StatsAccumulator(3)
    assert acc.n_groups == 3
    assert list(acc.buckets()) == []
    acc.bucket(2, 1, 100)
    assert acc.get(2, 1) is not None
    assert acc.get(2, 0) is None
    assert [(g, m) for g, m, _ in acc.buckets()] == [(2, 1)]


def test_buckets_iterate_in_index_order():
    acc = StatsAccumulator(2)
    acc.bucket(1, 0, 50)
    acc.bucket(0, 1, 50)
    acc.bucket(0, 0, 50)
    assert [(g, m) for g, m, _ in acc.buckets()] == [(0, 0), (0, 1), (1, 0)]


def test_read_length_warns_once(caplog):
    acc = StatsAccumulator(1)
    acc.bucket(0, 0, 100)
    with caplog.at_level(logging.WARNING, logger="bamgroupstats.accumulator"):
        acc.bucket(0, 0, 90)
        acc.bucket(0, 0, 80)
    assert acc.get(0, 0).read_length == 100
    assert len(caplog.records) == 1


def test_merge_adds_counters_and_samples():
    left = StatsAccumulator(2)
    right = StatsAccumulator(2)
    a = left.bucket(0, 0, 100)
    a.count, a.gc, a.insert_sizes = 2, 80, [300]
    b = right.bucket(0, 0, 100)
    b.count, b.dups, b.insert_sizes = 3, 1, [310, 320]
    c = right.bucket(1, 1, 75)
    c.count, c.umap = 1, 1

    left.merge(right)

    merged = left.get(0, 0)
    assert merged.count == 5
    assert merged.dups == 1
    assert merged.gc == 80
    assert merged.insert_sizes == [300, 310, 320]
    assert left.get(1, 1).read_length == 75
    assert left.get(1, 1).umap == 1


def test_zero_groups_rejected():
    with pytest.raises(ValueError):
        StatsAccumulator(0)


def test_zero_length_does_not_pin_read_length(caplog):
    acc = StatsAccumulator(1)
    acc.bucket(0, 0, 0)
    with caplog.at_level(logging.WARNING, logger="bamgroupstats.accumulator"):
        acc.bucket(0, 0, 50)
        acc.bucket(0, 0, 0)
    assert acc.get(0, 0).read_length == 50
    assert caplog.records == []
