# File: tests/test_partition.py
import pytest

from site_indexer.domains import load_domains, parse_domains
from site_indexer.models import DomainEntry
from site_indexer.partition import assign, partition, shard_for
from site_indexer.utils import stable_hash

DOMAINS = [DomainEntry.from_raw(f"site{i}.example") for i in range(40)]


def test_shard_for_is_hash_modulo():
    for entry in DOMAINS:
        assert shard_for(entry.host, 7) == stable_hash(entry.host) % 7


def test_shard_for_single_shard():
    assert {shard_for(d.host, 1) for d in DOMAINS} == {0}


def test_every_host_lands_in_exactly_one_shard():
    count = 4
    owned = [assign(DOMAINS, i, count) for i in range(count)]
    hosts = [d.host for shard in owned for d in shard]
    assert sorted(hosts) == sorted(d.host for d in DOMAINS)
    assert len(hosts) == len(set(hosts))


def test_assign_preserves_list_order():
    owned = assign(DOMAINS, 1, 3)
    positions = [DOMAINS.index(d) for d in owned]
    assert positions == sorted(positions)


def test_assign_does_not_depend_on_list_position():
    shuffled = list(reversed(DOMAINS))
    assert {d.host for d in assign(DOMAINS, 2, 3)} == {d.host for d in assign(shuffled, 2, 3)}


def test_assign_caps_to_first_matches():
    full = assign(DOMAINS, 0, 2)
    capped = assign(DOMAINS, 0, 2, max_domains_per_shard=3)
    assert capped == full[:3]


@pytest.mark.parametrize("index,count", [(2, 2), (-1, 2), (0, 0)])
def test_assign_rejects_bad_shard(index, count):
    with pytest.raises(ValueError):
        assign(DOMAINS, index, count)


def test_partition_matches_assign():
    shards = partition(DOMAINS, 3)
    for i in range(3):
        assert shards[i] == assign(DOMAINS, i, 3)


def test_parse_domains_csv_rules():
    lines = [
        "# comment line",
        "",
        "Alpha,alpha.example",
        "beta.example,",
        "Gamma,https://GAMMA.example/",
        "Dup,alpha.example",
        "Broken,ftp://nope.example",
    ]
    entries = parse_domains(lines)
    assert [e.canonical_origin for e in entries] == [
        "https://alpha.example",
        "https://beta.example",
        "https://gamma.example",
    ]
    assert entries[0].raw_input == "alpha.example"
    assert entries[2].homepage == "https://gamma.example/"


def test_load_domains_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_domains(tmp_path / "nope.csv")


def test_load_domains_reads_file(write_domains):
    path = write_domains(["a.example", "b.example", "a.example"])
    assert [e.host for e in load_domains(path)] == ["a.example", "b.example"]
