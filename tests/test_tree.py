import time

import pytest

from apptagcap.packet import FlowInfo
from apptagcap.tree import VALID_TIME, Entry, Tree, TreeLevel

IP_A = bytes([10, 0, 0, 1])
IP_B = bytes([10, 0, 0, 2])
IP_C = bytes([10, 0, 0, 3])


def flow(ip=IP_A, proto=6, port=80, version=4):
    return FlowInfo(local_ip=ip, ip_version=version, proto=proto, local_port=port)


def entry(f, app="app"):
    return Entry(flow=f, app_name=app)


@pytest.fixture
def port_tree():
    tree = Tree(TreeLevel.LOCAL_PORT)
    tree.set_common_value(flow())
    return tree


def test_tree_level_next_wraps():
    assert TreeLevel.LOCAL_PORT.next() is TreeLevel.PROTO
    assert TreeLevel.PROTO.next() is TreeLevel.LOCAL_IP
    assert TreeLevel.LOCAL_IP.next() is TreeLevel.LOCAL_PORT


def test_entry_valid_and_expired():
    e = entry(flow())
    assert e.valid()
    e.last_update = time.monotonic() - VALID_TIME - 1
    assert not e.valid()
    e.update_time()
    assert e.valid()


def test_entry_level_compare_per_level():
    e = entry(flow())
    e.level = TreeLevel.PROTO
    assert e.level_compare(flow(ip=IP_B, port=99))
    assert not e.level_compare(flow(proto=17))
    e.level = TreeLevel.LOCAL_IP
    assert e.level_compare(flow(proto=17))
    assert not e.level_compare(flow(ip=IP_B))
    assert not e.level_compare(flow(ip=bytes(16), version=6))


def test_entry_level_compare_bad_version():
    e = entry(flow(version=5))
    e.level = TreeLevel.LOCAL_IP
    with pytest.raises(ValueError):
        e.level_compare(flow(version=5))


def test_insert_sets_child_level(port_tree):
    e = entry(flow())
    port_tree.insert(e)
    assert port_tree.children == [e]
    assert e.level is TreeLevel.PROTO
    assert port_tree.find(flow()) is e


def test_insert_splits_matching_leaf(port_tree):
    e1 = entry(flow(ip=IP_A))
    e2 = entry(flow(ip=IP_B))
    port_tree.insert(e1)
    port_tree.insert(e2)
    assert len(port_tree.children) == 1
    subtree = port_tree.children[0]
    assert isinstance(subtree, Tree)
    assert subtree.level is TreeLevel.PROTO
    assert subtree.common_value == 6
    assert subtree.children == [e1, e2]
    assert e1.level is TreeLevel.LOCAL_IP and e2.level is TreeLevel.LOCAL_IP
    assert port_tree.find(flow(ip=IP_A)) is e1
    assert port_tree.find(flow(ip=IP_B)) is e2
    assert port_tree.find(flow(ip=IP_C)) is subtree


def test_find_returns_self_without_match(port_tree):
    port_tree.insert(entry(flow()))
    assert port_tree.find(flow(proto=17)) is port_tree


def test_find_returns_tree_when_leaf_differs(port_tree):
    port_tree.insert(entry(flow(ip=IP_A)))
    assert port_tree.find(flow(ip=IP_B)) is port_tree


def test_duplicate_insert_is_ignored(port_tree, capsys):
    port_tree.insert(entry(flow()))
    port_tree.insert(entry(flow()))
    assert len(port_tree.children) == 1
    assert isinstance(port_tree.children[0], Entry)
    assert "[EE]" in capsys.readouterr().err


def test_ip_level_subtree(port_tree):
    e1 = entry(flow(ip=IP_A, port=80))
    e2 = entry(flow(ip=IP_A, port=81))
    port_tree.insert(e1)
    port_tree.insert(e2)
    ip_tree = port_tree.children[0].children[0]
    assert ip_tree.level is TreeLevel.LOCAL_IP
    assert ip_tree.ip_version == 4
    assert ip_tree.common_value == IP_A
    assert e2.level is TreeLevel.LOCAL_PORT
    assert port_tree.find(flow(ip=IP_A, port=81)) is e2


def test_set_common_value_bad_version():
    tree = Tree(TreeLevel.LOCAL_IP)
    with pytest.raises(ValueError):
        tree.set_common_value(flow(version=7))


def test_save_results_copies_named_flows(port_tree):
    e1 = entry(flow(ip=IP_A), app="browser")
    e2 = entry(flow(ip=IP_B), app="")
    e3 = entry(flow(proto=17), app="browser")
    for e in (e1, e2, e3):
        port_tree.insert(e)
    results = {}
    port_tree.save_results(results)
    assert list(results) == ["browser"]
    assert results["browser"] == [e1.flow, e3.flow]
    assert results["browser"][0] is not e1.flow


def test_describe_tree(port_tree):
    port_tree.insert(entry(flow(ip=IP_A), app="srv"))
    port_tree.insert(entry(flow(ip=IP_B), app="srv"))
    lines = port_tree.describe().splitlines()
    assert lines[0] == ">{0} Port: <80>"
    assert lines[1] == "->{1} Protocol: <6>"
    assert len(lines) == 4
    assert lines[2].startswith('-->[2] "srv" (inode/PID:0)')


def test_describe_ipv6_tree():
    tree = Tree(TreeLevel.LOCAL_IP)
    tree.set_common_value(flow(ip=bytes(15) + b"\x01", version=6))
    assert tree.describe() == "-->{2} IPv6: <::1>"


def test_tree_level_compare_ip_version_mismatch():
    tree = Tree(TreeLevel.LOCAL_IP)
    tree.set_common_value(flow())
    assert tree.level_compare(flow(proto=17, port=1))
    assert not tree.level_compare(flow(ip=bytes(16), version=6))