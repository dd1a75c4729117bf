"""Tests for version numbers and ranges"""

import copy
import itertools
import pickle

import pytest

from deskpm.core.version import Dependency, Version


class TestVersion:
    """Tests for version comparison."""

    def test_equal_with_zero_padding(self):
        assert Version("1.0") == Version("1")
        assert Version("1.0.0") == Version("1.0")
        assert hash(Version("1.0.0")) == hash(Version("1"))

    def test_ordering(self):
        assert Version("1.0") < Version("1.0.1")
        assert Version("1.9") < Version("1.10")
        assert Version("2") > Version("1.99.99")

    def test_alpha_suffix(self):
        assert Version("2") < Version("2a")
        assert Version("2a") < Version("2b")
        assert Version("2b") < Version("3")

    def test_str_keeps_text(self):
        assert str(Version("1.0.0")) == "1.0.0"
        assert Version("1.0.0").normalized() == "1"
        assert Version("2.5.0.1").normalized() == "2.5.0.1"

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            Version.parse("1..2")
        with pytest.raises(ValueError):
            Version.parse("abc")

    def test_immutable(self):
        v = Version("1.2")
        with pytest.raises(AttributeError):
            v._text = "3"

    def test_copy_and_pickle(self):
        v = Version("1.2.0")
        assert copy.deepcopy(v) is v
        restored = pickle.loads(pickle.dumps(v))
        assert restored == v
        assert str(restored) == "1.2.0"

    def test_total_order(self):
        versions = [Version(t) for t in
                    ["0", "1", "1.0.1", "1.2", "1.2a", "1.10", "2", "2.0.0.1", "10"]]
        for a, b in itertools.product(versions, repeat=2):
            results = [a < b, a == b, a > b]
            assert results.count(True) == 1
        for a, b, c in itertools.product(versions, repeat=3):
            if a < b and b < c:
                assert a < c

    def test_sorting(self):
        texts = ["1.10", "1.2", "1", "1.2.1", "0.9"]
        assert [str(v) for v in sorted(Version(t) for t in texts)] == \
            ["0.9", "1", "1.2", "1.2.1", "1.10"]


class TestDependency:
    """Tests for version ranges."""

    def test_half_open_range(self):
        dep = Dependency("B", Version("1.0"), Version("2.0"), True, False)
        assert dep.test(Version("1.5"))
        assert dep.test(Version("1.0"))
        assert not dep.test(Version("2.0"))
        assert not dep.test(Version("0.9"))

    def test_inclusive_max(self):
        dep = Dependency("B", Version("1.0"), Version("2.0"), False, True)
        assert not dep.test(Version("1.0"))
        assert dep.test(Version("2.0"))
        assert dep.test(Version("2.0.0"))

    def test_parse(self):
        dep = Dependency.parse("org.example.Runtime", "[1.0, 2.0)")
        assert dep.package == "org.example.Runtime"
        assert dep.min == Version("1")
        assert dep.max == Version("2")
        assert dep.min_included is True
        assert dep.max_included is False

    def test_parse_exclusive(self):
        dep = Dependency.parse("x", "(1, 3]")
        assert not dep.min_included
        assert dep.max_included

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            Dependency.parse("x", "1.0 - 2.0")

    def test_str(self):
        dep = Dependency.parse("x", "[1.0,2.0)")
        assert dep.range_string() == "[1.0, 2.0)"
        assert str(dep) == "x [1.0, 2.0)"
