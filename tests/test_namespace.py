"""
Tests for namespace ("global") handles over tuple keys.
"""

import threading

import pytest

from globaldb import END, ClosedError, CodecError, NotFoundError, Store


def _walk(namespace, *fixed):
    subscripts = []
    sub = namespace.next(*fixed, "")
    while sub != END:
        subscripts.append(sub)
        sub = namespace.next(*fixed, sub)
    return subscripts


class TestAdmissionScenario:
    """Walking admission dates of one patient."""

    @pytest.fixture
    def admission(self, m_store):
        admission = m_store.namespace("admission")
        admission.set(1, "2020-06-07", "Ward 1")
        admission.set(1, "2020-11-12", "Ward 2")
        admission.set(1, "2021-01-03", "Ward 3")
        admission.set(2, "2020-01-01", "Ward 4")
        return admission

    def test_next_dates(self, admission):
        """Test next() with a fixed patient id walks only that patient's dates."""
        assert admission.next(1, "") == "2020-06-07"
        assert admission.next(1, "2020-06-07") == "2020-11-12"
        assert admission.next(1, "2020-11-12") == "2021-01-03"
        assert admission.next(1, "2021-01-03") == END

    def test_previous_from_absent_date(self, admission):
        """Test previous() locates the neighbor of a date that is not stored."""
        assert admission.previous(1, "2021-01-01") == "2020-11-12"
        assert admission.previous(1, "") == "2021-01-03"
        assert admission.previous(1, "2020-06-07") == END

    def test_top_level(self, admission):
        """Test walking patient ids skips their dates."""
        assert _walk(admission) == [1, 2]
        assert admission.next() == 1
        assert admission.previous() == 2
        assert admission.subscripts() == [1, 2]
        assert admission.subscripts(1) == ["2020-06-07", "2020-11-12", "2021-01-03"]

    def test_absent_prefix(self, admission):
        """Test walking under a prefix with no records ends immediately."""
        assert admission.next(3, "") == END
        assert admission.previous(3, "") == END
        assert admission.next(1, "2020-11-12", "") == END

    def test_get(self, admission):
        """Test point reads through the handle."""
        assert admission.get(1, "2020-11-12") == "Ward 2"
        assert admission.get_bytes(2, "2020-01-01") == b"Ward 4"
        with pytest.raises(NotFoundError) as exc_info:
            admission.get(1)
        assert exc_info.value.key == ("admission", 1)

    def test_same_store_keys(self, m_store, admission):
        """Test the handle composes ordinary store keys."""
        assert m_store.get(("admission", 1, "2020-06-07")) == "Ward 1"
        assert admission.key(1, "x") == ("admission", 1, "x")


class TestNamespaceIsolation:
    """Namespaces share one keyspace without overlapping."""

    def test_prefix_names_do_not_leak(self, m_store):
        """Test "ab" records are not seen under "a"."""
        a = m_store.namespace("a")
        ab = m_store.namespace("ab")
        a.set(1, "a1")
        ab.set(0, "ab0")
        ab.set(2, "ab2")

        assert _walk(a) == [1]
        assert _walk(ab) == [0, 2]
        assert a.previous() == 1
        assert a.delete_tree() == 1
        assert m_store.namespaces() == ["ab"]

    def test_mixed_subscript_types(self, m_store):
        """Test integers order before strings at the same level."""
        g = m_store.namespace("g")
        for sub in ("b", 10, "a", -5):
            g.set(sub, "x")
        assert _walk(g) == [-5, 10, "a", "b"]

    def test_invalid_name(self, m_store):
        """Test namespace names must be non-empty strings."""
        with pytest.raises(CodecError):
            m_store.namespace("")
        with pytest.raises(CodecError):
            m_store.namespace(1)


class TestData:
    """Tests for node descriptions."""

    def test_data_values(self, admissions):
        """Test 0, 1, 10 and 11."""
        patient = admissions.namespace("patient")
        admission = admissions.namespace("admission")
        admission.set(1, "note")

        assert admission.data(9) == 0
        assert patient.data(1) == 1
        assert admission.data(2) == 10
        assert admission.data(1) == 11
        assert admission.data() == 10

    def test_defined_vs_data(self, admissions):
        """Test defined() is true only for nodes with a value."""
        admission = admissions.namespace("admission")
        assert not admission.defined(1)
        assert admission.defined(1, "2020-11-12")


class TestDelete:
    """Tests for node and subtree deletion."""

    def test_delete_keeps_descendants(self, admissions):
        """Test delete() removes only the exact node."""
        admission = admissions.namespace("admission")
        admission.set(1, "note")

        assert admission.delete(1)
        assert not admission.delete(1)
        assert admission.data(1) == 10

    def test_delete_tree(self, admissions):
        """Test delete_tree() removes a node and its descendants."""
        admission = admissions.namespace("admission")
        assert admission.delete_tree(1) == 3
        assert _walk(admission) == [2]
        assert admission.delete_tree(1) == 0

    def test_delete_whole_namespace(self, admissions):
        """Test a namespace disappears with its last record."""
        assert admissions.namespace("admission").delete_tree() == 5
        assert admissions.namespaces() == ["patient"]


class TestIncrement:
    """Tests for counters inside a namespace."""

    def test_counter(self, m_store):
        """Test increment creates and updates a node."""
        hits = m_store.namespace("hits")
        assert hits.increment("home") == 1
        assert hits.increment("home", by=4) == 5
        assert hits.get("home") == "5"

    def test_root_counter(self, m_store):
        """Test incrementing the namespace root node."""
        seq = m_store.namespace("seq")
        seq.increment()
        seq.increment()
        assert seq.get() == "2"
        assert m_store.get("seq") == "2"


class TestMerge:
    """Tests for subtree copies."""

    def test_merge_namespace(self, admissions):
        """Test copying one namespace into another."""
        archive = admissions.namespace("archive")
        archive.set(9, "keep")
        archive.set(1, "2020-11-12", "old")

        copied = archive.merge(admissions.namespace("admission"))

        assert copied == 5
        assert archive.get(1, "2020-11-12") == "Ward 3"
        assert archive.get(2, "2021-01-09") == "Ward 2"
        assert archive.get(9) == "keep"
        assert admissions.namespace("admission").get(1, "2020-11-12") == "Ward 3"

    def test_merge_below_subscripts(self, admissions):
        """Test copying into a subtree of the target."""
        archive = admissions.namespace("archive")
        archive.merge(admissions.namespace("admission", 1), "patient-1")

        assert archive.subscripts("patient-1") == ["2020-11-12", "2021-03-02", "2022-08-30"]

    def test_merge_empty_source(self, m_store):
        """Test merging an empty namespace copies nothing."""
        assert m_store.namespace("a").merge(m_store.namespace("missing")) == 0

    def test_merge_too_deep_writes_nothing(self, m_store):
        """Test a merge whose keys would exceed 64 segments is rejected whole."""
        source = m_store.namespace("src")
        source.set("shallow", "x")
        source.set(*range(62), "deep")  # 63 segments with the name
        target = m_store.namespace("dst")

        with pytest.raises(CodecError):
            target.merge(source, "a", "b")

        assert target.data("a") == 0
        assert m_store.namespaces() == ["src"]

        # Exactly 64 segments still fits
        assert target.merge(source, "a") == 2
        assert target.get("a", *range(62)) == "deep"

    def test_merge_across_stores(self, m_store):
        """Test copying a namespace out of another store."""
        with Store().open(key_type="m") as other:
            other.namespace("remote").set(1, "a", "x")
            other.namespace("remote").set(2, "y")

            local = m_store.namespace("local")
            assert local.merge(other.namespace("remote")) == 2
            assert local.get(1, "a") == "x"
            assert local.get(2) == "y"

    def test_merge_into_closed_store(self, m_store):
        """Test a closed target store rejects the merge."""
        other = Store().open(key_type="m")
        target = other.namespace("t")
        other.close()
        m_store.namespace("s").set(1, "x")

        with pytest.raises(ClosedError):
            target.merge(m_store.namespace("s"))

    def test_opposite_merges_do_not_deadlock(self):
        """Test two threads merging between two stores in opposite directions."""
        with Store().open(key_type="m") as left, Store().open(key_type="m") as right:
            for n in range(20):
                left.namespace("data").set(n, "l")
                right.namespace("data").set(n, "r")

            def copy(src, dst):
                for n in range(50):
                    dst.namespace("copy", n).merge(src.namespace("data"))

            threads = [
                threading.Thread(target=copy, args=(left, right)),
                threading.Thread(target=copy, args=(right, left)),
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join(timeout=30)

            assert not any(t.is_alive() for t in threads)
            assert left.namespace("copy", 49).get(0) == "r"
            assert right.namespace("copy", 49).get(0) == "l"

    def test_merge_sees_consistent_source(self, m_store):
        """Test a merge never copies half of a concurrent delete_tree."""
        source = m_store.namespace("src")
        stop = threading.Event()

        def churn():
            while not stop.is_set():
                with m_store._lock:
                    source.delete_tree()
                    for n in range(10):
                        source.set(n, "v")

        for n in range(10):
            source.set(n, "v")
        worker = threading.Thread(target=churn)
        worker.start()
        try:
            for round_ in range(200):
                target = m_store.namespace("dst", round_)
                assert target.merge(source) == 10
        finally:
            stop.set()
            worker.join()


class TestFixedPrefix:
    """Tests for handles bound to leading subscripts."""

    def test_prefix_handle(self, admissions):
        """Test a handle bound to one patient."""
        patient1 = admissions.namespace("admission", 1)

        assert patient1.name == "admission"
        assert patient1.prefix == (1,)
        assert _walk(patient1) == ["2020-11-12", "2021-03-02", "2022-08-30"]
        assert patient1.get("2021-03-02") == "Ward 7"
        assert patient1.key("x") == ("admission", 1, "x")

    def test_prefix_set_and_delete_tree(self, admissions):
        """Test writes through a prefix handle land under the prefix."""
        patient2 = admissions.namespace("admission", 2)
        patient2.set("2023-02-02", "Ward 9")
        assert admissions.get(("admission", 2, "2023-02-02")) == "Ward 9"

        assert patient2.delete_tree() == 3
        assert _walk(admissions.namespace("admission")) == [1]
