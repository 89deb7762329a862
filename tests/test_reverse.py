"""
Tests for the reverse dependency filter.
"""

import pytest

from revdeps.modules.classifier import BrokennessClassifier
from revdeps.modules.records import Deferred, PlatformSet
from revdeps.modules.registry import RegistryLookupError
from revdeps.modules.reverse import ReverseDependencyFilter, Verdict

from conftest import HOST


@pytest.fixture
def rfilter(log):
    return ReverseDependencyFilter(BrokennessClassifier(system=HOST, logger=log), logger=log)


def _boom():
    raise ValueError("bad recipe")


class TestFilter:

    def test_direct_dependents(self, rfilter, make_registry):
        reg = make_registry({
            "conduit": {},
            "pkg1": {"deps": ["conduit"]},
            "pkg2": {"deps": ["base", "conduit"]},
            "pkg3": {"deps": ["base"]},
            "base": {},
        })
        assert set(rfilter.filter(reg, "conduit")) == {"pkg1", "pkg2"}

    def test_result_values_are_records(self, rfilter, make_registry):
        reg = make_registry({"t": {}, "a": {"deps": ["t"], "version": "2"}})
        result = rfilter.filter(reg, "t")
        assert result["a"].name == "a"
        assert result["a"].version == "2"

    def test_unknown_target_raises(self, rfilter, make_registry):
        reg = make_registry({"a": {}})
        with pytest.raises(RegistryLookupError, match="nope"):
            rfilter.filter(reg, "nope")

    def test_target_that_is_not_a_package_raises(self, rfilter, make_registry):
        reg = make_registry({"weird": 42, "a": {"deps": ["weird"]}})
        with pytest.raises(RegistryLookupError):
            rfilter.filter(reg, "weird")

    def test_target_that_fails_to_evaluate_raises(self, rfilter, make_registry):
        reg = make_registry({"bad": Deferred("bad", _boom)})
        with pytest.raises(RegistryLookupError, match="failed to evaluate"):
            rfilter.filter(reg, "bad")

    def test_broken_target_still_resolves(self, rfilter, make_registry):
        reg = make_registry({"a": {"broken": True}, "b": {"deps": ["a"]}})
        assert rfilter.filter(reg, "a") == {}

    def test_shallow_rule(self, rfilter, make_registry):
        reg = make_registry({
            "A": {"broken": True},
            "B": {"deps": ["A"]},
            "C": {"deps": ["B"]},
        })
        verdicts = rfilter.explain(reg, "A")
        assert verdicts["B"] is Verdict.UNUSABLE_INPUTS
        assert verdicts["C"] is Verdict.NO_DEPENDENCY
        assert rfilter.filter(reg, "A") == {}

    def test_only_direct_inputs_are_checked(self, rfilter, make_registry):
        # Y itself is usable even though its own input Z is broken
        reg = make_registry({
            "T": {},
            "Z": {"broken": True},
            "Y": {"deps": ["Z"]},
            "X": {"deps": ["T", "Y"]},
        })
        assert set(rfilter.filter(reg, "T")) == {"X"}

    def test_unusable_sibling_input_excludes(self, rfilter, make_registry):
        reg = make_registry({
            "T": {},
            "old": {"platforms": PlatformSet.none()},
            "X": {"deps": ["T", "old"]},
        })
        assert rfilter.explain(reg, "T")["X"] is Verdict.UNUSABLE_INPUTS

    def test_dangling_input_excludes(self, rfilter, make_registry, log):
        reg = make_registry({"T": {}, "X": {"deps": ["T", "ghost"]}})
        assert rfilter.filter(reg, "T") == {}
        assert any("cannot be built: X" in m for m in log.messages("trace"))

    def test_missing_build_inputs(self, rfilter, make_registry, log):
        reg = make_registry({"T": {}, "X": {"inputs": False}})
        assert rfilter.explain(reg, "T")["X"] is Verdict.NO_BUILD_INPUTS
        assert "no build inputs: X" in log.messages("trace")

    def test_unusable_dependent_excluded(self, rfilter, make_registry):
        reg = make_registry({
            "T": {},
            "X": {"deps": ["T"], "meta": False},
            "Y": {"deps": ["T"], "hydra": PlatformSet.none()},
            "Z": {"deps": ["T"], "platforms": PlatformSet.specific(["riscv64-linux"])},
        })
        verdicts = rfilter.explain(reg, "T")
        assert {verdicts[n] for n in "XYZ"} == {Verdict.UNUSABLE}

    def test_evaluation_failure_is_isolated(self, rfilter, make_registry):
        reg = make_registry({
            "T": {},
            "bad": Deferred("bad", _boom),
            "junk": "not a package",
            "good": {"deps": ["T"]},
        })
        assert set(rfilter.filter(reg, "T")) == {"good"}

    def test_matches_on_record_name(self, rfilter, make_registry):
        # registry key differs from the record name
        reg = make_registry({
            "conduit_1_3": {"name": "conduit"},
            "conduit": {"name": "conduit"},
            "user": {"deps": ["conduit_1_3"]},
        })
        assert set(rfilter.filter(reg, "conduit")) == {"user"}

    def test_self_is_not_a_reverse_dependency(self, rfilter, make_registry):
        reg = make_registry({"T": {}, "other": {}})
        assert rfilter.filter(reg, "T") == {}


class TestAllowBroken:

    def test_broken_dependent_included_when_allowed(self, rfilter, make_registry):
        reg = make_registry({"T": {}, "X": {"deps": ["T"], "broken": True}})
        assert rfilter.filter(reg, "T", allow_broken=False) == {}
        assert set(rfilter.filter(reg, "T", allow_broken=True)) == {"X"}

    def test_broken_input_accepted_when_allowed(self, rfilter, make_registry):
        reg = make_registry({"T": {"broken": True}, "X": {"deps": ["T"]}})
        assert rfilter.filter(reg, "T") == {}
        assert set(rfilter.filter(reg, "T", allow_broken=True)) == {"X"}

    def test_allow_broken_keeps_platform_rules(self, rfilter, make_registry):
        reg = make_registry({
            "T": {},
            "X": {"deps": ["T"], "broken": True, "platforms": PlatformSet.none()},
        })
        assert rfilter.filter(reg, "T", allow_broken=True) == {}


class TestProperties:

    @pytest.fixture
    def big(self, make_registry):
        packages = {"T": {}, "broken": {"broken": True}}
        for i in range(40):
            deps = ["T"] if i % 2 == 0 else ["base"]
            if i % 5 == 0:
                deps.append("broken")
            packages[f"p{i:02d}"] = {"deps": deps}
        packages["base"] = {}
        packages["lost"] = Deferred("lost", _boom)
        return make_registry(packages)

    def test_deterministic(self, rfilter, big):
        assert rfilter.filter(big, "T") == rfilter.filter(big, "T")

    def test_parallel_scan_matches_serial(self, rfilter, big, log):
        parallel = ReverseDependencyFilter(rfilter.classifier, workers=8, logger=log)
        assert set(parallel.filter(big, "T")) == set(rfilter.filter(big, "T"))

    def test_subset_of_usable_direct_dependents(self, rfilter, big):
        clf = rfilter.classifier
        result = rfilter.filter(big, "T")
        for name, record in result.items():
            assert clf.is_usable(record)
            assert "T" in [dep.name for dep in record.build_inputs]
        assert set(result) == {f"p{i:02d}" for i in range(0, 40, 2) if i % 5 != 0}

    def test_explain_agrees_with_filter(self, rfilter, big):
        verdicts = rfilter.explain(big, "T")
        included = {n for n, v in verdicts.items() if v is Verdict.INCLUDED}
        assert included == set(rfilter.filter(big, "T"))
        assert list(verdicts) == sorted(verdicts)

    def test_select_scans_once(self, rfilter, make_registry, log):
        reg = make_registry({
            "T": {},
            "X": {"deps": ["T"], "broken": True},
            "Y": {"deps": ["T"]},
        })
        result, verdicts = rfilter.select(reg, "T")
        assert set(result) == {"Y"}
        assert verdicts == {"T": Verdict.NO_DEPENDENCY, "X": Verdict.UNUSABLE,
                            "Y": Verdict.INCLUDED}
        assert log.messages("trace").count("broken: X") == 1
