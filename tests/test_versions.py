import unittest

from skillpm.errors import ResolveError
from skillpm.git import GitTag
from skillpm.versions import (
    Branch,
    Commit,
    Exact,
    Latest,
    Range,
    coerce_version,
    compare_versions,
    parse_version_spec,
    select_latest,
    version_satisfies,
)


def _tags(*names: str) -> list[GitTag]:
    return [GitTag(name=n, commit=f"{i:040x}") for i, n in enumerate(names)]


class TestParseVersionSpec(unittest.TestCase):
    def test_classification(self) -> None:
        self.assertEqual(parse_version_spec(None), Branch("main"))
        self.assertEqual(parse_version_spec(""), Branch("main"))
        self.assertEqual(parse_version_spec("latest"), Latest())
        self.assertEqual(parse_version_spec("branch:develop"), Branch("develop"))
        self.assertEqual(parse_version_spec("branch:feature/x"), Branch("feature/x"))
        self.assertEqual(parse_version_spec("commit:abc123"), Commit("abc123"))
        self.assertEqual(parse_version_spec("^1.0.0"), Range("^1.0.0"))
        self.assertEqual(parse_version_spec("~1.2.0"), Range("~1.2.0"))
        self.assertEqual(parse_version_spec(">=1.0.0 <2.0.0"), Range(">=1.0.0 <2.0.0"))
        self.assertEqual(parse_version_spec("<3"), Range("<3"))
        self.assertEqual(parse_version_spec("v1.0.0"), Exact("v1.0.0"))
        self.assertEqual(parse_version_spec("release-2024"), Exact("release-2024"))

    def test_empty_branch_name_falls_back_to_main(self) -> None:
        self.assertEqual(parse_version_spec("branch:"), Branch("main"))


class TestTagOrdering(unittest.TestCase):
    def test_coerce_version(self) -> None:
        self.assertEqual(coerce_version("v1.2.3"), (1, 2, 3))
        self.assertEqual(coerce_version("1.0"), (1,))
        self.assertEqual(coerce_version("v1.0.0"), (1,))
        self.assertEqual(coerce_version("2.x"), (2,))
        self.assertEqual(coerce_version("3.1-beta"), (3, 1))
        self.assertEqual(coerce_version("nightly"), ())

    def test_select_latest(self) -> None:
        best = select_latest(_tags("v1.0.0", "v2.0.0", "v1.2.0"))
        assert best is not None
        self.assertEqual(best.name, "v2.0.0")

    def test_select_latest_numeric_not_lexicographic(self) -> None:
        best = select_latest(_tags("v1.9.0", "v1.10.0"))
        assert best is not None
        self.assertEqual(best.name, "v1.10.0")

    def test_malformed_tags_do_not_fail(self) -> None:
        best = select_latest(_tags("nightly", "v1.0.0", "latest-build"))
        assert best is not None
        self.assertEqual(best.name, "v1.0.0")

    def test_equal_versions_pick_greatest_name(self) -> None:
        best = select_latest(_tags("v1.0", "1.0.0", "1.0"))
        assert best is not None
        self.assertEqual(best.name, "v1.0")

    def test_empty(self) -> None:
        self.assertIsNone(select_latest([]))

    def test_release_beats_its_prerelease(self) -> None:
        for names in (("v1.2.0", "v1.2.0-beta"), ("v1.2.0-beta", "v1.2.0")):
            with self.subTest(names=names):
                best = select_latest(_tags(*names))
                assert best is not None
                self.assertEqual(best.name, "v1.2.0")

    def test_prereleases_use_semver_precedence(self) -> None:
        best = select_latest(_tags("v1.9.0", "v2.0.0-beta.3", "v2.0.0-rc.1", "v2.0.0-beta.10"))
        assert best is not None
        self.assertEqual(best.name, "v2.0.0-rc.1")

    def test_newer_prerelease_beats_older_release(self) -> None:
        best = select_latest(_tags("v1.1.0", "v1.2.0-beta"))
        assert best is not None
        self.assertEqual(best.name, "v1.2.0-beta")


class TestVersionSatisfies(unittest.TestCase):
    def test_compare(self) -> None:
        self.assertEqual(compare_versions("1.0.0", "1.0.0"), 0)
        self.assertEqual(compare_versions("1.0.0-alpha", "1.0.0"), -1)
        self.assertEqual(compare_versions("1.0.0-alpha.2", "1.0.0-alpha.10"), -1)
        self.assertEqual(compare_versions("2.0", "1.9.9"), 1)
        self.assertEqual(compare_versions("1.0.0-rc.1", "1.0.0"), -1)
        self.assertEqual(compare_versions("1.0.0-alpha", "1.0.0-alpha.1"), -1)
        self.assertEqual(compare_versions("1.0.0-alpha.1", "1.0.0-beta"), -1)
        self.assertEqual(compare_versions("1.0.0-1", "1.0.0-alpha"), -1)
        self.assertEqual(compare_versions("1.0.0+build.5", "1.0.0"), 0)

    def test_caret(self) -> None:
        self.assertTrue(version_satisfies("1.2.0", "^1.0.0"))
        self.assertTrue(version_satisfies("1.0.0", "^1.0.0"))
        self.assertFalse(version_satisfies("2.0.0", "^1.0.0"))
        self.assertFalse(version_satisfies("0.9.0", "^1.0.0"))
        self.assertTrue(version_satisfies("0.2.5", "^0.2.1"))
        self.assertFalse(version_satisfies("0.3.0", "^0.2.1"))

    def test_caret_with_v_prefix(self) -> None:
        self.assertTrue(version_satisfies("1.4.0", "^v1.0.0"))

    def test_tilde(self) -> None:
        self.assertTrue(version_satisfies("1.2.9", "~1.2.0"))
        self.assertFalse(version_satisfies("1.3.0", "~1.2.0"))

    def test_comparators(self) -> None:
        self.assertTrue(version_satisfies("1.5.0", ">=1.0.0 <2.0.0"))
        self.assertTrue(version_satisfies("1.5.0", ">=1.0.0, <2.0.0"))
        self.assertFalse(version_satisfies("2.0.0", ">=1.0.0 <2.0.0"))
        self.assertTrue(version_satisfies("3.0.0", ">2"))
        self.assertFalse(version_satisfies("2.0.0", ">2"))
        self.assertTrue(version_satisfies("1.0.0", "<=1.0.0"))

    def test_alternatives(self) -> None:
        self.assertTrue(version_satisfies("3.1.0", "^1.0.0 || ^3.0.0"))
        self.assertFalse(version_satisfies("2.1.0", "^1.0.0 || ^3.0.0"))

    def test_prerelease_needs_prerelease_bound(self) -> None:
        self.assertFalse(version_satisfies("1.3.0-beta.1", "^1.0.0"))
        self.assertTrue(version_satisfies("1.3.0-beta.1", ">=1.3.0-beta.0"))

    def test_non_semver_never_matches(self) -> None:
        self.assertFalse(version_satisfies("nightly", "^1.0.0"))
        self.assertFalse(version_satisfies("1.x", ">=0.0.0"))

    def test_invalid_range(self) -> None:
        with self.assertRaises(ResolveError):
            version_satisfies("1.0.0", "^abc")
        with self.assertRaises(ResolveError):
            version_satisfies("1.0.0", ">=banana")


if __name__ == "__main__":
    unittest.main()
