import json
import re
import tempfile
import unittest
from pathlib import Path

from skillpm.errors import LockParseError, ManifestParseError
from skillpm.lockfile import LOCK_FILENAME, LockedSkill, LockStore
from skillpm.manifest import MANIFEST_FILENAME, ManifestStore


def _locked(version: str = "v1.0.0") -> LockedSkill:
    return LockedSkill(
        source="github:acme/tool",
        version=version,
        resolved="https://github.com/acme/tool",
        commit="c" * 40,
        installed_at="2024-01-01T00:00:00Z",
    )


class TestLockStore(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.addCleanup(self._td.cleanup)
        self.root = Path(self._td.name)
        self.lock = LockStore(self.root)

    def test_absent_and_empty_files_load_empty(self) -> None:
        self.assertEqual(self.lock.load(), {"lockfileVersion": 1, "skills": {}})
        (self.root / LOCK_FILENAME).write_text("", encoding="utf-8")
        self.assertEqual(self.lock.all(), {})

    def test_malformed(self) -> None:
        (self.root / LOCK_FILENAME).write_text("{not json", encoding="utf-8")
        with self.assertRaises(LockParseError):
            self.lock.load()
        (self.root / LOCK_FILENAME).write_text('{"skills": []}', encoding="utf-8")
        with self.assertRaises(LockParseError):
            self.lock.all()
        (self.root / LOCK_FILENAME).write_text('{"skills": {"tool": "v1"}}', encoding="utf-8")
        with self.assertRaises(LockParseError):
            self.lock.get("tool")

    def test_set_get_remove(self) -> None:
        self.lock.set("tool", _locked())
        self.lock.set("other", _locked("v2.0.0"))

        self.assertEqual(self.lock.get("tool"), _locked())
        self.assertTrue(self.lock.has("other"))
        self.assertTrue(self.lock.is_version_match("tool", "v1.0.0"))
        self.assertFalse(self.lock.is_version_match("tool", "v2.0.0"))
        self.assertFalse(self.lock.is_version_match("missing", "v1.0.0"))

        self.assertTrue(self.lock.remove("tool"))
        self.assertFalse(self.lock.remove("tool"))
        self.assertIsNone(self.lock.get("tool"))
        self.assertEqual(set(self.lock.all()), {"other"})

        self.lock.clear()
        self.assertEqual(self.lock.all(), {})

    def test_on_disk_format(self) -> None:
        self.lock.lock_skill(
            "tool",
            source="github:acme/tool",
            version="v1.0.0",
            resolved="https://github.com/acme/tool",
            commit="abc",
        )
        doc = json.loads((self.root / LOCK_FILENAME).read_text(encoding="utf-8"))
        self.assertEqual(doc["lockfileVersion"], 1)
        entry = doc["skills"]["tool"]
        self.assertEqual(
            set(entry),
            {"source", "version", "resolved", "commit", "installedAt"},
        )
        self.assertRegex(entry["installedAt"], re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$"))
        self.assertFalse((self.root / (LOCK_FILENAME + ".tmp")).exists())

    def test_reads_go_to_disk(self) -> None:
        LockStore(self.root).set("tool", _locked())
        self.assertIsNotNone(self.lock.get("tool"))


class TestManifestStore(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.addCleanup(self._td.cleanup)
        self.root = Path(self._td.name)
        self.manifest = ManifestStore(self.root)

    def test_defaults_without_file(self) -> None:
        self.assertFalse(self.manifest.exists())
        self.assertEqual(self.manifest.get_skills(), {})
        self.assertEqual(self.manifest.get_defaults(), {"registry": "github", "installDir": ".skills"})
        self.assertEqual(self.manifest.get_install_dir(), self.root / ".skills")
        self.assertFalse(self.manifest.remove_skill("tool"))
        self.assertFalse(self.manifest.exists())

    def test_create(self) -> None:
        self.manifest.create("demo")
        doc = json.loads((self.root / MANIFEST_FILENAME).read_text(encoding="utf-8"))
        self.assertEqual(doc["name"], "demo")
        self.assertEqual(doc["skills"], {})
        self.assertEqual(doc["defaults"], {"registry": "github", "installDir": ".skills"})

    def test_add_overwrites_and_remove(self) -> None:
        self.manifest.add_skill("tool", "acme/tool@v1.0.0")
        self.manifest.add_skill("tool", "acme/tool@^2.0.0")
        self.manifest.add_skill("other", "acme/other")

        self.assertEqual(self.manifest.get_skill_ref("tool"), "acme/tool@^2.0.0")
        self.assertTrue(self.manifest.remove_skill("tool"))
        self.assertFalse(self.manifest.remove_skill("tool"))
        self.assertEqual(self.manifest.get_skills(), {"other": "acme/other"})

    def test_unknown_fields_survive_rewrites(self) -> None:
        (self.root / MANIFEST_FILENAME).write_text(
            json.dumps({"name": "demo", "version": "1.0.0", "skills": {}}),
            encoding="utf-8",
        )
        self.manifest.add_skill("tool", "acme/tool")
        doc = json.loads((self.root / MANIFEST_FILENAME).read_text(encoding="utf-8"))
        self.assertEqual(doc["version"], "1.0.0")
        self.assertEqual(doc["skills"], {"tool": "acme/tool"})

    def test_custom_install_dir_and_registries(self) -> None:
        (self.root / MANIFEST_FILENAME).write_text(
            json.dumps(
                {
                    "skills": {},
                    "defaults": {"installDir": "agent/skills"},
                    "registries": {"internal": "https://git.internal.example"},
                }
            ),
            encoding="utf-8",
        )
        self.assertEqual(self.manifest.get_install_dir(), self.root / "agent" / "skills")
        self.assertEqual(self.manifest.get_defaults()["registry"], "github")
        self.assertEqual(self.manifest.get_registries(), {"internal": "https://git.internal.example"})

    def test_malformed(self) -> None:
        (self.root / MANIFEST_FILENAME).write_text("[1, 2", encoding="utf-8")
        with self.assertRaises(ManifestParseError):
            self.manifest.load()
        (self.root / MANIFEST_FILENAME).write_text('{"skills": ["a"]}', encoding="utf-8")
        with self.assertRaises(ManifestParseError):
            self.manifest.get_skills()
        (self.root / MANIFEST_FILENAME).write_text("[]", encoding="utf-8")
        with self.assertRaises(ManifestParseError):
            self.manifest.load()


if __name__ == "__main__":
    unittest.main()
