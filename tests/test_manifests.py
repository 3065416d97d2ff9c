import tempfile
import textwrap
import unittest
from pathlib import Path

from ruamel.yaml import YAML

from branch_reconciler.domain.exceptions import FatalSetupError, ManifestEntryMissingError
from branch_reconciler.infrastructure.manifests import DistributionManifest, ReposManifest

REPOS_FILE = textwrap.dedent("""\
    repositories:
      ament/ament_cmake:
        type: git
        url: https://github.com/ament/ament_cmake.git
        version: galactic
      ros2/rclcpp:
        type: git
        url: https://github.com/ros2/rclcpp.git
        version: rolling
    """)

DISTRIBUTION_FILE = textwrap.dedent("""\
    # comment that must survive
    release_platforms:
      ubuntu:
      - focal
    repositories:
      ament_cmake:
        doc:
          type: git
          url: https://github.com/ament/ament_cmake.git
          version: galactic
        release:
          tags:
            release: release/rolling/{package}/{version}
          url: https://github.com/ros2-gbp/ament_cmake-release.git
          version: 1.1.4-1
        source:
          type: git
          url: https://github.com/ament/ament_cmake.git
          version: galactic
        status: developed
      rclcpp:
        source:
          type: git
          url: https://github.com/ros2/rclcpp.git
          version: rolling
    type: distribution
    version: 2
    """)


class TestReposManifest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.input_path = self.tmp / "ros2.repos.yaml"
        self.input_path.write_text(REPOS_FILE, encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_load_keeps_manifest_order(self) -> None:
        manifest = ReposManifest.load(self.input_path)

        self.assertEqual(
            [repo.full_name for repo in manifest.repositories],
            ["ament/ament_cmake", "ros2/rclcpp"],
        )

    def test_save_writes_updated_versions_and_leaves_input_alone(self) -> None:
        manifest = ReposManifest.load(self.input_path)
        manifest.repositories[0].version = "rolling"
        output_path = self.tmp / "ros2.repos.output.yaml"

        manifest.save(output_path)

        reloaded = ReposManifest.load(output_path)
        self.assertEqual([repo.version for repo in reloaded.repositories], ["rolling", "rolling"])
        self.assertEqual(self.input_path.read_text(encoding="utf-8"), REPOS_FILE)

    def test_missing_repositories_mapping_is_fatal(self) -> None:
        self.input_path.write_text("something: else\n", encoding="utf-8")

        with self.assertRaises(FatalSetupError):
            ReposManifest.load(self.input_path)

    def test_unparseable_file_is_fatal(self) -> None:
        self.input_path.write_text("repositories: [unclosed\n", encoding="utf-8")

        with self.assertRaises(FatalSetupError):
            ReposManifest.load(self.input_path)

    def test_missing_file_is_fatal(self) -> None:
        with self.assertRaises(FatalSetupError):
            ReposManifest.load(self.tmp / "absent.yaml")


class TestDistributionManifest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.input_path = self.tmp / "distribution.yaml"
        self.input_path.write_text(DISTRIBUTION_FILE, encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_set_version_updates_doc_and_source_only(self) -> None:
        manifest = DistributionManifest.load(self.input_path)

        manifest.set_version("ament_cmake", "rolling")

        entry = manifest.repositories["ament_cmake"]
        self.assertEqual(entry["doc"]["version"], "rolling")
        self.assertEqual(entry["source"]["version"], "rolling")
        self.assertEqual(entry["release"]["version"], "1.1.4-1")

    def test_set_version_for_absent_name_raises_and_changes_nothing(self) -> None:
        manifest = DistributionManifest.load(self.input_path)

        with self.assertRaises(ManifestEntryMissingError):
            manifest.set_version("not_there", "rolling")

        self.assertEqual(manifest.get_version("ament_cmake"), "galactic")
        self.assertEqual(manifest.get_version("rclcpp"), "rolling")

    def test_save_round_trips_unrelated_content(self) -> None:
        manifest = DistributionManifest.load(self.input_path)
        output_path = self.tmp / "distribution.output.yaml"

        manifest.save(output_path)

        safe = YAML(typ="safe")
        self.assertEqual(safe.load(output_path.read_text(encoding="utf-8")), safe.load(DISTRIBUTION_FILE))
        self.assertEqual(
            list(safe.load(output_path.read_text(encoding="utf-8"))),
            ["release_platforms", "repositories", "type", "version"],
        )

    def test_saved_file_carries_new_version(self) -> None:
        manifest = DistributionManifest.load(self.input_path)
        manifest.set_version("ament_cmake", "rolling")
        output_path = self.tmp / "distribution.output.yaml"

        manifest.save(output_path)

        written = output_path.read_text(encoding="utf-8")
        self.assertIn("# comment that must survive", written)
        self.assertEqual(DistributionManifest.load(output_path).get_version("ament_cmake"), "rolling")
