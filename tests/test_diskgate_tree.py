"""
Tests for folder tree synchronization and project folder lookup.
"""

import os

import pytest

from strongroom.DiskGate import (
    FILES_KEY,
    META_FILENAME,
    ProjectRef,
    create_initial_folders,
    locate_project_folder,
    read_meta,
    resolve_project_path,
    walk_folder_tree,
    write_meta,
)
from strongroom.shared.errors import InvalidInput


def _project(**overrides):
    data = {"_id": "p1", "projectNumber": "25-10003", "name": "Harbour Bridge"}
    data.update(overrides)
    return ProjectRef.coerce(data)


def _touch(path):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write("x")


class TestWalkFolderTree:
    """Tests for walk_folder_tree()."""

    def test_nested_shape(self, temp_dir):
        _touch(str(temp_dir / "A" / "x.txt"))
        _touch(str(temp_dir / "A" / "B" / "y.txt"))
        (temp_dir / "C").mkdir()

        tree = walk_folder_tree(str(temp_dir))

        assert tree == {
            "A": {FILES_KEY: ["x.txt"], "B": {FILES_KEY: ["y.txt"]}},
            "C": {},
        }

    def test_root_files_listed(self, temp_dir):
        _touch(str(temp_dir / "readme.txt"))

        assert walk_folder_tree(str(temp_dir)) == {FILES_KEY: ["readme.txt"]}

    def test_meta_files_hidden(self, temp_dir):
        write_meta(str(temp_dir), {"projectId": "p1"})
        (temp_dir / "A").mkdir()
        write_meta(str(temp_dir / "A"), {"role": "Admin"})

        assert walk_folder_tree(str(temp_dir)) == {"A": {}}

    def test_empty_folder(self, temp_dir):
        assert walk_folder_tree(str(temp_dir)) == {}

    def test_shape_independent_of_creation_order(self, temp_dir):
        """Two folders with the same content should give equal trees."""
        first, second = temp_dir / "one", temp_dir / "two"
        for name in ("b.txt", "a.txt", "c.txt"):
            _touch(str(first / "Docs" / name))
        for name in ("c.txt", "a.txt", "b.txt"):
            _touch(str(second / "Docs" / name))

        assert walk_folder_tree(str(first)) == walk_folder_tree(str(second))
        assert walk_folder_tree(str(first))["Docs"][FILES_KEY] == ["a.txt", "b.txt", "c.txt"]

    def test_symlinked_dirs_not_followed(self, temp_dir):
        (temp_dir / "real").mkdir()
        _touch(str(temp_dir / "real" / "f.txt"))
        os.symlink(str(temp_dir / "real"), str(temp_dir / "link"))

        tree = walk_folder_tree(str(temp_dir))

        assert "link" not in tree
        assert tree["real"] == {FILES_KEY: ["f.txt"]}


class TestLocateProjectFolder:
    """Tests for locate_project_folder()."""

    def test_scaffolds_missing_root(self, storage_root, access_rules):
        path = locate_project_folder(_project(), "AU", str(storage_root), access_rules)

        assert os.path.isdir(os.path.join(path, "Project"))
        assert read_meta(path)["projectId"] == "p1"

    def test_repairs_missing_descriptor(self, storage_root, access_rules):
        """An existing folder without .meta.json gets one re-derived."""
        expected = resolve_project_path(_project(), "", "AU", str(storage_root)).path
        os.makedirs(expected)

        path = locate_project_folder(_project(), "AU", str(storage_root), access_rules)

        assert path == expected
        meta = read_meta(path)
        assert meta["projectId"] == "p1"
        assert meta["structure"] == list(access_rules)

    def test_repairs_corrupt_descriptor(self, storage_root, access_rules):
        expected = resolve_project_path(_project(), "", "AU", str(storage_root)).path
        os.makedirs(expected)
        with open(os.path.join(expected, META_FILENAME), "w") as f:
            f.write("not json")

        locate_project_folder(_project(), "AU", str(storage_root), access_rules)

        assert read_meta(expected)["projectId"] == "p1"

    def test_foreign_descriptor_left_alone(self, storage_root, access_rules):
        expected = resolve_project_path(_project(), "", "AU", str(storage_root)).path
        os.makedirs(expected)
        write_meta(expected, {"projectId": "someone-else"})

        path = locate_project_folder(_project(), "AU", str(storage_root), access_rules)

        assert path == expected
        assert read_meta(expected)["projectId"] == "someone-else"

    def test_falls_back_to_descriptor_scan(self, storage_root, access_rules):
        """A folder left at an old path is found through its descriptor."""
        old = _project(projectNumber="24-01001", name="Old Name")
        create_initial_folders(old, "AU", access_rules, str(storage_root))
        old_path = resolve_project_path(old, "", "AU", str(storage_root)).path

        path = locate_project_folder(_project(), "AU", str(storage_root), access_rules)

        assert path == old_path

    def test_invalid_project_raises(self, storage_root):
        with pytest.raises(InvalidInput):
            locate_project_folder(_project(projectNumber="25-13001"), "AU", str(storage_root))
