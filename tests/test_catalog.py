"""Catalog service tests."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from repodex.catalog import InvalidInputError, ProjectCatalog, ProjectNotFoundError
from repodex.config import RepodexConfig, resolve_with_precedence
from repodex.search import ProjectFilters, SearchIndexManager, SortSpec
from repodex.state import Project, ProjectStore


def _project(name: str, **extra: object) -> Project:
    return Project(id=f"id-{name}", name=name, path=f"/work/{name}", **extra)


@pytest.fixture()
def catalog(tmp_path: Path):
    catalog = ProjectCatalog(ProjectStore(tmp_path / "data", debounce_seconds=60))
    with catalog:
        yield catalog


def _seed(catalog: ProjectCatalog, *projects: Project) -> None:
    for project in projects:
        catalog.store.upsert_project(project)
    catalog.index.build_index(catalog.store.get_all_projects())


def _write_export(path: Path, projects: list[dict]) -> Path:
    path.write_text(
        json.dumps({"meta": {"version": 2, "lastScanAt": "2024-01-01T00:00:00Z"}, "projects": projects}),
        encoding="utf-8",
    )
    return path


def test_from_config_applies_settings(tmp_path: Path) -> None:
    config = resolve_with_precedence(
        defaults=RepodexConfig(),
        file_overrides={
            "store": {"data_dir": str(tmp_path / "store"), "debounce_seconds": 1.5},
            "search": {"threshold": 0.2, "default_limit": 7},
            "scan": {"paths": ["~/code"], "max_depth": 2},
        },
    )

    catalog = ProjectCatalog.from_config(config)

    assert catalog.store.path == tmp_path / "store" / "projects.json"
    assert catalog.index.threshold == pytest.approx(0.2)
    assert catalog.index.default_limit == 7
    assert catalog.scan_defaults.max_depth == 2
    assert catalog.scan_defaults.paths[0].path == "~/code"


def test_injected_empty_index_is_kept(tmp_path: Path) -> None:
    index = SearchIndexManager(threshold=0.1)

    catalog = ProjectCatalog(ProjectStore(tmp_path / "data"), index=index)

    assert catalog.index is index
    with catalog:
        catalog.store.upsert_project(_project("alpha"))
        catalog.update_project("id-alpha", {"description": "x"})
    assert [project.id for project in index.search("")] == ["id-alpha"]


def test_list_projects_with_and_without_query(catalog: ProjectCatalog) -> None:
    _seed(
        catalog,
        _project("alpha", importance=5, tags=["work"]),
        _project("beta", importance=1),
        _project("alphabet", importance=2, tags=["work"]),
    )

    everything = catalog.list_projects(sort=SortSpec.parse("-importance"))
    searched = catalog.list_projects("alpha", filters=ProjectFilters(tags=["work"]))
    paged = catalog.list_projects(page=2, page_size=2)

    assert [project.name for project in everything.projects] == ["alpha", "alphabet", "beta"]
    assert {project.name for project in searched.projects} == {"alpha", "alphabet"}
    assert searched.total == 2
    assert [project.name for project in paged.projects] == ["alphabet"]
    with pytest.raises(InvalidInputError):
        catalog.list_projects(page_size=0)


def test_get_update_and_delete(catalog: ProjectCatalog) -> None:
    _seed(catalog, _project("alpha"))

    updated = catalog.update_project("id-alpha", {"tags": ["fav"], "description": "Main app"})

    assert updated.scan_status == "user-modified"
    assert catalog.get_project("id-alpha").tags == ["fav"]
    assert catalog.list_projects("main app").projects[0].id == "id-alpha"

    with pytest.raises(InvalidInputError):
        catalog.update_project("id-alpha", {"importance": 42})
    with pytest.raises(ProjectNotFoundError):
        catalog.update_project("missing", {"importance": 1})

    catalog.delete_project("id-alpha")
    with pytest.raises(ProjectNotFoundError):
        catalog.get_project("id-alpha")
    with pytest.raises(ProjectNotFoundError):
        catalog.delete_project("id-alpha")
    assert catalog.list_projects().total == 0


def test_export_then_replace_import_round_trips(catalog: ProjectCatalog, tmp_path: Path) -> None:
    _seed(catalog, _project("alpha", tags=["x"]), _project("beta"))
    target = tmp_path / "out" / "export.json"

    assert catalog.export_to(target) == 2

    fresh = ProjectCatalog(ProjectStore(tmp_path / "other", debounce_seconds=60))
    with fresh:
        summary = fresh.import_from(target)
        assert summary.imported == 2
        assert [project.id for project in fresh.list_projects().projects] == ["id-alpha", "id-beta"]
        assert fresh.get_project("id-alpha").tags == ["x"]


def test_merge_import_respects_conflict_policy(catalog: ProjectCatalog, tmp_path: Path) -> None:
    _seed(catalog, _project("alpha", importance=1))
    source = _write_export(
        tmp_path / "incoming.json",
        [
            {"id": "id-alpha", "name": "alpha", "path": "/work/alpha", "importance": 5},
            {"id": "id-new", "name": "new", "path": "/work/new"},
        ],
    )

    skipped = catalog.import_from(source, mode="merge", on_conflict="skip")
    assert (skipped.imported, skipped.skipped) == (1, 1)
    assert catalog.get_project("id-alpha").importance == 1

    overwritten = catalog.import_from(source, mode="merge", on_conflict="overwrite")
    assert (overwritten.imported, overwritten.skipped) == (2, 0)
    assert catalog.get_project("id-alpha").importance == 5
    assert catalog.list_projects().total == 2


def test_preview_import_lists_first_ten(catalog: ProjectCatalog, tmp_path: Path) -> None:
    source = _write_export(
        tmp_path / "many.json",
        [{"id": str(i), "name": f"p{i}", "path": f"/p/{i}"} for i in range(12)],
    )

    preview = catalog.preview_import(source)

    assert preview.count == 12
    assert len(preview.projects) == 10
    assert catalog.list_projects().total == 0


def test_invalid_import_files_are_rejected(catalog: ProjectCatalog, tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    wrong_shape = tmp_path / "list.json"
    wrong_shape.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(InvalidInputError):
        catalog.import_from(tmp_path / "absent.json")
    with pytest.raises(InvalidInputError):
        catalog.import_from(broken)
    with pytest.raises(InvalidInputError):
        catalog.preview_import(wrong_shape)
    with pytest.raises(InvalidInputError):
        catalog.import_from(broken, mode="append")  # type: ignore[arg-type]


def test_clear_and_touch(catalog: ProjectCatalog) -> None:
    _seed(catalog, _project("alpha"), _project("beta"))
    moment = datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)

    assert catalog.touch_all(moment) == 2
    assert {project.last_modified_at for project in catalog.list_projects().projects} == {moment}
    assert {project.scan_status for project in catalog.store.get_all_projects()} == {"user-modified"}

    catalog.clear()
    assert catalog.list_projects().total == 0
    assert catalog.store.get_all_projects() == []


def test_refresh_uses_latest_file_mtime(catalog: ProjectCatalog, tmp_path: Path) -> None:
    project_dir = tmp_path / "proj"
    (project_dir / "src").mkdir(parents=True)
    source = project_dir / "src" / "main.py"
    source.write_text("print()", encoding="utf-8")
    ignored = project_dir / "node_modules" / "dep.js"
    ignored.parent.mkdir()
    ignored.write_text("x", encoding="utf-8")
    os.utime(source, (1_700_000_000, 1_700_000_000))
    os.utime(ignored, (1_900_000_000, 1_900_000_000))
    for directory in (project_dir / "src", project_dir / "node_modules", project_dir):
        os.utime(directory, (1_600_000_000, 1_600_000_000))
    _seed(
        catalog,
        Project(id="p", name="proj", path=str(project_dir)),
        Project(id="gone", name="gone", path=str(tmp_path / "gone")),
    )

    assert catalog.refresh_modified_from_fs() == 1

    refreshed = catalog.get_project("p")
    assert refreshed.last_modified_at == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert catalog.get_project("gone").last_modified_at is None
    assert refreshed.scan_status == "user-modified"
    assert catalog.refresh_modified_from_fs() == 0


def test_scan_end_to_end(catalog: ProjectCatalog, tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    root.mkdir()
    (root / "README.md").write_text("# Workspace\n", encoding="utf-8")
    (root / "package.json").write_text("{}", encoding="utf-8")

    job_id = catalog.start_scan([str(root)])
    report = catalog.wait_for_scan(job_id, timeout=30)

    assert report.status == "complete"
    assert report.percent == 100
    assert report.stats is not None and report.stats.local_projects == 1
    (project,) = catalog.list_projects().projects
    assert project.path == str(root.resolve())
    assert project.language == "typescript"
    assert project.readme_files == ["README.md"]


def test_scan_requires_paths(catalog: ProjectCatalog) -> None:
    with pytest.raises(InvalidInputError):
        catalog.start_scan()
    with pytest.raises(ProjectNotFoundError):
        catalog.scan_status("unknown")
