from __future__ import annotations

import asyncio
import io
import json
import zipfile
from pathlib import Path

import httpx
import pytest

from stencil.config import Config, Context
from stencil.errors import ConflictError, FilesystemError, NotFoundError, TransportError
from stencil.services.sync_service import open_sync_service
from stencil.store import ChangeKind, Store


def _zip_bytes(files: dict[str, str], prefix: str) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(f"{prefix}{name}", content)
    return buffer.getvalue()


class FakeGitHub:
    """Answers GraphQL lookups and zipball downloads for published repositories."""

    def __init__(self) -> None:
        self.repos: dict[str, tuple[str, dict[str, str]]] = {}
        self.queries = 0
        self.downloads = 0
        self.broken_downloads = False

    def publish(self, slug: str, commit: str, files: dict[str, str]) -> None:
        self.repos[slug] = (commit, files)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.queries += 1
            variables = json.loads(request.content)["variables"]
            slug = f"{variables['owner']}/{variables['name']}"
            if slug not in self.repos:
                return httpx.Response(
                    200,
                    json={
                        "data": {"repository": None},
                        "errors": [{"type": "NOT_FOUND", "message": "Could not resolve"}],
                    },
                )
            commit, _ = self.repos[slug]
            target = {"oid": commit, "zipballUrl": f"https://codeload.example.com/{slug}/{commit}"}
            repository = {
                "url": f"https://github.com/{slug}",
                "defaultBranchRef": {"target": target},
                "object": target,
            }
            return httpx.Response(200, json={"data": {"repository": repository}})

        self.downloads += 1
        if self.broken_downloads:
            return httpx.Response(404)
        owner, name, _ = request.url.path.strip("/").split("/")
        commit, files = self.repos[f"{owner}/{name}"]
        return httpx.Response(200, content=_zip_bytes(files, prefix=f"{owner}-{name}-{commit}/"))


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def context(tmp_path, monkeypatch) -> Context:
    monkeypatch.delenv("STENCIL_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    ctx = Context(root_dir=tmp_path / "home", config=Config(token="tok"))
    ctx.cache_dir.mkdir(parents=True)
    return ctx


@pytest.fixture
def workdir(tmp_path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path.resolve()


def _run(context, github, workdir, operation):
    async def _runner():
        async with open_sync_service(
            context, transport=httpx.MockTransport(github.handler), cwd=workdir
        ) as service:
            return await operation(service)

    return asyncio.run(_runner())


def _load_store(context) -> Store:
    return Store.load(context.store_file, context.cache_dir)


def _make_template(root: Path, files: dict[str, str]) -> Path:
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def test_add_batch_reports_partial_failure(context, github, workdir):
    github.publish("acme/web", "111", {"index.html": "web"})
    github.publish("acme/api", "222", {"main.py": "api"})

    report = _run(
        context,
        github,
        workdir,
        lambda service: service.add(["acme/web", "acme/missing", "acme/api"]),
    )

    assert report.success == 2
    assert len(report.failed) == 1
    assert report.failed[0].startswith("acme/missing: ")
    assert "does not exist" in report.failed[0]
    store = _load_store(context)
    assert sorted(store.names()) == ["api", "web"]
    web = store.get("web")
    assert web.commit == "111"
    assert web.canonical_url == "https://github.com/acme/web"
    assert (web.local_path / "index.html").read_text(encoding="utf-8") == "web"
    assert web.local_path.parent == context.cache_dir
    assert web.local_path.name.startswith("web-")


def test_add_local_directories_at_depth_one(context, github, workdir):
    root = workdir / "collection"
    for name in ("a", "b", "c", ".x", "node_modules"):
        (root / name).mkdir(parents=True)

    report = _run(context, github, workdir, lambda service: service.add(["./collection"], depth=1))

    assert report.ok
    assert report.success == 1
    store = _load_store(context)
    assert store.names() == ["a", "b", "c"]
    assert store.get("a").local_path == (root / "a").resolve()
    assert store.get("a").commit is None
    assert github.queries == 0


def test_add_remote_depth_one_records_members(context, github, workdir):
    github.publish(
        "acme/mono",
        "333",
        {"templates/web/index.html": "w", "templates/api/main.py": "a", "templates/.hidden/x": ""},
    )

    report = _run(
        context, github, workdir, lambda service: service.add(["acme/mono/templates"], depth=1)
    )

    assert report.ok
    store = _load_store(context)
    assert store.names() == ["api", "web"]
    api = store.get("api")
    assert api.member == "api"
    assert api.source_input == "acme/mono/templates"
    assert (api.local_path / "main.py").is_file()
    assert store.get("web").local_path.parent == api.local_path.parent
    assert github.downloads == 1


def test_add_depth_one_without_children_fails(context, github, workdir):
    (workdir / "flat").mkdir()
    (workdir / "flat" / "file.txt").write_text("x", encoding="utf-8")
    github.publish("acme/flat", "444", {"README.md": "x"})

    report = _run(
        context, github, workdir, lambda service: service.add(["./flat", "acme/flat"], depth=1)
    )

    assert report.success == 0
    assert len(report.failed) == 2
    assert len(_load_store(context)) == 0
    assert list(context.cache_dir.iterdir()) == []


def test_add_same_name_in_one_batch_is_disambiguated(context, github, workdir):
    (workdir / "one" / "tpl").mkdir(parents=True)
    (workdir / "two" / "tpl").mkdir(parents=True)

    report = _run(
        context, github, workdir, lambda service: service.add(["./one/tpl", "./two/tpl", "./one/tpl"])
    )

    assert report.success == 2
    assert _load_store(context).names() == ["tpl", "tpl-1"]


def test_add_with_name_and_replace(context, github, workdir):
    github.publish("acme/web", "111", {"index.html": "v1"})
    _run(context, github, workdir, lambda service: service.add(["acme/web"], name="site"))
    first_path = _load_store(context).get("site").local_path

    github.publish("acme/web", "222", {"index.html": "v2"})
    report = _run(
        context, github, workdir, lambda service: service.add(["acme/web"], name="site", replace=True)
    )

    store = _load_store(context)
    assert store.names() == ["site"]
    assert store.get("site").commit == "222"
    assert not first_path.exists()
    assert [change.kind for change in report.changes] == [ChangeKind.removed, ChangeKind.added]


def test_add_rejects_unsupported_depth(context, github, workdir):
    with pytest.raises(ValueError, match="Depth must be 0 or 1"):
        _run(context, github, workdir, lambda service: service.add(["acme/web"], depth=2))


def test_remove_reports_missing_names(context, github, workdir):
    github.publish("acme/web", "111", {"index.html": "web"})
    _run(context, github, workdir, lambda service: service.add(["acme/web"]))
    slot = _load_store(context).get("web").local_path

    report = _run(context, github, workdir, lambda service: service.remove(["web", "missing"]))

    assert report.success == 1
    assert report.failed == ["missing: Not found: 'missing'."]
    assert len(_load_store(context)) == 0
    assert not slot.exists()


def test_create_from_stored_entry_with_current_commit_skips_download(context, github, workdir):
    github.publish("acme/web", "111", {"index.html": "web"})
    _run(context, github, workdir, lambda service: service.add(["acme/web"]))
    assert github.downloads == 1

    created = _run(context, github, workdir, lambda service: service.create("web", "site"))

    assert created == workdir / "site"
    assert (created / "index.html").read_text(encoding="utf-8") == "web"
    assert github.downloads == 1


def test_create_from_stale_entry_refetches_once(context, github, workdir):
    github.publish("acme/web", "111", {"index.html": "old"})
    _run(context, github, workdir, lambda service: service.add(["acme/web"]))
    old_slot = _load_store(context).get("web").local_path

    github.publish("acme/web", "222", {"index.html": "new"})
    created = _run(context, github, workdir, lambda service: service.create("web"))

    assert github.downloads == 2
    assert (created / "index.html").read_text(encoding="utf-8") == "new"
    entry = _load_store(context).get("web")
    assert entry.commit == "222"
    assert entry.local_path != old_slot
    assert not old_slot.exists()


def test_refresh_fan_out_member_uses_member_subdir(context, github, workdir):
    github.publish("acme/mono", "111", {"web/index.html": "old", "api/main.py": "a"})
    _run(context, github, workdir, lambda service: service.add(["acme/mono"], depth=1))

    github.publish("acme/mono", "222", {"web/index.html": "new", "api/main.py": "a"})
    entry = _run(context, github, workdir, lambda service: service.refresh("web"))

    assert entry.commit == "222"
    assert (entry.local_path / "index.html").read_text(encoding="utf-8") == "new"
    assert sorted(path.name for path in entry.local_path.iterdir()) == ["index.html"]
    assert (_load_store(context).get("api").local_path / "main.py").is_file()


def test_create_into_stored_path_is_a_conflict(context, github, workdir):
    template = _make_template(workdir / "tpl", {"a.txt": "a"})
    _run(context, github, workdir, lambda service: service.add([str(template)]))

    with pytest.raises(ConflictError):
        _run(context, github, workdir, lambda service: service.create("tpl", template))
    with pytest.raises(ConflictError):
        _run(context, github, workdir, lambda service: service.create("tpl", template / "nested"))

    assert (template / "a.txt").read_text(encoding="utf-8") == "a"


def test_create_existing_destination_requires_overwrite(context, github, workdir):
    template = _make_template(workdir / "tpl", {"a.txt": "a"})
    _run(context, github, workdir, lambda service: service.add([str(template)]))
    destination = workdir / "out"
    _make_template(destination, {"stale.txt": "old"})

    with pytest.raises(FilesystemError, match="already exists"):
        _run(context, github, workdir, lambda service: service.create("tpl", destination))
    assert (destination / "stale.txt").exists()

    _run(context, github, workdir, lambda service: service.create("tpl", destination, overwrite=True))

    assert sorted(path.name for path in destination.iterdir()) == ["a.txt"]


def test_create_from_remote_reference_is_not_stored(context, github, workdir):
    github.publish("acme/mono", "111", {"templates/web/index.html": "w", "README.md": "r"})

    created = _run(
        context, github, workdir, lambda service: service.create("acme/mono/templates/web")
    )

    assert created == workdir / "web"
    assert sorted(path.name for path in created.iterdir()) == ["index.html"]
    assert len(_load_store(context)) == 0
    assert list(context.cache_dir.iterdir()) == []
    assert sorted(path.name for path in workdir.iterdir()) == ["web"]


def test_create_from_local_directory(context, github, workdir):
    template = _make_template(workdir / "tpl", {"a.txt": "a", ".git/HEAD": "ref"})

    created = _run(context, github, workdir, lambda service: service.create("./tpl", "copy"))

    assert sorted(path.name for path in created.iterdir()) == ["a.txt"]
    assert len(_load_store(context)) == 0
    assert template.is_dir()


def test_create_unknown_source(context, github, workdir):
    with pytest.raises(FilesystemError):
        _run(context, github, workdir, lambda service: service.create("nothing-here"))


def test_rename_and_list(context, github, workdir):
    template = _make_template(workdir / "tpl", {"a.txt": "a"})
    gone = _make_template(workdir / "gone", {"b.txt": "b"})

    async def _setup(service):
        await service.add([str(template), str(gone)])
        service.rename("tpl", "starter")
        service.rename("starter", "starter")

    _run(context, github, workdir, _setup)
    assert _load_store(context).names() == ["starter", "gone"]

    (gone / "b.txt").unlink()
    gone.rmdir()

    async def _list(service):
        return service.list_entries(prune=True)

    entries, pruned = _run(context, github, workdir, _list)

    assert [name for name, _ in entries] == ["starter"]
    assert pruned == ["gone"]
    assert _load_store(context).names() == ["starter"]

    async def _rename_missing(service):
        service.rename("missing", "other")

    with pytest.raises(NotFoundError):
        _run(context, github, workdir, _rename_missing)


def test_add_batch_with_missing_local_path(context, github, workdir):
    github.publish("acme/web", "111", {"index.html": "web"})
    _make_template(workdir / "tpl", {"a.txt": "a"})

    report = _run(
        context,
        github,
        workdir,
        lambda service: service.add(["./tpl", "./does-not-exist", "acme/web"]),
    )

    assert report.success == 2
    assert len(report.failed) == 1
    assert report.failed[0].startswith("./does-not-exist: Can't find directory")
    assert sorted(_load_store(context).names()) == ["tpl", "web"]


def test_add_unreadable_root_fails_only_that_unit(context, github, workdir, monkeypatch):
    _make_template(workdir / "open" / "a", {"x.txt": "x"})
    locked = workdir / "locked"
    (locked / "b").mkdir(parents=True)
    real_iterdir = Path.iterdir

    def iterdir(self):
        if self == locked:
            raise PermissionError(13, "Permission denied", str(self))
        return real_iterdir(self)

    monkeypatch.setattr(Path, "iterdir", iterdir)

    report = _run(
        context, github, workdir, lambda service: service.add(["./open", "./locked"], depth=1)
    )

    assert report.success == 1
    assert len(report.failed) == 1
    assert report.failed[0].startswith("./locked: Filesystem operation failed")
    assert _load_store(context).names() == ["a"]


def test_create_below_a_regular_file_is_a_filesystem_error(context, github, workdir):
    _make_template(workdir / "tpl", {"a.txt": "a"})
    _run(context, github, workdir, lambda service: service.add(["./tpl"]))
    (workdir / "blocker").write_text("", encoding="utf-8")

    with pytest.raises(FilesystemError) as exc:
        _run(context, github, workdir, lambda service: service.create("tpl", "blocker/out"))

    assert exc.value.path == workdir / "blocker"


def test_create_remote_overwrite_keeps_destination_when_download_fails(context, github, workdir):
    github.publish("acme/web", "111", {"index.html": "new"})
    destination = _make_template(workdir / "web", {"keep.txt": "mine"})
    github.broken_downloads = True

    with pytest.raises(TransportError):
        _run(context, github, workdir, lambda service: service.create("acme/web", overwrite=True))

    assert (destination / "keep.txt").read_text(encoding="utf-8") == "mine"
    assert sorted(path.name for path in workdir.iterdir()) == ["web"]

    github.broken_downloads = False
    created = _run(context, github, workdir, lambda service: service.create("acme/web", overwrite=True))

    assert created == destination
    assert sorted(path.name for path in destination.iterdir()) == ["index.html"]
    assert sorted(path.name for path in workdir.iterdir()) == ["web"]
