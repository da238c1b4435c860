"""
FolderService tests against a real SQLite database.
"""
import asyncio

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from app.errors import CyclicMoveError, FolderNotFoundError, InvalidInputError, StoreUnavailableError
from app.models import Folder, split_path
from app.services import CascadeDeleter, ConversationService, FolderService, FolderStore, SubtreeLocks


async def assert_tree_consistent(folders: FolderService):
    records = await folders.list()
    by_id = {f.id: f for f in records}
    for folder in records:
        path = split_path(folder.path)
        assert folder.level == len(path) - 1
        assert (folder.level == 0) == (folder.parent_id is None)

        expected = [folder.id]
        current = folder
        while current.parent_id is not None:
            current = by_id[current.parent_id]
            expected.insert(0, current.id)
        assert path == expected
    assert await folders.verify() == []


async def new_conversation(conversations: ConversationService, folder_id=None):
    return await conversations.create(model="llama3", title="chat", folder_id=folder_id)


class TestCreate:
    async def test_root_folder(self, folders):
        folder = await folders.create("Work")

        assert folder.parent_id is None
        assert folder.level == 0
        assert folder.path_ids == [folder.id]
        assert folder.color == "#4F46E5"

    async def test_nested_folder(self, folders):
        work = await folders.create("Work", color="#ff0000")
        projects = await folders.create("Projects", parent_id=work.id)

        assert projects.level == 1
        assert projects.path_ids == [work.id, projects.id]
        assert work.color == "#ff0000"

    @pytest.mark.parametrize("name", ["", "   "])
    async def test_empty_name_rejected(self, folders, name):
        with pytest.raises(InvalidInputError):
            await folders.create(name)
        assert await folders.list() == []

    async def test_missing_parent_is_not_found(self, folders):
        with pytest.raises(FolderNotFoundError):
            await folders.create("Lost", parent_id="no-such-folder")
        assert await folders.list() == []


class TestRename:
    async def test_rename_and_recolor(self, folders):
        work = await folders.create("Work")
        child = await folders.create("Child", parent_id=work.id)

        renamed = await folders.rename(child.id, name="Kid", color="#00ff00")

        assert renamed.name == "Kid"
        assert renamed.color == "#00ff00"
        assert renamed.parent_id == work.id
        assert renamed.path_ids == [work.id, child.id]
        assert renamed.level == 1

    async def test_rename_is_idempotent_apart_from_updated_at(self, folders):
        folder = await folders.create("Work")

        first = await folders.rename(folder.id, name="Office", color="#123456")
        snapshot = {k: getattr(first, k) for k in ("id", "name", "color", "parent_id", "path", "level", "created_at")}
        first_updated = first.updated_at

        second = await folders.rename(folder.id, name="Office", color="#123456")

        assert {k: getattr(second, k) for k in snapshot} == snapshot
        assert second.updated_at >= first_updated

    async def test_unknown_folder(self, folders):
        with pytest.raises(FolderNotFoundError):
            await folders.rename("missing", name="x")

    async def test_empty_name_rejected(self, folders):
        folder_id = (await folders.create("Work")).id
        with pytest.raises(InvalidInputError):
            await folders.rename(folder_id, name=" ")
        assert (await folders.get(folder_id)).name == "Work"

    async def test_concurrently_deleted_folder_is_not_found(self, folders, session_factory, monkeypatch):
        folder = await folders.create("Doomed")
        folder_id = folder.id
        async with session_factory() as other:
            await FolderService(other, locks=SubtreeLocks()).delete(folder_id)

        # rename read the row before the other session deleted it
        async def read_before_delete(self, _folder_id):
            return folder

        monkeypatch.setattr(FolderStore, "find", read_before_delete)

        with pytest.raises(FolderNotFoundError):
            await folders.rename(folder_id, name="Renamed")


class TestMove:
    @pytest.fixture
    async def abc(self, folders):
        a = await folders.create("A")
        b = await folders.create("B", parent_id=a.id)
        c = await folders.create("C", parent_id=b.id)
        return a.id, b.id, c.id

    async def test_cycle_rejection(self, folders, abc):
        a, b, c = abc

        with pytest.raises(CyclicMoveError):
            await folders.move(a, c)
        with pytest.raises(CyclicMoveError):
            await folders.move(a, b)

        moved = await folders.move(c, a)
        assert moved.path_ids == [a, c]
        assert moved.level == 1
        await assert_tree_consistent(folders)

    async def test_self_parent_is_invalid_input(self, folders, abc):
        a, _, _ = abc
        with pytest.raises(InvalidInputError):
            await folders.move(a, a)

    async def test_unknown_folder_or_parent(self, folders, abc):
        a, _, _ = abc
        with pytest.raises(FolderNotFoundError):
            await folders.move("missing", a)
        with pytest.raises(FolderNotFoundError):
            await folders.move(a, "missing")

    async def test_failed_move_leaves_tree_untouched(self, folders, abc):
        a, b, c = abc
        before = {f.id: (f.parent_id, f.path, f.level) for f in await folders.list()}

        with pytest.raises(CyclicMoveError):
            await folders.move(a, c)

        after = {f.id: (f.parent_id, f.path, f.level) for f in await folders.list()}
        assert after == before

    async def test_move_to_root(self, folders, abc):
        a, b, c = abc
        moved = await folders.move(b, None)

        assert moved.parent_id is None
        assert moved.path_ids == [b]
        assert (await folders.get(c)).path_ids == [b, c]
        await assert_tree_consistent(folders)

    async def test_subtree_move_propagates_to_grandchildren(self, folders):
        r = await folders.create("R")
        f1 = await folders.create("F1", parent_id=r.id)
        f2 = await folders.create("F2", parent_id=f1.id)
        r2 = await folders.create("R2")

        await folders.move(f1.id, r2.id)

        grandchild = await folders.get(f2.id)
        assert grandchild.path_ids == [r2.id, f1.id, f2.id]
        assert grandchild.path_ids[0] == r2.id
        assert grandchild.level == 2
        await assert_tree_consistent(folders)


class TestDelete:
    @pytest.fixture
    async def tree(self, folders, conversations):
        r = await folders.create("R")
        f1 = await folders.create("F1", parent_id=r.id)
        f2 = await folders.create("F2", parent_id=f1.id)
        f3 = await folders.create("F3")
        x = await new_conversation(conversations, f1.id)
        y = await new_conversation(conversations, f2.id)
        return r, f1, f2, f3, x, y

    async def test_cascade_delete(self, folders, conversations, tree):
        r, f1, f2, f3, x, y = tree

        result = await folders.delete(r.id)

        assert set(result.deleted_folder_ids) == {r.id, f1.id, f2.id}
        assert result.deleted_folder_ids[0] == r.id
        assert result.subfolder_count == 2
        assert result.deleted_count == 3
        assert result.reparented_conversations == 2

        remaining = {f.id for f in await folders.list()}
        assert remaining == {f3.id}
        assert await conversations.get_folder_id(x.id) is None
        assert await conversations.get_folder_id(y.id) is None

    async def test_delete_of_leaf_folder(self, folders):
        lonely = await folders.create("Lonely")

        result = await folders.delete(lonely.id)

        assert result.deleted_folder_ids == [lonely.id]
        assert result.subfolder_count == 0
        assert result.reparented_conversations == 0
        assert await folders.list() == []

    async def test_delete_does_not_touch_disjoint_subtree(self, folders, conversations, tree):
        r, f1, f2, f3, x, y = tree
        before = {
            f.id: (f.name, f.color, f.parent_id, f.path, f.level, f.updated_at)
            for f in await folders.list()
            if f.id != f3.id
        }

        await folders.delete(f3.id)

        after = {
            f.id: (f.name, f.color, f.parent_id, f.path, f.level, f.updated_at)
            for f in await folders.list()
        }
        assert after == before
        assert await conversations.get_folder_id(x.id) == f1.id
        assert await conversations.get_folder_id(y.id) == f2.id

    async def test_unknown_folder(self, folders):
        with pytest.raises(FolderNotFoundError):
            await folders.delete("missing")

    async def test_conversations_are_kept(self, folders, conversations, tree):
        r, *_ = tree
        await folders.delete(r.id)
        assert len(await conversations.list()) == 2

    async def test_store_failure_rolls_back_unfiling(self, folders, conversations, tree, monkeypatch):
        r, f1, f2, f3, x, y = tree
        r_id, f1_id, f2_id, x_id, y_id = r.id, f1.id, f2.id, x.id, y.id
        all_ids = {r.id, f1.id, f2.id, f3.id}

        async def fail_after_unfiling(self, root_id):
            await self.store.linkage.clear_folder(await self.collect(root_id))
            raise OperationalError("DELETE FROM folders", {}, Exception("disk I/O error"))

        monkeypatch.setattr(CascadeDeleter, "delete_subtree", fail_after_unfiling)

        with pytest.raises(StoreUnavailableError):
            await folders.delete(r_id)

        assert await conversations.get_folder_id(x_id) == f1_id
        assert await conversations.get_folder_id(y_id) == f2_id
        assert {f.id for f in await folders.list()} == all_ids


async def test_work_projects_archive_scenario(folders, conversations):
    work = await folders.create("Work")
    projects = await folders.create("Projects", parent_id=work.id)
    archive = await folders.create("Archive", parent_id=work.id)
    filed = await new_conversation(conversations, archive.id)

    archive = await folders.move(archive.id, projects.id)
    assert archive.level == 2
    assert archive.path_ids == [work.id, projects.id, archive.id]

    result = await folders.delete(projects.id)

    assert set(result.deleted_folder_ids) == {projects.id, archive.id}
    assert [f.id for f in await folders.list()] == [work.id]
    assert await conversations.get_folder_id(filed.id) is None


class TestUpdate:
    async def test_parent_change_routes_to_move(self, folders):
        a = await folders.create("A")
        b = await folders.create("B")

        updated = await folders.update(b.id, {"parent_id": a.id, "name": "B2"})

        assert updated.parent_id == a.id
        assert updated.path_ids == [a.id, b.id]
        assert updated.name == "B2"

    async def test_explicit_null_parent_moves_to_root(self, folders):
        a = await folders.create("A")
        b = await folders.create("B", parent_id=a.id)

        updated = await folders.update(b.id, {"parent_id": None})

        assert updated.parent_id is None
        assert updated.level == 0

    async def test_name_only_keeps_ancestry(self, folders):
        a = await folders.create("A")
        b = await folders.create("B", parent_id=a.id)

        updated = await folders.update(b.id, {"name": "Renamed"})

        assert updated.parent_id == a.id
        assert updated.path_ids == [a.id, b.id]

    async def test_self_parent_rejected(self, folders):
        a = await folders.create("A")
        with pytest.raises(InvalidInputError):
            await folders.update(a.id, {"parent_id": a.id})

    async def test_invalid_move_rolls_back_rename(self, folders):
        a_id = (await folders.create("A")).id
        b_id = (await folders.create("B", parent_id=a_id)).id

        with pytest.raises(CyclicMoveError):
            await folders.update(a_id, {"parent_id": b_id, "name": "Renamed"})

        assert (await folders.get(a_id)).name == "A"


class TestVerifyAndRepair:
    async def test_repair_fixes_drifted_paths(self, folders, db):
        a = await folders.create("A")
        b = await folders.create("B", parent_id=a.id)
        c = await folders.create("C", parent_id=b.id)

        # 模拟路径漂移
        await db.execute(update(Folder).where(Folder.id == c.id).values(path=c.id, level=0))
        await db.commit()

        assert await folders.verify() == [c.id]
        assert await folders.repair() == [c.id]
        await assert_tree_consistent(folders)

    async def test_repair_on_healthy_tree_changes_nothing(self, folders):
        a = await folders.create("A")
        await folders.create("B", parent_id=a.id)
        assert await folders.repair() == []

    async def test_cascade_follows_parent_links_when_path_drifted(self, folders, db):
        a = await folders.create("A")
        b = await folders.create("B", parent_id=a.id)
        await db.execute(update(Folder).where(Folder.id == b.id).values(path=b.id, level=0))
        await db.commit()

        result = await folders.delete(a.id)

        assert set(result.deleted_folder_ids) == {a.id, b.id}
        assert (await db.execute(select(Folder))).scalars().all() == []


class TestConcurrency:
    async def test_crossing_moves_cannot_form_a_cycle(self, session_factory, locks):
        async with session_factory() as session:
            service = FolderService(session, locks=locks)
            a = await service.create("A")
            b = await service.create("B")

        async def move(folder_id, parent_id):
            async with session_factory() as session:
                try:
                    await FolderService(session, locks=locks).move(folder_id, parent_id)
                    return "moved"
                except CyclicMoveError:
                    return "cyclic"

        results = await asyncio.gather(move(a.id, b.id), move(b.id, a.id))

        assert sorted(results) == ["cyclic", "moved"]
        async with session_factory() as session:
            await assert_tree_consistent(FolderService(session, locks=locks))

    async def test_delete_racing_move_of_descendant(self, session_factory, locks):
        async with session_factory() as session:
            service = FolderService(session, locks=locks)
            r = await service.create("R")
            f1 = await service.create("F1", parent_id=r.id)
            f2 = await service.create("F2", parent_id=f1.id)
            other = await service.create("Other")

        async def delete_root():
            async with session_factory() as session:
                return await FolderService(session, locks=locks).delete(r.id)

        async def move_grandchild():
            async with session_factory() as session:
                try:
                    return await FolderService(session, locks=locks).move(f2.id, other.id)
                except FolderNotFoundError:
                    return None

        await asyncio.gather(delete_root(), move_grandchild())

        async with session_factory() as session:
            service = FolderService(session, locks=locks)
            remaining = {f.id for f in await service.list()}
            assert r.id not in remaining and f1.id not in remaining
            assert other.id in remaining
            await assert_tree_consistent(service)

    async def test_lock_timeout_is_store_unavailable(self, folders, locks):
        a = await folders.create("A")
        b = await folders.create("B")

        async with locks.hold({a.id}):
            with pytest.raises(StoreUnavailableError):
                async with locks.hold({a.id, b.id}, timeout=0.05):
                    pass

    async def test_disjoint_sets_do_not_wait(self, locks):
        async with locks.hold({"a"}):
            async with locks.hold({"b"}, timeout=0.05):
                assert len(locks.held) == 2
        assert locks.held == []
