from datetime import datetime, timedelta, timezone

import pytest

from conftest import ticking_clock
from tasklist_api.directory import TaskDirectory
from tasklist_api.errors import StoreError, TaskNotFoundError, UserNotFoundError
from tasklist_api.models import Priority
from tasklist_api.repositories import InMemoryDocumentStore
from tasklist_api.schemas import TaskCreate, TaskUpdate
from tasklist_api.utils import calendar_date


def new_task(title, desc=None, priority=None, deadline="2024-01-05"):
    data = {"title": title, "desc": desc, "deadline": deadline}
    if priority is not None:
        data["priority"] = priority
    return TaskCreate(**data)


@pytest.fixture()
def directory():
    return TaskDirectory(InMemoryDocumentStore(clock=ticking_clock()))


@pytest.fixture()
def owner(directory):
    return directory.register_user("alice")["id"]


@pytest.fixture()
def example(directory, owner):
    t1 = directory.create(owner, new_task("Buy milk", priority="Low", deadline="2024-01-05"))
    t2 = directory.create(owner, new_task("Buy bread", priority="High", deadline="2024-01-05T20:15:00"))
    t3 = directory.create(owner, new_task("Clean", priority="Low", deadline="2024-02-01"))
    return t1["id"], t2["id"], t3["id"]


def ids(tasks):
    return {t["id"] for t in tasks}


class TestCreate:
    def test_priority_defaults_to_medium(self, directory, owner):
        task = directory.create(owner, new_task("Write report"))
        assert task["priority"] is Priority.MEDIUM
        assert task["important"] is False
        assert task["complete"] is False
        assert task["id"] in directory.get_user(owner)["tasks"]

    def test_unknown_user_leaves_no_orphan(self, directory):
        with pytest.raises(UserNotFoundError):
            directory.create("ghost", new_task("Orphan"))
        assert directory.store._tasks == {}

    def test_store_failure_on_link_removes_task(self, owner, directory):
        store = directory.store

        def broken_push(user_id, task_id):
            raise StoreError("Task store unavailable")

        store.push_task_ref = broken_push
        with pytest.raises(StoreError):
            directory.create(owner, new_task("Half written"))
        assert store._tasks == {}


class TestListAll:
    def test_example_filters(self, directory, owner, example):
        t1, t2, t3 = example
        assert ids(directory.list_all(owner, query="buy")) == {t1, t2}
        assert ids(directory.list_all(owner, query="buy", priority=Priority.LOW)) == {t1}
        assert ids(directory.list_all(owner, deadline=datetime(2024, 1, 5))) == {t1, t2}

    def test_no_filters_returns_everything_newest_first(self, directory, owner, example):
        t1, t2, t3 = example
        assert [t["id"] for t in directory.list_all(owner)] == [t3, t2, t1]

    def test_tasks_without_deadline_never_match_a_deadline_filter(self, directory, owner):
        task = directory.store.insert_task({"title": "Someday"})
        directory.store.push_task_ref(owner, task["id"])
        assert directory.list_all(owner, deadline=datetime(2024, 1, 5)) == []

    def test_empty(self, directory, owner):
        assert directory.list_all(owner) == []

    def test_unknown_user(self, directory):
        with pytest.raises(UserNotFoundError):
            directory.list_all("ghost")

    def test_aware_deadlines_compare_in_local_time(self, directory, owner):
        due = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        task = directory.create(owner, new_task("Ship", deadline=due.isoformat()))
        local_day = due.astimezone().date()
        matched = directory.list_all(owner, deadline=datetime(local_day.year, local_day.month, local_day.day))
        assert ids(matched) == {task["id"]}


class TestDelete:
    def test_delete_keeps_both_sides_consistent(self, directory, owner, example):
        t1, t2, t3 = example
        directory.delete(owner, t2)
        assert directory.store.get_task(t2) is None
        assert t2 not in directory.get_user(owner)["tasks"]
        for listing in (directory.list_all(owner), directory.list_incomplete(owner), directory.search(owner, "bread")):
            assert t2 not in ids(listing)

    def test_delete_unknown_is_noop(self, directory, owner, example):
        before = directory.get_user(owner)["tasks"]
        directory.delete(owner, "never-existed")
        assert directory.get_user(owner)["tasks"] == before

    def test_delete_of_foreign_task_is_refused(self, directory, owner, example):
        other = directory.register_user("bob")["id"]
        with pytest.raises(TaskNotFoundError):
            directory.delete(other, example[0])
        assert directory.store.get_task(example[0]) is not None

    def test_failed_delete_restores_reference(self, directory, owner, example):
        t1 = example[0]

        def broken_delete(task_id):
            raise StoreError("Task store unavailable")

        directory.store.delete_task = broken_delete
        with pytest.raises(StoreError):
            directory.delete(owner, t1)
        assert t1 in directory.get_user(owner)["tasks"]


class TestUpdate:
    def test_replace_clears_omitted_fields(self, directory, owner):
        task = directory.create(owner, new_task("Plan", desc="offsite", priority="High"))
        updated = directory.replace(owner, task["id"], new_task("Plan trip", deadline="2024-05-01"))
        assert updated["desc"] is None
        assert updated["priority"] is Priority.MEDIUM
        assert updated["created_at"] == task["created_at"]

    def test_patch_keeps_omitted_fields(self, directory, owner):
        task = directory.create(owner, new_task("Plan", desc="offsite", priority="High"))
        updated = directory.patch(owner, task["id"], TaskUpdate(title="Plan trip"))
        assert updated["title"] == "Plan trip"
        assert updated["desc"] == "offsite"
        assert updated["priority"] is Priority.HIGH

    def test_empty_patch_is_allowed(self, directory, owner):
        task = directory.create(owner, new_task("Plan"))
        assert directory.patch(owner, task["id"], TaskUpdate())["title"] == "Plan"

    def test_foreign_task(self, directory, owner, example):
        other = directory.register_user("bob")["id"]
        with pytest.raises(TaskNotFoundError):
            directory.replace(other, example[0], new_task("Mine now"))


class TestToggles:
    def test_double_toggle_restores(self, directory, owner, example):
        t1 = example[0]
        assert directory.toggle_important(owner, t1) is True
        assert directory.toggle_important(owner, t1) is False
        assert directory.store.get_task(t1)["important"] is False

    def test_flag_listings(self, directory, owner, example):
        t1, t2, t3 = example
        directory.toggle_complete(owner, t1)
        directory.toggle_complete(owner, t3)
        directory.toggle_important(owner, t3)
        assert [t["id"] for t in directory.list_complete(owner)] == [t3, t1]
        assert [t["id"] for t in directory.list_incomplete(owner)] == [t2]
        assert [t["id"] for t in directory.list_important(owner)] == [t3]

    def test_toggle_foreign_task(self, directory, owner, example):
        other = directory.register_user("bob")["id"]
        with pytest.raises(TaskNotFoundError):
            directory.toggle_complete(other, example[0])


class TestSearch:
    def test_or_semantics(self, directory, owner):
        a = directory.create(owner, new_task("Groceries", desc="milk and EGGS"))
        b = directory.create(owner, new_task("Eggs benedict"))
        c = directory.create(owner, new_task("Laundry", desc="whites"))
        found = directory.search(owner, "eggs")
        assert [t["id"] for t in found] == [b["id"], a["id"]]
        assert c["id"] not in ids(found)


def test_calendar_date_of_naive_datetime_ignores_time():
    assert calendar_date(datetime(2024, 1, 5, 23, 59)) == calendar_date(datetime(2024, 1, 5, 0, 0))


def test_calendar_date_of_aware_datetime_uses_local_zone():
    value = datetime(2024, 1, 5, 12, 0, tzinfo=timezone(timedelta(hours=5)))
    assert calendar_date(value) == value.astimezone().date()
