import threading

import pytest
from sqlalchemy import Engine

from stockdata.dto import TaskStatus
from stockdata.errors import TaskNotFoundError, TaskStateError
from stockdata.repositories.task import TaskRepository


def test_lifecycle(engine: Engine) -> None:
    repo = TaskRepository(engine)

    task = repo.create("daily_task_1_abcdef", "20240101", "20240131")
    assert task.status is TaskStatus.PENDING
    assert task.end_time is None

    repo.mark_running(task.task_id, 21)
    assert repo.update_progress(task.task_id, 47, 9, 1)

    running = repo.get_by_task_id(task.task_id)
    assert running.status is TaskStatus.RUNNING
    assert (running.total_count, running.progress, running.success_count, running.failed_count) == (21, 47, 9, 1)

    done = repo.finalize(task.task_id, TaskStatus.COMPLETED, 100, 20, 1, "1 of 21 units failed")
    assert done.is_terminal
    assert done.end_time is not None
    assert done.error_msg == "1 of 21 units failed"


def test_finalize_only_once(engine: Engine) -> None:
    repo = TaskRepository(engine)
    task = repo.create("t1", "20240101", "20240101")
    repo.finalize(task.task_id, TaskStatus.FAILED, 0, 0, 0, "boom")

    with pytest.raises(TaskStateError):
        repo.finalize(task.task_id, TaskStatus.COMPLETED, 100, 1, 0)

    # progress writes after finalization are ignored
    assert not repo.update_progress(task.task_id, 50, 1, 0)
    final = repo.get_by_task_id(task.task_id)
    assert (final.status, final.progress, final.error_msg) == (TaskStatus.FAILED, 0, "boom")


def test_finalize_rejects_non_terminal_status(engine: Engine) -> None:
    repo = TaskRepository(engine)
    task = repo.create("t1", "20240101", "20240101")
    with pytest.raises(TaskStateError):
        repo.finalize(task.task_id, TaskStatus.RUNNING, 0, 0, 0)


def test_unknown_task(engine: Engine) -> None:
    repo = TaskRepository(engine)
    with pytest.raises(TaskNotFoundError):
        repo.get_by_task_id("nope")
    with pytest.raises(TaskStateError):
        repo.mark_running("nope", 1)


def test_list_tasks_newest_first(engine: Engine) -> None:
    repo = TaskRepository(engine)
    for i in range(25):
        repo.create(f"daily_task_{i:02d}", "20240101", "20240102")

    first = repo.list_tasks(page=1, page_size=10)
    assert first.total == 25
    assert [t.task_id for t in first.items][:2] == ["daily_task_24", "daily_task_23"]

    last = repo.list_tasks(page=3, page_size=10)
    assert [t.task_id for t in last.items] == [f"daily_task_{i:02d}" for i in range(4, -1, -1)]

    # non-positive page size falls back to the default of 10
    assert len(repo.list_tasks(page=0, page_size=0).items) == 10


def test_concurrent_progress_writes_are_atomic(engine: Engine) -> None:
    repo = TaskRepository(engine)
    task = repo.create("race", "20240101", "20240101")
    repo.mark_running(task.task_id, 200)

    def worker(offset: int) -> None:
        # every write is a self-consistent snapshot for n completions
        for n in range(offset, 200, 8):
            repo.update_progress(task.task_id, n * 100 // 200, n - n // 10, n // 10)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    final = repo.get_by_task_id(task.task_id)
    n = final.success_count + final.failed_count
    assert final.failed_count == n // 10
    assert final.progress == n * 100 // 200
