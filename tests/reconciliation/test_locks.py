"""Tests for the per-job lock registry."""

import threading
import time

import pytest

from reconciliation.locks import JobLockRegistry


def test_lock_exists_only_while_held():
    locks = JobLockRegistry()
    with locks.hold("a"):
        with locks.hold("b"):
            assert len(locks) == 2
        assert len(locks) == 1
    assert len(locks) == 0


def test_hold_is_reentrant():
    locks = JobLockRegistry()
    with locks.hold("a"):
        with locks.hold("a"):
            assert len(locks) == 1
        assert len(locks) == 1
    assert len(locks) == 0


def test_lock_released_when_body_raises():
    locks = JobLockRegistry()
    with pytest.raises(RuntimeError):
        with locks.hold("a"):
            raise RuntimeError("boom")
    assert len(locks) == 0


def test_hold_serializes_same_job():
    """Read-modify-write under hold() never loses an update."""
    locks = JobLockRegistry()
    counter = {'value': 0}

    def bump():
        for _ in range(50):
            with locks.hold("job"):
                current = counter['value']
                time.sleep(0)
                counter['value'] = current + 1

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert counter['value'] == 200


def test_different_jobs_do_not_block_each_other():
    locks = JobLockRegistry()
    acquired = threading.Event()

    def other():
        with locks.hold("b"):
            acquired.set()

    with locks.hold("a"):
        t = threading.Thread(target=other)
        t.start()
        assert acquired.wait(timeout=2)
    t.join()


def test_registry_empty_after_contended_use():
    locks = JobLockRegistry()

    def work(job_id):
        for _ in range(20):
            with locks.hold(job_id):
                time.sleep(0)

    threads = [threading.Thread(target=work, args=(f"job-{i % 3}",)) for i in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(locks) == 0
