import pytest

from conftest import ListStore
from listing_review import database
from listing_review.models import PolicySection, Tier


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "jobs.db"


RAW = [
    {"title": "Trademarks", "content": "Do not use brand names.", "category": "intellectual_property"},
    {"title": "Handmade", "content": "Items must be made by you.", "category": "handmade_reselling"},
    {"title": "Fees", "content": "Do not avoid fees.", "category": "fees_payments"},
]


def _summarize(title, content, category):
    return PolicySection(title=title, summary=f"Summary of {content}", category=category, risk_level=Tier.HIGH)


def _explode(title, content, category):
    raise RuntimeError("boom")


class TestQueue:
    def test_enqueue_dedupes_by_content(self, db_path):
        assert database.enqueue_sections(RAW, db_path) == 3
        assert database.enqueue_sections(RAW[:1], db_path) == 0
        assert database.job_progress(db_path)["pending"] == 3

    def test_enqueue_skips_incomplete_sections(self, db_path):
        added = database.enqueue_sections([{"title": "No content"}, {"content": "No title"}], db_path)
        assert added == 0

    def test_claim_is_fifo_and_marks_running(self, db_path):
        database.enqueue_sections(RAW, db_path)
        first = database.claim_next_job(db_path)
        second = database.claim_next_job(db_path)
        assert (first["title"], second["title"]) == ("Trademarks", "Handmade")
        assert first["status"] == database.RUNNING
        assert first["attempts"] == 1
        progress = database.job_progress(db_path)
        assert progress["running"] == 2
        assert progress["pending"] == 1

    def test_claim_on_empty_queue(self, db_path):
        assert database.claim_next_job(db_path) is None

    def test_progress_counts_every_status(self, db_path):
        progress = database.job_progress(db_path)
        assert progress == {"pending": 0, "running": 0, "completed": 0, "failed": 0, "total": 0}


class TestWorker:
    def test_processes_all_jobs(self, db_path):
        database.enqueue_sections(RAW, db_path)
        stats = database.run_worker(_summarize, db_path=db_path)
        assert stats == {"completed": 3, "failed": 0}
        assert database.job_progress(db_path)["completed"] == 3

    def test_respects_max_jobs(self, db_path):
        database.enqueue_sections(RAW, db_path)
        stats = database.run_worker(_summarize, max_jobs=2, db_path=db_path)
        assert stats["completed"] == 2
        assert database.job_progress(db_path)["pending"] == 1

    def test_failure_recorded_and_worker_moves_on(self, db_path):
        database.enqueue_sections(RAW, db_path)

        def flaky(title, content, category):
            if title == "Handmade":
                raise ValueError("model returned garbage")
            return _summarize(title, content, category)

        stats = database.run_worker(flaky, db_path=db_path)
        assert stats == {"completed": 2, "failed": 1}
        failed = database.list_jobs(database.FAILED, db_path)
        assert [j["title"] for j in failed] == ["Handmade"]
        assert failed[0]["error"] == "model returned garbage"

    def test_retry_failed_requeues(self, db_path):
        database.enqueue_sections(RAW[:1], db_path)
        database.run_worker(_explode, db_path=db_path)
        assert database.retry_failed_jobs(db_path) == 1
        stats = database.run_worker(_summarize, db_path=db_path)
        assert stats["completed"] == 1
        job = database.list_jobs(db_path=db_path)[0]
        assert job["attempts"] == 2


class TestDatabaseStore:
    def test_serves_completed_sections(self, db_path, rules):
        database.enqueue_sections(RAW, db_path)
        database.run_worker(_summarize, max_jobs=2, db_path=db_path)
        store = database.DatabaseStore(ListStore(rules), db_path)
        sections = store.fetch_policy_sections()
        assert [s.title for s in sections] == ["Trademarks", "Handmade"]
        assert sections[0].risk_level == Tier.HIGH
        assert store.fetch_rules() == rules

    def test_falls_back_when_nothing_completed(self, db_path, sections):
        store = database.DatabaseStore(ListStore(sections=sections), db_path)
        assert store.fetch_policy_sections() == sections
