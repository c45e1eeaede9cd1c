from datetime import datetime, timedelta, timezone

from goodworks_agensgraph.models import GoodWork
from goodworks_agensgraph.similarity import SimilarityCandidate, rank_similar

START = datetime(2026, 6, 1, 9, 0, tzinfo=timezone.utc)


def _work(work_id, start=START):
    return GoodWork(id=work_id, name=f"Work {work_id}", start_time=start)


class TestSimilarityCandidate:
    def test_weights(self):
        candidate = SimilarityCandidate(
            work=_work("3.2"),
            category_match=True,
            tag_overlap=2,
            skill_overlap=1,
            location_match=True,
            effort_match=True,
        )
        assert candidate.score == 3 + 4 + 2 + 2 + 1

    def test_no_overlap_scores_zero(self):
        assert SimilarityCandidate(work=_work("3.2")).score == 0


class TestRankSimilar:
    def test_orders_by_score(self):
        reference = _work("3.1")
        ranked = rank_similar(
            reference,
            [
                SimilarityCandidate(work=_work("3.2"), effort_match=True),
                SimilarityCandidate(work=_work("3.3"), category_match=True),
                SimilarityCandidate(work=_work("3.4"), tag_overlap=3),
            ],
        )
        assert [w.id for w in ranked] == ["3.4", "3.3", "3.2"]

    def test_ties_broken_by_start_date_distance(self):
        reference = _work("3.1")
        ranked = rank_similar(
            reference,
            [
                SimilarityCandidate(work=_work("3.2", START + timedelta(days=10)), category_match=True),
                SimilarityCandidate(work=_work("3.3", START - timedelta(days=2)), category_match=True),
                SimilarityCandidate(work=_work("3.4", None), category_match=True),
            ],
        )
        assert [w.id for w in ranked] == ["3.3", "3.2", "3.4"]

    def test_drops_zero_scores_and_reference(self):
        reference = _work("3.1")
        ranked = rank_similar(
            reference,
            [
                SimilarityCandidate(work=_work("3.1"), category_match=True),
                SimilarityCandidate(work=_work("3.2")),
                SimilarityCandidate(work=_work("3.3"), location_match=True),
            ],
        )
        assert [w.id for w in ranked] == ["3.3"]

    def test_limit(self):
        reference = _work("3.1")
        candidates = [
            SimilarityCandidate(work=_work(f"3.{n}"), tag_overlap=n) for n in range(2, 20)
        ]
        ranked = rank_similar(reference, candidates, limit=5)

        assert len(ranked) == 5
        assert ranked[0].id == "3.19"
