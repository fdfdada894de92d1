import pytest

from rag_router.retrieval.scoring import hybrid_score, keyword_distance, tokenize, vector_distance


def test_keyword_distance_counts_matched_query_terms() -> None:
    text_terms = tokenize("The sky is blue. Grass is green.")

    assert keyword_distance(tokenize("sky"), text_terms) == 0.0
    assert keyword_distance(tokenize("sky colour"), text_terms) == pytest.approx(0.5)
    assert keyword_distance(tokenize("ocean"), text_terms) == 1.0


def test_vector_distance_is_clamped_cosine_distance() -> None:
    assert vector_distance([1.0, 0.0], [1.0, 0.0]) == 0.0
    assert vector_distance([1.0, 0.0], [0.0, 1.0]) == pytest.approx(1.0)
    assert vector_distance([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(2.0)


def test_hybrid_score_blends_and_falls_back() -> None:
    assert hybrid_score(vector=0.4, keyword=1.0, alpha=1.0) == pytest.approx(0.4)
    assert hybrid_score(vector=0.4, keyword=1.0, alpha=0.0) == pytest.approx(1.0)
    assert hybrid_score(vector=0.4, keyword=1.0, alpha=0.5) == pytest.approx(0.7)
    assert hybrid_score(vector=0.4, keyword=None, alpha=0.5) == pytest.approx(0.4)
    assert hybrid_score(vector=None, keyword=0.5, alpha=0.9) == pytest.approx(0.5)

    with pytest.raises(ValueError):
        hybrid_score(vector=None, keyword=None, alpha=0.5)
